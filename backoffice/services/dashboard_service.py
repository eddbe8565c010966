"""
Dashboard Service
Landing page overview for a signed-in staff member

Author: Back Office Team
Date: 2025-11-12
"""
import logging
from typing import Dict

from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser
from backoffice.services.notification_service import NotificationService
from backoffice.services.reconcile_service import ReconcileService
from backoffice.services.task_service import TaskService

logger = logging.getLogger(__name__)

MY_TASKS_LIMIT = 5


class DashboardService:

    def __init__(self, db: Session):
        self.db = db

    def get_overview(self, user: TokenUser) -> Dict:
        """
        Task counts and open work are scoped to what the user may see; the
        billing figures only go to users who can see outstanding balances.
        """
        tasks = TaskService(self.db)
        overview = {
            "task_status_counts": tasks.get_status_counts(user),
            "my_open_tasks": tasks.get_my_open_tasks(user, limit=MY_TASKS_LIMIT),
            "unread_notifications": NotificationService(self.db).unread_count(user.id),
            "billing": None,
        }
        if user.has_permission("payments.access", "tasks.charge.manage"):
            overview["billing"] = ReconcileService(self.db).get_global_stats()
        return overview
