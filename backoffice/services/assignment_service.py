"""
Assignment Service
Who works on which task

A task is either assigned to everybody (is_assigned_to_all, no rows) or
to an explicit set of staff through task_assignments rows.

Author: Back Office Team
Date: 2025-11-07
"""
import logging
from typing import Dict, Iterable, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser
from backoffice.core.errors import NotFoundError, ValidationError
from backoffice.models import AdminUser, Task, TaskAssignment
from backoffice.services.activity_service import log_changes
from backoffice.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

MANUAL = "MANUAL"
BULK_ASSIGNMENT = "BULK_ASSIGNMENT"

OPEN_STATUSES = ("PENDING", "IN_PROGRESS", "ON_HOLD", "PENDING_CLIENT_INPUT")


def load_assignable_users(db: Session, user_ids: Iterable[str]) -> List[AdminUser]:
    """
    Fetch the staff members behind `user_ids`.

    Every id must belong to an ACTIVE, non-deleted user; otherwise a
    ValidationError lists the offending ids.
    """
    wanted = list(dict.fromkeys(user_ids))
    if not wanted:
        return []

    users = (
        db.query(AdminUser)
        .filter(
            AdminUser.id.in_(wanted),
            AdminUser.status == "ACTIVE",
            AdminUser.deleted_at.is_(None),
        )
        .all()
    )
    found = {u.id for u in users}
    invalid = [uid for uid in wanted if uid not in found]
    if invalid:
        raise ValidationError(
            "Some users cannot be assigned (missing, inactive or deleted)",
            details={"invalid_user_ids": invalid},
        )
    return users


def serialize_assignment(assignment: TaskAssignment) -> Dict:
    user = assignment.user
    return {
        "id": assignment.id,
        "assignment_source": assignment.assignment_source,
        "assigned_by": assignment.assigned_by,
        "created_at": assignment.created_at,
        "user": {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "user_code": user.user_code,
            "status": user.status,
        } if user else None,
    }


class AssignmentService:

    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationService(db)

    def _get_task(self, task_id: str) -> Task:
        task = self.db.get(Task, task_id)
        if not task or task.is_deleted:
            raise NotFoundError("Task not found")
        return task

    def _assignee_names(self, task: Task) -> List[str]:
        return sorted(a.user.name for a in task.assignments if a.user)

    def list_assignments(self, task_id: str) -> Dict:
        task = self._get_task(task_id)
        rows = (
            self.db.query(TaskAssignment)
            .filter(TaskAssignment.task_id == task.id)
            .order_by(TaskAssignment.created_at)
            .all()
        )
        return {
            "task_id": task.id,
            "is_assigned_to_all": task.is_assigned_to_all,
            "assignments": [serialize_assignment(a) for a in rows],
        }

    def sync_task_assignments(
        self,
        task_id: str,
        user_ids: List[str],
        is_assigned_to_all: bool,
        actor: TokenUser,
    ) -> Dict:
        task = self._get_task(task_id)
        before = {"assigned_to_all": task.is_assigned_to_all, "assignees": self._assignee_names(task)}

        added: List[str] = []
        if is_assigned_to_all:
            task.assignments.clear()
        else:
            load_assignable_users(self.db, user_ids)
            wanted = set(user_ids)
            current = {a.admin_user_id: a for a in task.assignments}

            for user_id, assignment in current.items():
                if user_id not in wanted:
                    task.assignments.remove(assignment)
            for user_id in dict.fromkeys(user_ids):
                if user_id not in current:
                    task.assignments.append(TaskAssignment(
                        admin_user_id=user_id,
                        assigned_by=actor.id,
                        assignment_source=MANUAL,
                    ))
                    added.append(user_id)

        task.is_assigned_to_all = is_assigned_to_all
        task.updated_by = actor.id
        self.db.flush()
        self.db.refresh(task)

        after = {"assigned_to_all": task.is_assigned_to_all, "assignees": self._assignee_names(task)}
        log_changes(self.db, task.id, actor.id, "ASSIGNMENTS_UPDATED", [{"from": before, "to": after}])

        self.notifications.notify(
            [uid for uid in added if uid != actor.id],
            type="TASK_ASSIGNED",
            title=f"You have been assigned to '{task.title}'",
            body=f"Assigned by {actor.name or actor.email}",
            link=f"/tasks/{task.id}",
        )
        self.db.commit()

        logger.info(f"Task {task.id} assignments synced by {actor.id} (added {len(added)})")
        return self.list_assignments(task.id)

    def bulk_assign_unowned_tasks(self, task_ids: List[str], user_ids: List[str], actor: TokenUser) -> Dict:
        """
        Assign `user_ids` to every task that has nobody yet (or is assigned to all).

        Tasks that already have explicit assignees are skipped, so this never
        overrides a deliberate assignment.
        """
        load_assignable_users(self.db, user_ids)

        tasks = (
            self.db.query(Task)
            .filter(Task.id.in_(task_ids), Task.is_deleted.is_(False))
            .all()
        )
        if not tasks:
            raise NotFoundError("No tasks found for given IDs")

        eligible = [t for t in tasks if t.is_assigned_to_all or not t.assignments]
        eligible_ids = {t.id for t in eligible}
        skipped = [tid for tid in task_ids if tid not in eligible_ids]

        if not eligible:
            return {
                "updated_task_ids": [],
                "skipped_task_ids": skipped,
                "message": "No eligible tasks for assignment",
            }

        unique_users = list(dict.fromkeys(user_ids))
        for task in eligible:
            task.assignments.clear()
        self.db.flush()

        for task in eligible:
            for user_id in unique_users:
                task.assignments.append(TaskAssignment(
                    admin_user_id=user_id,
                    assigned_by=actor.id,
                    assignment_source=BULK_ASSIGNMENT,
                ))
            task.is_assigned_to_all = False
            task.updated_by = actor.id
        self.db.flush()

        for task in eligible:
            log_changes(
                self.db, task.id, actor.id, "ASSIGNMENTS_UPDATED",
                [{"from": None, "to": {"assignees": self._assignee_names(task)}}],
            )
            self.notifications.notify(
                [uid for uid in unique_users if uid != actor.id],
                type="TASK_ASSIGNED",
                title=f"You have been assigned to '{task.title}'",
                link=f"/tasks/{task.id}",
            )
        self.db.commit()

        logger.info(f"Bulk assigned {len(eligible)} task(s) to {len(unique_users)} user(s)")
        return {
            "updated_task_ids": [t.id for t in eligible],
            "skipped_task_ids": skipped,
            "message": "Bulk assignment completed",
        }

    def get_assignment_counts(self) -> List[Dict]:
        """Open (not completed/cancelled) task count per assigned user"""
        rows = (
            self.db.query(
                AdminUser.id,
                AdminUser.name,
                AdminUser.email,
                func.count(TaskAssignment.id),
            )
            .join(TaskAssignment, TaskAssignment.admin_user_id == AdminUser.id)
            .join(Task, Task.id == TaskAssignment.task_id)
            .filter(Task.is_deleted.is_(False), Task.status.in_(OPEN_STATUSES))
            .group_by(AdminUser.id, AdminUser.name, AdminUser.email)
            .order_by(func.count(TaskAssignment.id).desc())
            .all()
        )
        return [
            {"admin_user_id": uid, "name": name, "email": email, "open_task_count": count}
            for uid, name, email, count in rows
        ]
