"""
Task Module Service
Billable modules attached to a task (informational, not charged)

Author: Back Office Team
Date: 2025-11-18
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser
from backoffice.core.errors import NotFoundError, ValidationError
from backoffice.domain.task import TaskModuleUpdate
from backoffice.models import BillableModule, Task, TaskModule

logger = logging.getLogger(__name__)


def serialize_task_module(row: TaskModule) -> Dict:
    return {
        "id": row.id,
        "task_id": row.task_id,
        "billable_module_id": row.billable_module_id,
        "name": row.name,
        "remark": row.remark,
        "created_by": row.created_by,
        "updated_by": row.updated_by,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


class TaskModuleService:

    def __init__(self, db: Session):
        self.db = db

    def _get_task(self, task_id: str) -> Task:
        task = self.db.get(Task, task_id)
        if not task or task.is_deleted:
            raise NotFoundError("Task not found")
        return task

    def _attached(self, task_id: str) -> List[TaskModule]:
        return (
            self.db.query(TaskModule)
            .filter(TaskModule.task_id == task_id, TaskModule.is_deleted.is_(False))
            .order_by(TaskModule.created_at)
            .all()
        )

    def list_modules(self, task_id: str) -> List[Dict]:
        self._get_task(task_id)
        return [serialize_task_module(m) for m in self._attached(task_id)]

    def sync_modules(self, task_id: str, billable_module_ids: List[str], actor: TokenUser) -> Dict:
        """
        Attach exactly `billable_module_ids` to the task.

        Modules no longer listed are soft deleted; new ones must be active.
        The module name is copied onto the task row.
        """
        self._get_task(task_id)
        wanted = list(dict.fromkeys(billable_module_ids))
        current = {m.billable_module_id: m for m in self._attached(task_id)}

        to_add = [mid for mid in wanted if mid not in current]
        to_remove = [mid for mid in current if mid not in wanted]

        modules = {}
        if to_add:
            modules = {
                m.id: m for m in self.db.query(BillableModule).filter(
                    BillableModule.id.in_(to_add),
                    BillableModule.is_active.is_(True),
                    BillableModule.is_deleted.is_(False),
                )
            }
            missing = [mid for mid in to_add if mid not in modules]
            if missing:
                raise ValidationError(
                    "Some modules are missing or inactive", details={"billable_module_ids": missing}
                )

        for mid in to_remove:
            row = current[mid]
            row.is_deleted = True
            row.deleted_by = actor.id
            row.updated_by = actor.id

        for mid in to_add:
            self.db.add(TaskModule(
                task_id=task_id,
                billable_module_id=mid,
                name=modules[mid].name,
                created_by=actor.id,
                updated_by=actor.id,
            ))
        self.db.commit()

        logger.info(f"Task {task_id} modules synced by {actor.id}: +{len(to_add)} -{len(to_remove)}")
        return {
            "added": to_add,
            "removed": to_remove,
            "modules": [serialize_task_module(m) for m in self._attached(task_id)],
        }

    def update_module(
        self, task_id: str, task_module_id: str, payload: TaskModuleUpdate, actor_id: Optional[str]
    ) -> Dict:
        row = (
            self.db.query(TaskModule)
            .filter(
                TaskModule.id == task_module_id,
                TaskModule.task_id == task_id,
                TaskModule.is_deleted.is_(False),
            )
            .first()
        )
        if not row:
            raise NotFoundError("Task module not found")

        changes = payload.model_dump(exclude_unset=True)
        if "name" in changes and changes["name"]:
            row.name = changes["name"]
        if "remark" in changes:
            row.remark = changes["remark"]
        row.updated_by = actor_id
        self.db.commit()
        self.db.refresh(row)
        return serialize_task_module(row)
