"""
Checklist Service
Per-task checklist, replaced as a whole on every save

Author: Back Office Team
Date: 2025-11-17
"""
import logging
from typing import Dict, List

from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser
from backoffice.core.errors import ForbiddenError, NotFoundError, ValidationError
from backoffice.domain.task import ChecklistItemIn
from backoffice.models import Task, TaskChecklistItem

logger = logging.getLogger(__name__)


def serialize_item(item: TaskChecklistItem) -> Dict:
    return {
        "id": item.id,
        "task_id": item.task_id,
        "title": item.title,
        "is_done": item.is_done,
        "order": item.order,
        "created_by": item.created_by,
        "updated_by": item.updated_by,
        "created_at": item.created_at,
        "updated_at": item.updated_at,
    }


class ChecklistService:

    def __init__(self, db: Session):
        self.db = db

    def _get_task(self, task_id: str, user: TokenUser) -> Task:
        task = self.db.get(Task, task_id)
        if not task or task.is_deleted:
            raise NotFoundError("Task not found")
        if user.is_super_admin:
            return task
        if task.created_by == user.id or task.is_assigned_to_all:
            return task
        if any(a.admin_user_id == user.id for a in task.assignments):
            return task
        raise ForbiddenError("You do not have access to this task's checklist")

    def _items(self, task_id: str) -> List[TaskChecklistItem]:
        return (
            self.db.query(TaskChecklistItem)
            .filter(TaskChecklistItem.task_id == task_id)
            .order_by(TaskChecklistItem.order, TaskChecklistItem.created_at)
            .all()
        )

    def list_checklist(self, task_id: str, user: TokenUser) -> Dict:
        self._get_task(task_id, user)
        return {"task_id": task_id, "items": [serialize_item(i) for i in self._items(task_id)]}

    def sync_checklist(self, task_id: str, items: List[ChecklistItemIn], user: TokenUser) -> Dict:
        """
        Make the stored checklist match `items`.

        Rows missing from the payload are deleted, rows with an id are
        updated and rows without one are created. Everything happens in one
        commit; an unknown item id rolls the whole save back.
        """
        self._get_task(task_id, user)
        existing = {item.id: item for item in self._items(task_id)}

        unknown = [i.id for i in items if i.id and i.id not in existing]
        if unknown:
            raise ValidationError("Checklist items do not belong to this task", details={"item_ids": unknown})

        kept = {i.id for i in items if i.id}
        try:
            for item_id, item in existing.items():
                if item_id not in kept:
                    self.db.delete(item)

            for payload in items:
                if payload.id:
                    item = existing[payload.id]
                    item.title = payload.title
                    if payload.is_done is not None:
                        item.is_done = payload.is_done
                    if payload.order is not None:
                        item.order = payload.order
                    item.updated_by = user.id
                else:
                    self.db.add(TaskChecklistItem(
                        task_id=task_id,
                        title=payload.title,
                        is_done=bool(payload.is_done),
                        order=payload.order or 0,
                        created_by=user.id,
                        updated_by=user.id,
                    ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        updated = self._items(task_id)
        logger.info(f"Checklist for task {task_id} saved by {user.id} ({len(updated)} item(s))")
        return {"task_id": task_id, "updated": [serialize_item(i) for i in updated]}
