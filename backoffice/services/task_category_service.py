"""
Task Category Service

Author: Back Office Team
Date: 2025-11-06
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from backoffice.core.errors import ConflictError, NotFoundError
from backoffice.domain.task import CategoryCreate, CategoryUpdate
from backoffice.models import Task, TaskCategory

logger = logging.getLogger(__name__)


def serialize_category(category: TaskCategory) -> Dict:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "is_active": category.is_active,
        "created_at": category.created_at,
        "updated_at": category.updated_at,
    }


class TaskCategoryService:

    def __init__(self, db: Session):
        self.db = db

    def get_or_404(self, category_id: str) -> TaskCategory:
        category = self.db.get(TaskCategory, category_id)
        if not category:
            raise NotFoundError("Task category not found")
        return category

    def _assert_unique_name(self, name: str, exclude_id: Optional[str] = None):
        query = self.db.query(TaskCategory).filter(func.lower(TaskCategory.name) == name.lower())
        if exclude_id:
            query = query.filter(TaskCategory.id != exclude_id)
        if query.first():
            raise ConflictError(f"A category named '{name}' already exists")

    def create_category(self, payload: CategoryCreate) -> Dict:
        self._assert_unique_name(payload.name)
        category = TaskCategory(**payload.model_dump())
        self.db.add(category)
        self.db.commit()
        self.db.refresh(category)
        logger.info(f"Task category '{category.name}' created")
        return serialize_category(category)

    def update_category(self, category_id: str, payload: CategoryUpdate) -> Dict:
        category = self.get_or_404(category_id)
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("name"):
            self._assert_unique_name(changes["name"], exclude_id=category.id)

        for field, value in changes.items():
            if value is None and field in ("name", "is_active"):
                continue
            setattr(category, field, value)
        self.db.commit()
        self.db.refresh(category)
        return serialize_category(category)

    def delete_category(self, category_id: str) -> None:
        category = self.get_or_404(category_id)
        in_use = self.db.query(Task).filter(Task.category_id == category_id).count()
        if in_use:
            raise ConflictError(f"Category is used by {in_use} task(s) and cannot be deleted")
        self.db.delete(category)
        self.db.commit()
        logger.info(f"Task category {category_id} deleted")

    def list_categories(self, active_only: bool = False) -> List[Dict]:
        query = self.db.query(TaskCategory)
        if active_only:
            query = query.filter(TaskCategory.is_active.is_(True))
        return [serialize_category(c) for c in query.order_by(TaskCategory.name).all()]
