"""
Billable Module Service
Module categories and the module catalog tasks and templates draw from

Author: Back Office Team
Date: 2025-11-18
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.core.responses import build_pagination, page_offset
from backoffice.domain.billable_module import (
    BillableModuleCreate,
    BillableModuleUpdate,
    ModuleCategoryCreate,
    ModuleCategoryUpdate,
)
from backoffice.models import BillableModule, BillableModuleCategory, TaskModule, TaskTemplateModule

logger = logging.getLogger(__name__)


def serialize_module_category(category: BillableModuleCategory) -> Dict:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "is_active": category.is_active,
        "created_at": category.created_at,
        "updated_at": category.updated_at,
    }


def serialize_module(module: BillableModule) -> Dict:
    return {
        "id": module.id,
        "name": module.name,
        "description": module.description,
        "category_id": module.category_id,
        "category_name": module.category.name if module.category else None,
        "is_active": module.is_active,
        "created_by": module.created_by,
        "updated_by": module.updated_by,
        "created_at": module.created_at,
        "updated_at": module.updated_at,
    }


class ModuleCategoryService:

    def __init__(self, db: Session):
        self.db = db

    def get_or_404(self, category_id: str) -> BillableModuleCategory:
        category = self.db.get(BillableModuleCategory, category_id)
        if not category:
            raise NotFoundError("Module category not found")
        return category

    def _assert_unique_name(self, name: str, exclude_id: Optional[str] = None):
        query = self.db.query(BillableModuleCategory).filter(
            func.lower(BillableModuleCategory.name) == name.lower()
        )
        if exclude_id:
            query = query.filter(BillableModuleCategory.id != exclude_id)
        if query.first():
            raise ConflictError(f"A module category named '{name}' already exists")

    def create_category(self, payload: ModuleCategoryCreate) -> Dict:
        self._assert_unique_name(payload.name)
        category = BillableModuleCategory(**payload.model_dump())
        self.db.add(category)
        self.db.commit()
        self.db.refresh(category)
        logger.info(f"Module category '{category.name}' created")
        return serialize_module_category(category)

    def update_category(self, category_id: str, payload: ModuleCategoryUpdate) -> Dict:
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
        return serialize_module_category(category)

    def delete_category(self, category_id: str) -> None:
        category = self.get_or_404(category_id)
        in_use = (
            self.db.query(BillableModule)
            .filter(BillableModule.category_id == category_id, BillableModule.is_deleted.is_(False))
            .count()
        )
        if in_use:
            raise ValidationError(f"Category has {in_use} module(s) and cannot be deleted")
        self.db.delete(category)
        self.db.commit()
        logger.info(f"Module category {category_id} deleted")

    def list_categories(self, active_only: bool = False) -> List[Dict]:
        query = self.db.query(BillableModuleCategory)
        if active_only:
            query = query.filter(BillableModuleCategory.is_active.is_(True))
        return [serialize_module_category(c) for c in query.order_by(BillableModuleCategory.name).all()]


class BillableModuleService:

    def __init__(self, db: Session):
        self.db = db

    def get_or_404(self, module_id: str) -> BillableModule:
        module = self.db.get(BillableModule, module_id)
        if not module or module.is_deleted:
            raise NotFoundError("Billable module not found")
        return module

    def _assert_category(self, category_id: Optional[str]):
        if category_id:
            ModuleCategoryService(self.db).get_or_404(category_id)

    def _assert_unique_name(self, name: str, exclude_id: Optional[str] = None):
        query = self.db.query(BillableModule).filter(
            func.lower(BillableModule.name) == name.lower(),
            BillableModule.is_deleted.is_(False),
        )
        if exclude_id:
            query = query.filter(BillableModule.id != exclude_id)
        if query.first():
            raise ConflictError(f"A module named '{name}' already exists")

    def create_module(self, payload: BillableModuleCreate, actor_id: Optional[str]) -> Dict:
        self._assert_category(payload.category_id)
        self._assert_unique_name(payload.name)

        module = BillableModule(**payload.model_dump(), created_by=actor_id, updated_by=actor_id)
        self.db.add(module)
        self.db.commit()
        self.db.refresh(module)
        logger.info(f"Billable module '{module.name}' created by {actor_id}")
        return serialize_module(module)

    def update_module(self, module_id: str, payload: BillableModuleUpdate, actor_id: Optional[str]) -> Dict:
        module = self.get_or_404(module_id)
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("name"):
            self._assert_unique_name(changes["name"], exclude_id=module.id)
        if changes.get("category_id"):
            self._assert_category(changes["category_id"])

        for field, value in changes.items():
            if value is None and field in ("name", "is_active"):
                continue
            setattr(module, field, value)
        module.updated_by = actor_id
        self.db.commit()
        self.db.refresh(module)
        return serialize_module(module)

    def delete_module(self, module_id: str, actor_id: Optional[str]) -> None:
        """Soft delete; refused while a task or template still uses the module"""
        module = self.get_or_404(module_id)
        task_uses = (
            self.db.query(TaskModule)
            .filter(TaskModule.billable_module_id == module_id, TaskModule.is_deleted.is_(False))
            .count()
        )
        template_uses = (
            self.db.query(TaskTemplateModule).filter(TaskTemplateModule.billable_module_id == module_id).count()
        )
        if task_uses or template_uses:
            raise ValidationError(
                "Module is in use and cannot be deleted",
                details={"task_count": task_uses, "template_count": template_uses},
            )

        module.is_deleted = True
        module.is_active = False
        module.updated_by = actor_id
        self.db.commit()
        logger.info(f"Billable module {module_id} deleted by {actor_id}")

    def get_module(self, module_id: str) -> Dict:
        return serialize_module(self.get_or_404(module_id))

    def list_modules(
        self,
        category_id: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict:
        query = self.db.query(BillableModule).filter(BillableModule.is_deleted.is_(False))
        if category_id:
            query = query.filter(BillableModule.category_id == category_id)
        if is_active is not None:
            query = query.filter(BillableModule.is_active == is_active)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(BillableModule.name.ilike(term), BillableModule.description.ilike(term)))

        total = query.count()
        modules = (
            query.order_by(BillableModule.name)
            .offset(page_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        return {
            "modules": [serialize_module(m) for m in modules],
            "pagination": build_pagination(page, page_size, total),
        }
