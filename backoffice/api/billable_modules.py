"""
Billable module API endpoints
- Module categories
- Module catalog
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.domain.billable_module import (
    BillableModuleCreate,
    BillableModuleUpdate,
    ModuleCategoryCreate,
    ModuleCategoryUpdate,
)
from backoffice.services.billable_module_service import BillableModuleService, ModuleCategoryService

router = APIRouter(prefix="/api/v1", tags=["Billable Modules"])


@router.get("/module-categories")
async def list_module_categories(
    active_only: bool = Query(False),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    return success_response(ModuleCategoryService(db).list_categories(active_only=active_only))


@router.post("/module-categories", status_code=201)
async def create_module_category(
    body: ModuleCategoryCreate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    return success_response(ModuleCategoryService(db).create_category(body), "Module category created")


@router.put("/module-categories/{category_id}")
async def update_module_category(
    category_id: str,
    body: ModuleCategoryUpdate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    category = ModuleCategoryService(db).update_category(category_id, body)
    return success_response(category, "Module category updated")


@router.delete("/module-categories/{category_id}")
async def delete_module_category(
    category_id: str,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    ModuleCategoryService(db).delete_category(category_id)
    return success_response({"id": category_id}, "Module category deleted")


# ----------------------------------------------------------------------
# Modules
# ----------------------------------------------------------------------

@router.get("/billable-modules")
async def list_billable_modules(
    category_id: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="Search name and description"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    result = BillableModuleService(db).list_modules(
        category_id=category_id, is_active=is_active, search=search, page=page, page_size=page_size
    )
    return success_response(result["modules"], meta={"pagination": result["pagination"]})


@router.post("/billable-modules", status_code=201)
async def create_billable_module(
    body: BillableModuleCreate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    return success_response(BillableModuleService(db).create_module(body, actor_id=user.id), "Module created")


@router.get("/billable-modules/{module_id}")
async def get_billable_module(
    module_id: str,
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    return success_response(BillableModuleService(db).get_module(module_id))


@router.put("/billable-modules/{module_id}")
async def update_billable_module(
    module_id: str,
    body: BillableModuleUpdate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    module = BillableModuleService(db).update_module(module_id, body, actor_id=user.id)
    return success_response(module, "Module updated")


@router.delete("/billable-modules/{module_id}")
async def delete_billable_module(
    module_id: str,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    """Soft delete; refused while tasks or templates still use the module"""
    BillableModuleService(db).delete_module(module_id, actor_id=user.id)
    return success_response({"id": module_id}, "Module deleted")
