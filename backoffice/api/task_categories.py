"""
Task category API endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.domain.task import CategoryCreate, CategoryUpdate
from backoffice.services.task_category_service import TaskCategoryService

router = APIRouter(prefix="/api/v1/task-categories", tags=["Task Categories"])


@router.get("")
async def list_categories(
    active_only: bool = Query(False, description="Only categories that can be used on new tasks"),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    return success_response(TaskCategoryService(db).list_categories(active_only=active_only))


@router.post("", status_code=201)
async def create_category(
    body: CategoryCreate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    return success_response(TaskCategoryService(db).create_category(body), "Category created")


@router.put("/{category_id}")
async def update_category(
    category_id: str,
    body: CategoryUpdate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    return success_response(TaskCategoryService(db).update_category(category_id, body), "Category updated")


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    TaskCategoryService(db).delete_category(category_id)
    return success_response({"id": category_id}, "Category deleted")
