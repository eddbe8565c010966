"""
Task template API endpoints
Templates for compliance tasks and the modules each one brings along
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.domain.task import TaskTemplateCreate, TaskTemplateUpdate, TemplateModuleSync
from backoffice.services.task_template_service import TaskTemplateService

router = APIRouter(prefix="/api/v1/task-templates", tags=["Task Templates"])


@router.get("")
async def list_templates(
    compliance_rule_id: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="Search title and description"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    result = TaskTemplateService(db).list_templates(
        compliance_rule_id=compliance_rule_id, is_active=is_active, search=search, page=page, page_size=page_size
    )
    return success_response(result["templates"], meta={"pagination": result["pagination"]})


@router.post("", status_code=201)
async def create_template(
    body: TaskTemplateCreate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    return success_response(TaskTemplateService(db).create_template(body, actor_id=user.id), "Template created")


@router.get("/{template_id}")
async def get_template(
    template_id: str,
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    return success_response(TaskTemplateService(db).get_template(template_id))


@router.put("/{template_id}")
async def update_template(
    template_id: str,
    body: TaskTemplateUpdate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    return success_response(TaskTemplateService(db).update_template(template_id, body), "Template updated")


@router.delete("/{template_id}")
async def delete_template(
    template_id: str,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    TaskTemplateService(db).delete_template(template_id)
    return success_response({"id": template_id}, "Template deleted")


@router.put("/{template_id}/modules")
async def sync_template_modules(
    template_id: str,
    body: TemplateModuleSync,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    result = TaskTemplateService(db).sync_template_modules(template_id, body.modules)
    return success_response(result, "Template modules updated")
