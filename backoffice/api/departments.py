"""
Department API endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.domain.admin_user import DepartmentIn
from backoffice.services.department_service import DepartmentService

router = APIRouter(prefix="/api/v1/departments", tags=["Departments"])


@router.get("")
async def list_departments(
    user: TokenUser = Depends(require_permission("admin_users.access")),
    db: Session = Depends(get_db),
):
    return success_response(DepartmentService(db).list_departments())


@router.post("", status_code=201)
async def create_department(
    body: DepartmentIn,
    user: TokenUser = Depends(require_permission("admin_users.manage")),
    db: Session = Depends(get_db),
):
    return success_response(DepartmentService(db).create_department(body), "Department created")


@router.put("/{department_id}")
async def update_department(
    department_id: str,
    body: DepartmentIn,
    user: TokenUser = Depends(require_permission("admin_users.manage")),
    db: Session = Depends(get_db),
):
    return success_response(DepartmentService(db).update_department(department_id, body), "Department updated")


@router.delete("/{department_id}")
async def delete_department(
    department_id: str,
    user: TokenUser = Depends(require_permission("admin_users.manage")),
    db: Session = Depends(get_db),
):
    DepartmentService(db).delete_department(department_id)
    return success_response({"id": department_id}, "Department deleted")
