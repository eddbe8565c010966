"""
Permission catalog API endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, get_current_user, require_super_admin
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.services.permission_service import PermissionService

router = APIRouter(prefix="/api/v1/permissions", tags=["Permissions"])


@router.get("")
async def list_permissions(
    grouped: bool = Query(False, description="Group permissions by category"),
    user: TokenUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return success_response(PermissionService(db).list_permissions(grouped=grouped))


@router.post("/seed")
async def seed_permissions(
    user: TokenUser = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    """Upsert the built-in permission catalog"""
    return success_response(PermissionService(db).seed(), "Permission catalog seeded")
