"""
Admin user API endpoints
Staff accounts, their permissions and invitations
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.domain.admin_user import (
    AdminRole,
    AdminStatus,
    AdminUserCreate,
    AdminUserUpdate,
    PermissionSyncRequest,
)
from backoffice.services.admin_user_service import AdminUserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin-users", tags=["Admin Users"])


@router.get("")
async def list_admin_users(
    status: Optional[AdminStatus] = Query(None, description="Filter by account status"),
    role: Optional[AdminRole] = Query(None, description="Filter by role"),
    search: Optional[str] = Query(None, description="Search name, email, phone or user code"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(require_permission("admin_users.access")),
    db: Session = Depends(get_db),
):
    result = AdminUserService(db).list_users(
        status=status.value if status else None,
        role=role.value if role else None,
        search=search,
        page=page,
        page_size=page_size,
    )
    return success_response(result["users"], meta={"pagination": result["pagination"]})


@router.get("/{user_id}")
async def get_admin_user(
    user_id: str,
    user: TokenUser = Depends(require_permission("admin_users.access")),
    db: Session = Depends(get_db),
):
    return success_response(AdminUserService(db).get_user(user_id))


@router.post("", status_code=201)
def create_admin_user(
    body: AdminUserCreate,
    user: TokenUser = Depends(require_permission("admin_users.create")),
    db: Session = Depends(get_db),
):
    """
    Create a staff account and email the invitation.

    The account starts INACTIVE without a password; the invitee sets one
    through the onboarding link.
    """
    created = AdminUserService(db).create_user(body, actor_id=user.id)
    return success_response(created, "Admin user created")


@router.put("/{user_id}")
async def update_admin_user(
    user_id: str,
    body: AdminUserUpdate,
    user: TokenUser = Depends(require_permission("admin_users.update")),
    db: Session = Depends(get_db),
):
    updated = AdminUserService(db).update_user(user_id, body, actor_id=user.id)
    return success_response(updated, "Admin user updated")


@router.delete("/{user_id}")
async def delete_admin_user(
    user_id: str,
    user: TokenUser = Depends(require_permission("admin_users.delete")),
    db: Session = Depends(get_db),
):
    deleted = AdminUserService(db).delete_user(user_id, actor_id=user.id)
    return success_response(deleted, "Admin user deleted")


@router.put("/{user_id}/permissions")
async def sync_admin_user_permissions(
    user_id: str,
    body: PermissionSyncRequest,
    user: TokenUser = Depends(require_permission("admin_users.manage")),
    db: Session = Depends(get_db),
):
    """Replace the user's permission grants with exactly the given codes"""
    codes = AdminUserService(db).sync_permissions(user_id, body.permission_codes, actor_id=user.id)
    return success_response({"user_id": user_id, "permission_codes": codes}, "Permissions updated")


@router.post("/{user_id}/resend-invite")
def resend_invite(
    user_id: str,
    user: TokenUser = Depends(require_permission("admin_users.manage")),
    db: Session = Depends(get_db),
):
    result = AdminUserService(db).resend_invite(user_id)
    return success_response(result, "Invitation sent")


@router.post("/{user_id}/reset-onboarding")
def reset_onboarding(
    user_id: str,
    user: TokenUser = Depends(require_permission("admin_users.manage")),
    db: Session = Depends(get_db),
):
    """Send a fresh onboarding link; quietly does nothing when the user is not eligible"""
    AdminUserService(db).generate_onboarding_reset_token(user_id)
    return success_response(None, "If the user is awaiting onboarding, a new link has been sent")
