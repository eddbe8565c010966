"""
Authentication API endpoints
- Staff login and profile
- Onboarding (invitation acceptance) and password resets
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, get_current_user
from backoffice.core.database import get_db
from backoffice.core.rate_limit import limit_requests
from backoffice.core.responses import success_response
from backoffice.domain.admin_user import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    SetPasswordRequest,
)
from backoffice.services.admin_user_service import AdminUserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])

FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a password reset link has been sent"


@router.post("/login", dependencies=[Depends(limit_requests(10))])
async def login(body: LoginRequest, db: Session = Depends(get_db)):
    """Exchange email/password for an access token"""
    result = AdminUserService(db).authenticate(body.email, body.password)
    return success_response(result, "Login successful")


@router.get("/me")
async def me(user: TokenUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return success_response(AdminUserService(db).get_user(user.id))


@router.post("/forgot-password", dependencies=[Depends(limit_requests(5))])
def forgot_password(body: ForgotPasswordRequest, db: Session = Depends(get_db)):
    """
    Start a password reset.

    Always answers with the same message whether or not the email has an
    account.
    """
    AdminUserService(db).generate_password_reset_token(body.email)
    return success_response(None, FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", dependencies=[Depends(limit_requests(10))])
async def reset_password(body: SetPasswordRequest, db: Session = Depends(get_db)):
    AdminUserService(db).reset_password(body.token, body.password, body.confirm_password)
    return success_response(None, "Password has been reset")


@router.post("/onboarding", dependencies=[Depends(limit_requests(10))])
async def complete_onboarding(body: SetPasswordRequest, db: Session = Depends(get_db)):
    """Accept an invitation (or onboarding reset link) by choosing a password"""
    user = AdminUserService(db).initiate_onboarding(body.token, body.password, body.confirm_password)
    return success_response(user, "Onboarding completed")


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    user: TokenUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    AdminUserService(db).change_password(user.id, body.current_password, body.new_password, body.confirm_password)
    return success_response(None, "Password changed")
