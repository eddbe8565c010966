"""
Admin User Service
Staff lifecycle: invitation, onboarding, login, password reset, soft delete

Author: Back Office Team
Date: 2025-11-04
"""
import logging
import re
from datetime import timedelta
from typing import Dict, List, Optional

from jose import JWTError, ExpiredSignatureError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from backoffice.core.auth import (
    create_access_token,
    decode_token,
    encode_token,
    hash_password,
    hash_token,
    verify_password,
)
from backoffice.core.config import settings
from backoffice.core.database import new_id, utcnow
from backoffice.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from backoffice.core.responses import build_pagination, page_offset
from backoffice.domain.admin_user import AdminUserCreate, AdminUserOut, AdminUserUpdate
from backoffice.models import AdminUser, Counter, Department
from backoffice.services import email_service
from backoffice.services.permission_service import PermissionService

logger = logging.getLogger(__name__)

INVITE_PURPOSE = "user_invitation"
ONBOARDING_RESET_PURPOSE = "onboarding_reset"
PASSWORD_RESET_PURPOSE = "password_reset"
ONBOARDING_PURPOSES = {INVITE_PURPOSE, ONBOARDING_RESET_PURPOSE}

USER_CODE_COUNTER = "admin_user"


def next_counter_value(db: Session, name: str) -> int:
    """Increment and return a named counter inside the current transaction"""
    counter = db.query(Counter).filter(Counter.name == name).with_for_update().first()
    if counter is None:
        counter = Counter(name=name, value=0)
        db.add(counter)
    counter.value += 1
    db.flush()
    return counter.value


def password_policy_errors(password: str) -> List[str]:
    errors = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain an uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain a lowercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain a digit")
    if not re.search(r"[^A-Za-z0-9]", password):
        errors.append("Password must contain a special character")
    return errors


def validate_new_password(password: str, confirm_password: str) -> None:
    errors = password_policy_errors(password)
    if errors:
        raise ValidationError("Password does not meet requirements", details=errors)
    if password != confirm_password:
        raise ValidationError("Passwords do not match")


def issue_purpose_token(user_id: str, purpose: str, ttl: timedelta) -> str:
    return encode_token({"sub": user_id, "purpose": purpose, "jti": new_id()}, ttl)


class AdminUserService:
    """
    Business logic for back-office staff accounts

    One-time tokens (invitation, onboarding reset, password reset) are JWTs;
    only their sha256 digest and expiry are stored on the user row, so a
    newly issued token invalidates the previous one.
    """

    def __init__(self, db: Session):
        self.db = db
        self.permissions = PermissionService(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get(self, user_id: str) -> AdminUser:
        user = self.db.query(AdminUser).filter(AdminUser.id == user_id).first()
        if not user:
            raise NotFoundError("Admin user not found")
        return user

    def _assert_department(self, department_id: Optional[str]) -> None:
        if department_id and not self.db.get(Department, department_id):
            raise ValidationError("Department not found")

    def get_user(self, user_id: str) -> AdminUserOut:
        return AdminUserOut.from_model(self._get(user_id))

    def _assert_unique(self, email: Optional[str], phone: Optional[str], exclude_id: Optional[str] = None):
        if email:
            query = self.db.query(AdminUser).filter(AdminUser.email == email)
            if exclude_id:
                query = query.filter(AdminUser.id != exclude_id)
            if query.first():
                raise ConflictError("A user with this email already exists")
        if phone:
            query = self.db.query(AdminUser).filter(AdminUser.phone == phone)
            if exclude_id:
                query = query.filter(AdminUser.id != exclude_id)
            if query.first():
                raise ConflictError("A user with this phone number already exists")

    def list_users(
        self,
        status: Optional[str] = None,
        role: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict:
        query = self.db.query(AdminUser).filter(AdminUser.deleted_at.is_(None))
        if status:
            query = query.filter(AdminUser.status == status)
        if role:
            query = query.filter(AdminUser.role == role)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(
                AdminUser.name.ilike(term),
                AdminUser.email.ilike(term),
                AdminUser.phone.ilike(term),
                AdminUser.user_code.ilike(term),
            ))

        total = query.count()
        users = (
            query.order_by(AdminUser.created_at.desc())
            .offset(page_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        return {
            "users": [AdminUserOut.from_model(u) for u in users],
            "pagination": build_pagination(page, page_size, total),
        }

    # ------------------------------------------------------------------
    # Create / update / delete
    # ------------------------------------------------------------------

    def create_user(self, payload: AdminUserCreate, actor_id: Optional[str]) -> AdminUserOut:
        self._assert_unique(payload.email, payload.phone)
        permissions = self.permissions.resolve_codes(payload.permission_codes)
        self._assert_department(payload.department_id)

        user_number = next_counter_value(self.db, USER_CODE_COUNTER)
        user = AdminUser(
            user_code=f"ADMIN_USER_{user_number:03d}",
            name=payload.name,
            email=payload.email,
            phone=payload.phone,
            role=payload.role.value,
            department_id=payload.department_id,
            status="INACTIVE",
            password_hash=None,
            created_by=actor_id,
            updated_by=actor_id,
        )
        self.db.add(user)
        self.db.flush()

        if permissions:
            self.permissions.sync_user_permissions(
                user.id, [p.code for p in permissions], actor_id, commit=False
            )

        token = self._set_onboarding_token(user, INVITE_PURPOSE)
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"Admin user {user.user_code} created by {actor_id}")
        sent, error = email_service.send_invitation_email(user.email, user.name, token)
        if not sent:
            logger.warning(f"Invitation email for {user.user_code} not sent: {error}")

        return AdminUserOut.from_model(user)

    def update_user(self, user_id: str, payload: AdminUserUpdate, actor_id: Optional[str]) -> AdminUserOut:
        user = self._get(user_id)
        if user.is_deleted:
            raise ValidationError("Cannot update a deleted user")
        if payload.permission_codes is not None:
            raise ValidationError("Permissions cannot be changed here; use the permissions endpoint")

        changes = payload.model_dump(exclude_unset=True, exclude={"permission_codes"})
        self._assert_unique(changes.get("email"), changes.get("phone"), exclude_id=user.id)
        self._assert_department(changes.get("department_id"))

        for field, value in changes.items():
            if value is None and field in ("name", "email", "role", "status"):
                continue
            setattr(user, field, value.value if hasattr(value, "value") else value)

        user.updated_by = actor_id
        self.db.commit()
        self.db.refresh(user)
        return AdminUserOut.from_model(user)

    def delete_user(self, user_id: str, actor_id: Optional[str]) -> AdminUserOut:
        user = self._get(user_id)
        if user.is_deleted:
            raise ValidationError("User is already deleted")
        if user.id == actor_id:
            raise ValidationError("You cannot delete your own account")

        user.permissions.clear()
        user.deleted_at = utcnow()
        user.deleted_by = actor_id
        user.status = "SUSPENDED"
        user.onboarding_token_hash = None
        user.password_reset_token_hash = None
        user.updated_by = actor_id
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"Admin user {user.user_code} deleted by {actor_id}")
        return AdminUserOut.from_model(user)

    def sync_permissions(self, user_id: str, codes: List[str], actor_id: Optional[str]) -> List[str]:
        return self.permissions.sync_user_permissions(user_id, codes, actor_id)

    # ------------------------------------------------------------------
    # Invitation / onboarding
    # ------------------------------------------------------------------

    def _set_onboarding_token(self, user: AdminUser, purpose: str) -> str:
        ttl = timedelta(hours=settings.INVITE_TOKEN_EXPIRE_HOURS)
        token = issue_purpose_token(user.id, purpose, ttl)
        now = utcnow()
        user.onboarding_token_hash = hash_token(token)
        user.onboarding_token_expires_at = now + ttl
        user.last_invite_sent_at = now
        return token

    def _in_cooldown(self, last_sent) -> bool:
        if not last_sent:
            return False
        return utcnow() - last_sent < timedelta(minutes=settings.TOKEN_RESEND_COOLDOWN_MINUTES)

    def resend_invite(self, user_id: str) -> Dict:
        user = self._get(user_id)
        if user.is_deleted:
            raise ValidationError("Cannot invite a deleted user")
        if user.is_onboarded:
            raise ValidationError("User has already completed onboarding")
        if user.status != "INACTIVE":
            raise ValidationError("Only inactive users can be re-invited")
        if self._in_cooldown(user.last_invite_sent_at):
            raise ValidationError(
                f"An invitation was sent recently. Try again in {settings.TOKEN_RESEND_COOLDOWN_MINUTES} minutes"
            )

        token = self._set_onboarding_token(user, INVITE_PURPOSE)
        self.db.commit()

        sent, error = email_service.send_invitation_email(user.email, user.name, token)
        if not sent:
            logger.warning(f"Invitation email for {user.user_code} not sent: {error}")
        return {"user_id": user.id, "email_sent": sent, "last_invite_sent_at": user.last_invite_sent_at}

    def generate_onboarding_reset_token(self, user_id: str) -> Optional[str]:
        """Fresh onboarding link for a user who lost theirs; None when not applicable"""
        user = self.db.query(AdminUser).filter(AdminUser.id == user_id).first()
        if (
            not user
            or user.is_deleted
            or user.is_onboarded
            or user.status != "INACTIVE"
            or self._in_cooldown(user.last_invite_sent_at)
        ):
            return None

        token = self._set_onboarding_token(user, ONBOARDING_RESET_PURPOSE)
        self.db.commit()

        sent, error = email_service.send_onboarding_reset_email(user.email, user.name, token)
        if not sent:
            logger.warning(f"Onboarding reset email for {user.user_code} not sent: {error}")
        return token

    def _user_from_token(self, token: str, purposes: set, label: str) -> AdminUser:
        try:
            payload = decode_token(token)
        except ExpiredSignatureError:
            raise ValidationError(f"{label} link has expired")
        except JWTError:
            raise ValidationError(f"Invalid {label.lower()} link")

        if payload.get("purpose") not in purposes:
            raise ValidationError(f"Invalid {label.lower()} link")

        user = self.db.query(AdminUser).filter(AdminUser.id == payload.get("sub")).first()
        if not user:
            raise ValidationError(f"Invalid {label.lower()} link")
        return user

    def initiate_onboarding(self, token: str, password: str, confirm_password: str) -> AdminUserOut:
        user = self._user_from_token(token, ONBOARDING_PURPOSES, "Onboarding")

        if user.onboarding_token_hash != hash_token(token):
            raise ValidationError("Onboarding link is no longer valid")
        if not user.onboarding_token_expires_at or user.onboarding_token_expires_at < utcnow():
            raise ValidationError("Onboarding link has expired")
        if user.is_deleted:
            raise ValidationError("This account has been removed")
        if user.status != "INACTIVE" or user.is_onboarded:
            raise ValidationError("Onboarding has already been completed")

        validate_new_password(password, confirm_password)

        user.password_hash = hash_password(password)
        user.status = "ACTIVE"
        user.onboarding_completed_at = utcnow()
        user.onboarding_token_hash = None
        user.onboarding_token_expires_at = None
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"Admin user {user.user_code} completed onboarding")
        return AdminUserOut.from_model(user)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def generate_password_reset_token(self, email: str) -> Optional[str]:
        """
        Start a forgot-password flow.

        Returns None without raising when the account cannot reset (unknown,
        deleted, not active) or a reset was requested in the cooldown window,
        so the endpoint answers the same way for every email.
        """
        user = self.db.query(AdminUser).filter(AdminUser.email == email.lower()).first()
        if (
            not user
            or user.is_deleted
            or user.status != "ACTIVE"
            or self._in_cooldown(user.password_reset_requested_at)
        ):
            return None

        ttl = timedelta(hours=settings.RESET_TOKEN_EXPIRE_HOURS)
        token = issue_purpose_token(user.id, PASSWORD_RESET_PURPOSE, ttl)
        now = utcnow()
        user.password_reset_token_hash = hash_token(token)
        user.password_reset_expires_at = now + ttl
        user.password_reset_requested_at = now
        self.db.commit()

        sent, error = email_service.send_password_reset_email(user.email, user.name, token)
        if not sent:
            logger.warning(f"Password reset email for {user.user_code} not sent: {error}")
        return token

    def reset_password(self, token: str, password: str, confirm_password: str) -> None:
        user = self._user_from_token(token, {PASSWORD_RESET_PURPOSE}, "Password reset")

        if user.password_reset_token_hash != hash_token(token):
            raise ValidationError("Password reset link is no longer valid")
        if not user.password_reset_expires_at or user.password_reset_expires_at < utcnow():
            raise ValidationError("Password reset link has expired")
        if user.is_deleted or user.status != "ACTIVE":
            raise ValidationError("This account cannot reset its password")

        validate_new_password(password, confirm_password)

        user.password_hash = hash_password(password)
        user.password_reset_token_hash = None
        user.password_reset_expires_at = None
        self.db.commit()
        logger.info(f"Password reset completed for {user.user_code}")

    def change_password(self, user_id: str, current_password: str, new_password: str, confirm_password: str) -> None:
        user = self._get(user_id)
        if not verify_password(current_password, user.password_hash):
            raise ValidationError("Current password is incorrect")
        if current_password == new_password:
            raise ValidationError("New password must be different from the current password")
        validate_new_password(new_password, confirm_password)

        user.password_hash = hash_password(new_password)
        self.db.commit()

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def authenticate(self, email: str, password: str) -> Dict:
        user = self.db.query(AdminUser).filter(AdminUser.email == email.lower()).first()
        # Account state is only revealed once the password has matched
        if not user or not user.password_hash or not verify_password(password, user.password_hash):
            raise UnauthorizedError("Invalid email or password")
        if user.is_deleted or user.status == "SUSPENDED":
            raise ForbiddenError("This account has been disabled")
        if user.status == "INACTIVE" and not user.is_onboarded:
            raise ForbiddenError("Please complete onboarding before signing in")
        if user.status != "ACTIVE":
            raise ForbiddenError("This account is inactive")

        user.last_login_at = utcnow()
        self.db.commit()
        self.db.refresh(user)

        return {
            "access_token": create_access_token(user),
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            "user": AdminUserOut.from_model(user),
        }
