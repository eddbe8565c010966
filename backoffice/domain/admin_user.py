"""
Admin User Domain Models

Request/response shapes for staff accounts, onboarding and login.

Author: Back Office Team
Date: 2025-11-04
"""
from enum import Enum
from typing import List, Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class AdminRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    WEBSITE_MANAGER = "WEBSITE_MANAGER"
    VIEW_ONLY = "VIEW_ONLY"


class AdminStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


PHONE_PATTERN = r"^[0-9]{10}$"


class AdminUserCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=200)
    email: EmailStr
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    role: AdminRole = AdminRole.VIEW_ONLY
    department_id: Optional[str] = None
    permission_codes: List[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class AdminUserUpdate(BaseModel):
    """
    Partial update of a staff member.

    permission_codes is accepted only so the service can reject it with a
    clear message: permissions change through the permissions endpoint.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=2, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    role: Optional[AdminRole] = None
    status: Optional[AdminStatus] = None
    department_id: Optional[str] = None
    permission_codes: Optional[List[str]] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v


class PermissionSyncRequest(BaseModel):
    permission_codes: List[str] = Field(default_factory=list)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class SetPasswordRequest(BaseModel):
    """Body of both onboarding and password reset: token + new password"""
    token: str = Field(..., min_length=10)
    password: str
    confirm_password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class AdminUserOut(BaseModel):
    id: str
    user_code: str
    name: str
    email: str
    phone: Optional[str] = None
    role: str
    status: str
    department_id: Optional[str] = None
    is_onboarded: bool = False
    last_invite_sent_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    permissions: List[str] = Field(default_factory=list)

    @classmethod
    def from_model(cls, user) -> "AdminUserOut":
        return cls(
            id=user.id,
            user_code=user.user_code,
            name=user.name,
            email=user.email,
            phone=user.phone,
            role=user.role,
            status=user.status,
            department_id=user.department_id,
            is_onboarded=user.is_onboarded,
            last_invite_sent_at=user.last_invite_sent_at,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
            updated_at=user.updated_at,
            deleted_at=user.deleted_at,
            permissions=user.permission_codes,
        )


class DepartmentIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=150)
