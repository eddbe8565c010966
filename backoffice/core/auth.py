"""
Authentication and permission gate for the back office API

Staff log in with email/password and receive an HS256 JWT carrying their
role and permission codes. Routers declare what they need with
require_permission("tasks.manage") or require_role("SUPER_ADMIN").
"""
import hashlib
from datetime import timedelta
from typing import List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext
from pydantic import BaseModel

from .config import settings
from .database import utcnow


# Security scheme for bearer tokens
security = HTTPBearer(auto_error=False)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SUPER_ADMIN = "SUPER_ADMIN"

# Role hierarchy: higher number = more privileges
ROLE_HIERARCHY = {
    "SUPER_ADMIN": 5,
    "ADMIN": 4,
    "MANAGER": 3,
    "WEBSITE_MANAGER": 2,
    "VIEW_ONLY": 1,
}


class TokenUser(BaseModel):
    """User data extracted from JWT token"""
    id: str
    email: str
    name: Optional[str] = None
    user_code: Optional[str] = None
    role: str = "VIEW_ONLY"
    permissions: List[str] = []

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN

    def has_permission(self, *codes: str) -> bool:
        if self.is_super_admin:
            return True
        return any(code in self.permissions for code in codes)


# ============================================================================
# Passwords and tokens
# ============================================================================

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def hash_token(token: str) -> str:
    """Stored form of one-time tokens (sha256 hex digest)"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def encode_token(payload: dict, expires_in: timedelta) -> str:
    now = utcnow()
    claims = dict(payload)
    claims["iat"] = now
    claims["exp"] = now + expires_in
    return jwt.encode(claims, settings.AUTH_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """
    Decode and validate a JWT signed with AUTH_SECRET.

    Raises JWTError (ExpiredSignatureError when expired); callers decide
    which HTTP error that becomes.
    """
    return jwt.decode(
        token,
        settings.AUTH_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        options={"verify_aud": False},
    )


def create_access_token(user) -> str:
    """Issue the session token for an authenticated AdminUser"""
    payload = {
        "sub": user.id,
        "email": user.email,
        "name": user.name,
        "user_code": user.user_code,
        "role": user.role,
        "permissions": user.permission_codes,
        "purpose": "access",
    }
    return encode_token(payload, timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))


# ============================================================================
# FastAPI dependencies
# ============================================================================

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> TokenUser:
    """
    Dependency that extracts and validates the current user from JWT.

    Usage:
        @router.get("/protected")
        async def protected_route(user: TokenUser = Depends(get_current_user)):
            return {"message": f"Hello {user.email}"}
    """
    if not credentials:
        raise _unauthorized("Authentication required")

    try:
        payload = decode_token(credentials.credentials)
    except ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except JWTError as e:
        raise _unauthorized(f"Invalid token: {str(e)}")

    if payload.get("purpose", "access") != "access":
        raise _unauthorized("Invalid token purpose")

    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        raise _unauthorized("Invalid token payload: missing user id or email")

    return TokenUser(
        id=user_id,
        email=email,
        name=payload.get("name"),
        user_code=payload.get("user_code"),
        role=payload.get("role", "VIEW_ONLY"),
        permissions=payload.get("permissions") or [],
    )


def require_permission(*codes: str):
    """
    Dependency factory for permission-gated routes.

    SUPER_ADMIN passes every check; anyone else must hold at least one of
    the listed codes.

    Usage:
        @router.post("/entities")
        async def create(user: TokenUser = Depends(require_permission("entities.manage"))):
            ...
    """
    async def permission_checker(
        user: TokenUser = Depends(get_current_user)
    ) -> TokenUser:
        if not user.has_permission(*codes):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required permission: {' or '.join(codes)}",
            )
        return user

    return permission_checker


def require_role(required_role: str):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.delete("/charges/{charge_id}/hard")
        async def hard_delete(user: TokenUser = Depends(require_role("SUPER_ADMIN"))):
            ...
    """
    async def role_checker(
        user: TokenUser = Depends(get_current_user)
    ) -> TokenUser:
        user_level = ROLE_HIERARCHY.get(user.role, 0)
        required_level = ROLE_HIERARCHY.get(required_role, 0)

        if user_level < required_level:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {required_role}, your role: {user.role}"
            )

        return user

    return role_checker


require_super_admin = require_role(SUPER_ADMIN)
