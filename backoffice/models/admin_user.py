"""
Staff accounts, departments, the permission catalog and named counters
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from backoffice.core.database import Base, new_id, utcnow


class AdminUser(Base):
    """
    Back-office staff member

    Users are invited (status INACTIVE, no password), complete onboarding
    through a one-time token and are then ACTIVE. Deletion is soft.
    """
    __tablename__ = "admin_users"

    id = Column(String(36), primary_key=True, default=new_id)
    user_code = Column(String(32), unique=True, nullable=False, index=True)

    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), unique=True)
    role = Column(String(32), nullable=False, default="VIEW_ONLY")
    department_id = Column(String(36), ForeignKey("departments.id"), index=True)
    status = Column(String(16), nullable=False, default="INACTIVE", index=True)

    password_hash = Column(String(255))

    # Onboarding (invitation / onboarding reset)
    onboarding_token_hash = Column(String(64))
    onboarding_token_expires_at = Column(DateTime)
    last_invite_sent_at = Column(DateTime)
    onboarding_completed_at = Column(DateTime)

    # Forgot password
    password_reset_token_hash = Column(String(64))
    password_reset_expires_at = Column(DateTime)
    password_reset_requested_at = Column(DateTime)

    last_login_at = Column(DateTime)

    created_by = Column(String(36))
    updated_by = Column(String(36))
    deleted_at = Column(DateTime, index=True)
    deleted_by = Column(String(36))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    permissions = relationship(
        "AdminUserPermission", back_populates="user", cascade="all, delete-orphan"
    )
    department = relationship("Department", back_populates="users")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_onboarded(self) -> bool:
        return self.onboarding_completed_at is not None

    @property
    def permission_codes(self):
        return sorted(link.permission.code for link in self.permissions)


class Department(Base):
    __tablename__ = "departments"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(150), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    users = relationship("AdminUser", back_populates="department")


class Permission(Base):
    __tablename__ = "permissions"

    id = Column(String(36), primary_key=True, default=new_id)
    code = Column(String(100), unique=True, nullable=False, index=True)
    label = Column(String(200), nullable=False)
    category = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=utcnow)


class AdminUserPermission(Base):
    __tablename__ = "admin_user_permissions"
    __table_args__ = (UniqueConstraint("admin_user_id", "permission_id", name="uq_user_permission"),)

    id = Column(String(36), primary_key=True, default=new_id)
    admin_user_id = Column(String(36), ForeignKey("admin_users.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id = Column(String(36), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False)
    granted_by = Column(String(36))
    created_at = Column(DateTime, default=utcnow)

    user = relationship("AdminUser", back_populates="permissions")
    permission = relationship("Permission", lazy="joined")


class Counter(Base):
    """Named monotonically increasing sequence (e.g. admin user codes)"""
    __tablename__ = "counters"

    name = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
