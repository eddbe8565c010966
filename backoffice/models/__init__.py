"""
Database models
"""
from .admin_user import AdminUser, Department, Permission, AdminUserPermission, Counter
from .entity import Entity, EntityRegistration, EntityGroup, EntityGroupMember
from .compliance import RegistrationType, ComplianceRule
from .billable_module import BillableModuleCategory, BillableModule
from .task import (
    TaskCategory,
    Task,
    TaskAssignment,
    TaskActivityLog,
    TaskComment,
    TaskChecklistItem,
    TaskModule,
    TaskTemplate,
    TaskTemplateModule,
)
from .billing import TaskCharge, Invoice, CompanyProfile, ReconcileStatsCurrent
from .notification import Notification, NotificationCounter

__all__ = [
    "AdminUser",
    "Department",
    "Permission",
    "AdminUserPermission",
    "Counter",
    "Entity",
    "EntityRegistration",
    "EntityGroup",
    "EntityGroupMember",
    "RegistrationType",
    "ComplianceRule",
    "BillableModuleCategory",
    "BillableModule",
    "TaskCategory",
    "Task",
    "TaskAssignment",
    "TaskActivityLog",
    "TaskComment",
    "TaskChecklistItem",
    "TaskModule",
    "TaskTemplate",
    "TaskTemplateModule",
    "TaskCharge",
    "Invoice",
    "CompanyProfile",
    "ReconcileStatsCurrent",
    "Notification",
    "NotificationCounter",
]
