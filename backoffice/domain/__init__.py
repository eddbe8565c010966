"""
Domain Layer - Request and Response Models

Pydantic models that validate what the API accepts and shape what it
returns. Services take these models as input.

Author: Back Office Team
Date: 2025-11-03
"""
from backoffice.domain.admin_user import AdminRole, AdminStatus, AdminUserOut
from backoffice.domain.entity import EntityOut, EntityDetail, RegistrationOut
from backoffice.domain.task import TaskStatus, TaskPriority
from backoffice.domain.billing import ChargeStatus, InvoiceStatus

__all__ = [
    'AdminRole', 'AdminStatus', 'AdminUserOut',
    'EntityOut', 'EntityDetail', 'RegistrationOut',
    'TaskStatus', 'TaskPriority',
    'ChargeStatus', 'InvoiceStatus',
]
