"""
Billing Domain Models

Task charges, ad-hoc charges, invoices and the firm's company profiles.

Author: Back Office Team
Date: 2025-11-08
"""
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class ChargeType(str, Enum):
    EXTERNAL_CHARGE = "EXTERNAL_CHARGE"
    GOVERNMENT_FEE = "GOVERNMENT_FEE"
    SERVICE_FEE = "SERVICE_FEE"
    OTHER_CHARGES = "OTHER_CHARGES"


class ChargeBearer(str, Enum):
    CLIENT = "CLIENT"
    FIRM = "FIRM"


class ChargeStatus(str, Enum):
    NOT_PAID = "NOT_PAID"
    PAID = "PAID"
    WRITTEN_OFF = "WRITTEN_OFF"
    CANCELLED = "CANCELLED"


class BulkChargeStatus(str, Enum):
    NOT_PAID = "NOT_PAID"
    PAID = "PAID"
    WRITTEN_OFF = "WRITTEN_OFF"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


MAX_BULK_CHARGES = 500
MAX_INVOICE_TASKS = 100


# ============================================================================
# Charges
# ============================================================================

class ChargeCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    charge_type: ChargeType
    bearer: ChargeBearer = ChargeBearer.CLIENT
    status: ChargeStatus = ChargeStatus.NOT_PAID
    remark: Optional[str] = Field(None, max_length=2000)


class ChargeUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    charge_type: Optional[ChargeType] = None
    bearer: Optional[ChargeBearer] = None
    status: Optional[ChargeStatus] = None
    remark: Optional[str] = Field(None, max_length=2000)


class BulkChargeItem(BaseModel):
    id: str
    fields: ChargeUpdate


class BulkTaskChargesUpdate(BaseModel):
    updates: List[BulkChargeItem] = Field(..., min_length=1, max_length=MAX_BULK_CHARGES)


class BulkChargeStatusUpdate(BaseModel):
    charge_ids: List[str] = Field(..., min_length=1, max_length=MAX_BULK_CHARGES)
    status: BulkChargeStatus


# ============================================================================
# Invoices
# ============================================================================

class InvoiceCreate(BaseModel):
    """Create a DRAFT invoice or append tasks to an existing one (invoice_id)"""
    entity_id: str
    task_ids: List[str] = Field(..., min_length=1, max_length=MAX_INVOICE_TASKS)
    invoice_id: Optional[str] = None
    company_profile_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=5000)


class InvoiceInfoUpdate(BaseModel):
    invoice_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=5000)
    external_number: Optional[str] = Field(None, max_length=50)
    company_profile_id: Optional[str] = None


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus
    external_number: Optional[str] = Field(None, max_length=50)
    force_to_draft: bool = False


class InvoiceBulkStatusUpdate(BaseModel):
    invoice_ids: List[str] = Field(..., min_length=1, max_length=MAX_BULK_CHARGES)
    status: InvoiceStatus
    external_number_map: Dict[str, str] = Field(default_factory=dict)
    force_to_draft: bool = False


class UnlinkTasksRequest(BaseModel):
    task_ids: List[str] = Field(..., min_length=1, max_length=MAX_INVOICE_TASKS)


# ============================================================================
# Company profiles
# ============================================================================

class CompanyProfileCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=200)
    legal_name: Optional[str] = Field(None, max_length=255)
    gstin: Optional[str] = Field(None, pattern=r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")
    pan: Optional[str] = Field(None, pattern=r"^[A-Z]{5}[0-9]{4}[A-Z]$")
    address: Optional[str] = Field(None, max_length=1000)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=r"^[0-9]{10}$")
    bank_name: Optional[str] = Field(None, max_length=150)
    bank_account_number: Optional[str] = Field(None, max_length=30)
    ifsc: Optional[str] = Field(None, pattern=r"^[A-Z]{4}0[A-Z0-9]{6}$")
    is_active: bool = True


class CompanyProfileUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=2, max_length=200)
    legal_name: Optional[str] = Field(None, max_length=255)
    gstin: Optional[str] = Field(None, pattern=r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")
    pan: Optional[str] = Field(None, pattern=r"^[A-Z]{5}[0-9]{4}[A-Z]$")
    address: Optional[str] = Field(None, max_length=1000)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=r"^[0-9]{10}$")
    bank_name: Optional[str] = Field(None, max_length=150)
    bank_account_number: Optional[str] = Field(None, max_length=30)
    ifsc: Optional[str] = Field(None, pattern=r"^[A-Z]{4}0[A-Z0-9]{6}$")
    is_active: Optional[bool] = None
