"""
Website Domain Models

Request payloads for the public website's records: coupons, customers,
influencers, commissions, service bookings, payment links and service
pricing. Field names
follow the documents as the website stores them (camelCase).

Author: Back Office Team
Date: 2025-11-11
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

COUPON_CODE_PATTERN = r"^[A-Z0-9_-]+$"
USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"
CUSTOMER_PHONE_PATTERN = r"^[0-9]{10,15}$"
MAX_BOOKING_MEMBERS = 10


# ============================================================================
# Coupons
# ============================================================================

class CouponDiscount(BaseModel):
    kind: Literal["flat", "percent"]
    amount: float = Field(..., gt=0)
    maxDiscount: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def check_percent(self):
        if self.kind == "percent" and self.amount > 100:
            raise ValueError("percent discount cannot exceed 100")
        return self


class CouponAppliesTo(BaseModel):
    users: Literal["all", "new"] = "all"


class CouponUsageLimits(BaseModel):
    perUser: Optional[int] = Field(None, gt=0)
    total: Optional[int] = Field(None, gt=0)


class CouponCommission(BaseModel):
    kind: Literal["fixed", "percent"]
    amount: float = Field(..., gt=0)
    maxCommission: Optional[float] = Field(None, gt=0)


class CouponFields(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    linkedServices: Optional[List[str]] = None
    linkedCustomers: Optional[List[str]] = None
    appliesTo: Optional[CouponAppliesTo] = None
    usageLimits: Optional[CouponUsageLimits] = None
    validFrom: Optional[datetime] = None
    expiresAt: Optional[datetime] = None
    isInfluencerCoupon: Optional[bool] = None
    influencerId: Optional[str] = None
    commission: Optional[CouponCommission] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.validFrom and self.expiresAt and self.expiresAt <= self.validFrom:
            raise ValueError("expiresAt must be after validFrom")
        return self


class CouponCreate(CouponFields):
    code: str = Field(..., min_length=3, max_length=50, pattern=COUPON_CODE_PATTERN)
    discount: CouponDiscount
    state: Literal["active", "expired", "inactive", "usedUp"] = "active"

    @field_validator("code", mode="before")
    @classmethod
    def upper_code(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class CouponUpdate(CouponFields):
    discount: Optional[CouponDiscount] = None
    state: Optional[Literal["active", "expired", "inactive", "usedUp"]] = None


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    serviceId: Optional[str] = None
    customerId: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def upper_code(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


# ============================================================================
# Customers
# ============================================================================

class CustomerAddress(BaseModel):
    street: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    pincode: Optional[str] = Field(None, pattern=r"^[0-9]{6}$")


class CustomerCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    firstName: str = Field(..., min_length=1, max_length=50, pattern=r"^[a-zA-Z\s'-]+$")
    lastName: Optional[str] = Field(None, max_length=50, pattern=r"^[a-zA-Z\s'-]*$")
    email: EmailStr
    phoneNumber: str = Field(..., pattern=CUSTOMER_PHONE_PATTERN)
    alternatePhone: Optional[str] = Field(None, pattern=CUSTOMER_PHONE_PATTERN)
    gender: Optional[Literal["male", "female", "other", "prefer-not-to-say"]] = None
    dob: Optional[str] = None
    address: Optional[CustomerAddress] = None

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class CustomerUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    firstName: Optional[str] = Field(None, min_length=1, max_length=50, pattern=r"^[a-zA-Z\s'-]+$")
    lastName: Optional[str] = Field(None, max_length=50, pattern=r"^[a-zA-Z\s'-]*$")
    alternatePhone: Optional[str] = Field(None, pattern=CUSTOMER_PHONE_PATTERN)
    gender: Optional[Literal["male", "female", "other", "prefer-not-to-say"]] = None
    dob: Optional[str] = None
    address: Optional[CustomerAddress] = None


class SearchRequest(BaseModel):
    value: str = Field(..., min_length=1)

    @field_validator("value", mode="before")
    @classmethod
    def strip_value(cls, v):
        return v.strip() if isinstance(v, str) else v


# ============================================================================
# Influencers and commissions
# ============================================================================

class InfluencerFields(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    phone: Optional[str] = Field(None, pattern=r"^[\+]?[1-9][\d]{0,15}$")
    referralCode: Optional[str] = Field(None, min_length=4, max_length=20, pattern=r"^[A-Z0-9]+$")
    tags: Optional[List[str]] = Field(None, max_length=20)
    customCommission: Optional[CouponCommission] = None
    adminNotes: Optional[str] = Field(None, max_length=1000)
    bio: Optional[str] = Field(None, max_length=500)
    preferredPayoutMethod: Optional[Literal["bank_transfer", "upi"]] = None
    bankDetails: Optional[Dict[str, str]] = None


class InfluencerCreate(InfluencerFields):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    status: Literal["active", "inactive"] = "active"

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class InfluencerUpdate(InfluencerFields):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    username: Optional[str] = Field(None, min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    status: Optional[Literal["active", "inactive"]] = None

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class CommissionStatusUpdate(BaseModel):
    ids: List[str] = Field(..., min_length=1)
    actionType: Literal["markPaid", "markUnpaid"]


# ============================================================================
# Service bookings and payment links
# ============================================================================

class BookingIdsRequest(BaseModel):
    service_booking_ids: List[str] = Field(..., min_length=1)


class RefundRejectRequest(BaseModel):
    note: str = Field(..., min_length=1, max_length=2000)

    @field_validator("note", mode="before")
    @classmethod
    def strip_note(cls, v):
        return v.strip() if isinstance(v, str) else v


class RefundInitiateRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    note: Optional[str] = Field(None, max_length=2000)


class AssignMembersRequest(BaseModel):
    members: List[str] = Field(default_factory=list, max_length=MAX_BOOKING_MEMBERS)
    assign_to_all: bool = False


class PaymentLinkUser(BaseModel):
    firstName: str = Field(..., min_length=1)
    lastName: Optional[str] = None
    email: EmailStr
    mobile: str = Field(..., min_length=10, max_length=15)
    uid: Optional[str] = None


class PaymentLinkPayment(BaseModel):
    finalPayment: float = Field(..., gt=0)
    currency: str = "INR"


class PaymentLinkItem(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None


class PaymentLinkCreate(BaseModel):
    user: PaymentLinkUser
    payment: PaymentLinkPayment
    service: Optional[PaymentLinkItem] = None
    plan: Optional[PaymentLinkItem] = None


# ============================================================================
# Service pricing
# ============================================================================

MAX_PRICING_CONFIG_DEPTH = 10
MAX_PRICING_CONFIG_BYTES = 10000


class ServicePricingUpdate(BaseModel):
    """The whole pricing document for one service; it replaces the stored one"""
    model_config = ConfigDict(str_strip_whitespace=True)

    serviceId: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    updatedConfig: Dict

    @field_validator("updatedConfig")
    @classmethod
    def config_has_service_id(cls, v: Dict) -> Dict:
        if not str(v.get("serviceId") or "").strip():
            raise ValueError("Service ID in config is required")
        return v
