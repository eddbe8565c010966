"""
Entity Domain Models

Clients of the firm, their statutory registrations and entity groups.

Author: Back Office Team
Date: 2025-11-05
"""
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

PAN_PATTERN = r"^[A-Z]{5}[0-9]{4}[A-Z]$"
TAN_PATTERN = r"^[A-Z]{4}[0-9]{5}[A-Z]$"
PHONE_PATTERN = r"^[0-9]{10}$"
PINCODE_PATTERN = r"^[0-9]{6}$"


class EntityType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    PRIVATE_LIMITED_COMPANY = "PRIVATE_LIMITED_COMPANY"
    PUBLIC_LIMITED_COMPANY = "PUBLIC_LIMITED_COMPANY"
    LLP = "LLP"
    PARTNERSHIP_FIRM = "PARTNERSHIP_FIRM"
    PROPRIETORSHIP = "PROPRIETORSHIP"
    HUF = "HUF"
    TRUST = "TRUST"
    SOCIETY = "SOCIETY"
    AOP_BOI = "AOP_BOI"
    GOVERNMENT_BODY = "GOVERNMENT_BODY"
    OTHER = "OTHER"


class EntityStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


def _upper(v: Optional[str]) -> Optional[str]:
    return v.strip().upper() if isinstance(v, str) and v.strip() else None


CUSTOM_FIELD_NAME_PATTERN = r"^[a-zA-Z0-9 _-]+$"
MAX_CUSTOM_FIELDS = 10


class CustomField(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100, pattern=CUSTOM_FIELD_NAME_PATTERN)
    value: Optional[str] = Field(None, max_length=500)


class EntityBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[EmailStr] = None
    primary_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    secondary_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    contact_person: Optional[str] = Field(None, max_length=200)
    address_line1: Optional[str] = Field(None, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    pincode: Optional[str] = Field(None, pattern=PINCODE_PATTERN)
    notes: Optional[str] = Field(None, max_length=5000)
    custom_fields: Optional[List[CustomField]] = Field(None, max_length=MAX_CUSTOM_FIELDS)


class EntityCreate(EntityBase):
    name: str = Field(..., min_length=2, max_length=255)
    entity_type: EntityType
    pan: Optional[str] = Field(None, pattern=PAN_PATTERN)
    tan: Optional[str] = Field(None, pattern=TAN_PATTERN)
    status: EntityStatus = EntityStatus.ACTIVE
    is_retainer: bool = False

    @field_validator("pan", "tan", mode="before")
    @classmethod
    def normalise_codes(cls, v):
        return _upper(v)


class EntityUpdate(EntityBase):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    entity_type: Optional[EntityType] = None
    pan: Optional[str] = Field(None, pattern=PAN_PATTERN)
    tan: Optional[str] = Field(None, pattern=TAN_PATTERN)
    status: Optional[EntityStatus] = None
    is_retainer: Optional[bool] = None

    @field_validator("pan", "tan", mode="before")
    @classmethod
    def normalise_codes(cls, v):
        return _upper(v)


class RegistrationCreate(BaseModel):
    registration_type: str = Field(..., min_length=2, max_length=50)
    registration_number: str = Field(..., min_length=2, max_length=50)
    state: Optional[str] = None
    status: str = Field("ACTIVE", pattern=r"^(ACTIVE|INACTIVE)$")
    effective_from: Optional[date] = None


class RegistrationUpdate(BaseModel):
    registration_number: Optional[str] = Field(None, min_length=2, max_length=50)
    state: Optional[str] = None
    status: Optional[str] = Field(None, pattern=r"^(ACTIVE|INACTIVE)$")
    effective_from: Optional[date] = None


class RegistrationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    entity_id: str
    registration_type: str
    registration_number: str
    state: Optional[str] = None
    status: str
    effective_from: Optional[date] = None


class EntityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    entity_type: str
    pan: Optional[str] = None
    tan: Optional[str] = None
    email: Optional[str] = None
    primary_phone: Optional[str] = None
    secondary_phone: Optional[str] = None
    contact_person: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    status: str
    is_retainer: bool
    notes: Optional[str] = None
    custom_fields: Optional[List[Dict]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class EntityDetail(EntityOut):
    registrations: List[RegistrationOut] = Field(default_factory=list)


# ----------------------------------------------------------------------
# Entity groups
# ----------------------------------------------------------------------

class GroupType(str, Enum):
    FAMILY = "FAMILY"
    BUSINESS = "BUSINESS"
    TRUST = "TRUST"
    PARTNERSHIP = "PARTNERSHIP"
    ORGANIZATION = "ORGANIZATION"
    NON_PROFIT = "NON_PROFIT"
    COOPERATIVE = "COOPERATIVE"
    ASSOCIATION = "ASSOCIATION"
    JOINT_VENTURE = "JOINT_VENTURE"
    GOVERNMENT = "GOVERNMENT"
    OTHER = "OTHER"


class EntityGroupCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    group_type: GroupType


class EntityGroupUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    group_type: Optional[GroupType] = None


class GroupMemberCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    entity_id: str
    role: Optional[str] = Field(None, max_length=100)


class GroupMemberRoleUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    role: Optional[str] = Field(None, max_length=100)


class GroupMembersBulkAdd(BaseModel):
    members: List[GroupMemberCreate] = Field(..., min_length=1, max_length=500)
