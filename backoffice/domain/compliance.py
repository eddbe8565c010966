"""
Compliance Domain Models

Registration types and the recurring compliance rules attached to them.

Author: Back Office Team
Date: 2025-11-18
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

REGISTRATION_CODE_PATTERN = r"^[A-Z0-9_-]+$"
COMPLIANCE_CODE_PATTERN = r"^[A-Z0-9]+(_[A-Z0-9]+)*$"


class FrequencyType(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    HALFYEARLY = "HALFYEARLY"
    YEARLY = "YEARLY"


def _code(v):
    return v.strip().upper() if isinstance(v, str) else v


class RegistrationTypeCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(..., min_length=1, max_length=50, pattern=REGISTRATION_CODE_PATTERN)
    name: Optional[str] = Field(None, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)
    is_active: bool = False
    validation_regex: Optional[str] = Field(None, max_length=255)
    validation_hint: Optional[str] = Field(None, max_length=255)

    @field_validator("code", mode="before")
    @classmethod
    def normalise_code(cls, v):
        return _code(v)


class RegistrationTypeUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    code: Optional[str] = Field(None, min_length=1, max_length=50, pattern=REGISTRATION_CODE_PATTERN)
    name: Optional[str] = Field(None, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)
    is_active: Optional[bool] = None
    validation_regex: Optional[str] = Field(None, max_length=255)
    validation_hint: Optional[str] = Field(None, max_length=255)

    @field_validator("code", mode="before")
    @classmethod
    def normalise_code(cls, v):
        return _code(v)


class ComplianceRuleCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    compliance_code: str = Field(..., min_length=1, max_length=100, pattern=COMPLIANCE_CODE_PATTERN)
    name: str = Field(..., min_length=2, max_length=255)
    registration_type_id: str
    frequency_type: FrequencyType
    due_day: int = Field(..., ge=1, le=31)
    due_month_offset: int = Field(0, ge=-3, le=12)
    grace_days: int = Field(0, ge=0)
    is_active: bool = True

    @field_validator("compliance_code", mode="before")
    @classmethod
    def normalise_code(cls, v):
        return _code(v)


class ComplianceRuleUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    compliance_code: Optional[str] = Field(None, min_length=1, max_length=100, pattern=COMPLIANCE_CODE_PATTERN)
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    registration_type_id: Optional[str] = None
    frequency_type: Optional[FrequencyType] = None
    due_day: Optional[int] = Field(None, ge=1, le=31)
    due_month_offset: Optional[int] = Field(None, ge=-3, le=12)
    grace_days: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None

    @field_validator("compliance_code", mode="before")
    @classmethod
    def normalise_code(cls, v):
        return _code(v)
