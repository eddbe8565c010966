"""
Billable Module Domain Models

Author: Back Office Team
Date: 2025-11-18
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

CATEGORY_NAME_PATTERN = r"^[A-Za-z0-9 ]+$"
MODULE_NAME_PATTERN = r"^[A-Za-z0-9\- ]+$"


def title_case(value: str) -> str:
    """'gst  returns' -> 'Gst  Returns' (every word capitalised, rest lowered)"""
    return " ".join(word.capitalize() for word in value.strip().lower().split(" "))


class ModuleCategoryCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=150, pattern=CATEGORY_NAME_PATTERN)
    description: Optional[str] = Field(None, max_length=2000)
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def to_title_case(cls, v: str) -> str:
        return title_case(v)


class ModuleCategoryUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=150, pattern=CATEGORY_NAME_PATTERN)
    description: Optional[str] = Field(None, max_length=2000)
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def to_title_case(cls, v: Optional[str]) -> Optional[str]:
        return title_case(v) if v else v


class BillableModuleCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255, pattern=MODULE_NAME_PATTERN)
    description: Optional[str] = Field(None, max_length=2000)
    category_id: Optional[str] = None
    is_active: bool = True


class BillableModuleUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=255, pattern=MODULE_NAME_PATTERN)
    description: Optional[str] = Field(None, max_length=2000)
    category_id: Optional[str] = None
    is_active: Optional[bool] = None
