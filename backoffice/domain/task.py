"""
Task Domain Models

Tasks, categories, assignments, comments, checklists, attached modules and
compliance task templates.

Author: Back Office Team
Date: 2025-11-06
"""
from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"
    PENDING_CLIENT_INPUT = "PENDING_CLIENT_INPUT"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class TaskSource(str, Enum):
    MANUAL = "MANUAL"
    COMPLIANCE = "COMPLIANCE"


MAX_BULK_TASKS = 500


class CategoryCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)
    is_active: bool = True


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=2, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)
    is_active: Optional[bool] = None


class TaskCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    entity_id: str
    category_id: Optional[str] = None
    registration_id: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.LOW
    task_source: TaskSource = TaskSource.MANUAL
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    is_billable: bool = False
    is_assigned_to_all: bool = False
    assignee_ids: List[str] = Field(default_factory=list)

    # Compliance tasks
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    financial_year: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2,4}$")
    compliance_rule_id: Optional[str] = None


class TaskUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    category_id: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    financial_year: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2,4}$")
    compliance_rule_id: Optional[str] = None


class BulkStatusUpdate(BaseModel):
    task_ids: List[str] = Field(..., min_length=1, max_length=MAX_BULK_TASKS)
    status: TaskStatus


class BulkPriorityUpdate(BaseModel):
    task_ids: List[str] = Field(..., min_length=1, max_length=MAX_BULK_TASKS)
    priority: TaskPriority


class TaskIdsRequest(BaseModel):
    task_ids: List[str] = Field(..., min_length=1, max_length=MAX_BULK_TASKS)


class AssignmentSync(BaseModel):
    user_ids: List[str] = Field(default_factory=list)
    is_assigned_to_all: bool = False


class BulkAssignRequest(BaseModel):
    task_ids: List[str] = Field(..., min_length=1, max_length=MAX_BULK_TASKS)
    user_ids: List[str] = Field(..., min_length=1, max_length=50)


class CommentCreate(BaseModel):
    message: str = Field(..., max_length=5000)
    mentions: List[str] = Field(default_factory=list)

    @field_validator("message")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Comment cannot be empty")
        return v.strip()


class CommentUpdate(CommentCreate):
    pass


# ----------------------------------------------------------------------
# Checklist
# ----------------------------------------------------------------------

MAX_CHECKLIST_ITEMS = 30


class ChecklistItemIn(BaseModel):
    """Items with an id update that row; items without one are created"""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=200)
    is_done: Optional[bool] = None
    order: Optional[int] = Field(None, ge=0)


class ChecklistSync(BaseModel):
    items: List[ChecklistItemIn] = Field(default_factory=list, max_length=MAX_CHECKLIST_ITEMS)


# ----------------------------------------------------------------------
# Modules attached to a task
# ----------------------------------------------------------------------

class TaskModuleSync(BaseModel):
    billable_module_ids: List[str] = Field(default_factory=list)


class TaskModuleUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    remark: Optional[str] = Field(None, max_length=2000)


# ----------------------------------------------------------------------
# Compliance task templates
# ----------------------------------------------------------------------

TEMPLATE_TITLE_PATTERN = r"^[A-Za-z0-9 _-]+$"


class TaskTemplateCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    compliance_rule_id: str
    title_template: str = Field(..., min_length=1, max_length=255, pattern=TEMPLATE_TITLE_PATTERN)
    description_template: Optional[str] = Field(None, max_length=10000)
    is_active: bool = True


class TaskTemplateUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    compliance_rule_id: Optional[str] = None
    title_template: Optional[str] = Field(None, min_length=1, max_length=255, pattern=TEMPLATE_TITLE_PATTERN)
    description_template: Optional[str] = Field(None, max_length=10000)
    is_active: Optional[bool] = None


class TemplateModuleIn(BaseModel):
    billable_module_id: str
    is_optional: Optional[bool] = None


class TemplateModuleSync(BaseModel):
    modules: List[TemplateModuleIn] = Field(default_factory=list)
