"""
Task API endpoints
- Task CRUD, bulk edits and activity history
- Assignments
- Comments
- Checklist and attached modules
"""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.domain.task import (
    AssignmentSync,
    BulkAssignRequest,
    BulkPriorityUpdate,
    BulkStatusUpdate,
    ChecklistSync,
    CommentCreate,
    CommentUpdate,
    TaskCreate,
    TaskModuleSync,
    TaskModuleUpdate,
    TaskPriority,
    TaskStatus,
    TaskUpdate,
)
from backoffice.services.assignment_service import AssignmentService
from backoffice.services.checklist_service import ChecklistService
from backoffice.services.comment_service import CommentService
from backoffice.services.task_module_service import TaskModuleService
from backoffice.services.task_service import TaskService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/tasks", tags=["Tasks"])


@router.get("")
async def list_tasks(
    entity_id: Optional[str] = Query(None),
    status: Optional[TaskStatus] = Query(None),
    priority: Optional[TaskPriority] = Query(None),
    category_id: Optional[str] = Query(None),
    assigned_to: Optional[str] = Query(None, description="Admin user id"),
    created_by: Optional[str] = Query(None, description="Admin user id"),
    due_from: Optional[date] = Query(None),
    due_to: Optional[date] = Query(None),
    is_billable: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="Search title and description"),
    sort_by: Optional[str] = Query(None, pattern="^(due_date|priority|created_at)$"),
    sort_order: Optional[str] = Query(None, pattern="^(asc|desc)$"),
    include_deleted: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    """
    List tasks visible to the caller.

    Users without tasks.manage only see tasks they created, are assigned to,
    or that are assigned to everyone.
    """
    result = TaskService(db).list_tasks(
        user,
        entity_id=entity_id,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        category_id=category_id,
        assigned_to=assigned_to,
        created_by=created_by,
        due_from=due_from,
        due_to=due_to,
        is_billable=is_billable,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        include_deleted=include_deleted,
        page=page,
        page_size=page_size,
    )
    return success_response(result)


@router.get("/status-counts")
async def get_status_counts(
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    return success_response(TaskService(db).get_status_counts(user))


@router.get("/assignment-counts")
async def get_assignment_counts(
    user: TokenUser = Depends(require_permission("task_assignments.manage")),
    db: Session = Depends(get_db),
):
    """Open task count per staff member"""
    return success_response(AssignmentService(db).get_assignment_counts())


@router.post("", status_code=201)
async def create_task(
    body: TaskCreate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    return success_response(TaskService(db).create_task(body, user), "Task created")


@router.patch("/bulk/status")
async def bulk_update_status(
    body: BulkStatusUpdate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    result = TaskService(db).bulk_update_status(body.task_ids, body.status, user)
    return success_response(result, "Task statuses updated")


@router.patch("/bulk/priority")
async def bulk_update_priority(
    body: BulkPriorityUpdate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    result = TaskService(db).bulk_update_priority(body.task_ids, body.priority, user)
    return success_response(result, "Task priorities updated")


@router.post("/bulk/assign")
async def bulk_assign_unowned_tasks(
    body: BulkAssignRequest,
    user: TokenUser = Depends(require_permission("task_assignments.manage")),
    db: Session = Depends(get_db),
):
    """Assign users to tasks that nobody owns yet; tasks with assignees are skipped"""
    result = AssignmentService(db).bulk_assign_unowned_tasks(body.task_ids, body.user_ids, user)
    return success_response(result, "Tasks assigned")


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    return success_response(TaskService(db).get_task(task_id, user))


@router.put("/{task_id}")
async def update_task(
    task_id: str,
    body: TaskUpdate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    return success_response(TaskService(db).update_task(task_id, body, user), "Task updated")


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    user: TokenUser = Depends(require_permission("tasks.delete")),
    db: Session = Depends(get_db),
):
    return success_response(TaskService(db).delete_task(task_id, user), "Task deleted")


@router.get("/{task_id}/activity")
async def get_task_activity(
    task_id: str,
    limit: int = Query(100, ge=1, le=500),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    return success_response(TaskService(db).get_task_activity(task_id, user, limit=limit))


# ----------------------------------------------------------------------
# Assignments
# ----------------------------------------------------------------------

@router.get("/{task_id}/assignments")
async def list_assignments(
    task_id: str,
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    TaskService(db).get_visible(task_id, user)
    return success_response(AssignmentService(db).list_assignments(task_id))


@router.put("/{task_id}/assignments")
async def sync_task_assignments(
    task_id: str,
    body: AssignmentSync,
    user: TokenUser = Depends(require_permission("task_assignments.manage")),
    db: Session = Depends(get_db),
):
    result = AssignmentService(db).sync_task_assignments(
        task_id, body.user_ids, body.is_assigned_to_all, user
    )
    return success_response(result, "Assignments updated")


# ----------------------------------------------------------------------
# Comments
# ----------------------------------------------------------------------

@router.get("/{task_id}/comments")
async def list_comments(
    task_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    result = CommentService(db).list_comments(task_id, user, page=page, page_size=page_size)
    return success_response(result["comments"], meta={"pagination": result["pagination"]})


@router.post("/{task_id}/comments", status_code=201)
async def add_comment(
    task_id: str,
    body: CommentCreate,
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    """Only the task creator and its assignees may comment (anyone when assigned to all)"""
    return success_response(CommentService(db).add_comment(task_id, body, user), "Comment added")


@router.put("/{task_id}/comments/{comment_id}")
async def edit_comment(
    task_id: str,
    comment_id: str,
    body: CommentUpdate,
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    comment = CommentService(db).edit_comment(task_id, comment_id, body, user)
    return success_response(comment, "Comment updated")


@router.delete("/{task_id}/comments/{comment_id}")
async def delete_comment(
    task_id: str,
    comment_id: str,
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    CommentService(db).delete_comment(task_id, comment_id, user)
    return success_response({"id": comment_id}, "Comment deleted")


# ----------------------------------------------------------------------
# Checklist
# ----------------------------------------------------------------------

@router.get("/{task_id}/checklist")
async def get_checklist(
    task_id: str,
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    return success_response(ChecklistService(db).list_checklist(task_id, user))


@router.put("/{task_id}/checklist")
async def sync_checklist(
    task_id: str,
    body: ChecklistSync,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    """Replaces the whole checklist: items left out are deleted, items without an id are created"""
    result = ChecklistService(db).sync_checklist(task_id, body.items, user)
    return success_response(result, "Checklist updated")


# ----------------------------------------------------------------------
# Modules
# ----------------------------------------------------------------------

@router.get("/{task_id}/modules")
async def list_task_modules(
    task_id: str,
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    TaskService(db).get_visible(task_id, user)
    return success_response(TaskModuleService(db).list_modules(task_id))


@router.put("/{task_id}/modules")
async def sync_task_modules(
    task_id: str,
    body: TaskModuleSync,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    result = TaskModuleService(db).sync_modules(task_id, body.billable_module_ids, user)
    return success_response(result, "Task modules updated")


@router.patch("/{task_id}/modules/{task_module_id}")
async def update_task_module(
    task_id: str,
    task_module_id: str,
    body: TaskModuleUpdate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    module = TaskModuleService(db).update_module(task_id, task_module_id, body, actor_id=user.id)
    return success_response(module, "Task module updated")
