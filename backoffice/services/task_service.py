"""
Task Service
Task lifecycle: create, update, soft delete, listing and bulk edits

Author: Back Office Team
Date: 2025-11-07
"""
import logging
import math
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser
from backoffice.core.database import utcnow
from backoffice.core.errors import ForbiddenError, NotFoundError, ValidationError
from backoffice.core.responses import page_offset
from backoffice.domain.task import TaskCreate, TaskUpdate
from backoffice.models import Entity, EntityRegistration, Task, TaskAssignment, TaskCategory
from backoffice.services.activity_service import list_activity, log_activity, log_changes
from backoffice.services.assignment_service import MANUAL, load_assignable_users, serialize_assignment
from backoffice.services.notification_service import NotificationService
from backoffice.services.reconcile_service import active_charges, serialize_charge

logger = logging.getLogger(__name__)

FINAL_STATUSES = ("CANCELLED", "COMPLETED")
COMPLIANCE_LOCKED_FIELDS = ("period_start", "period_end", "financial_year", "compliance_rule_id")
TRACKED_FIELDS = (
    "title", "description", "status", "priority", "category_id",
    "due_date", "start_date", "period_start", "period_end", "financial_year",
)
PRIORITY_RANK = {"HIGH": 3, "MEDIUM": 2, "LOW": 1}
ALL_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "CANCELLED", "ON_HOLD", "PENDING_CLIENT_INPUT")


def _plain(value):
    return value.value if hasattr(value, "value") else value


def charge_totals(task: Task) -> Dict:
    totals = {"total": Decimal("0"), "outstanding": Decimal("0"), "paid": Decimal("0"), "written_off": Decimal("0")}
    for charge in active_charges(task):
        amount = Decimal(str(charge.amount))
        totals["total"] += amount
        if charge.status == "NOT_PAID":
            totals["outstanding"] += amount
        elif charge.status == "PAID":
            totals["paid"] += amount
        elif charge.status == "WRITTEN_OFF":
            totals["written_off"] += amount
    return totals


def serialize_task(task: Task, detail: bool = False) -> Dict:
    data = {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "task_source": task.task_source,
        "task_type": task.task_type,
        "is_system": task.is_system,
        "is_billable": task.is_billable,
        "is_assigned_to_all": task.is_assigned_to_all,
        "entity_id": task.entity_id,
        "category_id": task.category_id,
        "registration_id": task.registration_id,
        "invoice_id": task.invoice_id,
        "invoice_internal_number": task.invoice_internal_number,
        "due_date": task.due_date,
        "start_date": task.start_date,
        "end_date": task.end_date,
        "period_start": task.period_start,
        "period_end": task.period_end,
        "financial_year": task.financial_year,
        "compliance_rule_id": task.compliance_rule_id,
        "comment_count": task.comment_count,
        "last_comment_at": task.last_comment_at,
        "created_by": task.created_by,
        "is_deleted": task.is_deleted,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
        "entity": {"id": task.entity.id, "name": task.entity.name, "pan": task.entity.pan} if task.entity else None,
        "category": {"id": task.category.id, "name": task.category.name} if task.category else None,
        "assignment_count": len(task.assignments),
    }
    if detail:
        data["assignments"] = [serialize_assignment(a) for a in task.assignments]
        data["charges"] = [serialize_charge(c) for c in active_charges(task)]
        data["charge_totals"] = charge_totals(task)
    return data


def can_see_all_tasks(user: TokenUser) -> bool:
    return user.has_permission("tasks.manage")


def visibility_filter(user: TokenUser):
    """Tasks a restricted user may see: created by them, assigned to them, or assigned to all"""
    assigned = Task.assignments.any(TaskAssignment.admin_user_id == user.id)
    return or_(Task.created_by == user.id, Task.is_assigned_to_all.is_(True), assigned)


def assert_task_visible(task: Task, user: TokenUser) -> None:
    if can_see_all_tasks(user):
        return
    if task.created_by == user.id or task.is_assigned_to_all:
        return
    if any(a.admin_user_id == user.id for a in task.assignments):
        return
    raise ForbiddenError("You do not have access to this task")


class TaskService:
    """Business logic for tasks"""

    def __init__(self, db: Session):
        self.db = db

    def get_or_404(self, task_id: str) -> Task:
        task = self.db.get(Task, task_id)
        if not task:
            raise NotFoundError("Task not found")
        return task

    def _get_live(self, task_id: str) -> Task:
        task = self.get_or_404(task_id)
        if task.is_deleted:
            raise ValidationError("Task is deleted")
        return task

    def _assert_category(self, category_id: str) -> None:
        category = self.db.get(TaskCategory, category_id)
        if not category or not category.is_active:
            raise NotFoundError("Task category not found or inactive")

    def _assert_due_date(self, due_date: Optional[date]) -> None:
        if due_date and due_date < utcnow().date():
            raise ValidationError("Due date cannot be in the past")

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_task(self, payload: TaskCreate, actor: TokenUser) -> Dict:
        entity = self.db.get(Entity, payload.entity_id)
        if not entity or entity.deleted_at is not None:
            raise NotFoundError("Entity not found")

        if payload.registration_id:
            registration = self.db.get(EntityRegistration, payload.registration_id)
            if not registration or registration.entity_id != entity.id:
                raise ValidationError("Entity registration does not belong to this entity")

        if payload.category_id:
            self._assert_category(payload.category_id)
        self._assert_due_date(payload.due_date)

        assignees = [] if payload.is_assigned_to_all else load_assignable_users(self.db, payload.assignee_ids)

        data = {k: _plain(v) for k, v in payload.model_dump(exclude={"assignee_ids"}).items()}
        task = Task(**data, created_by=actor.id, updated_by=actor.id)
        if task.status == "COMPLETED":
            task.end_date = utcnow()
        for user in assignees:
            task.assignments.append(TaskAssignment(
                admin_user_id=user.id, assigned_by=actor.id, assignment_source=MANUAL,
            ))
        self.db.add(task)
        self.db.flush()

        log_activity(self.db, task.id, actor.id, "TASK_CREATED", "created the task")
        NotificationService(self.db).notify(
            [u.id for u in assignees if u.id != actor.id],
            type="TASK_ASSIGNED",
            title=f"You have been assigned to '{task.title}'",
            body=entity.name,
            link=f"/tasks/{task.id}",
        )
        self.db.commit()
        self.db.refresh(task)

        logger.info(f"Task {task.id} created for entity {entity.id} by {actor.id}")
        return serialize_task(task, detail=True)

    def update_task(self, task_id: str, payload: TaskUpdate, actor: TokenUser) -> Dict:
        task = self._get_live(task_id)
        changes = {k: _plain(v) for k, v in payload.model_dump(exclude_unset=True).items()}

        if task.task_source == "COMPLIANCE":
            locked = [f for f in COMPLIANCE_LOCKED_FIELDS if changes.get(f) is not None]
            if locked:
                raise ValidationError(
                    "Period fields of compliance tasks cannot be edited manually",
                    details={"fields": locked},
                )

        if changes.get("category_id") and changes["category_id"] != task.category_id:
            self._assert_category(changes["category_id"])
        if "due_date" in changes:
            self._assert_due_date(changes["due_date"])

        before = {f: getattr(task, f) for f in TRACKED_FIELDS}

        new_status = changes.get("status")
        if new_status and new_status != task.status:
            if new_status == "COMPLETED":
                task.end_date = utcnow()
            elif task.status == "COMPLETED":
                task.end_date = None

        for field, value in changes.items():
            if value is None and field in ("title", "status", "priority"):
                continue
            setattr(task, field, value)
        task.updated_by = actor.id

        after = {f: getattr(task, f) for f in TRACKED_FIELDS}
        changed = [f for f in TRACKED_FIELDS if before[f] != after[f]]
        if changed:
            log_changes(self.db, task.id, actor.id, "TASK_UPDATED", [{
                "from": {f: before[f] for f in changed},
                "to": {f: after[f] for f in changed},
            }])

        self.db.commit()
        self.db.refresh(task)
        return serialize_task(task, detail=True)

    def delete_task(self, task_id: str, actor: TokenUser) -> Dict:
        task = self.get_or_404(task_id)

        if task.task_source == "COMPLIANCE":
            raise ValidationError("Compliance-generated tasks cannot be deleted. Mark cancelled instead.")
        if task.status == "COMPLETED":
            raise ValidationError("Completed tasks cannot be deleted. Cancel instead.")
        if task.is_deleted:
            raise ValidationError("Task is already deleted")
        if task.invoice_id or task.invoice_internal_number:
            raise ValidationError("Invoiced tasks cannot be deleted")

        task.is_deleted = True
        task.deleted_at = utcnow()
        task.deleted_by = actor.id
        task.status = "CANCELLED"
        task.assignments.clear()
        log_activity(self.db, task.id, actor.id, "TASK_DELETED", "deleted the task")
        self.db.commit()

        logger.info(f"Task {task.id} soft deleted by {actor.id}")
        return {
            "id": task.id,
            "title": task.title,
            "status": task.status,
            "is_deleted": task.is_deleted,
            "deleted_at": task.deleted_at,
            "deleted_by": task.deleted_by,
        }

    def get_visible(self, task_id: str, user: TokenUser) -> Task:
        task = self.get_or_404(task_id)
        assert_task_visible(task, user)
        return task

    def get_task(self, task_id: str, user: TokenUser) -> Dict:
        return serialize_task(self.get_visible(task_id, user), detail=True)

    def get_task_activity(self, task_id: str, user: TokenUser, limit: int = 100) -> List[Dict]:
        task = self.get_visible(task_id, user)
        return list_activity(self.db, task.id, limit)

    def list_tasks(
        self,
        user: TokenUser,
        entity_id: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        category_id: Optional[str] = None,
        assigned_to: Optional[str] = None,
        created_by: Optional[str] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
        is_billable: Optional[bool] = None,
        search: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        include_deleted: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict:
        page = page if page and page > 0 else 1
        page_size = page_size if page_size and page_size > 0 else 20

        query = self.db.query(Task).filter(Task.task_type == "REGULAR")
        if not include_deleted:
            query = query.filter(Task.is_deleted.is_(False))
        if not can_see_all_tasks(user):
            query = query.filter(visibility_filter(user))

        if entity_id:
            query = query.filter(Task.entity_id == entity_id)
        if status:
            query = query.filter(Task.status == status)
        if priority:
            query = query.filter(Task.priority == priority)
        if category_id:
            query = query.filter(Task.category_id == category_id)
        if created_by:
            query = query.filter(Task.created_by == created_by)
        if assigned_to:
            query = query.filter(Task.assignments.any(TaskAssignment.admin_user_id == assigned_to))
        if due_from:
            query = query.filter(Task.due_date >= due_from)
        if due_to:
            query = query.filter(Task.due_date <= due_to)
        if is_billable is not None:
            query = query.filter(Task.is_billable == is_billable)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(Task.title.ilike(term), Task.description.ilike(term)))

        if sort_by == "due_date":
            ordering = Task.due_date.desc() if sort_order == "desc" else Task.due_date.asc()
        elif sort_by == "priority":
            rank = case(PRIORITY_RANK, value=Task.priority, else_=0)
            ordering = rank.asc() if sort_order == "asc" else rank.desc()
        else:
            ordering = Task.created_at.desc()

        total = query.count()
        tasks = (
            query.order_by(ordering, Task.created_at.desc())
            .offset(page_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        total_pages = math.ceil(total / page_size)
        return {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
            "tasks": [serialize_task(t) for t in tasks],
        }

    # ------------------------------------------------------------------
    # Bulk edits
    # ------------------------------------------------------------------

    def _bulk_update(self, task_ids: List[str], field: str, value: str, actor: TokenUser) -> Dict:
        tasks = self.db.query(Task).filter(Task.id.in_(task_ids)).all()
        if not tasks:
            raise NotFoundError("No tasks found for given IDs")

        found = {t.id for t in tasks}
        skipped = [tid for tid in dict.fromkeys(task_ids) if tid not in found]
        updated: List[Task] = []

        for task in tasks:
            if task.is_deleted or task.status in FINAL_STATUSES:
                skipped.append(task.id)
                continue

            before = getattr(task, field)
            if field == "status" and value == "COMPLETED" and before != "COMPLETED":
                task.end_date = utcnow()
            setattr(task, field, value)
            task.updated_by = actor.id
            if before != value:
                log_changes(self.db, task.id, actor.id, "TASK_UPDATED", [
                    {"from": {field: before}, "to": {field: value}},
                ])
            updated.append(task)

        self.db.commit()
        logger.info(f"Bulk {field} -> {value}: {len(updated)} updated, {len(skipped)} skipped")
        return {
            "summary": {
                "requested": len(task_ids),
                "updated": len(updated),
                "skipped": len(skipped),
            },
            "skipped_task_ids": skipped,
            "updated_tasks": [
                {"id": t.id, "title": t.title, "status": t.status, "priority": t.priority}
                for t in updated
            ],
        }

    def bulk_update_status(self, task_ids: List[str], status, actor: TokenUser) -> Dict:
        return self._bulk_update(task_ids, "status", _plain(status), actor)

    def bulk_update_priority(self, task_ids: List[str], priority, actor: TokenUser) -> Dict:
        return self._bulk_update(task_ids, "priority", _plain(priority), actor)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_status_counts(self, user: Optional[TokenUser] = None) -> Dict:
        query = (
            self.db.query(Task.status, func.count(Task.id))
            .filter(Task.is_deleted.is_(False), Task.task_type == "REGULAR")
        )
        if user is not None and not can_see_all_tasks(user):
            query = query.filter(visibility_filter(user))

        counts = {s: 0 for s in ALL_STATUSES}
        for status, count in query.group_by(Task.status).all():
            counts[status] = count
        counts["total"] = sum(counts.values())
        return counts

    def get_my_open_tasks(self, user: TokenUser, limit: int = 10) -> List[Dict]:
        tasks = (
            self.db.query(Task)
            .filter(
                Task.is_deleted.is_(False),
                Task.status.notin_(FINAL_STATUSES),
                Task.assignments.any(TaskAssignment.admin_user_id == user.id),
            )
            .order_by(Task.due_date.is_(None), Task.due_date.asc(), Task.created_at.desc())
            .limit(limit)
            .all()
        )
        return [serialize_task(t) for t in tasks]
