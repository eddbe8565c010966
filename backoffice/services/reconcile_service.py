"""
Reconcile Service
Billing reconciliation: which charges are invoiced, which are still owed

Two halves:
1. Charge deltas. Every charge contributes amounts to its entity's row in
   reconcile_stats_current; charge mutations apply the difference
   between the old and new contribution instead of re-aggregating.
2. Read side. The unreconciled / non-billable / reconciled tabs, the
   outstanding-by-entity list and the global and per-entity totals.

Author: Back Office Team
Date: 2025-11-08
"""
import logging
from datetime import date, datetime, time
from decimal import Decimal
from types import SimpleNamespace
from typing import Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser
from backoffice.core.errors import NotFoundError, ValidationError
from backoffice.core.responses import build_pagination, page_offset
from backoffice.models import Entity, Invoice, ReconcileStatsCurrent, Task, TaskCharge

logger = logging.getLogger(__name__)


# ============================================================================
# Charge contribution deltas
# ============================================================================

BUCKETS = {
    "SERVICE_FEE": "service_fee",
    "GOVERNMENT_FEE": "government_fee",
    "EXTERNAL_CHARGE": "external_charge",
}

DELTA_FIELDS = [
    "service_fee_total",
    "service_fee_outstanding",
    "service_fee_written_off",
    "government_fee_total",
    "government_fee_outstanding",
    "government_fee_written_off",
    "external_charge_total",
    "external_charge_outstanding",
    "external_charge_written_off",
    "client_total_outstanding",
    "pending_charges_count",
]


def zero_delta() -> Dict:
    return {field: (0 if field == "pending_charges_count" else Decimal("0")) for field in DELTA_FIELDS}


def snapshot_charge(charge: TaskCharge) -> SimpleNamespace:
    """Freeze the fields that drive the contribution before mutating a charge"""
    return SimpleNamespace(
        amount=charge.amount,
        charge_type=charge.charge_type,
        status=charge.status,
        deleted_at=charge.deleted_at,
    )


def compute_contribution(charge) -> Dict:
    """
    Amounts a single charge adds to its entity's stats row.

    A soft deleted charge contributes nothing. OTHER_CHARGES has no bucket
    but an unpaid one still counts towards client_total_outstanding.
    """
    delta = zero_delta()
    if charge.deleted_at is not None:
        return delta

    amount = Decimal(str(charge.amount))
    bucket = BUCKETS.get(charge.charge_type)

    if bucket:
        delta[f"{bucket}_total"] = amount

    if charge.status == "NOT_PAID":
        if bucket:
            delta[f"{bucket}_outstanding"] = amount
        delta["client_total_outstanding"] = amount
        delta["pending_charges_count"] = 1

    if charge.status == "WRITTEN_OFF" and bucket:
        delta[f"{bucket}_written_off"] = amount

    return delta


def negate_delta(delta: Dict) -> Dict:
    return {key: -value for key, value in delta.items()}


def diff_delta(before: Dict, after: Dict) -> Dict:
    return {key: after[key] - before[key] for key in before}


def apply_delta(db: Session, entity_id: Optional[str], delta: Dict) -> None:
    """Add `delta` to the entity's stats row, creating the row on first use"""
    if not entity_id:
        return

    stats = db.get(ReconcileStatsCurrent, entity_id)
    if stats is None:
        stats = ReconcileStatsCurrent(entity_id=entity_id, **zero_delta())
        db.add(stats)
        db.flush()

    for field, value in delta.items():
        if value:
            setattr(stats, field, (getattr(stats, field) or 0) + value)


def apply_charge_create(db: Session, entity_id: str, charge) -> None:
    apply_delta(db, entity_id, compute_contribution(charge))


def apply_charge_update(db: Session, entity_id: str, before, after) -> None:
    apply_delta(db, entity_id, diff_delta(compute_contribution(before), compute_contribution(after)))


def apply_charge_delete(db: Session, entity_id: str, charge) -> None:
    apply_delta(db, entity_id, negate_delta(compute_contribution(charge)))


def apply_charge_restore(db: Session, entity_id: str, charge) -> None:
    apply_delta(db, entity_id, compute_contribution(charge))


def rebuild_entity_stats(db: Session, entity_id: str) -> ReconcileStatsCurrent:
    """Recompute an entity's stats row from its charges (repairs drift)"""
    totals = zero_delta()
    charges = db.query(TaskCharge).filter(TaskCharge.entity_id == entity_id).all()
    for charge in charges:
        for key, value in compute_contribution(charge).items():
            totals[key] += value

    stats = db.get(ReconcileStatsCurrent, entity_id)
    if stats is None:
        stats = ReconcileStatsCurrent(entity_id=entity_id)
        db.add(stats)
    for field, value in totals.items():
        setattr(stats, field, value)

    db.commit()
    db.refresh(stats)
    logger.info(f"Rebuilt reconcile stats for entity {entity_id} from {len(charges)} charge(s)")
    return stats


def serialize_stats(stats: Optional[ReconcileStatsCurrent]) -> Dict:
    if stats is None:
        return {field: 0 for field in DELTA_FIELDS}
    return {field: _num(getattr(stats, field)) for field in DELTA_FIELDS}


# ============================================================================
# Serialization
# ============================================================================

def _num(value) -> float:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return float(value)


def serialize_charge(charge: TaskCharge) -> Dict:
    return {
        "id": charge.id,
        "task_id": charge.task_id,
        "entity_id": charge.entity_id,
        "title": charge.title,
        "amount": charge.amount,
        "charge_type": charge.charge_type,
        "bearer": charge.bearer,
        "status": charge.status,
        "remark": charge.remark,
        "paid_via_invoice_id": charge.paid_via_invoice_id,
        "deleted_at": charge.deleted_at,
        "created_at": charge.created_at,
        "updated_at": charge.updated_at,
    }


def active_charges(task: Task) -> List[TaskCharge]:
    charges = [c for c in task.charges if c.deleted_at is None]
    return sorted(charges, key=lambda c: (c.created_at or datetime.min, c.id))


def item_type(task: Task) -> str:
    return "ADHOC" if task.task_type == "SYSTEM_ADHOC" else "TASK"


def _task_summary(task: Task) -> Dict:
    entity = task.entity
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "task_type": task.task_type,
        "is_system": task.is_system,
        "is_billable": task.is_billable,
        "invoice_internal_number": task.invoice_internal_number,
        "created_at": task.created_at,
        "category": {"id": task.category.id, "name": task.category.name} if task.category else None,
        "entity": {
            "id": entity.id,
            "name": entity.name,
            "email": entity.email,
            "phone": entity.primary_phone,
        } if entity else None,
    }


def build_reconcile_item(task: Task) -> Dict:
    return {
        "type": item_type(task),
        "task": _task_summary(task),
        "charges": [serialize_charge(c) for c in active_charges(task)],
    }


def _validate_range(from_date: Optional[date], to_date: Optional[date]) -> None:
    if from_date and to_date and from_date > to_date:
        raise ValidationError("from_date must be <= to_date")


def _start_of(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _end_of(d: date) -> datetime:
    return datetime.combine(d, time.max)


def clamp_page_size(page_size: Optional[int], default: int = 50, maximum: int = 200) -> int:
    return min(page_size or default, maximum)


OUTSTANDING_SORT_FIELDS = ("total_outstanding", "service_fee", "government_fee", "external_charge")


class ReconcileService:

    def __init__(self, db: Session):
        self.db = db

    def _assert_entity(self, entity_id: str) -> None:
        if not self.db.get(Entity, entity_id):
            raise NotFoundError("Entity not found")

    def _task_tab(
        self,
        base_filters: list,
        entity_id: Optional[str],
        task_category_id: Optional[str],
        task_status: Optional[str],
        from_date: Optional[date],
        to_date: Optional[date],
        order: str,
        page: int,
        page_size: Optional[int],
    ) -> Dict:
        size = clamp_page_size(page_size)

        query = self.db.query(Task).filter(*base_filters)
        if entity_id:
            query = query.filter(Task.entity_id == entity_id)
        if task_category_id:
            query = query.filter(Task.category_id == task_category_id)
        if task_status:
            query = query.filter(Task.status == task_status)
        if from_date:
            query = query.filter(Task.created_at >= _start_of(from_date))
        if to_date:
            query = query.filter(Task.created_at <= _end_of(to_date))

        total = query.count()
        ordering = Task.created_at.asc() if order == "asc" else Task.created_at.desc()
        tasks = query.order_by(ordering).offset(page_offset(page, size)).limit(size).all()

        return {
            "items": [build_reconcile_item(t) for t in tasks],
            "pagination": build_pagination(page, size, total),
        }

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    def get_unreconciled(
        self,
        entity_id: Optional[str] = None,
        task_category_id: Optional[str] = None,
        task_status: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        order: str = "desc",
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Dict:
        """Billable tasks with a client that are not on any invoice yet"""
        _validate_range(from_date, to_date)
        if entity_id:
            self._assert_entity(entity_id)

        result = self._task_tab(
            [
                Task.is_billable.is_(True),
                Task.is_deleted.is_(False),
                Task.entity_id.isnot(None),
                Task.invoice_internal_number.is_(None),
            ],
            entity_id, task_category_id, task_status, from_date, to_date, order, page, page_size,
        )
        return {"tab": "UNRECONCILED", **result}

    def get_non_billable(
        self,
        entity_id: Optional[str] = None,
        task_category_id: Optional[str] = None,
        task_status: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        order: str = "desc",
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Dict:
        _validate_range(from_date, to_date)
        result = self._task_tab(
            [
                Task.is_billable.is_(False),
                Task.is_deleted.is_(False),
                Task.task_type == "REGULAR",
                Task.entity_id.isnot(None),
            ],
            entity_id, task_category_id, task_status, from_date, to_date, order, page, page_size,
        )
        return {"tab": "NON_BILLABLE", **result}

    def _billing_rejection(self, task: Optional[Task]) -> Optional[str]:
        if task is None:
            return "NOT_FOUND"
        if task.task_type == "SYSTEM_ADHOC" or task.is_system:
            return "SYSTEM_TASK"
        if task.invoice_internal_number:
            return "ALREADY_INVOICED"
        return None

    def mark_non_billable(self, task_ids: List[str], actor: TokenUser) -> Dict:
        updated, rejected = [], []
        for task_id in task_ids:
            task = self.db.get(Task, task_id)
            reason = self._billing_rejection(task)
            if reason is None and any(c.status == "NOT_PAID" for c in active_charges(task)):
                reason = "HAS_UNPAID_CHARGES"
            if reason:
                rejected.append({"id": task_id, "reason": reason})
                continue

            task.is_billable = False
            task.updated_by = actor.id
            updated.append(task_id)

        self.db.commit()
        logger.info(f"Marked {len(updated)} task(s) non-billable, rejected {len(rejected)}")
        return {"updated": updated, "rejected": rejected}

    def restore_billable(self, task_ids: List[str], actor: TokenUser) -> Dict:
        restored, rejected = [], []
        for task_id in task_ids:
            task = self.db.get(Task, task_id)
            reason = self._billing_rejection(task)
            if reason:
                rejected.append({"id": task_id, "reason": reason})
                continue

            task.is_billable = True
            task.updated_by = actor.id
            restored.append(task_id)

        self.db.commit()
        return {"restored": restored, "rejected": rejected}

    def get_reconciled(
        self,
        entity_id: Optional[str] = None,
        invoice_status: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Dict:
        """Invoices with their tasks grouped, cancelled invoices excluded unless asked for"""
        _validate_range(from_date, to_date)
        size = clamp_page_size(page_size)

        query = self.db.query(Invoice)
        if entity_id:
            self._assert_entity(entity_id)
            query = query.filter(Invoice.entity_id == entity_id)
        if invoice_status:
            query = query.filter(Invoice.status == invoice_status)
        else:
            query = query.filter(Invoice.status != "CANCELLED")
        if from_date:
            query = query.filter(Invoice.invoice_date >= from_date)
        if to_date:
            query = query.filter(Invoice.invoice_date <= to_date)

        total = query.count()
        invoices = (
            query.order_by(Invoice.created_at.desc())
            .offset(page_offset(page, size))
            .limit(size)
            .all()
        )
        return {
            "tab": "RECONCILED",
            "invoices": [group_invoice(inv) for inv in invoices],
            "pagination": build_pagination(page, size, total),
        }

    # ------------------------------------------------------------------
    # Outstanding
    # ------------------------------------------------------------------

    def _outstanding_filters(self) -> list:
        return [
            TaskCharge.deleted_at.is_(None),
            TaskCharge.status == "NOT_PAID",
            TaskCharge.bearer == "CLIENT",
        ]

    def get_outstanding_entities(
        self,
        sort_by: Optional[str] = None,
        sort_order: str = "desc",
        page: int = 1,
        page_size: int = 20,
        entity_ids: Optional[List[str]] = None,
    ) -> Dict:
        sort_field = sort_by if sort_by in OUTSTANDING_SORT_FIELDS else "total_outstanding"

        def bucket_sum(charge_type: str):
            return func.coalesce(
                func.sum(case((TaskCharge.charge_type == charge_type, TaskCharge.amount), else_=0)), 0
            )

        columns = {
            "total_outstanding": func.coalesce(func.sum(TaskCharge.amount), 0),
            "service_fee": bucket_sum("SERVICE_FEE"),
            "government_fee": bucket_sum("GOVERNMENT_FEE"),
            "external_charge": bucket_sum("EXTERNAL_CHARGE"),
        }

        query = (
            self.db.query(
                TaskCharge.entity_id,
                *[expr.label(name) for name, expr in columns.items()],
                func.count(TaskCharge.id).label("pending_charges_count"),
            )
            .filter(*self._outstanding_filters())
            .group_by(TaskCharge.entity_id)
            .having(func.sum(TaskCharge.amount) > 0)
        )
        if entity_ids:
            query = query.filter(TaskCharge.entity_id.in_(entity_ids))

        total = query.order_by(None).count()
        order_expr = columns[sort_field]
        order_expr = order_expr.asc() if sort_order == "asc" else order_expr.desc()
        rows = query.order_by(order_expr).offset(page_offset(page, page_size)).limit(page_size).all()

        entities = {
            e.id: e
            for e in self.db.query(Entity).filter(Entity.id.in_([r.entity_id for r in rows])).all()
        } if rows else {}

        data = []
        for row in rows:
            entity = entities.get(row.entity_id)
            data.append({
                "entity": {
                    "id": entity.id,
                    "name": entity.name,
                    "email": entity.email,
                    "status": entity.status,
                } if entity else None,
                "money": {
                    "total_outstanding": _num(row.total_outstanding),
                    "pending_charges_count": int(row.pending_charges_count),
                    "service_fee": _num(row.service_fee),
                    "government_fee": _num(row.government_fee),
                    "external_charge": _num(row.external_charge),
                },
            })

        return {"list": {"data": data, "pagination": build_pagination(page, page_size, total)}}

    def get_global_stats(self) -> Dict:
        def amount_when(condition):
            return func.coalesce(func.sum(case((condition, TaskCharge.amount), else_=0)), 0)

        row = (
            self.db.query(
                func.coalesce(func.sum(TaskCharge.amount), 0).label("total_recoverable"),
                amount_when(Task.invoice_internal_number.is_(None)).label("uninvoiced"),
                amount_when(Invoice.status == "DRAFT").label("draft_invoices"),
                amount_when(Invoice.status == "ISSUED").label("issued_pending"),
            )
            .select_from(TaskCharge)
            .outerjoin(Task, Task.id == TaskCharge.task_id)
            .outerjoin(Invoice, Invoice.id == Task.invoice_id)
            .filter(*self._outstanding_filters())
            .one()
        )
        return {
            "total_recoverable": _num(row.total_recoverable),
            "uninvoiced": _num(row.uninvoiced),
            "draft_invoices": _num(row.draft_invoices),
            "issued_pending": _num(row.issued_pending),
        }

    def get_entity_breakdown(self, entity_id: str) -> Dict:
        """Unpaid client charges of one entity split by invoicing stage"""
        self._assert_entity(entity_id)

        rows = (
            self.db.query(TaskCharge.amount, Task.invoice_internal_number, Invoice.status, Invoice.id)
            .outerjoin(Task, Task.id == TaskCharge.task_id)
            .outerjoin(Invoice, Invoice.id == Task.invoice_id)
            .filter(TaskCharge.entity_id == entity_id, *self._outstanding_filters())
            .all()
        )

        breakdown = {
            "unreconciled": {"amount": Decimal("0"), "count": 0},
            "draft_invoices": {"amount": Decimal("0"), "count": 0, "invoice_count": 0},
            "issued_invoices": {"amount": Decimal("0"), "count": 0, "invoice_count": 0},
            "total": {"amount": Decimal("0"), "count": 0},
        }
        invoices = {"DRAFT": set(), "ISSUED": set()}

        for amount, invoice_number, invoice_status, invoice_id in rows:
            amount = Decimal(str(amount))
            breakdown["total"]["amount"] += amount
            breakdown["total"]["count"] += 1

            if not invoice_number:
                bucket = breakdown["unreconciled"]
            elif invoice_status == "DRAFT":
                bucket = breakdown["draft_invoices"]
                invoices["DRAFT"].add(invoice_id)
            elif invoice_status == "ISSUED":
                bucket = breakdown["issued_invoices"]
                invoices["ISSUED"].add(invoice_id)
            else:
                continue
            bucket["amount"] += amount
            bucket["count"] += 1

        breakdown["draft_invoices"]["invoice_count"] = len(invoices["DRAFT"])
        breakdown["issued_invoices"]["invoice_count"] = len(invoices["ISSUED"])
        for section in breakdown.values():
            section["amount"] = _num(section["amount"])

        return {"entity_id": entity_id, "breakdown": breakdown}

    def get_entity_stats(self, entity_id: str) -> Dict:
        self._assert_entity(entity_id)
        return {"entity_id": entity_id, **serialize_stats(self.db.get(ReconcileStatsCurrent, entity_id))}


def group_invoice(invoice: Invoice) -> Dict:
    tasks = sorted(invoice.tasks, key=lambda t: (t.created_at or datetime.min, t.id))
    return {
        "invoice": {
            "id": invoice.id,
            "entity_id": invoice.entity_id,
            "internal_number": invoice.internal_number,
            "external_number": invoice.external_number,
            "status": invoice.status,
            "invoice_date": invoice.invoice_date,
            "issued_at": invoice.issued_at,
            "paid_at": invoice.paid_at,
            "notes": invoice.notes,
            "company_profile_id": invoice.company_profile_id,
            "created_at": invoice.created_at,
        },
        "groups": [
            {
                "type": item_type(task),
                "task_id": task.id,
                "task_title": task.title,
                "charges": [serialize_charge(c) for c in active_charges(task)],
            }
            for task in tasks
        ],
    }
