"""
Charge Service
Money attached to tasks

Every mutation keeps reconcile_stats_current in step by applying the
contribution delta of the charge, and leaves an activity line on the task.
Charges of a task whose invoice is ISSUED or PAID are locked.

Author: Back Office Team
Date: 2025-11-08
"""
import logging
from typing import Dict, List

from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser
from backoffice.core.database import utcnow
from backoffice.core.errors import ForbiddenError, NotFoundError, ValidationError
from backoffice.domain.billing import BulkChargeItem, ChargeCreate, ChargeUpdate
from backoffice.models import Task, TaskCharge
from backoffice.services.activity_service import log_changes
from backoffice.services.reconcile_service import (
    apply_charge_create,
    apply_charge_delete,
    apply_charge_restore,
    apply_charge_update,
    serialize_charge,
    snapshot_charge,
)

logger = logging.getLogger(__name__)

LOCKED_INVOICE_STATUSES = ("ISSUED", "PAID")
TRACKED_FIELDS = ("title", "amount", "charge_type", "bearer", "status", "remark")


def _plain(value):
    return value.value if hasattr(value, "value") else value


def charge_fields(charge: TaskCharge) -> Dict:
    return {
        "title": charge.title,
        "amount": str(charge.amount),
        "charge_type": charge.charge_type,
        "bearer": charge.bearer,
        "status": charge.status,
        "remark": charge.remark,
    }


def ensure_charges_editable(task: Task) -> None:
    """Raise ForbiddenError when the task sits on an ISSUED or PAID invoice"""
    invoice = task.invoice
    if task.invoice_internal_number and invoice and invoice.status in LOCKED_INVOICE_STATUSES:
        raise ForbiddenError("Charges are locked because invoice is issued or paid")


class ChargeService:

    def __init__(self, db: Session):
        self.db = db

    def _get_task(self, task_id: str) -> Task:
        task = self.db.get(Task, task_id)
        if not task:
            raise NotFoundError("Task not found")
        return task

    def _get_charge(self, charge_id: str) -> TaskCharge:
        charge = self.db.get(TaskCharge, charge_id)
        if not charge:
            raise NotFoundError("Charge not found")
        return charge

    def _charges_for(self, task_id: str, deleted: bool = False) -> List[Dict]:
        query = self.db.query(TaskCharge).filter(TaskCharge.task_id == task_id)
        if deleted:
            query = query.filter(TaskCharge.deleted_at.isnot(None)).order_by(TaskCharge.deleted_at.desc())
        else:
            query = query.filter(TaskCharge.deleted_at.is_(None)).order_by(TaskCharge.created_at)
        return [serialize_charge(c) for c in query.all()]

    def _result(self, task_id: str, include_deleted: bool = False) -> Dict:
        result = {"task_id": task_id, "charges": self._charges_for(task_id)}
        if include_deleted:
            result["deleted_charges"] = self._charges_for(task_id, deleted=True)
        return result

    def _apply_fields(self, charge: TaskCharge, changes: Dict, actor: TokenUser) -> None:
        for field, value in changes.items():
            if value is None and field != "remark":
                continue
            setattr(charge, field, _plain(value))
        if changes.get("status") == "PAID":
            charge.paid_via_invoice_id = None
        charge.updated_by = actor.id

    def _log_update(self, task_id: str, actor: TokenUser, before: Dict, charge: TaskCharge) -> None:
        after = charge_fields(charge)
        changed = [f for f in TRACKED_FIELDS if before[f] != after[f]]
        if not changed:
            return
        from_ = {f: before[f] for f in changed}
        to = {f: after[f] for f in changed}
        if "title" not in changed:
            from_["title"] = before["title"]
            to["title"] = after["title"]
        log_changes(self.db, task_id, actor.id, "TASK_UPDATED", [
            {"action": "CHARGE_UPDATED", "from": from_, "to": to},
        ])

    # ------------------------------------------------------------------
    # Single charge operations
    # ------------------------------------------------------------------

    def list_charges(self, task_id: str, include_deleted: bool = False) -> Dict:
        self._get_task(task_id)
        return self._result(task_id, include_deleted)

    def create_charge(self, task_id: str, payload: ChargeCreate, actor: TokenUser) -> Dict:
        task = self._get_task(task_id)
        ensure_charges_editable(task)
        if not task.entity_id:
            raise NotFoundError("Client Not Found Linked to this task")

        data = {k: _plain(v) for k, v in payload.model_dump().items()}
        charge = TaskCharge(
            task_id=task.id,
            entity_id=task.entity_id,
            created_by=actor.id,
            updated_by=actor.id,
            **data,
        )
        self.db.add(charge)
        if not task.is_billable:
            task.is_billable = True
        self.db.flush()

        apply_charge_create(self.db, task.entity_id, charge)
        log_changes(self.db, task.id, actor.id, "TASK_UPDATED", [
            {"action": "CHARGE_CREATED", "from": None, "to": charge_fields(charge)},
        ])
        self.db.commit()

        logger.info(f"Charge {charge.id} ({charge.charge_type} {charge.amount}) added to task {task.id}")
        return self._result(task.id)

    def update_charge(self, charge_id: str, payload: ChargeUpdate, actor: TokenUser) -> Dict:
        charge = self._get_charge(charge_id)
        ensure_charges_editable(charge.task)
        if charge.deleted_at is not None:
            raise ValidationError("Cannot update a deleted charge")

        before_state = snapshot_charge(charge)
        before = charge_fields(charge)
        self._apply_fields(charge, payload.model_dump(exclude_unset=True), actor)
        self.db.flush()

        apply_charge_update(self.db, charge.entity_id, before_state, charge)
        self._log_update(charge.task_id, actor, before, charge)
        self.db.commit()
        return self._result(charge.task_id)

    def soft_delete_charge(self, charge_id: str, actor: TokenUser) -> Dict:
        charge = self._get_charge(charge_id)
        ensure_charges_editable(charge.task)
        if charge.deleted_at is not None:
            raise ValidationError("Charge is already deleted")

        apply_charge_delete(self.db, charge.entity_id, charge)
        charge.deleted_at = utcnow()
        charge.deleted_by = actor.id
        log_changes(self.db, charge.task_id, actor.id, "TASK_UPDATED", [
            {"action": "CHARGE_DELETED", "from": charge_fields(charge), "to": None},
        ])
        self.db.commit()
        return self._result(charge.task_id)

    def restore_charge(self, charge_id: str, actor: TokenUser) -> Dict:
        charge = self._get_charge(charge_id)
        ensure_charges_editable(charge.task)
        if charge.deleted_at is None:
            raise ValidationError("Charge is not deleted")

        charge.deleted_at = None
        charge.deleted_by = None
        charge.updated_by = actor.id
        apply_charge_restore(self.db, charge.entity_id, charge)
        log_changes(self.db, charge.task_id, actor.id, "TASK_UPDATED", [
            {"action": "CHARGE_RESTORED", "from": None, "to": charge_fields(charge)},
        ])
        self.db.commit()
        return self._result(charge.task_id, include_deleted=True)

    def hard_delete_charge(self, charge_id: str, actor: TokenUser) -> Dict:
        if not actor.is_super_admin:
            raise ForbiddenError("Only super admins can permanently delete charges")

        charge = self._get_charge(charge_id)
        ensure_charges_editable(charge.task)
        task_id = charge.task_id

        # a soft deleted charge already contributes nothing
        apply_charge_delete(self.db, charge.entity_id, charge)
        log_changes(self.db, task_id, actor.id, "TASK_UPDATED", [
            {"action": "CHARGE_HARD_DELETED", "from": charge_fields(charge), "to": None},
        ])
        self.db.delete(charge)
        self.db.commit()

        logger.warning(f"Charge {charge_id} permanently deleted by {actor.id}")
        return self._result(task_id, include_deleted=True)

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def bulk_update_task_charges(self, task_id: str, items: List[BulkChargeItem], actor: TokenUser) -> Dict:
        """Apply per-charge field updates to charges of one task in a single transaction"""
        task = self._get_task(task_id)
        ensure_charges_editable(task)

        ids = [item.id for item in items]
        charges = {
            c.id: c
            for c in self.db.query(TaskCharge)
            .filter(TaskCharge.id.in_(ids), TaskCharge.task_id == task_id)
            .all()
        }
        if len(charges) != len(set(ids)):
            raise NotFoundError("Some charges not found for this task")

        for item in items:
            charge = charges[item.id]
            before_state = snapshot_charge(charge)
            before = charge_fields(charge)
            self._apply_fields(charge, item.fields.model_dump(exclude_unset=True), actor)
            apply_charge_update(self.db, charge.entity_id, before_state, charge)
            self._log_update(task_id, actor, before, charge)
        self.db.commit()

        return {
            "operation": "BULK_FIELD_UPDATE",
            "updated_count": len(items),
            **self._result(task_id),
        }

    def bulk_update_charge_status(self, charge_ids: List[str], status: str, actor: TokenUser) -> Dict:
        """
        Move many charges to NOT_PAID, PAID or WRITTEN_OFF.

        Deleted charges, charges already in the target status and charges on
        a locked invoice are skipped and reported.
        """
        status = _plain(status)
        charges = self.db.query(TaskCharge).filter(TaskCharge.id.in_(charge_ids)).all()
        found = {c.id for c in charges}

        updated: List[str] = []
        skipped: List[Dict] = [
            {"id": cid, "reason": "NOT_FOUND"} for cid in dict.fromkeys(charge_ids) if cid not in found
        ]
        touched_tasks: Dict[str, None] = {}

        for charge in charges:
            if charge.deleted_at is not None:
                skipped.append({"id": charge.id, "reason": "DELETED"})
                continue
            if charge.status == status:
                skipped.append({"id": charge.id, "reason": "UNCHANGED"})
                continue
            try:
                ensure_charges_editable(charge.task)
            except ForbiddenError:
                skipped.append({"id": charge.id, "reason": "LOCKED"})
                continue

            before_state = snapshot_charge(charge)
            before = charge_fields(charge)
            self._apply_fields(charge, {"status": status}, actor)
            apply_charge_update(self.db, charge.entity_id, before_state, charge)
            self._log_update(charge.task_id, actor, before, charge)
            updated.append(charge.id)
            touched_tasks[charge.task_id] = None

        self.db.commit()
        logger.info(f"Bulk charge status -> {status}: {len(updated)} updated, {len(skipped)} skipped")
        return {
            "operation": "TASK_BULK_STATUS_UPDATE",
            "new_status": status,
            "updated": len(updated),
            "updated_charge_ids": updated,
            "skipped": skipped,
            "charges_by_task": {task_id: self._charges_for(task_id) for task_id in touched_tasks},
        }

