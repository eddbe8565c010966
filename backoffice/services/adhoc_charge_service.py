"""
Ad-hoc Charge Service

Charges billed to a client without real work behind them (courier, stamp
paper, ...). Each one rides on its own system task of type SYSTEM_ADHOC so
that invoicing and reconcile treat it like any other billable task.

Author: Back Office Team
Date: 2025-11-08
"""
import logging
from typing import Dict

from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser
from backoffice.core.errors import ForbiddenError, NotFoundError
from backoffice.domain.billing import ChargeCreate, ChargeUpdate
from backoffice.models import Entity, Task, TaskCharge
from backoffice.services.charge_service import ensure_charges_editable
from backoffice.services.reconcile_service import (
    apply_charge_create,
    apply_charge_delete,
    apply_charge_update,
    build_reconcile_item,
    snapshot_charge,
)

logger = logging.getLogger(__name__)

SYSTEM_ADHOC = "SYSTEM_ADHOC"


def _plain(value):
    return value.value if hasattr(value, "value") else value


class AdhocChargeService:

    def __init__(self, db: Session):
        self.db = db

    def _get_adhoc_charge(self, charge_id: str) -> TaskCharge:
        charge = self.db.get(TaskCharge, charge_id)
        if not charge:
            raise NotFoundError("Charge not found")
        task = charge.task
        if not task or task.task_type != SYSTEM_ADHOC or not task.is_system:
            raise ForbiddenError("Not an ad-hoc charge")
        ensure_charges_editable(task)
        return charge

    def create_adhoc_charge(self, entity_id: str, payload: ChargeCreate, actor: TokenUser) -> Dict:
        entity = self.db.get(Entity, entity_id)
        if not entity or entity.deleted_at is not None:
            raise NotFoundError("Entity not found")

        task = Task(
            entity_id=entity.id,
            task_type=SYSTEM_ADHOC,
            is_system=True,
            title=f"Ad-hoc Charge – {entity.name}",
            description="System-generated task for ad-hoc charge",
            status="COMPLETED",
            priority="LOW",
            is_billable=True,
            created_by=actor.id,
            updated_by=actor.id,
        )
        self.db.add(task)
        self.db.flush()

        data = {k: _plain(v) for k, v in payload.model_dump().items()}
        charge = TaskCharge(
            task_id=task.id,
            entity_id=entity.id,
            created_by=actor.id,
            updated_by=actor.id,
            **data,
        )
        self.db.add(charge)
        self.db.flush()

        apply_charge_create(self.db, entity.id, charge)
        self.db.commit()
        self.db.refresh(task)

        logger.info(f"Ad-hoc charge {charge.id} ({charge.amount}) created for entity {entity.id}")
        return {"item": build_reconcile_item(task)}

    def update_adhoc_charge(self, charge_id: str, payload: ChargeUpdate, actor: TokenUser) -> Dict:
        charge = self._get_adhoc_charge(charge_id)
        task = charge.task
        before = snapshot_charge(charge)

        changes = payload.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if value is None and field != "remark":
                continue
            setattr(charge, field, _plain(value))
        if changes.get("status") == "PAID":
            charge.paid_via_invoice_id = None
        charge.updated_by = actor.id
        task.updated_by = actor.id

        apply_charge_update(self.db, charge.entity_id, before, charge)
        self.db.commit()
        self.db.refresh(task)
        return {"item": build_reconcile_item(task)}

    def delete_adhoc_charge(self, charge_id: str, actor: TokenUser) -> Dict:
        """Remove the charge and its carrier task for good"""
        charge = self._get_adhoc_charge(charge_id)
        task = charge.task
        entity_id = charge.entity_id
        task_id = task.id

        apply_charge_delete(self.db, entity_id, charge)
        self.db.delete(task)
        self.db.commit()

        logger.info(f"Ad-hoc charge {charge_id} and task {task_id} deleted by {actor.id}")
        return {"entity_id": entity_id, "task_id": task_id, "deleted_charge_id": charge_id}
