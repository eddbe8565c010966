"""
Charge API endpoints
- Charges on a task (single and bulk edits)
- Soft delete, restore and hard delete
- Ad-hoc charges billed outside any task

Charges cannot change once the task's invoice is ISSUED or PAID.
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission, require_super_admin
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.domain.billing import (
    BulkChargeStatusUpdate,
    BulkTaskChargesUpdate,
    ChargeCreate,
    ChargeUpdate,
)
from backoffice.services.adhoc_charge_service import AdhocChargeService
from backoffice.services.charge_service import ChargeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Charges"])


@router.get("/tasks/{task_id}/charges")
async def list_charges(
    task_id: str,
    include_deleted: bool = Query(False),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    return success_response(ChargeService(db).list_charges(task_id, include_deleted=include_deleted))


@router.post("/tasks/{task_id}/charges", status_code=201)
async def create_charge(
    task_id: str,
    body: ChargeCreate,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    """Add a charge; the task becomes billable"""
    return success_response(ChargeService(db).create_charge(task_id, body, user), "Charge created")


@router.patch("/tasks/{task_id}/charges")
async def bulk_update_task_charges(
    task_id: str,
    body: BulkTaskChargesUpdate,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    result = ChargeService(db).bulk_update_task_charges(task_id, body.updates, user)
    return success_response(result, "Charges updated")


@router.patch("/charges/bulk/status")
async def bulk_update_charge_status(
    body: BulkChargeStatusUpdate,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    result = ChargeService(db).bulk_update_charge_status(body.charge_ids, body.status.value, user)
    return success_response(result, "Charge statuses updated")


@router.put("/charges/{charge_id}")
async def update_charge(
    charge_id: str,
    body: ChargeUpdate,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    return success_response(ChargeService(db).update_charge(charge_id, body, user), "Charge updated")


@router.delete("/charges/{charge_id}")
async def soft_delete_charge(
    charge_id: str,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    return success_response(ChargeService(db).soft_delete_charge(charge_id, user), "Charge deleted")


@router.post("/charges/{charge_id}/restore")
async def restore_charge(
    charge_id: str,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    return success_response(ChargeService(db).restore_charge(charge_id, user), "Charge restored")


@router.delete("/charges/{charge_id}/hard")
async def hard_delete_charge(
    charge_id: str,
    user: TokenUser = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    """Remove a charge permanently (SUPER_ADMIN only)"""
    return success_response(ChargeService(db).hard_delete_charge(charge_id, user), "Charge permanently deleted")


# ----------------------------------------------------------------------
# Ad-hoc charges
# ----------------------------------------------------------------------

@router.put("/adhoc-charges/{charge_id}")
async def update_adhoc_charge(
    charge_id: str,
    body: ChargeUpdate,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    result = AdhocChargeService(db).update_adhoc_charge(charge_id, body, user)
    return success_response(result, "Ad-hoc charge updated")


@router.delete("/adhoc-charges/{charge_id}")
async def delete_adhoc_charge(
    charge_id: str,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    """Remove the charge together with its system task"""
    result = AdhocChargeService(db).delete_adhoc_charge(charge_id, user)
    return success_response(result, "Ad-hoc charge deleted")
