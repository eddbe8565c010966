"""
Reconciliation API endpoints
- Unreconciled, non-billable and reconciled tabs
- Outstanding balances per entity and its spreadsheet export
- Firm-wide billing stats
"""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.database import get_db, utcnow
from backoffice.core.responses import success_response
from backoffice.domain.billing import InvoiceStatus
from backoffice.domain.task import TaskIdsRequest, TaskStatus
from backoffice.services.export_service import XLSX_MEDIA_TYPE, ExportService
from backoffice.services.reconcile_service import ReconcileService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/reconcile", tags=["Reconcile"])


@router.get("/unreconciled")
async def get_unreconciled(
    entity_id: Optional[str] = Query(None),
    task_category_id: Optional[str] = Query(None),
    task_status: Optional[TaskStatus] = Query(None),
    from_date: Optional[date] = Query(None, description="Task created on or after"),
    to_date: Optional[date] = Query(None, description="Task created on or before"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    """Billable tasks not yet on any invoice"""
    result = ReconcileService(db).get_unreconciled(
        entity_id=entity_id,
        task_category_id=task_category_id,
        task_status=task_status.value if task_status else None,
        from_date=from_date,
        to_date=to_date,
        order=order,
        page=page,
        page_size=page_size,
    )
    return success_response(result)


@router.get("/non-billable")
async def get_non_billable(
    entity_id: Optional[str] = Query(None),
    task_category_id: Optional[str] = Query(None),
    task_status: Optional[TaskStatus] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    result = ReconcileService(db).get_non_billable(
        entity_id=entity_id,
        task_category_id=task_category_id,
        task_status=task_status.value if task_status else None,
        from_date=from_date,
        to_date=to_date,
        order=order,
        page=page,
        page_size=page_size,
    )
    return success_response(result)


@router.post("/non-billable")
async def mark_non_billable(
    body: TaskIdsRequest,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    result = ReconcileService(db).mark_non_billable(body.task_ids, user)
    return success_response(result, "Tasks marked non-billable")


@router.post("/restore-billable")
async def restore_billable(
    body: TaskIdsRequest,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    result = ReconcileService(db).restore_billable(body.task_ids, user)
    return success_response(result, "Tasks restored to billable")


@router.get("/reconciled")
async def get_reconciled(
    entity_id: Optional[str] = Query(None),
    invoice_status: Optional[InvoiceStatus] = Query(None),
    from_date: Optional[date] = Query(None, description="Invoice date on or after"),
    to_date: Optional[date] = Query(None, description="Invoice date on or before"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    result = ReconcileService(db).get_reconciled(
        entity_id=entity_id,
        invoice_status=invoice_status.value if invoice_status else None,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )
    return success_response(result)


# ----------------------------------------------------------------------
# Outstanding
# ----------------------------------------------------------------------

@router.get("/outstanding")
async def get_outstanding_entities(
    sort_by: str = Query("total_outstanding", description="total_outstanding, service_fee, government_fee or external_charge"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(require_permission("payments.access")),
    db: Session = Depends(get_db),
):
    """Unpaid client charges summed per entity, largest balances first by default"""
    result = ReconcileService(db).get_outstanding_entities(
        sort_by=sort_by, sort_order=sort_order, page=page, page_size=page_size
    )
    return success_response(result)


@router.get("/outstanding/export")
async def export_outstanding(
    user: TokenUser = Depends(require_permission("payments.access")),
    db: Session = Depends(get_db),
):
    output = ExportService(db).export_outstanding_xlsx()
    filename = f"outstanding_{utcnow().strftime('%Y%m%d')}.xlsx"
    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/stats")
async def get_global_stats(
    user: TokenUser = Depends(require_permission("payments.access", "tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    return success_response(ReconcileService(db).get_global_stats())
