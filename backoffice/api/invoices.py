"""
Invoice API endpoints
- Create or extend draft invoices from billable tasks
- Status lifecycle (DRAFT -> ISSUED -> PAID, CANCELLED) and bulk changes
- Company profiles printed on invoices
- Spreadsheet export
"""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission, require_super_admin
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.domain.billing import (
    CompanyProfileCreate,
    CompanyProfileUpdate,
    InvoiceBulkStatusUpdate,
    InvoiceCreate,
    InvoiceInfoUpdate,
    InvoiceStatus,
    InvoiceStatusUpdate,
    UnlinkTasksRequest,
)
from backoffice.services.export_service import XLSX_MEDIA_TYPE, ExportService
from backoffice.services.invoice_service import CompanyProfileService, InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Invoices"])


# ----------------------------------------------------------------------
# Company profiles
# ----------------------------------------------------------------------

@router.get("/company-profiles")
async def list_company_profiles(
    active_only: bool = Query(False),
    user: TokenUser = Depends(require_permission("firm.access", "tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    return success_response(CompanyProfileService(db).list_profiles(active_only=active_only))


@router.get("/company-profiles/{profile_id}")
async def get_company_profile(
    profile_id: str,
    user: TokenUser = Depends(require_permission("firm.access", "tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    return success_response(CompanyProfileService(db).get_profile(profile_id))


@router.post("/company-profiles", status_code=201)
async def create_company_profile(
    body: CompanyProfileCreate,
    user: TokenUser = Depends(require_permission("firm.access")),
    db: Session = Depends(get_db),
):
    return success_response(CompanyProfileService(db).create_profile(body), "Company profile created")


@router.put("/company-profiles/{profile_id}")
async def update_company_profile(
    profile_id: str,
    body: CompanyProfileUpdate,
    user: TokenUser = Depends(require_permission("firm.access")),
    db: Session = Depends(get_db),
):
    return success_response(CompanyProfileService(db).update_profile(profile_id, body), "Company profile updated")


@router.post("/company-profiles/{profile_id}/activate")
async def activate_company_profile(
    profile_id: str,
    user: TokenUser = Depends(require_permission("firm.access")),
    db: Session = Depends(get_db),
):
    return success_response(CompanyProfileService(db).set_active(profile_id, True), "Company profile activated")


@router.post("/company-profiles/{profile_id}/deactivate")
async def deactivate_company_profile(
    profile_id: str,
    user: TokenUser = Depends(require_permission("firm.access")),
    db: Session = Depends(get_db),
):
    return success_response(CompanyProfileService(db).set_active(profile_id, False), "Company profile deactivated")


# ----------------------------------------------------------------------
# Invoices
# ----------------------------------------------------------------------

@router.get("/invoices")
async def list_invoices(
    entity_id: Optional[str] = Query(None),
    status: Optional[InvoiceStatus] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    search: Optional[str] = Query(None, description="Internal or external invoice number"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    result = InvoiceService(db).list_invoices(
        entity_id=entity_id,
        status=status.value if status else None,
        from_date=from_date,
        to_date=to_date,
        search=search,
        page=page,
        page_size=page_size,
    )
    return success_response(result["items"], meta={"pagination": result["pagination"]})


@router.post("/invoices", status_code=201)
async def create_or_append_invoice(
    body: InvoiceCreate,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    """
    Attach tasks to an invoice.

    With `invoice_id` the tasks are appended to that DRAFT invoice; without
    it a new DRAFT invoice is created using the active company profile.
    Every rule violation across all tasks is reported in one error.
    """
    result = InvoiceService(db).create_or_append(body, user)
    return success_response(result, "Tasks invoiced")


@router.patch("/invoices/bulk/status")
async def bulk_update_invoice_status(
    body: InvoiceBulkStatusUpdate,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    result = InvoiceService(db).bulk_update_status(body, user)
    return success_response(result, "Invoice statuses updated")


@router.get("/invoices/{invoice_id}")
async def get_invoice(
    invoice_id: str,
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    """Accepts the invoice id or its internal number"""
    return success_response(InvoiceService(db).get_invoice(invoice_id))


@router.put("/invoices/{invoice_id}")
async def update_invoice_info(
    invoice_id: str,
    body: InvoiceInfoUpdate,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    result = InvoiceService(db).update_invoice_info(invoice_id, body, user)
    return success_response(result, "Invoice updated")


@router.patch("/invoices/{invoice_id}/status")
async def update_invoice_status(
    invoice_id: str,
    body: InvoiceStatusUpdate,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    result = InvoiceService(db).update_status(invoice_id, body, user)
    return success_response(result, "Invoice status updated")


@router.post("/invoices/{invoice_id}/force-draft")
async def force_invoice_to_draft(
    invoice_id: str,
    user: TokenUser = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    result = InvoiceService(db).force_to_draft(invoice_id, user)
    return success_response(result, "Invoice reverted to draft")


@router.post("/invoices/{invoice_id}/unlink-tasks")
async def unlink_invoice_tasks(
    invoice_id: str,
    body: UnlinkTasksRequest,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    result = InvoiceService(db).unlink_tasks(invoice_id, body.task_ids, user)
    return success_response(result, "Tasks removed from invoice")


@router.get("/invoices/{invoice_id}/export")
async def export_invoice(
    invoice_id: str,
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    filename, output = ExportService(db).export_invoice_xlsx(invoice_id)
    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
