"""
Invoice Service
Grouping billable tasks into invoices and moving invoices through their lifecycle

Status machine:

    DRAFT  -> ISSUED | CANCELLED
    ISSUED -> PAID | CANCELLED
    PAID, CANCELLED are final (a SUPER_ADMIN may force ISSUED/PAID back to DRAFT)

Author: Back Office Team
Date: 2025-11-09
"""
import logging
import secrets
import string
import time
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser
from backoffice.core.database import utcnow
from backoffice.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from backoffice.core.responses import build_pagination, page_offset
from backoffice.domain.billing import (
    CompanyProfileCreate,
    CompanyProfileUpdate,
    InvoiceBulkStatusUpdate,
    InvoiceCreate,
    InvoiceInfoUpdate,
    InvoiceStatusUpdate,
)
from backoffice.models import CompanyProfile, Entity, Invoice, Task, TaskCharge
from backoffice.services.activity_service import log_activity
from backoffice.services.reconcile_service import (
    active_charges,
    apply_charge_update,
    group_invoice,
    snapshot_charge,
)

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    "DRAFT": ("ISSUED", "CANCELLED"),
    "ISSUED": ("PAID", "CANCELLED"),
    "PAID": (),
    "CANCELLED": (),
}
IMMUTABLE_STATUSES = ("PAID", "CANCELLED")

_ALNUM = string.ascii_uppercase + string.digits


def generate_internal_number() -> str:
    suffix = "".join(secrets.choice(_ALNUM) for _ in range(4))
    return f"INV-{int(time.time() * 1000)}-{suffix}"


def _plain(value):
    return value.value if hasattr(value, "value") else value


def invoice_totals(invoice: Invoice) -> Dict:
    total = Decimal("0")
    outstanding = Decimal("0")
    count = 0
    for task in invoice.tasks:
        for charge in active_charges(task):
            amount = Decimal(str(charge.amount))
            total += amount
            count += 1
            if charge.status == "NOT_PAID" and charge.bearer == "CLIENT":
                outstanding += amount
    return {"total_amount": total, "client_outstanding": outstanding, "charge_count": count}


def serialize_company_profile(profile: CompanyProfile) -> Dict:
    return {
        "id": profile.id,
        "name": profile.name,
        "legal_name": profile.legal_name,
        "gstin": profile.gstin,
        "pan": profile.pan,
        "address": profile.address,
        "email": profile.email,
        "phone": profile.phone,
        "bank_name": profile.bank_name,
        "bank_account_number": profile.bank_account_number,
        "ifsc": profile.ifsc,
        "is_active": profile.is_active,
        "created_at": profile.created_at,
        "updated_at": profile.updated_at,
    }


def serialize_invoice_detail(invoice: Invoice) -> Dict:
    data = group_invoice(invoice)
    data["invoice"]["cancelled_at"] = invoice.cancelled_at
    data["invoice"]["reverted_from_status"] = invoice.reverted_from_status
    data["entity"] = {
        "id": invoice.entity.id,
        "name": invoice.entity.name,
        "email": invoice.entity.email,
        "pan": invoice.entity.pan,
    } if invoice.entity else None
    data["company_profile"] = (
        serialize_company_profile(invoice.company_profile) if invoice.company_profile else None
    )
    data["totals"] = invoice_totals(invoice)
    return data


def transition_error(current: str, target: str) -> Optional[str]:
    if target not in ALLOWED_TRANSITIONS.get(current, ()):
        return f"Invalid status transition: {current} → {target}"
    return None


class InvoiceService:

    def __init__(self, db: Session):
        self.db = db

    def get_or_404(self, invoice_id: str) -> Invoice:
        invoice = self.db.get(Invoice, invoice_id)
        if not invoice:
            invoice = self.db.query(Invoice).filter(Invoice.internal_number == invoice_id).first()
        if not invoice:
            raise NotFoundError("Invoice not found")
        return invoice

    def _ensure_draft(self, invoice: Invoice) -> None:
        if invoice.status != "DRAFT":
            raise ForbiddenError("Invoice is not editable")

    def _active_profile(self, profile_id: str) -> CompanyProfile:
        profile = self.db.get(CompanyProfile, profile_id)
        if not profile:
            raise ValidationError("Company profile not found")
        if not profile.is_active:
            raise ValidationError("Company profile is inactive")
        return profile

    # ------------------------------------------------------------------
    # Create / append
    # ------------------------------------------------------------------

    def create_or_append(self, payload: InvoiceCreate, actor: TokenUser) -> Dict:
        """
        Attach billable tasks to a DRAFT invoice, creating the invoice when
        no invoice_id is given.

        Every task problem is collected and reported in one ValidationError.
        """
        task_ids = list(dict.fromkeys(payload.task_ids))

        if not self.db.get(Entity, payload.entity_id):
            raise NotFoundError("Entity not found")

        if payload.invoice_id:
            invoice = self.db.get(Invoice, payload.invoice_id)
            if not invoice:
                raise ValidationError("Invoice not found")
            self._ensure_draft(invoice)
            if invoice.entity_id != payload.entity_id:
                raise ValidationError("Entity mismatch with existing invoice")
        else:
            if not payload.company_profile_id:
                raise ValidationError("company_profile_id is required to create invoice")
            profile = self._active_profile(payload.company_profile_id)
            invoice = Invoice(
                entity_id=payload.entity_id,
                internal_number=generate_internal_number(),
                status="DRAFT",
                company_profile_id=profile.id,
                invoice_date=utcnow().date(),
                notes=payload.notes,
                created_by=actor.id,
                updated_by=actor.id,
            )
            self.db.add(invoice)
            self.db.flush()

        tasks = self.db.query(Task).filter(Task.id.in_(task_ids)).all()
        if len(tasks) != len(task_ids):
            found = {t.id for t in tasks}
            self.db.rollback()
            raise ValidationError(
                "Some tasks not found",
                details={"missing_task_ids": [tid for tid in task_ids if tid not in found]},
            )

        errors: List[str] = []
        for task in tasks:
            if task.entity_id != payload.entity_id:
                errors.append(f"Task {task.id}: belongs to different entity")
            elif task.is_deleted:
                errors.append(f"Task {task.id}: is deleted")
            elif task.invoice_internal_number:
                errors.append(f"Task {task.id}: already invoiced")
            elif not task.is_billable:
                errors.append(f"Task {task.id}: not billable")
            elif not active_charges(task):
                errors.append(f"Task {task.id}: has no charges")
            elif not (task.task_type == "SYSTEM_ADHOC" and task.is_system) and task.status != "COMPLETED":
                errors.append(f"Task {task.id}: must be COMPLETED (current: {task.status})")

        if errors:
            self.db.rollback()
            raise ValidationError("Cannot invoice tasks", details={"errors": errors})

        attached = (
            self.db.query(Task)
            .filter(Task.id.in_(task_ids), Task.invoice_internal_number.is_(None))
            .update(
                {Task.invoice_id: invoice.id, Task.invoice_internal_number: invoice.internal_number},
                synchronize_session=False,
            )
        )
        if attached != len(task_ids):
            self.db.rollback()
            raise ConflictError("Some tasks were invoiced concurrently. Please retry.")

        for task_id in task_ids:
            log_activity(
                self.db, task_id, actor.id, "TASK_INVOICED",
                f"added the task to invoice {invoice.internal_number}",
            )
        self.db.commit()
        self.db.expire_all()

        logger.info(f"Invoice {invoice.internal_number}: attached {len(task_ids)} task(s)")
        return serialize_invoice_detail(self.get_or_404(invoice.id))

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def update_invoice_info(self, invoice_id: str, payload: InvoiceInfoUpdate, actor: TokenUser) -> Dict:
        invoice = self.get_or_404(invoice_id)
        self._ensure_draft(invoice)

        changes = payload.model_dump(exclude_unset=True)
        if changes.get("company_profile_id"):
            self._active_profile(changes["company_profile_id"])

        for field, value in changes.items():
            if value is not None:
                setattr(invoice, field, value)
        invoice.updated_by = actor.id
        self.db.commit()
        self.db.refresh(invoice)
        return serialize_invoice_detail(invoice)

    def unlink_tasks(self, invoice_id: str, task_ids: List[str], actor: TokenUser) -> Dict:
        invoice = self.get_or_404(invoice_id)
        self._ensure_draft(invoice)

        tasks = (
            self.db.query(Task)
            .filter(Task.id.in_(task_ids), Task.invoice_id == invoice.id)
            .all()
        )
        for task in tasks:
            task.invoice_id = None
            task.invoice_internal_number = None
            log_activity(
                self.db, task.id, actor.id, "TASK_UNINVOICED",
                f"removed the task from invoice {invoice.internal_number}",
            )
        invoice.updated_by = actor.id
        self.db.commit()

        return {"invoice_id": invoice.id, "unlinked_task_ids": [t.id for t in tasks]}

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _unlink_all(self, invoice: Invoice) -> None:
        for task in list(invoice.tasks):
            task.invoice_id = None
            task.invoice_internal_number = None

    def _settle_charges(self, invoice: Invoice) -> int:
        """Mark unpaid client charges of the invoice's tasks PAID via this invoice"""
        settled = 0
        for task in invoice.tasks:
            for charge in active_charges(task):
                if charge.status != "NOT_PAID" or charge.bearer != "CLIENT":
                    continue
                before = snapshot_charge(charge)
                charge.status = "PAID"
                charge.paid_via_invoice_id = invoice.id
                apply_charge_update(self.db, charge.entity_id, before, charge)
                settled += 1
        return settled

    def _reopen_charges(self, invoice: Invoice) -> None:
        charges = (
            self.db.query(TaskCharge)
            .filter(TaskCharge.paid_via_invoice_id == invoice.id, TaskCharge.status == "PAID")
            .all()
        )
        for charge in charges:
            before = snapshot_charge(charge)
            charge.status = "NOT_PAID"
            charge.paid_via_invoice_id = None
            apply_charge_update(self.db, charge.entity_id, before, charge)

    def _apply_status(self, invoice: Invoice, status: str, external_number: Optional[str], actor: TokenUser) -> None:
        now = utcnow()
        if status == "ISSUED":
            invoice.external_number = external_number
            invoice.issued_at = now
        elif status == "PAID":
            invoice.paid_at = now
            settled = self._settle_charges(invoice)
            logger.info(f"Invoice {invoice.internal_number} paid; {settled} charge(s) settled")
        elif status == "CANCELLED":
            invoice.cancelled_at = now
            self._unlink_all(invoice)
        invoice.status = status
        invoice.updated_by = actor.id

    def _force_draft(self, invoice: Invoice, actor: TokenUser) -> None:
        if invoice.status == "PAID":
            self._reopen_charges(invoice)
        invoice.reverted_from_status = invoice.status
        invoice.status = "DRAFT"
        invoice.issued_at = None
        invoice.paid_at = None
        invoice.updated_by = actor.id

    def update_status(self, invoice_id: str, payload: InvoiceStatusUpdate, actor: TokenUser) -> Dict:
        status = _plain(payload.status)
        if status == "DRAFT" and payload.force_to_draft:
            return self.force_to_draft(invoice_id, actor)

        invoice = self.get_or_404(invoice_id)
        error = transition_error(invoice.status, status)
        if error:
            raise ValidationError(error)

        external_number = payload.external_number or invoice.external_number
        if status == "ISSUED" and not external_number:
            raise ValidationError("external_number required when issuing invoice")

        self._apply_status(invoice, status, external_number, actor)
        self.db.commit()

        logger.info(f"Invoice {invoice.internal_number} -> {status} by {actor.id}")
        return {"invoice_id": invoice.id, "status": invoice.status}

    def force_to_draft(self, invoice_id: str, actor: TokenUser) -> Dict:
        if not actor.is_super_admin:
            raise ForbiddenError("Only super admins can revert invoices to draft")

        invoice = self.get_or_404(invoice_id)
        if invoice.status == "DRAFT":
            return {"invoice_id": invoice.id, "status": "DRAFT"}
        if invoice.status not in ("ISSUED", "PAID"):
            raise ValidationError(f"Cannot revert invoice from status {invoice.status} to DRAFT")

        self._force_draft(invoice, actor)
        self.db.commit()

        logger.warning(f"Invoice {invoice.internal_number} forced back to DRAFT by {actor.id}")
        return {"invoice_id": invoice.id, "status": "DRAFT", "forced": True}

    def bulk_update_status(self, payload: InvoiceBulkStatusUpdate, actor: TokenUser) -> Dict:
        status = _plain(payload.status)
        success: List[str] = []
        rejected: List[Dict] = []

        for invoice_id in dict.fromkeys(payload.invoice_ids):
            invoice = self.db.get(Invoice, invoice_id)
            if not invoice:
                rejected.append({"id": invoice_id, "reason": "NOT_FOUND"})
                continue

            if status == "DRAFT" and payload.force_to_draft:
                if not actor.is_super_admin:
                    rejected.append({"id": invoice_id, "reason": "FORBIDDEN"})
                    continue
                if invoice.status not in ("ISSUED", "PAID"):
                    rejected.append({"id": invoice_id, "reason": "INVALID_CURRENT_STATUS"})
                    continue
                self._force_draft(invoice, actor)
                success.append(invoice_id)
                continue

            if invoice.status in IMMUTABLE_STATUSES:
                rejected.append({"id": invoice_id, "reason": "IMMUTABLE_STATUS"})
                continue
            if transition_error(invoice.status, status):
                rejected.append({"id": invoice_id, "reason": "INVALID_STATUS_TRANSITION"})
                continue

            external_number = payload.external_number_map.get(invoice_id)
            if status == "ISSUED" and not external_number:
                rejected.append({"id": invoice_id, "reason": "MISSING_EXTERNAL_NUMBER"})
                continue

            self._apply_status(invoice, status, external_number, actor)
            success.append(invoice_id)

        self.db.commit()
        logger.info(f"Bulk invoice status -> {status}: {len(success)} ok, {len(rejected)} rejected")
        return {"success": success, "rejected": rejected}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_invoice(self, invoice_id: str) -> Dict:
        return serialize_invoice_detail(self.get_or_404(invoice_id))

    def list_invoices(
        self,
        entity_id: Optional[str] = None,
        status: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Dict:
        if from_date and to_date and from_date > to_date:
            raise ValidationError("from_date must be <= to_date")

        query = self.db.query(Invoice)
        if entity_id:
            query = query.filter(Invoice.entity_id == entity_id)
        if status:
            query = query.filter(Invoice.status == status)
        if from_date:
            query = query.filter(Invoice.invoice_date >= from_date)
        if to_date:
            query = query.filter(Invoice.invoice_date <= to_date)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(
                Invoice.internal_number.ilike(term) | Invoice.external_number.ilike(term)
            )

        total = query.count()
        invoices = (
            query.order_by(Invoice.created_at.desc())
            .offset(page_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        items = []
        for invoice in invoices:
            item = group_invoice(invoice)["invoice"]
            item["entity_name"] = invoice.entity.name if invoice.entity else None
            item["totals"] = invoice_totals(invoice)
            items.append(item)
        return {"items": items, "pagination": build_pagination(page, page_size, total)}


class CompanyProfileService:
    """The firm's billing identities printed on invoices"""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, profile_id: str) -> CompanyProfile:
        profile = self.db.get(CompanyProfile, profile_id)
        if not profile:
            raise NotFoundError("Company profile not found")
        return profile

    def create_profile(self, payload: CompanyProfileCreate) -> Dict:
        profile = CompanyProfile(**payload.model_dump())
        self.db.add(profile)
        self.db.commit()
        self.db.refresh(profile)
        logger.info(f"Company profile {profile.id} ({profile.name}) created")
        return serialize_company_profile(profile)

    def update_profile(self, profile_id: str, payload: CompanyProfileUpdate) -> Dict:
        profile = self._get(profile_id)
        for field, value in payload.model_dump(exclude_unset=True).items():
            if value is None and field in ("name", "is_active"):
                continue
            setattr(profile, field, value)
        self.db.commit()
        self.db.refresh(profile)
        return serialize_company_profile(profile)

    def set_active(self, profile_id: str, is_active: bool) -> Dict:
        profile = self._get(profile_id)
        profile.is_active = is_active
        self.db.commit()
        self.db.refresh(profile)
        return serialize_company_profile(profile)

    def get_profile(self, profile_id: str) -> Dict:
        return serialize_company_profile(self._get(profile_id))

    def list_profiles(self, active_only: bool = False) -> List[Dict]:
        query = self.db.query(CompanyProfile)
        if active_only:
            query = query.filter(CompanyProfile.is_active.is_(True))
        return [serialize_company_profile(p) for p in query.order_by(CompanyProfile.name).all()]
