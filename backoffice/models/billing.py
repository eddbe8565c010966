"""
Charges, invoices, the firm's company profiles and per-entity reconcile totals
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, Text, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship

from backoffice.core.database import Base, new_id, utcnow


class TaskCharge(Base):
    """
    Money attached to a task (service fee, government fee, ...)

    Charges are soft deleted (deleted_at) so they can be restored; a
    soft deleted charge contributes nothing to reconcile totals.
    """
    __tablename__ = "task_charges"

    id = Column(String(36), primary_key=True, default=new_id)
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_id = Column(String(36), ForeignKey("entities.id"), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    amount = Column(DECIMAL(12, 2), nullable=False)
    charge_type = Column(String(32), nullable=False, index=True)
    bearer = Column(String(16), nullable=False, default="CLIENT")
    status = Column(String(16), nullable=False, default="NOT_PAID", index=True)
    remark = Column(Text)
    paid_via_invoice_id = Column(String(36), ForeignKey("invoices.id"))

    created_by = Column(String(36))
    updated_by = Column(String(36))
    deleted_at = Column(DateTime)
    deleted_by = Column(String(36))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    task = relationship("Task", back_populates="charges")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=new_id)
    internal_number = Column(String(50), unique=True, nullable=False, index=True)
    external_number = Column(String(50))
    entity_id = Column(String(36), ForeignKey("entities.id"), nullable=False, index=True)
    company_profile_id = Column(String(36), ForeignKey("company_profiles.id"))

    status = Column(String(16), nullable=False, default="DRAFT", index=True)
    invoice_date = Column(Date)
    notes = Column(Text)

    issued_at = Column(DateTime)
    paid_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    reverted_from_status = Column(String(16))

    created_by = Column(String(36))
    updated_by = Column(String(36))
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    entity = relationship("Entity")
    company_profile = relationship("CompanyProfile")
    tasks = relationship("Task", back_populates="invoice", foreign_keys="Task.invoice_id")


class CompanyProfile(Base):
    """Billing identity of the firm printed on invoices"""
    __tablename__ = "company_profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    legal_name = Column(String(255))
    gstin = Column(String(15))
    pan = Column(String(10))
    address = Column(Text)
    email = Column(String(255))
    phone = Column(String(20))
    bank_name = Column(String(150))
    bank_account_number = Column(String(30))
    ifsc = Column(String(11))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ReconcileStatsCurrent(Base):
    """Running charge totals per entity, maintained by reconcile deltas"""
    __tablename__ = "reconcile_stats_current"

    entity_id = Column(String(36), ForeignKey("entities.id", ondelete="CASCADE"), primary_key=True)

    service_fee_total = Column(DECIMAL(14, 2), nullable=False, default=0)
    service_fee_outstanding = Column(DECIMAL(14, 2), nullable=False, default=0)
    service_fee_written_off = Column(DECIMAL(14, 2), nullable=False, default=0)

    government_fee_total = Column(DECIMAL(14, 2), nullable=False, default=0)
    government_fee_outstanding = Column(DECIMAL(14, 2), nullable=False, default=0)
    government_fee_written_off = Column(DECIMAL(14, 2), nullable=False, default=0)

    external_charge_total = Column(DECIMAL(14, 2), nullable=False, default=0)
    external_charge_outstanding = Column(DECIMAL(14, 2), nullable=False, default=0)
    external_charge_written_off = Column(DECIMAL(14, 2), nullable=False, default=0)

    client_total_outstanding = Column(DECIMAL(14, 2), nullable=False, default=0)
    pending_charges_count = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
