"""
Registration types and the compliance rules that recur on them
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship

from backoffice.core.database import Base, new_id, utcnow


class RegistrationType(Base):
    """
    Kind of statutory registration (GST, TDS, PF, ...)

    Entity registrations reference the type by its code.
    """
    __tablename__ = "registration_types"

    id = Column(String(36), primary_key=True, default=new_id)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(150))
    description = Column(Text)
    is_active = Column(Boolean, nullable=False, default=False)
    validation_regex = Column(String(255))
    validation_hint = Column(String(255))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ComplianceRule(Base):
    """
    Recurring filing obligation for one registration type

    anchor_months are the months in which a period ends (Indian financial
    year, April to March); they and period_label_type follow frequency_type.
    """
    __tablename__ = "compliance_rules"

    id = Column(String(36), primary_key=True, default=new_id)
    compliance_code = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    registration_type_id = Column(String(36), ForeignKey("registration_types.id"), nullable=False, index=True)

    frequency_type = Column(String(16), nullable=False)
    anchor_months = Column(JSON, nullable=False)
    period_label_type = Column(String(16), nullable=False)

    due_day = Column(Integer, nullable=False)
    due_month_offset = Column(Integer, nullable=False, default=0)
    grace_days = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    created_by = Column(String(36))
    updated_by = Column(String(36))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    registration_type = relationship("RegistrationType")
