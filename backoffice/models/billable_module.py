"""
Catalog of billable modules (units of work a task can be made of)
"""
from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship

from backoffice.core.database import Base, new_id, utcnow


class BillableModuleCategory(Base):
    __tablename__ = "billable_module_categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(150), unique=True, nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class BillableModule(Base):
    """Names are unique among modules that are not soft deleted"""
    __tablename__ = "billable_modules"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text)
    category_id = Column(String(36), ForeignKey("billable_module_categories.id"), index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_by = Column(String(36))
    updated_by = Column(String(36))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    category = relationship("BillableModuleCategory")
