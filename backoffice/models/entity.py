"""
Clients of the firm (entities), their compliance registrations and the
groups (families, businesses, ...) they belong to
"""
from sqlalchemy import Column, String, Boolean, DateTime, Date, Text, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from backoffice.core.database import Base, new_id, utcnow


class Entity(Base):
    """
    A client: an individual, a company, a firm, a trust...

    PAN is unique across all rows; TAN is unique among rows that are not
    soft deleted. Deleted entities keep status SUSPENDED.
    """
    __tablename__ = "entities"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    pan = Column(String(10), unique=True, index=True)
    tan = Column(String(10), index=True)

    email = Column(String(255))
    primary_phone = Column(String(10))
    secondary_phone = Column(String(10))
    contact_person = Column(String(200))

    address_line1 = Column(String(255))
    address_line2 = Column(String(255))
    city = Column(String(100))
    state = Column(String(100), index=True)
    pincode = Column(String(6))

    status = Column(String(16), nullable=False, default="ACTIVE", index=True)
    is_retainer = Column(Boolean, nullable=False, default=False)
    notes = Column(Text)
    custom_fields = Column(JSON)

    created_by = Column(String(36))
    updated_by = Column(String(36))
    deleted_at = Column(DateTime, index=True)
    deleted_by = Column(String(36))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    registrations = relationship(
        "EntityRegistration", back_populates="entity", cascade="all, delete-orphan"
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class EntityRegistration(Base):
    """Statutory registration held by an entity (GST, TDS, PF, ...)"""
    __tablename__ = "entity_registrations"

    id = Column(String(36), primary_key=True, default=new_id)
    entity_id = Column(String(36), ForeignKey("entities.id", ondelete="CASCADE"), nullable=False, index=True)
    registration_type = Column(String(50), nullable=False)
    registration_number = Column(String(50), nullable=False)
    state = Column(String(100))
    status = Column(String(16), nullable=False, default="ACTIVE")
    effective_from = Column(Date)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    entity = relationship("Entity", back_populates="registrations")


class EntityGroup(Base):
    __tablename__ = "entity_groups"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False, index=True)
    group_type = Column(String(32), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    members = relationship("EntityGroupMember", back_populates="group", order_by="EntityGroupMember.created_at")


class EntityGroupMember(Base):
    __tablename__ = "entity_group_members"
    __table_args__ = (UniqueConstraint("entity_group_id", "entity_id", name="uq_group_member"),)

    id = Column(String(36), primary_key=True, default=new_id)
    entity_group_id = Column(String(36), ForeignKey("entity_groups.id"), nullable=False, index=True)
    entity_id = Column(String(36), ForeignKey("entities.id"), nullable=False, index=True)
    role = Column(String(100))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    group = relationship("EntityGroup", back_populates="members")
    entity = relationship("Entity")
