"""
Entity Service
Client records: uniqueness of tax identifiers, retainer rules, soft delete

Author: Back Office Team
Date: 2025-11-05
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backoffice.core.database import utcnow
from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.core.responses import build_pagination, page_offset
from backoffice.domain.entity import (
    EntityCreate,
    EntityDetail,
    EntityOut,
    EntityUpdate,
    RegistrationCreate,
    RegistrationOut,
    RegistrationUpdate,
)
from backoffice.models import Entity, EntityRegistration

logger = logging.getLogger(__name__)


def _plain(value):
    return value.value if hasattr(value, "value") else value


class EntityService:
    """Business logic for client entities"""

    def __init__(self, db: Session):
        self.db = db

    def get_or_404(self, entity_id: str) -> Entity:
        entity = self.db.query(Entity).filter(Entity.id == entity_id).first()
        if not entity:
            raise NotFoundError("Entity not found")
        return entity

    def _assert_unique_pan(self, pan: Optional[str], exclude_id: Optional[str] = None):
        if not pan:
            return
        query = self.db.query(Entity).filter(Entity.pan == pan)
        if exclude_id:
            query = query.filter(Entity.id != exclude_id)
        if query.first():
            raise ConflictError("An entity with this PAN already exists")

    def _assert_unique_tan(self, tan: Optional[str], exclude_id: Optional[str] = None):
        if not tan:
            return
        query = self.db.query(Entity).filter(Entity.tan == tan, Entity.deleted_at.is_(None))
        if exclude_id:
            query = query.filter(Entity.id != exclude_id)
        if query.first():
            raise ConflictError("An entity with this TAN already exists")

    def _active_registration_count(self, entity_id: str) -> int:
        return (
            self.db.query(EntityRegistration)
            .filter(EntityRegistration.entity_id == entity_id, EntityRegistration.status == "ACTIVE")
            .count()
        )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_entity(self, payload: EntityCreate, actor_id: Optional[str]) -> EntityOut:
        self._assert_unique_pan(payload.pan)
        self._assert_unique_tan(payload.tan)

        data = {k: _plain(v) for k, v in payload.model_dump().items()}
        entity = Entity(**data, created_by=actor_id, updated_by=actor_id)
        self.db.add(entity)
        self.db.commit()
        self.db.refresh(entity)

        logger.info(f"Entity {entity.id} ({entity.name}) created by {actor_id}")
        return EntityOut.model_validate(entity)

    def update_entity(self, entity_id: str, payload: EntityUpdate, actor_id: Optional[str]) -> EntityOut:
        entity = self.get_or_404(entity_id)
        if entity.is_deleted:
            raise ValidationError("Cannot update a deleted entity")

        changes = {k: _plain(v) for k, v in payload.model_dump(exclude_unset=True).items()}
        if "pan" in changes:
            self._assert_unique_pan(changes["pan"], exclude_id=entity.id)
        if "tan" in changes:
            self._assert_unique_tan(changes["tan"], exclude_id=entity.id)

        if changes.get("is_retainer") is False and entity.is_retainer:
            self._assert_can_drop_retainer(entity)

        for field, value in changes.items():
            if value is None and field in ("name", "entity_type", "status", "is_retainer"):
                continue
            setattr(entity, field, value)

        entity.updated_by = actor_id
        self.db.commit()
        self.db.refresh(entity)
        return EntityOut.model_validate(entity)

    def _assert_can_drop_retainer(self, entity: Entity):
        if self._active_registration_count(entity.id) > 0:
            raise ValidationError(
                "Cannot remove retainer status while the entity has active registrations"
            )

    def toggle_retainer(self, entity_id: str, actor_id: Optional[str]) -> EntityOut:
        entity = self.get_or_404(entity_id)
        if entity.is_deleted:
            raise ValidationError("Cannot update a deleted entity")
        if entity.is_retainer:
            self._assert_can_drop_retainer(entity)

        entity.is_retainer = not entity.is_retainer
        entity.updated_by = actor_id
        self.db.commit()
        self.db.refresh(entity)
        return EntityOut.model_validate(entity)

    def delete_entity(self, entity_id: str, actor_id: Optional[str]) -> EntityOut:
        entity = self.get_or_404(entity_id)
        if entity.is_deleted:
            raise ValidationError("Entity is already deleted")
        if entity.registrations:
            raise ValidationError("Cannot delete an entity that has registrations")

        entity.deleted_at = utcnow()
        entity.deleted_by = actor_id
        entity.status = "SUSPENDED"
        entity.updated_by = actor_id
        self.db.commit()
        self.db.refresh(entity)

        logger.info(f"Entity {entity.id} soft deleted by {actor_id}")
        return EntityOut.model_validate(entity)

    def get_entity(self, entity_id: str) -> EntityDetail:
        return EntityDetail.model_validate(self.get_or_404(entity_id))

    def list_entities(
        self,
        status: Optional[str] = None,
        entity_type: Optional[str] = None,
        is_retainer: Optional[bool] = None,
        state: Optional[str] = None,
        search: Optional[str] = None,
        include_deleted: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict:
        query = self.db.query(Entity)
        if not include_deleted:
            query = query.filter(Entity.deleted_at.is_(None))
        if status:
            query = query.filter(Entity.status == status)
        if entity_type:
            query = query.filter(Entity.entity_type == entity_type)
        if is_retainer is not None:
            query = query.filter(Entity.is_retainer == is_retainer)
        if state:
            query = query.filter(Entity.state.ilike(state))
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(
                Entity.name.ilike(term),
                Entity.email.ilike(term),
                Entity.pan.ilike(term),
                Entity.primary_phone.ilike(term),
                Entity.contact_person.ilike(term),
            ))

        total = query.count()
        entities = (
            query.order_by(Entity.created_at.desc())
            .offset(page_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        return {
            "entities": [EntityOut.model_validate(e) for e in entities],
            "pagination": build_pagination(page, page_size, total),
        }

    # ------------------------------------------------------------------
    # Registrations
    # ------------------------------------------------------------------

    def add_registration(self, entity_id: str, payload: RegistrationCreate) -> RegistrationOut:
        entity = self.get_or_404(entity_id)
        if entity.is_deleted:
            raise ValidationError("Cannot add registrations to a deleted entity")

        duplicate = (
            self.db.query(EntityRegistration)
            .filter(
                EntityRegistration.entity_id == entity_id,
                EntityRegistration.registration_type == payload.registration_type,
                EntityRegistration.registration_number == payload.registration_number,
            )
            .first()
        )
        if duplicate:
            raise ConflictError("This registration already exists for the entity")

        registration = EntityRegistration(entity_id=entity_id, **payload.model_dump())
        self.db.add(registration)
        self.db.commit()
        self.db.refresh(registration)
        return RegistrationOut.model_validate(registration)

    def update_registration(self, entity_id: str, registration_id: str, payload: RegistrationUpdate) -> RegistrationOut:
        registration = (
            self.db.query(EntityRegistration)
            .filter(EntityRegistration.id == registration_id, EntityRegistration.entity_id == entity_id)
            .first()
        )
        if not registration:
            raise NotFoundError("Registration not found")

        for field, value in payload.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(registration, field, value)
        self.db.commit()
        self.db.refresh(registration)
        return RegistrationOut.model_validate(registration)

    def list_registrations(self, entity_id: str) -> List[RegistrationOut]:
        self.get_or_404(entity_id)
        rows = (
            self.db.query(EntityRegistration)
            .filter(EntityRegistration.entity_id == entity_id)
            .order_by(EntityRegistration.created_at)
            .all()
        )
        return [RegistrationOut.model_validate(r) for r in rows]
