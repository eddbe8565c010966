"""
Entity Group Service
Families, businesses and other groupings of client entities

Author: Back Office Team
Date: 2025-11-18
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.core.responses import build_pagination, page_offset
from backoffice.domain.entity import (
    EntityGroupCreate,
    EntityGroupUpdate,
    GroupMemberCreate,
)
from backoffice.models import Entity, EntityGroup, EntityGroupMember

logger = logging.getLogger(__name__)


def _plain(value):
    return value.value if hasattr(value, "value") else value


def serialize_member(member: EntityGroupMember) -> Dict:
    entity = member.entity
    return {
        "id": member.id,
        "entity_group_id": member.entity_group_id,
        "entity_id": member.entity_id,
        "entity_name": entity.name if entity else None,
        "entity_type": entity.entity_type if entity else None,
        "role": member.role,
        "created_at": member.created_at,
        "updated_at": member.updated_at,
    }


def serialize_group(group: EntityGroup, members_count: Optional[int] = None) -> Dict:
    return {
        "id": group.id,
        "name": group.name,
        "group_type": group.group_type,
        "members_count": members_count if members_count is not None else len(group.members),
        "created_at": group.created_at,
        "updated_at": group.updated_at,
    }


class EntityGroupService:

    def __init__(self, db: Session):
        self.db = db

    def get_or_404(self, group_id: str) -> EntityGroup:
        group = self.db.get(EntityGroup, group_id)
        if not group:
            raise NotFoundError("Entity group not found")
        return group

    def _get_entity(self, entity_id: str) -> Entity:
        entity = self.db.get(Entity, entity_id)
        if not entity or entity.is_deleted:
            raise NotFoundError("Entity not found")
        return entity

    def _get_member(self, group_id: str, entity_id: str) -> EntityGroupMember:
        member = (
            self.db.query(EntityGroupMember)
            .filter(EntityGroupMember.entity_group_id == group_id, EntityGroupMember.entity_id == entity_id)
            .first()
        )
        if not member:
            raise NotFoundError("Entity is not a member of this group")
        return member

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def create_group(self, payload: EntityGroupCreate) -> Dict:
        group = EntityGroup(name=payload.name, group_type=_plain(payload.group_type))
        self.db.add(group)
        self.db.commit()
        self.db.refresh(group)
        logger.info(f"Entity group '{group.name}' created")
        return serialize_group(group, members_count=0)

    def update_group(self, group_id: str, payload: EntityGroupUpdate) -> Dict:
        group = self.get_or_404(group_id)
        for field, value in payload.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(group, field, _plain(value))
        self.db.commit()
        self.db.refresh(group)
        return serialize_group(group)

    def delete_group(self, group_id: str) -> None:
        group = self.get_or_404(group_id)
        if group.members:
            raise ValidationError(f"Group has {len(group.members)} member(s); remove them first")
        self.db.delete(group)
        self.db.commit()
        logger.info(f"Entity group {group_id} deleted")

    def get_group(self, group_id: str) -> Dict:
        group = self.get_or_404(group_id)
        data = serialize_group(group)
        data["members"] = [serialize_member(m) for m in group.members]
        return data

    def list_groups(
        self,
        group_type: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict:
        query = self.db.query(EntityGroup)
        if group_type:
            query = query.filter(EntityGroup.group_type == _plain(group_type))
        if search:
            query = query.filter(EntityGroup.name.ilike(f"%{search.strip()}%"))

        total = query.count()
        groups = (
            query.order_by(EntityGroup.name)
            .offset(page_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        counts = dict(
            self.db.query(EntityGroupMember.entity_group_id, func.count(EntityGroupMember.id))
            .filter(EntityGroupMember.entity_group_id.in_([g.id for g in groups]))
            .group_by(EntityGroupMember.entity_group_id)
            .all()
        ) if groups else {}
        return {
            "groups": [serialize_group(g, counts.get(g.id, 0)) for g in groups],
            "pagination": build_pagination(page, page_size, total),
        }

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def add_member(self, group_id: str, payload: GroupMemberCreate) -> Dict:
        self.get_or_404(group_id)
        self._get_entity(payload.entity_id)
        exists = (
            self.db.query(EntityGroupMember)
            .filter(
                EntityGroupMember.entity_group_id == group_id,
                EntityGroupMember.entity_id == payload.entity_id,
            )
            .first()
        )
        if exists:
            raise ConflictError("Entity is already a member of this group")

        member = EntityGroupMember(entity_group_id=group_id, entity_id=payload.entity_id, role=payload.role)
        self.db.add(member)
        self.db.commit()
        self.db.refresh(member)
        return serialize_member(member)

    def add_members(self, group_id: str, members: List[GroupMemberCreate]) -> Dict:
        """All or nothing: unknown entities or existing members reject the whole batch"""
        self.get_or_404(group_id)
        wanted = {}
        for item in members:
            wanted.setdefault(item.entity_id, item)

        found = {
            e.id for e in self.db.query(Entity).filter(
                Entity.id.in_(list(wanted)), Entity.deleted_at.is_(None)
            )
        }
        missing = [eid for eid in wanted if eid not in found]
        if missing:
            raise ValidationError("Some entities were not found", details={"entity_ids": missing})

        already = [
            row.entity_id for row in self.db.query(EntityGroupMember).filter(
                EntityGroupMember.entity_group_id == group_id,
                EntityGroupMember.entity_id.in_(list(wanted)),
            )
        ]
        if already:
            raise ConflictError("Some entities are already members", details={"entity_ids": already})

        rows = [
            EntityGroupMember(entity_group_id=group_id, entity_id=eid, role=item.role)
            for eid, item in wanted.items()
        ]
        self.db.add_all(rows)
        self.db.commit()
        logger.info(f"{len(rows)} member(s) added to entity group {group_id}")
        return {"added": len(rows), "members": [serialize_member(r) for r in rows]}

    def update_member_role(self, group_id: str, entity_id: str, role: Optional[str]) -> Dict:
        member = self._get_member(group_id, entity_id)
        member.role = role
        self.db.commit()
        self.db.refresh(member)
        return serialize_member(member)

    def remove_member(self, group_id: str, entity_id: str) -> None:
        member = self._get_member(group_id, entity_id)
        self.db.delete(member)
        self.db.commit()

    def list_members(self, group_id: str, page: int = 1, page_size: int = 20) -> Dict:
        self.get_or_404(group_id)
        query = self.db.query(EntityGroupMember).filter(EntityGroupMember.entity_group_id == group_id)
        total = query.count()
        members = (
            query.order_by(EntityGroupMember.created_at)
            .offset(page_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        return {
            "members": [serialize_member(m) for m in members],
            "pagination": build_pagination(page, page_size, total),
        }

    def groups_for_entity(self, entity_id: str) -> List[Dict]:
        self._get_entity(entity_id)
        rows = (
            self.db.query(EntityGroupMember)
            .filter(EntityGroupMember.entity_id == entity_id)
            .order_by(EntityGroupMember.created_at)
            .all()
        )
        return [
            {**serialize_group(row.group), "role": row.role, "member_id": row.id}
            for row in rows
        ]
