"""
Entity group API endpoints
- Group CRUD
- Memberships (single, bulk, role changes)
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.domain.entity import (
    EntityGroupCreate,
    EntityGroupUpdate,
    GroupMemberCreate,
    GroupMemberRoleUpdate,
    GroupMembersBulkAdd,
    GroupType,
)
from backoffice.services.entity_group_service import EntityGroupService

router = APIRouter(prefix="/api/v1/entity-groups", tags=["Entity Groups"])


@router.get("")
async def list_groups(
    group_type: Optional[GroupType] = Query(None),
    search: Optional[str] = Query(None, description="Search group name"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(require_permission("entities.access")),
    db: Session = Depends(get_db),
):
    result = EntityGroupService(db).list_groups(group_type=group_type, search=search, page=page, page_size=page_size)
    return success_response(result["groups"], meta={"pagination": result["pagination"]})


@router.post("", status_code=201)
async def create_group(
    body: EntityGroupCreate,
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    return success_response(EntityGroupService(db).create_group(body), "Entity group created")


@router.get("/{group_id}")
async def get_group(
    group_id: str,
    user: TokenUser = Depends(require_permission("entities.access")),
    db: Session = Depends(get_db),
):
    return success_response(EntityGroupService(db).get_group(group_id))


@router.put("/{group_id}")
async def update_group(
    group_id: str,
    body: EntityGroupUpdate,
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    return success_response(EntityGroupService(db).update_group(group_id, body), "Entity group updated")


@router.delete("/{group_id}")
async def delete_group(
    group_id: str,
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    """Only empty groups can be deleted"""
    EntityGroupService(db).delete_group(group_id)
    return success_response({"id": group_id}, "Entity group deleted")


# ----------------------------------------------------------------------
# Members
# ----------------------------------------------------------------------

@router.get("/{group_id}/members")
async def list_members(
    group_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(require_permission("entities.access")),
    db: Session = Depends(get_db),
):
    result = EntityGroupService(db).list_members(group_id, page=page, page_size=page_size)
    return success_response(result["members"], meta={"pagination": result["pagination"]})


@router.post("/{group_id}/members", status_code=201)
async def add_member(
    group_id: str,
    body: GroupMemberCreate,
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    return success_response(EntityGroupService(db).add_member(group_id, body), "Member added")


@router.post("/{group_id}/members/bulk", status_code=201)
async def add_members(
    group_id: str,
    body: GroupMembersBulkAdd,
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    result = EntityGroupService(db).add_members(group_id, body.members)
    return success_response(result, f"{result['added']} member(s) added")


@router.patch("/{group_id}/members/{entity_id}")
async def update_member_role(
    group_id: str,
    entity_id: str,
    body: GroupMemberRoleUpdate,
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    member = EntityGroupService(db).update_member_role(group_id, entity_id, body.role)
    return success_response(member, "Member role updated")


@router.delete("/{group_id}/members/{entity_id}")
async def remove_member(
    group_id: str,
    entity_id: str,
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    EntityGroupService(db).remove_member(group_id, entity_id)
    return success_response({"entity_id": entity_id}, "Member removed")
