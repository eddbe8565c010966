"""
Entity API endpoints
Clients of the firm, their statutory registrations and bulk import
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.domain.billing import ChargeCreate
from backoffice.domain.entity import (
    EntityCreate,
    EntityStatus,
    EntityType,
    EntityUpdate,
    RegistrationCreate,
    RegistrationUpdate,
)
from backoffice.services.adhoc_charge_service import AdhocChargeService
from backoffice.services.entity_group_service import EntityGroupService
from backoffice.services.entity_import_service import EntityImportService
from backoffice.services.entity_service import EntityService
from backoffice.services.export_service import XLSX_MEDIA_TYPE
from backoffice.services.reconcile_service import ReconcileService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/entities", tags=["Entities"])


@router.get("")
async def list_entities(
    status: Optional[EntityStatus] = Query(None, description="Filter by status"),
    entity_type: Optional[EntityType] = Query(None, description="Filter by entity type"),
    is_retainer: Optional[bool] = Query(None, description="Only retainer (or non-retainer) clients"),
    state: Optional[str] = Query(None, description="Filter by state (case-insensitive)"),
    search: Optional[str] = Query(None, description="Search name, email, PAN, phone or contact person"),
    include_deleted: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(require_permission("entities.access")),
    db: Session = Depends(get_db),
):
    result = EntityService(db).list_entities(
        status=status.value if status else None,
        entity_type=entity_type.value if entity_type else None,
        is_retainer=is_retainer,
        state=state,
        search=search,
        include_deleted=include_deleted,
        page=page,
        page_size=page_size,
    )
    return success_response(result["entities"], meta={"pagination": result["pagination"]})


@router.post("/import")
async def import_entities(
    file: UploadFile = File(..., description="xlsx laid out like the import template"),
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    """
    Create entities from an uploaded spreadsheet (max 500 rows, 5MB)

    Returns a summary plus the added, skipped (PAN already exists) and
    failed (validation errors) rows.
    """
    contents = await file.read()
    result = EntityImportService(db).import_entities(contents, actor_id=user.id)
    return success_response(result, "Import completed")


@router.get("/import/template")
async def download_import_template(
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    output = EntityImportService(db).build_template()
    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=entity-import-template.xlsx"},
    )


@router.get("/{entity_id}")
async def get_entity(
    entity_id: str,
    user: TokenUser = Depends(require_permission("entities.access")),
    db: Session = Depends(get_db),
):
    return success_response(EntityService(db).get_entity(entity_id))


@router.post("", status_code=201)
async def create_entity(
    body: EntityCreate,
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    return success_response(EntityService(db).create_entity(body, actor_id=user.id), "Entity created")


@router.put("/{entity_id}")
async def update_entity(
    entity_id: str,
    body: EntityUpdate,
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    return success_response(EntityService(db).update_entity(entity_id, body, actor_id=user.id), "Entity updated")


@router.post("/{entity_id}/toggle-retainer")
async def toggle_retainer(
    entity_id: str,
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    entity = EntityService(db).toggle_retainer(entity_id, actor_id=user.id)
    return success_response(entity, "Retainer status updated")


@router.delete("/{entity_id}")
async def delete_entity(
    entity_id: str,
    user: TokenUser = Depends(require_permission("entities.delete")),
    db: Session = Depends(get_db),
):
    return success_response(EntityService(db).delete_entity(entity_id, actor_id=user.id), "Entity deleted")


# ----------------------------------------------------------------------
# Registrations
# ----------------------------------------------------------------------

@router.get("/{entity_id}/registrations")
async def list_registrations(
    entity_id: str,
    user: TokenUser = Depends(require_permission("entities.access")),
    db: Session = Depends(get_db),
):
    return success_response(EntityService(db).list_registrations(entity_id))


@router.post("/{entity_id}/registrations", status_code=201)
async def add_registration(
    entity_id: str,
    body: RegistrationCreate,
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    return success_response(EntityService(db).add_registration(entity_id, body), "Registration added")


@router.put("/{entity_id}/registrations/{registration_id}")
async def update_registration(
    entity_id: str,
    registration_id: str,
    body: RegistrationUpdate,
    user: TokenUser = Depends(require_permission("entities.manage")),
    db: Session = Depends(get_db),
):
    registration = EntityService(db).update_registration(entity_id, registration_id, body)
    return success_response(registration, "Registration updated")


# ----------------------------------------------------------------------
# Billing views
# ----------------------------------------------------------------------

@router.get("/{entity_id}/billing")
async def get_entity_billing(
    entity_id: str,
    user: TokenUser = Depends(require_permission("payments.access", "tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    """Outstanding buckets for the entity plus the unreconciled/draft/issued breakdown"""
    service = ReconcileService(db)
    return success_response({
        "stats": service.get_entity_stats(entity_id),
        "breakdown": service.get_entity_breakdown(entity_id),
    })


@router.post("/{entity_id}/adhoc-charges", status_code=201)
async def create_adhoc_charge(
    entity_id: str,
    body: ChargeCreate,
    user: TokenUser = Depends(require_permission("tasks.charge.manage")),
    db: Session = Depends(get_db),
):
    """Bill the entity for something outside any task (creates a system task for it)"""
    result = AdhocChargeService(db).create_adhoc_charge(entity_id, body, user)
    return success_response(result, "Ad-hoc charge created")


@router.get("/{entity_id}/groups")
async def list_entity_groups(
    entity_id: str,
    user: TokenUser = Depends(require_permission("entities.access")),
    db: Session = Depends(get_db),
):
    """Groups the entity belongs to, with its role in each"""
    return success_response(EntityGroupService(db).groups_for_entity(entity_id))
