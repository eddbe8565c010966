"""
Compliance API endpoints
- Registration types
- Compliance rules
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.domain.compliance import (
    ComplianceRuleCreate,
    ComplianceRuleUpdate,
    FrequencyType,
    RegistrationTypeCreate,
    RegistrationTypeUpdate,
)
from backoffice.services.compliance_service import ComplianceRuleService, RegistrationTypeService

router = APIRouter(prefix="/api/v1", tags=["Compliance"])


@router.get("/registration-types")
async def list_registration_types(
    active_only: bool = Query(False),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    return success_response(RegistrationTypeService(db).list_types(active_only=active_only))


@router.post("/registration-types", status_code=201)
async def create_registration_type(
    body: RegistrationTypeCreate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    return success_response(RegistrationTypeService(db).create_type(body), "Registration type created")


@router.put("/registration-types/{type_id}")
async def update_registration_type(
    type_id: str,
    body: RegistrationTypeUpdate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    return success_response(RegistrationTypeService(db).update_type(type_id, body), "Registration type updated")


@router.delete("/registration-types/{type_id}")
async def delete_registration_type(
    type_id: str,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    """Refused while entity registrations or compliance rules still use the type"""
    RegistrationTypeService(db).delete_type(type_id)
    return success_response({"id": type_id}, "Registration type deleted")


# ----------------------------------------------------------------------
# Compliance rules
# ----------------------------------------------------------------------

@router.get("/compliance-rules")
async def list_compliance_rules(
    registration_type_id: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    frequency_type: Optional[FrequencyType] = Query(None),
    search: Optional[str] = Query(None, description="Search name and compliance code"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    result = ComplianceRuleService(db).list_rules(
        registration_type_id=registration_type_id,
        is_active=is_active,
        frequency_type=frequency_type,
        search=search,
        page=page,
        page_size=page_size,
    )
    return success_response(result["rules"], meta={"pagination": result["pagination"]})


@router.post("/compliance-rules", status_code=201)
async def create_compliance_rule(
    body: ComplianceRuleCreate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    rule = ComplianceRuleService(db).create_rule(body, actor_id=user.id)
    return success_response(rule, "Compliance rule created")


@router.get("/compliance-rules/{rule_id}")
async def get_compliance_rule(
    rule_id: str,
    user: TokenUser = Depends(require_permission("tasks.access")),
    db: Session = Depends(get_db),
):
    return success_response(ComplianceRuleService(db).get_rule(rule_id))


@router.put("/compliance-rules/{rule_id}")
async def update_compliance_rule(
    rule_id: str,
    body: ComplianceRuleUpdate,
    user: TokenUser = Depends(require_permission("tasks.manage")),
    db: Session = Depends(get_db),
):
    rule = ComplianceRuleService(db).update_rule(rule_id, body, actor_id=user.id)
    return success_response(rule, "Compliance rule updated")
