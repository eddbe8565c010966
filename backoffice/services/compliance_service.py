"""
Compliance Service
Registration types and the recurring rules filed against them

A rule's anchor months and period label follow from its frequency. Months
are the ones a period ends in, counted on the April to March financial year.

Author: Back Office Team
Date: 2025-11-18
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.core.responses import build_pagination, page_offset
from backoffice.domain.compliance import (
    ComplianceRuleCreate,
    ComplianceRuleUpdate,
    FrequencyType,
    RegistrationTypeCreate,
    RegistrationTypeUpdate,
)
from backoffice.models import ComplianceRule, EntityRegistration, RegistrationType, TaskTemplate

logger = logging.getLogger(__name__)

FREQUENCY_SCHEDULE = {
    FrequencyType.MONTHLY: (list(range(1, 13)), "MONTH"),
    FrequencyType.QUARTERLY: ([6, 9, 12, 3], "QUARTER"),
    FrequencyType.HALFYEARLY: ([9, 3], "HALFYEAR"),
    FrequencyType.YEARLY: ([3], "YEAR"),
}


def _plain(value):
    return value.value if hasattr(value, "value") else value


def serialize_registration_type(row: RegistrationType) -> Dict:
    return {
        "id": row.id,
        "code": row.code,
        "name": row.name,
        "description": row.description,
        "is_active": row.is_active,
        "validation_regex": row.validation_regex,
        "validation_hint": row.validation_hint,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


def serialize_rule(rule: ComplianceRule) -> Dict:
    return {
        "id": rule.id,
        "compliance_code": rule.compliance_code,
        "name": rule.name,
        "registration_type_id": rule.registration_type_id,
        "registration_type_code": rule.registration_type.code if rule.registration_type else None,
        "frequency_type": rule.frequency_type,
        "anchor_months": rule.anchor_months,
        "period_label_type": rule.period_label_type,
        "due_day": rule.due_day,
        "due_month_offset": rule.due_month_offset,
        "grace_days": rule.grace_days,
        "is_active": rule.is_active,
        "created_by": rule.created_by,
        "updated_by": rule.updated_by,
        "created_at": rule.created_at,
        "updated_at": rule.updated_at,
    }


class RegistrationTypeService:

    def __init__(self, db: Session):
        self.db = db

    def get_or_404(self, type_id: str) -> RegistrationType:
        row = self.db.get(RegistrationType, type_id)
        if not row:
            raise NotFoundError("Registration type not found")
        return row

    def _assert_unique_code(self, code: str, exclude_id: Optional[str] = None):
        query = self.db.query(RegistrationType).filter(RegistrationType.code == code)
        if exclude_id:
            query = query.filter(RegistrationType.id != exclude_id)
        if query.first():
            raise ConflictError(f"Registration type '{code}' already exists")

    def create_type(self, payload: RegistrationTypeCreate) -> Dict:
        self._assert_unique_code(payload.code)
        row = RegistrationType(**payload.model_dump())
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.info(f"Registration type {row.code} created")
        return serialize_registration_type(row)

    def update_type(self, type_id: str, payload: RegistrationTypeUpdate) -> Dict:
        row = self.get_or_404(type_id)
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("code") and changes["code"] != row.code:
            self._assert_unique_code(changes["code"], exclude_id=row.id)

        for field, value in changes.items():
            if value is None and field in ("code", "is_active"):
                continue
            setattr(row, field, value)
        self.db.commit()
        self.db.refresh(row)
        return serialize_registration_type(row)

    def delete_type(self, type_id: str) -> None:
        row = self.get_or_404(type_id)
        registrations = (
            self.db.query(EntityRegistration).filter(EntityRegistration.registration_type == row.code).count()
        )
        if registrations:
            raise ValidationError(f"Registration type is used by {registrations} entity registration(s)")
        rules = self.db.query(ComplianceRule).filter(ComplianceRule.registration_type_id == type_id).count()
        if rules:
            raise ValidationError(f"Registration type has {rules} compliance rule(s)")

        self.db.delete(row)
        self.db.commit()
        logger.info(f"Registration type {row.code} deleted")

    def list_types(self, active_only: bool = False) -> List[Dict]:
        query = self.db.query(RegistrationType)
        if active_only:
            query = query.filter(RegistrationType.is_active.is_(True))
        return [serialize_registration_type(r) for r in query.order_by(RegistrationType.name).all()]


class ComplianceRuleService:

    def __init__(self, db: Session):
        self.db = db

    def get_or_404(self, rule_id: str) -> ComplianceRule:
        rule = self.db.get(ComplianceRule, rule_id)
        if not rule:
            raise NotFoundError("Compliance rule not found")
        return rule

    def _assert_active_type(self, type_id: str):
        row = self.db.get(RegistrationType, type_id)
        if not row or not row.is_active:
            raise NotFoundError("Registration type not found or inactive")

    def _assert_unique_code(self, code: str, exclude_id: Optional[str] = None):
        query = self.db.query(ComplianceRule).filter(ComplianceRule.compliance_code == code)
        if exclude_id:
            query = query.filter(ComplianceRule.id != exclude_id)
        if query.first():
            raise ConflictError(f"Compliance rule '{code}' already exists")

    def create_rule(self, payload: ComplianceRuleCreate, actor_id: Optional[str]) -> Dict:
        self._assert_active_type(payload.registration_type_id)
        self._assert_unique_code(payload.compliance_code)

        anchors, label = FREQUENCY_SCHEDULE[payload.frequency_type]
        data = {k: _plain(v) for k, v in payload.model_dump().items()}
        rule = ComplianceRule(
            **data,
            anchor_months=list(anchors),
            period_label_type=label,
            created_by=actor_id,
            updated_by=actor_id,
        )
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        logger.info(f"Compliance rule {rule.compliance_code} created by {actor_id}")
        return serialize_rule(rule)

    def update_rule(self, rule_id: str, payload: ComplianceRuleUpdate, actor_id: Optional[str]) -> Dict:
        rule = self.get_or_404(rule_id)
        changes = {k: _plain(v) for k, v in payload.model_dump(exclude_unset=True).items()}

        if changes.get("compliance_code") and changes["compliance_code"] != rule.compliance_code:
            self._assert_unique_code(changes["compliance_code"], exclude_id=rule.id)
        if changes.get("registration_type_id") and changes["registration_type_id"] != rule.registration_type_id:
            self._assert_active_type(changes["registration_type_id"])
        if changes.get("is_active") is False and rule.is_active:
            templates = (
                self.db.query(TaskTemplate)
                .filter(TaskTemplate.compliance_rule_id == rule_id, TaskTemplate.is_active.is_(True))
                .count()
            )
            if templates:
                raise ValidationError(f"Cannot disable a rule with {templates} active template(s)")

        for field, value in changes.items():
            if value is None:
                continue
            setattr(rule, field, value)
        if changes.get("frequency_type"):
            anchors, label = FREQUENCY_SCHEDULE[FrequencyType(changes["frequency_type"])]
            rule.anchor_months = list(anchors)
            rule.period_label_type = label

        rule.updated_by = actor_id
        self.db.commit()
        self.db.refresh(rule)
        return serialize_rule(rule)

    def get_rule(self, rule_id: str) -> Dict:
        return serialize_rule(self.get_or_404(rule_id))

    def list_rules(
        self,
        registration_type_id: Optional[str] = None,
        is_active: Optional[bool] = None,
        frequency_type: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict:
        query = self.db.query(ComplianceRule)
        if registration_type_id:
            query = query.filter(ComplianceRule.registration_type_id == registration_type_id)
        if is_active is not None:
            query = query.filter(ComplianceRule.is_active == is_active)
        if frequency_type:
            query = query.filter(ComplianceRule.frequency_type == _plain(frequency_type))
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(ComplianceRule.name.ilike(term), ComplianceRule.compliance_code.ilike(term)))

        total = query.count()
        rules = (
            query.order_by(ComplianceRule.compliance_code)
            .offset(page_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        return {
            "rules": [serialize_rule(r) for r in rules],
            "pagination": build_pagination(page, page_size, total),
        }
