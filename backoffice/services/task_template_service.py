"""
Task Template Service
Templates that compliance tasks are generated from, and their default modules

Author: Back Office Team
Date: 2025-11-18
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from backoffice.core.errors import ConflictError, NotFoundError
from backoffice.core.responses import build_pagination, page_offset
from backoffice.domain.task import TaskTemplateCreate, TaskTemplateUpdate, TemplateModuleIn
from backoffice.models import BillableModule, ComplianceRule, TaskTemplate, TaskTemplateModule

logger = logging.getLogger(__name__)


def serialize_template_module(row: TaskTemplateModule) -> Dict:
    return {
        "id": row.id,
        "billable_module_id": row.billable_module_id,
        "name": row.billable_module.name if row.billable_module else None,
        "is_optional": row.is_optional,
        "created_at": row.created_at,
    }


def serialize_template(template: TaskTemplate, with_modules: bool = False) -> Dict:
    data = {
        "id": template.id,
        "compliance_rule_id": template.compliance_rule_id,
        "compliance_code": template.compliance_rule.compliance_code if template.compliance_rule else None,
        "title_template": template.title_template,
        "description_template": template.description_template,
        "is_active": template.is_active,
        "created_by": template.created_by,
        "created_at": template.created_at,
        "updated_at": template.updated_at,
    }
    if with_modules:
        data["modules"] = [serialize_template_module(m) for m in template.modules]
    return data


class TaskTemplateService:

    def __init__(self, db: Session):
        self.db = db

    def get_or_404(self, template_id: str) -> TaskTemplate:
        template = self.db.get(TaskTemplate, template_id)
        if not template:
            raise NotFoundError("Task template not found")
        return template

    def _assert_active_rule(self, rule_id: str):
        rule = self.db.get(ComplianceRule, rule_id)
        if not rule or not rule.is_active:
            raise NotFoundError("Compliance rule not found or inactive")

    def _assert_unique_title(self, rule_id: str, title: str, exclude_id: Optional[str] = None):
        query = self.db.query(TaskTemplate).filter(
            TaskTemplate.compliance_rule_id == rule_id,
            func.lower(TaskTemplate.title_template) == title.lower(),
        )
        if exclude_id:
            query = query.filter(TaskTemplate.id != exclude_id)
        if query.first():
            raise ConflictError(f"Template '{title}' already exists for this compliance rule")

    def create_template(self, payload: TaskTemplateCreate, actor_id: Optional[str]) -> Dict:
        self._assert_active_rule(payload.compliance_rule_id)
        self._assert_unique_title(payload.compliance_rule_id, payload.title_template)

        template = TaskTemplate(**payload.model_dump(), created_by=actor_id)
        self.db.add(template)
        self.db.commit()
        self.db.refresh(template)
        logger.info(f"Task template '{template.title_template}' created by {actor_id}")
        return serialize_template(template, with_modules=True)

    def update_template(self, template_id: str, payload: TaskTemplateUpdate) -> Dict:
        template = self.get_or_404(template_id)
        changes = payload.model_dump(exclude_unset=True)

        rule_id = changes.get("compliance_rule_id") or template.compliance_rule_id
        title = changes.get("title_template") or template.title_template
        if rule_id != template.compliance_rule_id:
            self._assert_active_rule(rule_id)
        if rule_id != template.compliance_rule_id or title != template.title_template:
            self._assert_unique_title(rule_id, title, exclude_id=template.id)

        for field, value in changes.items():
            if value is None and field in ("compliance_rule_id", "title_template", "is_active"):
                continue
            setattr(template, field, value)
        self.db.commit()
        self.db.refresh(template)
        return serialize_template(template, with_modules=True)

    def delete_template(self, template_id: str) -> None:
        template = self.get_or_404(template_id)
        self.db.delete(template)
        self.db.commit()
        logger.info(f"Task template {template_id} deleted")

    def get_template(self, template_id: str) -> Dict:
        return serialize_template(self.get_or_404(template_id), with_modules=True)

    def list_templates(
        self,
        compliance_rule_id: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict:
        query = self.db.query(TaskTemplate)
        if compliance_rule_id:
            query = query.filter(TaskTemplate.compliance_rule_id == compliance_rule_id)
        if is_active is not None:
            query = query.filter(TaskTemplate.is_active == is_active)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(
                TaskTemplate.title_template.ilike(term),
                TaskTemplate.description_template.ilike(term),
            ))

        total = query.count()
        templates = (
            query.order_by(TaskTemplate.created_at.desc())
            .offset(page_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        return {
            "templates": [serialize_template(t) for t in templates],
            "pagination": build_pagination(page, page_size, total),
        }

    # ------------------------------------------------------------------
    # Default modules
    # ------------------------------------------------------------------

    def sync_template_modules(self, template_id: str, modules: List[TemplateModuleIn]) -> Dict:
        """
        Make the template's module list match `modules`.

        Later duplicates of a module id are ignored. Every listed module must
        be active; the optional flag of modules already attached is updated.
        """
        template = self.get_or_404(template_id)
        wanted = {}
        for item in modules:
            wanted.setdefault(item.billable_module_id, item)

        if wanted:
            found = {
                m.id for m in self.db.query(BillableModule).filter(
                    BillableModule.id.in_(list(wanted)),
                    BillableModule.is_active.is_(True),
                    BillableModule.is_deleted.is_(False),
                )
            }
            missing = [mid for mid in wanted if mid not in found]
            if missing:
                raise NotFoundError(
                    "Some modules are missing or inactive", details={"billable_module_ids": missing}
                )

        current = {row.billable_module_id: row for row in template.modules}
        removed = [mid for mid in current if mid not in wanted]
        added = [mid for mid in wanted if mid not in current]

        for mid in removed:
            template.modules.remove(current[mid])
        for mid, item in wanted.items():
            if mid in current:
                if item.is_optional is not None:
                    current[mid].is_optional = item.is_optional
            else:
                template.modules.append(TaskTemplateModule(
                    billable_module_id=mid, is_optional=bool(item.is_optional)
                ))
        self.db.commit()
        self.db.refresh(template)

        logger.info(f"Template {template_id} modules synced: +{len(added)} -{len(removed)}")
        return {
            "added": added,
            "removed": removed,
            "modules": [serialize_template_module(m) for m in template.modules],
        }
