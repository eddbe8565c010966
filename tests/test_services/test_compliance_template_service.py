"""
Tests for registration types, compliance rules, task templates and the
billable module catalog

Author: Back Office Team
Date: 2025-11-18
"""
import pytest
from pydantic import ValidationError as SchemaError

from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.domain.billable_module import (
    BillableModuleCreate,
    BillableModuleUpdate,
    ModuleCategoryCreate,
    ModuleCategoryUpdate,
)
from backoffice.domain.compliance import (
    ComplianceRuleCreate,
    ComplianceRuleUpdate,
    RegistrationTypeCreate,
    RegistrationTypeUpdate,
)
from backoffice.domain.entity import RegistrationCreate
from backoffice.domain.task import TaskCreate, TaskTemplateCreate, TaskTemplateUpdate, TemplateModuleIn
from backoffice.models import TaskTemplateModule
from backoffice.services.billable_module_service import BillableModuleService, ModuleCategoryService
from backoffice.services.compliance_service import ComplianceRuleService, RegistrationTypeService
from backoffice.services.entity_service import EntityService
from backoffice.services.task_module_service import TaskModuleService
from backoffice.services.task_service import TaskService
from backoffice.services.task_template_service import TaskTemplateService


@pytest.fixture
def gst_type(db):
    return RegistrationTypeService(db).create_type(
        RegistrationTypeCreate(code="gst", name="Goods and Services Tax", is_active=True)
    )


@pytest.fixture
def make_rule(db, gst_type, manager):
    def _make(code="GSTR_3B", frequency="MONTHLY", **fields):
        payload = ComplianceRuleCreate(
            compliance_code=code,
            name=fields.pop("name", f"{code} filing"),
            registration_type_id=fields.pop("registration_type_id", gst_type["id"]),
            frequency_type=frequency,
            due_day=fields.pop("due_day", 20),
            **fields,
        )
        return ComplianceRuleService(db).create_rule(payload, actor_id=manager.id)
    return _make


@pytest.fixture
def make_module(db, manager):
    def _make(name, **fields):
        return BillableModuleService(db).create_module(BillableModuleCreate(name=name, **fields), actor_id=manager.id)
    return _make


class TestRegistrationTypes:

    def test_code_is_uppercased_and_unique(self, db, gst_type):
        assert gst_type["code"] == "GST"

        with pytest.raises(ConflictError):
            RegistrationTypeService(db).create_type(RegistrationTypeCreate(code="GST"))

    def test_inactive_by_default(self, db):
        created = RegistrationTypeService(db).create_type(RegistrationTypeCreate(code="PF", name="Provident Fund"))

        assert created["is_active"] is False

    def test_bad_code_rejected_by_schema(self):
        with pytest.raises(SchemaError):
            RegistrationTypeCreate(code="GST NUMBER")

    def test_list_ordered_by_name(self, db, gst_type):
        service = RegistrationTypeService(db)
        service.create_type(RegistrationTypeCreate(code="TDS", name="Deductor (TDS)", is_active=True))

        assert [t["code"] for t in service.list_types()] == ["TDS", "GST"]

    def test_delete_blocked_while_entities_hold_it(self, db, gst_type, entity):
        EntityService(db).add_registration(
            entity.id, RegistrationCreate(registration_type="GST", registration_number="27AAACA1234A1Z5")
        )

        with pytest.raises(ValidationError, match="entity registration"):
            RegistrationTypeService(db).delete_type(gst_type["id"])

    def test_delete_blocked_while_rules_use_it(self, db, gst_type, make_rule):
        make_rule()

        with pytest.raises(ValidationError, match="compliance rule"):
            RegistrationTypeService(db).delete_type(gst_type["id"])

    def test_rename_code_checks_uniqueness(self, db, gst_type):
        service = RegistrationTypeService(db)
        tds = service.create_type(RegistrationTypeCreate(code="TDS"))

        with pytest.raises(ConflictError):
            service.update_type(tds["id"], RegistrationTypeUpdate(code="gst"))


class TestComplianceRules:

    @pytest.mark.parametrize("frequency,anchors,label", [
        ("MONTHLY", list(range(1, 13)), "MONTH"),
        ("QUARTERLY", [6, 9, 12, 3], "QUARTER"),
        ("HALFYEARLY", [9, 3], "HALFYEAR"),
        ("YEARLY", [3], "YEAR"),
    ])
    def test_schedule_follows_frequency(self, make_rule, frequency, anchors, label):
        rule = make_rule(code=f"RULE_{frequency}", frequency=frequency)

        assert rule["anchor_months"] == anchors
        assert rule["period_label_type"] == label

    def test_changing_frequency_recomputes_schedule(self, db, make_rule, manager):
        rule = make_rule()

        updated = ComplianceRuleService(db).update_rule(
            rule["id"], ComplianceRuleUpdate(frequency_type="QUARTERLY"), actor_id=manager.id
        )

        assert updated["anchor_months"] == [6, 9, 12, 3]
        assert updated["period_label_type"] == "QUARTER"

    def test_duplicate_code(self, make_rule):
        make_rule(code="GSTR_1")

        with pytest.raises(ConflictError):
            make_rule(code="gstr_1")

    def test_inactive_registration_type_rejected(self, db, make_rule):
        pf = RegistrationTypeService(db).create_type(RegistrationTypeCreate(code="PF"))

        with pytest.raises(NotFoundError, match="inactive"):
            make_rule(code="PF_ECR", registration_type_id=pf["id"])

    def test_due_day_bounds(self, gst_type):
        with pytest.raises(SchemaError):
            ComplianceRuleCreate(
                compliance_code="GSTR_9", name="Annual return", registration_type_id=gst_type["id"],
                frequency_type="YEARLY", due_day=32,
            )

    def test_cannot_disable_with_active_templates(self, db, make_rule, manager):
        rule = make_rule()
        TaskTemplateService(db).create_template(
            TaskTemplateCreate(compliance_rule_id=rule["id"], title_template="GSTR 3B filing"), actor_id=manager.id
        )

        with pytest.raises(ValidationError, match="active template"):
            ComplianceRuleService(db).update_rule(rule["id"], ComplianceRuleUpdate(is_active=False), manager.id)

    def test_list_filters(self, db, make_rule):
        make_rule(code="GSTR_1")
        make_rule(code="GSTR_9", frequency="YEARLY", name="Annual return")

        result = ComplianceRuleService(db).list_rules(frequency_type="YEARLY")
        searched = ComplianceRuleService(db).list_rules(search="annual")

        assert [r["compliance_code"] for r in result["rules"]] == ["GSTR_9"]
        assert [r["compliance_code"] for r in searched["rules"]] == ["GSTR_9"]
        assert result["pagination"]["total_items"] == 1


class TestTaskTemplates:

    @pytest.fixture
    def rule(self, make_rule):
        return make_rule()

    @pytest.fixture
    def template(self, db, rule, manager):
        return TaskTemplateService(db).create_template(
            TaskTemplateCreate(compliance_rule_id=rule["id"], title_template="GSTR 3B filing"), actor_id=manager.id
        )

    def test_create_and_get(self, db, template, rule):
        fetched = TaskTemplateService(db).get_template(template["id"])

        assert fetched["compliance_code"] == "GSTR_3B"
        assert fetched["modules"] == []
        assert fetched["is_active"] is True

    def test_title_unique_per_rule(self, db, template, rule, make_rule, manager):
        service = TaskTemplateService(db)

        with pytest.raises(ConflictError):
            service.create_template(
                TaskTemplateCreate(compliance_rule_id=rule["id"], title_template="gstr 3b filing"), manager.id
            )

        other_rule = make_rule(code="GSTR_1")
        again = service.create_template(
            TaskTemplateCreate(compliance_rule_id=other_rule["id"], title_template="GSTR 3B filing"), manager.id
        )
        assert again["compliance_rule_id"] == other_rule["id"]

    def test_title_characters(self, rule):
        with pytest.raises(SchemaError):
            TaskTemplateCreate(compliance_rule_id=rule["id"], title_template="GSTR/3B {period}")

    def test_unknown_rule(self, db, manager):
        with pytest.raises(NotFoundError):
            TaskTemplateService(db).create_template(
                TaskTemplateCreate(compliance_rule_id="missing", title_template="Anything"), manager.id
            )

    def test_sync_modules(self, db, template, make_module):
        service = TaskTemplateService(db)
        gstr1, gstr3b, recon = make_module("GSTR 1"), make_module("GSTR 3B"), make_module("Reconciliation")
        service.sync_template_modules(template["id"], [
            TemplateModuleIn(billable_module_id=gstr1["id"]),
            TemplateModuleIn(billable_module_id=gstr3b["id"], is_optional=True),
        ])

        result = service.sync_template_modules(template["id"], [
            TemplateModuleIn(billable_module_id=gstr3b["id"], is_optional=False),
            TemplateModuleIn(billable_module_id=recon["id"]),
            TemplateModuleIn(billable_module_id=recon["id"], is_optional=True),
        ])

        assert result["added"] == [recon["id"]]
        assert result["removed"] == [gstr1["id"]]
        by_module = {m["billable_module_id"]: m for m in result["modules"]}
        assert set(by_module) == {gstr3b["id"], recon["id"]}
        assert by_module[gstr3b["id"]]["is_optional"] is False
        assert by_module[recon["id"]]["is_optional"] is False
        assert by_module[recon["id"]]["name"] == "Reconciliation"

    def test_sync_rejects_inactive_module(self, db, template, make_module):
        paused = make_module("Old Module", is_active=False)

        with pytest.raises(NotFoundError) as exc:
            TaskTemplateService(db).sync_template_modules(
                template["id"], [TemplateModuleIn(billable_module_id=paused["id"])]
            )

        assert exc.value.details == {"billable_module_ids": [paused["id"]]}

    def test_delete_removes_modules(self, db, template, make_module):
        service = TaskTemplateService(db)
        service.sync_template_modules(template["id"], [TemplateModuleIn(billable_module_id=make_module("GSTR 1")["id"])])

        service.delete_template(template["id"])

        assert db.query(TaskTemplateModule).count() == 0
        with pytest.raises(NotFoundError):
            service.get_template(template["id"])

    def test_update_and_list(self, db, template, rule):
        service = TaskTemplateService(db)
        service.update_template(template["id"], TaskTemplateUpdate(is_active=False, description_template="Monthly"))

        inactive = service.list_templates(is_active=False)
        by_rule = service.list_templates(compliance_rule_id=rule["id"], search="3b")

        assert [t["id"] for t in inactive["templates"]] == [template["id"]]
        assert inactive["templates"][0]["description_template"] == "Monthly"
        assert by_rule["pagination"]["total_items"] == 1


class TestBillableModules:

    def test_category_name_is_title_cased_and_unique(self, db):
        service = ModuleCategoryService(db)
        created = service.create_category(ModuleCategoryCreate(name="gst  returns"))

        assert created["name"] == "Gst  Returns"
        with pytest.raises(ConflictError):
            service.create_category(ModuleCategoryCreate(name="GST  RETURNS"))

    def test_category_delete_blocked_by_modules(self, db, make_module):
        category = ModuleCategoryService(db).create_category(ModuleCategoryCreate(name="Gst"))
        make_module("GSTR 1", category_id=category["id"])

        with pytest.raises(ValidationError, match="module"):
            ModuleCategoryService(db).delete_category(category["id"])

    def test_category_rename(self, db):
        service = ModuleCategoryService(db)
        category = service.create_category(ModuleCategoryCreate(name="Gst"))

        assert service.update_category(category["id"], ModuleCategoryUpdate(name="income tax"))["name"] == "Income Tax"

    def test_module_needs_existing_category(self, make_module):
        with pytest.raises(NotFoundError):
            make_module("GSTR 1", category_id="missing")

    def test_module_name_unique_until_deleted(self, db, make_module, manager):
        first = make_module("GSTR 1")
        with pytest.raises(ConflictError):
            make_module("gstr 1")

        BillableModuleService(db).delete_module(first["id"], manager.id)

        assert make_module("GSTR 1")["name"] == "GSTR 1"

    def test_module_in_use_cannot_be_deleted(self, db, make_module, entity, manager, manager_actor):
        module = make_module("GSTR 1")
        task = TaskService(db).create_task(TaskCreate(title="GSTR 1 Oct", entity_id=entity.id), manager_actor)
        TaskModuleService(db).sync_modules(task["id"], [module["id"]], manager_actor)

        with pytest.raises(ValidationError) as exc:
            BillableModuleService(db).delete_module(module["id"], manager.id)

        assert exc.value.details == {"task_count": 1, "template_count": 0}

    def test_deleted_module_is_hidden(self, db, make_module, manager):
        service = BillableModuleService(db)
        module = make_module("GSTR 1")
        make_module("GSTR 3B")
        service.delete_module(module["id"], manager.id)

        listing = service.list_modules()

        assert [m["name"] for m in listing["modules"]] == ["GSTR 3B"]
        with pytest.raises(NotFoundError):
            service.get_module(module["id"])

    def test_update_and_filter(self, db, make_module, manager):
        service = BillableModuleService(db)
        module = make_module("GSTR 1")
        make_module("GSTR 3B")

        service.update_module(module["id"], BillableModuleUpdate(is_active=False), manager.id)

        assert [m["name"] for m in service.list_modules(is_active=True)["modules"]] == ["GSTR 3B"]
        assert [m["name"] for m in service.list_modules(search="3b")["modules"]] == ["GSTR 3B"]
