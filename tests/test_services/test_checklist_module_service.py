"""
Tests for task checklists and the billable modules attached to tasks

Author: Back Office Team
Date: 2025-11-18
"""
import pytest
from pydantic import ValidationError as SchemaError

from backoffice.core.errors import ForbiddenError, NotFoundError, ValidationError
from backoffice.domain.billable_module import BillableModuleCreate, BillableModuleUpdate
from backoffice.domain.task import ChecklistItemIn, ChecklistSync, TaskCreate, TaskModuleUpdate
from backoffice.models import TaskChecklistItem, TaskModule
from backoffice.services.billable_module_service import BillableModuleService
from backoffice.services.checklist_service import ChecklistService
from backoffice.services.task_module_service import TaskModuleService
from backoffice.services.task_service import TaskService


@pytest.fixture
def new_task(db, entity, manager_actor):
    def _make(**fields):
        fields.setdefault("title", "TDS return Q2")
        return TaskService(db).create_task(TaskCreate(entity_id=entity.id, **fields), manager_actor)
    return _make


@pytest.fixture
def task(new_task):
    return new_task()


def item(title, **fields) -> ChecklistItemIn:
    return ChecklistItemIn(title=title, **fields)


class TestChecklist:

    def test_first_save_creates_items_in_order(self, db, task, manager_actor):
        result = ChecklistService(db).sync_checklist(
            task["id"],
            [item("File return", order=2), item("Collect challans", order=1), item("Reconcile 26AS", order=3)],
            manager_actor,
        )

        assert result["task_id"] == task["id"]
        assert [i["title"] for i in result["updated"]] == ["Collect challans", "File return", "Reconcile 26AS"]
        assert all(i["is_done"] is False for i in result["updated"])
        assert {i["created_by"] for i in result["updated"]} == {manager_actor.id}

    def test_defaults_when_order_and_done_are_missing(self, db, task, manager_actor):
        result = ChecklistService(db).sync_checklist(task["id"], [item("Only step")], manager_actor)

        saved = result["updated"][0]
        assert saved["order"] == 0
        assert saved["is_done"] is False

    def test_resave_updates_creates_and_deletes(self, db, task, manager_actor, super_actor):
        service = ChecklistService(db)
        first = service.sync_checklist(
            task["id"], [item("Collect challans", order=1), item("File return", order=2)], manager_actor
        )["updated"]
        keep, drop = first

        result = service.sync_checklist(
            task["id"],
            [item("Collect all challans", id=keep["id"], is_done=True, order=1), item("Send ack", order=3)],
            super_actor,
        )

        titles = [i["title"] for i in result["updated"]]
        assert titles == ["Collect all challans", "Send ack"]
        kept = result["updated"][0]
        assert kept["id"] == keep["id"]
        assert kept["is_done"] is True
        assert kept["created_by"] == manager_actor.id
        assert kept["updated_by"] == super_actor.id
        assert db.get(TaskChecklistItem, drop["id"]) is None

    def test_empty_payload_clears_checklist(self, db, task, manager_actor):
        service = ChecklistService(db)
        service.sync_checklist(task["id"], [item("Collect challans")], manager_actor)

        result = service.sync_checklist(task["id"], [], manager_actor)

        assert result["updated"] == []
        assert db.query(TaskChecklistItem).count() == 0

    def test_item_of_another_task_rejected_without_changes(self, db, new_task, manager_actor):
        service = ChecklistService(db)
        first, second = new_task(title="First"), new_task(title="Second")
        foreign = service.sync_checklist(second["id"], [item("Other task step")], manager_actor)["updated"][0]
        service.sync_checklist(first["id"], [item("Keep me")], manager_actor)

        with pytest.raises(ValidationError) as exc:
            service.sync_checklist(first["id"], [item("Hijack", id=foreign["id"])], manager_actor)

        assert exc.value.details == {"item_ids": [foreign["id"]]}
        assert [i["title"] for i in service.list_checklist(first["id"], manager_actor)["items"]] == ["Keep me"]

    def test_unknown_task(self, db, manager_actor):
        with pytest.raises(NotFoundError):
            ChecklistService(db).sync_checklist("missing", [item("Step")], manager_actor)

    def test_outsider_cannot_read_or_save(self, db, task, viewer_actor):
        service = ChecklistService(db)

        with pytest.raises(ForbiddenError):
            service.list_checklist(task["id"], viewer_actor)
        with pytest.raises(ForbiddenError):
            service.sync_checklist(task["id"], [item("Sneaky")], viewer_actor)

    def test_assignee_and_assigned_to_all(self, db, new_task, viewer, viewer_actor):
        service = ChecklistService(db)
        assigned = new_task(title="Assigned", assignee_ids=[viewer.id])
        open_to_all = new_task(title="Everyone", is_assigned_to_all=True)

        service.sync_checklist(assigned["id"], [item("Mine")], viewer_actor)

        assert service.list_checklist(open_to_all["id"], viewer_actor)["items"] == []

    def test_manage_permission_alone_is_not_enough(self, db, task, make_user, token_user_for):
        other_manager = token_user_for(make_user("MANAGER", ["tasks.access", "tasks.manage"]))

        with pytest.raises(ForbiddenError):
            ChecklistService(db).sync_checklist(task["id"], [item("Step")], other_manager)

    def test_super_admin_sees_every_checklist(self, db, task, super_actor):
        assert ChecklistService(db).list_checklist(task["id"], super_actor)["items"] == []

    def test_payload_limits(self):
        with pytest.raises(SchemaError):
            ChecklistSync(items=[{"title": f"Step {n}"} for n in range(31)])
        with pytest.raises(SchemaError):
            ChecklistItemIn(title="x" * 201)
        with pytest.raises(SchemaError):
            ChecklistItemIn(title="   ")


class TestTaskModules:

    @pytest.fixture
    def modules(self, db, manager):
        service = BillableModuleService(db)
        return [
            service.create_module(BillableModuleCreate(name=name), actor_id=manager.id)
            for name in ("GSTR 1", "GSTR 3B", "Reconciliation")
        ]

    def test_sync_attaches_and_copies_name(self, db, task, modules, manager_actor):
        gstr1, gstr3b, _ = modules

        result = TaskModuleService(db).sync_modules(task["id"], [gstr1["id"], gstr3b["id"], gstr1["id"]], manager_actor)

        assert result["added"] == [gstr1["id"], gstr3b["id"]]
        assert result["removed"] == []
        assert {m["name"] for m in result["modules"]} == {"GSTR 1", "GSTR 3B"}

    def test_resync_soft_deletes_dropped_modules(self, db, task, modules, manager_actor):
        service = TaskModuleService(db)
        gstr1, gstr3b, recon = modules
        service.sync_modules(task["id"], [gstr1["id"], gstr3b["id"]], manager_actor)

        result = service.sync_modules(task["id"], [gstr3b["id"], recon["id"]], manager_actor)

        assert result["added"] == [recon["id"]]
        assert result["removed"] == [gstr1["id"]]
        dropped = db.query(TaskModule).filter(TaskModule.billable_module_id == gstr1["id"]).one()
        assert dropped.is_deleted is True
        assert dropped.deleted_by == manager_actor.id
        assert [m["billable_module_id"] for m in service.list_modules(task["id"])] == [gstr3b["id"], recon["id"]]

    def test_inactive_module_rejected(self, db, task, modules, manager, manager_actor):
        BillableModuleService(db).update_module(modules[0]["id"], BillableModuleUpdate(is_active=False), manager.id)

        with pytest.raises(ValidationError) as exc:
            TaskModuleService(db).sync_modules(task["id"], [modules[0]["id"], "missing"], manager_actor)

        assert exc.value.details == {"billable_module_ids": [modules[0]["id"], "missing"]}
        assert db.query(TaskModule).count() == 0

    def test_update_name_and_remark(self, db, task, modules, manager_actor):
        service = TaskModuleService(db)
        attached = service.sync_modules(task["id"], [modules[0]["id"]], manager_actor)["modules"][0]

        updated = service.update_module(
            task["id"], attached["id"], TaskModuleUpdate(name="GSTR 1 (Oct)", remark="Nil return"), manager_actor.id
        )

        assert updated["name"] == "GSTR 1 (Oct)"
        assert updated["remark"] == "Nil return"

    def test_update_wrong_task_is_404(self, db, new_task, modules, manager_actor):
        service = TaskModuleService(db)
        first, second = new_task(title="First"), new_task(title="Second")
        attached = service.sync_modules(first["id"], [modules[0]["id"]], manager_actor)["modules"][0]

        with pytest.raises(NotFoundError):
            service.update_module(second["id"], attached["id"], TaskModuleUpdate(remark="x"), manager_actor.id)
