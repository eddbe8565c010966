"""
Tests for entity groups and the spreadsheet import of entities

Author: Back Office Team
Date: 2025-11-18
"""
import io

import pytest
from openpyxl import Workbook, load_workbook

from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.domain.entity import EntityGroupCreate, EntityGroupUpdate, GroupMemberCreate
from backoffice.models import Entity
from backoffice.services.entity_group_service import EntityGroupService
from backoffice.services.entity_import_service import MAX_IMPORT_ROWS, EntityImportService, normalise_row
from backoffice.services.entity_service import EntityService

HEADERS = ["entity_type", "name", "pan", "email", "primary_phone", "pincode", "status",
           "custom_field_01", "custom_field_value_01"]


def xlsx(rows, headers=HEADERS) -> bytes:
    """Workbook bytes with `headers` on row 1 and one row per tuple after it"""
    wb = Workbook()
    ws = wb.active
    ws.append(headers)
    for row in rows:
        ws.append(list(row))
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class TestEntityGroups:

    @pytest.fixture
    def group(self, db):
        return EntityGroupService(db).create_group(EntityGroupCreate(name="Sharma Family", group_type="FAMILY"))

    def test_add_member_and_get(self, db, group, entity):
        service = EntityGroupService(db)

        service.add_member(group["id"], GroupMemberCreate(entity_id=entity.id, role="Karta"))
        fetched = service.get_group(group["id"])

        assert fetched["members_count"] == 1
        assert fetched["members"][0]["entity_name"] == "Acme Advisory Pvt Ltd"
        assert fetched["members"][0]["role"] == "Karta"

    def test_duplicate_member_conflicts(self, db, group, entity):
        service = EntityGroupService(db)
        service.add_member(group["id"], GroupMemberCreate(entity_id=entity.id))

        with pytest.raises(ConflictError):
            service.add_member(group["id"], GroupMemberCreate(entity_id=entity.id))

    def test_deleted_entity_cannot_join(self, db, group, make_entity, manager):
        gone = make_entity(name="Closed Co")
        EntityService(db).delete_entity(gone.id, manager.id)

        with pytest.raises(NotFoundError):
            EntityGroupService(db).add_member(group["id"], GroupMemberCreate(entity_id=gone.id))

    def test_bulk_add_is_all_or_nothing(self, db, group, make_entity):
        service = EntityGroupService(db)
        first, second = make_entity(name="Son HUF"), make_entity(name="Daughter")
        service.add_member(group["id"], GroupMemberCreate(entity_id=first.id))

        with pytest.raises(ConflictError) as exc:
            service.add_members(group["id"], [GroupMemberCreate(entity_id=first.id), GroupMemberCreate(entity_id=second.id)])
        assert exc.value.details == {"entity_ids": [first.id]}

        with pytest.raises(ValidationError) as exc:
            service.add_members(group["id"], [GroupMemberCreate(entity_id=second.id), GroupMemberCreate(entity_id="nope")])
        assert exc.value.details == {"entity_ids": ["nope"]}

        assert service.list_members(group["id"])["pagination"]["total_items"] == 1

    def test_bulk_add(self, db, group, make_entity):
        entities = [make_entity(name=f"Member {n}") for n in range(3)]

        result = EntityGroupService(db).add_members(
            group["id"], [GroupMemberCreate(entity_id=e.id, role="Partner") for e in entities]
        )

        assert result["added"] == 3
        assert {m["role"] for m in result["members"]} == {"Partner"}

    def test_role_update_and_removal(self, db, group, entity):
        service = EntityGroupService(db)
        service.add_member(group["id"], GroupMemberCreate(entity_id=entity.id, role="Member"))

        assert service.update_member_role(group["id"], entity.id, "Trustee")["role"] == "Trustee"
        service.remove_member(group["id"], entity.id)

        with pytest.raises(NotFoundError):
            service.remove_member(group["id"], entity.id)

    def test_delete_blocked_while_group_has_members(self, db, group, entity):
        service = EntityGroupService(db)
        service.add_member(group["id"], GroupMemberCreate(entity_id=entity.id))

        with pytest.raises(ValidationError, match="member"):
            service.delete_group(group["id"])

        service.remove_member(group["id"], entity.id)
        service.delete_group(group["id"])
        with pytest.raises(NotFoundError):
            service.get_group(group["id"])

    def test_list_with_counts_and_filters(self, db, group, entity):
        service = EntityGroupService(db)
        service.create_group(EntityGroupCreate(name="Acme Holdings", group_type="BUSINESS"))
        service.add_member(group["id"], GroupMemberCreate(entity_id=entity.id))

        families = service.list_groups(group_type="FAMILY")
        searched = service.list_groups(search="acme")

        assert [(g["name"], g["members_count"]) for g in families["groups"]] == [("Sharma Family", 1)]
        assert [g["name"] for g in searched["groups"]] == ["Acme Holdings"]

    def test_groups_for_entity(self, db, group, entity):
        service = EntityGroupService(db)
        service.update_group(group["id"], EntityGroupUpdate(name="Sharma HUF Family"))
        service.add_member(group["id"], GroupMemberCreate(entity_id=entity.id, role="Karta"))

        groups = service.groups_for_entity(entity.id)

        assert [(g["name"], g["role"]) for g in groups] == [("Sharma HUF Family", "Karta")]


class TestEntityImport:

    def test_rows_are_added_skipped_or_failed(self, db, entity, manager):
        contents = xlsx([
            ("private_limited_company", "Bharat Traders Pvt Ltd", "aabcb1234c", "books@bharat.example",
             9876543210, 400001, None, "GST Number", "27AABCB1234C1Z5"),
            ("INDIVIDUAL", "Existing PAN Holder", entity.pan, None, None, None, "ACTIVE", None, None),
            ("INDIVIDUAL", "Second Bharat", "AABCB1234C", None, None, None, None, None, None),
            ("SPACESHIP", "Bad Type Ltd", None, None, None, None, None, None, None),
        ])

        result = EntityImportService(db).import_entities(contents, actor_id=manager.id)

        assert result["summary"] == {"added": 1, "skipped": 2, "failed": 1}
        assert [s["row"] for s in result["skipped"]] == [3, 4]
        assert result["failed"][0]["row"] == 5
        assert result["failed"][0]["errors"][0]["field"] == "entity_type"

        created = db.get(Entity, result["added"][0]["id"])
        assert created.entity_type == "PRIVATE_LIMITED_COMPANY"
        assert created.pan == "AABCB1234C"
        assert created.primary_phone == "9876543210"
        assert created.pincode == "400001"
        assert created.status == "ACTIVE"
        assert created.created_by == manager.id
        assert created.custom_fields == [{"name": "GST Number", "value": "27AABCB1234C1Z5"}]

    def test_blank_rows_are_ignored(self, db, manager):
        contents = xlsx([
            (None,) * len(HEADERS),
            ("INDIVIDUAL", "Ravi Kumar", None, None, None, None, None, None, None),
        ])

        result = EntityImportService(db).import_entities(contents, actor_id=manager.id)

        assert result["summary"] == {"added": 1, "skipped": 0, "failed": 0}
        assert result["added"][0]["name"] == "Ravi Kumar"

    def test_empty_sheet_rejected(self, db, manager):
        with pytest.raises(ValidationError, match="no data rows"):
            EntityImportService(db).import_entities(xlsx([]), actor_id=manager.id)

    def test_too_many_rows_rejected(self, db, manager):
        rows = [("INDIVIDUAL", f"Client {n}") + (None,) * 7 for n in range(MAX_IMPORT_ROWS + 1)]

        with pytest.raises(ValidationError, match="Maximum 500 rows"):
            EntityImportService(db).import_entities(xlsx(rows), actor_id=manager.id)
        assert db.query(Entity).count() == 0

    def test_oversized_or_unreadable_file_rejected(self, db, manager):
        service = EntityImportService(db)

        with pytest.raises(ValidationError, match="too large"):
            service.import_entities(b"0" * (5 * 1024 * 1024 + 1), actor_id=manager.id)
        with pytest.raises(ValidationError, match="Error reading Excel file"):
            service.import_entities(b"not a spreadsheet", actor_id=manager.id)

    def test_normalise_row(self):
        row = normalise_row({
            "entity_type": " huf ",
            "name": "Sharma HUF",
            "primary_phone": 9876543210.0,
            "custom_field_01": "Website",
            "custom_field_value_01": "https://sharma.example",
            "custom_field_02": None,
            "custom_field_value_02": "ignored without a name",
        })

        assert row == {
            "entity_type": "HUF",
            "name": "Sharma HUF",
            "primary_phone": "9876543210",
            "status": "ACTIVE",
            "custom_fields": [{"name": "Website", "value": "https://sharma.example"}],
        }

    def test_template_layout(self, db):
        wb = load_workbook(EntityImportService(db).build_template())
        sheet = wb["Entities Import Template"]

        headers = [cell.value for cell in sheet[1]]
        assert headers[:3] == ["entity_type", "name", "pan"]
        assert headers[-1] == "custom_field_value_10"
        assert sheet["B2"].value == "Acme Pvt Ltd"
        assert "Instructions" in wb.sheetnames

        ranges = {str(dv.sqref): dv.formula1 for dv in sheet.data_validations.dataValidation}
        assert "INDIVIDUAL" in ranges["A2:A501"]
        assert ranges["M2:M501"] == '"ACTIVE,INACTIVE,SUSPENDED"'
