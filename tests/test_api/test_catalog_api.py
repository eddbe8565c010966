"""
API tests for the compliance catalog, task templates, billable modules,
entity groups, the entity spreadsheet import and departments

Author: Back Office Team
Date: 2025-11-18
"""
import io

import pytest
from openpyxl import Workbook, load_workbook

from backoffice.services.export_service import XLSX_MEDIA_TYPE


@pytest.fixture
def manager_headers(manager, headers_for):
    return headers_for(manager)


@pytest.fixture
def viewer_headers(viewer, headers_for):
    return headers_for(viewer)


@pytest.fixture
def super_headers(super_admin, headers_for):
    return headers_for(super_admin)


def workbook_bytes(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append(["entity_type", "name", "pan", "email"])
    for row in rows:
        ws.append(list(row))
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class TestComplianceCatalogApi:

    def test_rule_and_template_flow(self, client, manager_headers):
        gst = client.post(
            "/api/v1/registration-types", json={"code": "gst", "name": "GST", "is_active": True},
            headers=manager_headers,
        )
        rule = client.post(
            "/api/v1/compliance-rules",
            json={
                "compliance_code": "GSTR_1", "name": "GSTR-1 filing", "registration_type_id": gst.json()["data"]["id"],
                "frequency_type": "QUARTERLY", "due_day": 11,
            },
            headers=manager_headers,
        )
        rule_id = rule.json()["data"]["id"]
        template = client.post(
            "/api/v1/task-templates",
            json={"compliance_rule_id": rule_id, "title_template": "GSTR-1 filing"},
            headers=manager_headers,
        )
        module = client.post("/api/v1/billable-modules", json={"name": "Return filing"}, headers=manager_headers)
        modules = client.put(
            f"/api/v1/task-templates/{template.json()['data']['id']}/modules",
            json={"modules": [{"billable_module_id": module.json()["data"]["id"], "is_optional": True}]},
            headers=manager_headers,
        )
        listing = client.get("/api/v1/task-templates", params={"compliance_rule_id": rule_id}, headers=manager_headers)

        assert gst.status_code == 201
        assert rule.status_code == 201
        assert rule.json()["data"]["anchor_months"] == [6, 9, 12, 3]
        assert template.status_code == 201
        assert modules.json()["data"]["modules"][0]["is_optional"] is True
        assert listing.json()["meta"]["pagination"]["total_items"] == 1

    def test_rule_for_unknown_type_is_404(self, client, manager_headers):
        response = client.post(
            "/api/v1/compliance-rules",
            json={
                "compliance_code": "TDS_24Q", "name": "TDS return", "registration_type_id": "missing",
                "frequency_type": "QUARTERLY", "due_day": 31,
            },
            headers=manager_headers,
        )

        assert response.status_code == 404

    def test_viewer_reads_but_cannot_write(self, client, viewer_headers):
        listing = client.get("/api/v1/billable-modules", headers=viewer_headers)
        created = client.post("/api/v1/module-categories", json={"name": "Returns"}, headers=viewer_headers)

        assert listing.status_code == 200
        assert created.status_code == 403


class TestEntityGroupsApi:

    def test_group_membership(self, client, entity, manager_headers):
        group = client.post(
            "/api/v1/entity-groups", json={"name": "Acme Group", "group_type": "BUSINESS"}, headers=manager_headers
        )
        group_id = group.json()["data"]["id"]

        added = client.post(
            f"/api/v1/entity-groups/{group_id}/members", json={"entity_id": entity.id, "role": "Holding"},
            headers=manager_headers,
        )
        again = client.post(
            f"/api/v1/entity-groups/{group_id}/members", json={"entity_id": entity.id}, headers=manager_headers
        )
        groups = client.get(f"/api/v1/entities/{entity.id}/groups", headers=manager_headers)
        blocked = client.delete(f"/api/v1/entity-groups/{group_id}", headers=manager_headers)

        assert group.status_code == 201
        assert added.status_code == 201
        assert again.status_code == 409
        assert [(g["name"], g["role"]) for g in groups.json()["data"]] == [("Acme Group", "Holding")]
        assert blocked.status_code == 400

    def test_groups_need_entity_access(self, client, viewer_headers):
        response = client.get("/api/v1/entity-groups", headers=viewer_headers)

        assert response.status_code == 403


class TestEntityImportApi:

    def test_upload(self, client, entity, manager_headers):
        contents = workbook_bytes([
            ("INDIVIDUAL", "Ravi Kumar", "ABCPK1234L", "ravi@example.com"),
            ("INDIVIDUAL", "Duplicate PAN", entity.pan, None),
        ])

        response = client.post(
            "/api/v1/entities/import",
            files={"file": ("clients.xlsx", contents, XLSX_MEDIA_TYPE)},
            headers=manager_headers,
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Import completed"
        assert response.json()["data"]["summary"] == {"added": 1, "skipped": 1, "failed": 0}

    def test_unreadable_upload(self, client, manager_headers):
        response = client.post(
            "/api/v1/entities/import",
            files={"file": ("clients.xlsx", b"plain text", XLSX_MEDIA_TYPE)},
            headers=manager_headers,
        )

        assert response.status_code == 400

    def test_template_download(self, client, manager_headers):
        response = client.get("/api/v1/entities/import/template", headers=manager_headers)

        assert response.status_code == 200
        assert "entity-import-template.xlsx" in response.headers["content-disposition"]
        wb = load_workbook(io.BytesIO(response.content))
        assert wb.sheetnames == ["Entities Import Template", "Instructions"]

    def test_import_needs_manage_permission(self, client, viewer_headers):
        response = client.get("/api/v1/entities/import/template", headers=viewer_headers)

        assert response.status_code == 403


class TestDepartmentsApi:

    def test_crud(self, client, super_headers):
        created = client.post("/api/v1/departments", json={"name": "Audit"}, headers=super_headers)
        department_id = created.json()["data"]["id"]

        duplicate = client.post("/api/v1/departments", json={"name": "audit"}, headers=super_headers)
        renamed = client.put(f"/api/v1/departments/{department_id}", json={"name": "Internal Audit"}, headers=super_headers)
        deleted = client.delete(f"/api/v1/departments/{department_id}", headers=super_headers)
        listing = client.get("/api/v1/departments", headers=super_headers)

        assert created.status_code == 201
        assert duplicate.status_code == 409
        assert renamed.json()["data"]["name"] == "Internal Audit"
        assert deleted.status_code == 200
        assert listing.json()["data"] == []

    def test_manager_without_admin_permission(self, client, manager_headers):
        response = client.get("/api/v1/departments", headers=manager_headers)

        assert response.status_code == 403
