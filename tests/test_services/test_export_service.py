"""
Tests for the billing spreadsheet exports

Author: Back Office Team
Date: 2025-11-14
"""
from decimal import Decimal

import pytest
from openpyxl import load_workbook

from backoffice.domain.billing import ChargeCreate, CompanyProfileCreate, InvoiceCreate
from backoffice.domain.task import TaskCreate
from backoffice.services.charge_service import ChargeService
from backoffice.services.export_service import ExportService
from backoffice.services.invoice_service import CompanyProfileService, InvoiceService
from backoffice.services.task_service import TaskService


@pytest.fixture
def charged_task(db, manager_actor):
    def _make(entity_id, *charges):
        task = TaskService(db).create_task(
            TaskCreate(title="Annual filing", entity_id=entity_id, status="COMPLETED"), manager_actor
        )
        for title, amount, charge_type in charges:
            ChargeService(db).create_charge(
                task["id"], ChargeCreate(title=title, amount=Decimal(amount), charge_type=charge_type), manager_actor
            )
        return task["id"]
    return _make


def rows(sheet):
    return [list(r) for r in sheet.iter_rows(values_only=True)]


class TestOutstandingExport:

    def test_one_row_per_entity_largest_first(self, db, entity, make_entity, charged_task):
        small = make_entity(name="Small Co", email="small@example.com")
        charged_task(entity.id, ("Audit fee", "3000.00", "SERVICE_FEE"), ("ROC filing", "500.00", "GOVERNMENT_FEE"))
        charged_task(small.id, ("Courier", "250.00", "EXTERNAL_CHARGE"))

        workbook = load_workbook(ExportService(db).export_outstanding_xlsx())
        sheet = workbook["Outstanding"]
        data = rows(sheet)

        assert data[0][0] == "Entity"
        assert data[0][-1] == "Total Outstanding"
        assert data[1] == [
            "Acme Advisory Pvt Ltd", "accounts@acme.example", "ACTIVE", 2, 3000.0, 500.0, 0.0, 3500.0,
        ]
        assert data[2][0] == "Small Co"
        assert data[2][6:] == [250.0, 250.0]
        assert data[3][-2:] == ["Total", 3750.0]
        assert sheet.freeze_panes == "A2"

    def test_empty_export_has_header_and_total(self, db):
        data = rows(load_workbook(ExportService(db).export_outstanding_xlsx())["Outstanding"])

        assert len(data) == 2
        assert data[1][-2:] == ["Total", 0]


class TestInvoiceExport:

    def test_invoice_sheet(self, db, entity, charged_task, manager_actor):
        profile = CompanyProfileService(db).create_profile(
            CompanyProfileCreate(name="Sharma & Associates", gstin="27ABCDE1234F1Z5")
        )
        task_id = charged_task(entity.id, ("Audit fee", "1000.00", "SERVICE_FEE"), ("Stamp duty", "200.00", "GOVERNMENT_FEE"))
        detail = InvoiceService(db).create_or_append(
            InvoiceCreate(entity_id=entity.id, task_ids=[task_id], company_profile_id=profile["id"]), manager_actor
        )
        invoice = detail["invoice"]

        filename, content = ExportService(db).export_invoice_xlsx(invoice["id"])
        data = rows(load_workbook(content)["Invoice"])

        assert filename == f"{invoice['internal_number']}.xlsx"
        assert data[0] == ["Invoice", invoice["internal_number"]] + [None] * 5
        assert data[4][:2] == ["Client", "Acme Advisory Pvt Ltd"]
        assert data[7][:2] == ["GSTIN", "27ABCDE1234F1Z5"]
        assert data[9] == ["Type", "Task", "Charge", "Charge Type", "Bearer", "Status", "Amount"]

        lines = data[10:12]
        assert {line[2] for line in lines} == {"Audit fee", "Stamp duty"}
        assert all(line[0] == "TASK" and line[5] == "NOT_PAID" for line in lines)
        assert data[12][-2:] == ["Total", 1200.0]
        assert data[13][-2:] == ["Client Outstanding", 1200.0]
