"""
Export Service
Spreadsheet downloads for billing (outstanding balances, single invoice)

Author: Back Office Team
Date: 2025-11-10
"""
import io
import logging
from decimal import Decimal

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from sqlalchemy.orm import Session

from backoffice.services.invoice_service import InvoiceService, invoice_totals
from backoffice.services.reconcile_service import ReconcileService, active_charges, item_type

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

EXPORT_PAGE_SIZE = 500

HEADER_FILL = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=12)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
MONEY_FORMAT = "#,##0.00"


def _write_header(ws, headers, row: int = 1) -> None:
    for col_num, header in enumerate(headers, 1):
        cell = ws.cell(row=row, column=col_num, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal="center", vertical="center")
        cell.border = THIN_BORDER


def _write_row(ws, row: int, values, money_columns=()) -> None:
    for col_num, value in enumerate(values, 1):
        if isinstance(value, Decimal):
            value = float(value)
        cell = ws.cell(row=row, column=col_num, value=value)
        cell.border = THIN_BORDER
        if col_num in money_columns:
            cell.alignment = Alignment(horizontal="right", vertical="center")
            cell.number_format = MONEY_FORMAT
        else:
            cell.alignment = Alignment(horizontal="left", vertical="center")


def _set_widths(ws, widths) -> None:
    for letter, width in widths.items():
        ws.column_dimensions[letter].width = width


def _to_bytes(wb: Workbook) -> io.BytesIO:
    excel_file = io.BytesIO()
    wb.save(excel_file)
    excel_file.seek(0)
    return excel_file


class ExportService:

    def __init__(self, db: Session):
        self.db = db

    def export_outstanding_xlsx(self) -> io.BytesIO:
        """One row per entity with unpaid client charges, largest balance first"""
        reconcile = ReconcileService(self.db)

        wb = Workbook()
        ws = wb.active
        ws.title = "Outstanding"

        headers = [
            "Entity", "Email", "Status", "Pending Charges",
            "Service Fee", "Government Fee", "External Charge", "Total Outstanding",
        ]
        _write_header(ws, headers)

        row_num = 2
        page = 1
        grand_total = 0.0
        while True:
            result = reconcile.get_outstanding_entities(page=page, page_size=EXPORT_PAGE_SIZE)["list"]
            for item in result["data"]:
                entity = item["entity"] or {}
                money = item["money"]
                _write_row(ws, row_num, [
                    entity.get("name"),
                    entity.get("email"),
                    entity.get("status"),
                    money["pending_charges_count"],
                    money["service_fee"],
                    money["government_fee"],
                    money["external_charge"],
                    money["total_outstanding"],
                ], money_columns=(5, 6, 7, 8))
                grand_total += money["total_outstanding"]
                row_num += 1
            if not result["pagination"]["has_more"]:
                break
            page += 1

        _write_row(ws, row_num, [None] * 6 + ["Total", grand_total], money_columns=(8,))
        ws.cell(row=row_num, column=7).font = Font(bold=True)
        ws.cell(row=row_num, column=8).font = Font(bold=True)

        _set_widths(ws, {"A": 35, "B": 30, "C": 12, "D": 16, "E": 15, "F": 17, "G": 17, "H": 20})
        ws.freeze_panes = "A2"

        logger.info(f"Outstanding export generated with {row_num - 2} entities")
        return _to_bytes(wb)

    def export_invoice_xlsx(self, invoice_id: str):
        """
        Invoice sheet: header block with the invoice and client, then one
        line per active charge grouped by task.

        Returns (filename, BytesIO).
        """
        invoice = InvoiceService(self.db).get_or_404(invoice_id)

        wb = Workbook()
        ws = wb.active
        ws.title = "Invoice"

        info = [
            ("Invoice", invoice.internal_number),
            ("External Number", invoice.external_number),
            ("Status", invoice.status),
            ("Invoice Date", invoice.invoice_date.isoformat() if invoice.invoice_date else None),
            ("Client", invoice.entity.name if invoice.entity else None),
            ("Client PAN", invoice.entity.pan if invoice.entity else None),
            ("Billed By", invoice.company_profile.name if invoice.company_profile else None),
            ("GSTIN", invoice.company_profile.gstin if invoice.company_profile else None),
        ]
        for row_num, (label, value) in enumerate(info, 1):
            ws.cell(row=row_num, column=1, value=label).font = Font(bold=True)
            ws.cell(row=row_num, column=2, value=value)

        header_row = len(info) + 2
        _write_header(ws, ["Type", "Task", "Charge", "Charge Type", "Bearer", "Status", "Amount"], row=header_row)

        row_num = header_row + 1
        tasks = sorted(invoice.tasks, key=lambda t: (t.title or "", t.id))
        for task in tasks:
            for charge in active_charges(task):
                _write_row(ws, row_num, [
                    item_type(task),
                    task.title,
                    charge.title,
                    charge.charge_type,
                    charge.bearer,
                    charge.status,
                    charge.amount,
                ], money_columns=(7,))
                row_num += 1

        totals = invoice_totals(invoice)
        for label, value in (("Total", totals["total_amount"]), ("Client Outstanding", totals["client_outstanding"])):
            _write_row(ws, row_num, [None] * 5 + [label, value], money_columns=(7,))
            ws.cell(row=row_num, column=6).font = Font(bold=True)
            row_num += 1

        _set_widths(ws, {"A": 20, "B": 40, "C": 35, "D": 18, "E": 10, "F": 20, "G": 15})

        filename = f"{invoice.internal_number}.xlsx"
        logger.info(f"Invoice export generated for {invoice.internal_number}")
        return filename, _to_bytes(wb)
