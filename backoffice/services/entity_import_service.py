"""
Entity Import Service
Bulk creation of entities from an uploaded xlsx, and the blank template for it

Author: Back Office Team
Date: 2025-11-18
"""
import io
import logging
from typing import Dict, List, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.datavalidation import DataValidation
from pydantic import ValidationError as SchemaError
from sqlalchemy.orm import Session

from backoffice.core.errors import ValidationError
from backoffice.domain.entity import MAX_CUSTOM_FIELDS, EntityCreate, EntityStatus, EntityType
from backoffice.models import Entity
from backoffice.services.entity_service import _plain
from backoffice.services.export_service import HEADER_FILL, _set_widths, _to_bytes, _write_header

logger = logging.getLogger(__name__)

MAX_IMPORT_BYTES = 5 * 1024 * 1024
MAX_IMPORT_ROWS = 500

BASE_COLUMNS = [
    ("entity_type", 30),
    ("name", 30),
    ("pan", 20),
    ("email", 30),
    ("primary_phone", 18),
    ("contact_person", 25),
    ("secondary_phone", 18),
    ("address_line1", 30),
    ("address_line2", 30),
    ("city", 20),
    ("state", 20),
    ("pincode", 12),
    ("status", 12),
]

PREDEFINED_FIELD_NAMES = [
    "GST Number",
    "TAN Number",
    "CIN Number",
    "Website",
    "Client Code",
    "Preferred Language",
    "Custom",
]

UPPERCASE_COLUMNS = ("entity_type", "status", "pan")


def _text(value) -> Optional[str]:
    """Cell value as trimmed text; Excel stores phone numbers and pincodes as numbers"""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _custom_column_names(n: int):
    return f"custom_field_{n:02d}", f"custom_field_value_{n:02d}"


def normalise_row(raw: Dict) -> Dict:
    """Spreadsheet row -> EntityCreate payload"""
    row = {}
    for column, _ in BASE_COLUMNS:
        value = _text(raw.get(column))
        if value is not None and column in UPPERCASE_COLUMNS:
            value = value.upper()
        row[column] = value
    row["status"] = row["status"] or EntityStatus.ACTIVE.value

    custom_fields = []
    for n in range(1, MAX_CUSTOM_FIELDS + 1):
        name_column, value_column = _custom_column_names(n)
        name = _text(raw.get(name_column))
        if name:
            custom_fields.append({"name": name, "value": _text(raw.get(value_column))})
    if custom_fields:
        row["custom_fields"] = custom_fields
    return {k: v for k, v in row.items() if v is not None}


def _schema_errors(exc: SchemaError) -> List[Dict]:
    return [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]


class EntityImportService:

    def __init__(self, db: Session):
        self.db = db

    def read_rows(self, contents: bytes) -> List[Dict]:
        """Non-empty data rows of the first worksheet, each tagged with its sheet row number"""
        if len(contents) > MAX_IMPORT_BYTES:
            raise ValidationError("File too large (max 5MB)")
        try:
            df = pd.read_excel(io.BytesIO(contents), sheet_name=0, dtype=object, engine="openpyxl")
        except Exception as e:
            raise ValidationError(f"Error reading Excel file: {str(e)}")

        df.columns = [str(c).strip() for c in df.columns]
        df = df.astype(object).where(pd.notna(df), None)

        rows = []
        for index, record in enumerate(df.to_dict(orient="records")):
            if not any(record.get(key) for key in ("name", "email", "entity_type", "primary_phone")):
                continue
            record["_row"] = index + 2
            rows.append(record)

        if not rows:
            raise ValidationError("The uploaded file contains no data rows")
        if len(rows) > MAX_IMPORT_ROWS:
            raise ValidationError(f"Maximum {MAX_IMPORT_ROWS} rows allowed per import")
        return rows

    def import_entities(self, contents: bytes, actor_id: Optional[str]) -> Dict:
        """
        Create one entity per valid row.

        Rows failing validation are reported under `failed`; rows whose PAN
        already exists (in the database or earlier in the file) are `skipped`.
        The valid remainder is saved in one commit.
        """
        rows = self.read_rows(contents)

        candidates = []
        failed = []
        for raw in rows:
            try:
                payload = EntityCreate(**normalise_row(raw))
            except SchemaError as exc:
                failed.append({"row": raw["_row"], "name": _text(raw.get("name")), "errors": _schema_errors(exc)})
                continue
            candidates.append((raw["_row"], payload))

        pans = [p.pan for _, p in candidates if p.pan]
        taken = {
            pan for (pan,) in self.db.query(Entity.pan).filter(Entity.pan.in_(pans))
        } if pans else set()

        added = []
        skipped = []
        for row_number, payload in candidates:
            if payload.pan and payload.pan in taken:
                skipped.append({"row": row_number, "name": payload.name, "pan": payload.pan,
                                "reason": "An entity with this PAN already exists"})
                continue
            if payload.pan:
                taken.add(payload.pan)

            data = {k: _plain(v) for k, v in payload.model_dump().items()}
            entity = Entity(**data, created_by=actor_id, updated_by=actor_id)
            self.db.add(entity)
            added.append((row_number, entity))

        self.db.commit()
        logger.info(
            f"Entity import by {actor_id}: {len(added)} added, {len(skipped)} skipped, {len(failed)} failed"
        )
        return {
            "summary": {"added": len(added), "skipped": len(skipped), "failed": len(failed)},
            "added": [{"row": row, "id": e.id, "name": e.name} for row, e in added],
            "skipped": skipped,
            "failed": failed,
        }

    def build_template(self) -> io.BytesIO:
        wb = Workbook()
        ws = wb.active
        ws.title = "Entities Import Template"

        headers = [name for name, _ in BASE_COLUMNS]
        widths = {get_column_letter(i): width for i, (_, width) in enumerate(BASE_COLUMNS, 1)}
        for n in range(1, MAX_CUSTOM_FIELDS + 1):
            headers.extend(_custom_column_names(n))
            widths[get_column_letter(len(headers) - 1)] = 25
            widths[get_column_letter(len(headers))] = 30
        _write_header(ws, headers)
        _set_widths(ws, widths)

        example = {
            "entity_type": EntityType.PRIVATE_LIMITED_COMPANY.value,
            "name": "Acme Pvt Ltd",
            "pan": "ABCDE1234F",
            "email": "info@acme.com",
            "primary_phone": "9876543210",
            "city": "Mumbai",
            "state": "Maharashtra",
            "pincode": "400001",
            "status": EntityStatus.ACTIVE.value,
            "custom_field_01": "GST Number",
            "custom_field_value_01": "29ABCDE1234F1Z5",
            "custom_field_02": "Website",
            "custom_field_value_02": "https://acme.com",
        }
        for col_num, header in enumerate(headers, 1):
            ws.cell(row=2, column=col_num, value=example.get(header))

        last_row = MAX_IMPORT_ROWS + 1
        self._add_list_validation(
            ws, headers.index("entity_type") + 1, [t.value for t in EntityType], last_row,
            allow_blank=False, title="Entity Type",
        )
        self._add_list_validation(
            ws, headers.index("status") + 1, [s.value for s in EntityStatus], last_row,
            allow_blank=True, title="Status",
        )
        for n in range(1, MAX_CUSTOM_FIELDS + 1):
            name_column, _ = _custom_column_names(n)
            self._add_list_validation(
                ws, headers.index(name_column) + 1, PREDEFINED_FIELD_NAMES, last_row,
                allow_blank=True, title="Custom Field Name", error_style="warning",
            )

        self._write_instructions(wb.create_sheet("Instructions"))
        return _to_bytes(wb)

    @staticmethod
    def _add_list_validation(ws, column: int, options, last_row: int, allow_blank: bool, title: str,
                             error_style: str = "stop"):
        letter = get_column_letter(column)
        validation = DataValidation(
            type="list",
            formula1=f'"{",".join(options)}"',
            allow_blank=allow_blank,
            showErrorMessage=True,
            errorStyle=error_style,
            errorTitle=f"Invalid {title}",
            error=f"Please select a valid {title.lower()} from the dropdown",
            showInputMessage=True,
            promptTitle=title,
        )
        ws.add_data_validation(validation)
        validation.add(f"{letter}2:{letter}{last_row}")

    @staticmethod
    def _write_instructions(ws):
        ws.column_dimensions["A"].width = 80
        lines = [
            "ENTITY IMPORT TEMPLATE - INSTRUCTIONS",
            "",
            "REQUIRED FIELDS:",
            "• entity_type: Select from dropdown",
            "• name: Entity name",
            "",
            "OPTIONAL FIELDS:",
            "• pan: PAN number (format: ABCDE1234F)",
            "• email, primary_phone, contact_person, secondary_phone",
            "• address_line1, address_line2, city, state",
            "• pincode: 6-digit pincode",
            "• status: Select from dropdown (default: ACTIVE)",
            "",
            "CUSTOM FIELDS:",
            f"• Up to {MAX_CUSTOM_FIELDS} per entity: custom_field_XX holds the name, "
            "custom_field_value_XX the value",
            "• Predefined names: " + ", ".join(PREDEFINED_FIELD_NAMES),
            "",
            "IMPORTANT NOTES:",
            f"• Maximum {MAX_IMPORT_ROWS} rows per import",
            "• File size limit: 5MB",
            "• Rows whose PAN already exists are skipped",
            "• Phone numbers should be 10 digits",
        ]
        sections = ("REQUIRED", "OPTIONAL", "CUSTOM FIELDS", "IMPORTANT NOTES")
        for index, line in enumerate(lines, 1):
            cell = ws.cell(row=index, column=1, value=line)
            if index == 1:
                cell.fill = HEADER_FILL
                cell.font = Font(bold=True, size=14, color="FFFFFF")
            elif line.startswith(sections):
                cell.font = Font(bold=True, size=12)
