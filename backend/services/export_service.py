"""
Subscription export (JSON, Excel, PDF) and JSON import parsing.

JSON is the full-fidelity format and the only one accepted back on import.
Excel and PDF carry a flattened summary for people to read.
"""
import io
import json
import os
import uuid
from dataclasses import dataclass
from datetime import timedelta, timezone
from enum import Enum
from typing import Any, Dict, List
import logging

# Excel support
from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill, Border, Side
from openpyxl.utils import get_column_letter

# PDF support
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib import colors
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from pydantic import ValidationError

from models import Subscription, SubscriptionStatus, Tier
from services.store_errors import ImportValidationError
from services.subscription_builder import calculate_end_date
from services.tier_classifier import tier_for
from utils import messages
from utils.formatting import format_currency, format_status, format_tier
from utils.timestamps import parse_date, parse_timestamp

logger = logging.getLogger(__name__)

EXPORT_BASENAME = "الاشتراكات_النشطة"
SHEET_TITLE = "الاشتراكات"
PDF_TITLE = "قائمة الاشتراكات"

# Optional TTF with Arabic glyphs; the built-in Helvetica has none
PDF_FONT_PATH = os.getenv("EXPORT_PDF_FONT")

# Imported timestamps are read as calendar dates in the business timezone (Kuwait, no DST)
IMPORT_TZ = timezone(timedelta(hours=float(os.getenv("IMPORT_UTC_OFFSET_HOURS", "3"))))

XLSX_COLUMNS = [
    ("id", "معرف الاشتراك"),
    ("clientName", "اسم العميل"),
    ("clientPhone", "رقم هاتف العميل"),
    ("tier", "الفئة"),
    ("duration", "المدة (أشهر)"),
    ("startDate", "تاريخ البدء"),
    ("endDate", "تاريخ الانتهاء"),
    ("totalPrice", "السعر الإجمالي"),
    ("status", "الحالة"),
    ("createdAt", "تاريخ الإنشاء"),
]

PDF_HEADERS = ["العميل", "الفئة", "تاريخ البدء", "تاريخ الانتهاء", "السعر", "الحالة"]


class ExportFormat(str, Enum):
    JSON = "json"
    EXCEL = "excel"
    PDF = "pdf"


@dataclass
class ExportFile:
    filename: str
    media_type: str
    content: bytes


def _display_date(value: Any) -> str:
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else ""


def _display_timestamp(value: Any) -> str:
    parsed = parse_timestamp(value)
    return parsed.strftime("%Y-%m-%d %H:%M") if parsed else ""


def summary_row(subscription: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten one subscription into the tabular export columns."""
    return {
        "id": subscription.get("id", ""),
        "clientName": subscription.get("clientName", ""),
        "clientPhone": subscription.get("clientPhone", ""),
        "tier": subscription.get("tier", ""),
        "duration": subscription.get("duration", ""),
        "startDate": _display_date(subscription.get("startDate")),
        "endDate": _display_date(subscription.get("endDate")),
        "totalPrice": subscription.get("totalPrice", 0),
        "status": subscription.get("status", ""),
        "createdAt": _display_timestamp(subscription.get("createdAt")),
    }


# ============================================
# Export Formatters
# ============================================

def to_json(subscriptions: List[Dict[str, Any]]) -> bytes:
    return json.dumps(subscriptions, indent=2, ensure_ascii=False, default=str).encode("utf-8")


def to_xlsx(subscriptions: List[Dict[str, Any]]) -> bytes:
    output = io.BytesIO()

    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.sheet_view.rightToLeft = True

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="1E3A5F", end_color="1E3A5F", fill_type="solid")
    header_alignment = Alignment(horizontal="center", vertical="center")
    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    for col_idx, (_, header) in enumerate(XLSX_COLUMNS, 1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_alignment
        cell.border = thin_border

    for row_idx, subscription in enumerate(subscriptions, 2):
        row = summary_row(subscription)
        for col_idx, (key, _) in enumerate(XLSX_COLUMNS, 1):
            cell = ws.cell(row=row_idx, column=col_idx, value=row[key])
            cell.border = thin_border
            if key == "totalPrice":
                cell.number_format = '#,##0.000'

    # Auto-adjust column widths
    for col_idx, (_, header) in enumerate(XLSX_COLUMNS, 1):
        max_length = len(str(header))
        for row in ws.iter_rows(min_row=2, max_row=ws.max_row, min_col=col_idx, max_col=col_idx):
            for cell in row:
                if cell.value:
                    max_length = max(max_length, len(str(cell.value)))
        ws.column_dimensions[get_column_letter(col_idx)].width = min(max_length + 2, 50)

    wb.save(output)
    return output.getvalue()


def _pdf_font() -> str:
    if not PDF_FONT_PATH:
        return "Helvetica"
    if "ExportArabic" not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(TTFont("ExportArabic", PDF_FONT_PATH))
    return "ExportArabic"


def to_pdf(subscriptions: List[Dict[str, Any]]) -> bytes:
    output = io.BytesIO()
    font_name = _pdf_font()

    doc = SimpleDocTemplate(
        output,
        pagesize=landscape(A4),
        rightMargin=30,
        leftMargin=30,
        topMargin=30,
        bottomMargin=30
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'ExportTitle',
        parent=styles['Heading1'],
        fontName=font_name,
        fontSize=18,
        spaceAfter=10,
        alignment=1  # Center
    )
    elements = [Paragraph(PDF_TITLE, title_style), Spacer(1, 20)]

    table_data = [PDF_HEADERS]
    for subscription in subscriptions:
        row = summary_row(subscription)
        table_data.append([
            row["clientName"],
            format_tier(row["tier"]),
            row["startDate"],
            row["endDate"],
            format_currency(row["totalPrice"]),
            format_status(row["status"]),
        ])

    available_width = landscape(A4)[0] - 60
    col_width = available_width / len(PDF_HEADERS)
    table = Table(table_data, colWidths=[col_width] * len(PDF_HEADERS), repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1E3A5F')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, -1), font_name),
        ('FONTSIZE', (0, 0), (-1, 0), 9),
        ('FONTSIZE', (0, 1), (-1, -1), 8),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 5),
        ('TOPPADDING', (0, 0), (-1, -1), 5),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#F5F5F5')]),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
    ]))
    elements.append(table)

    doc.build(elements)
    return output.getvalue()


FORMATTERS = {
    ExportFormat.JSON: (to_json, "application/json", "json"),
    ExportFormat.EXCEL: (to_xlsx, "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
    ExportFormat.PDF: (to_pdf, "application/pdf", "pdf"),
}


def export_subscriptions(subscriptions: List[Dict[str, Any]], fmt: ExportFormat) -> ExportFile:
    formatter, media_type, extension = FORMATTERS[ExportFormat(fmt)]
    return ExportFile(
        filename=f"{EXPORT_BASENAME}.{extension}",
        media_type=media_type,
        content=formatter(subscriptions),
    )


# ============================================
# Import
# ============================================

def _local_calendar_date(value: Any) -> Any:
    """'YYYY-MM-DD' for a full ISO timestamp, taken in IMPORT_TZ; anything else unchanged."""
    if not isinstance(value, str) or "T" not in value:
        return value
    parsed = parse_timestamp(value)
    if parsed is None:
        return value
    return parsed.astimezone(IMPORT_TZ).date().isoformat()


def parse_import(payload: Any) -> List[Dict[str, Any]]:
    """Validate an import payload and normalize every record.

    The whole batch is rejected on the first bad record so that an invalid
    file never partially lands in the store.
    """
    if not isinstance(payload, list):
        raise ImportValidationError(messages.IMPORT_NOT_ARRAY)

    for index, item in enumerate(payload):
        if not isinstance(item, dict) or "clientName" not in item or "startDate" not in item:
            logger.warning(f"Import rejected: record {index} is missing clientName/startDate")
            raise ImportValidationError(messages.IMPORT_BAD_SHAPE)
        if parse_date(item["startDate"]) is None:
            logger.warning(f"Import rejected: record {index} has unparseable startDate {item['startDate']!r}")
            raise ImportValidationError(messages.IMPORT_BAD_SHAPE)

    valid_statuses = {s.value for s in SubscriptionStatus}
    valid_tiers = {t.value for t in Tier}

    records = []
    for index, item in enumerate(payload):
        record = dict(item)
        record["id"] = record.get("id") or str(uuid.uuid4())
        if record.get("status") not in valid_statuses:
            record["status"] = SubscriptionStatus.ACTIVE.value
        if record.get("tier") not in valid_tiers:
            record["tier"] = tier_for(record).value
        record["manualTasks"] = record.get("manualTasks") or []
        for field in ("startDate", "endDate"):
            if field in record:
                record[field] = _local_calendar_date(record[field])

        try:
            subscription = Subscription.model_validate({**record, "endDate": record.get("endDate") or ""})
        except ValidationError as e:
            logger.warning(f"Import rejected: record {index} failed validation: {e.errors()}")
            raise ImportValidationError(messages.IMPORT_BAD_SHAPE)

        if parse_date(record.get("endDate")) is None:
            record["endDate"] = calculate_end_date(record["startDate"], subscription.duration)
        records.append(record)
    return records
