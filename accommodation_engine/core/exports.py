# core/exports.py
"""
Export helpers for analysis output.

Report document (.docx): title page, the markdown narrative converted to
Word headings/paragraphs/bullets, and an item master summary table.

Item master workbook (.xlsx): one row per record plus a quality-control sheet.
"""
import re
from io import BytesIO
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import pandas as pd
from docx import Document
from docx.shared import Pt, RGBColor
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.enum.table import WD_TABLE_ALIGNMENT

from ..models.item_master import K12_DISPLAY_FIELDS, ItemMasterRecord

ITEM_MASTER_COLUMNS = [
    "canonical_key",
    "grade_band",
    *K12_DISPLAY_FIELDS,
    "plain_language_label",
    "accommodations",
    "evidence_basis",
    "validation_status",
    "inference_level",
    "resolution_method",
    "resolution_tier",
    "source",
    "module_type",
]

QC_COLUMNS = ["canonical_key", "validation_status", "inference_level", "inferred_fields", "resolution_tier", "source"]

_HEADING = re.compile(r"^(#{1,6})\s+(.*)$")
_BULLET = re.compile(r"^\s*[-*]\s+(.*)$")
_EMPHASIS = re.compile(r"\*\*(.+?)\*\*|\*(.+?)\*")

Record = Union[ItemMasterRecord, Dict[str, Any]]


def _rows(records: Sequence[Record]) -> List[Dict[str, Any]]:
    return [r.model_dump(mode="json") if isinstance(r, ItemMasterRecord) else dict(r) for r in records]


# ─── Shared helpers ──────────────────────────────────────────────────

def _add_title_page(doc: Document, title: str, subtitle: str, case_id: str, generated_at: datetime):
    """Add a formatted title page."""
    for _ in range(4):
        doc.add_paragraph("")

    p = doc.add_paragraph()
    p.alignment = WD_ALIGN_PARAGRAPH.CENTER
    run = p.add_run(title)
    run.bold = True
    run.font.size = Pt(28)
    run.font.color.rgb = RGBColor(15, 23, 42)

    p = doc.add_paragraph()
    p.alignment = WD_ALIGN_PARAGRAPH.CENTER
    run = p.add_run(subtitle)
    run.font.size = Pt(14)
    run.font.color.rgb = RGBColor(100, 116, 139)

    doc.add_paragraph("")

    for line in (f"Case ID: {case_id}", f"Generated: {generated_at.strftime('%B %d, %Y %H:%M')}"):
        p = doc.add_paragraph()
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = p.add_run(line)
        run.font.size = Pt(10)
        run.font.color.rgb = RGBColor(148, 163, 184)

    doc.add_page_break()


def _add_table(doc: Document, headers: List[str], rows: List[List[str]]):
    """Add a formatted table with headers and data rows."""
    table = doc.add_table(rows=1 + len(rows), cols=len(headers))
    table.style = "Light Grid Accent 1"
    table.alignment = WD_TABLE_ALIGNMENT.CENTER

    for i, header in enumerate(headers):
        cell = table.rows[0].cells[i]
        cell.text = header
        for paragraph in cell.paragraphs:
            for run in paragraph.runs:
                run.bold = True
                run.font.size = Pt(9)

    for r_idx, row_data in enumerate(rows):
        for c_idx, value in enumerate(row_data):
            cell = table.rows[r_idx + 1].cells[c_idx]
            cell.text = str(value) if value is not None else ""
            for paragraph in cell.paragraphs:
                for run in paragraph.runs:
                    run.font.size = Pt(9)


def _add_markdown_runs(paragraph, text: str):
    """Add text to a paragraph, turning **bold** and *italic* spans into runs."""
    position = 0
    for match in _EMPHASIS.finditer(text):
        if match.start() > position:
            paragraph.add_run(text[position:match.start()])
        if match.group(1) is not None:
            paragraph.add_run(match.group(1)).bold = True
        else:
            paragraph.add_run(match.group(2)).italic = True
        position = match.end()
    if position < len(text):
        paragraph.add_run(text[position:])


def _add_markdown(doc: Document, markdown: str):
    for line in markdown.splitlines():
        stripped = line.strip()
        if not stripped or stripped == "---":
            continue

        heading = _HEADING.match(stripped)
        if heading:
            level = min(len(heading.group(1)), 4)
            doc.add_heading(_EMPHASIS.sub(lambda m: m.group(1) or m.group(2), heading.group(2)), level=level)
            continue

        bullet = _BULLET.match(line)
        if bullet:
            _add_markdown_runs(doc.add_paragraph(style="List Bullet"), bullet.group(1))
            continue

        _add_markdown_runs(doc.add_paragraph(), stripped)


# ─── Report document ────────────────────────────────────────────────

def generate_report_document(
    markdown_report: str,
    records: Sequence[Record],
    case_id: str,
    generated_at: Optional[datetime] = None,
) -> bytes:
    """Generate the accommodation report (.docx) and return its bytes."""
    doc = Document()

    style = doc.styles["Normal"]
    style.font.name = "Calibri"
    style.font.size = Pt(11)

    _add_title_page(
        doc,
        "Accommodation Analysis Report",
        "Evidence-linked supports and accommodations",
        case_id,
        generated_at or datetime.now(),
    )

    _add_markdown(doc, markdown_report or "")

    rows = _rows(records)
    if rows:
        doc.add_page_break()
        doc.add_heading("Item Master Summary", level=1)
        _add_table(
            doc,
            ["Canonical Key", "Label", "Status", "Source"],
            [
                [
                    row.get("canonical_key"),
                    row.get("item_label"),
                    row.get("validation_status") or "validated",
                    row.get("source"),
                ]
                for row in rows
            ],
        )

    buffer = BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


# ─── Item master workbook ───────────────────────────────────────────

def item_master_frame(records: Sequence[Record]) -> pd.DataFrame:
    return pd.DataFrame(_rows(records), columns=ITEM_MASTER_COLUMNS)


def quality_control_frame(records: Sequence[Record]) -> pd.DataFrame:
    frame = pd.DataFrame(_rows(records), columns=QC_COLUMNS)
    frame["inferred_fields"] = frame["inferred_fields"].apply(
        lambda value: ", ".join(value) if isinstance(value, list) else ""
    )
    return frame


def to_excel(records: Sequence[Record], outpath: Union[Path, BytesIO]):
    with pd.ExcelWriter(outpath, engine="openpyxl") as xw:
        item_master_frame(records).to_excel(xw, sheet_name="ItemMaster", index=False)
        quality_control_frame(records).to_excel(xw, sheet_name="QualityControl", index=False)


def item_master_workbook(records: Sequence[Record]) -> bytes:
    buffer = BytesIO()
    to_excel(records, buffer)
    return buffer.getvalue()
