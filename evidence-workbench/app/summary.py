"""Review summary export for the Evidence Workbench.

Builds a per-module summary of verification progress and renders it as a
Word document for the case file, in the same house style as the exhibit
index export.
"""

from __future__ import annotations

import io
from datetime import date

from docx import Document
from docx.enum.table import WD_TABLE_ALIGNMENT
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Inches, Pt

from app.catalog import consumer_label
from app.models import FIELD_CONFIRMED, FIELD_EDITED, FIELD_REJECTED, SEVERITY_ERROR, SEVERITY_WARNING
from app.verification import VerificationEngine


def generate_review_rows(engine: VerificationEngine) -> list[dict]:
    """One row per module: status, field tallies and open issues.

    Returns:
        List of dicts with keys: module, section, status, confirmed, edited,
        rejected, unverified, stale_fields, open_errors, open_warnings.
    """
    rows: list[dict] = []
    for module in engine.modules():
        statuses = [f.status for f in module.fields]
        rows.append({
            "module": module.name,
            "section": consumer_label(module.consumer),
            "status": module.status,
            "confirmed": statuses.count(FIELD_CONFIRMED),
            "edited": statuses.count(FIELD_EDITED),
            "rejected": statuses.count(FIELD_REJECTED),
            "unverified": len(module.unverified_fields()),
            "stale_fields": sum(1 for f in module.fields if f.stale),
            "open_errors": [i.message for i in module.open_issues(SEVERITY_ERROR)],
            "open_warnings": [i.message for i in module.open_issues(SEVERITY_WARNING)],
        })
    return rows


def generate_review_docx(engine: VerificationEngine, case_name: str = "") -> bytes:
    """Render the review summary as a .docx file and return its bytes."""
    doc = Document()

    for section in doc.sections:
        section.top_margin = Inches(1)
        section.bottom_margin = Inches(1)
        section.left_margin = Inches(1)
        section.right_margin = Inches(1)

    def _run(para, text: str, size: int = 12, bold: bool = False, italic: bool = False):
        r = para.add_run(text)
        r.font.name = "Times New Roman"
        r.font.size = Pt(size)
        r.bold = bold
        r.italic = italic
        return r

    p = doc.add_paragraph()
    p.alignment = WD_ALIGN_PARAGRAPH.CENTER
    _run(p, "EVIDENCE REVIEW SUMMARY", size=14, bold=True)

    if case_name:
        p = doc.add_paragraph()
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER
        _run(p, f"In the Matter of: {case_name}", italic=True)

    stats = engine.summary()
    p = doc.add_paragraph()
    _run(
        p,
        f"{stats['reviewed_modules']} of {stats['total_modules']} modules reviewed; "
        f"{stats['blocking_issues']} blocking issue(s), {stats['warning_issues']} warning(s).",
        size=11,
    )

    table = doc.add_table(rows=1, cols=5)
    table.style = "Table Grid"
    table.alignment = WD_TABLE_ALIGNMENT.CENTER

    headers = ["Evidence", "Section", "Status", "Fields (confirmed/edited/rejected/open)", "Open Issues"]
    for i, header_text in enumerate(headers):
        cell = table.rows[0].cells[i]
        cell.text = ""
        _run(cell.paragraphs[0], header_text, size=11, bold=True)

    for row in generate_review_rows(engine):
        cells = table.add_row().cells
        values = [
            row["module"],
            row["section"],
            row["status"],
            f"{row['confirmed']}/{row['edited']}/{row['rejected']}/{row['unverified']}",
            "; ".join(row["open_errors"] + row["open_warnings"]),
        ]
        for i, text in enumerate(values):
            cells[i].text = ""
            _run(cells[i].paragraphs[0], text, size=11)

    doc.add_paragraph()
    p = doc.add_paragraph()
    p.alignment = WD_ALIGN_PARAGRAPH.RIGHT
    _run(p, f"Generated: {date.today().strftime('%B %d, %Y')}", size=9, italic=True)

    buf = io.BytesIO()
    doc.save(buf)
    buf.seek(0)
    return buf.read()
