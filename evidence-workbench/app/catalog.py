"""Static catalogs for the Evidence Workbench.

Checklist section labels, document-type schemas (the fields an extraction
is expected to produce) and the mapping from document tags to the checklist
section they usually back. Read-only inputs; the workbench never mutates them.

Part of the O'Brien Immigration Law tool suite.
"""

from __future__ import annotations

import sys as _sys
from dataclasses import dataclass
from pathlib import Path

_sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))
from shared.config_store import get_config_value

TOOL_NAME = "evidence-workbench"


@dataclass(frozen=True)
class SchemaFieldDef:
    """A single field a document type is expected to yield."""

    key: str
    label: str
    data_type: str = "string"  # string, date, number, currency, select
    required: bool = True


# ---------------------------------------------------------------------------
# Checklist sections
# ---------------------------------------------------------------------------

_DEFAULT_SECTION_LABELS: dict[str, str] = {
    "personal": "Personal Details",
    "employment": "Employment",
    "financial": "Financial",
    "travel": "Travel History",
    "education": "Education",
    "family": "Family",
    "other": "Other",
}

ASSESSMENT_LABEL = "Case Assessment"

# ---------------------------------------------------------------------------
# Document tags -> checklist section
# ---------------------------------------------------------------------------

_DEFAULT_TAG_SECTIONS: dict[str, str] = {
    "Passport": "personal",
    "BRP": "personal",
    "Marriage Certificate": "family",
    "Bank Statement": "financial",
    "P60": "financial",
    "Payslip": "employment",
    "Payslips": "employment",
    "Employment Letter": "employment",
    "Certificate of Sponsorship": "employment",
    "Contract": "employment",
    "Degree Certificate": "education",
    "SELT Certificate": "education",
    "Utility Bill": "other",
}

# ---------------------------------------------------------------------------
# Document-type schemas
# ---------------------------------------------------------------------------

_DEFAULT_DOCUMENT_SCHEMAS: dict[str, list[dict]] = {
    "passport": [
        {"key": "surname", "label": "Surname"},
        {"key": "given-names", "label": "Given Names"},
        {"key": "nationality", "label": "Nationality"},
        {"key": "date-of-birth", "label": "Date of Birth", "data_type": "date"},
        {"key": "passport-number", "label": "Passport Number"},
        {"key": "date-of-issue", "label": "Date of Issue", "data_type": "date"},
        {"key": "date-of-expiry", "label": "Date of Expiry", "data_type": "date"},
        {"key": "place-of-birth", "label": "Place of Birth", "required": False},
    ],
    "bank-statement": [
        {"key": "bank-name", "label": "Bank Name"},
        {"key": "account-holder", "label": "Account Holder"},
        {"key": "statement-period-start", "label": "Statement Period Start", "data_type": "date"},
        {"key": "statement-period-end", "label": "Statement Period End", "data_type": "date"},
        {"key": "closing-balance", "label": "Closing Balance", "data_type": "currency"},
        {"key": "lowest-balance", "label": "Lowest Balance in Period", "data_type": "currency"},
        {"key": "consecutive-days-held", "label": "Consecutive Days Held", "data_type": "number"},
    ],
    "payslip": [
        {"key": "employer-name", "label": "Employer Name"},
        {"key": "employee-name", "label": "Employee Name"},
        {"key": "pay-date", "label": "Pay Date", "data_type": "date"},
        {"key": "gross-pay", "label": "Gross Pay", "data_type": "currency"},
        {"key": "net-pay", "label": "Net Pay", "data_type": "currency"},
    ],
    "employer-letter": [
        {"key": "employer-name", "label": "Employer Name"},
        {"key": "employee-name", "label": "Employee Name"},
        {"key": "job-title", "label": "Job Title"},
        {"key": "employment-start", "label": "Employment Start Date", "data_type": "date"},
        {"key": "current-salary", "label": "Current Annual Salary", "data_type": "currency"},
        {"key": "letter-date", "label": "Letter Date", "data_type": "date"},
    ],
    "selt": [
        {"key": "test-type", "label": "Test Type"},
        {"key": "test-date", "label": "Test Date", "data_type": "date"},
        {"key": "reference-number", "label": "Certificate Reference"},
        {"key": "overall-cefr", "label": "Overall CEFR Level"},
    ],
}

# ── Config-aware loading (JSON override with hardcoded fallback) ─────────────
SECTION_LABELS: dict[str, str] = get_config_value(TOOL_NAME, "section_labels", _DEFAULT_SECTION_LABELS)
TAG_SECTIONS: dict[str, str] = get_config_value(TOOL_NAME, "tag_sections", _DEFAULT_TAG_SECTIONS)
DOCUMENT_SCHEMAS: dict[str, list[dict]] = get_config_value(TOOL_NAME, "document_schemas", _DEFAULT_DOCUMENT_SCHEMAS)


def consumer_label(consumer: str) -> str:
    """Human-readable label for a binding consumer ("assessment" or a section id)."""
    if consumer == "assessment":
        return ASSESSMENT_LABEL
    return SECTION_LABELS.get(consumer, consumer)


def section_for_tag(tag: str) -> str | None:
    """Checklist section a document tag usually backs, matched case-insensitively."""
    lowered = tag.strip().lower()
    for known, section in TAG_SECTIONS.items():
        if known.lower() == lowered:
            return section
    return None


def get_schema(doc_type: str) -> list[SchemaFieldDef]:
    """Return the field definitions for a document type ([] if unknown)."""
    return [
        SchemaFieldDef(
            key=f["key"],
            label=f.get("label", f["key"]),
            data_type=f.get("data_type", "string"),
            required=f.get("required", True),
        )
        for f in DOCUMENT_SCHEMAS.get(doc_type, [])
    ]
