"""Data models for the Evidence Workbench.

Dataclasses for document groups, pages, checklist bindings, evidence
modules, extracted fields and issues. All models serialize to plain dicts
via to_dict() for snapshots handed to the UI layer.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.errors import InvalidOperation

# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

GROUP_UNREVIEWED = "unreviewed"
GROUP_REVIEWED = "reviewed"

BINDING_SECTION = "section"
BINDING_ASSESSMENT = "assessment"

MODULE_PENDING = "pending"
MODULE_EXTRACTED = "extracted"
MODULE_NEEDS_REVIEW = "needs-review"
MODULE_REVIEWED = "reviewed"
MODULE_STALE = "stale"
MODULE_STATES = (MODULE_PENDING, MODULE_EXTRACTED, MODULE_NEEDS_REVIEW, MODULE_REVIEWED, MODULE_STALE)

FIELD_UNVERIFIED = "unverified"
FIELD_CONFIRMED = "confirmed"
FIELD_REJECTED = "rejected"
FIELD_EDITED = "edited"
FIELD_STATUSES = (FIELD_UNVERIFIED, FIELD_CONFIRMED, FIELD_REJECTED, FIELD_EDITED)

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_ERROR = "error"
SEVERITIES = (SEVERITY_INFO, SEVERITY_WARNING, SEVERITY_ERROR)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def new_id(prefix: str = "") -> str:
    """Generate a short unique identifier (12 hex chars, optional prefix)."""
    return f"{prefix}{uuid.uuid4().hex[:12]}"


# ---------------------------------------------------------------------------
# Document Store records
# ---------------------------------------------------------------------------


@dataclass
class Page:
    """One uploaded file/page. Owned by exactly one group at a time."""

    id: str
    group_id: str
    filename: str
    position: int = 0
    uploaded_at: str = ""
    payload_ref: str = ""      # opaque handle owned by the upload service

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DocumentGroup:
    """A named category of pages ("Passport", "Bank Statements")."""

    id: str
    title: str
    section: str
    tag: str = ""              # document-type tag, defaults to the title
    rank: int = 0
    page_ids: list[str] = field(default_factory=list)
    status: str = GROUP_UNREVIEWED
    has_changes: bool = False
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @property
    def page_count(self) -> int:
        return len(self.page_ids)


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GroupChecklistBinding:
    """A reference from a group to a checklist section or the case assessment.

    Two cases only: ``section`` (with a section id) and ``assessment``
    (without one). Use the ``for_section`` / ``for_assessment`` constructors.
    """

    type: str
    section_id: str | None = None

    def __post_init__(self) -> None:
        if self.type == BINDING_SECTION and not self.section_id:
            raise ValueError("A section binding needs a section_id.")
        if self.type == BINDING_ASSESSMENT and self.section_id is not None:
            raise ValueError("An assessment binding takes no section_id.")
        if self.type not in (BINDING_SECTION, BINDING_ASSESSMENT):
            raise ValueError(f"Unknown binding type: {self.type}")

    @classmethod
    def for_section(cls, section_id: str) -> GroupChecklistBinding:
        return cls(type=BINDING_SECTION, section_id=section_id)

    @classmethod
    def for_assessment(cls) -> GroupChecklistBinding:
        return cls(type=BINDING_ASSESSMENT)

    @classmethod
    def from_consumer(cls, consumer: str) -> GroupChecklistBinding:
        """Build a binding from a consumer key ("assessment" or a section id)."""
        if consumer == BINDING_ASSESSMENT:
            return cls.for_assessment()
        return cls.for_section(consumer)

    @property
    def consumer(self) -> str:
        """The key evidence modules use to name what they back."""
        return BINDING_ASSESSMENT if self.type == BINDING_ASSESSMENT else str(self.section_id)

    def to_dict(self) -> dict:
        return {"type": self.type, "section_id": self.section_id}


# ---------------------------------------------------------------------------
# Evidence verification records
# ---------------------------------------------------------------------------


@dataclass
class BoundingBox:
    """Highlight region on a page, in percentages of the page size."""

    x: float
    y: float
    width: float
    height: float


@dataclass
class FieldSource:
    """Provenance of an extracted value.

    Once ``manually_entered`` is set the document reference is kept for
    audit only; it no longer backs the value.
    """

    document_id: str = ""
    page_number: int | None = None
    region: BoundingBox | None = None
    manually_entered: bool = False

    @property
    def authoritative(self) -> bool:
        return bool(self.document_id) and not self.manually_entered

    @classmethod
    def from_dict(cls, d: dict | None) -> FieldSource:
        """Build a source from extraction input; None means no provenance.

        Raises:
            InvalidOperation: if the source or its region is malformed.
        """
        if d is None:
            return cls()
        if isinstance(d, FieldSource):
            return d
        if not isinstance(d, dict):
            raise InvalidOperation(f"Field source must be an object, got {type(d).__name__}.")

        region = d.get("region")
        if region is not None:
            if not isinstance(region, dict):
                raise InvalidOperation("Field source region must be an object.")
            try:
                region = BoundingBox(
                    x=float(region["x"]),
                    y=float(region["y"]),
                    width=float(region["width"]),
                    height=float(region["height"]),
                )
            except KeyError as exc:
                raise InvalidOperation(f"Field source region is missing '{exc.args[0]}'.") from exc
            except (TypeError, ValueError) as exc:
                raise InvalidOperation(f"Field source region is not numeric: {exc}") from exc

        document_id = d.get("document_id") or ""
        if not isinstance(document_id, str):
            raise InvalidOperation("Field source document_id must be a string.")
        return cls(
            document_id=document_id,
            page_number=d.get("page_number"),
            region=region,
            manually_entered=bool(d.get("manually_entered", False)),
        )


@dataclass
class ExtractedField:
    """One schema-defined datum pulled from a document."""

    key: str
    label: str = ""
    value: Any = None
    source: FieldSource = field(default_factory=FieldSource)
    status: str = FIELD_UNVERIFIED
    editable: bool = True
    confidence: float = 0.0
    stale: bool = False        # source page removed, or re-review required
    original_value: Any = None
    verified_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> ExtractedField:
        """Build a field from extraction input.

        Raises:
            InvalidOperation: if ``key`` is missing or the source is malformed.
        """
        if not isinstance(d, dict):
            raise InvalidOperation(f"Extracted field must be an object, got {type(d).__name__}.")
        if not isinstance(d.get("key"), str) or not d["key"]:
            raise InvalidOperation("Extracted field is missing required key 'key'.")
        data = {k: v for k, v in d.items() if k in cls.__dataclass_fields__}
        source = FieldSource.from_dict(data.pop("source", None))
        return cls(source=source, **data)


@dataclass
class Issue:
    """A problem detected on a module or one of its fields."""

    id: str
    severity: str
    message: str
    field_key: str | None = None
    resolved: bool = False
    resolved_at: str = ""
    resolved_by: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> Issue:
        if not isinstance(d, dict):
            raise InvalidOperation(f"Issue must be an object, got {type(d).__name__}.")
        for required in ("severity", "message"):
            if required not in d:
                raise InvalidOperation(f"Issue is missing required key '{required}'.")
        data = {k: v for k, v in d.items() if k in cls.__dataclass_fields__}
        data.setdefault("id", new_id("iss_"))
        return cls(**data)


@dataclass
class EvidenceModule:
    """One instantiated evidence requirement (e.g. "Payslip #2")."""

    id: str
    name: str
    doc_type: str
    consumer: str              # binding consumer key: section id or "assessment"
    status: str = MODULE_PENDING
    fields: list[ExtractedField] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    source_group_ids: list[str] = field(default_factory=list)
    needs_reanalysis: bool = False
    reanalysis_requests: int = 0
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    def get_field(self, key: str) -> ExtractedField | None:
        for f in self.fields:
            if f.key == key:
                return f
        return None

    def get_issue(self, issue_id: str) -> Issue | None:
        for issue in self.issues:
            if issue.id == issue_id:
                return issue
        return None

    def unverified_fields(self) -> list[str]:
        return [f.key for f in self.fields if f.status == FIELD_UNVERIFIED]

    def open_issues(self, *severities: str) -> list[Issue]:
        """Unresolved issues, optionally filtered to the given severities."""
        return [
            i for i in self.issues
            if not i.resolved and (not severities or i.severity in severities)
        ]
