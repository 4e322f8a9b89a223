"""FastAPI backend for the Evidence Workbench tool.

Exposes the document organizer (categories, pages, drag-and-drop), the
checklist bindings, the evidence verification workbench and the
confirmation flow for gated edits. Gated endpoints answer with the gate
decision; when it is ``confirm`` the response carries the prompt and a
ticket that the UI accepts or cancels through /api/confirmations.

Part of the O'Brien Immigration Law tool suite.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from app.catalog import DOCUMENT_SCHEMAS, SECTION_LABELS
from app.drag_drop import DragEvent
from app.errors import (
    CrossSectionMove,
    DuplicateTitle,
    EmptySelection,
    IncompleteReview,
    IncompleteSet,
    InvalidOperation,
    InvalidTransition,
    NotFound,
    WorkbenchError,
)
from app.summary import generate_review_docx
from app.workbench import Workbench

app = FastAPI(title="Evidence Workbench API")

# Process-wide workbench; state lives in memory only
_workbench = Workbench()

_STATUS_CODES: dict[type, int] = {
    NotFound: 404,
    DuplicateTitle: 409,
    IncompleteSet: 409,
    CrossSectionMove: 409,
    IncompleteReview: 409,
    InvalidTransition: 409,
    EmptySelection: 400,
    InvalidOperation: 400,
}


@app.exception_handler(WorkbenchError)
def _workbench_error(request: Request, exc: WorkbenchError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)), 400)
    return JSONResponse(status_code=status, content={"detail": str(exc), "error": type(exc).__name__})


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class CreateGroupRequest(BaseModel):
    """Payload for creating a new document category."""

    section: str
    title: str
    tag: str | None = None


class RenameRequest(BaseModel):
    title: str


class UploadPagesRequest(BaseModel):
    """Payload for adding uploaded pages to a category."""

    filenames: list[str]
    payload_refs: list[str] | None = None


class MovePageRequest(BaseModel):
    from_group_id: str
    to_group_id: str
    target_index: int


class ReorderGroupsRequest(BaseModel):
    group_ids: list[str]


class MergeRequest(BaseModel):
    dest_id: str


class SplitRequest(BaseModel):
    page_ids: list[str]
    title: str


class DragRequest(BaseModel):
    """A finished drag gesture from the document manager."""

    item_kind: str      # page | group
    item_id: str
    target_kind: str    # page | group | gutter
    target_id: str
    position: str = "into"


class BindingRequest(BaseModel):
    consumer: str       # "assessment" or a checklist section id


class CreateModuleRequest(BaseModel):
    doc_type: str
    consumer: str
    source_group_ids: list[str] = []
    name: str | None = None


class ExtractionRequest(BaseModel):
    """Extraction results delivered by the analysis service."""

    fields: list[dict[str, Any]]
    issues: list[dict[str, Any]] = []


class FieldVerificationRequest(BaseModel):
    status: str         # confirmed | rejected | edited
    edited_value: Any = None
    verified_by: str = ""


class IssueRequest(BaseModel):
    severity: str       # info | warning | error
    message: str
    field_key: str | None = None


class ResolveIssueRequest(BaseModel):
    resolved_by: str = ""


class ExportRequest(BaseModel):
    case_name: str = ""


# ---------------------------------------------------------------------------
# Catalogs and snapshots
# ---------------------------------------------------------------------------

@app.get("/api/sections")
def list_sections() -> dict[str, str]:
    """Checklist sections and their display labels."""
    return SECTION_LABELS


@app.get("/api/document-types")
def list_document_types() -> list[str]:
    return sorted(DOCUMENT_SCHEMAS)


@app.get("/api/workbench")
def get_snapshot() -> dict[str, Any]:
    """Full state for rendering: groups, bindings, modules, pending prompts."""
    return _workbench.snapshot()


@app.get("/api/activity")
def get_activity(limit: int = Query(50, ge=1, le=500), group_id: str | None = None) -> list[dict[str, Any]]:
    if group_id:
        entries = _workbench.activity.for_group(group_id, limit=limit)
    else:
        entries = _workbench.activity.recent(limit=limit)
    return [e.to_dict() for e in entries]


# ---------------------------------------------------------------------------
# Document groups and pages
# ---------------------------------------------------------------------------

@app.get("/api/groups")
def list_groups() -> list[dict[str, Any]]:
    return _workbench.store.snapshot()


@app.post("/api/groups")
def create_group(request: CreateGroupRequest) -> dict[str, Any]:
    group_id = _workbench.store.create_group(request.section, request.title, tag=request.tag)
    result = _workbench.store.get_group(group_id).to_dict()
    result["suggested_consumer"] = _workbench.suggest_consumer(group_id)
    return result


@app.post("/api/groups/{group_id}/pages")
def upload_pages(group_id: str, request: UploadPagesRequest) -> dict[str, Any]:
    page_ids = _workbench.store.add_pages(group_id, request.filenames, request.payload_refs)
    return {"group_id": group_id, "page_ids": page_ids}


@app.delete("/api/pages/{page_id}")
def remove_page(page_id: str) -> dict[str, Any]:
    group_id = _workbench.store.remove_page(page_id)
    return {"status": "deleted", "page_id": page_id, "group_id": group_id}


@app.post("/api/pages/{page_id}/move")
def move_page(page_id: str, request: MovePageRequest) -> dict[str, Any]:
    _workbench.store.move_page(page_id, request.from_group_id, request.to_group_id, request.target_index)
    return _workbench.store.get_page(page_id).to_dict()


@app.put("/api/sections/{section}/order")
def reorder_groups(section: str, request: ReorderGroupsRequest) -> list[dict[str, Any]]:
    _workbench.store.reorder_groups(section, request.group_ids)
    return [g.to_dict() for g in _workbench.store.groups_in(section)]


@app.post("/api/groups/{group_id}/merge")
def merge_groups(group_id: str, request: MergeRequest) -> dict[str, Any]:
    _workbench.store.merge_groups(group_id, request.dest_id)
    return _workbench.store.get_group(request.dest_id).to_dict()


@app.post("/api/groups/{group_id}/split")
def split_group(group_id: str, request: SplitRequest) -> dict[str, Any]:
    new_id = _workbench.store.split_group(group_id, request.page_ids, request.title)
    return _workbench.store.get_group(new_id).to_dict()


@app.post("/api/drag")
def drag(request: DragRequest) -> dict[str, Any]:
    """Resolve a drag gesture and apply the resulting store command."""
    outcome = _workbench.drag(DragEvent(**request.model_dump()))
    command = outcome.result.command
    return {
        "command": type(command).__name__,
        "cleanup": outcome.cleanup.to_dict() if outcome.cleanup else None,
        "groups": _workbench.store.snapshot(),
    }


# ---------------------------------------------------------------------------
# Gated edits and confirmations
# ---------------------------------------------------------------------------

@app.post("/api/groups/{group_id}/rename")
def rename_group(group_id: str, request: RenameRequest) -> dict[str, Any]:
    return _workbench.request_rename(group_id, request.title).to_dict()


@app.delete("/api/groups/{group_id}")
def delete_group(group_id: str) -> dict[str, Any]:
    return _workbench.request_delete(group_id).to_dict()


@app.post("/api/groups/{group_id}/review")
def confirm_group_review(group_id: str) -> dict[str, Any]:
    return _workbench.request_confirm_review(group_id).to_dict()


@app.get("/api/confirmations")
def list_confirmations() -> list[dict[str, Any]]:
    return [{"ticket": p.ticket, **p.confirmation.to_dict()} for p in _workbench.pending()]


@app.post("/api/confirmations/{ticket}/accept")
def accept_confirmation(ticket: str) -> dict[str, Any]:
    """Apply a confirmed edit; a ``block`` outcome leaves the ticket pending."""
    return _workbench.resolve(ticket, accept=True).to_dict()


@app.post("/api/confirmations/{ticket}/cancel")
def cancel_confirmation(ticket: str) -> dict[str, Any]:
    return _workbench.resolve(ticket, accept=False).to_dict()


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------

@app.get("/api/groups/{group_id}/bindings")
def get_bindings(group_id: str) -> list[dict[str, Any]]:
    return [b.to_dict() for b in _workbench.registry.bindings_for(group_id)]


@app.post("/api/groups/{group_id}/bindings")
def add_binding(group_id: str, request: BindingRequest) -> dict[str, Any]:
    created = _workbench.bind(group_id, request.consumer)
    return {"group_id": group_id, "consumer": request.consumer, "created": created}


@app.delete("/api/groups/{group_id}/bindings/{consumer}")
def remove_binding(group_id: str, consumer: str) -> dict[str, Any]:
    if not _workbench.unbind(group_id, consumer):
        raise HTTPException(status_code=404, detail=f"Binding not found: {group_id} -> {consumer}")
    return {"status": "released", "group_id": group_id, "consumer": consumer}


# ---------------------------------------------------------------------------
# Evidence modules
# ---------------------------------------------------------------------------

@app.get("/api/modules")
def list_modules(consumer: str | None = None) -> list[dict[str, Any]]:
    return [m.to_dict() for m in _workbench.engine.modules(consumer)]


@app.post("/api/modules")
def create_module(request: CreateModuleRequest) -> dict[str, Any]:
    module_id = _workbench.engine.create_module(
        request.doc_type, request.consumer, request.source_group_ids, name=request.name,
    )
    return _workbench.engine.get_module(module_id).to_dict()


@app.get("/api/modules/{module_id}")
def get_module(module_id: str) -> dict[str, Any]:
    return _workbench.engine.get_module(module_id).to_dict()


@app.post("/api/modules/{module_id}/extraction")
def record_extraction(module_id: str, request: ExtractionRequest) -> dict[str, Any]:
    _workbench.engine.record_extraction(module_id, request.fields, request.issues)
    return _workbench.engine.get_module(module_id).to_dict()


@app.put("/api/modules/{module_id}/fields/{field_key}")
def verify_field(module_id: str, field_key: str, request: FieldVerificationRequest) -> dict[str, Any]:
    _workbench.engine.set_field_verification(
        module_id, field_key, request.status,
        edited_value=request.edited_value, verified_by=request.verified_by,
    )
    return _workbench.engine.get_module(module_id).to_dict()


@app.post("/api/modules/{module_id}/issues")
def add_issue(module_id: str, request: IssueRequest) -> dict[str, Any]:
    issue_id = _workbench.engine.add_issue(module_id, request.severity, request.message, request.field_key)
    return {"issue_id": issue_id, "module": _workbench.engine.get_module(module_id).to_dict()}


@app.post("/api/modules/{module_id}/issues/{issue_id}/resolve")
def resolve_issue(module_id: str, issue_id: str, request: ResolveIssueRequest) -> dict[str, Any]:
    _workbench.engine.resolve_issue(module_id, issue_id, request.resolved_by)
    return _workbench.engine.get_module(module_id).to_dict()


@app.post("/api/modules/{module_id}/review")
def complete_review(module_id: str) -> dict[str, Any]:
    _workbench.engine.complete_review(module_id)
    return _workbench.engine.get_module(module_id).to_dict()


# ---------------------------------------------------------------------------
# Summary and export
# ---------------------------------------------------------------------------

@app.get("/api/summary")
def get_summary() -> dict[str, Any]:
    return _workbench.engine.summary()


@app.post("/api/export/summary")
def export_summary(request: ExportRequest) -> Response:
    """Export the evidence review summary as a Word (.docx) document."""
    docx_bytes = generate_review_docx(_workbench.engine, case_name=request.case_name)
    return Response(
        content=docx_bytes,
        media_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        headers={"Content-Disposition": 'attachment; filename="evidence_review_summary.docx"'},
    )
