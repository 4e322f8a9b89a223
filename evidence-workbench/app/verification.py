"""Evidence verification for the Evidence Workbench.

Each EvidenceModule is one instantiated evidence requirement drawn from a
document-type schema. Its lifecycle:

    pending -> extracted | needs-review     extraction results arrive
    extracted <-> needs-review              open error/warning issues come and go
    extracted | needs-review -> reviewed    every field confirmed, rejected or edited
    reviewed -> stale                       a bound source group changed
    stale -> reviewed                       the module is reviewed again
    any -> extracted | needs-review         re-extraction replaces fields and issues

Nothing ever returns to ``pending``.

Modules reference pages by id only. Provenance is re-validated against the
Document Store on every read: a field whose source page is gone is flagged
stale instead of being dropped.

Part of the O'Brien Immigration Law tool suite.
"""

from __future__ import annotations

import sys as _sys
from pathlib import Path
from typing import Any

_sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))
from shared.logging_utils import get_logger

from app.activity import ActivityLog
from app.catalog import get_schema
from app.config import get_settings
from app.errors import IncompleteReview, InvalidOperation, InvalidTransition, NotFound
from app.models import (
    FIELD_CONFIRMED,
    FIELD_EDITED,
    FIELD_REJECTED,
    FIELD_UNVERIFIED,
    MODULE_EXTRACTED,
    MODULE_NEEDS_REVIEW,
    MODULE_PENDING,
    MODULE_REVIEWED,
    MODULE_STALE,
    SEVERITIES,
    SEVERITY_ERROR,
    SEVERITY_INFO,
    SEVERITY_WARNING,
    EvidenceModule,
    ExtractedField,
    FieldSource,
    GroupChecklistBinding,
    Issue,
    new_id,
    now_iso,
)

LOGGER = get_logger(__name__, get_settings().log_level)

_ALLOWED: dict[str, set[str]] = {
    MODULE_PENDING: {MODULE_EXTRACTED, MODULE_NEEDS_REVIEW},
    MODULE_EXTRACTED: {MODULE_EXTRACTED, MODULE_NEEDS_REVIEW, MODULE_REVIEWED},
    MODULE_NEEDS_REVIEW: {MODULE_EXTRACTED, MODULE_NEEDS_REVIEW, MODULE_REVIEWED},
    MODULE_REVIEWED: {MODULE_EXTRACTED, MODULE_NEEDS_REVIEW, MODULE_STALE},
    MODULE_STALE: {MODULE_EXTRACTED, MODULE_NEEDS_REVIEW, MODULE_REVIEWED},
}

_VERIFICATION_STATUSES = (FIELD_CONFIRMED, FIELD_REJECTED, FIELD_EDITED)


class VerificationEngine:
    """Per-module extraction state, field verification and issue tracking."""

    def __init__(self, store=None, activity: ActivityLog | None = None) -> None:
        self._modules: dict[str, EvidenceModule] = {}
        self._consumer_flags: dict[str, int] = {}
        self._store = store
        self.activity = activity or (store.activity if store is not None else ActivityLog())

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get(self, module_id: str) -> EvidenceModule:
        module = self._modules.get(module_id)
        if module is None:
            raise NotFound("Module", module_id)
        return module

    def get_module(self, module_id: str) -> EvidenceModule:
        """Return a module with its provenance re-validated."""
        module = self._get(module_id)
        self._refresh_provenance(module)
        return module

    def modules(self, consumer: str | None = None) -> list[EvidenceModule]:
        result = [m for m in self._modules.values() if consumer is None or m.consumer == consumer]
        for module in result:
            self._refresh_provenance(module)
        return result

    def snapshot(self) -> list[dict]:
        return [m.to_dict() for m in self.modules()]

    def reanalysis_flags(self) -> dict[str, int]:
        """Invalidation count per consumer, including consumers without modules."""
        return dict(self._consumer_flags)

    def _refresh_provenance(self, module: EvidenceModule) -> None:
        if self._store is None:
            return
        for f in module.fields:
            if not f.source.authoritative or f.stale:
                continue
            if self._store.find_page(f.source.document_id) is None:
                f.stale = True
                LOGGER.warning(
                    "Field %s of module %s lost its source page %s",
                    f.key, module.id, f.source.document_id,
                )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _transition(self, module: EvidenceModule, target: str) -> None:
        if target not in _ALLOWED.get(module.status, set()):
            raise InvalidTransition(module.id, module.status, target)
        if target != module.status:
            LOGGER.info("Module %s: %s -> %s", module.id, module.status, target)
            self.activity.log_action(
                "module_status_changed", module_id=module.id,
                details={"from": module.status, "to": target},
            )
        module.status = target
        module.updated_at = now_iso()

    @staticmethod
    def _open_status(module: EvidenceModule) -> str:
        if module.open_issues(SEVERITY_ERROR, SEVERITY_WARNING):
            return MODULE_NEEDS_REVIEW
        return MODULE_EXTRACTED

    def _recompute(self, module: EvidenceModule) -> None:
        """Move between extracted and needs-review as issues open and close."""
        if module.status in (MODULE_EXTRACTED, MODULE_NEEDS_REVIEW):
            self._transition(module, self._open_status(module))
        else:
            module.updated_at = now_iso()

    def create_module(
        self,
        doc_type: str,
        consumer: str,
        source_group_ids: list[str] | None = None,
        name: str | None = None,
    ) -> str:
        """Instantiate an evidence requirement from its document-type schema."""
        if self._store is not None:
            for gid in source_group_ids or []:
                if self._store.find_group(gid) is None:
                    raise NotFound("Group", gid)

        now = now_iso()
        module = EvidenceModule(
            id=new_id("mod_"),
            name=name or doc_type.replace("-", " ").title(),
            doc_type=doc_type,
            consumer=consumer,
            fields=[ExtractedField(key=d.key, label=d.label) for d in get_schema(doc_type)],
            source_group_ids=list(source_group_ids or []),
            created_at=now,
            updated_at=now,
        )
        self._modules[module.id] = module
        LOGGER.info("Created module %s (%s) for %s", module.id, doc_type, consumer)
        self.activity.log_action("module_created", module_id=module.id, details={"doc_type": doc_type, "consumer": consumer})
        return module.id

    def record_extraction(
        self,
        module_id: str,
        fields: list[ExtractedField | dict],
        issues: list[Issue | dict] | None = None,
    ) -> str:
        """Store extraction results, replacing any earlier ones. Returns the new status.

        The whole payload is validated before the module is touched; a
        rejected payload leaves earlier fields, issues and status in place.

        Raises:
            InvalidOperation: for malformed fields, sources or issues.
        """
        module = self._get(module_id)
        new_fields = [f if isinstance(f, ExtractedField) else ExtractedField.from_dict(f) for f in fields]
        new_issues = [i if isinstance(i, Issue) else Issue.from_dict(i) for i in (issues or [])]
        for f in new_fields:
            if not isinstance(f.source, FieldSource):
                raise InvalidOperation(f"Field {f.key} has a malformed source.")
        keys = [f.key for f in new_fields]
        if len(keys) != len(set(keys)):
            raise InvalidOperation(f"Extraction for module {module_id} repeats a field key.")
        for issue in new_issues:
            if issue.severity not in SEVERITIES:
                raise InvalidOperation(f"Unknown issue severity: {issue.severity}")
            if issue.field_key is not None and issue.field_key not in keys:
                raise NotFound("Field", issue.field_key)

        for f in new_fields:
            f.status = FIELD_UNVERIFIED
            f.stale = False
            f.verified_at = ""
        module.fields = new_fields
        module.issues = new_issues
        module.needs_reanalysis = False
        self._transition(module, self._open_status(module))
        self.activity.log_action(
            "extraction_recorded", module_id=module_id,
            details={"fields": len(new_fields), "issues": len(new_issues)},
        )
        self._refresh_provenance(module)
        return module.status

    def complete_review(self, module_id: str) -> None:
        """Mark a module reviewed.

        Raises:
            IncompleteReview: if any field is still unverified.
            InvalidTransition: if the module has no extraction yet.
        """
        module = self._get(module_id)
        if module.status == MODULE_REVIEWED:
            return
        if module.status == MODULE_PENDING:
            raise InvalidTransition(module.id, module.status, MODULE_REVIEWED)
        unverified = module.unverified_fields()
        if unverified:
            raise IncompleteReview(module_id, unverified)
        self._transition(module, MODULE_REVIEWED)
        module.needs_reanalysis = False

    def transition(self, module_id: str, target: str) -> None:
        """Explicit lifecycle request from the UI.

        Only ``reviewed`` (via review completion) and ``stale`` (from
        ``reviewed``) can be requested directly; extraction states are reached
        by recording extraction results and ``pending`` is never re-entered.
        """
        module = self._get(module_id)
        if target == MODULE_REVIEWED:
            self.complete_review(module_id)
        elif target == MODULE_STALE:
            self._make_stale(module)
        else:
            raise InvalidTransition(module.id, module.status, target)

    def _make_stale(self, module: EvidenceModule) -> None:
        self._transition(module, MODULE_STALE)
        # Confirmations no longer hold; manual edits and rejections stay
        for f in module.fields:
            if f.status == FIELD_CONFIRMED:
                f.status = FIELD_UNVERIFIED
                f.stale = True
                f.verified_at = ""

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def on_invalidated(self, group_id: str, binding: GroupChecklistBinding) -> list[str]:
        """Invalidation sink for the Binding Registry. Returns the modules flagged."""
        consumer = binding.consumer
        self._consumer_flags[consumer] = self._consumer_flags.get(consumer, 0) + 1
        flagged: list[str] = []
        for module in self._modules.values():
            if module.consumer != consumer:
                continue
            module.needs_reanalysis = True
            module.reanalysis_requests += 1
            if module.status == MODULE_REVIEWED:
                self._make_stale(module)
            self.activity.log_action(
                "module_reanalysis_requested", group_id=group_id, module_id=module.id,
                details={"consumer": consumer, "status": module.status},
            )
            flagged.append(module.id)
        return flagged

    # ------------------------------------------------------------------
    # Fields and issues
    # ------------------------------------------------------------------

    def set_field_verification(
        self,
        module_id: str,
        field_key: str,
        status: str,
        edited_value: Any = None,
        verified_by: str = "",
    ) -> ExtractedField:
        """Confirm, reject or edit one field.

        Editing requires ``edited_value``; the field becomes manually entered
        and its document source is kept for audit only. Confirming resolves
        info/warning issues on the field but never error issues.
        """
        module = self._get(module_id)
        if status not in _VERIFICATION_STATUSES:
            raise InvalidOperation(f"Unknown verification status: {status}")
        if module.status == MODULE_PENDING:
            raise InvalidOperation(f"Module {module_id} has no extraction to verify yet.")
        target = module.get_field(field_key)
        if target is None:
            raise NotFound("Field", field_key)

        if status == FIELD_EDITED:
            if edited_value is None:
                raise InvalidOperation("An edited value is required when editing a field.")
            if not target.editable:
                raise InvalidOperation(f"Field {field_key} is not editable.")
            if not target.source.manually_entered:
                target.original_value = target.value
            target.value = edited_value
            target.source.manually_entered = True

        target.status = status
        target.stale = False
        target.verified_at = now_iso()

        if status == FIELD_CONFIRMED:
            for issue in module.open_issues(SEVERITY_INFO, SEVERITY_WARNING):
                if issue.field_key == field_key:
                    self._resolve(issue, verified_by or "field-confirmation")

        LOGGER.info("Field %s of module %s set to %s", field_key, module_id, status)
        self.activity.log_action(
            "field_verified", module_id=module_id,
            details={"field": field_key, "status": status, "by": verified_by},
        )
        self._recompute(module)
        self._refresh_provenance(module)
        return target

    def add_issue(
        self,
        module_id: str,
        severity: str,
        message: str,
        field_key: str | None = None,
    ) -> str:
        module = self._get(module_id)
        if severity not in SEVERITIES:
            raise InvalidOperation(f"Unknown issue severity: {severity}")
        if field_key is not None and module.get_field(field_key) is None:
            raise NotFound("Field", field_key)

        issue = Issue(id=new_id("iss_"), severity=severity, message=message, field_key=field_key)
        module.issues.append(issue)
        self.activity.log_action("issue_added", module_id=module_id, details=issue.to_dict())
        self._recompute(module)
        return issue.id

    def _resolve(self, issue: Issue, resolved_by: str) -> None:
        issue.resolved = True
        issue.resolved_at = now_iso()
        issue.resolved_by = resolved_by

    def resolve_issue(self, module_id: str, issue_id: str, resolved_by: str = "") -> None:
        """Explicitly acknowledge an issue; the only way error issues close."""
        module = self._get(module_id)
        issue = module.get_issue(issue_id)
        if issue is None:
            raise NotFound("Issue", issue_id)
        if issue.resolved:
            return
        self._resolve(issue, resolved_by)
        LOGGER.info("Resolved issue %s on module %s", issue_id, module_id)
        self.activity.log_action("issue_resolved", module_id=module_id, details={"issue": issue_id, "by": resolved_by})
        self._recompute(module)

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def summary(self) -> dict[str, Any]:
        """Application-level counts for the dashboard header."""
        modules = self.modules()
        reviewed = sum(1 for m in modules if m.status == MODULE_REVIEWED)
        errors = sum(len(m.open_issues(SEVERITY_ERROR)) for m in modules)
        warnings = sum(len(m.open_issues(SEVERITY_WARNING)) for m in modules)
        return {
            "total_modules": len(modules),
            "reviewed_modules": reviewed,
            "stale_modules": sum(1 for m in modules if m.status == MODULE_STALE),
            "blocking_issues": errors,
            "warning_issues": warnings,
            "is_submittable": bool(modules) and errors == 0 and reviewed == len(modules),
        }
