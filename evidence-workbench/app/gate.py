"""Confirmation/warning gate for the Evidence Workbench.

``decide`` looks at an intended mutation and the bindings of the group it
touches and answers with one of three outcomes:

- ``proceed``: apply silently.
- ``confirm``: show the attached ConfirmationRequest; apply only on accept.
- ``block``: the request is structurally invalid (missing group, duplicate
  title). Binding warnings are never blocks; the user can always override.

The gate holds no state. The workbench keeps the pending mutation between
the decision and the user's answer.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

from app.bindings import BindingRegistry
from app.catalog import consumer_label
from app.document_store import DocumentStore, title_key

RENAME = "rename"
DELETE = "delete"
CONFIRM_REVIEW = "confirm-review"
ACTIONS = (RENAME, DELETE, CONFIRM_REVIEW)

PROCEED = "proceed"
CONFIRM = "confirm"
BLOCK = "block"


@dataclass(frozen=True)
class Intent:
    """A mutation the user asked for, before it is applied."""

    action: str
    group_id: str
    new_title: str | None = None


@dataclass
class ConfirmationRequest:
    """Everything the UI needs to render the confirmation modal."""

    action: str
    group_id: str
    group_title: str
    page_count: int
    title: str
    message: str
    confirm_label: str
    consumers: list[dict] = field(default_factory=list)
    new_title: str | None = None
    footnote: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class GateDecision:
    outcome: str
    confirmation: ConfirmationRequest | None = None
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "confirmation": self.confirmation.to_dict() if self.confirmation else None,
            "reason": self.reason,
        }


def _block(reason: str) -> GateDecision:
    return GateDecision(outcome=BLOCK, reason=reason)


def _delete_request(group, consumers: list[dict]) -> ConfirmationRequest:
    count = group.page_count
    if count > 0:
        plural = "s" if count != 1 else ""
        message = f"This document contains {count} page{plural}. It will be permanently removed."
    else:
        message = "This empty category will be removed from your document list."
    return ConfirmationRequest(
        action=DELETE,
        group_id=group.id,
        group_title=group.title,
        page_count=count,
        title=f"Delete “{group.title}”?",
        message=message,
        confirm_label="Delete and Remove References" if consumers else "Delete",
        consumers=consumers,
        footnote=(
            "Deleting will remove these references. Related information extraction may be affected."
            if consumers else ""
        ),
    )


def _reanalysis_request(intent: Intent, group, consumers: list[dict]) -> ConfirmationRequest:
    if intent.action == RENAME:
        title = f"Rename “{group.title}” to “{intent.new_title}”?"
        verb = "Renaming it"
        confirm_label = "Rename and Re-analyze"
    else:
        title = f"Confirm review of “{group.title}”?"
        verb = "Confirming the review"
        confirm_label = "Confirm Review and Re-analyze"
    return ConfirmationRequest(
        action=intent.action,
        group_id=group.id,
        group_title=group.title,
        page_count=group.page_count,
        title=title,
        message=(
            f"This document is referenced by the checklist. {verb} will trigger "
            "re-analysis of affected sections."
        ),
        confirm_label=confirm_label,
        consumers=consumers,
        new_title=intent.new_title,
        footnote="These sections will be flagged for re-analysis after this action.",
    )


def decide(
    intent: Intent,
    store: DocumentStore,
    registry: BindingRegistry,
    confirm_nonempty_delete: bool = True,
) -> GateDecision:
    """Decide whether an intended mutation may proceed."""
    if intent.action not in ACTIONS:
        return _block(f"Unknown action: {intent.action}")
    group = store.find_group(intent.group_id)
    if group is None:
        return _block(f"Category not found: {intent.group_id}")

    consumers = [
        {"type": b.type, "consumer": b.consumer, "label": consumer_label(b.consumer)}
        for b in registry.bindings_for(group.id)
    ]

    if intent.action == RENAME:
        new_title = (intent.new_title or "").strip()
        if not new_title:
            return _block("Category title cannot be empty.")
        if any(
            g.id != group.id and title_key(g.title) == title_key(new_title)
            for g in store.groups_in(group.section)
        ):
            return _block(f"A category named '{new_title}' already exists in section '{group.section}'.")
        if new_title == group.title or not consumers:
            return GateDecision(outcome=PROCEED)
        return GateDecision(outcome=CONFIRM, confirmation=_reanalysis_request(intent, group, consumers))

    if intent.action == DELETE:
        if consumers or (confirm_nonempty_delete and group.page_count > 0):
            return GateDecision(outcome=CONFIRM, confirmation=_delete_request(group, consumers))
        return GateDecision(outcome=PROCEED)

    if consumers:
        return GateDecision(outcome=CONFIRM, confirmation=_reanalysis_request(intent, group, consumers))
    return GateDecision(outcome=PROCEED)
