"""Process-wide wiring of the Evidence Workbench core.

One Workbench holds the Document Store, Binding Registry and Verification
Engine, connects the registry's invalidations to the engine, and runs the
mutation pipeline:

    intent -> gate decision -> (proceed | pending confirmation | block)
    pending confirmation -> resolve(ticket, accept) -> re-check -> apply | abandon

A pending confirmation leaves the state untouched until it is accepted;
cancelling simply discards it. Accepting runs the gate again, so a ticket
whose intent has since become impossible stays pending with a block
decision. Tickets for a group are dropped as soon as the store deletes it,
whichever path deleted it.

Part of the O'Brien Immigration Law tool suite.
"""

from __future__ import annotations

import sys as _sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

_sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))
from shared.logging_utils import get_logger

from app import gate
from app.activity import ActivityLog
from app.bindings import BindingRegistry
from app.catalog import section_for_tag
from app.config import Settings, get_settings
from app.document_store import DELETED, DocumentStore, StoreEvent
from app.drag_drop import (
    DeleteGroup,
    DragEvent,
    DropResult,
    Layout,
    MovePage,
    ReorderGroups,
    ReorderPage,
    reduce_drag,
)
from app.errors import NotFound
from app.models import GroupChecklistBinding, new_id
from app.verification import VerificationEngine

LOGGER = get_logger(__name__, get_settings().log_level)


@dataclass
class PendingMutation:
    """A gated mutation waiting for the user's accept or cancel."""

    ticket: str
    intent: gate.Intent
    confirmation: gate.ConfirmationRequest


@dataclass
class MutationOutcome:
    """What happened to a requested mutation."""

    decision: gate.GateDecision
    applied: bool = False
    ticket: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = self.decision.to_dict()
        data.update({"applied": self.applied, "ticket": self.ticket})
        return data


@dataclass
class DragOutcome:
    result: DropResult
    cleanup: MutationOutcome | None = None


class Workbench:
    """Document store, bindings and verification behind one operation set."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.activity = ActivityLog()
        self.store = DocumentStore(activity=self.activity)
        self.registry = BindingRegistry(store=self.store, activity=self.activity)
        self.engine = VerificationEngine(store=self.store, activity=self.activity)
        self.registry.add_sink(self.engine.on_invalidated)
        self._pending: dict[str, PendingMutation] = {}
        self.store.subscribe(self._on_store_event)

    def _on_store_event(self, event: StoreEvent) -> None:
        if event.kind != DELETED:
            return
        # Confirmations that still point at the deleted group
        for ticket, p in list(self._pending.items()):
            if p.intent.group_id == event.group_id:
                del self._pending[ticket]
                LOGGER.info("Dropped confirmation %s: group %s was deleted", ticket, event.group_id)

    # ------------------------------------------------------------------
    # Gated mutations
    # ------------------------------------------------------------------

    def request(self, intent: gate.Intent) -> MutationOutcome:
        """Run an intent through the gate; apply it now if no confirmation is needed."""
        decision = self._decide(intent)
        if decision.outcome == gate.BLOCK:
            LOGGER.info("Blocked %s on %s: %s", intent.action, intent.group_id, decision.reason)
            return MutationOutcome(decision=decision)
        if decision.outcome == gate.PROCEED:
            self._apply(intent)
            return MutationOutcome(decision=decision, applied=True)

        ticket = new_id("cfm_")
        self._pending[ticket] = PendingMutation(ticket=ticket, intent=intent, confirmation=decision.confirmation)
        LOGGER.info("Awaiting confirmation %s for %s on %s", ticket, intent.action, intent.group_id)
        return MutationOutcome(decision=decision, ticket=ticket)

    def _decide(self, intent: gate.Intent) -> gate.GateDecision:
        return gate.decide(
            intent, self.store, self.registry,
            confirm_nonempty_delete=self.settings.confirm_nonempty_delete,
        )

    def request_rename(self, group_id: str, new_title: str) -> MutationOutcome:
        return self.request(gate.Intent(gate.RENAME, group_id, new_title))

    def request_delete(self, group_id: str) -> MutationOutcome:
        return self.request(gate.Intent(gate.DELETE, group_id))

    def request_confirm_review(self, group_id: str) -> MutationOutcome:
        return self.request(gate.Intent(gate.CONFIRM_REVIEW, group_id))

    def pending(self) -> list[PendingMutation]:
        return list(self._pending.values())

    def resolve(self, ticket: str, accept: bool) -> MutationOutcome:
        """Accept or cancel a pending confirmation.

        An accepted ticket goes through the gate again before it runs. If
        the mutation is now blocked (the new title was taken meanwhile, say)
        nothing is applied and the ticket stays pending, to be cancelled or
        retried.

        Raises:
            NotFound: if the ticket is unknown or already used.
        """
        pending = self._pending.get(ticket)
        if pending is None:
            raise NotFound("Confirmation", ticket)
        if not accept:
            del self._pending[ticket]
            LOGGER.info("Confirmation %s cancelled", ticket)
            self.activity.log_action(
                "confirmation_cancelled", group_id=pending.intent.group_id,
                details={"action": pending.intent.action},
            )
            decision = gate.GateDecision(outcome=gate.CONFIRM, confirmation=pending.confirmation, reason="Cancelled")
            return MutationOutcome(decision=decision, ticket=ticket)

        decision = self._decide(pending.intent)
        if decision.outcome == gate.BLOCK:
            LOGGER.info("Confirmation %s blocked on accept: %s", ticket, decision.reason)
            return MutationOutcome(decision=decision, ticket=ticket)

        del self._pending[ticket]
        LOGGER.info("Confirmation %s accepted", ticket)
        self._apply(pending.intent)
        self.activity.log_action(
            "confirmation_accepted", group_id=pending.intent.group_id,
            details={"action": pending.intent.action},
        )
        return MutationOutcome(decision=decision, applied=True, ticket=ticket)

    def _apply(self, intent: gate.Intent) -> None:
        if intent.action == gate.RENAME:
            self.store.rename_group(intent.group_id, intent.new_title or "")
        elif intent.action == gate.DELETE:
            self.store.delete_group(intent.group_id)
        elif intent.action == gate.CONFIRM_REVIEW:
            self.store.confirm_group_review(intent.group_id)

    # ------------------------------------------------------------------
    # Drag and drop
    # ------------------------------------------------------------------

    def layout(self) -> Layout:
        return Layout.from_store(self.store, self.registry)

    def drag(self, event: DragEvent) -> DragOutcome:
        """Resolve a drag gesture against the current state and apply it."""
        result = reduce_drag(self.layout(), event, auto_delete_empty=self.settings.auto_delete_empty_groups)
        command = result.command

        if isinstance(command, MovePage):
            self.store.move_page(command.page_id, command.from_group_id, command.to_group_id, command.target_index)
        elif isinstance(command, ReorderPage):
            self.store.reorder_page(command.group_id, command.from_index, command.to_index)
        elif isinstance(command, ReorderGroups):
            self.store.reorder_groups(command.section, list(command.ordered_group_ids))
        else:
            LOGGER.debug("Drag of %s resolved to no-op: %s", event.item_id, command)

        cleanup = None
        if isinstance(result.cleanup, DeleteGroup):
            if result.cleanup.requires_confirmation:
                cleanup = self.request_delete(result.cleanup.group_id)
            else:
                self.store.delete_group(result.cleanup.group_id)
                LOGGER.info("Auto-deleted empty group %s", result.cleanup.group_id)
        return DragOutcome(result=result, cleanup=cleanup)

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    def bind(self, group_id: str, consumer: str) -> bool:
        return self.registry.record_binding(group_id, GroupChecklistBinding.from_consumer(consumer))

    def unbind(self, group_id: str, consumer: str) -> bool:
        return self.registry.release_binding(group_id, GroupChecklistBinding.from_consumer(consumer))

    def suggest_consumer(self, group_id: str) -> str | None:
        """Checklist section the group's document tag usually backs."""
        return section_for_tag(self.store.get_group(group_id).tag)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        return {
            "groups": self.store.snapshot(),
            "bindings": self.registry.snapshot(),
            "modules": self.engine.snapshot(),
            "reanalysis_flags": self.engine.reanalysis_flags(),
            "pending_confirmations": [
                {"ticket": p.ticket, **p.confirmation.to_dict()} for p in self._pending.values()
            ],
        }
