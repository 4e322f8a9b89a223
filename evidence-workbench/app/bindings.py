"""Binding Registry for the Evidence Workbench.

Tracks which document groups back which checklist sections (or the case
assessment). Bindings gate destructive edits in the confirmation gate and
drive re-analysis: whenever a bound group's content changes, it is renamed
or its review is confirmed, every consumer of the group is invalidated.
Deleting a group invalidates each consumer once and then releases the
bindings.

Part of the O'Brien Immigration Law tool suite.
"""

from __future__ import annotations

import sys as _sys
from collections.abc import Callable
from pathlib import Path

_sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))
from shared.logging_utils import get_logger

from app.activity import ActivityLog
from app.config import get_settings
from app.document_store import CONTENT_CHANGED, DELETED, RENAMED, REVIEWED, DocumentStore, StoreEvent
from app.errors import NotFound
from app.models import GroupChecklistBinding

LOGGER = get_logger(__name__, get_settings().log_level)

InvalidationSink = Callable[[str, GroupChecklistBinding], None]


class BindingRegistry:
    """Many-to-many map between document groups and binding consumers."""

    def __init__(self, store: DocumentStore | None = None, activity: ActivityLog | None = None) -> None:
        self._bindings: dict[str, list[GroupChecklistBinding]] = {}
        self._sinks: list[InvalidationSink] = []
        self._store = store
        self.activity = activity or (store.activity if store is not None else ActivityLog())
        if store is not None:
            store.subscribe(self._on_store_event)

    def add_sink(self, sink: InvalidationSink) -> None:
        """Register a callback receiving (group_id, binding) for each invalidation."""
        self._sinks.append(sink)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def bindings_for(self, group_id: str) -> list[GroupChecklistBinding]:
        """Bindings of a group in the order they were recorded; [] if none."""
        return list(self._bindings.get(group_id, []))

    def is_bound(self, group_id: str) -> bool:
        return bool(self._bindings.get(group_id))

    def groups_for(self, consumer: str) -> list[str]:
        """Group ids bound to a consumer key ("assessment" or a section id)."""
        return [
            gid for gid, bindings in self._bindings.items()
            if any(b.consumer == consumer for b in bindings)
        ]

    def snapshot(self) -> dict[str, list[dict]]:
        return {gid: [b.to_dict() for b in bindings] for gid, bindings in self._bindings.items() if bindings}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record_binding(self, group_id: str, binding: GroupChecklistBinding) -> bool:
        """Bind a group to a consumer. Returns False when the pair already exists."""
        if self._store is not None and self._store.find_group(group_id) is None:
            raise NotFound("Group", group_id)

        current = self._bindings.setdefault(group_id, [])
        if binding in current:
            LOGGER.debug("Binding %s -> %s already recorded", group_id, binding.consumer)
            return False
        current.append(binding)
        LOGGER.info("Bound group %s to %s", group_id, binding.consumer)
        self.activity.log_action("binding_recorded", group_id=group_id, details=binding.to_dict())
        return True

    def release_binding(self, group_id: str, binding: GroupChecklistBinding) -> bool:
        """Remove one binding. Returns False when it was not recorded."""
        current = self._bindings.get(group_id, [])
        if binding not in current:
            return False
        current.remove(binding)
        if not current:
            del self._bindings[group_id]
        LOGGER.info("Released binding %s -> %s", group_id, binding.consumer)
        self.activity.log_action("binding_released", group_id=group_id, details=binding.to_dict())
        return True

    def invalidate(self, group_id: str) -> list[GroupChecklistBinding]:
        """Flag every consumer of a group for re-analysis. Returns the bindings touched."""
        affected = self.bindings_for(group_id)
        for binding in affected:
            LOGGER.info("Invalidating %s via group %s", binding.consumer, group_id)
            self.activity.log_action("binding_invalidated", group_id=group_id, details=binding.to_dict())
            for sink in self._sinks:
                sink(group_id, binding)
        return affected

    def release_all(self, group_id: str) -> list[GroupChecklistBinding]:
        """Invalidate each consumer once, then drop every binding of the group."""
        affected = self.invalidate(group_id)
        for binding in affected:
            self.release_binding(group_id, binding)
        return affected

    # ------------------------------------------------------------------
    # Store events
    # ------------------------------------------------------------------

    def _on_store_event(self, event: StoreEvent) -> None:
        if event.kind == DELETED:
            self.release_all(event.group_id)
        elif event.kind in (CONTENT_CHANGED, RENAMED, REVIEWED):
            self.invalidate(event.group_id)
