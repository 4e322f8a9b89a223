"""In-memory activity trail for the Evidence Workbench.

Every committed mutation and every re-analysis signal is appended here.
Subscribers registered with ``subscribe`` receive each entry as it is
written; this is how invalidation signals leave the core.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict, dataclass, field

from app.models import now_iso


@dataclass
class ActivityEntry:
    """A single activity trail entry."""

    timestamp: str
    action: str                # group_created | page_moved | binding_invalidated | module_stale | ...
    group_id: str = ""
    module_id: str = ""
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class ActivityLog:
    """Append-only list of ActivityEntry objects plus live subscribers."""

    def __init__(self) -> None:
        self._entries: list[ActivityEntry] = []
        self._subscribers: list[Callable[[ActivityEntry], None]] = []

    def subscribe(self, callback: Callable[[ActivityEntry], None]) -> None:
        self._subscribers.append(callback)

    def log_action(
        self,
        action: str,
        group_id: str = "",
        module_id: str = "",
        details: dict | None = None,
    ) -> ActivityEntry:
        """Append an entry, notify subscribers and return it."""
        entry = ActivityEntry(
            timestamp=now_iso(),
            action=action,
            group_id=group_id,
            module_id=module_id,
            details=details or {},
        )
        self._entries.append(entry)
        for callback in self._subscribers:
            callback(entry)
        return entry

    def recent(self, limit: int = 50) -> list[ActivityEntry]:
        """Most recent entries, newest first."""
        return list(reversed(self._entries))[:limit]

    def for_group(self, group_id: str, limit: int = 100) -> list[ActivityEntry]:
        """Entries touching a specific group, newest first."""
        return [e for e in reversed(self._entries) if e.group_id == group_id][:limit]

    def count(self, action: str, **match: str) -> int:
        """Count entries with the given action whose attributes match ``match``."""
        return sum(
            1 for e in self._entries
            if e.action == action and all(getattr(e, k) == v for k, v in match.items())
        )

    def __len__(self) -> int:
        return len(self._entries)
