"""Document organization for the Evidence Workbench.

Owns every DocumentGroup and Page. Groups live in sections, carry a strict
integer rank among their siblings and an ordered list of page ids; every
page belongs to exactly one group. Operations validate their inputs fully
before touching any state, so a failed call leaves the store unchanged.

Observers (the Binding Registry) subscribe to StoreEvent notifications
raised after each committed content change, rename, review or deletion.

Part of the O'Brien Immigration Law tool suite.
"""

from __future__ import annotations

import sys as _sys
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

_sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))
from shared.logging_utils import get_logger

from app.activity import ActivityLog
from app.config import get_settings
from app.errors import (
    DuplicateTitle,
    EmptySelection,
    IncompleteSet,
    InvalidOperation,
    NotFound,
)
from app.models import (
    GROUP_REVIEWED,
    GROUP_UNREVIEWED,
    DocumentGroup,
    Page,
    new_id,
    now_iso,
)

LOGGER = get_logger(__name__, get_settings().log_level)

# StoreEvent kinds
CONTENT_CHANGED = "content_changed"
RENAMED = "renamed"
REVIEWED = "reviewed"
DELETED = "deleted"


@dataclass
class StoreEvent:
    """Notification raised after a committed store mutation."""

    kind: str
    group_id: str
    details: dict = field(default_factory=dict)


def title_key(title: str) -> str:
    return title.strip().casefold()


class DocumentStore:
    """In-memory owner of document groups and their pages."""

    def __init__(self, activity: ActivityLog | None = None) -> None:
        self._groups: dict[str, DocumentGroup] = {}
        self._pages: dict[str, Page] = {}
        self._listeners: list[Callable[[StoreEvent], None]] = []
        self.activity = activity or ActivityLog()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[StoreEvent], None]) -> None:
        self._listeners.append(listener)

    def _emit(self, kind: str, group_id: str, **details) -> None:
        event = StoreEvent(kind=kind, group_id=group_id, details=details)
        for listener in self._listeners:
            listener(event)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_group(self, group_id: str) -> DocumentGroup | None:
        return self._groups.get(group_id)

    def find_page(self, page_id: str) -> Page | None:
        return self._pages.get(page_id)

    def get_group(self, group_id: str) -> DocumentGroup:
        group = self._groups.get(group_id)
        if group is None:
            raise NotFound("Group", group_id)
        return group

    def get_page(self, page_id: str) -> Page:
        page = self._pages.get(page_id)
        if page is None:
            raise NotFound("Page", page_id)
        return page

    def sections(self) -> list[str]:
        """Section names in first-seen order."""
        seen: dict[str, None] = {}
        for group in self._groups.values():
            seen.setdefault(group.section, None)
        return list(seen)

    def groups_in(self, section: str) -> list[DocumentGroup]:
        """Groups of a section, ordered by rank."""
        return sorted(
            (g for g in self._groups.values() if g.section == section),
            key=lambda g: g.rank,
        )

    def pages_of(self, group_id: str) -> list[Page]:
        group = self.get_group(group_id)
        return [self._pages[pid] for pid in group.page_ids]

    def snapshot(self) -> list[dict]:
        """Groups (section order, then rank) with their pages, for rendering."""
        result: list[dict] = []
        for section in self.sections():
            for group in self.groups_in(section):
                row = group.to_dict()
                row["pages"] = [self._pages[pid].to_dict() for pid in group.page_ids]
                result.append(row)
        return result

    def _title_taken(self, section: str, title: str, exclude_id: str | None = None) -> bool:
        key = title_key(title)
        return any(
            g.section == section and g.id != exclude_id and title_key(g.title) == key
            for g in self._groups.values()
        )

    @staticmethod
    def _check_title(title: str) -> str:
        cleaned = title.strip()
        if not cleaned:
            raise InvalidOperation("Category title cannot be empty.")
        return cleaned

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _renumber(self, group: DocumentGroup) -> None:
        for idx, pid in enumerate(group.page_ids):
            self._pages[pid].position = idx

    def _mark_changed(self, group: DocumentGroup) -> None:
        """Any content change voids an earlier review of the group."""
        group.status = GROUP_UNREVIEWED
        group.has_changes = True
        group.updated_at = now_iso()
        self._renumber(group)

    def _next_rank(self, section: str) -> int:
        ranks = [g.rank for g in self._groups.values() if g.section == section]
        return max(ranks) + 1 if ranks else 0

    # ------------------------------------------------------------------
    # Group operations
    # ------------------------------------------------------------------

    def create_group(self, section: str, title: str, tag: str | None = None) -> str:
        """Create an empty category at the end of a section.

        Raises:
            DuplicateTitle: if the title collides case-insensitively in the section.
        """
        title = self._check_title(title)
        if self._title_taken(section, title):
            raise DuplicateTitle(section, title)

        now = now_iso()
        group = DocumentGroup(
            id=new_id("grp_"),
            title=title,
            section=section,
            tag=(tag or title).strip(),
            rank=self._next_rank(section),
            created_at=now,
            updated_at=now,
        )
        self._groups[group.id] = group
        LOGGER.info("Created group %s '%s' in section %s", group.id, title, section)
        self.activity.log_action("group_created", group_id=group.id, details={"title": title, "section": section})
        return group.id

    def rename_group(self, group_id: str, new_title: str) -> None:
        """Rename a group. Binding policy is applied by the caller, not here."""
        group = self.get_group(group_id)
        new_title = self._check_title(new_title)
        if self._title_taken(group.section, new_title, exclude_id=group_id):
            raise DuplicateTitle(group.section, new_title)
        if new_title == group.title:
            LOGGER.debug("Rename of group %s keeps its title", group_id)
            return

        old_title = group.title
        group.title = new_title
        group.updated_at = now_iso()
        LOGGER.info("Renamed group %s '%s' -> '%s'", group_id, old_title, new_title)
        self.activity.log_action(
            "group_renamed", group_id=group_id, details={"old_title": old_title, "new_title": new_title},
        )
        self._emit(RENAMED, group_id, old_title=old_title, new_title=new_title)

    def reorder_groups(self, section: str, ordered_group_ids: list[str]) -> None:
        """Replace the rank of every group in a section.

        Raises:
            IncompleteSet: if the list omits, duplicates or adds a member.
        """
        members = {g.id for g in self._groups.values() if g.section == section}
        if len(ordered_group_ids) != len(set(ordered_group_ids)):
            raise IncompleteSet(f"Reorder list for section '{section}' contains duplicates.")
        if set(ordered_group_ids) != members:
            missing = sorted(members - set(ordered_group_ids))
            extra = sorted(set(ordered_group_ids) - members)
            raise IncompleteSet(
                f"Reorder list for section '{section}' does not match its members "
                f"(missing: {missing}, unexpected: {extra})."
            )

        for rank, gid in enumerate(ordered_group_ids):
            self._groups[gid].rank = rank
        LOGGER.info("Reordered section %s: %s", section, ordered_group_ids)
        self.activity.log_action("groups_reordered", details={"section": section, "order": list(ordered_group_ids)})

    def merge_groups(self, source_id: str, dest_id: str) -> None:
        """Append all of source's pages to dest (order preserved), then delete source."""
        if source_id == dest_id:
            raise InvalidOperation("Cannot merge a category into itself.")
        source = self.get_group(source_id)
        dest = self.get_group(dest_id)

        moved = list(source.page_ids)
        for pid in moved:
            self._pages[pid].group_id = dest_id
        dest.page_ids.extend(moved)
        source.page_ids = []
        self._mark_changed(dest)

        LOGGER.info("Merged group %s into %s (%d pages)", source_id, dest_id, len(moved))
        self.activity.log_action(
            "groups_merged", group_id=dest_id, details={"source": source_id, "pages": moved},
        )
        self._emit(CONTENT_CHANGED, dest_id, added=moved)
        self._remove_group(source, reason="merged")

    def split_group(self, group_id: str, page_ids: list[str], new_title: str) -> str:
        """Move the named pages out of a group into a new group of the same section.

        Raises:
            EmptySelection: if no pages are given.
            NotFound: if a page is not in the group.
        """
        if not page_ids:
            raise EmptySelection("Select at least one page to split into a new category.")
        group = self.get_group(group_id)
        for pid in page_ids:
            if pid not in group.page_ids:
                raise NotFound("Page in group", pid)
        new_title = self._check_title(new_title)
        if self._title_taken(group.section, new_title):
            raise DuplicateTitle(group.section, new_title)

        selected = set(page_ids)
        # Keep the pages' relative order from the source group
        moving = [pid for pid in group.page_ids if pid in selected]
        new_group_id = self.create_group(group.section, new_title)
        new_group = self._groups[new_group_id]

        group.page_ids = [pid for pid in group.page_ids if pid not in selected]
        new_group.page_ids = moving
        for pid in moving:
            self._pages[pid].group_id = new_group_id
        self._mark_changed(group)
        self._mark_changed(new_group)

        LOGGER.info("Split %d pages from group %s into %s", len(moving), group_id, new_group_id)
        self.activity.log_action(
            "group_split", group_id=group_id, details={"new_group": new_group_id, "pages": moving},
        )
        self._emit(CONTENT_CHANGED, group_id, removed=moving)
        return new_group_id

    def delete_group(self, group_id: str) -> list[str]:
        """Remove a group and all its pages. Returns the removed page ids."""
        group = self.get_group(group_id)
        return self._remove_group(group, reason="deleted")

    def _remove_group(self, group: DocumentGroup, reason: str) -> list[str]:
        removed_pages = list(group.page_ids)
        for pid in removed_pages:
            del self._pages[pid]
        del self._groups[group.id]

        LOGGER.info("Removed group %s '%s' (%s, %d pages)", group.id, group.title, reason, len(removed_pages))
        self.activity.log_action(
            "group_deleted", group_id=group.id,
            details={"title": group.title, "reason": reason, "pages": removed_pages},
        )
        self._emit(DELETED, group.id, title=group.title, pages=removed_pages, reason=reason)
        return removed_pages

    def confirm_group_review(self, group_id: str) -> None:
        """Mark a group's page set as reviewed by a person."""
        group = self.get_group(group_id)
        group.status = GROUP_REVIEWED
        group.has_changes = False
        group.updated_at = now_iso()
        LOGGER.info("Group %s marked reviewed", group_id)
        self.activity.log_action("group_reviewed", group_id=group_id)
        self._emit(REVIEWED, group_id)

    # ------------------------------------------------------------------
    # Page operations
    # ------------------------------------------------------------------

    def add_pages(
        self,
        group_id: str,
        filenames: Iterable[str],
        payload_refs: Iterable[str] | None = None,
    ) -> list[str]:
        """Append newly uploaded pages to the end of a group."""
        group = self.get_group(group_id)
        names = list(filenames)
        refs = list(payload_refs) if payload_refs is not None else [""] * len(names)
        if len(refs) != len(names):
            raise InvalidOperation("payload_refs must match filenames one-to-one.")
        if not names:
            return []

        now = now_iso()
        added: list[str] = []
        for name, ref in zip(names, refs):
            page = Page(id=new_id("pg_"), group_id=group_id, filename=name, uploaded_at=now, payload_ref=ref)
            self._pages[page.id] = page
            group.page_ids.append(page.id)
            added.append(page.id)
        self._mark_changed(group)

        LOGGER.info("Uploaded %d page(s) to group %s", len(added), group_id)
        self.activity.log_action("pages_added", group_id=group_id, details={"pages": added})
        self._emit(CONTENT_CHANGED, group_id, added=added)
        return added

    def remove_page(self, page_id: str) -> str:
        """Delete a single page. Returns the id of the group it belonged to."""
        page = self.get_page(page_id)
        group = self.get_group(page.group_id)
        group.page_ids.remove(page_id)
        del self._pages[page_id]
        self._mark_changed(group)

        LOGGER.info("Removed page %s from group %s", page_id, group.id)
        self.activity.log_action("page_removed", group_id=group.id, details={"page": page_id})
        self._emit(CONTENT_CHANGED, group.id, removed=[page_id])
        return group.id

    def move_page(self, page_id: str, from_group_id: str, to_group_id: str, target_index: int) -> None:
        """Re-parent a page and re-rank the pages of both groups.

        ``target_index`` is clamped to the destination's bounds. Moving within
        one group is a local reorder.

        Raises:
            NotFound: if either group or the page (in the source group) is gone.
        """
        source = self.get_group(from_group_id)
        dest = self.get_group(to_group_id)
        page = self.get_page(page_id)
        if page.group_id != from_group_id or page_id not in source.page_ids:
            raise NotFound("Page in group", page_id)

        if from_group_id == to_group_id:
            self.reorder_page(from_group_id, source.page_ids.index(page_id), target_index)
            return

        index = max(0, min(target_index, len(dest.page_ids)))
        source.page_ids.remove(page_id)
        dest.page_ids.insert(index, page_id)
        page.group_id = to_group_id
        self._mark_changed(source)
        self._mark_changed(dest)

        LOGGER.info("Moved page %s from %s to %s at %d", page_id, from_group_id, to_group_id, index)
        self.activity.log_action(
            "page_moved", group_id=to_group_id,
            details={"page": page_id, "from": from_group_id, "index": index},
        )
        self._emit(CONTENT_CHANGED, from_group_id, removed=[page_id])
        self._emit(CONTENT_CHANGED, to_group_id, added=[page_id])

    def reorder_page(self, group_id: str, from_index: int, to_index: int) -> None:
        """Move one page to a new position inside its own group."""
        group = self.get_group(group_id)
        count = len(group.page_ids)
        if not 0 <= from_index < count:
            raise InvalidOperation(f"Page index {from_index} is out of range for group {group_id}.")
        to_index = max(0, min(to_index, count - 1))
        if from_index == to_index:
            LOGGER.debug("Reorder of page %d in group %s is a no-op", from_index, group_id)
            return

        pid = group.page_ids.pop(from_index)
        group.page_ids.insert(to_index, pid)
        self._mark_changed(group)

        LOGGER.info("Reordered page %s in group %s: %d -> %d", pid, group_id, from_index, to_index)
        self.activity.log_action(
            "page_reordered", group_id=group_id, details={"page": pid, "from": from_index, "to": to_index},
        )
        self._emit(CONTENT_CHANGED, group_id, reordered=[pid])
