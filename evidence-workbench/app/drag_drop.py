"""Drag-and-drop resolution for the document manager.

``reduce_drag`` is a pure function: given an immutable Layout of the
document groups and a DragEvent it returns the next Layout together with
the store command that produces it. It never touches the Document Store;
the workbench applies the command. Identical inputs always give identical
results.

Resolution rules, in priority order:

1. A page dropped on a page of another group moves to that group at the
   target's index (``after`` means the slot behind it).
2. A page dropped on another group's header is appended to that group.
3. A page dropped inside its own group is a local reorder.
4. A group header dropped on another header of the same section reorders
   the section (``into`` swaps the two); other sections are rejected.
5. A cross-group move that empties its source schedules the source for
   deletion: immediately when unbound, behind a confirmation when bound.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from app.errors import CrossSectionMove, InvalidOperation, NotFound

PAGE = "page"
GROUP = "group"
GUTTER = "gutter"

BEFORE = "before"
AFTER = "after"
INTO = "into"
DROP_POSITIONS = (BEFORE, AFTER, INTO)


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GroupLayout:
    """What the reducer needs to know about one group."""

    id: str
    section: str
    page_ids: tuple[str, ...] = ()
    bound: bool = False


@dataclass(frozen=True)
class Layout:
    """Groups in display order (by section, then rank)."""

    groups: tuple[GroupLayout, ...] = ()

    @classmethod
    def from_store(cls, store, registry=None) -> Layout:
        """Capture the current store (and binding) state as a Layout."""
        groups: list[GroupLayout] = []
        for section in store.sections():
            for group in store.groups_in(section):
                groups.append(GroupLayout(
                    id=group.id,
                    section=group.section,
                    page_ids=tuple(group.page_ids),
                    bound=registry.is_bound(group.id) if registry is not None else False,
                ))
        return cls(groups=tuple(groups))

    def group(self, group_id: str) -> GroupLayout | None:
        for g in self.groups:
            if g.id == group_id:
                return g
        return None

    def group_of_page(self, page_id: str) -> GroupLayout | None:
        for g in self.groups:
            if page_id in g.page_ids:
                return g
        return None

    def section_order(self, section: str) -> list[str]:
        return [g.id for g in self.groups if g.section == section]


# ---------------------------------------------------------------------------
# Events and commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DragEvent:
    """A completed drag gesture.

    ``target_id`` names a page, a group, or (for ``gutter``) a section.
    """

    item_kind: str
    item_id: str
    target_kind: str
    target_id: str
    position: str = INTO


@dataclass(frozen=True)
class MovePage:
    page_id: str
    from_group_id: str
    to_group_id: str
    target_index: int


@dataclass(frozen=True)
class ReorderPage:
    group_id: str
    from_index: int
    to_index: int


@dataclass(frozen=True)
class ReorderGroups:
    section: str
    ordered_group_ids: tuple[str, ...]


@dataclass(frozen=True)
class DeleteGroup:
    group_id: str
    requires_confirmation: bool = False


@dataclass(frozen=True)
class NoOp:
    reason: str = ""


Command = MovePage | ReorderPage | ReorderGroups | DeleteGroup | NoOp


@dataclass(frozen=True)
class DropResult:
    next_layout: Layout
    command: Command
    cleanup: DeleteGroup | None = None


# ---------------------------------------------------------------------------
# Layout transitions
# ---------------------------------------------------------------------------


def _with_group(layout: Layout, updated: GroupLayout) -> Layout:
    return Layout(groups=tuple(updated if g.id == updated.id else g for g in layout.groups))


def apply_to_layout(layout: Layout, command: Command) -> Layout:
    """Return the layout that results from applying a command."""
    if isinstance(command, MovePage):
        source = layout.group(command.from_group_id)
        dest = layout.group(command.to_group_id)
        src_pages = tuple(p for p in source.page_ids if p != command.page_id)
        dest_pages = list(dest.page_ids)
        index = max(0, min(command.target_index, len(dest_pages)))
        dest_pages.insert(index, command.page_id)
        layout = _with_group(layout, replace(source, page_ids=src_pages))
        return _with_group(layout, replace(dest, page_ids=tuple(dest_pages)))

    if isinstance(command, ReorderPage):
        group = layout.group(command.group_id)
        pages = list(group.page_ids)
        pid = pages.pop(command.from_index)
        pages.insert(command.to_index, pid)
        return _with_group(layout, replace(group, page_ids=tuple(pages)))

    if isinstance(command, ReorderGroups):
        by_id = {g.id: g for g in layout.groups}
        ordered = iter(command.ordered_group_ids)
        # Section members keep their slots in the overall tuple, filled in the new order
        return Layout(groups=tuple(
            by_id[next(ordered)] if g.section == command.section else g
            for g in layout.groups
        ))

    if isinstance(command, DeleteGroup):
        return Layout(groups=tuple(g for g in layout.groups if g.id != command.group_id))

    return layout


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------


def _require_group(layout: Layout, group_id: str) -> GroupLayout:
    group = layout.group(group_id)
    if group is None:
        raise NotFound("Group", group_id)
    return group


def _require_page_group(layout: Layout, page_id: str) -> GroupLayout:
    group = layout.group_of_page(page_id)
    if group is None:
        raise NotFound("Page", page_id)
    return group


def _local_reorder(group: GroupLayout, page_id: str, insert_at: int) -> Command:
    """Reorder within one group; ``insert_at`` is measured before removal."""
    from_index = group.page_ids.index(page_id)
    to_index = insert_at - 1 if from_index < insert_at else insert_at
    to_index = max(0, min(to_index, len(group.page_ids) - 1))
    if to_index == from_index:
        return NoOp("Page is already at that position.")
    return ReorderPage(group_id=group.id, from_index=from_index, to_index=to_index)


def _resolve_page_drag(layout: Layout, event: DragEvent) -> Command:
    source = _require_page_group(layout, event.item_id)

    if event.target_kind == PAGE:
        if event.target_id == event.item_id:
            return NoOp("Page dropped on itself.")
        target_group = _require_page_group(layout, event.target_id)
        index = target_group.page_ids.index(event.target_id)
        insert_at = index + 1 if event.position == AFTER else index
        if target_group.id == source.id:
            return _local_reorder(source, event.item_id, insert_at)
        return MovePage(event.item_id, source.id, target_group.id, insert_at)

    if event.target_kind == GROUP:
        target_group = _require_group(layout, event.target_id)
        # Headers always take the page after their last existing child
        insert_at = len(target_group.page_ids)
        if target_group.id == source.id:
            return _local_reorder(source, event.item_id, insert_at)
        return MovePage(event.item_id, source.id, target_group.id, insert_at)

    return NoOp("Pages can only be dropped on a page or a category.")


def _resolve_group_drag(layout: Layout, event: DragEvent) -> Command:
    source = _require_group(layout, event.item_id)

    if event.target_kind == GUTTER:
        if event.target_id != source.section:
            raise CrossSectionMove(
                f"Category {source.id} belongs to section '{source.section}' "
                f"and cannot move to '{event.target_id}'."
            )
        order = [gid for gid in layout.section_order(source.section) if gid != source.id]
        if event.position == BEFORE:
            order.insert(0, source.id)
        else:
            order.append(source.id)
    else:
        if event.target_kind == PAGE:
            target = _require_page_group(layout, event.target_id)
        else:
            target = _require_group(layout, event.target_id)
        if target.section != source.section:
            raise CrossSectionMove(
                f"Categories are section-scoped: '{source.section}' -> '{target.section}'."
            )
        if target.id == source.id:
            return NoOp("Category dropped on itself.")

        order = layout.section_order(source.section)
        if event.position == INTO:
            i, j = order.index(source.id), order.index(target.id)
            order[i], order[j] = order[j], order[i]
        else:
            order.remove(source.id)
            index = order.index(target.id)
            order.insert(index + 1 if event.position == AFTER else index, source.id)

    if order == layout.section_order(source.section):
        return NoOp("Category order unchanged.")
    return ReorderGroups(section=source.section, ordered_group_ids=tuple(order))


def reduce_drag(layout: Layout, event: DragEvent, auto_delete_empty: bool = True) -> DropResult:
    """Resolve a drag gesture into the next layout and the store command.

    Raises:
        NotFound: if the dragged item or its target is not in the layout.
        CrossSectionMove: if a category is dropped into another section.
        InvalidOperation: for an unknown item kind, target kind or position.
    """
    if event.position not in DROP_POSITIONS:
        raise InvalidOperation(f"Unknown drop position: {event.position}")
    if event.target_kind not in (PAGE, GROUP, GUTTER):
        raise InvalidOperation(f"Unknown drop target: {event.target_kind}")

    if event.item_kind == PAGE:
        command = _resolve_page_drag(layout, event)
    elif event.item_kind == GROUP:
        command = _resolve_group_drag(layout, event)
    else:
        raise InvalidOperation(f"Unknown drag item: {event.item_kind}")

    next_layout = apply_to_layout(layout, command)

    cleanup = None
    if isinstance(command, MovePage):
        emptied = next_layout.group(command.from_group_id)
        if not emptied.page_ids:
            if emptied.bound:
                cleanup = DeleteGroup(emptied.id, requires_confirmation=True)
            elif auto_delete_empty:
                cleanup = DeleteGroup(emptied.id)
                next_layout = apply_to_layout(next_layout, cleanup)

    return DropResult(next_layout=next_layout, command=command, cleanup=cleanup)
