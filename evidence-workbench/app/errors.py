"""Error taxonomy for the Evidence Workbench.

All errors are local and recoverable: the operation that raised left the
workbench state unchanged, and the caller may re-issue it with corrected
input.
"""

from __future__ import annotations


class WorkbenchError(Exception):
    """Base class for every workbench error."""


class NotFound(WorkbenchError):
    """A referenced group, page, module, field or issue no longer exists."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class DuplicateTitle(WorkbenchError):
    """A group title collides case-insensitively within its section."""

    def __init__(self, section: str, title: str):
        self.section = section
        self.title = title
        super().__init__(f"A category named '{title}' already exists in section '{section}'.")


class IncompleteSet(WorkbenchError):
    """A reorder request omitted or duplicated a member of the section."""


class CrossSectionMove(WorkbenchError):
    """A group was dragged into a different section."""


class EmptySelection(WorkbenchError):
    """A split was requested without any pages."""


class IncompleteReview(WorkbenchError):
    """Review completion was attempted with unverified fields remaining."""

    def __init__(self, module_id: str, unverified: list[str]):
        self.module_id = module_id
        self.unverified = unverified
        super().__init__(
            f"Module {module_id} has {len(unverified)} unverified field(s): "
            + ", ".join(unverified)
        )


class InvalidOperation(WorkbenchError):
    """A request that is structurally invalid for reasons not covered above."""


class InvalidTransition(WorkbenchError):
    """A module lifecycle transition that the state machine forbids."""

    def __init__(self, module_id: str, current: str, target: str):
        self.module_id = module_id
        self.current = current
        self.target = target
        super().__init__(f"Module {module_id} cannot move from '{current}' to '{target}'.")
