"""
Exception hierarchy for skilltree.

Running out of hearts is a session state, not an exception, and resume failures
return ``None``; these classes only cover authoring problems, collaborator failures and
misuse of the session machine.
"""

from __future__ import annotations


class SkillTreeError(Exception):
    """Base class for all skilltree errors."""


class AuthoringError(SkillTreeError):
    """Malformed curriculum data (duplicate positions, dangling references)."""


class CollaboratorError(SkillTreeError):
    """A collaborator rejected a request; retrying will not help."""


class TransientError(CollaboratorError):
    """A collaborator call failed in a way the caller may retry."""

    def __init__(self, message: str, *, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class SessionStateError(SkillTreeError):
    """Operation is not allowed in the session's current state."""


class SessionBusyError(SessionStateError):
    """Another network call is already in flight for this attempt."""
