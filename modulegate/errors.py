"""
Error types for ModuleGate.

All errors raised by the progression engine inherit from ``ModuleGateError``
so callers can catch the whole family with one ``except`` clause. Every
error is recoverable by the caller:

- AccessDenied: navigation or completion against a locked page (no state change)
- InvalidInput: malformed quiz answers, unknown page, empty question set
- PersistenceError: the progress store could not load or save
"""

from typing import Any, Optional


class ModuleGateError(Exception):
    """Base exception for all ModuleGate errors."""

    def __init__(self, message: str = "", details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class AccessDenied(ModuleGateError):
    """Raised when a learner targets a page that is currently locked."""

    def __init__(
        self,
        message: str = "Page is locked",
        page_index: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.page_index = page_index


class InvalidInput(ModuleGateError):
    """Raised for malformed caller input. Nothing has been changed."""


class PersistenceError(ModuleGateError):
    """
    Raised when the progress store fails.

    The in-memory progress has already been updated when this is raised
    from a save, so the remote copy may be stale until the next
    successful save.
    """

    def __init__(
        self,
        message: str = "Progress store failure",
        learner_id: str = "",
        module_id: str = "",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.learner_id = learner_id
        self.module_id = module_id
