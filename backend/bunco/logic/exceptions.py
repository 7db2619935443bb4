"""Typed domain exceptions for Bunco matches.

Turn and round preconditions (not your turn, round already over, transition
running) are not exceptions: those actions are silent no-ops. Exceptions are
reserved for setup mistakes and documents that do not match their schema.
"""


class BuncoError(Exception):
    """Base exception for Bunco domain errors."""


class MatchSetupError(BuncoError):
    """A match cannot be started from the current lobby state."""


class MalformedDocumentError(BuncoError):
    """A document read from the shared store does not match its schema.

    Attributes:
        path: Store path of the offending document.
        reason: Validation failure summary.

    """

    def __init__(self, *, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"malformed document at {path}: {reason}")
