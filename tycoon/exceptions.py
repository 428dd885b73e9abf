"""
Exception hierarchy for the Tycoon engine, dispatcher and API layer.

Every caller-facing error carries a ``kind`` so transports can turn it
into a structured ``{kind, message}`` failure without inspecting types.
"""

from typing import Any, Dict, List, Optional


class MonopolyError(Exception):
    """Base exception for all game-related errors."""

    kind = "error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(MonopolyError):
    """Malformed or out-of-range intent, rejected before touching state."""

    kind = "validation"


class AuthorizationError(MonopolyError):
    """Caller may not perform this action (not their turn, not their property)."""

    kind = "authorization"


class InsufficientFundsError(MonopolyError):
    """Player cannot afford the action."""

    kind = "insufficient_funds"


class StateConflictError(MonopolyError):
    """Action conflicts with the current game state."""

    kind = "state_conflict"


class NotFoundError(MonopolyError):
    """Room, game, player or trade does not exist."""

    kind = "not_found"


class InvariantViolation(MonopolyError):
    """Internal defect. Never expected to reach a caller."""

    kind = "invariant_violation"


class SnapshotError(ValidationError):
    """Snapshot document failed structural validation."""

    def __init__(self, errors: List[str]):
        super().__init__("invalid snapshot: " + "; ".join(errors))
        self.errors = list(errors)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class StorageError(MonopolyError):
    """Snapshot store operation failed."""

    kind = "storage"

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
