"""Exception types shared across the level service."""

from __future__ import annotations


class LevelSystemError(Exception):
    """Base class for all level-service errors."""


class DuplicateActivityError(LevelSystemError):
    """An activity with this transaction signature was already recorded."""

    def __init__(self, signature: str) -> None:
        super().__init__(f"Transaction already processed: {signature}")
        self.signature = signature


class UnknownActivityTypeError(LevelSystemError):
    """The activity type name is not in the catalog."""

    def __init__(self, activity_type: str) -> None:
        super().__init__(f"Activity type {activity_type} not found")
        self.activity_type = activity_type


class RpcError(LevelSystemError):
    """The blockchain RPC endpoint returned an error or could not be reached."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class RateLimitError(RpcError):
    """The RPC endpoint asked us to slow down (HTTP 429 or equivalent)."""
