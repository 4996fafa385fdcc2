"""
Error hierarchy for the rating engine.

Store errors are split by what the caller should do about them:

- TransientStoreError: retry with backoff (write conflicts, failover)
- CapabilityMismatchError: the store cannot run transactions; switch to
  per-record writes for the rest of the process and retry at once
- PermanentStoreError: give up on this game

Games that simply do not qualify for a rating update (unfinished, no rated
opponents, already applied) are not errors at all; see SkipReason.
"""

from __future__ import annotations

import enum
from typing import Any, Dict, Optional

__all__ = [
    "CapabilityMismatchError",
    "PermanentStoreError",
    "RatingEngineError",
    "SkipReason",
    "StoreError",
    "TransientStoreError",
]


class RatingEngineError(Exception):
    """Base exception for all rating engine errors.

    Attributes:
        message: Human-readable error description
        context: Additional context for debugging (game id, game type, ...)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class StoreError(RatingEngineError):
    """Persistence failure while loading or writing identities."""


class TransientStoreError(StoreError):
    """Write conflict or similar failure that is expected to clear on retry."""


class CapabilityMismatchError(StoreError):
    """The store does not support multi-record transactions."""


class PermanentStoreError(StoreError):
    """Any other persistence failure. Not retried."""


class SkipReason(str, enum.Enum):
    NOT_FINISHED = "not_finished"
    NO_IDENTITIES = "no_identities"
    ALREADY_APPLIED = "already_applied"
    NO_OPPONENTS = "no_opponents"
