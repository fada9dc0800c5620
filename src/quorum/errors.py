# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Coordination error taxonomy.

Every error carries the state a caller needs to decide whether to retry,
wait, or abandon. Only VersionConflict is retryable, and only by re-reading
the session first.
"""

from datetime import datetime, timedelta
from uuid import UUID


class CoordinationError(Exception):
    """Base class for all coordination failures."""

    retryable = False


class InvalidThreshold(CoordinationError):
    """Threshold outside 1..|required authorizers|."""

    def __init__(self, threshold: int, required: int) -> None:
        self.threshold = threshold
        self.required = required
        super().__init__(
            f"threshold {threshold} not in 1..{required} required authorizers"
        )


class SignerNotRequired(CoordinationError):
    """Authorizer is not in the session's required set."""

    def __init__(self, authorizer: str, session_id: UUID | None = None) -> None:
        self.authorizer = authorizer
        self.session_id = session_id
        where = f" for session {session_id}" if session_id is not None else ""
        super().__init__(f"{authorizer!r} is not a required authorizer{where}")


class SessionAlreadyActive(CoordinationError):
    """The local scope already holds a live session."""

    def __init__(self, session_id: UUID, remaining: timedelta) -> None:
        self.session_id = session_id
        self.remaining = remaining
        super().__init__(
            f"session {session_id} is still active"
            f" ({int(remaining.total_seconds())}s left); clear it first"
        )


class SessionNotFound(CoordinationError):
    def __init__(self, session_id: UUID) -> None:
        self.session_id = session_id
        super().__init__(f"session {session_id} not found")


class SessionExpired(CoordinationError):
    def __init__(self, session_id: UUID, expired_at: datetime) -> None:
        self.session_id = session_id
        self.expired_at = expired_at
        super().__init__(
            f"session {session_id} expired at {expired_at.isoformat()}"
        )


class InvalidState(CoordinationError):
    """Operation not legal in the session's current status."""

    def __init__(self, session_id: UUID, status: str) -> None:
        self.session_id = session_id
        self.status = status
        super().__init__(f"session {session_id} is already {status!r}")


class AlreadySigned(CoordinationError):
    def __init__(self, session_id: UUID, authorizer: str) -> None:
        self.session_id = session_id
        self.authorizer = authorizer
        super().__init__(f"{authorizer!r} has already signed session {session_id}")


class ThresholdNotMet(CoordinationError):
    def __init__(self, session_id: UUID, collected: int, threshold: int) -> None:
        self.session_id = session_id
        self.collected = collected
        self.threshold = threshold
        super().__init__(
            f"not enough signatures for session {session_id}:"
            f" {collected}/{threshold}, waiting on {self.missing} more"
        )

    @property
    def missing(self) -> int:
        return max(0, self.threshold - self.collected)


class VersionConflict(CoordinationError):
    """Stored version moved on since the caller read the session."""

    retryable = True

    def __init__(self, session_id: UUID, expected: int, actual: int) -> None:
        self.session_id = session_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"session {session_id} is at version {actual}, expected {expected}"
        )


class ImportStale(CoordinationError):
    """Transfer payload whose expiry has already passed."""

    def __init__(self, session_id: UUID, expires_at: datetime) -> None:
        self.session_id = session_id
        self.expires_at = expires_at
        super().__init__(
            f"payload for session {session_id} expired at {expires_at.isoformat()}"
        )


class DuplicateSession(CoordinationError):
    def __init__(self, session_id: UUID) -> None:
        self.session_id = session_id
        super().__init__(f"duplicate session id: {session_id}")


class InvalidPayload(CoordinationError):
    """Transfer payload is malformed or contradicts session invariants."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"invalid transfer payload: {reason}")


__all__ = [
    "AlreadySigned",
    "CoordinationError",
    "DuplicateSession",
    "ImportStale",
    "InvalidPayload",
    "InvalidState",
    "InvalidThreshold",
    "SessionAlreadyActive",
    "SessionExpired",
    "SessionNotFound",
    "SignerNotRequired",
    "ThresholdNotMet",
    "VersionConflict",
]
