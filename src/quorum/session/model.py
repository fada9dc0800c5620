# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Session data model and state machine."""

import enum
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, NamedTuple
from uuid import UUID, uuid4

from quorum import utc_now
from quorum.errors import (
    AlreadySigned,
    InvalidState,
    InvalidThreshold,
    SignerNotRequired,
    ThresholdNotMet,
)


class SessionStatus(enum.Enum):
    PENDING = "pending"
    READY = "ready"
    SUBMITTED = "submitted"
    EXPIRED = "expired"


# Valid state transitions.
_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.READY, SessionStatus.EXPIRED}),
    SessionStatus.READY: frozenset({SessionStatus.SUBMITTED, SessionStatus.EXPIRED}),
    SessionStatus.SUBMITTED: frozenset(),
    SessionStatus.EXPIRED: frozenset(),
}

TERMINAL: frozenset[SessionStatus] = frozenset(
    {SessionStatus.SUBMITTED, SessionStatus.EXPIRED}
)


class SessionSnapshot(NamedTuple):
    """Human-facing progress summary."""

    session_id: UUID
    signed: int
    required: int
    status: SessionStatus
    remaining: timedelta


@dataclass
class Session:
    """One coordination round over one artifact.

    Knows the transition rules and bookkeeping guards. Knows nothing about
    clocks, stores, or how witnesses get merged into the artifact.
    """

    required_authorizers: frozenset[str]
    threshold: int
    artifact_template: str
    accumulated_artifact: str
    expires_at: datetime
    id: UUID = field(default_factory=uuid4)
    collected_authorizers: list[str] = field(default_factory=list)
    status: SessionStatus = SessionStatus.PENDING
    version: int = 0
    created_at: datetime = field(default_factory=utc_now)
    finalized_reference: str | None = None
    submitted_at: datetime | None = None

    @property
    def count(self) -> int:
        return len(self.collected_authorizers)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def remaining(self, now: datetime) -> timedelta:
        return max(timedelta(0), self.expires_at - now)

    def snapshot(self, now: datetime) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.id,
            signed=self.count,
            required=self.threshold,
            status=self.status,
            remaining=self.remaining(now),
        )

    def summary(self) -> dict[str, Any]:
        """Log-friendly view. Artifacts are left out."""
        return {
            "session_id": self.id.hex,
            "status": self.status.value,
            "version": self.version,
            "collected": list(self.collected_authorizers),
            "threshold": self.threshold,
        }

    def transition(self, target: SessionStatus) -> None:
        """Move to a new status. Raises InvalidState if not allowed."""
        if target not in _TRANSITIONS[self.status]:
            raise InvalidState(self.id, self.status.value)
        self.status = target

    def check_can_sign(self, authorizer: str) -> None:
        """Run the apply-signature guards without mutating anything."""
        if self.status != SessionStatus.PENDING:
            raise InvalidState(self.id, self.status.value)
        if authorizer not in self.required_authorizers:
            raise SignerNotRequired(authorizer, self.id)
        if authorizer in self.collected_authorizers:
            raise AlreadySigned(self.id, authorizer)

    def add_signature(self, authorizer: str, merged_artifact: str) -> None:
        """PENDING → PENDING/READY. Replaces the artifact, records the signer."""
        self.check_can_sign(authorizer)
        self.accumulated_artifact = merged_artifact
        self.collected_authorizers.append(authorizer)
        if self.count >= self.threshold:
            self.transition(SessionStatus.READY)
        self.version += 1

    def submit(self, finalized_reference: str, now: datetime) -> None:
        """READY → SUBMITTED."""
        if self.status == SessionStatus.PENDING:
            raise ThresholdNotMet(self.id, self.count, self.threshold)
        self.transition(SessionStatus.SUBMITTED)
        self.finalized_reference = finalized_reference
        self.submitted_at = now
        self.version += 1

    def expire(self) -> None:
        """PENDING/READY → EXPIRED."""
        self.transition(SessionStatus.EXPIRED)
        self.version += 1

    def check_invariants(self) -> None:
        """Raise ValueError if the record violates a structural invariant."""
        if not 1 <= self.threshold <= len(self.required_authorizers):
            raise ValueError(
                f"threshold {self.threshold} outside"
                f" 1..{len(self.required_authorizers)}"
            )
        if len(set(self.collected_authorizers)) != self.count:
            raise ValueError("duplicate collected authorizers")
        strangers = set(self.collected_authorizers) - self.required_authorizers
        if strangers:
            raise ValueError(f"collected authorizers not required: {sorted(strangers)}")
        if not self.is_terminal:
            expected = (
                SessionStatus.READY
                if self.count >= self.threshold
                else SessionStatus.PENDING
            )
            if self.status != expected:
                raise ValueError(
                    f"status {self.status.value} with {self.count}/{self.threshold}"
                )
        if self.version < 0:
            raise ValueError(f"negative version {self.version}")


def open_session(
    required_authorizers: Iterable[str],
    threshold: int,
    initiator: str,
    initiator_artifact: str,
    *,
    now: datetime,
    ttl: timedelta,
    artifact_template: str | None = None,
) -> Session:
    """Build a fresh session seeded with the initiator's witness.

    Raises InvalidThreshold or SignerNotRequired. Threshold 1 starts READY.
    """
    required = frozenset(required_authorizers)
    if not 1 <= threshold <= len(required):
        raise InvalidThreshold(threshold, len(required))
    if initiator not in required:
        raise SignerNotRequired(initiator)
    status = SessionStatus.READY if threshold <= 1 else SessionStatus.PENDING
    return Session(
        required_authorizers=required,
        threshold=threshold,
        artifact_template=(
            artifact_template if artifact_template is not None else initiator_artifact
        ),
        accumulated_artifact=initiator_artifact,
        collected_authorizers=[initiator],
        status=status,
        created_at=now,
        expires_at=now + ttl,
    )
