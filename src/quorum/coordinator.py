# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Coordinator: composition root tying sessions, the store and collaborators."""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable
from uuid import UUID

from quorum import Clock, utc_now
from quorum.accumulator import SignatureAccumulator
from quorum.collaborators import SignerAgent, Submitter, TransactionBuilder
from quorum.config import CoordinatorConfig
from quorum.errors import (
    InvalidState,
    InvalidThreshold,
    SessionAlreadyActive,
    SessionExpired,
    SessionNotFound,
    SignerNotRequired,
    ThresholdNotMet,
    VersionConflict,
)
from quorum.logging import EventLog, log_method
from quorum.session.model import Session, SessionSnapshot, SessionStatus, open_session
from quorum.session.store import ExpireCallback, SessionStore, evict, sweep
from quorum.transfer import decode, encode, export_session, reconcile

_log = logging.getLogger(__name__)


class Coordinator:
    """Runs the signature-collection state machine against a session store.

    Every mutation is read, checked, then written with compare-and-swap on
    the version that was read, so concurrent writers never overwrite each
    other. The coordinator also tracks one local coordination scope: the
    session this party is currently working on.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        config: CoordinatorConfig | None = None,
        clock: Clock = utc_now,
        log: EventLog | None = None,
    ) -> None:
        self._store = store
        self._config = config or CoordinatorConfig()
        self._clock = clock
        self._log = log
        self._active: UUID | None = None
        self.on_expire: ExpireCallback | None = None

    @property
    def config(self) -> CoordinatorConfig:
        return self._config

    # -- Local scope ----------------------------------------------------------

    def active(self) -> Session | None:
        """The scope's session, or None if there is none or it is gone."""
        if self._active is None:
            return None
        try:
            return self.get(self._active)
        except (SessionNotFound, SessionExpired):
            self._active = None
            return None

    def has_active(self) -> bool:
        """True while the scope holds a session that can still progress."""
        session = self.active()
        return session is not None and not session.is_terminal

    def _check_scope(self, session_id: UUID | None = None) -> None:
        """Raise SessionAlreadyActive if another live session holds the scope."""
        current = self.active()
        if current is None or current.is_terminal or current.id == session_id:
            return
        raise SessionAlreadyActive(current.id, current.remaining(self._clock()))

    # -- State machine --------------------------------------------------------

    @log_method(after=True, exclude=("initiator_artifact", "artifact_template"))
    def create(
        self,
        required_authorizers: Iterable[str],
        threshold: int,
        initiator: str,
        initiator_artifact: str,
        *,
        artifact_template: str | None = None,
    ) -> Session:
        """Open a session seeded with the initiator's witness."""
        session = open_session(
            required_authorizers,
            threshold,
            initiator,
            initiator_artifact,
            now=self._clock(),
            ttl=self._config.session_ttl,
            artifact_template=artifact_template,
        )
        self._check_scope()
        self._store.create(session)
        self._active = session.id
        _log.info(
            "session %s created by %s: %d/%d",
            session.id,
            initiator,
            session.count,
            session.threshold,
        )
        return session

    def get(self, session_id: UUID) -> Session:
        """Read a session, expiring it lazily.

        A submitted session stays readable until its grace period ends.
        """
        return self._load(session_id, allow_submitted=True)

    @log_method(after=True, exclude=("merged_artifact",))
    def apply_signature(
        self,
        session_id: UUID,
        authorizer: str,
        merged_artifact: str,
        *,
        expected_version: int | None = None,
    ) -> Session:
        """Record one authorizer's witness.

        *merged_artifact* must have been derived from the accumulated
        artifact at *expected_version* (defaults to the version read here).
        Raises VersionConflict if the session moved on since.
        """
        session = self._load(session_id)
        expected = session.version if expected_version is None else expected_version
        session.add_signature(authorizer, merged_artifact)
        self._store.compare_and_swap(session, expected)
        _log.info(
            "session %s signed by %s: %d/%d (%s)",
            session.id,
            authorizer,
            session.count,
            session.threshold,
            session.status.value,
        )
        return session

    @log_method(after=True)
    def mark_submitted(self, session_id: UUID, finalized_reference: str) -> Session:
        """READY → SUBMITTED. Kept for the grace period, then purged."""
        session = self._load(session_id)
        expected = session.version
        session.submit(finalized_reference, self._clock())
        self._store.compare_and_swap(session, expected)
        _log.info("session %s submitted as %s", session.id, finalized_reference)
        return session

    @log_method(after=True)
    def expire(self, session_id: UUID) -> Session:
        """Force a non-terminal session to EXPIRED ahead of its TTL."""
        session = self._store.get(session_id)
        expected = session.version
        session.expire()
        self._store.compare_and_swap(session, expected)
        self._expired(session)
        return session

    def status(self, session_id: UUID) -> SessionSnapshot:
        return self.get(session_id).snapshot(self._clock())

    @log_method(after=True)
    def clear(self, session_id: UUID | None = None) -> bool:
        """Drop local coordination state. Defaults to the scope's session."""
        target = session_id if session_id is not None else self._active
        if target is None:
            return False
        if target == self._active:
            self._active = None
        return self._store.delete(target)

    @log_method(after=True)
    def sweep(self) -> list[Session]:
        """Evict expired sessions and submitted ones past the grace period."""
        removed = sweep(
            self._store,
            self._clock(),
            grace=self._config.submitted_grace,
            on_expire=self._expired,
        )
        if self._active is not None and any(s.id == self._active for s in removed):
            self._active = None
        return removed

    # -- Transfer -------------------------------------------------------------

    def export(self, session_id: UUID) -> str:
        """Encode the session's public progress for another party."""
        return encode(export_session(self.get(session_id)))

    @log_method(after=True, exclude=("payload",))
    def import_payload(self, payload: str) -> Session:
        """Reconcile a transfer payload with local state and bind the scope.

        A payload that is not strictly newer than local progress is
        discarded and the local session returned unchanged.
        """
        incoming = decode(payload)
        local = self._find(incoming.session_id)
        session, adopted = reconcile(
            incoming, local, self._clock(), ttl=self._config.session_ttl
        )
        self._check_scope(session.id)
        if not adopted:
            _log.info(
                "discarded payload for session %s at version %s (local %d)",
                session.id,
                incoming.version,
                session.version,
            )
        elif local is None:
            self._store.create(session)
        else:
            self._store.compare_and_swap(session, local.version)
        self._active = session.id
        return session

    # -- Collaborator flows ---------------------------------------------------

    @log_method(after=True, exclude=("builder", "signer"))
    async def initiate(
        self,
        builder: TransactionBuilder,
        signer: SignerAgent,
        destination: str,
        signing_authorizers: Collection[str],
    ) -> Session:
        """Build the artifact, sign it as the initiator and open a session."""
        self._check_scope()
        plan = await builder.build(destination, signing_authorizers)
        if not 1 <= plan.threshold <= len(plan.required_authorizers):
            raise InvalidThreshold(plan.threshold, len(plan.required_authorizers))
        if signer.identity not in plan.required_authorizers:
            raise SignerNotRequired(signer.identity)
        witnessed = await signer.sign(plan.artifact_template, partial=True)
        return self.create(
            plan.required_authorizers,
            plan.threshold,
            signer.identity,
            witnessed,
            artifact_template=plan.artifact_template,
        )

    @log_method(after=True, exclude=("accumulator",))
    async def co_sign(
        self,
        session_id: UUID,
        accumulator: SignatureAccumulator,
        authorizer: str,
    ) -> Session:
        """Merge and apply one witness, retrying on version conflicts.

        Each attempt re-reads the session and re-derives the merge from the
        fresh artifact. Gives up with VersionConflict after max_retries.
        """
        attempts = self._config.max_retries
        attempt = 0
        while True:
            attempt += 1
            session = self._load(session_id)
            session.check_can_sign(authorizer)
            merged = await accumulator.merge(session.accumulated_artifact, authorizer)
            try:
                return self.apply_signature(
                    session_id,
                    authorizer,
                    merged,
                    expected_version=session.version,
                )
            except VersionConflict as exc:
                if attempt >= attempts:
                    raise
                _log.info(
                    "session %s moved to version %d under %s (attempt %d/%d)",
                    session_id,
                    exc.actual,
                    authorizer,
                    attempt,
                    attempts,
                )

    @log_method(after=True, exclude=("submitter",))
    async def submit(self, session_id: UUID, submitter: Submitter) -> str:
        """Broadcast the accumulated artifact once the threshold is met."""
        session = self._load(session_id)
        if session.status == SessionStatus.PENDING:
            raise ThresholdNotMet(session.id, session.count, session.threshold)
        if session.status != SessionStatus.READY:
            raise InvalidState(session.id, session.status.value)
        reference = await submitter.submit(session.accumulated_artifact)
        self.mark_submitted(session_id, reference)
        return reference

    # -- Internals ------------------------------------------------------------

    def _load(self, session_id: UUID, *, allow_submitted: bool = False) -> Session:
        """Fetch a session, purging it if its time is up.

        Raises SessionNotFound, or SessionExpired for an expired session.
        """
        session = self._store.get(session_id)
        now = self._clock()
        if (
            session.submitted_at is not None
            and now > session.submitted_at + self._config.submitted_grace
        ):
            self._purge(session)
            raise SessionNotFound(session_id)
        if session.status == SessionStatus.EXPIRED or session.is_expired(now):
            if allow_submitted and session.status == SessionStatus.SUBMITTED:
                return session
            self._purge(session)
            raise SessionExpired(session.id, session.expires_at)
        return session

    def _find(self, session_id: UUID) -> Session | None:
        try:
            return self.get(session_id)
        except (SessionNotFound, SessionExpired):
            return None

    def _purge(self, session: Session) -> None:
        try:
            evict(self._store, session, self._expired)
        except (VersionConflict, SessionNotFound):
            # Another writer expired or removed it first.
            self._store.delete(session.id)
        if session.id == self._active:
            self._active = None

    def _expired(self, session: Session) -> None:
        _log.info(
            "session %s expired at %d/%d",
            session.id,
            session.count,
            session.threshold,
        )
        if self._log is not None:
            self._log.log("session.expired", session.summary())
        if self.on_expire is not None:
            self.on_expire(session)
