# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Session stores with optimistic versioning, plus the eviction sweep."""

from __future__ import annotations

import json
import logging
import shutil
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Protocol, runtime_checkable
from uuid import UUID

from quorum.errors import DuplicateSession, SessionNotFound, VersionConflict
from quorum.persistence import atomic_write, file_lock
from quorum.session.model import Session, SessionStatus

_log = logging.getLogger(__name__)

_SESSION_FILE = "session.json"
_LOCK_FILE = ".lock"

ExpireCallback = Callable[[Session], None]


@runtime_checkable
class SessionStore(Protocol):
    """Keyed map from session id to Session. The single source of truth.

    Every read returns a private copy; mutating it has no effect until it
    is written back through compare_and_swap.
    """

    def get(self, session_id: UUID) -> Session:
        """Load one session. Raises SessionNotFound."""
        ...

    def create(self, session: Session) -> None:
        """Insert a new session. Raises DuplicateSession."""
        ...

    def compare_and_swap(self, session: Session, expected_version: int) -> None:
        """Replace the stored record iff its version is expected_version.

        Raises VersionConflict on a stale version, SessionNotFound if gone.
        """
        ...

    def delete(self, session_id: UUID) -> bool:
        """Remove a session. False if it was not there."""
        ...

    def scan(self) -> list[Session]:
        """Load every stored session."""
        ...


def encode_session(session: Session) -> bytes:
    """Session -> JSON bytes."""
    obj = {
        "id": session.id.hex,
        "required_authorizers": sorted(session.required_authorizers),
        "threshold": session.threshold,
        "artifact_template": session.artifact_template,
        "accumulated_artifact": session.accumulated_artifact,
        "collected_authorizers": session.collected_authorizers,
        "status": session.status.value,
        "version": session.version,
        "created_at": session.created_at.isoformat(),
        "expires_at": session.expires_at.isoformat(),
        "finalized_reference": session.finalized_reference,
        "submitted_at": (
            session.submitted_at.isoformat() if session.submitted_at else None
        ),
    }
    return json.dumps(obj, indent=2).encode()


def decode_session(data: bytes) -> Session:
    """JSON bytes -> Session."""
    obj = json.loads(data)
    submitted_at = obj.get("submitted_at")
    return Session(
        id=UUID(obj["id"]),
        required_authorizers=frozenset(obj["required_authorizers"]),
        threshold=obj["threshold"],
        artifact_template=obj["artifact_template"],
        accumulated_artifact=obj["accumulated_artifact"],
        collected_authorizers=list(obj["collected_authorizers"]),
        status=SessionStatus(obj["status"]),
        version=obj["version"],
        created_at=datetime.fromisoformat(obj["created_at"]),
        expires_at=datetime.fromisoformat(obj["expires_at"]),
        finalized_reference=obj.get("finalized_reference"),
        submitted_at=datetime.fromisoformat(submitted_at) if submitted_at else None,
    )


class MemorySessionStore:
    """In-process store. Records are held serialized so no caller can
    mutate stored state behind the store's back."""

    def __init__(self) -> None:
        self._records: dict[UUID, bytes] = {}
        self._lock = threading.Lock()

    def get(self, session_id: UUID) -> Session:
        with self._lock:
            data = self._records.get(session_id)
        if data is None:
            raise SessionNotFound(session_id)
        return decode_session(data)

    def create(self, session: Session) -> None:
        with self._lock:
            if session.id in self._records:
                raise DuplicateSession(session.id)
            self._records[session.id] = encode_session(session)

    def compare_and_swap(self, session: Session, expected_version: int) -> None:
        with self._lock:
            data = self._records.get(session.id)
            if data is None:
                raise SessionNotFound(session.id)
            current = decode_session(data)
            if current.version != expected_version:
                raise VersionConflict(session.id, expected_version, current.version)
            self._records[session.id] = encode_session(session)

    def delete(self, session_id: UUID) -> bool:
        with self._lock:
            return self._records.pop(session_id, None) is not None

    def scan(self) -> list[Session]:
        with self._lock:
            records = list(self._records.values())
        return [decode_session(data) for data in records]

    def __len__(self) -> int:
        return len(self._records)


class FileSessionStore:
    """Directory-backed store: root/<uuid-hex>/session.json per session.

    Mutations hold an exclusive lock on root/.lock, so independent processes
    sharing the directory get the same compare-and-swap contract.
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    def session_dir(self, session_id: UUID) -> Path:
        """Return root/<uuid-hex>/ for the given session."""
        return self._root / session_id.hex

    def _path(self, session_id: UUID) -> Path:
        return self.session_dir(session_id) / _SESSION_FILE

    def _read(self, session_id: UUID) -> Session:
        try:
            data = self._path(session_id).read_bytes()
        except FileNotFoundError:
            raise SessionNotFound(session_id) from None
        return decode_session(data)

    def get(self, session_id: UUID) -> Session:
        return self._read(session_id)

    def create(self, session: Session) -> None:
        with file_lock(self._root / _LOCK_FILE):
            if self._path(session.id).is_file():
                raise DuplicateSession(session.id)
            atomic_write(self._path(session.id), encode_session(session))

    def compare_and_swap(self, session: Session, expected_version: int) -> None:
        with file_lock(self._root / _LOCK_FILE):
            current = self._read(session.id)
            if current.version != expected_version:
                raise VersionConflict(session.id, expected_version, current.version)
            atomic_write(self._path(session.id), encode_session(session))

    def delete(self, session_id: UUID) -> bool:
        with file_lock(self._root / _LOCK_FILE):
            d = self.session_dir(session_id)
            if not d.is_dir():
                return False
            shutil.rmtree(d)
            return True

    def scan(self) -> list[Session]:
        """Load all session records under root."""
        if not self._root.is_dir():
            return []
        sessions: list[Session] = []
        for child in sorted(self._root.iterdir()):
            sf = child / _SESSION_FILE
            if sf.is_file():
                sessions.append(decode_session(sf.read_bytes()))
        return sessions


def evict(
    store: SessionStore,
    session: Session,
    on_expire: ExpireCallback | None = None,
) -> Session:
    """Expire a non-terminal session, write that back, then remove it.

    Raises VersionConflict if another writer got there first.
    """
    if not session.is_terminal:
        expected = session.version
        session.expire()
        store.compare_and_swap(session, expected)
        if on_expire is not None:
            on_expire(session)
    store.delete(session.id)
    return session


def sweep(
    store: SessionStore,
    now: datetime,
    *,
    grace: timedelta,
    on_expire: ExpireCallback | None = None,
) -> list[Session]:
    """Remove expired sessions and submitted ones past their grace period.

    Returns the removed sessions. A record that changes under the sweep is
    left for the next pass.
    """
    removed: list[Session] = []
    for session in store.scan():
        grace_over = (
            session.status == SessionStatus.SUBMITTED
            and session.submitted_at is not None
            and now > session.submitted_at + grace
        )
        if not (grace_over or session.is_expired(now)):
            continue
        try:
            removed.append(evict(store, session, on_expire))
        except (VersionConflict, SessionNotFound) as exc:
            _log.debug("sweep skipped session %s: %s", session.id, exc)
    return removed
