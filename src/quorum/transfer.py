# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Transfer payloads: moving session progress between parties that do not
share a store.

The encoded payload is URL-safe base64 over compact JSON with camelCase
keys. Timestamps are epoch milliseconds. New keys may be added; existing
keys keep their meaning.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from quorum.errors import ImportStale, InvalidPayload
from quorum.session.model import Session, SessionStatus


@dataclass(frozen=True)
class TransferPayload:
    """Public progress of one session. No template, no internal bookkeeping.

    ``version`` is None for payloads from stores that do not version
    sessions; those are compared by collected count instead.
    ``required_authorizers`` is None for payloads that leave the required
    set out; the importer then takes it from its local copy.
    """

    session_id: UUID
    accumulated_artifact: str
    collected_authorizers: tuple[str, ...]
    threshold: int
    expires_at: datetime
    required_authorizers: frozenset[str] | None = None
    version: int | None = None
    created_at: datetime | None = None
    finalized_reference: str | None = None

    @property
    def count(self) -> int:
        return len(self.collected_authorizers)


def _to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _from_ms(value: Any) -> datetime:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise TypeError(f"timestamp must be a number, got {value!r}")
    try:
        return datetime.fromtimestamp(value / 1000, UTC)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"timestamp out of range: {value!r}") from exc


def export_session(session: Session) -> TransferPayload:
    return TransferPayload(
        session_id=session.id,
        accumulated_artifact=session.accumulated_artifact,
        collected_authorizers=tuple(session.collected_authorizers),
        threshold=session.threshold,
        expires_at=session.expires_at,
        required_authorizers=session.required_authorizers,
        version=session.version,
        created_at=session.created_at,
        finalized_reference=session.finalized_reference,
    )


def encode(payload: TransferPayload) -> str:
    obj: dict[str, Any] = {
        "sessionId": str(payload.session_id),
        "accumulatedArtifact": payload.accumulated_artifact,
        "collectedAuthorizers": list(payload.collected_authorizers),
        "threshold": payload.threshold,
        "expiresAt": _to_ms(payload.expires_at),
    }
    if payload.required_authorizers is not None:
        obj["requiredAuthorizers"] = sorted(payload.required_authorizers)
    if payload.version is not None:
        obj["version"] = payload.version
    if payload.created_at is not None:
        obj["createdAt"] = _to_ms(payload.created_at)
    if payload.finalized_reference is not None:
        obj["finalizedReference"] = payload.finalized_reference
    raw = json.dumps(obj, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode("ascii")


def _check(payload: TransferPayload) -> None:
    """Reject payloads that could not describe a real session."""
    if isinstance(payload.threshold, bool) or not isinstance(payload.threshold, int):
        raise InvalidPayload("threshold must be an integer")
    required = payload.required_authorizers
    if payload.threshold < 1 or (
        required is not None and payload.threshold > len(required)
    ):
        bound = len(required) if required is not None else "n"
        raise InvalidPayload(f"threshold {payload.threshold} outside 1..{bound}")
    if not payload.collected_authorizers:
        raise InvalidPayload("no collected authorizers")
    if len(set(payload.collected_authorizers)) != payload.count:
        raise InvalidPayload("duplicate collected authorizers")
    if required is not None and not set(payload.collected_authorizers) <= required:
        raise InvalidPayload("collected authorizers outside the required set")
    if payload.finalized_reference is not None and not isinstance(
        payload.finalized_reference, str
    ):
        raise InvalidPayload("finalizedReference must be a string")
    if payload.version is not None and (
        isinstance(payload.version, bool)
        or not isinstance(payload.version, int)
        or payload.version < 0
    ):
        raise InvalidPayload(f"bad version {payload.version!r}")
    if payload.finalized_reference is not None and payload.count < payload.threshold:
        raise InvalidPayload("finalized below threshold")


def decode(text: str) -> TransferPayload:
    """Parse an encoded payload. Raises InvalidPayload."""
    try:
        obj = json.loads(base64.urlsafe_b64decode(text.strip().encode("ascii")))
        if not isinstance(obj, dict):
            raise TypeError("payload is not an object")
        collected = obj["collectedAuthorizers"]
        required = obj.get("requiredAuthorizers")
        if not isinstance(collected, list) or not isinstance(
            required, list | None
        ):
            raise TypeError("authorizer sets must be lists")
        artifact = obj["accumulatedArtifact"]
        if not isinstance(artifact, str):
            raise TypeError("accumulatedArtifact must be a string")
        created = obj.get("createdAt")
        payload = TransferPayload(
            session_id=UUID(obj["sessionId"]),
            accumulated_artifact=artifact,
            collected_authorizers=tuple(str(a) for a in collected),
            threshold=obj["threshold"],
            expires_at=_from_ms(obj["expiresAt"]),
            required_authorizers=(
                frozenset(str(a) for a in required) if required is not None else None
            ),
            version=obj.get("version"),
            created_at=_from_ms(created) if created is not None else None,
            finalized_reference=obj.get("finalizedReference"),
        )
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise InvalidPayload(str(exc)) from exc
    _check(payload)
    return payload


def _is_newer(payload: TransferPayload, local: Session) -> bool:
    if payload.count < local.count:
        return False
    if payload.version is not None:
        return payload.version > local.version
    return payload.count > local.count


def _adopt(
    payload: TransferPayload,
    required: frozenset[str],
    local: Session | None,
    now: datetime,
    ttl: timedelta,
) -> Session:
    if payload.finalized_reference is not None:
        status = SessionStatus.SUBMITTED
    elif payload.count >= payload.threshold:
        status = SessionStatus.READY
    else:
        status = SessionStatus.PENDING
    if payload.version is not None:
        version = payload.version
    elif local is not None:
        version = local.version + 1
    else:
        # One version per accepted signature since creation.
        version = payload.count - 1
    if local is not None:
        template = local.artifact_template
        created_at = local.created_at
    else:
        template = payload.accumulated_artifact
        created_at = payload.created_at or payload.expires_at - ttl
    return Session(
        id=payload.session_id,
        required_authorizers=required,
        threshold=payload.threshold,
        artifact_template=template,
        accumulated_artifact=payload.accumulated_artifact,
        collected_authorizers=list(payload.collected_authorizers),
        status=status,
        version=version,
        created_at=created_at,
        expires_at=payload.expires_at,
        finalized_reference=payload.finalized_reference,
        submitted_at=now if payload.finalized_reference is not None else None,
    )


def reconcile(
    payload: TransferPayload,
    local: Session | None,
    now: datetime,
    *,
    ttl: timedelta,
) -> tuple[Session, bool]:
    """Merge a payload into local state without ever rolling progress back.

    Returns (session, adopted). With no local session the payload is adopted
    verbatim. Otherwise it is adopted only if strictly newer than a
    non-terminal local session; when it is not, local is returned as is.
    A payload without a required set takes the local one and cannot start a
    session on its own.

    Raises ImportStale for an expired payload, InvalidPayload if it
    contradicts the local session's threshold or required set.
    """
    if now > payload.expires_at:
        raise ImportStale(payload.session_id, payload.expires_at)
    if local is None:
        if payload.required_authorizers is None:
            raise InvalidPayload(
                f"no required authorizers for unknown session {payload.session_id}"
            )
        return _adopt(payload, payload.required_authorizers, None, now, ttl), True
    if local.id != payload.session_id:
        raise InvalidPayload(f"payload is for session {payload.session_id}")
    if payload.required_authorizers is None:
        payload = replace(payload, required_authorizers=local.required_authorizers)
        _check(payload)
    if (
        payload.threshold != local.threshold
        or payload.required_authorizers != local.required_authorizers
    ):
        raise InvalidPayload(
            f"threshold or required authorizers differ from session {local.id}"
        )
    if local.is_terminal or not _is_newer(payload, local):
        return local, False
    return _adopt(payload, local.required_authorizers, local, now, ttl), True
