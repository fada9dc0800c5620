# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Tests for transfer payload encoding and reconciliation."""

import base64
import json
from dataclasses import replace
from datetime import timedelta
from typing import Any

import pytest
from conftest import EPOCH

from quorum.errors import ImportStale, InvalidPayload
from quorum.session import Session, SessionStatus, open_session
from quorum.transfer import (
    TransferPayload,
    decode,
    encode,
    export_session,
    reconcile,
)

TTL = timedelta(minutes=10)


def _make_session(threshold: int = 3) -> Session:
    return open_session(
        {"alice", "bob", "carol"},
        threshold,
        "alice",
        "tx+a",
        now=EPOCH,
        ttl=TTL,
        artifact_template="tx",
    )


def _raw(obj: dict[str, Any]) -> str:
    return base64.b64encode(json.dumps(obj).encode()).decode()


def _wire(payload: TransferPayload) -> dict[str, Any]:
    return json.loads(base64.urlsafe_b64decode(encode(payload)))


# -- export / encode -----------------------------------------------------------


def test_export_omits_template() -> None:
    s = _make_session()
    wire = _wire(export_session(s))
    assert wire == {
        "sessionId": str(s.id),
        "accumulatedArtifact": "tx+a",
        "collectedAuthorizers": ["alice"],
        "threshold": 3,
        "expiresAt": int((EPOCH + TTL).timestamp() * 1000),
        "requiredAuthorizers": ["alice", "bob", "carol"],
        "version": 0,
        "createdAt": int(EPOCH.timestamp() * 1000),
    }


def test_encode_decode_preserves_progress() -> None:
    s = _make_session()
    s.add_signature("carol", "tx+ac")
    payload = decode(encode(export_session(s)))
    assert payload.session_id == s.id
    assert payload.collected_authorizers == ("alice", "carol")
    assert payload.version == 1
    assert payload.expires_at == s.expires_at
    assert payload.required_authorizers == s.required_authorizers


def test_decode_payload_without_version() -> None:
    s = _make_session()
    payload = decode(
        _raw(
            {
                "sessionId": str(s.id),
                "accumulatedArtifact": "tx+a",
                "collectedAuthorizers": ["alice"],
                "threshold": 3,
                "expiresAt": int(s.expires_at.timestamp() * 1000),
                "requiredAuthorizers": ["alice", "bob", "carol"],
            }
        )
    )
    assert payload.version is None
    assert payload.created_at is None


def test_decode_ignores_unknown_keys() -> None:
    s = _make_session()
    wire = _wire(export_session(s))
    wire["futureField"] = {"nested": True}
    assert decode(_raw(wire)).session_id == s.id


@pytest.mark.parametrize(
    "text",
    ["", "!!!", base64.b64encode(b"not json").decode(), _raw({"sessionId": "x"})],
)
def test_decode_rejects_garbage(text: str) -> None:
    with pytest.raises(InvalidPayload):
        decode(text)


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("threshold", 0),
        ("threshold", 4),
        ("threshold", "2"),
        ("collectedAuthorizers", ["alice", "alice"]),
        ("collectedAuthorizers", ["mallory"]),
        ("collectedAuthorizers", []),
        ("version", -1),
        ("expiresAt", "soon"),
        ("expiresAt", 1e20),
        ("createdAt", -1e20),
        ("requiredAuthorizers", "alice"),
        ("sessionId", "not-a-uuid"),
    ],
)
def test_decode_rejects_invariant_violations(key: str, value: Any) -> None:
    wire = _wire(export_session(_make_session()))
    wire[key] = value
    with pytest.raises(InvalidPayload):
        decode(_raw(wire))


def test_decode_rejects_non_string_reference() -> None:
    s = _make_session(threshold=1)
    s.submit("txhash", EPOCH)
    wire = _wire(export_session(s))
    wire["finalizedReference"] = 5
    with pytest.raises(InvalidPayload, match="finalizedReference"):
        decode(_raw(wire))


def _minimal_wire(s: Session) -> dict[str, Any]:
    """Only the base keys: no required set, creation time or reference."""
    return {
        "sessionId": str(s.id),
        "accumulatedArtifact": s.accumulated_artifact,
        "collectedAuthorizers": list(s.collected_authorizers),
        "threshold": s.threshold,
        "expiresAt": int(s.expires_at.timestamp() * 1000),
        "version": s.version,
    }


def test_decode_payload_without_required_set() -> None:
    s = _make_session()
    payload = decode(_raw(_minimal_wire(s)))
    assert payload.required_authorizers is None
    assert payload.version == 0
    assert "requiredAuthorizers" not in _wire(payload)


# -- reconcile ---------------------------------------------------------------


def test_reconcile_adopts_when_no_local() -> None:
    s = _make_session()
    s.add_signature("bob", "tx+ab")
    session, adopted = reconcile(export_session(s), None, EPOCH, ttl=TTL)
    assert adopted
    assert session.id == s.id
    assert session.collected_authorizers == ["alice", "bob"]
    assert session.status == SessionStatus.PENDING
    assert session.version == 1
    assert session.artifact_template == "tx+ab"
    assert session.created_at == EPOCH


def test_reconcile_recomputes_ready() -> None:
    s = _make_session(threshold=2)
    s.add_signature("bob", "tx+ab")
    session, _ = reconcile(export_session(s), None, EPOCH, ttl=TTL)
    assert session.status == SessionStatus.READY


def test_reconcile_carries_submission() -> None:
    s = _make_session(threshold=1)
    s.submit("txhash", EPOCH)
    session, adopted = reconcile(
        export_session(s), None, EPOCH + timedelta(seconds=1), ttl=TTL
    )
    assert adopted
    assert session.status == SessionStatus.SUBMITTED
    assert session.finalized_reference == "txhash"


def test_reconcile_rejects_expired_payload() -> None:
    s = _make_session()
    with pytest.raises(ImportStale):
        reconcile(export_session(s), None, s.expires_at + timedelta(seconds=1), ttl=TTL)


def test_reconcile_expired_payload_rejected_even_if_newer() -> None:
    local = _make_session()
    remote = _make_session()
    remote.id = local.id
    remote.add_signature("bob", "tx+ab")
    with pytest.raises(ImportStale):
        reconcile(
            export_session(remote),
            local,
            local.expires_at + timedelta(seconds=1),
            ttl=TTL,
        )


def test_reconcile_accepts_newer_version() -> None:
    local = _make_session()
    remote = replace(local, collected_authorizers=list(local.collected_authorizers))
    remote.add_signature("bob", "tx+ab")
    session, adopted = reconcile(export_session(remote), local, EPOCH, ttl=TTL)
    assert adopted
    assert session.version == 1
    assert session.collected_authorizers == ["alice", "bob"]
    assert session.artifact_template == "tx"


@pytest.mark.parametrize("delta", [0, -1])
def test_reconcile_discards_same_or_older_version(delta: int) -> None:
    local = _make_session()
    local.add_signature("bob", "tx+ab")
    payload = replace(export_session(local), version=local.version + delta)
    session, adopted = reconcile(payload, local, EPOCH, ttl=TTL)
    assert not adopted
    assert session is local
    assert session.version == 1


def test_reconcile_never_drops_collected() -> None:
    local = _make_session()
    local.add_signature("bob", "tx+ab")
    payload = replace(
        export_session(local),
        collected_authorizers=("alice",),
        version=local.version + 5,
    )
    session, adopted = reconcile(payload, local, EPOCH, ttl=TTL)
    assert not adopted
    assert session.collected_authorizers == ["alice", "bob"]


def test_reconcile_unversioned_payload_compares_counts() -> None:
    local = _make_session()
    same = replace(export_session(local), version=None)
    _, adopted = reconcile(same, local, EPOCH, ttl=TTL)
    assert not adopted
    more = replace(same, collected_authorizers=("alice", "carol"))
    session, adopted = reconcile(more, local, EPOCH, ttl=TTL)
    assert adopted
    assert session.version == local.version + 1


def test_reconcile_keeps_terminal_local() -> None:
    local = _make_session(threshold=1)
    local.submit("txhash", EPOCH)
    payload = replace(export_session(local), version=10, finalized_reference=None)
    session, adopted = reconcile(payload, local, EPOCH, ttl=TTL)
    assert not adopted
    assert session.status == SessionStatus.SUBMITTED


def test_reconcile_rejects_mismatched_terms() -> None:
    local = _make_session()
    payload = replace(export_session(local), threshold=2, version=5)
    with pytest.raises(InvalidPayload):
        reconcile(payload, local, EPOCH, ttl=TTL)


def test_reconcile_takes_required_set_from_local() -> None:
    local = _make_session()
    remote = replace(local, collected_authorizers=list(local.collected_authorizers))
    remote.add_signature("bob", "tx+ab")
    payload = decode(_raw(_minimal_wire(remote)))
    session, adopted = reconcile(payload, local, EPOCH, ttl=TTL)
    assert adopted
    assert session.required_authorizers == local.required_authorizers
    assert session.collected_authorizers == ["alice", "bob"]
    assert session.version == 1


def test_reconcile_without_required_set_checks_local_terms() -> None:
    local = _make_session()
    wire = _minimal_wire(local)
    wire["collectedAuthorizers"] = ["alice", "mallory"]
    wire["version"] = 1
    with pytest.raises(InvalidPayload, match="required set"):
        reconcile(decode(_raw(wire)), local, EPOCH, ttl=TTL)


def test_reconcile_without_required_set_needs_local() -> None:
    payload = decode(_raw(_minimal_wire(_make_session())))
    with pytest.raises(InvalidPayload, match="no required authorizers"):
        reconcile(payload, None, EPOCH, ttl=TTL)
