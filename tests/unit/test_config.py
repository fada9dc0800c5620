# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Tests for coordinator configuration."""

from datetime import timedelta

import pytest

from quorum.config import CoordinatorConfig


def test_defaults() -> None:
    config = CoordinatorConfig()
    assert config.session_ttl == timedelta(minutes=10)
    assert config.submitted_grace == timedelta(seconds=3)
    assert config.max_retries == 3
    assert config.sweep_interval == timedelta(minutes=1)


def test_from_environment_overrides() -> None:
    config = CoordinatorConfig.from_environment(
        {
            "QUORUM_SESSION_TTL_SECONDS": "120",
            "QUORUM_SUBMITTED_GRACE_SECONDS": "0.5",
            "QUORUM_MAX_RETRIES": "5",
            "QUORUM_SWEEP_INTERVAL_SECONDS": "10",
        }
    )
    assert config.session_ttl == timedelta(minutes=2)
    assert config.submitted_grace == timedelta(milliseconds=500)
    assert config.max_retries == 5
    assert config.sweep_interval == timedelta(seconds=10)


def test_from_environment_ignores_garbage() -> None:
    config = CoordinatorConfig.from_environment(
        {"QUORUM_SESSION_TTL_SECONDS": "ten", "QUORUM_MAX_RETRIES": "x"}
    )
    assert config == CoordinatorConfig()


def test_from_environment_reads_os_environ(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QUORUM_MAX_RETRIES", "7")
    assert CoordinatorConfig.from_environment().max_retries == 7


@pytest.mark.parametrize(
    "kwargs",
    [
        {"session_ttl": timedelta(0)},
        {"submitted_grace": timedelta(seconds=-1)},
        {"max_retries": 0},
        {"sweep_interval": timedelta(0)},
    ],
)
def test_rejects_invalid(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        CoordinatorConfig(**kwargs)  # type: ignore[arg-type]
