# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Coordinator configuration with environment overrides.

Environment variables:
- QUORUM_SESSION_TTL_SECONDS: session lifetime (default: 600)
- QUORUM_SUBMITTED_GRACE_SECONDS: how long a submitted session stays readable (default: 3)
- QUORUM_MAX_RETRIES: apply-signature attempts on version conflicts (default: 3)
- QUORUM_SWEEP_INTERVAL_SECONDS: period of the background sweep (default: 60)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta

DEFAULT_SESSION_TTL = timedelta(minutes=10)
DEFAULT_SUBMITTED_GRACE = timedelta(seconds=3)
DEFAULT_MAX_RETRIES = 3
DEFAULT_SWEEP_INTERVAL = timedelta(minutes=1)


def _get_seconds(env: Mapping[str, str], key: str, default: timedelta) -> timedelta:
    """Parse a seconds value, falling back to default when missing or bad."""
    value = env.get(key)
    if value is None:
        return default
    try:
        return timedelta(seconds=float(value))
    except ValueError:
        return default


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    value = env.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class CoordinatorConfig:
    """Tunables for one coordinator.

    Attributes:
        session_ttl: Fixed lifetime of a session from creation.
        submitted_grace: How long a submitted session is kept for observers.
        max_retries: Bounded attempts before VersionConflict surfaces.
        sweep_interval: Period of the background eviction sweep.
    """

    session_ttl: timedelta = DEFAULT_SESSION_TTL
    submitted_grace: timedelta = DEFAULT_SUBMITTED_GRACE
    max_retries: int = DEFAULT_MAX_RETRIES
    sweep_interval: timedelta = DEFAULT_SWEEP_INTERVAL

    def __post_init__(self) -> None:
        if self.session_ttl <= timedelta(0):
            raise ValueError(f"session_ttl must be positive, got {self.session_ttl}")
        if self.submitted_grace < timedelta(0):
            raise ValueError(
                f"submitted_grace must be non-negative, got {self.submitted_grace}"
            )
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")
        if self.sweep_interval <= timedelta(0):
            raise ValueError(
                f"sweep_interval must be positive, got {self.sweep_interval}"
            )

    @classmethod
    def from_environment(
        cls, environ: Mapping[str, str] | None = None
    ) -> CoordinatorConfig:
        """Build a config from QUORUM_* variables, defaults for the rest."""
        env = os.environ if environ is None else environ
        return cls(
            session_ttl=_get_seconds(
                env, "QUORUM_SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL
            ),
            submitted_grace=_get_seconds(
                env, "QUORUM_SUBMITTED_GRACE_SECONDS", DEFAULT_SUBMITTED_GRACE
            ),
            max_retries=_get_int(env, "QUORUM_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            sweep_interval=_get_seconds(
                env, "QUORUM_SWEEP_INTERVAL_SECONDS", DEFAULT_SWEEP_INTERVAL
            ),
        )
