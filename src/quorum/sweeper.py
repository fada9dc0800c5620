# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Background eviction of expired and finished sessions."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import timedelta
from types import TracebackType

from quorum.coordinator import Coordinator
from quorum.session.model import Session

_log = logging.getLogger(__name__)


class Sweeper:
    """Calls Coordinator.sweep() every interval on an asyncio task.

    Lazy expiry on access already keeps reads correct; the sweeper only
    bounds how long abandoned sessions linger in the store.
    """

    def __init__(
        self, coordinator: Coordinator, interval: timedelta | None = None
    ) -> None:
        self._coordinator = coordinator
        self._interval = interval or coordinator.config.sweep_interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> list[Session]:
        removed = self._coordinator.sweep()
        if removed:
            _log.info("swept %d session(s)", len(removed))
        return removed

    async def start(self) -> None:
        if self.running:
            raise RuntimeError("sweeper already running")
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def __aenter__(self) -> Sweeper:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval.total_seconds())
            try:
                self.run_once()
            except (OSError, ValueError, KeyError):
                # Store I/O hiccup or an unreadable record; the next pass retries.
                _log.exception("session sweep failed")
