# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Append-only JSONL audit log with durable writes."""

import contextlib
import json
import os
from pathlib import Path
from types import TracebackType
from typing import Any

from quorum import now_iso
from quorum.persistence import _full_write


def _fsync_dir(dirpath: Path) -> None:
    fd = os.open(dirpath, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _append(path: Path, data: bytes) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
    try:
        _full_write(fd, data)
        os.fsync(fd)
    finally:
        os.close(fd)


class EventLog:
    """Coordination audit trail.

    Each entry is durable on return from log(). The entry is staged in a
    fsynced .pending file before it is appended, so a crash mid-append is
    repaired the next time the log is opened.
    """

    def __init__(self, path: Path, context: dict[str, str] | None = None) -> None:
        self._path = path
        self._pending_path = path.with_suffix(".pending")
        self._context = context or {}
        self._fd: int | None = None

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> None:
        """Open for appending, replaying a pending entry left by a crash."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._recover()
        self._fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
        _fsync_dir(self._path.parent)

    def __enter__(self) -> "EventLog":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def log(self, event: str, data: dict[str, Any] | None = None) -> None:
        """Append one event. Durable on return."""
        if self._fd is None:
            msg = "EventLog not open"
            raise RuntimeError(msg)
        line = self._serialize(event, data)
        pending = os.open(
            self._pending_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644
        )
        try:
            _full_write(pending, line)
            os.fsync(pending)
        finally:
            os.close(pending)
        _full_write(self._fd, line)
        os.fsync(self._fd)
        with contextlib.suppress(FileNotFoundError):
            os.unlink(self._pending_path)

    def close(self) -> None:
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None

    def _serialize(self, event: str, data: dict[str, Any] | None) -> bytes:
        # Context first so it can never clobber ts or event.
        entry: dict[str, Any] = {**self._context, "ts": now_iso(), "event": event}
        if data is not None:
            entry["data"] = data
        return (json.dumps(entry, separators=(",", ":")) + "\n").encode()

    def _recover(self) -> None:
        """Finish an append interrupted by a crash."""
        if not self._pending_path.exists():
            return
        pending = self._pending_path.read_bytes()
        if pending:
            content = self._path.read_bytes() if self._path.exists() else b""
            if content and not content.endswith(b"\n"):
                # Drop the torn tail line.
                content = content[: content.rfind(b"\n") + 1]
                fd = os.open(self._path, os.O_WRONLY)
                try:
                    os.ftruncate(fd, len(content))
                    os.fsync(fd)
                finally:
                    os.close(fd)
            if not content.endswith(pending):
                _append(self._path, pending)
        with contextlib.suppress(FileNotFoundError):
            os.unlink(self._pending_path)


def read_log(path: Path, event: str | None = None) -> list[dict[str, Any]]:
    """Read entries back, optionally only those named *event*.

    A missing file reads as empty. A torn trailing line is ignored.
    """
    if not path.exists():
        return []
    entries: list[dict[str, Any]] = []
    for line in path.read_bytes().split(b"\n"):
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if event is None or entry.get("event") == event:
            entries.append(entry)
    return entries


__all__ = ["EventLog", "read_log"]
