# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

from quorum.session.model import (
    TERMINAL,
    Session,
    SessionSnapshot,
    SessionStatus,
    open_session,
)
from quorum.session.store import (
    FileSessionStore,
    MemorySessionStore,
    SessionStore,
    evict,
    sweep,
)

__all__ = [
    "FileSessionStore",
    "MemorySessionStore",
    "Session",
    "SessionSnapshot",
    "SessionStatus",
    "SessionStore",
    "TERMINAL",
    "evict",
    "open_session",
    "sweep",
]
