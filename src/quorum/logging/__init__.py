# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

from quorum.logging.decorator import Loggable, Summarizable, log_method
from quorum.logging.event_log import EventLog, read_log

__all__ = ["EventLog", "Loggable", "Summarizable", "log_method", "read_log"]
