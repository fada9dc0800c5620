# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Method-level audit logging for coordinator operations."""

import enum
import functools
import inspect
from collections.abc import Callable, Collection
from datetime import datetime, timedelta
from typing import Any, Protocol, TypeVar, runtime_checkable
from uuid import UUID

from quorum.logging.event_log import EventLog


@runtime_checkable
class Loggable(Protocol):
    """Instance with an optional event log. Used by @log_method."""

    _log: EventLog | None


@runtime_checkable
class Summarizable(Protocol):
    """Value that knows its own log-friendly form."""

    def summary(self) -> dict[str, Any]: ...


def _build_args_dict(
    fn: Callable[..., Any],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    exclude: Collection[str],
) -> dict[str, Any]:
    """Map positional + keyword args to parameter names, skipping self."""
    sig = inspect.signature(fn)
    # None stands in for self (already stripped from args by the wrapper).
    bound = sig.bind(None, *args, **kwargs)
    bound.arguments.pop("self", None)
    return {
        name: _serialize_value(value)
        for name, value in bound.arguments.items()
        if name not in exclude
    }


def _serialize_value(value: Any) -> Any:
    """Best-effort JSON-friendly form for log entries."""
    if isinstance(value, str | int | float | bool | type(None)):
        return value
    if isinstance(value, UUID):
        return value.hex
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, Summarizable):
        return value.summary()
    if isinstance(value, list | tuple | set | frozenset):
        items = sorted(value) if isinstance(value, set | frozenset) else value
        return [_serialize_value(v) for v in items]
    return str(value)


def _emit(
    instance: Any,
    event: str,
    args_dict: dict[str, Any],
    *,
    result: Any = None,
    error: BaseException | None = None,
) -> None:
    log: EventLog | None = getattr(instance, "_log", None)
    if log is None:
        return
    data = dict(args_dict)
    if error is not None:
        data["error"] = type(error).__name__
        data["message"] = str(error)
    elif result is not None:
        data["result"] = _serialize_value(result)
    log.log(event, data)


_F = TypeVar("_F", bound=Callable[..., Any])


def log_method(
    *,
    before: bool = False,
    after: bool = False,
    exclude: Collection[str] = (),
) -> Callable[[_F], _F]:
    """Log method calls to the instance's EventLog.

    Expects the instance to have a `_log: EventLog | None` attribute. If it
    is None the method runs without logging. Arguments named in *exclude*
    are left out of entries. A raised exception is logged as
    `<name>.error` (when *after* is set) and re-raised unchanged.
    Works on plain methods and coroutines.
    """

    def decorator(fn: _F) -> _F:
        event_name = fn.__name__

        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                logged = getattr(self, "_log", None) is not None
                args_dict = (
                    _build_args_dict(fn, args, kwargs, exclude) if logged else {}
                )
                if logged and before:
                    _emit(self, event_name, args_dict)
                try:
                    result = await fn(self, *args, **kwargs)
                except Exception as exc:
                    if logged and after:
                        _emit(self, f"{event_name}.error", args_dict, error=exc)
                    raise
                if logged and after:
                    _emit(self, f"{event_name}.result", args_dict, result=result)
                return result

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(fn)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            logged = getattr(self, "_log", None) is not None
            args_dict = _build_args_dict(fn, args, kwargs, exclude) if logged else {}
            if logged and before:
                _emit(self, event_name, args_dict)
            try:
                result = fn(self, *args, **kwargs)
            except Exception as exc:
                if logged and after:
                    _emit(self, f"{event_name}.error", args_dict, error=exc)
                raise
            if logged and after:
                _emit(self, f"{event_name}.result", args_dict, result=result)
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
