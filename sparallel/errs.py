"""Errors that record the chain of call sites they were passed through."""

from __future__ import annotations

import inspect

_TRACE_PREFIX = "\n->stack trace:"
_TRACE_SUFFIX = "\n<-end of trace"


class TracedError(Exception):
    """An error whose message ends with the call sites it was wrapped at."""


def _caller_location(frame) -> str:
    if frame is None:
        return "unknown"
    return f"\n - {frame.f_code.co_filename}:{frame.f_lineno}"


def err(error: BaseException | None) -> TracedError | None:
    """Wrap ``error``, appending the caller's file and line to its trace.

    Returns ``None`` when ``error`` is ``None``. A trace already present in
    the message is kept and moved to the end, so the message text comes
    first and the call sites follow in the order they were added.
    """
    if error is None:
        return None

    frame = inspect.currentframe()
    try:
        location = _caller_location(frame.f_back if frame is not None else None)
    finally:
        del frame

    message = str(error)
    start = message.find(_TRACE_PREFIX)
    end = message.find(_TRACE_SUFFIX)

    if start == -1 or end == -1:
        message += _TRACE_PREFIX + location + _TRACE_SUFFIX
    else:
        trace = message[start:end]
        clean = message[:start] + message[end + len(_TRACE_SUFFIX):]
        message = clean + trace + location + _TRACE_SUFFIX

    traced = TracedError(message)
    traced.__cause__ = error
    return traced