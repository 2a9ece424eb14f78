from __future__ import annotations

import logging
from contextvars import ContextVar, Token
from dataclasses import asdict, dataclass
from typing import Any, Mapping

import sentry_sdk


@dataclass(slots=True)
class LogContext:
    """Per-request fields stamped onto every log record."""

    request_id: str | None = None
    user_id: str | None = None
    course_id: str | None = None
    recording_id: str | None = None
    video_key: str | None = None


_log_context: ContextVar[LogContext | None] = ContextVar("log_context", default=None)


def _current() -> LogContext:
    context = _log_context.get()
    if context is None:
        # middleware bypassed (tests, background tasks)
        context = LogContext()
        _log_context.set(context)
    return context


class RequestContextFilter(logging.Filter):
    """Copy the request, caller and recording ids onto log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _log_context.get() or LogContext()
        for name, value in asdict(context).items():
            setattr(record, name, value)
        return True


def push_request_context(request_id: str) -> Token:
    return _log_context.set(LogContext(request_id=request_id))


def pop_request_context(token: Token) -> None:
    _log_context.reset(token)


def set_user_context(user_id: str | None) -> None:
    _current().user_id = user_id
    sentry_sdk.set_user({"id": user_id} if user_id else None)


def bind_recording_context(recording: Mapping[str, Any]) -> None:
    context = _current()
    context.course_id = str(recording["course_id"]) if recording.get("course_id") else None
    context.recording_id = str(recording["id"]) if recording.get("id") else None
    context.video_key = recording.get("video_key")
    sentry_sdk.set_tag("course_id", context.course_id)
    sentry_sdk.set_tag("recording_id", context.recording_id)


__all__ = [
    "LogContext",
    "RequestContextFilter",
    "bind_recording_context",
    "push_request_context",
    "pop_request_context",
    "set_user_context",
]
