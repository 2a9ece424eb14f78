"""In-process fan-out of upload progress to Server-Sent Event listeners.

One registry belongs to one application instance (`app.state.upload_progress`).
Entries are keyed by the client supplied progress id and removed when the
upload finishes, fails, the listener disconnects, or an unwatched entry sees no
activity for longer than the TTL.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator

from fastapi import Request

logger = logging.getLogger(__name__)

EVENT_PROGRESS = "progress"
EVENT_DONE = "done"
EVENT_ERROR = "error"
_TERMINAL_EVENTS = frozenset({EVENT_DONE, EVENT_ERROR})


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    event: str
    data: int

    def encode(self) -> str:
        return f"event: {self.event}\ndata: {self.data}\n\n"


@dataclass(slots=True)
class _Entry:
    touched_at: float
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    last_percent: int | None = None
    finished: bool = False
    listeners: int = 0


class UploadProgressRegistry:
    def __init__(self, *, ttl_seconds: float = 1800.0) -> None:
        self._ttl_seconds = ttl_seconds
        self._entries: dict[str, _Entry] = {}

    def __contains__(self, progress_id: str) -> bool:
        return progress_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _entry(self, progress_id: str) -> _Entry:
        self.sweep()
        entry = self._entries.get(progress_id)
        if entry is None:
            entry = _Entry(touched_at=time.monotonic())
            self._entries[progress_id] = entry
        return entry

    def _put(self, progress_id: str, event: ProgressEvent) -> None:
        entry = self._entry(progress_id)
        if entry.finished:
            return
        entry.touched_at = time.monotonic()
        if event.event == EVENT_PROGRESS:
            if entry.last_percent == event.data:
                return
            entry.last_percent = event.data
        else:
            entry.finished = True
        entry.queue.put_nowait(event)

    def publish(self, progress_id: str, percent: int) -> None:
        self._put(progress_id, ProgressEvent(EVENT_PROGRESS, max(0, min(100, int(percent)))))

    def complete(self, progress_id: str) -> None:
        self._put(progress_id, ProgressEvent(EVENT_DONE, 100))

    def fail(self, progress_id: str) -> None:
        self._put(progress_id, ProgressEvent(EVENT_ERROR, 0))

    def dispose(self, progress_id: str) -> None:
        self._entries.pop(progress_id, None)

    def sweep(self, now: float | None = None) -> int:
        """Drop idle entries nobody is listening to; returns how many were removed."""

        current = time.monotonic() if now is None else now
        stale = [
            progress_id
            for progress_id, entry in self._entries.items()
            if not entry.listeners and current - entry.touched_at > self._ttl_seconds
        ]
        for progress_id in stale:
            del self._entries[progress_id]
        if stale:
            logger.info("Swept %d stale upload progress entries", len(stale))
        return len(stale)

    async def listen(self, progress_id: str) -> AsyncIterator[ProgressEvent]:
        """Yield an initial 0%, then every event until done or error.

        The entry is disposed when the stream ends, including when the consumer
        stops iterating early.
        """

        entry = self._entry(progress_id)
        entry.listeners += 1
        try:
            yield ProgressEvent(EVENT_PROGRESS, 0)
            while True:
                event = await entry.queue.get()
                yield event
                if event.event in _TERMINAL_EVENTS:
                    break
        finally:
            entry.listeners -= 1
            if self._entries.get(progress_id) is entry:
                self.dispose(progress_id)


def get_upload_progress(request: Request) -> UploadProgressRegistry:
    return request.app.state.upload_progress


__all__ = [
    "EVENT_DONE",
    "EVENT_ERROR",
    "EVENT_PROGRESS",
    "ProgressEvent",
    "UploadProgressRegistry",
    "get_upload_progress",
]
