from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Callable

Handler = Callable[..., Any]


class EventBus:
    """Publish/subscribe bus for engine and ingestion events.

    Voices finish on the audio thread and batch decoding runs on a worker
    pool, so the handler table is guarded by a lock.  Handlers run outside
    the lock, in subscription order; an exception in one propagates to the
    emitter.

    Event types emitted by the library:
        voice.start      sound_id, gain, loop
        voice.end        sound_id, reason ("stopped" | "finished")
        preview.start    duration_sec
        decode.failed    sound_id, error
        ingest.start     name, index, total
        ingest.complete  name, index, total, error
    """

    def __init__(self) -> None:
        self._subscribers: defaultdict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: Handler) -> None:
        with self._lock:
            self._subscribers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        """Remove *handler*.  Unknown handlers are ignored."""
        with self._lock:
            try:
                self._subscribers[event_type].remove(handler)
            except ValueError:
                pass

    def emit(self, event_type: str, **data: Any) -> None:
        with self._lock:
            snapshot = tuple(self._subscribers.get(event_type, ()))
        for handler in snapshot:
            handler(**data)
