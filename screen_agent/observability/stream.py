from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import AsyncIterator, Callable, Generic, List, Optional, Set, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class EventStream(Generic[T]):
    """
    Observable event stream with independent subscribers.

    - Producers publish(...) without blocking; slow subscribers lose events instead of stalling the loop.
    - Async subscribers iterate subscribe(); sync listeners are plain callables.
    - The latest event is kept so late observers can read the current value.
    - When persist_path is set, every event is appended there as a JSON line.
    """

    def __init__(self, queue_maxsize: int = 200, persist_path: Optional[Path] = None) -> None:
        self.queue_maxsize = queue_maxsize
        self.persist_path = Path(persist_path) if persist_path else None
        self._subs: Set[asyncio.Queue] = set()
        self._listeners: List[Callable[[T], None]] = []
        self._latest: Optional[T] = None
        self._dropped_count: int = 0

    @property
    def latest(self) -> Optional[T]:
        return self._latest

    @property
    def dropped_count(self) -> int:
        return self._dropped_count

    def add_listener(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """Register a sync callback; returns a function that unregisters it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def publish(self, event: T) -> None:
        self._latest = event
        if self.persist_path is not None:
            self._persist(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("EventStream listener failed")
        for q in list(self._subs):
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                self._dropped_count += 1
                logger.warning("EventStream subscriber queue full; dropped_count=%s", self._dropped_count)

    async def subscribe(self, replay_latest: bool = False) -> AsyncIterator[T]:
        """Stream live events; optionally start with the latest one."""
        live_q: asyncio.Queue = asyncio.Queue(maxsize=self.queue_maxsize)
        if replay_latest and self._latest is not None:
            live_q.put_nowait(self._latest)
        self._subs.add(live_q)
        try:
            while True:
                yield await live_q.get()
        finally:
            self._subs.discard(live_q)

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    def _persist(self, event: T) -> None:
        try:
            self.persist_path.parent.mkdir(parents=True, exist_ok=True)
            with self.persist_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event.model_dump(mode="json"), ensure_ascii=False) + "\n")
        except OSError as exc:
            logger.warning("EventStream persist failed: %s", exc)


__all__ = ["EventStream"]
