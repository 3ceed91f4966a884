"""NATS transport for activity events.

Activities are published on ``<prefix>.activity.<type>``; the ``"*"`` topic
subscribes to the whole ``<prefix>.activity.>`` tree. The activity id travels
as the ``Nats-Msg-Id`` header so a JetStream stream de-duplicates re-publishes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from concurrent.futures import Future
import logging
from queue import Empty, Queue
from threading import Lock, Thread
from typing import Any

from nats.aio.client import Client as NATS

from talentflow.activity.event_bus import ALL_EVENTS, ActivityEvent

logger = logging.getLogger(__name__)


class NATSEventBus:
    """EventBus over a NATS connection driven by a background asyncio loop."""

    def __init__(self, url: str, subject_prefix: str = "talentflow") -> None:
        self._url = url
        self._prefix = subject_prefix
        self._queues: dict[str, Queue[ActivityEvent]] = {}
        self._lock = Lock()
        self._loop = asyncio.new_event_loop()
        self._client = NATS()
        self._thread = Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()
        self._submit(self._client.connect(servers=[url]), "connect")

    def subject_for(self, event_type: str) -> str:
        suffix = ">" if event_type == ALL_EVENTS else event_type
        return f"{self._prefix}.activity.{suffix}"

    def _submit(self, coro: Any, operation: str) -> Future[Any]:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)

        def _report(done: Future[Any]) -> None:
            exc = done.exception()
            if exc is not None:
                logger.error(
                    "event_bus.nats_failed",
                    extra={"extra": {"operation": operation, "url": self._url, "error": str(exc)}},
                )

        future.add_done_callback(_report)
        return future

    def _queue_for(self, event_type: str) -> Queue[ActivityEvent]:
        with self._lock:
            queue = self._queues.get(event_type)
            if queue is None:
                queue = self._queues[event_type] = Queue()
                self._submit(self._subscribe(event_type, queue), "subscribe")
            return queue

    async def _subscribe(self, event_type: str, queue: Queue[ActivityEvent]) -> None:
        async def handler(msg: Any) -> None:
            queue.put(ActivityEvent.from_json(msg.data))

        await self._client.subscribe(self.subject_for(event_type), cb=handler)

    def publish(self, event: ActivityEvent) -> None:
        self._submit(
            self._client.publish(
                self.subject_for(event.event_type),
                event.to_json(),
                headers={"Nats-Msg-Id": event.event_id},
            ),
            "publish",
        )

    def subscribe(self, event_type: str) -> Iterator[ActivityEvent]:
        queue = self._queue_for(event_type)
        while True:
            yield queue.get()

    def next_event(self, event_type: str, timeout: float | None = None) -> ActivityEvent | None:
        try:
            return self._queue_for(event_type).get(timeout=timeout)
        except Empty:
            return None

    def close(self, timeout: float = 5.0) -> None:
        """Flush pending publishes, then stop the loop thread."""
        self._submit(self._client.drain(), "drain").result(timeout=timeout)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=timeout)
