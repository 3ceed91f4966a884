"""Event bus implementations for activity notifications."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from dataclasses import asdict, dataclass
import json
from threading import Condition
from typing import Any, Protocol

from talentflow.contracts.activities import Activity

ALL_EVENTS = "*"


@dataclass(slots=True)
class ActivityEvent:
    """Envelope published for every committed activity."""

    event_id: str
    event_type: str
    candidate_id: str
    payload: dict[str, Any]
    correlation_id: str | None = None

    @classmethod
    def from_activity(cls, activity: Activity) -> ActivityEvent:
        return cls(
            event_id=activity.id,
            event_type=activity.type.value,
            candidate_id=activity.candidate_id,
            payload=activity.model_dump(mode="json"),
            correlation_id=activity.correlation_id,
        )

    def to_activity(self) -> Activity:
        return Activity.model_validate(self.payload)

    def to_json(self) -> bytes:
        return json.dumps(asdict(self)).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes) -> ActivityEvent:
        return cls(**json.loads(data.decode("utf-8")))


class EventBus(Protocol):
    """Abstract event bus interface."""

    def publish(self, event: ActivityEvent) -> None:
        """Publish an event to the bus."""

    def subscribe(self, event_type: str) -> Iterator[ActivityEvent]:
        """Yield events of the given type as they arrive."""

    def next_event(self, event_type: str, timeout: float | None = None) -> ActivityEvent | None:
        """Return the next event or None if timed out."""


class InMemoryEventBus:
    """In-process event bus with a bounded backlog per topic.

    Every event is also delivered to the ``"*"`` topic so feed consumers can
    follow all activity without subscribing type by type. A topic keeps at most
    ``max_backlog`` unread events; older ones are dropped and counted in
    ``dropped``.
    """

    def __init__(self, max_backlog: int = 1000) -> None:
        if max_backlog < 1:
            raise ValueError("max_backlog must be at least 1")
        self.max_backlog = max_backlog
        self.dropped = 0
        self._topics: dict[str, deque[ActivityEvent]] = {}
        self._ready = Condition()

    def _topic(self, event_type: str) -> deque[ActivityEvent]:
        topic = self._topics.get(event_type)
        if topic is None:
            topic = self._topics[event_type] = deque(maxlen=self.max_backlog)
        return topic

    def publish(self, event: ActivityEvent) -> None:
        with self._ready:
            for event_type in (event.event_type, ALL_EVENTS):
                topic = self._topic(event_type)
                if len(topic) == self.max_backlog:
                    self.dropped += 1
                topic.append(event)
            self._ready.notify_all()

    def subscribe(self, event_type: str) -> Iterator[ActivityEvent]:
        while True:
            event = self.next_event(event_type)
            if event is not None:
                yield event

    def next_event(self, event_type: str, timeout: float | None = None) -> ActivityEvent | None:
        with self._ready:
            topic = self._topic(event_type)
            if not self._ready.wait_for(lambda: len(topic) > 0, timeout=timeout):
                return None
            return topic.popleft()

    def backlog(self, event_type: str) -> int:
        with self._ready:
            return len(self._topics.get(event_type, ()))
