"""In-memory bus that keeps a full history for demos and tests."""

from __future__ import annotations

from talentflow.activity.event_bus import ActivityEvent, InMemoryEventBus


class RecordingEventBus(InMemoryEventBus):
    """InMemoryEventBus that also appends every published event to ``events``.

    The history is unbounded; use it for short-lived runs only.
    """

    def __init__(self, max_backlog: int = 1000) -> None:
        super().__init__(max_backlog)
        self.events: list[ActivityEvent] = []

    def publish(self, event: ActivityEvent) -> None:
        self.events.append(event)
        super().publish(event)

    def of_type(self, event_type: str) -> list[ActivityEvent]:
        return [event for event in self.events if event.event_type == event_type]

    def caused_by(self, correlation_id: str) -> list[ActivityEvent]:
        """Events written by one workflow execution (its id is the correlation id)."""
        return [event for event in self.events if event.correlation_id == correlation_id]
