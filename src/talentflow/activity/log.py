"""Append-only activity log.

Activities are stored one document per entry in the activities collection
and ordered by a store-issued sequence number. The log never updates or
deletes an entry; batches staged here are written together with the entity
change they describe.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
import logging
from uuid import uuid4

from talentflow.activity.event_bus import ActivityEvent, EventBus
from talentflow.contracts.activities import Activity, ActivityPayload
from talentflow.contracts.types import ActivityType
from talentflow.errors import NotFound
from talentflow.store.entity_store import ACTIVITIES, EntityStore, Write

logger = logging.getLogger(__name__)


def build_activity(
    candidate_id: str,
    payload: ActivityPayload,
    *,
    actor_id: str,
    timestamp: datetime,
    correlation_id: str | None = None,
    depth: int = 0,
) -> Activity:
    return Activity(
        id=str(uuid4()),
        candidate_id=candidate_id,
        timestamp=timestamp,
        actor_id=actor_id,
        payload=payload,
        correlation_id=correlation_id,
        depth=depth,
    )


@dataclass(slots=True)
class ActivityLog:
    store: EntityStore
    bus: EventBus | None = None

    def stage(self, activity: Activity) -> tuple[Activity, Write]:
        """Assign the append sequence and return the write that persists it."""
        sequenced = activity.model_copy(update={"sequence": self.store.next_sequence(ACTIVITIES)})
        write = Write(
            collection=ACTIVITIES,
            entity_id=sequenced.id,
            document=sequenced.model_dump(mode="json"),
            create_only=True,
        )
        return sequenced, write

    def publish(self, activities: Iterable[Activity]) -> None:
        if self.bus is None:
            return
        for activity in activities:
            self.bus.publish(ActivityEvent.from_activity(activity))

    def append(self, candidate_id: str, activity: Activity) -> str:
        if activity.candidate_id != candidate_id:
            raise ValueError(
                f"activity {activity.id} belongs to {activity.candidate_id}, not {candidate_id}"
            )
        sequenced, write = self.stage(activity)
        self.store.write([write])
        logger.info(
            "activity.appended",
            extra={
                "extra": {
                    "candidate_id": candidate_id,
                    "activity_id": sequenced.id,
                    "type": sequenced.type.value,
                }
            },
        )
        self.publish([sequenced])
        return sequenced.id

    def get(self, activity_id: str) -> Activity:
        doc = self.store.get(ACTIVITIES, activity_id)
        if doc is None:
            raise NotFound("activity", activity_id)
        return Activity.model_validate(doc)

    def for_candidate(
        self, candidate_id: str, types: Iterable[ActivityType] | None = None
    ) -> list[Activity]:
        wanted = set(types) if types is not None else None
        entries = [
            Activity.model_validate(doc)
            for doc in self.store.find(ACTIVITIES, candidate_id=candidate_id)
        ]
        if wanted is not None:
            entries = [entry for entry in entries if entry.type in wanted]
        return sorted(entries, key=lambda entry: entry.sequence)

    def latest(
        self,
        candidate_id: str,
        predicate: Callable[[Activity], bool] | None = None,
    ) -> Activity | None:
        for entry in reversed(self.for_candidate(candidate_id)):
            if predicate is None or predicate(entry):
                return entry
        return None

    def last_activity(self, candidate_id: str, *, include_markers: bool = False) -> Activity | None:
        """Most recent entry that counts as candidate activity."""
        if include_markers:
            return self.latest(candidate_id)
        return self.latest(candidate_id, lambda entry: not entry.is_marker)
