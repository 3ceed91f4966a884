"""Typed access to EntityStore collections."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel

from talentflow.errors import NotFound
from talentflow.store.entity_store import EntityStore, VersionGuard, Write

M = TypeVar("M", bound=BaseModel)


@dataclass(slots=True)
class Repository(Generic[M]):
    """Loads and stages pydantic models for one collection.

    Models that declare a ``version`` field get optimistic concurrency: every
    staged update bumps the version and carries a guard on the old one.
    """

    store: EntityStore
    collection: str
    model: type[M]
    kind: str

    def find(self, entity_id: str) -> M | None:
        doc = self.store.get(self.collection, entity_id)
        return self.model.model_validate(doc) if doc is not None else None

    def get(self, entity_id: str) -> M:
        entity = self.find(entity_id)
        if entity is None:
            raise NotFound(self.kind, entity_id)
        return entity

    def all(self) -> list[M]:
        return [self.model.model_validate(doc) for doc in self.store.list(self.collection)]

    def filter(self, predicate: Callable[[M], bool]) -> list[M]:
        return [entity for entity in self.all() if predicate(entity)]

    def where(self, **equals: object) -> list[M]:
        """Entities whose stored fields equal the keywords; indexed fields skip the full scan."""
        return [self.model.model_validate(doc) for doc in self.store.find(self.collection, **equals)]

    def stage_create(self, entity: M) -> Write:
        return Write(
            collection=self.collection,
            entity_id=getattr(entity, "id"),
            document=entity.model_dump(mode="json"),
            create_only=True,
        )

    def stage_update(self, entity: M) -> tuple[M, Write, VersionGuard | None]:
        guard: VersionGuard | None = None
        if "version" in self.model.model_fields:
            current = getattr(entity, "version")
            guard = VersionGuard(self.collection, getattr(entity, "id"), current)
            entity = entity.model_copy(update={"version": current + 1})
        write = Write(
            collection=self.collection,
            entity_id=getattr(entity, "id"),
            document=entity.model_dump(mode="json"),
        )
        return entity, write, guard

    def create(self, entity: M) -> M:
        self.store.write([self.stage_create(entity)])
        return entity

    def save(self, entity: M) -> M:
        updated, write, guard = self.stage_update(entity)
        self.store.write([write], [guard] if guard else [])
        return updated
