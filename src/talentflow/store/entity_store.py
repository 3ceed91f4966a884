"""Pluggable persistence for pipeline entities.

The EntityStore protocol treats the backing database as a key-value store of
JSON documents grouped in collections. Writes are applied in batches: every
guard is checked and every write applied under one lock, so callers can
update a candidate and append its activity as a unit.
"""

from __future__ import annotations

from collections.abc import Sequence
import copy
from dataclasses import dataclass, field
import json
from pathlib import Path
from threading import RLock
from typing import Any, Protocol

from talentflow.errors import Conflict

CANDIDATES = "candidates"
PROCESSES = "processes"
WORKFLOWS = "workflows"
EXECUTIONS = "workflow_executions"
ACTIVITIES = "activities"
TASKS = "tasks"
CURSORS = "assignment_cursors"

# Top-level fields kept in a lookup index so `find` reads only matching documents.
INDEXES: dict[str, tuple[str, ...]] = {
    ACTIVITIES: ("candidate_id",),
    EXECUTIONS: ("workflow_id", "candidate_id", "status"),
    TASKS: ("candidate_id",),
    CANDIDATES: ("assigned_to",),
}


@dataclass(frozen=True, slots=True)
class Write:
    """Replace (or create) one document."""

    collection: str
    entity_id: str
    document: dict[str, Any]
    create_only: bool = False


@dataclass(frozen=True, slots=True)
class VersionGuard:
    """Precondition: the stored document still carries `expected_version`."""

    collection: str
    entity_id: str
    expected_version: int


class EntityStore(Protocol):
    """Abstract document storage keyed by collection and id."""

    def get(self, collection: str, entity_id: str) -> dict[str, Any] | None:
        """Return a copy of the stored document, or None if not found."""

    def list(self, collection: str) -> list[dict[str, Any]]:
        """Return copies of every document in insertion order."""

    def find(self, collection: str, **equals: Any) -> list[dict[str, Any]]:
        """Return copies of the documents whose top-level fields equal every keyword."""

    def write(self, writes: Sequence[Write], guards: Sequence[VersionGuard] = ()) -> None:
        """Atomically check guards and apply writes; raise Conflict on a failed guard."""

    def next_sequence(self, name: str) -> int:
        """Return the next value of a named, monotonically increasing counter."""


def _check_guards(
    guards: Sequence[VersionGuard], current: dict[tuple[str, str], dict[str, Any] | None]
) -> None:
    for guard in guards:
        doc = current.get((guard.collection, guard.entity_id))
        if doc is None:
            raise Conflict(f"{guard.collection}/{guard.entity_id} disappeared during update")
        if doc.get("version", 0) != guard.expected_version:
            raise Conflict(
                f"{guard.collection}/{guard.entity_id} was modified concurrently "
                f"(expected version {guard.expected_version}, found {doc.get('version', 0)})"
            )


def _check_creates(
    writes: Sequence[Write], current: dict[tuple[str, str], dict[str, Any] | None]
) -> None:
    for w in writes:
        if w.create_only and current.get((w.collection, w.entity_id)) is not None:
            raise Conflict(f"{w.collection}/{w.entity_id} already exists")


def _matches(doc: dict[str, Any], equals: dict[str, Any]) -> bool:
    return all(doc.get(name) == value for name, value in equals.items())


class _FieldIndex:
    """Entity ids per (collection, field, value) for the fields named in INDEXES."""

    def __init__(self) -> None:
        self._ids: dict[tuple[str, str, Any], dict[str, None]] = {}

    def update(
        self,
        collection: str,
        entity_id: str,
        old: dict[str, Any] | None,
        new: dict[str, Any],
    ) -> None:
        for name in INDEXES.get(collection, ()):
            value = new.get(name)
            if old is not None:
                if old.get(name) == value:
                    continue
                self._ids.get((collection, name, old.get(name)), {}).pop(entity_id, None)
            self._ids.setdefault((collection, name, value), {})[entity_id] = None

    def lookup(self, collection: str, equals: dict[str, Any]) -> list[str] | None:
        """Ids for the first indexed field in `equals`; None when no field is indexed."""
        indexed = INDEXES.get(collection, ())
        for name, value in equals.items():
            if name in indexed:
                return list(self._ids.get((collection, name, value), {}))
        return None


class InMemoryEntityStore:
    """In-memory EntityStore implementation for dev/test.

    This is not durable across process restarts, but exercises the same
    interface as a real database-backed implementation.
    """

    def __init__(self) -> None:
        self._db: dict[str, dict[str, dict[str, Any]]] = {}
        self._sequences: dict[str, int] = {}
        self._index = _FieldIndex()
        self._lock = RLock()

    def get(self, collection: str, entity_id: str) -> dict[str, Any] | None:
        with self._lock:
            doc = self._db.get(collection, {}).get(entity_id)
            return copy.deepcopy(doc) if doc is not None else None

    def list(self, collection: str) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(doc) for doc in self._db.get(collection, {}).values()]

    def find(self, collection: str, **equals: Any) -> list[dict[str, Any]]:
        with self._lock:
            docs = self._db.get(collection, {})
            ids = self._index.lookup(collection, equals)
            found = docs.values() if ids is None else (docs[entity_id] for entity_id in ids)
            return [copy.deepcopy(doc) for doc in found if _matches(doc, equals)]

    def write(self, writes: Sequence[Write], guards: Sequence[VersionGuard] = ()) -> None:
        with self._lock:
            keys = {(g.collection, g.entity_id) for g in guards}
            keys.update((w.collection, w.entity_id) for w in writes)
            current = {key: self._db.get(key[0], {}).get(key[1]) for key in keys}
            _check_guards(guards, current)
            _check_creates(writes, current)
            for w in writes:
                docs = self._db.setdefault(w.collection, {})
                self._index.update(w.collection, w.entity_id, docs.get(w.entity_id), w.document)
                docs[w.entity_id] = copy.deepcopy(w.document)

    def next_sequence(self, name: str) -> int:
        with self._lock:
            value = self._sequences.get(name, 0) + 1
            self._sequences[name] = value
            return value


@dataclass
class JsonFileEntityStore:
    """Persist documents as JSON files in a local directory.

    Each document is stored as <root>/<collection>/<entity_id>.json. Batches
    are atomic within one process; this backend is meant for local
    development, keeping pipeline history across restarts without requiring
    a full database.
    """

    root: Path
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    _index: _FieldIndex = field(default_factory=_FieldIndex, init=False, repr=False)
    _indexed: set[str] = field(default_factory=set, init=False, repr=False)

    def __post_init__(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, collection: str, entity_id: str) -> Path:
        return self.root / collection / f"{entity_id}.json"

    def _read(self, path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _dump(self, path: Path, data: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        tmp.replace(path)

    def get(self, collection: str, entity_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._read(self._path_for(collection, entity_id))
            return record["document"] if record else None

    def list(self, collection: str) -> list[dict[str, Any]]:
        with self._lock:
            records: list[dict[str, Any]] = []
            for p in (self.root / collection).glob("*.json"):
                try:
                    with p.open("r", encoding="utf-8") as f:
                        records.append(json.load(f))
                except json.JSONDecodeError:
                    continue
            records.sort(key=lambda record: record["inserted"])
            return [record["document"] for record in records]

    def _ensure_index(self, collection: str) -> None:
        if collection in self._indexed or collection not in INDEXES:
            return
        for p in (self.root / collection).glob("*.json"):
            try:
                record = self._read(p)
            except json.JSONDecodeError:
                continue
            if record is not None:
                self._index.update(collection, p.stem, None, record["document"])
        self._indexed.add(collection)

    def find(self, collection: str, **equals: Any) -> list[dict[str, Any]]:
        with self._lock:
            self._ensure_index(collection)
            ids = self._index.lookup(collection, equals)
            if ids is None:
                return [doc for doc in self.list(collection) if _matches(doc, equals)]
            records = [self._read(self._path_for(collection, entity_id)) for entity_id in ids]
            found = sorted((r for r in records if r is not None), key=lambda r: r["inserted"])
            return [r["document"] for r in found if _matches(r["document"], equals)]

    def write(self, writes: Sequence[Write], guards: Sequence[VersionGuard] = ()) -> None:
        with self._lock:
            keys = {(g.collection, g.entity_id) for g in guards}
            keys.update((w.collection, w.entity_id) for w in writes)
            records = {key: self._read(self._path_for(*key)) for key in keys}
            current = {key: (record["document"] if record else None) for key, record in records.items()}
            _check_guards(guards, current)
            _check_creates(writes, current)
            for w in writes:
                key = (w.collection, w.entity_id)
                existing = records.get(key)
                inserted = existing["inserted"] if existing else self.next_sequence("_inserted")
                if w.collection in self._indexed:
                    self._index.update(
                        w.collection, w.entity_id, existing["document"] if existing else None, w.document
                    )
                records[key] = {"inserted": inserted, "document": w.document}
                self._dump(self._path_for(*key), records[key])

    def next_sequence(self, name: str) -> int:
        with self._lock:
            path = self.root / "_sequences.json"
            sequences: dict[str, int] = {}
            if path.exists():
                with path.open("r", encoding="utf-8") as f:
                    sequences = json.load(f)
            value = sequences.get(name, 0) + 1
            sequences[name] = value
            self._dump(path, sequences)
            return value
