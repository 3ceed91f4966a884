import pytest

from talentflow.contracts.types import ActivityType, CandidateStatus
from talentflow.errors import Conflict
from talentflow.service import PipelineService
from talentflow.settings import Settings
from talentflow.store.entity_store import (
    ACTIVITIES,
    EXECUTIONS,
    InMemoryEntityStore,
    JsonFileEntityStore,
    VersionGuard,
    Write,
)


@pytest.fixture(params=["memory", "json"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryEntityStore()
    return JsonFileEntityStore(tmp_path / "store")


def test_get_returns_copies(any_store) -> None:
    any_store.write([Write("things", "a", {"id": "a", "tags": ["x"], "version": 1})])
    doc = any_store.get("things", "a")
    doc["tags"].append("mutated")
    assert any_store.get("things", "a")["tags"] == ["x"]
    assert any_store.get("things", "missing") is None


def test_list_keeps_insertion_order(any_store) -> None:
    for entity_id in ["b", "a", "c"]:
        any_store.write([Write("things", entity_id, {"id": entity_id})])
    any_store.write([Write("things", "b", {"id": "b", "updated": True})])
    assert [doc["id"] for doc in any_store.list("things")] == ["b", "a", "c"]
    assert any_store.list("empty") == []


def test_version_guard_rejects_stale_writes(any_store) -> None:
    any_store.write([Write("things", "a", {"id": "a", "version": 1})])
    any_store.write(
        [Write("things", "a", {"id": "a", "version": 2})], [VersionGuard("things", "a", 1)]
    )
    with pytest.raises(Conflict):
        any_store.write(
            [Write("things", "a", {"id": "a", "version": 2})], [VersionGuard("things", "a", 1)]
        )
    with pytest.raises(Conflict):
        any_store.write([], [VersionGuard("things", "missing", 0)])


def test_create_only_rejects_existing(any_store) -> None:
    any_store.write([Write("things", "a", {"id": "a"}, create_only=True)])
    with pytest.raises(Conflict):
        any_store.write([Write("things", "a", {"id": "a", "again": True}, create_only=True)])
    assert "again" not in any_store.get("things", "a")


def test_batches_are_all_or_nothing(any_store) -> None:
    any_store.write([Write("things", "a", {"id": "a", "version": 1})])
    with pytest.raises(Conflict):
        any_store.write(
            [
                Write("things", "a", {"id": "a", "version": 2}),
                Write("log", "entry-1", {"id": "entry-1"}),
            ],
            [VersionGuard("things", "a", 0)],
        )
    assert any_store.get("things", "a")["version"] == 1
    assert any_store.get("log", "entry-1") is None


def test_sequences_increase(any_store) -> None:
    assert [any_store.next_sequence("activities") for _ in range(3)] == [1, 2, 3]
    assert any_store.next_sequence("other") == 1


def _ids(docs) -> list[str]:
    return [doc["id"] for doc in docs]


def test_find_tracks_indexed_field_changes(any_store) -> None:
    any_store.write([Write(EXECUTIONS, "e1", {"id": "e1", "workflow_id": "w1", "status": "pending"})])
    any_store.write([Write(EXECUTIONS, "e2", {"id": "e2", "workflow_id": "w2", "status": "pending"})])
    assert _ids(any_store.find(EXECUTIONS, status="pending")) == ["e1", "e2"]

    any_store.write([Write(EXECUTIONS, "e1", {"id": "e1", "workflow_id": "w1", "status": "completed"})])

    assert _ids(any_store.find(EXECUTIONS, status="pending")) == ["e2"]
    assert _ids(any_store.find(EXECUTIONS, status="completed")) == ["e1"]
    assert _ids(any_store.find(EXECUTIONS, workflow_id="w1", status="pending")) == []
    assert any_store.find(EXECUTIONS, workflow_id="unknown") == []


def test_find_on_unindexed_fields_filters_everything(any_store) -> None:
    any_store.write([Write("things", "a", {"id": "a", "colour": "red"})])
    any_store.write([Write("things", "b", {"id": "b", "colour": "blue"})])
    assert _ids(any_store.find("things", colour="red")) == ["a"]
    assert _ids(any_store.find("things")) == ["a", "b"]


def test_json_store_index_is_rebuilt_on_reopen(tmp_path) -> None:
    root = tmp_path / "store"
    first = JsonFileEntityStore(root)
    first.write([Write(ACTIVITIES, "x1", {"id": "x1", "candidate_id": "c1"})])
    first.write([Write(ACTIVITIES, "x2", {"id": "x2", "candidate_id": "c2"})])

    reopened = JsonFileEntityStore(root)
    assert _ids(reopened.find(ACTIVITIES, candidate_id="c1")) == ["x1"]
    reopened.write([Write(ACTIVITIES, "x3", {"id": "x3", "candidate_id": "c1"})])
    assert _ids(reopened.find(ACTIVITIES, candidate_id="c1")) == ["x1", "x3"]


class _ListCountingStore(InMemoryEntityStore):
    def __init__(self) -> None:
        super().__init__()
        self.listed: list[str] = []

    def list(self, collection: str):
        self.listed.append(collection)
        return super().list(collection)


def test_candidate_reads_use_the_index(clock) -> None:
    store = _ListCountingStore()
    service = PipelineService(store, settings=Settings(), clock=clock)
    ada = service.create_candidate("Ada", "Lovelace", "ada.com")
    grace = service.create_candidate("Grace", "Hopper", "grace.com")
    service.add_tag(grace.id, "python")
    service.assign_user(ada.id, "recruiter-1")
    store.listed.clear()

    assert [entry.type for entry in service.activities_for(ada.id)] == [
        ActivityType.CANDIDATE_CREATED,
        ActivityType.ASSIGNMENT_CHANGED,
    ]
    assert service.executions_for(candidate_id=ada.id) == []
    assert service.tasks_for(ada.id) == []
    assert service.assigned_load(["recruiter-1", "recruiter-2"]) == {
        "recruiter-1": 1,
        "recruiter-2": 0,
    }
    assert store.listed == []
    service.close()


def test_json_store_survives_reopen(tmp_path) -> None:
    root = tmp_path / "store"
    first = JsonFileEntityStore(root)
    first.write([Write("things", "a", {"id": "a"})])
    first.next_sequence("activities")

    reopened = JsonFileEntityStore(root)
    assert reopened.get("things", "a") == {"id": "a"}
    assert reopened.next_sequence("activities") == 2


def test_service_state_survives_restart(tmp_path, clock) -> None:
    root = tmp_path / "pipeline"
    first = PipelineService(JsonFileEntityStore(root), settings=Settings(), clock=clock)
    created = first.create_candidate("Ada", "Lovelace", "ada@example.com")
    first.transition(created.id, "new", "contacted", "recruiter-1")
    first.add_tag(created.id, "python")
    first.close()

    second = PipelineService(JsonFileEntityStore(root), settings=Settings(), clock=clock)
    restored = second.get_candidate(created.id)
    assert restored.status is CandidateStatus.CONTACTED
    assert restored.tags == ["python"]
    assert restored.version == 2
    history = second.activities_for(created.id)
    assert [entry.type for entry in history] == [
        ActivityType.CANDIDATE_CREATED,
        ActivityType.STATUS_CHANGE,
        ActivityType.TAG_ADDED,
    ]
    assert [entry.sequence for entry in history] == [1, 2, 3]

    second.transition(created.id, "contacted", "screening", "recruiter-1")
    assert second.activities_for(created.id)[-1].sequence == 4
    second.close()
