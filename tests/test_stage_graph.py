"""Unit tests for process stage configuration."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from talentflow.contracts.models import Process, Stage
from talentflow.errors import NotFound
from talentflow.pipeline.stage_graph import DEFAULT_PROCESS_STAGES, StageGraph, is_legal_move
from talentflow.store.entity_store import PROCESSES, InMemoryEntityStore
from talentflow.store.repository import Repository


def _stages() -> list[Stage]:
    return [
        Stage(id="applied", name="Applied", order=1, sla_hours=24),
        Stage(id="phone", name="Phone screen", order=2),
        Stage(id="onsite", name="Onsite", order=3),
    ]


@pytest.fixture
def graph() -> StageGraph:
    return StageGraph(Repository(InMemoryEntityStore(), PROCESSES, Process, "process"))


def test_stages_for_orders_by_stage_order(graph: StageGraph) -> None:
    stages = list(reversed(_stages()))
    graph.processes.create(Process(id="p1", name="Backend", stages=stages))
    assert [stage.id for stage in graph.stages_for("p1")] == ["applied", "phone", "onsite"]


def test_stages_for_unknown_process(graph: StageGraph) -> None:
    with pytest.raises(NotFound):
        graph.stages_for("missing")


def test_open_graph_allows_any_known_stage(graph: StageGraph) -> None:
    graph.processes.create(Process(id="p1", name="Backend", stages=_stages()))
    assert graph.is_legal_transition("p1", "applied", "onsite")
    assert graph.is_legal_transition("p1", "onsite", "applied")
    assert not graph.is_legal_transition("p1", "applied", "offer")


def test_adjacency_list_restricts_moves(graph: StageGraph) -> None:
    graph.processes.create(
        Process(
            id="p1",
            name="Backend",
            stages=_stages(),
            transitions={"applied": ["phone"], "phone": ["onsite", "applied"]},
        )
    )
    assert graph.is_legal_transition("p1", "applied", "phone")
    assert not graph.is_legal_transition("p1", "applied", "onsite")
    assert graph.is_legal_transition("p1", "phone", "applied")
    assert not graph.is_legal_transition("p1", "onsite", "phone")


def test_process_rejects_duplicate_orders() -> None:
    with pytest.raises(ValidationError):
        Process(
            id="p1",
            name="Broken",
            stages=[Stage(id="a", name="A", order=1), Stage(id="b", name="B", order=1)],
        )


def test_process_rejects_unknown_default_and_adjacency() -> None:
    with pytest.raises(ValidationError):
        Process(id="p1", name="Broken", stages=_stages(), default_stage_id="offer")
    with pytest.raises(ValidationError):
        Process(id="p1", name="Broken", stages=_stages(), transitions={"applied": ["offer"]})


def test_entry_stage_prefers_default() -> None:
    process = Process(id="p1", name="Backend", stages=_stages(), default_stage_id="phone")
    assert process.entry_stage().id == "phone"
    process = Process(id="p1", name="Backend", stages=_stages())
    assert process.entry_stage().id == "applied"


def test_default_stages_are_consistent() -> None:
    process = Process(id="p1", name="Default", stages=list(DEFAULT_PROCESS_STAGES))
    assert process.entry_stage().id == "new"
    assert is_legal_move(process, "new", "hired")
