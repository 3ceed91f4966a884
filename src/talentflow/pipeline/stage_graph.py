"""Per-process stage configuration and transition rules."""

from __future__ import annotations

from dataclasses import dataclass

from talentflow.contracts.models import Process, Stage
from talentflow.store.repository import Repository

# Default pipeline stages used when a process is created without its own.
DEFAULT_PROCESS_STAGES: tuple[Stage, ...] = (
    Stage(id="new", name="New", order=1, color="#3366cc", sla_hours=72),
    Stage(id="screening", name="Screening", order=2, color="#dc3912", sla_hours=120),
    Stage(id="interview_1", name="HR Interview", order=3, color="#ff9900", sla_hours=168),
    Stage(id="interview_2", name="Technical Interview", order=4, color="#109618", sla_hours=168),
    Stage(id="interview_final", name="Final Interview", order=5, color="#990099", sla_hours=168),
    Stage(id="offer", name="Offer", order=6, color="#0099c6", sla_hours=120),
    Stage(id="hired", name="Hired", order=7, color="#22aa00"),
    Stage(id="rejected", name="Rejected", order=8, color="#dc3912"),
)


def is_legal_move(process: Process, from_stage: str, to_stage: str) -> bool:
    """Open graph unless the process restricts moves with an adjacency list."""
    if process.stage(from_stage) is None or process.stage(to_stage) is None:
        return False
    if process.transitions is None:
        return True
    return to_stage in process.transitions.get(from_stage, [])


@dataclass(slots=True)
class StageGraph:
    processes: Repository[Process]

    def stages_for(self, process_id: str) -> list[Stage]:
        return self.processes.get(process_id).ordered_stages()

    def is_legal_transition(self, process_id: str, from_stage: str, to_stage: str) -> bool:
        return is_legal_move(self.processes.get(process_id), from_stage, to_stage)
