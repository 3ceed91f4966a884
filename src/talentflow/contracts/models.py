"""Domain models for candidates, processes and tasks."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator, model_validator

from talentflow.contracts.types import (
    CandidateStatus,
    ExperienceLevel,
    ProcessStatus,
    SLAState,
    TaskPriority,
    TaskStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProcessMembership(BaseModel):
    """A candidate's current position inside one process."""

    process_id: str
    stage_id: str
    entered_stage_at: datetime


class Candidate(BaseModel):
    """A person moving through the recruiting pipeline."""

    id: str
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    source: str = "manual"
    experience_level: ExperienceLevel | None = None
    current_position: str | None = None
    status: CandidateStatus = CandidateStatus.NEW
    tags: list[str] = Field(default_factory=list)
    memberships: list[ProcessMembership] = Field(default_factory=list)
    scores: dict[str, float] = Field(default_factory=dict)
    assigned_to: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_contacted_at: datetime | None = None
    version: int = 0

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        seen: dict[str, None] = {}
        for tag in value:
            cleaned = tag.strip()
            if cleaned:
                seen.setdefault(cleaned, None)
        return list(seen)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def membership(self, process_id: str) -> ProcessMembership | None:
        for entry in self.memberships:
            if entry.process_id == process_id:
                return entry
        return None


class Stage(BaseModel):
    """One column of a process pipeline."""

    id: str
    name: str
    order: int
    sla_hours: float | None = Field(None, gt=0)
    color: str | None = None
    description: str | None = None


class Process(BaseModel):
    """A named hiring pipeline with ordered stages and member candidates."""

    id: str
    name: str
    status: ProcessStatus = ProcessStatus.DRAFT
    description: str | None = None
    client: str | None = None
    stages: list[Stage]
    default_stage_id: str | None = None
    transitions: dict[str, list[str]] | None = Field(
        None,
        description="Optional adjacency list; when absent every stage may move to any other.",
    )
    candidate_ids: list[str] = Field(default_factory=list)
    owner_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0

    @model_validator(mode="after")
    def _check_stages(self) -> Process:
        if not self.stages:
            raise ValueError("a process needs at least one stage")
        ids = [stage.id for stage in self.stages]
        if len(set(ids)) != len(ids):
            raise ValueError("stage ids must be unique within a process")
        orders = [stage.order for stage in self.stages]
        if len(set(orders)) != len(orders):
            raise ValueError("stage order values must be unique within a process")
        known = set(ids)
        if self.default_stage_id is not None and self.default_stage_id not in known:
            raise ValueError(f"default stage {self.default_stage_id!r} is not a stage")
        if self.transitions is not None:
            for source, targets in self.transitions.items():
                unknown = ({source} | set(targets)) - known
                if unknown:
                    raise ValueError(f"transitions reference unknown stages: {sorted(unknown)}")
        return self

    def ordered_stages(self) -> list[Stage]:
        return sorted(self.stages, key=lambda stage: stage.order)

    def stage(self, stage_id: str) -> Stage | None:
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        return None

    def entry_stage(self) -> Stage:
        if self.default_stage_id is not None:
            stage = self.stage(self.default_stage_id)
            if stage is not None:
                return stage
        return self.ordered_stages()[0]


class StageCount(BaseModel):
    stage_id: str
    stage_name: str
    count: int
    on_track: int = 0
    at_risk: int = 0
    breached: int = 0


class ProcessMetrics(BaseModel):
    """Aggregate view of a process, recomputed from memberships on every read."""

    process_id: str
    total_candidates: int
    by_stage: list[StageCount]
    on_track_count: int
    at_risk_count: int
    overdue_count: int
    computed_at: datetime

    @property
    def current_by_stage(self) -> dict[str, int]:
        return {entry.stage_id: entry.count for entry in self.by_stage}


class SLAReport(BaseModel):
    """Time-in-stage view for one candidate membership."""

    candidate_id: str
    process_id: str
    stage_id: str
    entered_stage_at: datetime
    hours_in_stage: float
    sla_hours: float | None = None
    remaining_hours: float | None = None
    deadline: datetime | None = None
    state: SLAState


class Task(BaseModel):
    """Follow-up work item created by a workflow."""

    id: str
    candidate_id: str
    workflow_id: str | None = None
    title: str
    description: str = ""
    assigned_to: str = "unassigned"
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    due_at: datetime
    created_by: str = "system"
    created_at: datetime = Field(default_factory=utcnow)
