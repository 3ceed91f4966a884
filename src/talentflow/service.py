"""PipelineService: the entry point for every pipeline operation.

Each mutating call validates its preconditions, then writes the new entity
version and the activity describing the change in one guarded batch. Committed
activities are published on the event bus and evaluated by the workflow
engine; the resulting executions run later on the ActionDispatcher.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
import logging
from pathlib import Path
from typing import Any
from uuid import uuid4

import httpx

from talentflow.activity.event_bus import EventBus, InMemoryEventBus
from talentflow.activity.log import ActivityLog, build_activity
from talentflow.activity.nats_bus import NATSEventBus
from talentflow.contracts.activities import (
    Activity,
    ActivityPayload,
    AssignmentChangedPayload,
    CandidateCreatedPayload,
    InterviewPayload,
    NoteAddedPayload,
    ProcessMembershipPayload,
    ScoreUpdatedPayload,
    StageChangedPayload,
    StatusChangePayload,
    TagChangePayload,
    WorkflowTriggeredPayload,
)
from talentflow.contracts.models import (
    Candidate,
    Process,
    ProcessMembership,
    ProcessMetrics,
    SLAReport,
    Stage,
    Task,
    utcnow,
)
from talentflow.contracts.types import (
    ActivityType,
    CandidateStatus,
    ExperienceLevel,
    ProcessStatus,
    SLAState,
)
from talentflow.contracts.workflows import Workflow, WorkflowExecution, WorkflowStatistics
from talentflow.errors import AlreadyMember, Conflict, IllegalStage, NotFound
from talentflow.observability.metrics import TRANSITIONS
from talentflow.observability.telemetry import traced
from talentflow.pipeline.process_metrics import compute_process_metrics
from talentflow.pipeline.sla import sla_report as build_sla_report
from talentflow.pipeline.stage_graph import DEFAULT_PROCESS_STAGES, StageGraph, is_legal_move
from talentflow.pipeline.state_machine import (
    CANDIDATE_STATUS_FLOW,
    CLOSED_PROCESS_STATUSES,
    NON_CONTACT_STATUSES,
    PROCESS_STATUS_FLOW,
)
from talentflow.settings import Settings, get_settings
from talentflow.store.entity_store import (
    CANDIDATES,
    CURSORS,
    EXECUTIONS,
    PROCESSES,
    TASKS,
    WORKFLOWS,
    EntityStore,
    InMemoryEntityStore,
    JsonFileEntityStore,
    VersionGuard,
    Write,
)
from talentflow.store.repository import Repository
from talentflow.workflows.actions import ActionExecutor, LoggingNotifier, Notifier
from talentflow.workflows.delivery import ActionDispatcher
from talentflow.workflows.engine import WorkflowEngine
from talentflow.workflows.loader import DEFAULT_TEMPLATES_PATH, WorkflowTemplates
from talentflow.workflows.scanner import ScanReport, TimeTriggerScanner

logger = logging.getLogger(__name__)

# Statuses that no longer count towards a recruiter's open workload.
_CLOSED_CANDIDATE_STATUSES = frozenset(
    {CandidateStatus.HIRED, CandidateStatus.REJECTED, CandidateStatus.ARCHIVED}
)


class PipelineService:
    def __init__(
        self,
        store: EntityStore | None = None,
        *,
        settings: Settings | None = None,
        bus: EventBus | None = None,
        notifier: Notifier | None = None,
        http: httpx.Client | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store if store is not None else InMemoryEntityStore()
        self.clock = clock
        self.bus = bus
        self.notifier = notifier or LoggingNotifier()
        self.http = http or httpx.Client(timeout=self.settings.webhook_timeout_seconds)

        self.candidates = Repository(self.store, CANDIDATES, Candidate, "candidate")
        self.processes = Repository(self.store, PROCESSES, Process, "process")
        self.workflows = Repository(self.store, WORKFLOWS, Workflow, "workflow")
        self.executions = Repository(
            self.store, EXECUTIONS, WorkflowExecution, "workflow execution"
        )
        self.tasks = Repository(self.store, TASKS, Task, "task")
        self.log = ActivityLog(self.store, bus)
        self.graph = StageGraph(self.processes)

        self.executor = ActionExecutor(operations=self, notifier=self.notifier, http=self.http)
        self.dispatcher = ActionDispatcher(
            executions=self.executions,
            executor=self.executor,
            operations=self,
            settings=self.settings,
            clock=clock,
        )
        self.engine = WorkflowEngine(
            workflows=self.workflows,
            executions=self.executions,
            candidates=self.candidates,
            dispatcher=self.dispatcher,
            settings=self.settings,
            clock=clock,
        )
        self.scanner = TimeTriggerScanner(
            candidates=self.candidates,
            processes=self.processes,
            workflows=self.workflows,
            log=self.log,
            emit=self.emit,
            settings=self.settings,
            clock=clock,
        )

    def close(self) -> None:
        self.http.close()
        close_bus = getattr(self.bus, "close", None)
        if close_bus is not None:
            close_bus()

    # ==== Commit path ====

    def _commit(
        self,
        writes: list[Write],
        guards: list[VersionGuard | None],
        activities: Iterable[Activity],
        *,
        evaluate: bool = True,
    ) -> list[Activity]:
        staged: list[Activity] = []
        for activity in activities:
            sequenced, write = self.log.stage(activity)
            staged.append(sequenced)
            writes.append(write)
        self.store.write(writes, [guard for guard in guards if guard is not None])
        for activity in staged:
            logger.info(
                "activity.appended",
                extra={
                    "extra": {
                        "candidate_id": activity.candidate_id,
                        "activity_id": activity.id,
                        "type": activity.type.value,
                        "actor_id": activity.actor_id,
                    }
                },
            )
        self.log.publish(staged)
        if evaluate:
            for activity in staged:
                self._evaluate(activity)
        return staged

    def _evaluate(self, activity: Activity) -> list[WorkflowExecution]:
        try:
            with traced(
                __name__,
                "workflow.evaluate",
                activity__id=activity.id,
                activity__type=activity.type.value,
            ):
                return self.engine.evaluate_event(activity)
        except Exception:  # noqa: BLE001
            # the triggering change is already committed
            logger.exception(
                "workflow.evaluation_failed",
                extra={"extra": {"activity_id": activity.id, "candidate_id": activity.candidate_id}},
            )
            return []

    def _mutate(
        self,
        candidate: Candidate,
        update: dict[str, Any],
        payload: ActivityPayload,
        *,
        actor_id: str,
        correlation_id: str | None = None,
        depth: int = 0,
        extra_writes: Iterable[Write] = (),
        extra_guards: Iterable[VersionGuard | None] = (),
    ) -> Activity:
        now = self.clock()
        changed = candidate.model_copy(update={**update, "updated_at": now})
        _, write, guard = self.candidates.stage_update(changed)
        activity = build_activity(
            candidate.id,
            payload,
            actor_id=actor_id,
            timestamp=now,
            correlation_id=correlation_id,
            depth=depth,
        )
        [committed] = self._commit(
            [write, *extra_writes], [guard, *extra_guards], [activity]
        )
        return committed

    def emit(self, activity: Activity) -> list[WorkflowExecution]:
        """Append a standalone activity and evaluate it immediately."""
        self.candidates.get(activity.candidate_id)
        [committed] = self._commit([], [], [activity], evaluate=False)
        return self._evaluate(committed)

    def record_activity(
        self,
        candidate_id: str,
        payload: ActivityPayload,
        *,
        actor_id: str,
        correlation_id: str | None = None,
        depth: int = 0,
    ) -> Activity:
        self.candidates.get(candidate_id)
        activity = build_activity(
            candidate_id,
            payload,
            actor_id=actor_id,
            timestamp=self.clock(),
            correlation_id=correlation_id,
            depth=depth,
        )
        [committed] = self._commit([], [], [activity])
        return committed

    # ==== Candidates ====

    def create_candidate(
        self,
        first_name: str,
        last_name: str,
        email: str,
        *,
        source: str = "manual",
        phone: str | None = None,
        experience_level: ExperienceLevel | None = None,
        current_position: str | None = None,
        tags: Iterable[str] = (),
        actor_id: str = "system",
    ) -> Candidate:
        now = self.clock()
        candidate = Candidate(
            id=str(uuid4()),
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            source=source,
            experience_level=experience_level,
            current_position=current_position,
            tags=list(tags),
            created_at=now,
            updated_at=now,
        )
        activity = build_activity(
            candidate.id, CandidateCreatedPayload(source=source), actor_id=actor_id, timestamp=now
        )
        self._commit([self.candidates.stage_create(candidate)], [], [activity])
        logger.info(
            "candidate.created",
            extra={"extra": {"candidate_id": candidate.id, "source": source}},
        )
        return candidate

    def get_candidate(self, candidate_id: str) -> Candidate:
        return self.candidates.get(candidate_id)

    def transition(
        self,
        candidate_id: str,
        from_status: CandidateStatus | str,
        to_status: CandidateStatus | str,
        actor_id: str,
        *,
        correlation_id: str | None = None,
        depth: int = 0,
    ) -> Activity:
        """Move a candidate from `from_status` to `to_status`.

        Raises InvalidTransition for pairs outside the status table, NotFound
        for unknown candidates and Conflict when the candidate is no longer at
        `from_status`. Repeating a transition that already happened returns the
        original activity without appending a new one.
        """
        source = CandidateStatus(from_status)
        target = CandidateStatus(to_status)
        with traced(
            __name__,
            "candidate.transition",
            candidate__id=candidate_id,
            transition=f"{source.value}->{target.value}",
        ):
            CANDIDATE_STATUS_FLOW.check(source, target)
            candidate = self.candidates.get(candidate_id)

            if candidate.status is target:
                previous = self._last_status_change(candidate_id, target)
                if previous is None:
                    raise Conflict(f"Candidate {candidate_id!r} is already '{target.value}'")
                return previous
            if candidate.status is not source:
                raise Conflict(
                    f"Candidate {candidate_id!r} is '{candidate.status.value}', "
                    f"not '{source.value}'"
                )

            update: dict[str, Any] = {"status": target}
            if target not in NON_CONTACT_STATUSES:
                update["last_contacted_at"] = self.clock()
            try:
                activity = self._mutate(
                    candidate,
                    update,
                    StatusChangePayload(from_status=source, to_status=target),
                    actor_id=actor_id,
                    correlation_id=correlation_id,
                    depth=depth,
                )
            except Conflict:
                # a duplicate request for the same target may have won the race
                if self.candidates.get(candidate_id).status is target:
                    previous = self._last_status_change(candidate_id, target)
                    if previous is not None:
                        return previous
                raise
        TRANSITIONS.labels(from_status=source.value, to_status=target.value).inc()
        logger.info(
            "candidate.transitioned",
            extra={
                "extra": {
                    "candidate_id": candidate_id,
                    "from_status": source.value,
                    "to_status": target.value,
                    "actor_id": actor_id,
                }
            },
        )
        return activity

    def request_transition(
        self,
        candidate_id: str,
        to_status: CandidateStatus | str,
        actor_id: str,
        *,
        correlation_id: str | None = None,
        depth: int = 0,
    ) -> Activity:
        """Transition from whatever status the candidate currently has."""
        target = CandidateStatus(to_status)
        candidate = self.candidates.get(candidate_id)
        if candidate.status is target:
            previous = self._last_status_change(candidate_id, target)
            if previous is not None:
                return previous
        return self.transition(
            candidate_id,
            candidate.status,
            target,
            actor_id,
            correlation_id=correlation_id,
            depth=depth,
        )

    def _last_status_change(self, candidate_id: str, target: CandidateStatus) -> Activity | None:
        return self.log.latest(
            candidate_id,
            lambda entry: isinstance(entry.payload, StatusChangePayload)
            and entry.payload.to_status is target,
        )

    def archive_candidate(self, candidate_id: str, actor_id: str) -> Activity:
        return self.request_transition(candidate_id, CandidateStatus.ARCHIVED, actor_id)

    def add_tag(
        self,
        candidate_id: str,
        tag: str,
        *,
        actor_id: str = "system",
        correlation_id: str | None = None,
        depth: int = 0,
    ) -> Activity | None:
        """Add a tag; returns None when the candidate already carries it."""
        tag = tag.strip()
        if not tag:
            raise ValueError("tag must not be empty")
        candidate = self.candidates.get(candidate_id)
        if tag in candidate.tags:
            return None
        return self._mutate(
            candidate,
            {"tags": [*candidate.tags, tag]},
            TagChangePayload(kind="tag_added", tag=tag),
            actor_id=actor_id,
            correlation_id=correlation_id,
            depth=depth,
        )

    def remove_tag(
        self,
        candidate_id: str,
        tag: str,
        *,
        actor_id: str = "system",
        correlation_id: str | None = None,
        depth: int = 0,
    ) -> Activity | None:
        tag = tag.strip()
        candidate = self.candidates.get(candidate_id)
        if tag not in candidate.tags:
            return None
        return self._mutate(
            candidate,
            {"tags": [existing for existing in candidate.tags if existing != tag]},
            TagChangePayload(kind="tag_removed", tag=tag),
            actor_id=actor_id,
            correlation_id=correlation_id,
            depth=depth,
        )

    def update_score(
        self,
        candidate_id: str,
        score_type: str,
        score: float,
        *,
        actor_id: str = "system",
    ) -> Activity:
        candidate = self.candidates.get(candidate_id)
        return self._mutate(
            candidate,
            {"scores": {**candidate.scores, score_type: float(score)}},
            ScoreUpdatedPayload(
                score_type=score_type,
                score=float(score),
                previous=candidate.scores.get(score_type),
            ),
            actor_id=actor_id,
        )

    def add_note(
        self,
        candidate_id: str,
        content: str,
        *,
        is_private: bool = False,
        actor_id: str = "system",
        correlation_id: str | None = None,
        depth: int = 0,
    ) -> Activity:
        content = content.strip()
        if not content:
            raise ValueError("note content must not be empty")
        candidate = self.candidates.get(candidate_id)
        return self._mutate(
            candidate,
            {},
            NoteAddedPayload(content=content, is_private=is_private),
            actor_id=actor_id,
            correlation_id=correlation_id,
            depth=depth,
        )

    def schedule_interview(
        self,
        candidate_id: str,
        scheduled_at: datetime,
        *,
        interview_type: str = "video",
        actor_id: str = "system",
    ) -> Activity:
        candidate = self.candidates.get(candidate_id)
        return self._mutate(
            candidate,
            {},
            InterviewPayload(
                kind="interview_scheduled",
                interview_id=str(uuid4()),
                interview_type=interview_type,
                scheduled_at=scheduled_at,
            ),
            actor_id=actor_id,
        )

    def complete_interview(
        self,
        candidate_id: str,
        interview_id: str,
        *,
        rating: float | None = None,
        actor_id: str = "system",
    ) -> Activity:
        candidate = self.candidates.get(candidate_id)
        scheduled = self.log.latest(
            candidate_id,
            lambda entry: isinstance(entry.payload, InterviewPayload)
            and entry.payload.kind == "interview_scheduled"
            and entry.payload.interview_id == interview_id,
        )
        if scheduled is None or not isinstance(scheduled.payload, InterviewPayload):
            raise NotFound("interview", interview_id)
        return self._mutate(
            candidate,
            {},
            InterviewPayload(
                kind="interview_completed",
                interview_id=interview_id,
                interview_type=scheduled.payload.interview_type,
                scheduled_at=scheduled.payload.scheduled_at,
                rating=rating,
            ),
            actor_id=actor_id,
        )

    def assign_user(
        self,
        candidate_id: str,
        user_id: str,
        *,
        actor_id: str = "system",
        correlation_id: str | None = None,
        depth: int = 0,
    ) -> Activity | None:
        candidate = self.candidates.get(candidate_id)
        if candidate.assigned_to == user_id:
            return None
        return self._mutate(
            candidate,
            {"assigned_to": user_id},
            AssignmentChangedPayload(from_user=candidate.assigned_to, to_user=user_id),
            actor_id=actor_id,
            correlation_id=correlation_id,
            depth=depth,
        )

    def assigned_load(self, user_ids: list[str]) -> dict[str, int]:
        return {
            user_id: sum(
                1
                for candidate in self.candidates.where(assigned_to=user_id)
                if candidate.status not in _CLOSED_CANDIDATE_STATUSES
            )
            for user_id in dict.fromkeys(user_ids)
        }

    def next_in_rotation(self, key: str, pool: list[str]) -> str:
        """Pick the next user of a round-robin pool, persisting the cursor."""
        doc = self.store.get(CURSORS, key)
        position = int(doc["position"]) if doc else 0
        user_id = pool[position % len(pool)]
        if doc is None:
            write = Write(CURSORS, key, {"id": key, "position": 1, "version": 1}, create_only=True)
            self.store.write([write])
        else:
            version = int(doc.get("version", 0))
            write = Write(
                CURSORS, key, {"id": key, "position": position + 1, "version": version + 1}
            )
            self.store.write([write], [VersionGuard(CURSORS, key, version)])
        return user_id

    def save_task(self, task: Task, *, correlation_id: str | None = None, depth: int = 0) -> Task:
        self.tasks.save(task)
        logger.info(
            "task.saved",
            extra={
                "extra": {
                    "task_id": task.id,
                    "candidate_id": task.candidate_id,
                    "assigned_to": task.assigned_to,
                    "correlation_id": correlation_id,
                }
            },
        )
        return task

    # ==== Processes ====

    def create_process(
        self,
        name: str,
        *,
        stages: Iterable[Stage] | None = None,
        default_stage_id: str | None = None,
        transitions: dict[str, list[str]] | None = None,
        description: str | None = None,
        client: str | None = None,
        owner_id: str | None = None,
    ) -> Process:
        now = self.clock()
        process = Process(
            id=str(uuid4()),
            name=name,
            description=description,
            client=client,
            stages=list(stages) if stages is not None else list(DEFAULT_PROCESS_STAGES),
            default_stage_id=default_stage_id,
            transitions=transitions,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        self.processes.create(process)
        logger.info("process.created", extra={"extra": {"process_id": process.id, "name": name}})
        return process

    def get_process(self, process_id: str) -> Process:
        return self.processes.get(process_id)

    def change_process_status(
        self, process_id: str, status: ProcessStatus | str, actor_id: str
    ) -> Process:
        process = self.processes.get(process_id)
        target = ProcessStatus(status)
        PROCESS_STATUS_FLOW.check(process.status, target)
        updated = self.processes.save(
            process.model_copy(update={"status": target, "updated_at": self.clock()})
        )
        logger.info(
            "process.status_changed",
            extra={
                "extra": {
                    "process_id": process_id,
                    "from_status": process.status.value,
                    "to_status": target.value,
                    "actor_id": actor_id,
                }
            },
        )
        return updated

    def _open_process(self, process_id: str) -> Process:
        process = self.processes.get(process_id)
        if process.status in CLOSED_PROCESS_STATUSES:
            raise Conflict(f"Process {process_id!r} is {process.status.value}")
        return process

    def add_candidate_to_process(
        self,
        process_id: str,
        candidate_id: str,
        stage_id: str | None = None,
        *,
        actor_id: str = "system",
    ) -> ProcessMembership:
        process = self._open_process(process_id)
        candidate = self.candidates.get(candidate_id)
        if candidate.membership(process_id) is not None:
            raise AlreadyMember(candidate_id, process_id)
        stage = process.entry_stage() if stage_id is None else process.stage(stage_id)
        if stage is None:
            raise IllegalStage(f"Stage {stage_id!r} does not exist in process {process_id!r}")

        membership = ProcessMembership(
            process_id=process_id, stage_id=stage.id, entered_stage_at=self.clock()
        )
        _, process_write, process_guard = self.processes.stage_update(
            process.model_copy(
                update={"candidate_ids": [*process.candidate_ids, candidate_id]}
            )
        )
        self._mutate(
            candidate,
            {"memberships": [*candidate.memberships, membership]},
            ProcessMembershipPayload(
                kind="process_added",
                process_id=process_id,
                process_name=process.name,
                stage_id=stage.id,
            ),
            actor_id=actor_id,
            extra_writes=[process_write],
            extra_guards=[process_guard],
        )
        return membership

    def move_stage(
        self,
        process_id: str,
        candidate_id: str,
        to_stage_id: str,
        *,
        actor_id: str = "system",
    ) -> ProcessMembership:
        process = self._open_process(process_id)
        candidate = self.candidates.get(candidate_id)
        current = candidate.membership(process_id)
        if current is None:
            raise NotFound("membership", f"{candidate_id}@{process_id}")
        if current.stage_id == to_stage_id:
            return current
        if not is_legal_move(process, current.stage_id, to_stage_id):
            raise IllegalStage(
                f"Cannot move candidate from stage '{current.stage_id}' to "
                f"'{to_stage_id}' in process {process_id!r}"
            )

        moved = ProcessMembership(
            process_id=process_id, stage_id=to_stage_id, entered_stage_at=self.clock()
        )
        self._mutate(
            candidate,
            {
                "memberships": [
                    moved if entry.process_id == process_id else entry
                    for entry in candidate.memberships
                ]
            },
            StageChangedPayload(
                process_id=process_id, from_stage_id=current.stage_id, to_stage_id=to_stage_id
            ),
            actor_id=actor_id,
        )
        return moved

    def remove_candidate_from_process(
        self, process_id: str, candidate_id: str, actor_id: str
    ) -> Activity:
        process = self._open_process(process_id)
        candidate = self.candidates.get(candidate_id)
        current = candidate.membership(process_id)
        if current is None:
            raise NotFound("membership", f"{candidate_id}@{process_id}")
        _, process_write, process_guard = self.processes.stage_update(
            process.model_copy(
                update={
                    "candidate_ids": [cid for cid in process.candidate_ids if cid != candidate_id]
                }
            )
        )
        return self._mutate(
            candidate,
            {
                "memberships": [
                    entry for entry in candidate.memberships if entry.process_id != process_id
                ]
            },
            ProcessMembershipPayload(
                kind="process_removed",
                process_id=process_id,
                process_name=process.name,
                stage_id=current.stage_id,
            ),
            actor_id=actor_id,
            extra_writes=[process_write],
            extra_guards=[process_guard],
        )

    def stages_for(self, process_id: str) -> list[Stage]:
        return self.graph.stages_for(process_id)

    def sla_report(self, candidate_id: str, process_id: str) -> SLAReport:
        candidate = self.candidates.get(candidate_id)
        membership = candidate.membership(process_id)
        if membership is None:
            raise NotFound("membership", f"{candidate_id}@{process_id}")
        stage = self.processes.get(process_id).stage(membership.stage_id)
        if stage is None:
            raise IllegalStage(f"Stage {membership.stage_id!r} no longer exists")
        return build_sla_report(
            candidate_id, membership, stage, self.clock(), self.settings.sla_warning_ratio
        )

    def sla_status(self, candidate_id: str, process_id: str) -> SLAState:
        return self.sla_report(candidate_id, process_id).state

    def process_metrics(self, process_id: str) -> ProcessMetrics:
        process = self.processes.get(process_id)
        members = self.candidates.filter(lambda c: c.membership(process_id) is not None)
        return compute_process_metrics(
            process, members, self.clock(), self.settings.sla_warning_ratio
        )

    # ==== Workflows ====

    def register_workflow(self, workflow: Workflow) -> str:
        return self.engine.register_workflow(workflow)

    def set_workflow_active(self, workflow_id: str, active: bool) -> Workflow:
        return self.engine.set_workflow_active(workflow_id, active)

    def load_workflows(self, path: Path | None = None) -> list[str]:
        """Register every rule of a YAML template file."""
        templates = WorkflowTemplates.load(
            path or self.settings.workflows_path or DEFAULT_TEMPLATES_PATH
        )
        self.executor.templates.update(templates.email_templates)
        return self.engine.register_many(templates.workflows)

    def evaluate_event(self, activity: Activity) -> list[WorkflowExecution]:
        return self.engine.evaluate_event(activity)

    def trigger_manual(
        self, workflow_id: str, candidate_id: str, actor_id: str
    ) -> WorkflowExecution:
        workflow = self.workflows.get(workflow_id)
        candidate = self.candidates.get(candidate_id)
        activity = build_activity(
            candidate_id,
            WorkflowTriggeredPayload(workflow_id=workflow_id),
            actor_id=actor_id,
            timestamp=self.clock(),
        )
        [committed] = self._commit([], [], [activity], evaluate=False)
        return self.engine.fire(workflow, candidate, committed, executed_by=actor_id)

    def revoke_execution(self, execution_id: str, actor_id: str) -> WorkflowExecution:
        return self.engine.revoke_execution(execution_id, actor_id)

    def run_pending(self, now: datetime | None = None) -> list[WorkflowExecution]:
        return self.dispatcher.run_due(now)

    def scan(self, now: datetime | None = None) -> ScanReport:
        with traced(__name__, "scanner.scan"):
            return self.scanner.scan(now)

    def recover(self) -> int:
        return self.dispatcher.recover()

    def workflow_statistics(self, workflow_id: str) -> WorkflowStatistics:
        return self.engine.workflow_statistics(workflow_id)

    # ==== Reads ====

    def activities_for(
        self, candidate_id: str, types: Iterable[ActivityType] | None = None
    ) -> list[Activity]:
        self.candidates.get(candidate_id)
        return self.log.for_candidate(candidate_id, types)

    def executions_for(
        self, *, candidate_id: str | None = None, workflow_id: str | None = None
    ) -> list[WorkflowExecution]:
        return self.engine.executions_for(candidate_id=candidate_id, workflow_id=workflow_id)

    def tasks_for(self, candidate_id: str) -> list[Task]:
        return sorted(
            self.tasks.where(candidate_id=candidate_id),
            key=lambda task: task.created_at,
        )


def build_store(settings: Settings) -> EntityStore:
    if settings.store_backend == "json":
        return JsonFileEntityStore(settings.store_path)
    if settings.store_backend == "memory":
        return InMemoryEntityStore()
    raise ValueError(f"Unknown store backend: {settings.store_backend}")


def build_bus(settings: Settings) -> EventBus:
    if settings.event_bus == "nats":
        return NATSEventBus(settings.nats_url)
    if settings.event_bus == "memory":
        return InMemoryEventBus(max_backlog=settings.event_backlog)
    raise ValueError(f"Unknown event bus: {settings.event_bus}")


def build_service(settings: Settings | None = None, **kwargs: Any) -> PipelineService:
    """Wire a PipelineService from settings."""
    settings = settings or get_settings()
    return PipelineService(
        build_store(settings), settings=settings, bus=build_bus(settings), **kwargs
    )
