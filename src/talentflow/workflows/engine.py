"""Workflow rule engine.

Evaluates committed activities against the active rules and turns every match
into a persisted WorkflowExecution. Actions are not run here; new executions
are handed to the ActionDispatcher.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from uuid import NAMESPACE_URL, uuid4, uuid5

from talentflow.contracts.activities import Activity
from talentflow.contracts.models import Candidate
from talentflow.contracts.types import ActionResultStatus, ExecutionStatus
from talentflow.contracts.workflows import (
    ActionResult,
    Workflow,
    WorkflowExecution,
    WorkflowStatistics,
)
from talentflow.errors import Conflict, RateLimited
from talentflow.observability.metrics import WORKFLOW_EXECUTIONS
from talentflow.pipeline.state_machine import EXECUTION_STATUS_FLOW
from talentflow.settings import Settings
from talentflow.store.repository import Repository
from talentflow.workflows.delivery import ActionDispatcher
from talentflow.workflows.triggers import anchor_time, workflow_matches

logger = logging.getLogger(__name__)

_EXECUTION_NAMESPACE = uuid5(NAMESPACE_URL, "talentflow/workflow-executions")


def execution_id_for(workflow_id: str, candidate_id: str, event_id: str) -> str:
    """Stable id so one event fires a rule at most once per candidate."""
    return str(uuid5(_EXECUTION_NAMESPACE, f"{workflow_id}:{candidate_id}:{event_id}"))


@dataclass(slots=True)
class WorkflowEngine:
    workflows: Repository[Workflow]
    executions: Repository[WorkflowExecution]
    candidates: Repository[Candidate]
    dispatcher: ActionDispatcher
    settings: Settings
    clock: Callable[[], datetime]
    logger: logging.Logger = field(default_factory=lambda: logger)

    # ==== Rules ====

    def register_workflow(self, workflow: Workflow) -> str:
        now = self.clock()
        workflow = workflow.model_copy(
            update={
                "id": workflow.id or str(uuid4()),
                "created_at": workflow.created_at or now,
                "updated_at": now,
            }
        )
        existing = self.workflows.find(workflow.id)
        if existing is None:
            self.workflows.create(workflow)
        else:
            self.workflows.save(workflow)
        self.logger.info(
            "workflow.registered",
            extra={
                "extra": {
                    "workflow_id": workflow.id,
                    "name": workflow.name,
                    "trigger": workflow.trigger_type.value,
                }
            },
        )
        return workflow.id

    def set_workflow_active(self, workflow_id: str, active: bool) -> Workflow:
        workflow = self.workflows.get(workflow_id).model_copy(
            update={"is_active": active, "updated_at": self.clock()}
        )
        self.workflows.save(workflow)
        self.logger.info(
            "workflow.activation_changed",
            extra={"extra": {"workflow_id": workflow_id, "is_active": active}},
        )
        return workflow

    def active_workflows(self) -> list[Workflow]:
        active = [workflow for workflow in self.workflows.all() if workflow.is_active]
        # stable sort keeps registration order among equal priorities
        return sorted(active, key=lambda workflow: -workflow.priority)

    # ==== Evaluation ====

    def evaluate_event(self, activity: Activity) -> list[WorkflowExecution]:
        if activity.depth >= self.settings.max_cascade_depth:
            self.logger.warning(
                "workflow.cascade_limit",
                extra={
                    "extra": {
                        "activity_id": activity.id,
                        "candidate_id": activity.candidate_id,
                        "depth": activity.depth,
                    }
                },
            )
            return []
        candidate = self.candidates.find(activity.candidate_id)
        if candidate is None:
            return []

        fired: list[WorkflowExecution] = []
        for workflow in self.active_workflows():
            if workflow_matches(workflow, activity, candidate):
                fired.append(self.fire(workflow, candidate, activity))
        return fired

    def fire(
        self,
        workflow: Workflow,
        candidate: Candidate,
        activity: Activity,
        *,
        executed_by: str = "system",
    ) -> WorkflowExecution:
        """Create (or return the existing) execution of `workflow` for `activity`."""
        execution_id = execution_id_for(workflow.id, candidate.id, activity.id)
        existing = self.executions.find(execution_id)
        if existing is not None:
            return existing

        now = self.clock()
        anchor = anchor_time(activity, fired_at=now)
        skip_reason: str | None = None
        if not workflow.is_active:
            skip_reason = "inactive"
        else:
            try:
                self._check_rate_limits(workflow, candidate.id, now)
            except RateLimited as exc:
                skip_reason = "rate_limited"
                self.logger.info(
                    "workflow.rate_limited",
                    extra={"extra": {"workflow_id": workflow.id, "reason": str(exc)}},
                )

        results = [
            ActionResult(
                action_index=index,
                action_type=action.type,
                scheduled_for=anchor + timedelta(minutes=action.delay_minutes),
            )
            for index, action in enumerate(workflow.actions)
        ]
        execution = WorkflowExecution(
            id=execution_id,
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            candidate_id=candidate.id,
            event_id=activity.id,
            workflow=workflow,
            anchor_at=anchor,
            depth=activity.depth,
            started_at=now,
            results=results,
            executed_by=executed_by,
        )
        if skip_reason is not None:
            execution = self._skipped(execution, skip_reason, now)

        try:
            self.executions.create(execution)
        except Conflict:
            # concurrent evaluation of the same event won the create
            return self.executions.get(execution_id)

        self.logger.info(
            "workflow.fired",
            extra={
                "extra": {
                    "workflow_id": workflow.id,
                    "execution_id": execution.id,
                    "candidate_id": candidate.id,
                    "event_id": activity.id,
                    "status": execution.status.value,
                }
            },
        )
        if execution.status is ExecutionStatus.SKIPPED:
            WORKFLOW_EXECUTIONS.labels(status=ExecutionStatus.SKIPPED.value).inc()
        else:
            self.dispatcher.schedule(execution.id, now)
        return execution

    def _check_rate_limits(self, workflow: Workflow, candidate_id: str, now: datetime) -> None:
        if workflow.max_executions_per_candidate is None and workflow.max_executions_per_day is None:
            return
        prior = [
            execution
            for execution in self.executions.where(workflow_id=workflow.id)
            if execution.status is not ExecutionStatus.SKIPPED
        ]
        if workflow.max_executions_per_candidate is not None:
            count = sum(1 for execution in prior if execution.candidate_id == candidate_id)
            if count >= workflow.max_executions_per_candidate:
                raise RateLimited(
                    f"{count} executions for candidate {candidate_id} "
                    f"(max {workflow.max_executions_per_candidate})"
                )
        if workflow.max_executions_per_day is not None:
            today = now.date()
            count = sum(1 for execution in prior if execution.started_at.date() == today)
            if count >= workflow.max_executions_per_day:
                raise RateLimited(
                    f"{count} executions today (max {workflow.max_executions_per_day})"
                )

    @staticmethod
    def _skipped(execution: WorkflowExecution, reason: str, now: datetime) -> WorkflowExecution:
        EXECUTION_STATUS_FLOW.check(execution.status, ExecutionStatus.SKIPPED)
        results = [
            result
            if result.resolved
            else result.model_copy(update={"status": ActionResultStatus.SKIPPED, "message": reason})
            for result in execution.results
        ]
        return execution.model_copy(
            update={
                "status": ExecutionStatus.SKIPPED,
                "skip_reason": reason,
                "completed_at": now,
                "results": results,
            }
        )

    # ==== Executions ====

    def revoke_execution(self, execution_id: str, actor_id: str) -> WorkflowExecution:
        execution = self.executions.get(execution_id)
        if execution.status is not ExecutionStatus.PENDING:
            raise Conflict(
                f"Execution {execution_id!r} is {execution.status.value} and cannot be revoked"
            )
        revoked = self._skipped(execution, "revoked", self.clock()).model_copy(
            update={"executed_by": actor_id}
        )
        revoked = self.executions.save(revoked)
        self.dispatcher.cancel(execution_id)
        WORKFLOW_EXECUTIONS.labels(status=ExecutionStatus.SKIPPED.value).inc()
        self.logger.info(
            "workflow.execution_revoked",
            extra={"extra": {"execution_id": execution_id, "actor_id": actor_id}},
        )
        return revoked

    def executions_for(
        self, *, candidate_id: str | None = None, workflow_id: str | None = None
    ) -> list[WorkflowExecution]:
        equals = {
            name: value
            for name, value in (("candidate_id", candidate_id), ("workflow_id", workflow_id))
            if value is not None
        }
        found = self.executions.where(**equals)
        return sorted(found, key=lambda execution: execution.started_at)

    def workflow_statistics(self, workflow_id: str) -> WorkflowStatistics:
        workflow = self.workflows.get(workflow_id)
        executions = self.executions_for(workflow_id=workflow_id)
        by_status = Counter(execution.status for execution in executions)
        failures: Counter[str] = Counter()
        for execution in executions:
            for result in execution.results:
                if result.status is ActionResultStatus.FAILED:
                    failures[result.action_type.value] += 1
        return WorkflowStatistics(
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            total_executions=len(executions),
            completed=by_status[ExecutionStatus.COMPLETED],
            failed=by_status[ExecutionStatus.FAILED],
            skipped=by_status[ExecutionStatus.SKIPPED],
            pending=by_status[ExecutionStatus.PENDING] + by_status[ExecutionStatus.RUNNING],
            candidates_affected=len(
                {
                    execution.candidate_id
                    for execution in executions
                    if execution.status is not ExecutionStatus.SKIPPED
                }
            ),
            last_executed_at=max(
                (execution.started_at for execution in executions), default=None
            ),
            action_failures=dict(failures),
        )

    def register_many(self, workflows: Iterable[Workflow]) -> list[str]:
        return [self.register_workflow(workflow) for workflow in workflows]
