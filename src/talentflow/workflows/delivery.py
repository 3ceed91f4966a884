"""Durable, at-least-once delivery of workflow actions.

Executions are the durable record: every action result carries the time it is
due and the number of attempts made, and the execution is saved after each
action resolves. The in-memory DeliveryQueue only says *when* to look at an
execution next; after a restart ``recover`` rebuilds it from the store.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import heapq
import logging
from threading import Event, Lock

from talentflow.contracts.types import ActionResultStatus, ExecutionStatus
from talentflow.contracts.workflows import ActionResult, WorkflowExecution
from talentflow.errors import ActionFailed, Conflict, NotFound
from talentflow.observability.metrics import ACTION_DURATION, WORKFLOW_EXECUTIONS
from talentflow.observability.telemetry import traced
from talentflow.pipeline.state_machine import EXECUTION_STATUS_FLOW
from talentflow.settings import FailurePolicy, Settings
from talentflow.store.repository import Repository
from talentflow.workflows.actions import ActionContext, ActionExecutor, CandidateOperations
from talentflow.workflows.triggers import condition_allows

logger = logging.getLogger(__name__)

CONDITION_NOT_MET = "condition not met"


class DeliveryQueue:
    """Time-ordered queue holding at most one entry per execution."""

    def __init__(self) -> None:
        self._heap: list[tuple[datetime, int, str]] = []
        self._due: dict[str, datetime] = {}
        self._counter = 0
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._due)

    def __contains__(self, execution_id: object) -> bool:
        with self._lock:
            return execution_id in self._due

    def push(self, execution_id: str, due_at: datetime) -> None:
        """Schedule an execution, keeping the earliest due time on re-push."""
        with self._lock:
            current = self._due.get(execution_id)
            if current is not None and current <= due_at:
                return
            self._due[execution_id] = due_at
            self._counter += 1
            heapq.heappush(self._heap, (due_at, self._counter, execution_id))

    def discard(self, execution_id: str) -> None:
        with self._lock:
            self._due.pop(execution_id, None)

    def pop_due(self, now: datetime) -> str | None:
        with self._lock:
            while self._heap:
                due_at, _, execution_id = self._heap[0]
                if self._due.get(execution_id) != due_at:
                    # superseded or discarded entry
                    heapq.heappop(self._heap)
                    continue
                if due_at > now:
                    return None
                heapq.heappop(self._heap)
                del self._due[execution_id]
                return execution_id
            return None

    def next_due(self) -> datetime | None:
        with self._lock:
            return min(self._due.values(), default=None)


@dataclass(slots=True)
class ActionDispatcher:
    """Advances executions one action at a time."""

    executions: Repository[WorkflowExecution]
    executor: ActionExecutor
    operations: CandidateOperations
    settings: Settings
    clock: Callable[[], datetime]
    queue: DeliveryQueue = field(default_factory=DeliveryQueue)
    logger: logging.Logger = field(default_factory=lambda: logger)
    _drain_lock: Lock = field(default_factory=Lock)

    def schedule(self, execution_id: str, due_at: datetime) -> None:
        self.queue.push(execution_id, due_at)

    def cancel(self, execution_id: str) -> None:
        self.queue.discard(execution_id)

    def recover(self) -> int:
        """Re-enqueue every execution that has not reached a terminal state."""
        count = 0
        unfinished = self.executions.where(status=ExecutionStatus.PENDING.value)
        unfinished += self.executions.where(status=ExecutionStatus.RUNNING.value)
        for execution in unfinished:
            pending = execution.next_result()
            due_at = pending.scheduled_for if pending and pending.scheduled_for else self.clock()
            self.schedule(execution.id, due_at)
            count += 1
        self.logger.info("dispatcher.recovered", extra={"extra": {"executions": count}})
        return count

    def run_due(self, now: datetime | None = None) -> list[WorkflowExecution]:
        """Process every execution due at `now`, including ones scheduled meanwhile."""
        now = now or self.clock()
        processed: list[WorkflowExecution] = []
        with self._drain_lock:
            while True:
                execution_id = self.queue.pop_due(now)
                if execution_id is None:
                    break
                result = self.process(execution_id, now)
                if result is not None:
                    processed.append(result)
        return processed

    def run(self, stop_event: Event) -> None:
        """Worker loop: drain due executions until `stop_event` is set."""
        self.logger.info("dispatcher.started")
        while not stop_event.is_set():
            try:
                self.run_due()
            except Exception:  # noqa: BLE001
                self.logger.exception("dispatcher.drain_failed")
            stop_event.wait(self.settings.dispatch_poll_seconds)
        self.logger.info("dispatcher.stopped")

    def process(self, execution_id: str, now: datetime) -> WorkflowExecution | None:
        execution = self.executions.find(execution_id)
        if execution is None or execution.is_terminal:
            return None
        try:
            with traced(
                __name__,
                "workflow.execution",
                execution__id=execution.id,
                workflow__id=execution.workflow_id,
            ):
                return self._advance(execution, now)
        except Conflict:
            # someone else (revoke or a concurrent worker) moved it first
            self.logger.warning(
                "dispatcher.execution_conflict",
                extra={"extra": {"execution_id": execution_id}},
            )
            return self.executions.find(execution_id)

    def _set_status(
        self, execution: WorkflowExecution, status: ExecutionStatus
    ) -> WorkflowExecution:
        EXECUTION_STATUS_FLOW.check(execution.status, status)
        return execution.model_copy(update={"status": status})

    def _advance(self, execution: WorkflowExecution, now: datetime) -> WorkflowExecution:
        if execution.status is ExecutionStatus.PENDING:
            execution = self.executions.save(self._set_status(execution, ExecutionStatus.RUNNING))

        while True:
            result = execution.next_result()
            if result is None:
                return self._finish(execution, now)
            if result.scheduled_for is not None and result.scheduled_for > now:
                waiting = self._set_status(execution, ExecutionStatus.PENDING)
                execution = self.executions.save(waiting)
                self.schedule(execution.id, result.scheduled_for)
                return execution

            updated, retry_at = self._attempt(execution, result, now)
            execution = self._replace_result(execution, updated)
            if retry_at is not None:
                execution = self._set_status(execution, ExecutionStatus.PENDING)
                execution = self.executions.save(execution)
                self.schedule(execution.id, retry_at)
                return execution

            if (
                updated.status is ActionResultStatus.FAILED
                and self.settings.failure_policy is FailurePolicy.STOP
            ):
                execution = self._skip_remaining(execution, "previous action failed")
            execution = self.executions.save(execution)

    def _attempt(
        self, execution: WorkflowExecution, result: ActionResult, now: datetime
    ) -> tuple[ActionResult, datetime | None]:
        """Run one attempt; returns the updated result and a retry time if one is due."""
        action = execution.workflow.actions[result.action_index]

        if execution.workflow.test_mode:
            return result.model_copy(
                update={"status": ActionResultStatus.SKIPPED, "message": "test mode"}
            ), None

        try:
            candidate = self.operations.get_candidate(execution.candidate_id)
        except NotFound as exc:
            return result.model_copy(
                update={"status": ActionResultStatus.FAILED, "error": str(exc)}
            ), None

        if not condition_allows(action.when, candidate):
            return result.model_copy(
                update={"status": ActionResultStatus.SKIPPED, "message": CONDITION_NOT_MET}
            ), None

        attempts = result.attempts + 1
        ctx = ActionContext(
            execution=execution, candidate=candidate, now=now, action_index=result.action_index
        )
        try:
            with ACTION_DURATION.labels(action_type=result.action_type.value).time():
                outcome = self.executor.execute(action, ctx)
        except ActionFailed as exc:
            if exc.transient and attempts < self.settings.max_action_attempts:
                retry_at = now + timedelta(
                    seconds=self.settings.retry_backoff_seconds * 2 ** (attempts - 1)
                )
                self.logger.warning(
                    "dispatcher.action_retry",
                    extra={
                        "extra": {
                            "execution_id": execution.id,
                            "action_index": result.action_index,
                            "attempts": attempts,
                            "retry_at": retry_at.isoformat(),
                            "error": str(exc),
                        }
                    },
                )
                return result.model_copy(
                    update={"attempts": attempts, "scheduled_for": retry_at, "error": str(exc)}
                ), retry_at
            return self._failed(execution, result, attempts, str(exc)), None
        except Exception as exc:  # noqa: BLE001
            self.logger.exception(
                "dispatcher.action_crashed",
                extra={"extra": {"execution_id": execution.id, "action_index": result.action_index}},
            )
            return self._failed(execution, result, attempts, f"{type(exc).__name__}: {exc}"), None

        return result.model_copy(
            update={
                "status": ActionResultStatus.SUCCESS,
                "attempts": attempts,
                "message": outcome.message,
                "metadata": outcome.metadata,
                "error": None,
            }
        ), None

    def _failed(
        self, execution: WorkflowExecution, result: ActionResult, attempts: int, error: str
    ) -> ActionResult:
        self.logger.warning(
            "dispatcher.action_failed",
            extra={
                "extra": {
                    "execution_id": execution.id,
                    "action_index": result.action_index,
                    "attempts": attempts,
                    "error": error,
                }
            },
        )
        return result.model_copy(
            update={"status": ActionResultStatus.FAILED, "attempts": attempts, "error": error}
        )

    @staticmethod
    def _replace_result(execution: WorkflowExecution, result: ActionResult) -> WorkflowExecution:
        results = list(execution.results)
        results[result.action_index] = result
        return execution.model_copy(update={"results": results})

    @staticmethod
    def _skip_remaining(execution: WorkflowExecution, reason: str) -> WorkflowExecution:
        results = [
            result
            if result.resolved
            else result.model_copy(update={"status": ActionResultStatus.SKIPPED, "message": reason})
            for result in execution.results
        ]
        return execution.model_copy(update={"results": results})

    def _finish(self, execution: WorkflowExecution, now: datetime) -> WorkflowExecution:
        ran = [
            result
            for result in execution.results
            if result.status in (ActionResultStatus.SUCCESS, ActionResultStatus.FAILED)
        ]
        guarded = not ran and any(
            result.message == CONDITION_NOT_MET for result in execution.results
        )
        if guarded:
            final = ExecutionStatus.SKIPPED
        elif ran and ran[-1].status is ActionResultStatus.FAILED:
            final = ExecutionStatus.FAILED
        else:
            final = ExecutionStatus.COMPLETED
        errors = [result.error for result in execution.results if result.status is ActionResultStatus.FAILED]
        execution = self._set_status(execution, final).model_copy(
            update={
                "completed_at": now,
                "error": "; ".join(error for error in errors if error) or None,
                "skip_reason": CONDITION_NOT_MET if guarded else None,
            }
        )
        execution = self.executions.save(execution)
        WORKFLOW_EXECUTIONS.labels(status=final.value).inc()
        self.logger.info(
            "dispatcher.execution_finished",
            extra={
                "extra": {
                    "execution_id": execution.id,
                    "workflow_id": execution.workflow_id,
                    "candidate_id": execution.candidate_id,
                    "status": final.value,
                }
            },
        )
        return execution
