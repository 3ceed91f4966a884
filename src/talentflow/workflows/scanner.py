"""Periodic scan that turns elapsed time into activity events.

Time-based rules (no activity, days in stage, SLA state) have no user action to
react to, so the scanner writes marker activities and feeds them through the
normal evaluation path. Each marker is written once per threshold and per
anchor (the last real activity, or the stage entry), so repeated scans never
fire a rule twice for the same situation.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from threading import Event

from talentflow.activity.log import ActivityLog, build_activity
from talentflow.contracts.activities import (
    Activity,
    ActivityPayload,
    DaysInStageReachedPayload,
    NoActivityDetectedPayload,
    SLAStatusChangedPayload,
)
from talentflow.contracts.models import Candidate, Process
from talentflow.contracts.types import CandidateStatus, SLAState
from talentflow.contracts.workflows import (
    DaysInStageTrigger,
    NoActivityTrigger,
    Workflow,
    WorkflowExecution,
)
from talentflow.pipeline.sla import sla_status
from talentflow.settings import Settings
from talentflow.store.repository import Repository

logger = logging.getLogger(__name__)

SCANNER_ACTOR = "system:scanner"


@dataclass(slots=True)
class ScanReport:
    scanned_at: datetime
    markers: list[Activity] = field(default_factory=list)
    executions: list[WorkflowExecution] = field(default_factory=list)


@dataclass(slots=True)
class TimeTriggerScanner:
    candidates: Repository[Candidate]
    processes: Repository[Process]
    workflows: Repository[Workflow]
    log: ActivityLog
    emit: Callable[[Activity], list[WorkflowExecution]]
    settings: Settings
    clock: Callable[[], datetime]
    logger: logging.Logger = field(default_factory=lambda: logger)

    def scan(self, now: datetime | None = None) -> ScanReport:
        now = now or self.clock()
        report = ScanReport(scanned_at=now)
        active = [workflow for workflow in self.workflows.all() if workflow.is_active]
        idle_thresholds = sorted(
            {w.trigger.days for w in active if isinstance(w.trigger, NoActivityTrigger)}
        )
        stage_thresholds = sorted(
            {w.trigger.days for w in active if isinstance(w.trigger, DaysInStageTrigger)}
        )

        for candidate in self.candidates.all():
            if candidate.status is CandidateStatus.ARCHIVED:
                continue
            history = self.log.for_candidate(candidate.id)
            markers = [entry for entry in history if entry.is_marker]
            for payload in self._idle_markers(candidate, history, idle_thresholds, now):
                if not self._already_marked(markers, payload):
                    self._record(report, candidate.id, payload, now)
            for payload in self._stage_markers(candidate, stage_thresholds, now):
                if not self._already_marked(markers, payload):
                    self._record(report, candidate.id, payload, now)

        self.logger.info(
            "scanner.completed",
            extra={
                "extra": {
                    "markers": len(report.markers),
                    "executions": len(report.executions),
                    "scanned_at": now.isoformat(),
                }
            },
        )
        return report

    def run(self, stop_event: Event) -> None:
        self.logger.info("scanner.started")
        while not stop_event.is_set():
            try:
                self.scan()
            except Exception:  # noqa: BLE001
                self.logger.exception("scanner.scan_failed")
            stop_event.wait(self.settings.scan_interval_seconds)
        self.logger.info("scanner.stopped")

    def _idle_markers(
        self,
        candidate: Candidate,
        history: list[Activity],
        thresholds: list[int],
        now: datetime,
    ) -> list[ActivityPayload]:
        if not thresholds:
            return []
        real = [entry for entry in history if not entry.is_marker]
        last = real[-1] if real else None
        last_at = last.timestamp if last is not None else candidate.created_at
        idle = now - last_at
        return [
            NoActivityDetectedPayload(
                days=days,
                last_activity_id=last.id if last is not None else None,
                last_activity_at=last_at,
            )
            for days in thresholds
            if idle >= timedelta(days=days)
        ]

    def _stage_markers(
        self, candidate: Candidate, thresholds: list[int], now: datetime
    ) -> list[ActivityPayload]:
        payloads: list[ActivityPayload] = []
        for membership in candidate.memberships:
            process = self.processes.find(membership.process_id)
            if process is None:
                continue
            in_stage = now - membership.entered_stage_at
            for days in thresholds:
                if in_stage >= timedelta(days=days):
                    payloads.append(
                        DaysInStageReachedPayload(
                            process_id=process.id,
                            stage_id=membership.stage_id,
                            days=days,
                            entered_stage_at=membership.entered_stage_at,
                        )
                    )
            stage = process.stage(membership.stage_id)
            if stage is None or stage.sla_hours is None:
                continue
            state = sla_status(
                membership.entered_stage_at, now, stage.sla_hours, self.settings.sla_warning_ratio
            )
            if state is not SLAState.ON_TRACK:
                payloads.append(
                    SLAStatusChangedPayload(
                        process_id=process.id,
                        stage_id=membership.stage_id,
                        state=state,
                        entered_stage_at=membership.entered_stage_at,
                    )
                )
        return payloads

    @staticmethod
    def _already_marked(markers: list[Activity], payload: ActivityPayload) -> bool:
        return any(marker.payload == payload for marker in markers)

    def _record(
        self, report: ScanReport, candidate_id: str, payload: ActivityPayload, now: datetime
    ) -> None:
        activity = build_activity(candidate_id, payload, actor_id=SCANNER_ACTOR, timestamp=now)
        report.markers.append(activity)
        report.executions.extend(self.emit(activity))
        self.logger.info(
            "scanner.marker",
            extra={"extra": {"candidate_id": candidate_id, "type": activity.type.value}},
        )
