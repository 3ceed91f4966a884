"""Scenario runner for talentflow demos."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from talentflow.activity.event_bus import ActivityEvent
from talentflow.activity.recorder import RecordingEventBus
from talentflow.contracts.activities import Activity
from talentflow.contracts.models import ProcessMetrics
from talentflow.contracts.types import CandidateStatus, ProcessStatus
from talentflow.contracts.workflows import WorkflowExecution
from talentflow.demo.fixtures import ScenarioClock, ScenarioFixtures
from talentflow.observability.logging import configure_logging
from talentflow.observability.metrics import start_metrics_server
from talentflow.observability.telemetry import DISABLE_ENV, setup_tracing
from talentflow.service import PipelineService
from talentflow.settings import Settings
from talentflow.workflows.actions import LoggingNotifier


@dataclass(slots=True)
class ScenarioResult:
    """Result from running a scenario."""

    candidate_id: str
    activities: list[Activity]
    executions: list[WorkflowExecution]
    events: list[ActivityEvent]
    metrics: ProcessMetrics | None = None


def run_scenario(
    fixtures: ScenarioFixtures,
    workflows_path: Path | None = None,
    *,
    start_metrics: bool = False,
    enable_tracing: bool = False,
) -> ScenarioResult:
    """Run a scenario end-to-end on an in-memory store and event bus."""
    configure_logging("WARNING")
    if not enable_tracing:
        os.environ[DISABLE_ENV] = "1"
    setup_tracing("talentflow-demo")
    if start_metrics:
        start_metrics_server()

    clock = ScenarioClock()
    bus = RecordingEventBus()
    service = PipelineService(
        settings=Settings(),
        bus=bus,
        notifier=LoggingNotifier(),
        clock=clock,
    )
    try:
        service.load_workflows(workflows_path)

        person = fixtures.candidate
        candidate = service.create_candidate(
            person.first_name, person.last_name, person.email, source=person.source, tags=person.tags
        )
        process_id: str | None = None
        if fixtures.with_process:
            process = service.create_process("Backend Engineer", client="Acme")
            service.change_process_status(process.id, ProcessStatus.ACTIVE, "demo")
            service.add_candidate_to_process(process.id, candidate.id, actor_id="demo")
            process_id = process.id

        service.request_transition(candidate.id, CandidateStatus.CONTACTED, "recruiter-1")
        service.run_pending()

        if fixtures.advance_days:
            clock.advance(days=fixtures.advance_days)
            service.scan()
            service.run_pending()

        return ScenarioResult(
            candidate_id=candidate.id,
            activities=service.activities_for(candidate.id),
            executions=service.executions_for(candidate_id=candidate.id),
            events=bus.events,
            metrics=service.process_metrics(process_id) if process_id else None,
        )
    finally:
        service.close()


def format_feed(activities: list[Activity]) -> list[str]:
    lines = []
    for entry in activities:
        details = entry.payload.model_dump(mode="json", exclude={"kind"})
        lines.append(
            f"{entry.sequence:>3} {entry.timestamp:%Y-%m-%d %H:%M} "
            f"{entry.type.value:<22} {entry.actor_id:<28} {details}"
        )
    return lines
