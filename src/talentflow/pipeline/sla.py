"""SLA tracking: time-in-stage health computed from timestamps, never stored."""

from __future__ import annotations

from datetime import datetime, timedelta

from talentflow.contracts.models import ProcessMembership, SLAReport, Stage
from talentflow.contracts.types import SLAState

DEFAULT_WARNING_RATIO = 0.7


def sla_status(
    entered_stage_at: datetime,
    now: datetime,
    sla_hours: float | None,
    warning_ratio: float = DEFAULT_WARNING_RATIO,
) -> SLAState:
    """Classify time spent in a stage against its SLA.

    Breached once the elapsed time exceeds the SLA; at risk from
    ``warning_ratio * sla_hours`` on. Stages without an SLA are always on track.
    """
    if sla_hours is None:
        return SLAState.ON_TRACK
    elapsed = now - entered_stage_at
    if elapsed > timedelta(hours=sla_hours):
        return SLAState.BREACHED
    if elapsed >= timedelta(hours=sla_hours * warning_ratio):
        return SLAState.AT_RISK
    return SLAState.ON_TRACK


def sla_report(
    candidate_id: str,
    membership: ProcessMembership,
    stage: Stage,
    now: datetime,
    warning_ratio: float = DEFAULT_WARNING_RATIO,
) -> SLAReport:
    hours_in_stage = (now - membership.entered_stage_at).total_seconds() / 3600
    deadline = remaining = None
    if stage.sla_hours is not None:
        deadline = membership.entered_stage_at + timedelta(hours=stage.sla_hours)
        remaining = stage.sla_hours - hours_in_stage
    return SLAReport(
        candidate_id=candidate_id,
        process_id=membership.process_id,
        stage_id=membership.stage_id,
        entered_stage_at=membership.entered_stage_at,
        hours_in_stage=round(hours_in_stage, 3),
        sla_hours=stage.sla_hours,
        remaining_hours=round(remaining, 3) if remaining is not None else None,
        deadline=deadline,
        state=sla_status(membership.entered_stage_at, now, stage.sla_hours, warning_ratio),
    )


def days_in_stage(entered_stage_at: datetime, now: datetime) -> int:
    return max(0, (now - entered_stage_at).days)
