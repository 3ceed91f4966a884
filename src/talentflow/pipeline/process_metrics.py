"""Process aggregates derived from candidate memberships."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from talentflow.contracts.models import Candidate, Process, ProcessMetrics, StageCount
from talentflow.contracts.types import SLAState
from talentflow.pipeline.sla import DEFAULT_WARNING_RATIO, sla_status


def compute_process_metrics(
    process: Process,
    candidates: Iterable[Candidate],
    now: datetime,
    warning_ratio: float = DEFAULT_WARNING_RATIO,
) -> ProcessMetrics:
    counts = {
        stage.id: StageCount(stage_id=stage.id, stage_name=stage.name, count=0)
        for stage in process.ordered_stages()
    }
    total = 0
    for candidate in candidates:
        membership = candidate.membership(process.id)
        if membership is None or membership.stage_id not in counts:
            continue
        total += 1
        entry = counts[membership.stage_id]
        entry.count += 1
        stage = process.stage(membership.stage_id)
        state = sla_status(
            membership.entered_stage_at,
            now,
            stage.sla_hours if stage else None,
            warning_ratio,
        )
        if state is SLAState.BREACHED:
            entry.breached += 1
        elif state is SLAState.AT_RISK:
            entry.at_risk += 1
        else:
            entry.on_track += 1

    by_stage = list(counts.values())
    return ProcessMetrics(
        process_id=process.id,
        total_candidates=total,
        by_stage=by_stage,
        on_track_count=sum(entry.on_track for entry in by_stage),
        at_risk_count=sum(entry.at_risk for entry in by_stage),
        overdue_count=sum(entry.breached for entry in by_stage),
        computed_at=now,
    )
