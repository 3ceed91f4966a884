"""Trigger matching against activity events."""

from __future__ import annotations

from datetime import datetime

from talentflow.contracts.activities import (
    Activity,
    DaysInStageReachedPayload,
    InterviewPayload,
    NoActivityDetectedPayload,
    ScoreUpdatedPayload,
    StatusChangePayload,
    TagChangePayload,
    WorkflowTriggeredPayload,
)
from talentflow.contracts.models import Candidate
from talentflow.contracts.workflows import (
    ActionCondition,
    DaysInStageTrigger,
    InterviewTrigger,
    ManualTrigger,
    NoActivityTrigger,
    ScoreThresholdTrigger,
    StatusChangedTrigger,
    TagTrigger,
    Workflow,
)


def candidate_passes_filters(workflow: Workflow, candidate: Candidate) -> bool:
    trigger = workflow.trigger
    if trigger.source is not None and candidate.source not in trigger.source:
        return False
    if trigger.experience_level is not None and (
        candidate.experience_level not in trigger.experience_level
    ):
        return False
    if trigger.tags is not None and not set(trigger.tags).issubset(candidate.tags):
        return False
    return True


def _event_matches(workflow: Workflow, activity: Activity) -> bool:
    trigger = workflow.trigger
    payload = activity.payload

    if isinstance(trigger, StatusChangedTrigger):
        if not isinstance(payload, StatusChangePayload):
            return False
        if trigger.to_status is not None and payload.to_status not in trigger.to_status:
            return False
        if trigger.from_status is not None and payload.from_status not in trigger.from_status:
            return False
        return True

    if isinstance(trigger, TagTrigger):
        if not isinstance(payload, TagChangePayload) or payload.kind != trigger.type:
            return False
        if trigger.tag is not None and payload.tag != trigger.tag:
            return False
        if trigger.any_of is not None and payload.tag not in trigger.any_of:
            return False
        return True

    if isinstance(trigger, DaysInStageTrigger):
        if not isinstance(payload, DaysInStageReachedPayload) or payload.days != trigger.days:
            return False
        if trigger.process_id is not None and payload.process_id != trigger.process_id:
            return False
        if trigger.stage_id is not None and payload.stage_id != trigger.stage_id:
            return False
        return True

    if isinstance(trigger, NoActivityTrigger):
        return isinstance(payload, NoActivityDetectedPayload) and payload.days == trigger.days

    if isinstance(trigger, InterviewTrigger):
        if not isinstance(payload, InterviewPayload) or payload.kind != trigger.type:
            return False
        return trigger.interview_type is None or payload.interview_type == trigger.interview_type

    if isinstance(trigger, ScoreThresholdTrigger):
        if not isinstance(payload, ScoreUpdatedPayload) or payload.score_type != trigger.score_type:
            return False
        if trigger.min_score is not None and payload.score < trigger.min_score:
            return False
        if trigger.max_score is not None and payload.score > trigger.max_score:
            return False
        return True

    if isinstance(trigger, ManualTrigger):
        return isinstance(payload, WorkflowTriggeredPayload) and payload.workflow_id == workflow.id

    return False


def workflow_matches(workflow: Workflow, activity: Activity, candidate: Candidate) -> bool:
    """Exact match on the trigger discriminant, then the candidate filters."""
    return _event_matches(workflow, activity) and candidate_passes_filters(workflow, candidate)


def condition_allows(condition: ActionCondition | None, candidate: Candidate) -> bool:
    if condition is None:
        return True
    if condition.has_tag is not None and condition.has_tag not in candidate.tags:
        return False
    if condition.lacks_tag is not None and condition.lacks_tag in candidate.tags:
        return False
    if condition.status_in is not None and candidate.status not in condition.status_in:
        return False
    return True


def anchor_time(activity: Activity, *, fired_at: datetime) -> datetime:
    """Time action delays are measured from: the interview slot, else the fire time."""
    if isinstance(activity.payload, InterviewPayload):
        return activity.payload.scheduled_at
    return fired_at
