from datetime import datetime, timedelta, timezone

import pytest

from talentflow.activity.log import build_activity
from talentflow.contracts.activities import (
    InterviewPayload,
    NoActivityDetectedPayload,
    ScoreUpdatedPayload,
    StatusChangePayload,
    TagChangePayload,
    WorkflowTriggeredPayload,
)
from talentflow.contracts.models import Candidate
from talentflow.contracts.types import CandidateStatus, ExperienceLevel
from talentflow.contracts.workflows import (
    ActionCondition,
    InterviewTrigger,
    ManualTrigger,
    NoActivityTrigger,
    ScoreThresholdTrigger,
    StatusChangedTrigger,
    TagAction,
    TagTrigger,
    Workflow,
)
from talentflow.workflows.triggers import anchor_time, condition_allows, workflow_matches

NOW = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def _candidate(**fields) -> Candidate:
    base = {"id": "c1", "first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com"}
    base.update(fields)
    return Candidate(**base)


def _rule(trigger, workflow_id: str = "wf-1") -> Workflow:
    return Workflow(
        id=workflow_id,
        name="rule",
        trigger=trigger,
        actions=[TagAction(type="add_tag", tag="x")],
    )


def _event(payload):
    return build_activity("c1", payload, actor_id="user-1", timestamp=NOW)


def _status(from_status: str, to_status: str):
    return _event(StatusChangePayload(from_status=from_status, to_status=to_status))


def test_status_trigger_accepts_scalar_or_list() -> None:
    scalar = _rule(StatusChangedTrigger(to_status="contacted"))
    listed = _rule(StatusChangedTrigger(to_status=["contacted", "screening"]))
    event = _status("new", "contacted")
    assert workflow_matches(scalar, event, _candidate())
    assert workflow_matches(listed, event, _candidate())
    assert not workflow_matches(scalar, _status("contacted", "screening"), _candidate())


def test_status_trigger_from_filter() -> None:
    rule = _rule(StatusChangedTrigger(from_status="on_hold", to_status="contacted"))
    assert workflow_matches(rule, _status("on_hold", "contacted"), _candidate())
    assert not workflow_matches(rule, _status("new", "contacted"), _candidate())


def test_any_status_change_matches_unfiltered_trigger() -> None:
    rule = _rule(StatusChangedTrigger())
    assert workflow_matches(rule, _status("screening", "rejected"), _candidate())


def test_trigger_type_must_match_exactly() -> None:
    rule = _rule(StatusChangedTrigger())
    tagged = _event(TagChangePayload(kind="tag_added", tag="vip"))
    assert not workflow_matches(rule, tagged, _candidate())


def test_tag_triggers() -> None:
    added = _rule(TagTrigger(type="tag_added", tag="vip"))
    any_of = _rule(TagTrigger(type="tag_added", any_of=["vip", "referral"]))
    removed = _rule(TagTrigger(type="tag_removed", tag="vip"))

    vip_added = _event(TagChangePayload(kind="tag_added", tag="vip"))
    referral_added = _event(TagChangePayload(kind="tag_added", tag="referral"))
    vip_removed = _event(TagChangePayload(kind="tag_removed", tag="vip"))

    assert workflow_matches(added, vip_added, _candidate())
    assert not workflow_matches(added, referral_added, _candidate())
    assert workflow_matches(any_of, referral_added, _candidate())
    assert not workflow_matches(added, vip_removed, _candidate())
    assert workflow_matches(removed, vip_removed, _candidate())


def test_candidate_filters() -> None:
    rule = _rule(
        StatusChangedTrigger(
            to_status="contacted",
            source="referral",
            experience_level=["senior", "lead"],
            tags=["python", "remote"],
        )
    )
    event = _status("new", "contacted")
    match = _candidate(
        source="referral", experience_level=ExperienceLevel.SENIOR, tags=["python", "remote", "vip"]
    )
    assert workflow_matches(rule, event, match)
    assert not workflow_matches(rule, event, match.model_copy(update={"source": "linkedin"}))
    assert not workflow_matches(
        rule, event, match.model_copy(update={"experience_level": ExperienceLevel.JUNIOR})
    )
    assert not workflow_matches(rule, event, match.model_copy(update={"tags": ["python"]}))


def test_score_threshold_bounds() -> None:
    rule = _rule(ScoreThresholdTrigger(min_score=4.0, max_score=4.8))

    def scored(score: float, score_type: str = "overall"):
        return _event(ScoreUpdatedPayload(score_type=score_type, score=score))

    assert workflow_matches(rule, scored(4.0), _candidate())
    assert workflow_matches(rule, scored(4.8), _candidate())
    assert not workflow_matches(rule, scored(3.9), _candidate())
    assert not workflow_matches(rule, scored(4.9), _candidate())
    assert not workflow_matches(rule, scored(4.5, "technical"), _candidate())


def test_score_threshold_needs_a_bound() -> None:
    with pytest.raises(ValueError):
        ScoreThresholdTrigger()
    with pytest.raises(ValueError):
        ScoreThresholdTrigger(min_score=5, max_score=1)


def test_manual_trigger_matches_own_id_only() -> None:
    rule = _rule(ManualTrigger(), workflow_id="wf-manual")
    assert workflow_matches(rule, _event(WorkflowTriggeredPayload(workflow_id="wf-manual")), _candidate())
    assert not workflow_matches(rule, _event(WorkflowTriggeredPayload(workflow_id="other")), _candidate())


def test_interview_trigger_type_filter() -> None:
    rule = _rule(InterviewTrigger(type="interview_scheduled", interview_type="onsite"))
    onsite = _event(
        InterviewPayload(
            kind="interview_scheduled", interview_id="i1", interview_type="onsite", scheduled_at=NOW
        )
    )
    video = _event(
        InterviewPayload(
            kind="interview_scheduled", interview_id="i2", interview_type="video", scheduled_at=NOW
        )
    )
    assert workflow_matches(rule, onsite, _candidate())
    assert not workflow_matches(rule, video, _candidate())


def test_no_activity_trigger_matches_its_threshold() -> None:
    rule = _rule(NoActivityTrigger(days=7))
    seven = _event(NoActivityDetectedPayload(days=7, last_activity_at=NOW))
    three = _event(NoActivityDetectedPayload(days=3, last_activity_at=NOW))
    assert workflow_matches(rule, seven, _candidate())
    assert not workflow_matches(rule, three, _candidate())


def test_condition_allows() -> None:
    candidate = _candidate(tags=["python"], status=CandidateStatus.SCREENING)
    assert condition_allows(None, candidate)
    assert condition_allows(ActionCondition(has_tag="python"), candidate)
    assert not condition_allows(ActionCondition(has_tag="java"), candidate)
    assert not condition_allows(ActionCondition(lacks_tag="python"), candidate)
    assert condition_allows(ActionCondition(status_in="screening"), candidate)
    assert not condition_allows(ActionCondition(status_in=["new", "contacted"]), candidate)


def test_anchor_time_uses_interview_slot() -> None:
    slot = NOW + timedelta(days=3)
    interview = _event(
        InterviewPayload(
            kind="interview_scheduled", interview_id="i1", interview_type="video", scheduled_at=slot
        )
    )
    assert anchor_time(interview, fired_at=NOW) == slot
    assert anchor_time(_status("new", "contacted"), fired_at=NOW) == NOW
