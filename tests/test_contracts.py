from datetime import datetime, timezone

from pydantic import TypeAdapter, ValidationError
import pytest

from talentflow.activity.log import build_activity
from talentflow.contracts.activities import Activity, StatusChangePayload, TagChangePayload
from talentflow.contracts.models import Candidate, Stage
from talentflow.contracts.types import ActivityType
from talentflow.contracts.workflows import (
    Action,
    AssignUserAction,
    CallWebhookAction,
    SendEmailAction,
    StatusChangedTrigger,
    Trigger,
)

NOW = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def test_candidate_tags_are_trimmed_and_deduplicated() -> None:
    candidate = Candidate(
        id="c1",
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        tags=["python", " python ", "", "remote"],
    )
    assert candidate.tags == ["python", "remote"]
    assert candidate.full_name == "Ada Lovelace"


def test_stage_sla_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Stage(id="s", name="S", order=1, sla_hours=0)


def test_activity_type_follows_payload() -> None:
    activity = build_activity(
        "c1",
        StatusChangePayload(from_status="new", to_status="contacted"),
        actor_id="user-1",
        timestamp=NOW,
    )
    assert activity.type is ActivityType.STATUS_CHANGE
    assert not activity.is_marker
    dumped = activity.model_dump(mode="json")
    assert dumped["type"] == "status_change"
    restored = Activity.model_validate(dumped)
    assert restored == activity


def test_activity_is_immutable() -> None:
    activity = build_activity(
        "c1", TagChangePayload(kind="tag_added", tag="vip"), actor_id="u", timestamp=NOW
    )
    with pytest.raises(ValidationError):
        activity.actor_id = "someone-else"


def test_trigger_union_parses_by_type() -> None:
    trigger = TypeAdapter(Trigger).validate_python(
        {"type": "status_changed", "to_status": "contacted"}
    )
    assert isinstance(trigger, StatusChangedTrigger)
    assert [status.value for status in trigger.to_status] == ["contacted"]


def test_action_union_parses_by_type() -> None:
    adapter = TypeAdapter(Action)
    webhook = adapter.validate_python({"type": "call_webhook", "url": "https://x.example.com"})
    assert isinstance(webhook, CallWebhookAction)
    assert webhook.method == "POST"
    with pytest.raises(ValidationError):
        adapter.validate_python({"type": "launch_rocket"})


def test_action_validators() -> None:
    with pytest.raises(ValidationError):
        SendEmailAction(to="custom", subject="Hi")
    with pytest.raises(ValidationError):
        SendEmailAction()
    with pytest.raises(ValidationError):
        AssignUserAction(strategy="round_robin")
    with pytest.raises(ValidationError):
        AssignUserAction(strategy="specific_user")
    with pytest.raises(ValidationError):
        CallWebhookAction(url="ftp://example.com")
