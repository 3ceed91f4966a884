"""Tests for individual action handlers run through the dispatcher."""

from __future__ import annotations

from datetime import timedelta
import json

import httpx
import pytest

from talentflow.contracts.types import ActionResultStatus, ActivityType, ExecutionStatus, TaskPriority
from talentflow.contracts.workflows import (
    AddNoteAction,
    AssignUserAction,
    CallWebhookAction,
    CreateTaskAction,
    SendEmailAction,
    SendNotificationAction,
    TagAction,
    TagTrigger,
    Workflow,
)
from talentflow.errors import ActionFailed
from talentflow.service import PipelineService
from talentflow.settings import Settings
from talentflow.workflows.rendering import render


def _on_tag(tag: str, *actions) -> Workflow:
    return Workflow(
        name=f"On {tag}",
        trigger=TagTrigger(type="tag_added", tag=tag),
        actions=list(actions),
    )


def _run(service, candidate_id: str, tag: str = "go"):
    service.add_tag(candidate_id, tag)
    [execution] = service.run_pending()
    return execution


def test_round_robin_assignment_rotates(service) -> None:
    service.register_workflow(
        _on_tag("route", AssignUserAction(strategy="round_robin", user_pool=["u1", "u2"]))
    )
    people = [
        service.create_candidate(f"C{index}", "Test", f"c{index}@example.com")
        for index in range(3)
    ]
    for person in people:
        service.add_tag(person.id, "route")
    service.run_pending()
    assigned = [service.get_candidate(person.id).assigned_to for person in people]
    assert assigned == ["u1", "u2", "u1"]


def test_least_loaded_assignment(service) -> None:
    service.register_workflow(
        _on_tag("route", AssignUserAction(strategy="least_loaded", user_pool=["u1", "u2"]))
    )
    busy = service.create_candidate("Busy", "One", "busy@example.com")
    service.assign_user(busy.id, "u1")
    closed = service.create_candidate("Closed", "One", "closed@example.com")
    service.assign_user(closed.id, "u2")
    service.request_transition(closed.id, "rejected", "r1")

    first = service.create_candidate("First", "Two", "first@example.com")
    service.add_tag(first.id, "route")
    service.run_pending()
    assert service.get_candidate(first.id).assigned_to == "u2"

    second = service.create_candidate("Second", "Three", "second@example.com")
    service.add_tag(second.id, "route")
    service.run_pending()
    # one open candidate each, tie goes to the first user in the pool
    assert service.get_candidate(second.id).assigned_to == "u1"


def test_specific_user_assignment_is_recorded(service, candidate) -> None:
    service.register_workflow(_on_tag("go", AssignUserAction(user_id="recruiter-9")))
    execution = _run(service, candidate.id)
    assert execution.results[0].metadata["user_id"] == "recruiter-9"
    [change] = service.activities_for(candidate.id, [ActivityType.ASSIGNMENT_CHANGED])
    assert change.payload.to_user == "recruiter-9"
    assert change.correlation_id == execution.id


def test_create_task_renders_title_and_due_date(service, candidate, clock) -> None:
    service.register_workflow(
        _on_tag(
            "go",
            CreateTaskAction(
                title="Call {{ first_name }}",
                description="Status is {{ status }}",
                due_in_days=3,
                priority=TaskPriority.HIGH,
            ),
        )
    )
    execution = _run(service, candidate.id)
    [task] = service.tasks_for(candidate.id)
    assert task.id == f"{execution.id}:0"
    assert task.title == "Call Ada"
    assert task.description == "Status is new"
    assert task.due_at == clock() + timedelta(days=3)
    assert task.assigned_to == "unassigned"
    assert task.priority is TaskPriority.HIGH
    assert task.workflow_id == execution.workflow_id
    [created] = service.activities_for(candidate.id, [ActivityType.TASK_CREATED])
    assert created.payload.task_id == task.id


def test_email_renders_subject_and_body(service, candidate, notifier) -> None:
    service.register_workflow(
        _on_tag(
            "go",
            SendEmailAction(
                subject="Hi {{ first_name }}",
                body="{{ full_name }} is {{ status }}",
            ),
        )
    )
    execution = _run(service, candidate.id)
    assert execution.status is ExecutionStatus.COMPLETED
    [sent] = notifier.sent
    assert sent == {
        "channel": "email",
        "to": "ada@example.com",
        "subject": "Hi Ada",
        "body": "Ada Lovelace is new",
    }
    [activity] = service.activities_for(candidate.id, [ActivityType.EMAIL_SENT])
    assert activity.payload.subject == "Hi Ada"


def test_invalid_custom_recipient_fails(service, candidate, notifier) -> None:
    service.register_workflow(
        _on_tag("go", SendEmailAction(to="custom", recipient="not-an-email", subject="Hi"))
    )
    execution = _run(service, candidate.id)
    assert execution.status is ExecutionStatus.FAILED
    assert "invalid email recipient" in (execution.results[0].error or "")
    assert notifier.sent == []


def test_email_to_unassigned_user_fails(service, candidate) -> None:
    service.register_workflow(_on_tag("go", SendEmailAction(to="assigned_user", subject="Hi")))
    execution = _run(service, candidate.id)
    assert execution.results[0].status is ActionResultStatus.FAILED
    assert execution.results[0].error == "candidate has no assigned user"


def test_unknown_email_template_fails(service, candidate) -> None:
    service.register_workflow(_on_tag("go", SendEmailAction(template_id="missing")))
    execution = _run(service, candidate.id)
    assert "unknown email template" in (execution.results[0].error or "")


def test_broken_template_fails(service, candidate) -> None:
    service.register_workflow(_on_tag("go", SendEmailAction(subject="Hi {{ first_name ")))
    execution = _run(service, candidate.id)
    assert "template error" in (execution.results[0].error or "")


def test_misspelled_template_variable_fails(service, candidate, notifier) -> None:
    with pytest.raises(ActionFailed, match="frist_name"):
        render("Hi {{ frist_name }}!", {"first_name": "Ada"})

    service.register_workflow(_on_tag("go", SendNotificationAction(message="Hi {{ frist_name }}")))
    execution = _run(service, candidate.id)
    assert execution.status is ExecutionStatus.FAILED
    assert "template error" in (execution.results[0].error or "")
    assert notifier.sent == []


def test_notification_defaults_to_assigned_user(service, candidate, notifier) -> None:
    service.assign_user(candidate.id, "recruiter-3")
    service.register_workflow(_on_tag("go", SendNotificationAction(message="{{ full_name }} tagged")))
    _run(service, candidate.id)
    assert notifier.sent == [
        {"channel": "notification", "to": ["recruiter-3"], "message": "Ada Lovelace tagged"}
    ]


def test_add_note_and_remove_tag(service, candidate) -> None:
    service.add_tag(candidate.id, "stale")
    service.register_workflow(
        _on_tag(
            "go",
            AddNoteAction(content="Auto note for {{ first_name }}", is_private=True),
            TagAction(type="remove_tag", tag="stale"),
            TagAction(type="remove_tag", tag="never-there"),
        )
    )
    execution = _run(service, candidate.id)
    assert [result.status for result in execution.results] == [ActionResultStatus.SUCCESS] * 3
    assert execution.results[2].message == "tag 'never-there' not present"
    assert service.get_candidate(candidate.id).tags == ["go"]
    [note] = service.activities_for(candidate.id, [ActivityType.NOTE_ADDED])
    assert note.payload.content == "Auto note for Ada"
    assert note.payload.is_private


def test_webhook_request_shape(store, clock, notifier) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    service = PipelineService(
        store,
        settings=Settings(),
        notifier=notifier,
        http=httpx.Client(transport=httpx.MockTransport(handler)),
        clock=clock,
    )
    created = service.create_candidate("Ada", "Lovelace", "ada@example.com")
    service.register_workflow(
        _on_tag(
            "go",
            CallWebhookAction(
                url="https://hooks.example.com/ats",
                method="PUT",
                headers={"X-Source": "talentflow"},
                payload={"pipeline": "backend"},
            ),
            CallWebhookAction(url="https://hooks.example.com/ping", method="GET"),
        )
    )
    execution = _run(service, created.id)
    assert execution.status is ExecutionStatus.COMPLETED

    put, get = seen
    assert put.method == "PUT"
    assert put.headers["Idempotency-Key"] == f"{execution.id}:0"
    assert put.headers["X-Source"] == "talentflow"
    body = json.loads(put.content)
    assert body["execution_id"] == execution.id
    assert body["candidate"]["email"] == "ada@example.com"
    assert body["candidate"]["tags"] == ["go"]
    assert body["pipeline"] == "backend"

    assert get.method == "GET"
    assert get.headers["Idempotency-Key"] == f"{execution.id}:1"
    assert get.url.params["candidate_id"] == created.id
    called = service.activities_for(created.id, [ActivityType.WEBHOOK_CALLED])
    assert [entry.payload.status_code for entry in called] == [202, 202]
    service.close()
