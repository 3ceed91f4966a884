"""Action handlers for workflow executions.

Every handler receives the action definition and an ActionContext and either
returns an ActionOutcome or raises ActionFailed. Side effects on candidates go
through CandidateOperations so they produce activities (and cascade) exactly
like a user-initiated change would.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
import re
from typing import Any, Protocol
from uuid import uuid4

import httpx

from talentflow.contracts.activities import (
    Activity,
    ActivityPayload,
    EmailSentPayload,
    NotificationSentPayload,
    TaskCreatedPayload,
    WebhookCalledPayload,
)
from talentflow.contracts.models import Candidate, Task
from talentflow.contracts.types import ActionType, CandidateStatus
from talentflow.contracts.workflows import (
    Action,
    AddNoteAction,
    AssignUserAction,
    CallWebhookAction,
    ChangeStatusAction,
    CreateTaskAction,
    SendEmailAction,
    SendNotificationAction,
    TagAction,
    WorkflowExecution,
)
from talentflow.errors import ActionFailed, Conflict, InvalidTransition, NotFound
from talentflow.workflows.rendering import render, template_context

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class Notifier(Protocol):
    """Outbound email and in-app notification channel."""

    def send_email(self, to: str, subject: str, body: str) -> str:
        """Send an email and return the provider message id."""

    def notify(self, recipients: list[str], message: str) -> None:
        """Deliver an in-app notification."""


class LoggingNotifier:
    """Notifier that only logs; used by the demo and in tests."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    def send_email(self, to: str, subject: str, body: str) -> str:
        message_id = str(uuid4())
        self.sent.append({"channel": "email", "to": to, "subject": subject, "body": body})
        logger.info(
            "notifier.email",
            extra={"extra": {"to": to, "subject": subject, "message_id": message_id}},
        )
        return message_id

    def notify(self, recipients: list[str], message: str) -> None:
        self.sent.append({"channel": "notification", "to": list(recipients), "message": message})
        logger.info(
            "notifier.notification",
            extra={"extra": {"recipients": recipients, "message": message}},
        )


class CandidateOperations(Protocol):
    """Candidate mutations available to workflow actions."""

    def get_candidate(self, candidate_id: str) -> Candidate: ...

    def add_tag(
        self, candidate_id: str, tag: str, *, actor_id: str, correlation_id: str | None, depth: int
    ) -> Activity | None: ...

    def remove_tag(
        self, candidate_id: str, tag: str, *, actor_id: str, correlation_id: str | None, depth: int
    ) -> Activity | None: ...

    def request_transition(
        self,
        candidate_id: str,
        to_status: CandidateStatus,
        actor_id: str,
        *,
        correlation_id: str | None,
        depth: int,
    ) -> Activity: ...

    def assign_user(
        self,
        candidate_id: str,
        user_id: str,
        *,
        actor_id: str,
        correlation_id: str | None,
        depth: int,
    ) -> Activity | None: ...

    def add_note(
        self,
        candidate_id: str,
        content: str,
        *,
        is_private: bool,
        actor_id: str,
        correlation_id: str | None,
        depth: int,
    ) -> Activity: ...

    def record_activity(
        self,
        candidate_id: str,
        payload: ActivityPayload,
        *,
        actor_id: str,
        correlation_id: str | None,
        depth: int,
    ) -> Activity: ...

    def save_task(self, task: Task, *, correlation_id: str | None, depth: int) -> Task: ...

    def assigned_load(self, user_ids: list[str]) -> dict[str, int]: ...

    def next_in_rotation(self, key: str, pool: list[str]) -> str: ...


@dataclass(slots=True)
class ActionContext:
    execution: WorkflowExecution
    candidate: Candidate
    now: datetime
    action_index: int = 0

    @property
    def actor_id(self) -> str:
        return f"workflow:{self.execution.workflow_id}"

    @property
    def correlation_id(self) -> str:
        return self.execution.id

    @property
    def depth(self) -> int:
        return self.execution.depth + 1

    def variables(self) -> dict[str, Any]:
        return template_context(
            self.candidate,
            workflow_name=self.execution.workflow_name,
            execution_id=self.execution.id,
            now=self.now,
        )


@dataclass(slots=True)
class ActionOutcome:
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ActionExecutor:
    """Runs a single action attempt against its downstream effect."""

    operations: CandidateOperations
    notifier: Notifier
    http: httpx.Client
    templates: dict[str, dict[str, str]] = field(default_factory=dict)
    logger: logging.Logger = field(default_factory=lambda: logger)

    def execute(self, action: Action, ctx: ActionContext) -> ActionOutcome:
        handlers: dict[ActionType, Callable[[Any, ActionContext], ActionOutcome]] = {
            ActionType.SEND_EMAIL: self._send_email,
            ActionType.SEND_NOTIFICATION: self._send_notification,
            ActionType.ADD_TAG: self._add_tag,
            ActionType.REMOVE_TAG: self._remove_tag,
            ActionType.CHANGE_STATUS: self._change_status,
            ActionType.ASSIGN_USER: self._assign_user,
            ActionType.CREATE_TASK: self._create_task,
            ActionType.ADD_NOTE: self._add_note,
            ActionType.CALL_WEBHOOK: self._call_webhook,
        }
        handler = handlers[ActionType(action.type)]
        try:
            return handler(action, ctx)
        except (InvalidTransition, NotFound) as exc:
            raise ActionFailed(str(exc)) from exc
        except Conflict as exc:
            raise ActionFailed(str(exc), transient=True) from exc

    # ==== Messaging ====

    def _send_email(self, action: SendEmailAction, ctx: ActionContext) -> ActionOutcome:
        if action.to == "candidate":
            recipient = ctx.candidate.email
        elif action.to == "assigned_user":
            if not ctx.candidate.assigned_to:
                raise ActionFailed("candidate has no assigned user")
            recipient = ctx.candidate.assigned_to
        else:
            recipient = action.recipient or ""
        if action.to != "assigned_user" and not _EMAIL_RE.match(recipient):
            raise ActionFailed(f"invalid email recipient {recipient!r}")

        subject_tpl, body_tpl = action.subject, action.body
        if action.template_id is not None:
            template = self.templates.get(action.template_id)
            if template is None:
                raise ActionFailed(f"unknown email template {action.template_id!r}")
            subject_tpl = subject_tpl or template.get("subject", "")
            body_tpl = body_tpl or template.get("body", "")

        variables = ctx.variables()
        subject = render(subject_tpl, variables)
        body = render(body_tpl, variables)
        message_id = self.notifier.send_email(recipient, subject, body)
        self.operations.record_activity(
            ctx.candidate.id,
            EmailSentPayload(to=recipient, subject=subject),
            actor_id=ctx.actor_id,
            correlation_id=ctx.correlation_id,
            depth=ctx.depth,
        )
        return ActionOutcome(
            message=f"email sent to {recipient}",
            metadata={"to": recipient, "subject": subject, "message_id": message_id},
        )

    def _send_notification(
        self, action: SendNotificationAction, ctx: ActionContext
    ) -> ActionOutcome:
        recipients = list(action.notify_users)
        if not recipients and ctx.candidate.assigned_to:
            recipients = [ctx.candidate.assigned_to]
        message = render(action.message, ctx.variables())
        self.notifier.notify(recipients, message)
        self.operations.record_activity(
            ctx.candidate.id,
            NotificationSentPayload(message=message, recipients=recipients),
            actor_id=ctx.actor_id,
            correlation_id=ctx.correlation_id,
            depth=ctx.depth,
        )
        return ActionOutcome(
            message=f"notified {len(recipients)} user(s)",
            metadata={"recipients": recipients},
        )

    # ==== Candidate changes ====

    def _add_tag(self, action: TagAction, ctx: ActionContext) -> ActionOutcome:
        activity = self.operations.add_tag(
            ctx.candidate.id,
            action.tag,
            actor_id=ctx.actor_id,
            correlation_id=ctx.correlation_id,
            depth=ctx.depth,
        )
        if activity is None:
            return ActionOutcome(message=f"tag {action.tag!r} already present")
        return ActionOutcome(message=f"tag {action.tag!r} added", metadata={"activity_id": activity.id})

    def _remove_tag(self, action: TagAction, ctx: ActionContext) -> ActionOutcome:
        activity = self.operations.remove_tag(
            ctx.candidate.id,
            action.tag,
            actor_id=ctx.actor_id,
            correlation_id=ctx.correlation_id,
            depth=ctx.depth,
        )
        if activity is None:
            return ActionOutcome(message=f"tag {action.tag!r} not present")
        return ActionOutcome(
            message=f"tag {action.tag!r} removed", metadata={"activity_id": activity.id}
        )

    def _change_status(self, action: ChangeStatusAction, ctx: ActionContext) -> ActionOutcome:
        if ctx.candidate.status is action.new_status:
            return ActionOutcome(message=f"already {action.new_status.value}")
        activity = self.operations.request_transition(
            ctx.candidate.id,
            action.new_status,
            ctx.actor_id,
            correlation_id=ctx.correlation_id,
            depth=ctx.depth,
        )
        return ActionOutcome(
            message=f"status changed to {action.new_status.value}",
            metadata={"activity_id": activity.id},
        )

    def _assign_user(self, action: AssignUserAction, ctx: ActionContext) -> ActionOutcome:
        if action.strategy == "specific_user":
            user_id = action.user_id or ""
        elif action.strategy == "round_robin":
            user_id = self.operations.next_in_rotation(
                ctx.execution.workflow_id, action.user_pool
            )
        else:
            load = self.operations.assigned_load(action.user_pool)
            # ties go to the earliest user in the pool
            user_id = min(action.user_pool, key=lambda user: load.get(user, 0))
        activity = self.operations.assign_user(
            ctx.candidate.id,
            user_id,
            actor_id=ctx.actor_id,
            correlation_id=ctx.correlation_id,
            depth=ctx.depth,
        )
        metadata: dict[str, Any] = {"user_id": user_id, "strategy": action.strategy}
        if activity is None:
            return ActionOutcome(message=f"already assigned to {user_id}", metadata=metadata)
        metadata["activity_id"] = activity.id
        return ActionOutcome(message=f"assigned to {user_id}", metadata=metadata)

    def _create_task(self, action: CreateTaskAction, ctx: ActionContext) -> ActionOutcome:
        variables = ctx.variables()
        task = Task(
            # one task per execution and action, so re-delivery overwrites
            id=f"{ctx.execution.id}:{ctx.action_index}",
            candidate_id=ctx.candidate.id,
            workflow_id=ctx.execution.workflow_id,
            title=render(action.title, variables),
            description=render(action.description, variables),
            assigned_to=action.assign_to or ctx.candidate.assigned_to or "unassigned",
            priority=action.priority,
            due_at=ctx.now + timedelta(days=action.due_in_days),
            created_by=ctx.actor_id,
            created_at=ctx.now,
        )
        task = self.operations.save_task(task, correlation_id=ctx.correlation_id, depth=ctx.depth)
        self.operations.record_activity(
            ctx.candidate.id,
            TaskCreatedPayload(task_id=task.id, title=task.title),
            actor_id=ctx.actor_id,
            correlation_id=ctx.correlation_id,
            depth=ctx.depth,
        )
        return ActionOutcome(
            message=f"task {task.title!r} created",
            metadata={"task_id": task.id, "assigned_to": task.assigned_to},
        )

    def _add_note(self, action: AddNoteAction, ctx: ActionContext) -> ActionOutcome:
        activity = self.operations.add_note(
            ctx.candidate.id,
            render(action.content, ctx.variables()),
            is_private=action.is_private,
            actor_id=ctx.actor_id,
            correlation_id=ctx.correlation_id,
            depth=ctx.depth,
        )
        return ActionOutcome(message="note added", metadata={"activity_id": activity.id})

    # ==== Webhooks ====

    def _call_webhook(self, action: CallWebhookAction, ctx: ActionContext) -> ActionOutcome:
        body: dict[str, Any] = {
            "event": "workflow.action",
            "workflow_id": ctx.execution.workflow_id,
            "execution_id": ctx.execution.id,
            "candidate": {
                "id": ctx.candidate.id,
                "first_name": ctx.candidate.first_name,
                "last_name": ctx.candidate.last_name,
                "email": ctx.candidate.email,
                "status": ctx.candidate.status.value,
                "tags": list(ctx.candidate.tags),
            },
        }
        body.update(action.payload)
        headers = {"Idempotency-Key": f"{ctx.execution.id}:{ctx.action_index}"}
        headers.update(action.headers)
        try:
            if action.method == "GET":
                response = self.http.request(
                    "GET",
                    action.url,
                    params={"candidate_id": ctx.candidate.id, "execution_id": ctx.execution.id},
                    headers=headers,
                )
            else:
                response = self.http.request(action.method, action.url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise ActionFailed(f"webhook {action.url} unreachable: {exc}", transient=True) from exc

        if response.status_code >= 500 or response.status_code == 429:
            raise ActionFailed(
                f"webhook {action.url} returned {response.status_code}", transient=True
            )
        if response.status_code >= 400:
            raise ActionFailed(f"webhook {action.url} returned {response.status_code}")

        self.operations.record_activity(
            ctx.candidate.id,
            WebhookCalledPayload(
                url=action.url, method=action.method, status_code=response.status_code
            ),
            actor_id=ctx.actor_id,
            correlation_id=ctx.correlation_id,
            depth=ctx.depth,
        )
        return ActionOutcome(
            message=f"webhook returned {response.status_code}",
            metadata={"status_code": response.status_code},
        )
