"""Workflow rule contracts: triggers, actions, rules and executions."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from talentflow.contracts.types import (
    ActionResultStatus,
    ActionType,
    CandidateStatus,
    ExecutionStatus,
    ExperienceLevel,
    TaskPriority,
    TriggerType,
)


def _as_list(value: Any) -> Any:
    if value is None or isinstance(value, list):
        return value
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    return [value]


# ==== Triggers ====


class _TriggerBase(BaseModel):
    """Candidate filters shared by every trigger kind."""

    source: list[str] | None = None
    experience_level: list[ExperienceLevel] | None = None
    tags: list[str] | None = Field(
        None, description="Candidate must carry every listed tag."
    )

    @field_validator("source", "experience_level", mode="before")
    @classmethod
    def _wrap_filter(cls, value: Any) -> Any:
        return _as_list(value)


class StatusChangedTrigger(_TriggerBase):
    type: Literal["status_changed"] = "status_changed"
    from_status: list[CandidateStatus] | None = None
    to_status: list[CandidateStatus] | None = None

    @field_validator("from_status", "to_status", mode="before")
    @classmethod
    def _wrap_status(cls, value: Any) -> Any:
        return _as_list(value)


class TagTrigger(_TriggerBase):
    type: Literal["tag_added", "tag_removed"]
    tag: str | None = None
    any_of: list[str] | None = None


class DaysInStageTrigger(_TriggerBase):
    type: Literal["days_in_stage"] = "days_in_stage"
    days: int = Field(..., ge=1)
    process_id: str | None = None
    stage_id: str | None = None


class NoActivityTrigger(_TriggerBase):
    type: Literal["no_activity"] = "no_activity"
    days: int = Field(..., ge=1)


class InterviewTrigger(_TriggerBase):
    type: Literal["interview_scheduled", "interview_completed"]
    interview_type: str | None = None


class ScoreThresholdTrigger(_TriggerBase):
    type: Literal["score_threshold"] = "score_threshold"
    score_type: str = "overall"
    min_score: float | None = None
    max_score: float | None = None

    @model_validator(mode="after")
    def _check_bounds(self) -> ScoreThresholdTrigger:
        if self.min_score is None and self.max_score is None:
            raise ValueError("score_threshold needs min_score or max_score")
        if (
            self.min_score is not None
            and self.max_score is not None
            and self.min_score > self.max_score
        ):
            raise ValueError("min_score must not exceed max_score")
        return self


class ManualTrigger(_TriggerBase):
    type: Literal["manual"] = "manual"


Trigger = Annotated[
    Union[
        StatusChangedTrigger,
        TagTrigger,
        DaysInStageTrigger,
        NoActivityTrigger,
        InterviewTrigger,
        ScoreThresholdTrigger,
        ManualTrigger,
    ],
    Field(discriminator="type"),
]


# ==== Actions ====


class ActionCondition(BaseModel):
    """Guard evaluated against the candidate right before an action runs."""

    has_tag: str | None = None
    lacks_tag: str | None = None
    status_in: list[CandidateStatus] | None = None

    @field_validator("status_in", mode="before")
    @classmethod
    def _wrap_status(cls, value: Any) -> Any:
        return _as_list(value)


class _ActionBase(BaseModel):
    delay_minutes: int = Field(
        0, description="Negative values run before the anchor time (e.g. an interview)."
    )
    when: ActionCondition | None = None


class SendEmailAction(_ActionBase):
    type: Literal["send_email"] = "send_email"
    to: Literal["candidate", "assigned_user", "custom"] = "candidate"
    recipient: str | None = None
    template_id: str | None = None
    subject: str = ""
    body: str = ""

    @model_validator(mode="after")
    def _check_email(self) -> SendEmailAction:
        if self.to == "custom" and not self.recipient:
            raise ValueError("custom email recipients need 'recipient'")
        if not self.subject and not self.template_id:
            raise ValueError("send_email needs a subject or a template_id")
        return self


class SendNotificationAction(_ActionBase):
    type: Literal["send_notification"] = "send_notification"
    message: str = Field(..., min_length=1)
    notify_users: list[str] = Field(default_factory=list)


class TagAction(_ActionBase):
    type: Literal["add_tag", "remove_tag"]
    tag: str = Field(..., min_length=1)


class ChangeStatusAction(_ActionBase):
    type: Literal["change_status"] = "change_status"
    new_status: CandidateStatus


class AssignUserAction(_ActionBase):
    type: Literal["assign_user"] = "assign_user"
    strategy: Literal["specific_user", "round_robin", "least_loaded"] = "specific_user"
    user_id: str | None = None
    user_pool: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_strategy(self) -> AssignUserAction:
        if self.strategy == "specific_user" and not self.user_id:
            raise ValueError("specific_user assignment needs 'user_id'")
        if self.strategy != "specific_user" and not self.user_pool:
            raise ValueError(f"{self.strategy} assignment needs a non-empty 'user_pool'")
        return self


class CreateTaskAction(_ActionBase):
    type: Literal["create_task"] = "create_task"
    title: str = Field(..., min_length=1)
    description: str = ""
    due_in_days: int = Field(7, ge=0)
    assign_to: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM


class AddNoteAction(_ActionBase):
    type: Literal["add_note"] = "add_note"
    content: str = Field(..., min_length=1)
    is_private: bool = False


class CallWebhookAction(_ActionBase):
    type: Literal["call_webhook"] = "call_webhook"
    url: str = Field(..., pattern=r"^https?://")
    method: Literal["GET", "POST", "PUT"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    payload: dict[str, Any] = Field(default_factory=dict)


Action = Annotated[
    Union[
        SendEmailAction,
        SendNotificationAction,
        TagAction,
        ChangeStatusAction,
        AssignUserAction,
        CreateTaskAction,
        AddNoteAction,
        CallWebhookAction,
    ],
    Field(discriminator="type"),
]


# ==== Rules and executions ====


class Workflow(BaseModel):
    """A persisted trigger + ordered actions automation rule."""

    id: str = ""
    name: str
    description: str | None = None
    trigger: Trigger
    actions: list[Action] = Field(..., min_length=1)
    is_active: bool = True
    priority: int = Field(0, description="Higher priority is evaluated first.")
    max_executions_per_candidate: int | None = Field(None, ge=1)
    max_executions_per_day: int | None = Field(None, ge=1)
    test_mode: bool = False
    created_by: str = "system"
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def trigger_type(self) -> TriggerType:
        return TriggerType(self.trigger.type)


class ActionResult(BaseModel):
    action_index: int
    action_type: ActionType
    status: ActionResultStatus = ActionResultStatus.PENDING
    attempts: int = 0
    scheduled_for: datetime | None = None
    message: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def resolved(self) -> bool:
        return self.status is not ActionResultStatus.PENDING


class WorkflowExecution(BaseModel):
    """One firing of a workflow for a candidate and triggering event."""

    id: str
    workflow_id: str
    workflow_name: str
    candidate_id: str
    event_id: str
    workflow: Workflow = Field(..., description="Snapshot of the rule at fire time.")
    status: ExecutionStatus = ExecutionStatus.PENDING
    skip_reason: str | None = None
    anchor_at: datetime
    depth: int = 0
    started_at: datetime
    completed_at: datetime | None = None
    results: list[ActionResult] = Field(default_factory=list)
    error: str | None = None
    executed_by: str = "system"
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.SKIPPED,
        )

    def next_result(self) -> ActionResult | None:
        for result in self.results:
            if not result.resolved:
                return result
        return None


class WorkflowStatistics(BaseModel):
    workflow_id: str
    workflow_name: str
    total_executions: int
    completed: int
    failed: int
    skipped: int
    pending: int
    candidates_affected: int
    last_executed_at: datetime | None = None
    action_failures: dict[str, int] = Field(default_factory=dict)
