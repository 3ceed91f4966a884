"""Activity (audit event) contracts.

Each activity carries a payload variant keyed by ``kind`` so that consumers
only ever see the fields that belong to that event.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from talentflow.contracts.types import (
    MARKER_ACTIVITY_TYPES,
    ActivityType,
    CandidateStatus,
    SLAState,
)


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True)


class CandidateCreatedPayload(_Payload):
    kind: Literal["candidate_created"] = "candidate_created"
    source: str


class StatusChangePayload(_Payload):
    kind: Literal["status_change"] = "status_change"
    from_status: CandidateStatus
    to_status: CandidateStatus


class TagChangePayload(_Payload):
    kind: Literal["tag_added", "tag_removed"]
    tag: str


class ScoreUpdatedPayload(_Payload):
    kind: Literal["score_updated"] = "score_updated"
    score_type: str
    score: float
    previous: float | None = None


class NoteAddedPayload(_Payload):
    kind: Literal["note_added"] = "note_added"
    content: str
    is_private: bool = False


class InterviewPayload(_Payload):
    kind: Literal["interview_scheduled", "interview_completed"]
    interview_id: str
    interview_type: str
    scheduled_at: datetime
    rating: float | None = None


class AssignmentChangedPayload(_Payload):
    kind: Literal["assignment_changed"] = "assignment_changed"
    from_user: str | None = None
    to_user: str


class ProcessMembershipPayload(_Payload):
    kind: Literal["process_added", "process_removed"]
    process_id: str
    process_name: str
    stage_id: str


class StageChangedPayload(_Payload):
    kind: Literal["stage_changed"] = "stage_changed"
    process_id: str
    from_stage_id: str
    to_stage_id: str


class EmailSentPayload(_Payload):
    kind: Literal["email_sent"] = "email_sent"
    to: str
    subject: str


class NotificationSentPayload(_Payload):
    kind: Literal["notification_sent"] = "notification_sent"
    message: str
    recipients: list[str] = Field(default_factory=list)


class TaskCreatedPayload(_Payload):
    kind: Literal["task_created"] = "task_created"
    task_id: str
    title: str


class WebhookCalledPayload(_Payload):
    kind: Literal["webhook_called"] = "webhook_called"
    url: str
    method: str
    status_code: int


class WorkflowTriggeredPayload(_Payload):
    kind: Literal["workflow_triggered"] = "workflow_triggered"
    workflow_id: str


class NoActivityDetectedPayload(_Payload):
    kind: Literal["no_activity_detected"] = "no_activity_detected"
    days: int
    last_activity_id: str | None = None
    last_activity_at: datetime


class DaysInStageReachedPayload(_Payload):
    kind: Literal["days_in_stage_reached"] = "days_in_stage_reached"
    process_id: str
    stage_id: str
    days: int
    entered_stage_at: datetime


class SLAStatusChangedPayload(_Payload):
    kind: Literal["sla_status_changed"] = "sla_status_changed"
    process_id: str
    stage_id: str
    state: SLAState
    entered_stage_at: datetime


ActivityPayload = Annotated[
    Union[
        CandidateCreatedPayload,
        StatusChangePayload,
        TagChangePayload,
        ScoreUpdatedPayload,
        NoteAddedPayload,
        InterviewPayload,
        AssignmentChangedPayload,
        ProcessMembershipPayload,
        StageChangedPayload,
        EmailSentPayload,
        NotificationSentPayload,
        TaskCreatedPayload,
        WebhookCalledPayload,
        WorkflowTriggeredPayload,
        NoActivityDetectedPayload,
        DaysInStageReachedPayload,
        SLAStatusChangedPayload,
    ],
    Field(discriminator="kind"),
]


class Activity(BaseModel):
    """Immutable audit entry describing something that happened to a candidate."""

    model_config = ConfigDict(frozen=True)

    id: str
    candidate_id: str
    timestamp: datetime
    actor_id: str
    payload: ActivityPayload
    sequence: int = 0
    correlation_id: str | None = Field(
        None, description="Workflow execution that produced this activity, if any."
    )
    depth: int = Field(0, ge=0, description="Workflow cascade depth.")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def type(self) -> ActivityType:
        return ActivityType(self.payload.kind)

    @property
    def is_marker(self) -> bool:
        return self.type in MARKER_ACTIVITY_TYPES
