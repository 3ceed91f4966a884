"""Shared enums for pipeline contracts."""

from __future__ import annotations

from enum import Enum


class CandidateStatus(str, Enum):
    """Global lifecycle status of a candidate."""

    NEW = "new"
    CONTACTED = "contacted"
    SCREENING = "screening"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEW_COMPLETED = "interview_completed"
    OFFER_SENT = "offer_sent"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_REJECTED = "offer_rejected"
    HIRED = "hired"
    REJECTED = "rejected"
    ON_HOLD = "on_hold"
    ARCHIVED = "archived"


class ExperienceLevel(str, Enum):
    ENTRY = "entry"
    JUNIOR = "junior"
    MID = "mid"
    SENIOR = "senior"
    LEAD = "lead"
    EXECUTIVE = "executive"


class ProcessStatus(str, Enum):
    """Lifecycle of a hiring process."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


class SLAState(str, Enum):
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"


class ActivityType(str, Enum):
    """Kinds of audit events appended to the activity log."""

    CANDIDATE_CREATED = "candidate_created"
    STATUS_CHANGE = "status_change"
    TAG_ADDED = "tag_added"
    TAG_REMOVED = "tag_removed"
    SCORE_UPDATED = "score_updated"
    NOTE_ADDED = "note_added"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEW_COMPLETED = "interview_completed"
    ASSIGNMENT_CHANGED = "assignment_changed"
    PROCESS_ADDED = "process_added"
    PROCESS_REMOVED = "process_removed"
    STAGE_CHANGED = "stage_changed"
    EMAIL_SENT = "email_sent"
    NOTIFICATION_SENT = "notification_sent"
    TASK_CREATED = "task_created"
    WEBHOOK_CALLED = "webhook_called"
    WORKFLOW_TRIGGERED = "workflow_triggered"
    NO_ACTIVITY_DETECTED = "no_activity_detected"
    DAYS_IN_STAGE_REACHED = "days_in_stage_reached"
    SLA_STATUS_CHANGED = "sla_status_changed"


# Scanner bookkeeping; these never count as candidate activity.
MARKER_ACTIVITY_TYPES: frozenset[ActivityType] = frozenset(
    {
        ActivityType.NO_ACTIVITY_DETECTED,
        ActivityType.DAYS_IN_STAGE_REACHED,
        ActivityType.SLA_STATUS_CHANGED,
    }
)


class TriggerType(str, Enum):
    STATUS_CHANGED = "status_changed"
    TAG_ADDED = "tag_added"
    TAG_REMOVED = "tag_removed"
    DAYS_IN_STAGE = "days_in_stage"
    NO_ACTIVITY = "no_activity"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEW_COMPLETED = "interview_completed"
    SCORE_THRESHOLD = "score_threshold"
    MANUAL = "manual"


class ActionType(str, Enum):
    SEND_EMAIL = "send_email"
    SEND_NOTIFICATION = "send_notification"
    ADD_TAG = "add_tag"
    REMOVE_TAG = "remove_tag"
    CHANGE_STATUS = "change_status"
    ASSIGN_USER = "assign_user"
    CREATE_TASK = "create_task"
    ADD_NOTE = "add_note"
    CALL_WEBHOOK = "call_webhook"


class ExecutionStatus(str, Enum):
    """Lifecycle of a single workflow firing."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ActionResultStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
