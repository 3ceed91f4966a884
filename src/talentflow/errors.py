"""Error taxonomy for pipeline operations."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for errors surfaced to callers of the pipeline core."""

    code = "pipeline_error"


class NotFound(PipelineError):
    code = "not_found"

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} {entity_id!r} not found")
        self.kind = kind
        self.entity_id = entity_id


class InvalidTransition(PipelineError):
    code = "invalid_transition"

    def __init__(self, from_state: str, to_state: str, *, subject: str = "status") -> None:
        super().__init__(f"Cannot change {subject} from '{from_state}' to '{to_state}'")
        self.from_state = from_state
        self.to_state = to_state


class Conflict(PipelineError):
    code = "conflict"


class AlreadyMember(PipelineError):
    code = "already_member"

    def __init__(self, candidate_id: str, process_id: str) -> None:
        super().__init__(f"Candidate {candidate_id!r} is already in process {process_id!r}")
        self.candidate_id = candidate_id
        self.process_id = process_id


class IllegalStage(PipelineError):
    code = "illegal_stage"


class RateLimited(PipelineError):
    """Raised inside the engine when a workflow hit an execution cap."""

    code = "rate_limited"


class ActionFailed(PipelineError):
    """A single workflow action could not complete its downstream effect."""

    code = "action_failed"

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient
