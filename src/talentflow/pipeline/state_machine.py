from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from talentflow.contracts.types import CandidateStatus, ExecutionStatus, ProcessStatus
from talentflow.errors import InvalidTransition

S = TypeVar("S", bound=Enum)


@dataclass(frozen=True, slots=True)
class TransitionTable(Generic[S]):
    """
    Finite state machine table: state -> allowed next states.
    Built with `from_mapping`, which refuses tables that leave a state undeclared.
    """

    name: str
    initial: S
    allowed: Mapping[S, frozenset[S]]

    @classmethod
    def from_mapping(
        cls,
        name: str,
        states: type[S],
        initial: S,
        mapping: Mapping[S, Iterable[S]],
    ) -> TransitionTable[S]:
        missing = [state.value for state in states if state not in mapping]
        if missing:
            raise ValueError(f"{name} transition table has no entry for: {missing}")
        return cls(
            name=name,
            initial=initial,
            allowed={state: frozenset(mapping[state]) for state in states},
        )

    def targets(self, source: S) -> frozenset[S]:
        return self.allowed[source]

    def can(self, source: S, dest: S) -> bool:
        return dest in self.allowed[source]

    def check(self, source: S, dest: S) -> None:
        if not self.can(source, dest):
            raise InvalidTransition(source.value, dest.value, subject=self.name)

    def is_terminal(self, state: S) -> bool:
        return not self.allowed[state]

    @property
    def terminal_states(self) -> frozenset[S]:
        return frozenset(state for state, targets in self.allowed.items() if not targets)


CANDIDATE_STATUS_FLOW = TransitionTable.from_mapping(
    "status",
    CandidateStatus,
    CandidateStatus.NEW,
    {
        CandidateStatus.NEW: (
            CandidateStatus.CONTACTED,
            CandidateStatus.REJECTED,
            CandidateStatus.ARCHIVED,
        ),
        CandidateStatus.CONTACTED: (
            CandidateStatus.SCREENING,
            CandidateStatus.REJECTED,
            CandidateStatus.ON_HOLD,
        ),
        CandidateStatus.SCREENING: (
            CandidateStatus.INTERVIEW_SCHEDULED,
            CandidateStatus.REJECTED,
            CandidateStatus.ON_HOLD,
        ),
        CandidateStatus.INTERVIEW_SCHEDULED: (
            CandidateStatus.INTERVIEW_COMPLETED,
            CandidateStatus.REJECTED,
            CandidateStatus.ON_HOLD,
        ),
        CandidateStatus.INTERVIEW_COMPLETED: (
            CandidateStatus.OFFER_SENT,
            CandidateStatus.REJECTED,
            CandidateStatus.ON_HOLD,
        ),
        CandidateStatus.OFFER_SENT: (
            CandidateStatus.OFFER_ACCEPTED,
            CandidateStatus.OFFER_REJECTED,
            CandidateStatus.ON_HOLD,
        ),
        CandidateStatus.OFFER_ACCEPTED: (CandidateStatus.HIRED,),
        CandidateStatus.OFFER_REJECTED: (CandidateStatus.ARCHIVED,),
        CandidateStatus.HIRED: (),
        CandidateStatus.REJECTED: (CandidateStatus.ARCHIVED,),
        CandidateStatus.ON_HOLD: (
            CandidateStatus.CONTACTED,
            CandidateStatus.SCREENING,
            CandidateStatus.REJECTED,
        ),
        CandidateStatus.ARCHIVED: (),
    },
)

PROCESS_STATUS_FLOW = TransitionTable.from_mapping(
    "process status",
    ProcessStatus,
    ProcessStatus.DRAFT,
    {
        ProcessStatus.DRAFT: (
            ProcessStatus.ACTIVE,
            ProcessStatus.CANCELLED,
            ProcessStatus.ARCHIVED,
        ),
        ProcessStatus.ACTIVE: (
            ProcessStatus.PAUSED,
            ProcessStatus.COMPLETED,
            ProcessStatus.CANCELLED,
            ProcessStatus.ARCHIVED,
        ),
        ProcessStatus.PAUSED: (
            ProcessStatus.ACTIVE,
            ProcessStatus.CANCELLED,
            ProcessStatus.ARCHIVED,
        ),
        ProcessStatus.COMPLETED: (ProcessStatus.ARCHIVED,),
        ProcessStatus.CANCELLED: (ProcessStatus.ARCHIVED,),
        ProcessStatus.ARCHIVED: (),
    },
)

# Processes that no longer accept membership changes.
CLOSED_PROCESS_STATUSES = frozenset(
    {ProcessStatus.COMPLETED, ProcessStatus.CANCELLED, ProcessStatus.ARCHIVED}
)

EXECUTION_STATUS_FLOW = TransitionTable.from_mapping(
    "execution status",
    ExecutionStatus,
    ExecutionStatus.PENDING,
    {
        ExecutionStatus.PENDING: (ExecutionStatus.RUNNING, ExecutionStatus.SKIPPED),
        ExecutionStatus.RUNNING: (
            ExecutionStatus.PENDING,
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.SKIPPED,
        ),
        ExecutionStatus.COMPLETED: (),
        ExecutionStatus.FAILED: (),
        ExecutionStatus.SKIPPED: (),
    },
)

# Statuses whose entry does not count as contacting the candidate.
NON_CONTACT_STATUSES = frozenset({CandidateStatus.NEW, CandidateStatus.ARCHIVED})
