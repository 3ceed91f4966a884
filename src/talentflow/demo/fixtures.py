"""Fixture data for demo scenarios."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone


class ScenarioClock:
    """Controllable clock so scenarios can fast-forward days in one run."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@dataclass(slots=True)
class CandidateFixture:
    first_name: str
    last_name: str
    email: str
    source: str = "linkedin"
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ScenarioFixtures:
    """Container for fixture data for a scenario."""

    name: str
    candidate: CandidateFixture
    advance_days: float = 0
    with_process: bool = False


def welcome_path() -> ScenarioFixtures:
    return ScenarioFixtures(
        name="welcome",
        candidate=CandidateFixture("Ada", "Lovelace", "ada@example.com", tags=["python"]),
    )


def stale_path() -> ScenarioFixtures:
    return ScenarioFixtures(
        name="stale",
        candidate=CandidateFixture("Grace", "Hopper", "grace@example.com", source="referral"),
        advance_days=8,
    )


def sla_path() -> ScenarioFixtures:
    return ScenarioFixtures(
        name="sla",
        candidate=CandidateFixture("Alan", "Turing", "alan@example.com", source="website"),
        advance_days=8,
        with_process=True,
    )


SCENARIOS = {
    "welcome": welcome_path,
    "stale": stale_path,
    "sla": sla_path,
}
