"""Message templating for emails, notifications and tasks."""

from __future__ import annotations

from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError

from talentflow.contracts.models import Candidate
from talentflow.errors import ActionFailed

_ENV = Environment(autoescape=False, keep_trailing_newline=True, undefined=StrictUndefined)


def template_context(candidate: Candidate, **extra: Any) -> dict[str, Any]:
    context: dict[str, Any] = {
        "candidate_id": candidate.id,
        "first_name": candidate.first_name,
        "last_name": candidate.last_name,
        "full_name": candidate.full_name,
        "email": candidate.email,
        "status": candidate.status.value,
        "position": candidate.current_position or "",
        "tags": list(candidate.tags),
        "score": candidate.scores.get("overall"),
        "scores": dict(candidate.scores),
    }
    context.update(extra)
    return context


def render(template: str, context: dict[str, Any]) -> str:
    try:
        return _ENV.from_string(template).render(**context)
    except TemplateError as exc:
        raise ActionFailed(f"template error: {exc}") from exc
