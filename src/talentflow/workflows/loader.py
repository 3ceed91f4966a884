"""YAML workflow templates."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter
import yaml  # type: ignore[import-untyped]

from talentflow.contracts.workflows import Workflow

DEFAULT_TEMPLATES_PATH = Path(__file__).with_name("templates.yaml")

_WORKFLOWS = TypeAdapter(list[Workflow])


@dataclass(slots=True)
class WorkflowTemplates:
    """Loaded rule templates plus the email templates they reference."""

    workflows: list[Workflow] = field(default_factory=list)
    email_templates: dict[str, dict[str, str]] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path = DEFAULT_TEMPLATES_PATH) -> WorkflowTemplates:
        data: dict[str, Any] = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return cls(
            workflows=_WORKFLOWS.validate_python(data.get("workflows") or []),
            email_templates={
                key: {"subject": str(value.get("subject", "")), "body": str(value.get("body", ""))}
                for key, value in (data.get("email_templates") or {}).items()
            },
        )


def load_workflows(path: Path = DEFAULT_TEMPLATES_PATH) -> list[Workflow]:
    return WorkflowTemplates.load(path).workflows
