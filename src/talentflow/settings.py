"""Centralized settings for the pipeline core."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path

from talentflow.config import ConfigAdapter, default_adapter


class FailurePolicy(str, Enum):
    """What a workflow execution does after one of its actions failed."""

    CONTINUE = "continue"
    STOP = "stop"


@dataclass(slots=True)
class Settings:
    app_env: str = "dev"
    service_name: str = "talentflow"
    log_level: str = "INFO"
    sla_warning_ratio: float = 0.7
    max_action_attempts: int = 3
    retry_backoff_seconds: float = 30.0
    failure_policy: FailurePolicy = FailurePolicy.CONTINUE
    max_cascade_depth: int = 5
    scan_interval_seconds: float = 300.0
    dispatch_poll_seconds: float = 1.0
    event_bus: str = "memory"
    event_backlog: int = 1000
    nats_url: str = "nats://localhost:4222"
    webhook_timeout_seconds: float = 10.0
    store_backend: str = "memory"
    store_path: Path = Path("data")
    workflows_path: Path | None = None

    def __post_init__(self) -> None:
        if not 0 < self.sla_warning_ratio <= 1:
            raise ValueError("sla_warning_ratio must be in (0, 1]")
        if self.max_action_attempts < 1:
            raise ValueError("max_action_attempts must be at least 1")
        if self.max_cascade_depth < 1:
            raise ValueError("max_cascade_depth must be at least 1")
        if self.event_backlog < 1:
            raise ValueError("event_backlog must be at least 1")


def load_settings(adapter: ConfigAdapter | None = None) -> Settings:
    """Build settings from configuration, falling back to defaults per key."""
    config = adapter or default_adapter()
    defaults = Settings()
    workflows_path = config.get("WORKFLOWS_PATH")
    return Settings(
        app_env=config.get("APP_ENV") or defaults.app_env,
        service_name=config.get("SERVICE_NAME") or defaults.service_name,
        log_level=config.get_choice("LOG_LEVEL", defaults.log_level).upper(),
        sla_warning_ratio=config.get_float("SLA_WARNING_RATIO", defaults.sla_warning_ratio),
        max_action_attempts=config.get_int("MAX_ACTION_ATTEMPTS", defaults.max_action_attempts),
        retry_backoff_seconds=config.get_float(
            "RETRY_BACKOFF_SECONDS", defaults.retry_backoff_seconds
        ),
        failure_policy=FailurePolicy(
            config.get_choice("FAILURE_POLICY", defaults.failure_policy.value)
        ),
        max_cascade_depth=config.get_int("MAX_CASCADE_DEPTH", defaults.max_cascade_depth),
        scan_interval_seconds=config.get_float(
            "SCAN_INTERVAL_SECONDS", defaults.scan_interval_seconds
        ),
        dispatch_poll_seconds=config.get_float(
            "DISPATCH_POLL_SECONDS", defaults.dispatch_poll_seconds
        ),
        event_bus=config.get_choice("EVENT_BUS", defaults.event_bus),
        event_backlog=config.get_int("EVENT_BACKLOG", defaults.event_backlog),
        nats_url=config.get("NATS_URL") or defaults.nats_url,
        webhook_timeout_seconds=config.get_float(
            "WEBHOOK_TIMEOUT_SECONDS", defaults.webhook_timeout_seconds
        ),
        store_backend=config.get_choice("STORE_BACKEND", defaults.store_backend),
        store_path=Path(config.get("STORE_PATH") or defaults.store_path),
        workflows_path=Path(workflows_path) if workflows_path else None,
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
