from pathlib import Path

import pytest

from talentflow.activity.event_bus import InMemoryEventBus
from talentflow.config import ConfigAdapter, DotEnvConfigSource, EnvConfigSource, parse_dotenv
from talentflow.service import build_service
from talentflow.settings import FailurePolicy, Settings, load_settings
from talentflow.store.entity_store import JsonFileEntityStore


def _env_adapter() -> ConfigAdapter:
    return ConfigAdapter((EnvConfigSource(prefix="TALENTFLOW_"),))


def test_defaults() -> None:
    settings = Settings()
    assert settings.sla_warning_ratio == 0.7
    assert settings.max_cascade_depth == 5
    assert settings.failure_policy is FailurePolicy.CONTINUE
    assert settings.store_backend == "memory"


def test_load_settings_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("TALENTFLOW_SLA_WARNING_RATIO", "0.8")
    monkeypatch.setenv("TALENTFLOW_MAX_ACTION_ATTEMPTS", "5")
    monkeypatch.setenv("TALENTFLOW_FAILURE_POLICY", "STOP")
    monkeypatch.setenv("TALENTFLOW_LOG_LEVEL", "debug")
    monkeypatch.setenv("TALENTFLOW_WORKFLOWS_PATH", "/etc/talentflow/rules.yaml")

    settings = load_settings(_env_adapter())

    assert settings.sla_warning_ratio == 0.8
    assert settings.max_action_attempts == 5
    assert settings.failure_policy is FailurePolicy.STOP
    assert settings.log_level == "DEBUG"
    assert settings.workflows_path == Path("/etc/talentflow/rules.yaml")


def test_unparseable_numbers_fall_back(monkeypatch) -> None:
    monkeypatch.setenv("TALENTFLOW_MAX_CASCADE_DEPTH", "many")
    monkeypatch.setenv("TALENTFLOW_RETRY_BACKOFF_SECONDS", "")
    settings = load_settings(_env_adapter())
    assert settings.max_cascade_depth == 5
    assert settings.retry_backoff_seconds == 30.0


def test_out_of_range_ratio_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("TALENTFLOW_SLA_WARNING_RATIO", "1.5")
    with pytest.raises(ValueError):
        load_settings(_env_adapter())


def test_dotenv_source(tmp_path) -> None:
    path = tmp_path / ".env"
    path.write_text(
        "# local overrides\n"
        "TALENTFLOW_EVENT_BUS='memory'\n"
        'TALENTFLOW_NATS_URL="nats://broker:4222"\n'
        "TALENTFLOW_STORE_BACKEND=json\n"
        "not a pair\n",
        encoding="utf-8",
    )
    source = DotEnvConfigSource(path=path, prefix="TALENTFLOW_")
    assert source.get("EVENT_BUS") == "memory"
    assert source.get("NATS_URL") == "nats://broker:4222"
    assert source.get("MISSING") is None
    assert DotEnvConfigSource(path=tmp_path / "absent.env").get("ANY") is None


def test_environment_wins_over_dotenv(tmp_path, monkeypatch) -> None:
    path = tmp_path / ".env"
    path.write_text("TALENTFLOW_STORE_BACKEND=json\nTALENTFLOW_MAX_CASCADE_DEPTH=9\n", encoding="utf-8")
    monkeypatch.setenv("TALENTFLOW_STORE_BACKEND", "memory")
    adapter = ConfigAdapter(
        (
            EnvConfigSource(prefix="TALENTFLOW_"),
            DotEnvConfigSource(path=path, prefix="TALENTFLOW_"),
        )
    )
    settings = load_settings(adapter)
    assert settings.store_backend == "memory"
    assert settings.max_cascade_depth == 9


def test_build_service_uses_configured_backends(tmp_path) -> None:
    settings = Settings(store_backend="json", store_path=tmp_path / "data")
    service = build_service(settings)
    assert isinstance(service.store, JsonFileEntityStore)
    assert isinstance(service.bus, InMemoryEventBus)
    created = service.create_candidate("Ada", "Lovelace", "ada@example.com")
    assert (tmp_path / "data" / "candidates" / f"{created.id}.json").exists()
    service.close()


def test_build_service_rejects_unknown_backend() -> None:
    with pytest.raises(ValueError):
        build_service(Settings(store_backend="postgres"))


def test_adapter_typed_getters(monkeypatch) -> None:
    monkeypatch.setenv("TALENTFLOW_WORKERS", " 4 ")
    monkeypatch.setenv("TALENTFLOW_EVENT_BUS", " NATS ")
    monkeypatch.setenv("TALENTFLOW_RATIO", "half")
    adapter = _env_adapter()
    assert adapter.get_int("WORKERS", 1) == 4
    assert adapter.get_choice("EVENT_BUS", "memory") == "nats"
    assert adapter.get_float("RATIO", 0.5) == 0.5
    assert adapter.get_choice("MISSING_OPTION", "Memory") == "memory"


def test_parse_dotenv_handles_export_and_comments() -> None:
    values = parse_dotenv("export TALENTFLOW_A=1\n#TALENTFLOW_B=2\n=orphan\nTALENTFLOW_C = 'x y'\n")
    assert values == {"TALENTFLOW_A": "1", "TALENTFLOW_C": "x y"}
