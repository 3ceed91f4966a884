import os
from pathlib import Path
import sys

import httpx
import pytest

# Ensure the src layout is importable without an editable install
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

os.environ.setdefault("TALENTFLOW_DISABLE_TRACING", "1")

from talentflow.demo.fixtures import ScenarioClock  # noqa: E402
from talentflow.service import PipelineService  # noqa: E402
from talentflow.settings import Settings  # noqa: E402
from talentflow.store.entity_store import InMemoryEntityStore  # noqa: E402
from talentflow.workflows.actions import LoggingNotifier  # noqa: E402


@pytest.fixture
def clock() -> ScenarioClock:
    return ScenarioClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(retry_backoff_seconds=60)


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def store() -> InMemoryEntityStore:
    return InMemoryEntityStore()


@pytest.fixture
def service(store, clock, settings, notifier):
    http = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    svc = PipelineService(store, settings=settings, notifier=notifier, http=http, clock=clock)
    yield svc
    svc.close()


@pytest.fixture
def candidate(service):
    return service.create_candidate("Ada", "Lovelace", "ada@example.com", source="linkedin")
