import json
import logging
import sys

import httpx

from talentflow.observability.logging import JsonFormatter
from talentflow.observability.metrics import render_metrics, start_metrics_server
from talentflow.observability.telemetry import DISABLE_ENV, setup_tracing, traced


def _record(msg: str, level: int = logging.INFO, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="talentflow.service",
        level=level,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


def test_json_formatter_merges_extra_fields() -> None:
    record = _record("candidate.transitioned")
    record.extra = {"candidate_id": "c1", "to_status": "contacted"}
    payload = json.loads(JsonFormatter(service="talentflow-test").format(record))
    assert payload["message"] == "candidate.transitioned"
    assert payload["service"] == "talentflow-test"
    assert payload["level"] == "INFO"
    assert payload["candidate_id"] == "c1"
    assert payload["to_status"] == "contacted"


def test_json_formatter_includes_exception() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record("failed", logging.ERROR, sys.exc_info())
    payload = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in payload["exception"]


def test_metrics_track_transitions(service, candidate) -> None:
    service.transition(candidate.id, "new", "contacted", "r1")
    text = render_metrics()
    assert 'talentflow_status_transitions_total{from_status="new",to_status="contacted"}' in text
    assert "# TYPE talentflow_workflow_executions_total counter" in text
    assert "# TYPE talentflow_action_duration_seconds summary" in text


def test_tracing_disabled_uses_noop_spans(monkeypatch) -> None:
    monkeypatch.setenv(DISABLE_ENV, "1")
    assert setup_tracing("talentflow-test") is False
    with traced(__name__, "candidate.transition", candidate__id="c1") as span:
        span.set_attribute("extra", 1)


def test_metrics_server_serves_exposition_text() -> None:
    server = start_metrics_server(port=0, host="127.0.0.1")
    assert start_metrics_server(port=0, host="127.0.0.1") is server
    base = f"http://127.0.0.1:{server.server_address[1]}"

    with httpx.Client(base_url=base, trust_env=False) as client:
        response = client.get("/metrics")
        missing = client.get("/other")

    assert response.status_code == 200
    assert "# TYPE talentflow_status_transitions_total counter" in response.text
    assert missing.status_code == 404
