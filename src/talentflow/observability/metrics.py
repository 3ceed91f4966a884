"""Prometheus-style metrics utilities without external dependencies."""

from __future__ import annotations

from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, HTTPServer
import logging
from threading import Lock, Thread
import time
from types import TracebackType

logger = logging.getLogger(__name__)


@dataclass
class _LabeledCounter:
    value: float = 0.0
    _lock: Lock = field(default_factory=Lock, repr=False)

    def inc(self, amount: float = 1.0) -> None:
        with self._lock:
            self.value += amount


@dataclass
class _LabeledHistogram:
    count: int = 0
    total: float = 0.0
    _lock: Lock = field(default_factory=Lock, repr=False)

    def observe(self, value: float) -> None:
        with self._lock:
            self.count += 1
            self.total += value

    def time(self) -> _Timer:
        return _Timer(self)


@dataclass
class Counter:
    name: str
    description: str
    label_names: tuple[str, ...]
    values: dict[tuple[str, ...], _LabeledCounter] = field(default_factory=dict)

    def labels(self, **labels: str) -> _LabeledCounter:
        key = tuple(labels[name] for name in self.label_names)
        return self.values.setdefault(key, _LabeledCounter())

    def render(self) -> list[str]:
        lines = [f"# HELP {self.name} {self.description}", f"# TYPE {self.name} counter"]
        for key, counter in self.values.items():
            lines.append(f"{self.name}{{{_label_str(self.label_names, key)}}} {counter.value}")
        return lines


@dataclass
class Histogram:
    name: str
    description: str
    label_names: tuple[str, ...]
    values: dict[tuple[str, ...], _LabeledHistogram] = field(default_factory=dict)

    def labels(self, **labels: str) -> _LabeledHistogram:
        key = tuple(labels[name] for name in self.label_names)
        return self.values.setdefault(key, _LabeledHistogram())

    def render(self) -> list[str]:
        lines = [f"# HELP {self.name} {self.description}", f"# TYPE {self.name} summary"]
        for key, histogram in self.values.items():
            label_str = _label_str(self.label_names, key)
            lines.append(f"{self.name}_count{{{label_str}}} {histogram.count}")
            lines.append(f"{self.name}_sum{{{label_str}}} {histogram.total}")
        return lines


def _label_str(names: tuple[str, ...], values: tuple[str, ...]) -> str:
    return ",".join(f'{name}="{value}"' for name, value in zip(names, values))


TRANSITIONS = Counter(
    name="talentflow_status_transitions_total",
    description="Candidate status transitions applied",
    label_names=("from_status", "to_status"),
)

WORKFLOW_EXECUTIONS = Counter(
    name="talentflow_workflow_executions_total",
    description="Workflow executions by final status",
    label_names=("status",),
)

ACTION_DURATION = Histogram(
    name="talentflow_action_duration_seconds",
    description="Duration of workflow action attempts",
    label_names=("action_type",),
)

_REGISTRY: tuple[Counter | Histogram, ...] = (TRANSITIONS, WORKFLOW_EXECUTIONS, ACTION_DURATION)


class _MetricsHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:  # noqa: N802
        if self.path != "/metrics":
            self.send_response(404)
            self.end_headers()
            return
        body = render_metrics().encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/plain; version=0.0.4")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        return None


_server: HTTPServer | None = None
_server_lock = Lock()


def start_metrics_server(port: int = 8005, host: str = "0.0.0.0") -> HTTPServer:
    """Serve `/metrics` from a daemon thread; later calls return the running server."""
    global _server
    with _server_lock:
        if _server is None:
            _server = HTTPServer((host, port), _MetricsHandler)
            Thread(target=_server.serve_forever, name="metrics-server", daemon=True).start()
            logger.info("metrics.server_started", extra={"extra": {"host": host, "port": port}})
        return _server


def render_metrics() -> str:
    lines: list[str] = []
    for metric in _REGISTRY:
        lines.extend(metric.render())
    return "\n".join(lines) + "\n"


class _Timer:
    def __init__(self, histogram: _LabeledHistogram) -> None:
        self._histogram = histogram
        self._start: float | None = None

    def __enter__(self) -> _Timer:
        self._start = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._start is None:
            return
        self._histogram.observe(time.perf_counter() - self._start)
