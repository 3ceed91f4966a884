"""OpenTelemetry tracing for pipeline operations.

Spans wrap transitions, workflow evaluation, action delivery and scans. Set
``TALENTFLOW_DISABLE_TRACING=1`` to swap in a no-op tracer (tests, demos).
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import logging
import os
from typing import Any

logger = logging.getLogger(__name__)

DISABLE_ENV = "TALENTFLOW_DISABLE_TRACING"


class _NoOpSpan:
    def __enter__(self) -> _NoOpSpan:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: object | None,
    ) -> None:
        return None

    def set_attribute(self, key: str, value: Any) -> None:
        return None


class _NoOpTracer:
    def start_as_current_span(self, name: str) -> _NoOpSpan:
        return _NoOpSpan()


_NOOP_TRACER = _NoOpTracer()


def tracing_disabled() -> bool:
    return os.getenv(DISABLE_ENV) == "1"


def setup_tracing(service_name: str, exporter: Any | None = None) -> bool:
    """Install a tracer provider; returns False when tracing is disabled."""
    if tracing_disabled():
        logger.info("tracing.disabled", extra={"extra": {"service": service_name}})
        return False
    from opentelemetry import trace
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(BatchSpanProcessor(exporter or ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    logger.info("tracing.configured", extra={"extra": {"service": service_name}})
    return True


def get_tracer(name: str) -> Any:
    if tracing_disabled():
        return _NOOP_TRACER
    from opentelemetry import trace

    return trace.get_tracer(name)


@contextmanager
def traced(tracer_name: str, span_name: str, **attributes: str | int) -> Iterator[Any]:
    """Run the block inside a span; attribute keys use `__` for `.` (`candidate__id`)."""
    with get_tracer(tracer_name).start_as_current_span(span_name) as span:
        for key, value in attributes.items():
            span.set_attribute(key.replace("__", "."), value)
        yield span
