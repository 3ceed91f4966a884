"""Long-running talentflow worker: action dispatcher plus time-trigger scanner."""

from __future__ import annotations

import logging
import os
import signal
from threading import Event as ThreadEvent, Thread
from types import FrameType

from talentflow.observability.logging import configure_logging
from talentflow.observability.metrics import start_metrics_server
from talentflow.observability.telemetry import setup_tracing
from talentflow.service import build_service
from talentflow.settings import get_settings

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, service=settings.service_name)
    setup_tracing(f"{settings.service_name}-worker")
    start_metrics_server(port=int(os.getenv("TALENTFLOW_METRICS_PORT", "8005")))

    service = build_service(settings)
    service.load_workflows()
    recovered = service.recover()
    logger.info(
        "worker.started",
        extra={"extra": {"store": settings.store_backend, "recovered": recovered}},
    )

    stop_event = ThreadEvent()

    def _stop(signum: int, frame: FrameType | None) -> None:
        stop_event.set()

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)

    threads = [
        Thread(target=service.dispatcher.run, args=(stop_event,), daemon=True),
        Thread(target=service.scanner.run, args=(stop_event,), daemon=True),
    ]
    for thread in threads:
        thread.start()

    stop_event.wait()
    for thread in threads:
        thread.join(timeout=5)
    service.close()


if __name__ == "__main__":
    main()
