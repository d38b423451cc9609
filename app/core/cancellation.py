"""Caller-owned cancellation for long-running orchestration calls."""

from __future__ import annotations

import threading

from app.core.logging import get_logger

logger = get_logger("core.cancellation")


class CancellationToken:
    """Thread-safe flag a caller sets to stop an in-flight planning call.

    The orchestrator checks the token after the language model has answered
    and before anything is persisted.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()
        logger.info("Cancellation requested - planning will stop before persistence")

    def reset(self) -> None:
        self._event.clear()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
