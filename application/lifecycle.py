"""Per-request lifecycle: state, cancellation handle and streaming watchdog."""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from domain.cancellation import CancelSignal
from domain.errors import CancelCause

logger = logging.getLogger(__name__)


class RequestState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    STREAMING = "streaming"
    FILTERING = "filtering"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({RequestState.COMPLETED, RequestState.CANCELLED, RequestState.FAILED})


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


class Watchdog:
    """Fires `on_timeout` when `arm()`/`rearm()` is not called again within `timeout_s`."""

    def __init__(self, timeout_s: float, on_timeout: Callable[[], None]) -> None:
        self.timeout_s = timeout_s
        self._on_timeout = on_timeout
        self._timer: asyncio.TimerHandle | None = None
        self.fired = False

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def arm(self) -> None:
        self.disarm()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timeout_s, self._fire)

    def rearm(self) -> None:
        if self._timer is not None:
            self.arm()

    def disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        self.fired = True
        logger.warning("No stream data for %.1fs; cancelling request", self.timeout_s)
        self._on_timeout()


class RequestHandle:
    """
    The orchestrator's one live request.

    Owns the cancel signal handed to the adapter and the task running the vendor
    call, so cancelling interrupts a blocked read as well as the chunk loop.
    """

    def __init__(self, request_id: str, feature: str) -> None:
        self.request_id = request_id
        self.feature = feature
        self.signal = CancelSignal()
        self.task: asyncio.Task[Any] | None = None
        self.state = RequestState.PREPARING
        self.started_at = utc_now_iso()
        self._started_monotonic = time.monotonic()

    @property
    def active(self) -> bool:
        return self.state not in TERMINAL_STATES

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._started_monotonic) * 1000)

    def cancel(self, cause: CancelCause = CancelCause.USER) -> bool:
        """Cancel once; returns False if already cancelled or finished."""
        if not self.active or not self.signal.cancel(cause):
            return False
        logger.info("Cancelling request %s (cause=%s)", self.request_id, cause.value)
        if self.task is not None and not self.task.done():
            self.task.cancel()
        return True
