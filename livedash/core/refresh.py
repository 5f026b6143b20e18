"""One-shot refresh timer with a single outstanding handle per session."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from livedash.constants import MAX_REFRESH_SECONDS, MIN_REFRESH_SECONDS

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Arms one timer at a time and calls `on_fire` when it expires.

    `on_fire` is expected to enqueue a `TimerFired` event; the controller
    re-arms while handling it. `close()` disarms for good.
    """

    def __init__(self, on_fire: Callable[[], None], *, time_unit: float = 1.0) -> None:
        self._on_fire = on_fire
        self._time_unit = time_unit  # seconds per refresh unit; tests shrink it
        self._handle: Optional[asyncio.TimerHandle] = None
        self._closed = False
        self.fired = 0

    @property
    def armed(self) -> bool:
        return self._handle is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def arm(self, seconds: int) -> asyncio.TimerHandle:
        """Replace any outstanding timer with one firing after `seconds`."""
        if self._closed:
            raise RuntimeError("refresh scheduler is closed")
        self.cancel()
        delay = min(max(int(seconds), MIN_REFRESH_SECONDS), MAX_REFRESH_SECONDS) * self._time_unit
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire)
        logger.debug("Refresh timer armed for %.3fs", delay)
        return self._handle

    def _fire(self) -> None:
        self._handle = None
        if self._closed:
            return
        self.fired += 1
        self._on_fire()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def close(self) -> None:
        self.cancel()
        self._closed = True
