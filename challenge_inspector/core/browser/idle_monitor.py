"""Network-quiet detection for the auto-finish mode."""

import asyncio
from typing import Any, Optional

from playwright.async_api import Page

from ...utils.logging import get_logger

logger = get_logger(__name__)


class NetworkIdleMonitor:
    """Signals once no request has been in flight for ``quiet_window`` seconds.

    Counting starts as soon as the monitor is attached; the quiet timer only
    runs after ``arm()`` so the idle gap before navigation does not count.
    """

    def __init__(self, quiet_window: float):
        self.quiet_window = quiet_window
        self._inflight = 0
        self._armed = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._idle = asyncio.Event()

    @property
    def inflight(self) -> int:
        return self._inflight

    @property
    def is_idle(self) -> bool:
        return self._idle.is_set()

    def attach(self, page: Page) -> None:
        page.on("request", self.request_started)
        page.on("requestfinished", self.request_done)
        page.on("requestfailed", self.request_done)

    def request_started(self, _request: Any = None) -> None:
        self._inflight += 1
        self._cancel_timer()

    def request_done(self, _request: Any = None) -> None:
        self._inflight = max(0, self._inflight - 1)
        if self._inflight == 0 and self._armed:
            self._start_timer()

    def arm(self) -> None:
        """Start watching for quiet; called once navigation has settled."""
        self._armed = True
        if self._inflight == 0:
            self._start_timer()

    async def wait_idle(self) -> None:
        await self._idle.wait()

    def close(self) -> None:
        self._cancel_timer()

    def _start_timer(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.quiet_window, self._fire)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        if self._inflight == 0 and not self._idle.is_set():
            logger.info(f"Network idle for {self.quiet_window:g}s")
            self._idle.set()
