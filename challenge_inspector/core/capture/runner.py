"""Capture run orchestration.

One ``CaptureRunner.run()`` call drives a complete inspection: launch the
browser, wire the event source into a fresh session, navigate, wait for the
finish condition, then freeze the session, persist the artifacts and build
the narrative. A capture that is cancelled or fails after launch still
saves its artifacts and returns a result marked as interrupted.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from .session import Session
from ..analysis.narrative import Narrative, NarrativeBuilder
from ..browser.event_correlator import EventCorrelator
from ..browser.event_source import PlaywrightEventSource
from ..browser.idle_monitor import NetworkIdleMonitor
from ..browser.playwright_manager import PlaywrightManager
from ..config.settings import InspectorConfig
from ..models.types import FinishPolicy
from ..output.artifacts import ArtifactPaths, ArtifactWriter
from ..output.console import describe_finish
from ...utils.logging import LogContext, get_logger

logger = get_logger(__name__)

ManualSignal = Callable[[], Awaitable[Any]]

INTERRUPTED = "interrupted"


@dataclass
class CaptureResult:
    """Everything a finished run produced."""

    session: Session
    narrative: Narrative
    paths: ArtifactPaths
    finish_description: str
    har_rebuilt: bool = False
    statistics: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def interrupted(self) -> bool:
        """True when the capture ended before its finish condition."""
        return self.session.finish_reason == INTERRUPTED


class CaptureRunner:
    """Runs one capture session end to end."""

    def __init__(self, config: InspectorConfig,
                 manual_signal: Optional[ManualSignal] = None,
                 browser_manager_factory: Callable[..., PlaywrightManager] = PlaywrightManager,
                 captured_at: Optional[datetime] = None):
        """Initialize the runner.

        Args:
            config: Validated configuration with a target URL
            manual_signal: Awaitable factory that completes when the user ends
                the capture (manual finish mode)
            browser_manager_factory: Builds the browser manager; replaced in tests
            captured_at: Run timestamp, defaults to now
        """
        self.config = config
        self.manual_signal = manual_signal
        self.browser_manager_factory = browser_manager_factory
        self.captured_at = captured_at

    async def run(self) -> CaptureResult:
        """Execute the capture.

        Returns:
            Result with the frozen session, its narrative and artifact paths

        Raises:
            BrowserLaunchError: If the browser cannot be started
        """
        session = Session.from_config(self.config, captured_at=self.captured_at or datetime.now())
        writer = ArtifactWriter(Path(self.config.output.directory), session)
        paths = writer.prepare()
        correlator = EventCorrelator(session)

        with LogContext(session_id=session.session_id):
            logger.info(f"Starting capture of {session.target_url}")
            manager = self.browser_manager_factory(self.config, har_path=paths.har_temp)
            try:
                await manager.initialize()
            except Exception:
                self._discard_empty_dir(paths.session_dir)
                raise

            source: Optional[PlaywrightEventSource] = None
            idle: Optional[NetworkIdleMonitor] = None
            reason = INTERRUPTED
            error: Optional[str] = None
            try:
                source = PlaywrightEventSource(manager.page, correlator)
                source.attach()
                idle = NetworkIdleMonitor(self.config.capture.quiet_window)
                idle.attach(manager.page)
                await manager.attach_remote_ip_probe(session.target_host)

                await manager.navigate_to(session.target_url)
                if self.config.target.payload:
                    await manager.send_payload(
                        session.target_url, self.config.target.payload, self.config.target.content_type
                    )

                idle.arm()
                reason = await self._wait_for_finish(session, idle)
                logger.info(f"Capture finished ({reason})")
            except asyncio.CancelledError:
                # Ctrl-C under asyncio.run cancels this task; what was captured is still reported
                logger.warning("Capture interrupted")
            except Exception as e:
                error = str(e) or type(e).__name__
                logger.error(f"Capture failed: {error}")
            finally:
                session.freeze(reason)
                if source is not None:
                    source.detach()
                if idle is not None:
                    idle.close()
                session.remote_address = manager.remote_address
                session.note_user_agent(self.config.browser.user_agent)

                storage_state, cookies = await manager.snapshot_cookies()
                writer.write_cookie_jar(storage_state, cookies)
                await manager.cleanup()
                writer.finalize_har()

            narrative = NarrativeBuilder(session).build()
            statistics = correlator.get_statistics()
            logger.debug(f"Correlation statistics: {statistics}")

        return CaptureResult(
            session=session,
            narrative=narrative,
            paths=paths,
            finish_description=describe_finish(session.finish_policy, self.config.capture),
            har_rebuilt=writer.har_fallback_used,
            statistics=statistics,
            error=error,
        )

    async def _wait_for_finish(self, session: Session, idle: NetworkIdleMonitor) -> str:
        """Wait for the finish condition of the session's policy or the hard cap.

        Returns:
            "idle", "manual" or "timeout"
        """
        cap = self.config.capture.max_capture_time
        waiters: Dict[asyncio.Future, str] = {}

        if session.finish_policy is FinishPolicy.AUTO:
            waiters[asyncio.ensure_future(idle.wait_idle())] = "idle"
        elif session.finish_policy is FinishPolicy.MANUAL and self.manual_signal is not None:
            waiters[asyncio.ensure_future(self.manual_signal())] = "manual"

        if not waiters:
            await asyncio.sleep(cap)
            return "timeout"

        try:
            done, _ = await asyncio.wait(waiters, timeout=cap, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

        if not done:
            logger.warning(f"Max capture time of {cap:g}s reached")
            return "timeout"
        return waiters[next(iter(done))]

    @staticmethod
    def _discard_empty_dir(path: Path) -> None:
        try:
            path.rmdir()
        except OSError:
            # Not empty or already gone
            pass
