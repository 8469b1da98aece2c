"""Playwright browser management for capture sessions.

This module provides a Playwright wrapper that handles browser lifecycle
management, HAR recording, cookie-jar snapshots and the Chromium-only
remote address probe used by the run recap.
"""

from pathlib import Path
from typing import Optional, Dict, List, Any, Tuple

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    CDPSession,
    Error as PlaywrightError,
    Page,
    Response,
    Playwright
)

from ..config.settings import InspectorConfig
from ..models.types import BrowserEngine
from ...utils.exceptions import BrowserLaunchError
from ...utils.logging import get_logger

logger = get_logger(__name__)

# fetch() issued from the page for API-test mode; arguments arrive as one object
_SEND_PAYLOAD_JS = """
async ({url, body, contentType}) => {
    const response = await fetch(url, {
        method: 'POST',
        headers: {'Content-Type': contentType},
        body: body,
        credentials: 'include',
    });
    return response.status;
}
"""


class PlaywrightManager:
    """Manages the Playwright browser, context and page for one run."""

    def __init__(self, config: InspectorConfig, har_path: Optional[Path] = None):
        """Initialize the Playwright manager.

        Args:
            config: Inspector configuration
            har_path: Where Playwright records the HAR (written on context close)
        """
        self.config = config
        self.har_path = har_path
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.cdp_session: Optional[CDPSession] = None
        self.remote_address: Optional[str] = None
        self._target_host: Optional[str] = None
        self._context_closed = False

        self._browser_options = self._get_browser_options()
        self._context_options = self._get_context_options()

    @property
    def engine(self) -> BrowserEngine:
        return self.config.browser.engine

    async def initialize(self) -> None:
        """Start Playwright, launch the browser and open the page.

        Raises:
            BrowserLaunchError: If the engine cannot be started
        """
        logger.info(f"Launching {self.engine.display_name} (headless={self.config.browser.headless})")

        try:
            self.playwright = await async_playwright().start()
            browser_type = getattr(self.playwright, self.engine.value)
            self.browser = await browser_type.launch(**self._browser_options)
            self.context = await self.browser.new_context(**self._context_options)
            self.page = await self.context.new_page()
            self.page.set_default_navigation_timeout(self.config.browser.navigation_timeout * 1000)
        except Exception as e:
            logger.error(f"Failed to launch {self.engine.display_name}: {e}")
            await self.cleanup()
            raise BrowserLaunchError(f"Could not launch {self.engine.display_name}: {e}") from e

        logger.info("Browser ready")

    def _get_browser_options(self) -> Dict[str, Any]:
        """Get browser launch options.

        Returns:
            Dictionary of browser launch options
        """
        return {"headless": self.config.browser.headless}

    def _get_context_options(self) -> Dict[str, Any]:
        """Get browser context options.

        Returns:
            Dictionary of browser context options
        """
        browser_config = self.config.browser
        options: Dict[str, Any] = {
            "viewport": {
                "width": browser_config.viewport_width,
                "height": browser_config.viewport_height,
            },
        }

        if browser_config.user_agent:
            options["user_agent"] = browser_config.user_agent

        if self.har_path is not None:
            options["record_har_path"] = str(self.har_path)
            options["record_har_content"] = "embed" if self.config.output.embed_har_content else "omit"

        return options

    async def attach_remote_ip_probe(self, target_host: str) -> None:
        """Record the server address of the main document (Chromium only)."""
        if self.engine is not BrowserEngine.CHROMIUM or not self.context or not self.page:
            return

        self._target_host = target_host
        try:
            self.cdp_session = await self.context.new_cdp_session(self.page)
            await self.cdp_session.send("Network.enable")
            self.cdp_session.on("Network.responseReceived", self._on_cdp_response)
        except Exception as e:
            logger.warning(f"Remote address probe unavailable: {e}")

    def _on_cdp_response(self, params: Dict[str, Any]) -> None:
        try:
            response = params.get("response") or {}
            address = response.get("remoteIPAddress")
            if not address:
                return
            url = response.get("url") or ""
            if params.get("type") == "Document" or (self._target_host and self._target_host in url):
                port = response.get("remotePort")
                self.remote_address = f"{address}:{port}" if port else address
        except Exception as e:
            logger.debug(f"Ignoring CDP response event: {e}")

    async def navigate_to(self, url: str, wait_until: str = "domcontentloaded") -> Optional[Response]:
        """Navigate to a URL.

        Navigation failures (timeouts, aborted loads, closed targets) are
        logged and swallowed: whatever traffic was observed is still reported.

        Args:
            url: Target URL to navigate to
            wait_until: Wait condition (domcontentloaded, load, networkidle, commit)

        Returns:
            Response object from the navigation, or None
        """
        if not self.page:
            raise RuntimeError("Browser not initialized. Call initialize() first.")

        logger.info(f"Navigating to: {url}")

        try:
            response = await self.page.goto(url, wait_until=wait_until)
            logger.info(f"Navigated to {url} - Status: {response.status if response else 'N/A'}")
            return response
        except PlaywrightError as e:
            logger.warning(f"Navigation to {url} did not complete: {e}")
            return None

    async def send_payload(self, url: str, payload: str, content_type: str) -> Optional[int]:
        """POST ``payload`` to ``url`` from inside the page (API-test mode).

        Returns:
            Response status seen by the page, or None if the call failed
        """
        if not self.page:
            raise RuntimeError("Browser not initialized. Call initialize() first.")

        logger.info(f"Sending {content_type} payload to {url}")
        try:
            return await self.page.evaluate(
                _SEND_PAYLOAD_JS, {"url": url, "body": payload, "contentType": content_type}
            )
        except PlaywrightError as e:
            logger.warning(f"API-test request failed: {e}")
            return None

    async def snapshot_cookies(self) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        """Return ``(storage_state, cookies)`` for the context.

        Returns empty values if the context is gone.
        """
        if not self.context or self._context_closed:
            return {}, []
        try:
            storage_state = await self.context.storage_state()
            cookies = await self.context.cookies()
            return storage_state, cookies
        except Exception as e:
            logger.warning(f"Cookie snapshot failed: {e}")
            return {}, []

    async def close_context(self) -> None:
        """Close the context exactly once; Playwright writes the HAR here."""
        if not self.context or self._context_closed:
            return
        self._context_closed = True
        try:
            await self.context.close()
        except Exception as e:
            logger.warning(f"Error closing browser context: {e}")

    async def cleanup(self) -> None:
        """Clean up browser resources."""
        logger.debug("Cleaning up Playwright resources")

        await self.close_context()

        try:
            if self.browser:
                await self.browser.close()
        except Exception as e:
            logger.warning(f"Error closing browser: {e}")

        try:
            if self.playwright:
                await self.playwright.stop()
        except Exception as e:
            logger.warning(f"Error stopping Playwright: {e}")

        self.page = None
        self.context = None
        self.browser = None
        self.playwright = None
        self.cdp_session = None

        logger.debug("Playwright cleanup completed")

