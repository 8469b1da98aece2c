"""Playwright event boundary.

The only place that touches Playwright ``Request``/``Response`` objects for
capture purposes. Each object is normalized into a ``RequestObserved`` or
``ResponseObserved`` event with a ``HeaderBag`` and handed to the correlator.
"""

import time
from typing import Optional

from playwright.async_api import Page, Request, Response

from ..models.headers import HeaderBag
from .event_correlator import EventCorrelator, RequestObserved, ResponseObserved
from ...utils.logging import get_logger

logger = get_logger(__name__)


class PlaywrightEventSource:
    """Feeds a page's request/response events into an ``EventCorrelator``."""

    def __init__(self, page: Page, correlator: EventCorrelator):
        self.page = page
        self.correlator = correlator
        self._attached = False

    def attach(self) -> None:
        """Subscribe to the page's network events."""
        if self._attached:
            return
        self.page.on("request", self._on_request)
        self.page.on("response", self._on_response)
        self._attached = True
        logger.debug("Event source attached")

    def detach(self) -> None:
        if not self._attached:
            return
        try:
            self.page.remove_listener("request", self._on_request)
            self.page.remove_listener("response", self._on_response)
        except Exception as e:
            logger.debug(f"Could not remove page listeners: {e}")
        self._attached = False

    def _is_main_frame(self, request: Request) -> bool:
        try:
            return request.frame == self.page.main_frame
        except Exception:
            # Service-worker requests have no frame
            return False

    def _read_body(self, request: Request) -> Optional[str]:
        try:
            return request.post_data
        except Exception:
            # Binary bodies do not decode as text
            return None

    async def _on_request(self, request: Request) -> None:
        """Create the exchange synchronously, then merge the full header set."""
        try:
            event = RequestObserved(
                url=request.url,
                method=request.method,
                resource_type=request.resource_type,
                headers=HeaderBag(request.headers),
                body=self._read_body(request),
                is_navigation=request.is_navigation_request(),
                is_main_frame=self._is_main_frame(request),
                timestamp=time.time(),
            )
        except Exception as e:
            logger.debug(f"Unreadable request event: {e}")
            return

        # Sequence assignment happens here, before the first await
        exchange = self.correlator.on_request(event)
        if exchange is None:
            return

        headers = await self._read_request_headers(request)
        if headers is not None:
            self.correlator.on_request_headers(exchange, headers)

    async def _on_response(self, response: Response) -> None:
        timestamp = time.time()
        try:
            url = response.url
            method = response.request.method
            status = response.status
            status_text = response.status_text
        except Exception as e:
            logger.debug(f"Unreadable response event: {e}")
            return

        # Claimed before the header read; a later request for the same URL and
        # method must not take this response
        exchange = self.correlator.claim_response(url, method)
        if exchange is None:
            return

        headers = await self._read_response_headers(response)
        self.correlator.close_exchange(exchange, ResponseObserved(
            url=url,
            method=method,
            status=status,
            headers=headers if headers is not None else HeaderBag(),
            status_text=status_text,
            timestamp=timestamp,
        ))

    async def _read_request_headers(self, request: Request) -> Optional[HeaderBag]:
        try:
            return HeaderBag(await request.headers_array())
        except Exception as e:
            # Target closed or request already gone
            logger.debug(f"Request headers unavailable for {request.url}: {e}")
            return None

    async def _read_response_headers(self, response: Response) -> Optional[HeaderBag]:
        try:
            return HeaderBag(await response.headers_array())
        except Exception as e:
            logger.debug(f"Response headers unavailable for {response.url}: {e}")
            return None
