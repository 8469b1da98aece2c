"""Pytest configuration and fixtures for Challenge Inspector tests."""

import asyncio
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest

from challenge_inspector.core.browser.event_correlator import EventCorrelator, RequestObserved, ResponseObserved
from challenge_inspector.core.browser.playwright_manager import PlaywrightManager
from challenge_inspector.core.capture.session import Session
from challenge_inspector.core.config.settings import InspectorConfig
from challenge_inspector.core.models.exchange import Exchange
from challenge_inspector.core.models.headers import HeaderBag
from challenge_inspector.utils.logging import setup_logging

TARGET_URL = "https://www.example.com/"
CAPTURED_AT = datetime(2026, 3, 14, 9, 26, 53)


@pytest.fixture
def test_config(tmp_path: Path) -> InspectorConfig:
    """Create a test configuration."""
    config = InspectorConfig()

    # Override with test-specific values
    config.target.url = TARGET_URL
    config.browser.headless = True
    config.capture.quiet_window = 0.05
    config.capture.max_capture_time = 2.0
    config.output.directory = str(tmp_path / "har")
    config.logging.level = "DEBUG"

    return config


@pytest.fixture
def session(test_config: InspectorConfig) -> Session:
    """Create a capture session for the test target."""
    return Session.from_config(test_config, captured_at=CAPTURED_AT)


@pytest.fixture
def correlator(session: Session) -> EventCorrelator:
    return EventCorrelator(session)


class TrafficRecorder:
    """Feeds request/response events into a correlator the way the browser would."""

    def __init__(self, correlator: EventCorrelator):
        self.correlator = correlator
        self.clock = 1_700_000_000.0

    def _tick(self) -> float:
        self.clock += 0.01
        return self.clock

    def request(self, url: str, resource_type: str = "document", method: str = "GET",
                headers: Optional[Dict[str, str]] = None, body: Optional[str] = None,
                main_frame: bool = True) -> Optional[Exchange]:
        return self.correlator.on_request(RequestObserved(
            url=url,
            method=method,
            resource_type=resource_type,
            headers=HeaderBag(headers or {}),
            body=body,
            is_navigation=resource_type == "document",
            is_main_frame=main_frame,
            timestamp=self._tick(),
        ))

    def respond(self, url: str, status: int = 200, method: str = "GET",
                headers: Optional[List[Tuple[str, str]]] = None) -> Optional[Exchange]:
        return self.correlator.on_response(ResponseObserved(
            url=url,
            method=method,
            status=status,
            headers=HeaderBag(headers or []),
            status_text="",
            timestamp=self._tick(),
        ))

    def exchange(self, url: str, status: int = 200, resource_type: str = "document",
                 method: str = "GET", headers: Optional[Dict[str, str]] = None,
                 response_headers: Optional[List[Tuple[str, str]]] = None,
                 body: Optional[str] = None) -> Optional[Exchange]:
        """Request immediately followed by its response."""
        created = self.request(url, resource_type=resource_type, method=method, headers=headers, body=body)
        self.respond(url, status=status, method=method, headers=response_headers)
        return created


@pytest.fixture
def recorder(correlator: EventCorrelator) -> TrafficRecorder:
    return TrafficRecorder(correlator)


class FakePage:
    """Minimal stand-in for a Playwright page's event emitter.

    Coroutine handlers are scheduled as tasks in emit order, like Playwright
    does for async listeners.
    """

    def __init__(self):
        self.main_frame = object()
        self._handlers = defaultdict(list)
        self._tasks: List[asyncio.Future] = []

    def on(self, event: str, handler) -> None:
        self._handlers[event].append(handler)

    def remove_listener(self, event: str, handler) -> None:
        self._handlers[event].remove(handler)

    def listener_count(self, event: str) -> int:
        return len(self._handlers[event])

    def emit(self, event: str, payload=None) -> None:
        for handler in list(self._handlers[event]):
            result = handler(payload)
            if asyncio.iscoroutine(result):
                self._tasks.append(asyncio.ensure_future(result))

    async def drain(self) -> None:
        """Wait for every scheduled handler, including ones scheduled meanwhile."""
        while self._tasks:
            tasks, self._tasks = self._tasks, []
            await asyncio.gather(*tasks)


def fake_request(page: FakePage, url: str, method: str = "GET", resource_type: str = "document",
                 headers: Optional[Dict[str, str]] = None,
                 full_headers: Optional[Dict[str, str]] = None,
                 post_data: Optional[str] = None, main_frame: bool = True) -> MagicMock:
    """Build a mock Playwright ``Request``."""
    request = MagicMock()
    request.url = url
    request.method = method
    request.resource_type = resource_type
    request.headers = dict(headers or {})
    request.post_data = post_data
    request.is_navigation_request.return_value = resource_type == "document"
    request.frame = page.main_frame if main_frame else object()
    complete = full_headers if full_headers is not None else (headers or {})
    request.headers_array = AsyncMock(
        return_value=[{"name": name, "value": value} for name, value in complete.items()]
    )
    return request


def fake_response(request: MagicMock, status: int = 200,
                  headers: Optional[List[Tuple[str, str]]] = None,
                  status_text: str = "OK") -> MagicMock:
    """Build a mock Playwright ``Response`` for ``request``."""
    response = MagicMock()
    response.url = request.url
    response.request = request
    response.status = status
    response.status_text = status_text
    response.headers_array = AsyncMock(
        return_value=[{"name": name, "value": value} for name, value in (headers or [])]
    )
    return response


@pytest.fixture
def fake_page() -> FakePage:
    return FakePage()


@pytest.fixture
def mock_browser_manager() -> AsyncMock:
    """Create a mock browser manager."""
    mock = AsyncMock(spec=PlaywrightManager)
    mock.initialize.return_value = None
    mock.cleanup.return_value = None
    mock.navigate_to.return_value = MagicMock(status=200)
    mock.snapshot_cookies.return_value = ({}, [])
    mock.remote_address = None
    mock.page = FakePage()
    return mock


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Set up logging for tests."""
    setup_logging(
        level="DEBUG",
        format_type="simple",
        enable_sensitive_data_redaction=False,  # Disable for easier testing
        force=True,
    )


@pytest.fixture
def temp_test_dir(tmp_path: Path) -> Path:
    """Create a temporary directory for test files."""
    test_dir = tmp_path / "chinspect_test"
    test_dir.mkdir(parents=True, exist_ok=True)
    return test_dir
