"""Browser automation module for Challenge Inspector.

This module provides browser automation capabilities using Playwright,
including HAR recording, request/response correlation and network-idle
detection.
"""

from .playwright_manager import PlaywrightManager
from .event_correlator import EventCorrelator, RequestObserved, ResponseObserved
from .event_source import PlaywrightEventSource
from .idle_monitor import NetworkIdleMonitor

__all__ = [
    "PlaywrightManager",
    "EventCorrelator",
    "RequestObserved",
    "ResponseObserved",
    "PlaywrightEventSource",
    "NetworkIdleMonitor",
]
