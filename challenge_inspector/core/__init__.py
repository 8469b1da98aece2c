"""Core functionality for Challenge Inspector.

This module contains the components of the capture pipeline:
- Browser automation and the Playwright event boundary
- Exchange correlation, classification and the session narrative
- Configuration and settings management
- Artifact writing and console presentation
"""

from .config.config_manager import ConfigManager
from .browser.playwright_manager import PlaywrightManager
from .capture.session import Session
from .capture.runner import CaptureRunner, CaptureResult
from .analysis.narrative import Narrative, NarrativeBuilder

__all__ = [
    "ConfigManager",
    "PlaywrightManager",
    "Session",
    "CaptureRunner",
    "CaptureResult",
    "Narrative",
    "NarrativeBuilder",
]
