"""Challenge Inspector - browser-driven inspection of anti-bot challenge flows

Loads a target URL in a real browser, correlates the page's Document, XHR and
Fetch traffic, and narrates whether and how a bot-protection challenge
(device check, CAPTCHA, block) was triggered. The HAR and the final cookie jar
are kept for offline analysis.
"""

__version__ = "0.1.0"
__description__ = "Browser-driven inspector for anti-bot challenge flows"

from .core.config import ConfigManager
from .core.capture.runner import CaptureRunner

__all__ = [
    "ConfigManager",
    "CaptureRunner",
]
