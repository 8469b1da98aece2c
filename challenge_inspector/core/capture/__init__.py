"""Capture session state and run orchestration.

``CaptureRunner`` lives in ``core.capture.runner``; it is not re-exported here
because the browser layer imports ``Session`` from this package.
"""

from .session import Session

__all__ = ["Session"]
