"""On-disk artifacts of a capture run.

Each run gets its own directory under the output root. The HAR is recorded
by Playwright into ``<stem>.har.tmp`` and moved into place once the browser
context is closed; when Playwright produced nothing a HAR is rebuilt from the
captured exchanges. The cookie jar is always written.
"""

import json
import os
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..capture.session import Session
from ..models.exchange import Exchange
from ... import __version__
from ...utils.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize(value: str, fallback: str = "target") -> str:
    """Make ``value`` safe to use as a file or directory name."""
    cleaned = _UNSAFE_CHARS.sub("_", value or "").strip("._")
    return cleaned[:80] or fallback


def session_stem(captured_at: datetime, host: str) -> str:
    """``YYYYMMDD-HHMMSS_<host>`` naming shared by the run directory and files."""
    return f"{captured_at:%Y%m%d-%H%M%S}_{sanitize(host)}"


@dataclass(frozen=True)
class ArtifactPaths:
    """Locations of a run's files."""

    session_dir: Path
    har: Path
    cookies: Path

    @property
    def har_temp(self) -> Path:
        return self.har.with_name(self.har.name + ".tmp")

    @property
    def cookies_temp(self) -> Path:
        return self.cookies.with_name(self.cookies.name + ".tmp")


def write_json_atomic(path: Path, data: Any) -> Path:
    """Write JSON to a ``.tmp`` sibling, then rename it over ``path``."""
    temp_path = path.with_name(path.name + ".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)
        os.replace(temp_path, path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise
    return path


def _iso_timestamp(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).astimezone().isoformat(timespec="milliseconds")


def build_har(exchanges: Iterable[Exchange], browser_name: str = "", page_url: str = "") -> Dict[str, Any]:
    """Build a HAR 1.2 document from captured exchanges.

    Used only when the browser did not record one; bodies are not available
    at this level, so response content is left empty.

    Args:
        exchanges: Exchanges in sequence order
        browser_name: Engine name for the ``browser`` block
        page_url: URL of the inspected page

    Returns:
        HAR document as a dictionary
    """
    ordered = sorted(exchanges, key=lambda exchange: exchange.sequence)
    entries: List[Dict[str, Any]] = []

    for exchange in ordered:
        elapsed = exchange.elapsed_ms or 0.0
        entry = {
            "startedDateTime": _iso_timestamp(exchange.timestamp),
            "time": elapsed,
            "request": {
                "method": exchange.method,
                "url": exchange.url,
                "httpVersion": "HTTP/1.1",
                "cookies": [],
                "headers": exchange.request_headers.to_har(),
                "queryString": [],
                "headersSize": -1,
                "bodySize": len(exchange.request_body.encode("utf-8")) if exchange.request_body else 0,
            },
            "response": {
                "status": exchange.status if exchange.status is not None else 0,
                "statusText": exchange.status_text if exchange.status is not None else "No Response",
                "httpVersion": "HTTP/1.1",
                "cookies": [
                    {"name": cookie.name, "value": cookie.value} for cookie in exchange.server_cookies
                ],
                "headers": exchange.response_headers.to_har(),
                "content": {
                    "size": 0,
                    "mimeType": exchange.response_headers.get("content-type", "") or "",
                },
                "redirectURL": exchange.response_headers.get("location", "") or "",
                "headersSize": -1,
                "bodySize": -1,
            },
            "cache": {},
            "timings": {
                "send": 0,
                "wait": elapsed,
                "receive": 0,
            },
            "_resourceType": exchange.traffic_type.value,
        }
        if exchange.request_body:
            entry["request"]["postData"] = {
                "mimeType": exchange.content_type or "application/octet-stream",
                "text": exchange.request_body,
            }
        entries.append(entry)

    pages = []
    if ordered:
        pages.append({
            "startedDateTime": _iso_timestamp(ordered[0].timestamp),
            "id": "page_1",
            "title": page_url,
            "pageTimings": {},
        })
        for entry in entries:
            entry["pageref"] = "page_1"

    return {
        "log": {
            "version": "1.2",
            "creator": {
                "name": "Challenge Inspector",
                "version": __version__,
            },
            "browser": {
                "name": browser_name or "unknown",
                "version": "",
            },
            "pages": pages,
            "entries": entries,
        }
    }


class ArtifactWriter:
    """Creates the run directory and writes the HAR and cookie jar."""

    def __init__(self, root: Path, session: Session):
        """Initialize the writer.

        Args:
            root: Output root directory
            session: Capture session the artifacts belong to
        """
        self.root = Path(root)
        self.session = session
        stem = session_stem(session.captured_at, session.target_host)
        session_dir = self.root / stem
        self.paths = ArtifactPaths(
            session_dir=session_dir,
            har=session_dir / f"{stem}.har",
            cookies=session_dir / f"{stem}.cookies.json",
        )
        self.har_fallback_used = False

    def prepare(self) -> ArtifactPaths:
        """Create the run directory."""
        self.paths.session_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Session directory: {self.paths.session_dir}")
        return self.paths

    def write_cookie_jar(self, storage_state: Optional[Dict[str, Any]],
                         cookies: Optional[List[Dict[str, Any]]]) -> Path:
        """Write ``{url, timestamp, storageState, cookies}`` atomically."""
        data = {
            "url": self.session.target_url,
            "timestamp": self.session.captured_at.astimezone().isoformat(),
            "storageState": storage_state or {},
            "cookies": cookies or [],
        }
        write_json_atomic(self.paths.cookies, data)
        logger.info(f"Cookie jar saved: {self.paths.cookies} ({len(data['cookies'])} cookies)")
        return self.paths.cookies

    def finalize_har(self, exchanges: Optional[Iterable[Exchange]] = None) -> Path:
        """Move the recorded HAR into place, or build one from the exchanges.

        Must be called after the browser context is closed.
        """
        temp_path = self.paths.har_temp
        if temp_path.exists() and temp_path.stat().st_size > 0:
            os.replace(temp_path, self.paths.har)
            logger.info(f"HAR saved: {self.paths.har}")
            return self.paths.har

        temp_path.unlink(missing_ok=True)
        source = self.session.exchanges if exchanges is None else exchanges
        har = build_har(source, browser_name=self.session.browser_name, page_url=self.session.target_url)
        write_json_atomic(self.paths.har, har)
        self.har_fallback_used = True
        logger.warning(
            f"Browser did not record a HAR; rebuilt {len(har['log']['entries'])} entries from capture"
        )
        return self.paths.har

