"""Exchange and cookie records produced by the capture pipeline."""

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlsplit

from .headers import HeaderBag
from .types import Category, TrafficType
from ...utils.exceptions import ExchangeStateError

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

# Fields that may only go from absent to present
SIGNAL_FIELDS = ("client_cookie", "client_id")


@dataclass(frozen=True)
class CookieRecord:
    """One cookie parsed from a Set-Cookie header value."""

    name: str
    value: str
    domain: Optional[str] = None
    path: Optional[str] = None
    same_site: Optional[str] = None
    secure: bool = False
    http_only: bool = False
    max_age: Optional[int] = None
    expires: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["expires"] = self.expires.isoformat() if self.expires else None
        return data

    def __str__(self) -> str:
        return f"{self.name}={self.value}"


@dataclass
class Exchange:
    """One observed request/response pair.

    Created when a qualifying request is seen; closed exactly once by the
    matching response.
    """

    sequence: int
    url: str
    method: str
    traffic_type: TrafficType
    category: Category
    in_scope: bool
    timestamp: float
    is_navigation: bool = False
    is_main_frame: bool = False
    request_headers: HeaderBag = field(default_factory=HeaderBag)
    request_body: Optional[str] = None
    status: Optional[int] = None
    status_text: str = ""
    response_headers: HeaderBag = field(default_factory=HeaderBag)
    response_timestamp: Optional[float] = None
    client_cookie: Optional[str] = None
    client_id: Optional[str] = None
    server_cookies: List[CookieRecord] = field(default_factory=list)

    @property
    def host(self) -> str:
        return (urlsplit(self.url).hostname or "").lower()

    @property
    def is_open(self) -> bool:
        return self.status is None

    @property
    def is_redirect(self) -> bool:
        return self.status in REDIRECT_STATUSES

    @property
    def elapsed_ms(self) -> Optional[float]:
        if self.response_timestamp is None:
            return None
        return max(0.0, (self.response_timestamp - self.timestamp) * 1000)

    @property
    def content_type(self) -> str:
        return (self.request_headers.get("content-type") or "").lower()

    def record_response(self, status: int, headers: HeaderBag,
                        status_text: str = "", timestamp: Optional[float] = None) -> None:
        """Close the exchange with its response half.

        Raises:
            ExchangeStateError: If a response was already recorded
        """
        if self.status is not None:
            raise ExchangeStateError(
                f"Exchange #{self.sequence} already closed with status {self.status}"
            )
        self.status = status
        self.status_text = status_text
        self.response_headers = headers
        self.response_timestamp = timestamp

    def merge_request_headers(self, headers: HeaderBag) -> bool:
        """Replace provisional request headers with the complete set.

        Only an open exchange takes the new headers; once closed, late header
        reads may still fill signals but never rewrite the request half.

        Returns:
            True if the headers were replaced
        """
        if not headers or not self.is_open:
            return False
        self.request_headers = headers
        return True

    def fill_signal(self, name: str, value: Optional[str]) -> bool:
        """Set a header-derived signal if it is still absent.

        Returns:
            True if the signal was set by this call
        """
        if name not in SIGNAL_FIELDS:
            raise ExchangeStateError(f"Unknown signal: {name}")
        if not value or getattr(self, name) is not None:
            return False
        setattr(self, name, value)
        return True

    def decoded_body(self, limit: int = 2000) -> Optional[str]:
        """Request body rendered for display according to its content type."""
        if not self.request_body:
            return None
        body = self.request_body
        content_type = self.content_type
        if "json" in content_type:
            try:
                body = json.dumps(json.loads(body), indent=2, ensure_ascii=False)
            except ValueError:
                pass
        elif "application/x-www-form-urlencoded" in content_type:
            pairs = parse_qsl(body, keep_blank_values=True)
            if pairs:
                body = "\n".join(f"{key}={value}" for key, value in pairs)
        if len(body) > limit:
            body = body[:limit - 1] + "…"
        return body

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "timestamp": self.timestamp,
            "url": self.url,
            "method": self.method,
            "traffic_type": self.traffic_type.value,
            "category": self.category.value,
            "in_scope": self.in_scope,
            "is_navigation": self.is_navigation,
            "is_main_frame": self.is_main_frame,
            "status": self.status,
            "status_text": self.status_text,
            "request_headers": self.request_headers.to_dict(),
            "response_headers": self.response_headers.to_dict(),
            "request_body": self.request_body,
            "client_cookie": self.client_cookie,
            "client_id": self.client_id,
            "server_cookies": [cookie.to_dict() for cookie in self.server_cookies],
        }
