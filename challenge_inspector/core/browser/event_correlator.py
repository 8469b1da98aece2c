"""Request/response correlation for the capture session.

This module turns the browser's two unordered event streams (requests seen,
responses seen) into one ordered list of exchanges. Type and static-asset
filters are applied when a request is first observed; each response closes
the most recent exchange with the same URL and method that was still open when
the response was observed.
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..analysis.classifier import classify_traffic, is_challenge_host, is_in_scope, is_static_asset
from ..analysis.cookies import extract_cookies, extract_request_cookie
from ..capture.session import Session
from ..models.exchange import Exchange
from ..models.headers import HeaderBag
from ..models.types import TrafficType
from ...utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RequestObserved:
    """A request as reported by the browser."""

    url: str
    method: str
    resource_type: str
    headers: HeaderBag = field(default_factory=HeaderBag)
    body: Optional[str] = None
    is_navigation: bool = False
    is_main_frame: bool = False
    timestamp: float = field(default_factory=time.time)


@dataclass
class ResponseObserved:
    """A response as reported by the browser."""

    url: str
    method: str
    status: int
    headers: HeaderBag = field(default_factory=HeaderBag)
    status_text: str = ""
    timestamp: float = field(default_factory=time.time)


class EventCorrelator:
    """Builds the session's exchange list from browser events.

    The correlator is the only writer of the session. Every handler runs to
    completion on the event loop, so no locking is needed; any error while
    handling one event drops that event and leaves the rest of the capture
    untouched.
    """

    def __init__(self, session: Session):
        """Initialize the correlator.

        Args:
            session: Capture session that owns the exchanges
        """
        self.session = session
        self.logger = get_logger(f"{__name__}.correlator")
        self._open: Dict[Tuple[str, str], List[Exchange]] = defaultdict(list)

        self._stats = {
            "requests_observed": 0,
            "requests_discarded": 0,
            "responses_observed": 0,
            "responses_matched": 0,
            "responses_unmatched": 0,
            "events_failed": 0,
        }

    def on_request(self, event: RequestObserved) -> Optional[Exchange]:
        """Handle a request event.

        Args:
            event: Normalized request event

        Returns:
            The created exchange, or None if the request was filtered out
        """
        self._stats["requests_observed"] += 1
        if self.session.is_frozen:
            return None

        try:
            traffic_type = TrafficType.from_resource_type(event.resource_type or "")
            if traffic_type is None or traffic_type not in self.session.allowed_types:
                self._stats["requests_discarded"] += 1
                return None

            challenge = self.session.challenge
            on_challenge_host = is_challenge_host(event.url, challenge.challenge_hosts)
            if is_static_asset(event.url) and not on_challenge_host:
                self._stats["requests_discarded"] += 1
                return None

            method = event.method.upper()
            exchange = Exchange(
                sequence=self.session.next_sequence(),
                url=event.url,
                method=method,
                traffic_type=traffic_type,
                category=classify_traffic(
                    traffic_type, event.url, challenge.challenge_hosts,
                    challenge.device_check_paths, challenge.captcha_paths,
                ),
                in_scope=is_in_scope(
                    event.url, self.session.scope, self.session.target_domain,
                    challenge.challenge_hosts,
                ),
                timestamp=event.timestamp,
                is_navigation=event.is_navigation,
                is_main_frame=event.is_main_frame,
                request_headers=event.headers,
                request_body=event.body,
            )
            self._extract_request_signals(exchange, event.headers)

            self.session.add(exchange)
            self._open[(exchange.url, method)].append(exchange)

            self.logger.debug(
                f"#{exchange.sequence} {method} {exchange.url} "
                f"[{exchange.category.value}{'' if exchange.in_scope else ', out of scope'}]"
            )
            return exchange

        except Exception as e:
            self._stats["events_failed"] += 1
            self.logger.debug(f"Dropped request event for {getattr(event, 'url', '?')}: {e}")
            return None

    def on_request_headers(self, exchange: Exchange, headers: HeaderBag) -> None:
        """Merge the complete request header set once the browser provides it.

        Signals already extracted are kept; only absent ones are filled.
        """
        if self.session.is_frozen:
            return
        try:
            exchange.merge_request_headers(headers)
            self._extract_request_signals(exchange, headers)
        except Exception as e:
            self._stats["events_failed"] += 1
            self.logger.debug(f"Dropped late headers for #{exchange.sequence}: {e}")

    def on_response(self, event: ResponseObserved) -> Optional[Exchange]:
        """Handle a response event whose headers are already known.

        Args:
            event: Normalized response event

        Returns:
            The exchange the response closed, or None if nothing matched
        """
        exchange = self.claim_response(event.url, event.method)
        if exchange is None:
            return None
        return self.close_exchange(exchange, event)

    def claim_response(self, url: str, method: str) -> Optional[Exchange]:
        """Take the open exchange a just-observed response belongs to.

        Must be called when the response is observed, before any await, so a
        request for the same URL and method seen later cannot take it. The
        claimed exchange is no longer a match candidate but stays open until
        ``close_exchange``.

        Returns:
            The claimed exchange, or None if nothing matched
        """
        self._stats["responses_observed"] += 1
        if self.session.is_frozen:
            return None

        try:
            exchange = self._pop_open(url, method.upper())
        except Exception as e:
            self._stats["events_failed"] += 1
            self.logger.debug(f"Dropped response event for {url}: {e}")
            return None

        if exchange is None:
            # Browser-internal or filtered traffic; expected, not an error
            self._stats["responses_unmatched"] += 1
        return exchange

    def close_exchange(self, exchange: Exchange, event: ResponseObserved) -> Optional[Exchange]:
        """Record a response on the exchange claimed for it.

        Returns:
            The closed exchange, or None if the session froze meanwhile or the
            response could not be recorded
        """
        if self.session.is_frozen:
            return None

        try:
            exchange.record_response(
                event.status, event.headers,
                status_text=event.status_text, timestamp=event.timestamp,
            )
            exchange.server_cookies.extend(
                extract_cookies(event.headers.get_all("set-cookie"), self.session.challenge.cookie_name)
            )
            self._stats["responses_matched"] += 1

            self.logger.debug(f"#{exchange.sequence} <- {event.status} {exchange.url}")
            return exchange

        except Exception as e:
            self._stats["events_failed"] += 1
            self.logger.debug(f"Dropped response event for {getattr(event, 'url', '?')}: {e}")
            return None

    def _pop_open(self, url: str, method: str) -> Optional[Exchange]:
        """Take the most recently created open exchange for (url, method)."""
        candidates = self._open.get((url, method))
        if not candidates:
            return None
        for index in range(len(candidates) - 1, -1, -1):
            if candidates[index].is_open:
                exchange = candidates.pop(index)
                if not candidates:
                    del self._open[(url, method)]
                return exchange
        return None

    def _extract_request_signals(self, exchange: Exchange, headers: HeaderBag) -> None:
        challenge = self.session.challenge
        exchange.fill_signal(
            "client_cookie", extract_request_cookie(headers.get("cookie"), challenge.cookie_name)
        )
        exchange.fill_signal("client_id", headers.get(challenge.client_id_header))
        if exchange.is_navigation and exchange.is_main_frame:
            self.session.note_user_agent(headers.get("user-agent"))

    @property
    def open_count(self) -> int:
        return sum(len(candidates) for candidates in self._open.values())

    def get_statistics(self) -> Dict[str, Any]:
        """Get correlation statistics.

        Returns:
            Dictionary with statistics
        """
        return {
            **self._stats,
            "exchanges": len(self.session.exchanges),
            "open_exchanges": self.open_count,
        }
