"""Per-run capture session: target, policies and the exchange list."""

import itertools
from datetime import datetime
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from ..analysis.classifier import registrable_domain
from ..config.settings import ChallengeConfig, InspectorConfig
from ..models.exchange import Exchange
from ..models.types import FinishPolicy, ScopePolicy, TrafficType
from ...utils.exceptions import SessionFrozenError
from ...utils.logging import generate_correlation_id


class Session:
    """Owns every exchange observed during one inspected page load.

    One instance per run; the correlator appends to it while capture is live
    and the narrative builder reads the frozen snapshot afterwards.
    """

    def __init__(self, target_url: str,
                 challenge: Optional[ChallengeConfig] = None,
                 scope: ScopePolicy = ScopePolicy.SAME_DOMAIN,
                 finish_policy: FinishPolicy = FinishPolicy.AUTO,
                 allowed_types: Optional[Iterable[TrafficType]] = None,
                 captured_at: Optional[datetime] = None):
        self.target_url = target_url
        self.target_host = (urlsplit(target_url).hostname or "").lower()
        self.target_domain = registrable_domain(self.target_host)
        self.challenge = challenge or ChallengeConfig()
        self.scope = scope
        self.finish_policy = finish_policy
        self.allowed_types = frozenset(allowed_types) if allowed_types else frozenset(TrafficType)
        self.captured_at = captured_at or datetime.now()
        self.session_id = generate_correlation_id()

        # Recap facts, filled in by the runner while the browser is live
        self.browser_name = ""
        self.headless = False
        self.user_agent: Optional[str] = None
        self.remote_address: Optional[str] = None
        self.finish_reason: Optional[str] = None

        self._sequence = itertools.count(1)
        self._exchanges: List[Exchange] = []
        self._snapshot: Optional[Tuple[Exchange, ...]] = None

    @classmethod
    def from_config(cls, config: InspectorConfig, captured_at: Optional[datetime] = None) -> "Session":
        if not config.target.url:
            raise ValueError("A target URL is required to start a session")
        session = cls(
            config.target.url,
            challenge=config.challenge,
            scope=config.target.scope,
            finish_policy=config.capture.finish_mode,
            allowed_types=config.capture.allowed_types,
            captured_at=captured_at,
        )
        session.browser_name = config.browser.engine.display_name
        session.headless = config.browser.headless
        return session

    @property
    def challenge_hosts(self) -> List[str]:
        return self.challenge.challenge_hosts

    @property
    def is_frozen(self) -> bool:
        return self._snapshot is not None

    @property
    def exchanges(self) -> Tuple[Exchange, ...]:
        """Exchanges in sequence order (the frozen snapshot once capture ended)."""
        if self._snapshot is not None:
            return self._snapshot
        return tuple(self._exchanges)

    def next_sequence(self) -> int:
        return next(self._sequence)

    def add(self, exchange: Exchange) -> None:
        if self._snapshot is not None:
            raise SessionFrozenError(f"Session {self.session_id} no longer accepts exchanges")
        if self._exchanges and exchange.sequence <= self._exchanges[-1].sequence:
            raise ValueError(
                f"Sequence {exchange.sequence} is not after {self._exchanges[-1].sequence}"
            )
        self._exchanges.append(exchange)

    def note_user_agent(self, user_agent: Optional[str]) -> None:
        """Remember the User-Agent sent on the main navigation (first one wins)."""
        if user_agent and self.user_agent is None:
            self.user_agent = user_agent

    def freeze(self, reason: Optional[str] = None) -> Tuple[Exchange, ...]:
        """End the capture phase and return the read-only exchange snapshot."""
        if self._snapshot is None:
            self._snapshot = tuple(sorted(self._exchanges, key=lambda e: e.sequence))
            self.finish_reason = reason
        return self._snapshot
