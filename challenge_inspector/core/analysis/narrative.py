"""Session narrative: the printable storyline of one capture.

The builder works on the frozen, sequence-ordered exchange list and produces
three things:

- the initial navigation chain (first document plus the documents its
  redirects lead to),
- inline challenge steps (the exchange right after a blocked document, when
  it is served from a challenge host),
- the numbered list of every other reportable exchange.

Building is pure: the same exchange list always yields an equal narrative.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence, Set

from .classifier import is_challenge_host, is_static_asset
from ..models.exchange import CookieRecord, Exchange
from ..models.types import Category, TrafficType

if TYPE_CHECKING:  # avoid circular import
    from ..capture.session import Session


@dataclass
class NarrativeStep:
    """One exchange as presented in the report."""

    exchange: Exchange
    number: Optional[int] = None
    inline: Optional["NarrativeStep"] = None

    @property
    def category(self) -> Category:
        return self.exchange.category

    @property
    def cookies(self) -> List[CookieRecord]:
        return self.exchange.server_cookies

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "sequence": self.exchange.sequence,
            "method": self.exchange.method,
            "url": self.exchange.url,
            "category": self.category.value,
            "status": self.exchange.status,
            "cookies": [str(cookie) for cookie in self.cookies],
            "client_cookie": self.exchange.client_cookie,
            "client_id": self.exchange.client_id,
            "inline": self.inline.to_dict() if self.inline else None,
        }


@dataclass
class Narrative:
    """Ordered, de-duplicated story of a capture session."""

    target_url: str
    vendor: str
    block_status: int
    initial_chain: List[NarrativeStep] = field(default_factory=list)
    rows: List[NarrativeStep] = field(default_factory=list)
    total_exchanges: int = 0

    @property
    def has_initial_response(self) -> bool:
        return bool(self.initial_chain)

    @property
    def initial_status(self) -> Optional[int]:
        return self.initial_chain[-1].exchange.status if self.initial_chain else None

    @property
    def is_empty(self) -> bool:
        """True when nothing reportable was captured."""
        return not self.initial_chain and not self.rows

    @property
    def challenge_steps(self) -> List[NarrativeStep]:
        """Every challenge exchange in presentation order, inline ones included."""
        steps = []
        for step in [*self.initial_chain, *self.rows]:
            if step.category.is_challenge:
                steps.append(step)
            if step.inline is not None:
                steps.append(step.inline)
        return steps

    @property
    def challenge_triggered(self) -> bool:
        return bool(self.challenge_steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_url": self.target_url,
            "vendor": self.vendor,
            "initial_chain": [step.to_dict() for step in self.initial_chain],
            "rows": [step.to_dict() for step in self.rows],
            "total_exchanges": self.total_exchanges,
        }


class NarrativeBuilder:
    """Builds a ``Narrative`` from a session's exchanges."""

    def __init__(self, session: "Session"):
        """Initialize the builder.

        Args:
            session: Capture session providing the target and challenge policy
        """
        self.session = session
        self.challenge_hosts = list(session.challenge_hosts)
        self.block_status = session.challenge.block_status

    def build(self, exchanges: Optional[Iterable[Exchange]] = None) -> Narrative:
        """Produce the narrative.

        Args:
            exchanges: Exchanges to narrate; defaults to the session's snapshot

        Returns:
            The narrative for this exchange list
        """
        source = self.session.exchanges if exchanges is None else exchanges
        ordered = sorted(source, key=lambda exchange: exchange.sequence)

        chain = self._initial_chain(ordered)
        chain_ids = {exchange.sequence for exchange in chain}
        presentable = [e for e in ordered if e.sequence in chain_ids or self._is_reportable(e)]
        inline_for = self._inline_steps(presentable, chain_ids)
        inlined_ids = {exchange.sequence for exchange in inline_for.values()}

        def step_for(exchange: Exchange, number: Optional[int] = None) -> NarrativeStep:
            inline = inline_for.get(exchange.sequence)
            return NarrativeStep(
                exchange=exchange,
                number=number,
                inline=NarrativeStep(exchange=inline) if inline is not None else None,
            )

        rows = []
        for exchange in presentable:
            if exchange.sequence in chain_ids or exchange.sequence in inlined_ids:
                continue
            rows.append(step_for(exchange, number=len(rows) + 1))

        return Narrative(
            target_url=self.session.target_url,
            vendor=self.session.challenge.vendor,
            block_status=self.block_status,
            initial_chain=[step_for(exchange) for exchange in chain],
            rows=rows,
            total_exchanges=len(ordered),
        )

    def _is_reportable(self, exchange: Exchange) -> bool:
        if not exchange.in_scope:
            return False
        if is_static_asset(exchange.url) and not self._on_challenge_host(exchange):
            return False
        return True

    def _on_challenge_host(self, exchange: Exchange) -> bool:
        return is_challenge_host(exchange.host, self.challenge_hosts)

    def _continues_navigation(self, exchange: Exchange) -> bool:
        host = exchange.host
        target = self.session.target_domain
        return host == target or host.endswith("." + target) or self._on_challenge_host(exchange)

    def _initial_chain(self, ordered: Sequence[Exchange]) -> List[Exchange]:
        """First document and the documents its redirects lead to."""
        documents = [e for e in ordered if e.traffic_type is TrafficType.DOCUMENT]
        if not documents:
            return []

        chain = [documents[0]]
        for document in documents[1:]:
            if not chain[-1].is_redirect or not self._continues_navigation(document):
                break
            chain.append(document)
        return chain

    def _inline_steps(self, presentable: Sequence[Exchange], chain_ids: Set[int]) -> Dict[int, Exchange]:
        """Map each blocked document to the challenge exchange shown under it.

        Only the single next exchange is considered, and an exchange that is
        already shown inline never promotes another one.
        """
        inline_for: Dict[int, Exchange] = {}
        inlined: Set[int] = set()
        for index, exchange in enumerate(presentable[:-1]):
            if exchange.sequence in inlined:
                continue
            if exchange.traffic_type is not TrafficType.DOCUMENT or exchange.status != self.block_status:
                continue
            following = presentable[index + 1]
            if following.sequence in chain_ids or not self._on_challenge_host(following):
                continue
            inline_for[exchange.sequence] = following
            inlined.add(following.sequence)
        return inline_for
