"""
Domain events produced by the scanner and the price oracle.

Events are immutable records handed to an EventPublisher. Delivery
guarantees (outbox, retries, fan-out) belong to whatever publisher is
plugged in; the in-memory and logging publishers here cover tests and
CLI runs.
"""

import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict, List, Protocol, runtime_checkable

from dex.types import ArbitrageOpportunity
from dex_analytics.utils import timestamp_to_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArbitrageOpportunityDetected:
    opportunity_id: str
    token_address: str
    token_symbol: str
    spread_percent: Decimal
    expected_profit_usd: Decimal
    net_profit_usd: Decimal
    path_length: int
    occurred_at: float

    @classmethod
    def from_opportunity(
        cls, opp: ArbitrageOpportunity, occurred_at: float
    ) -> "ArbitrageOpportunityDetected":
        return cls(
            opportunity_id=opp.id,
            token_address=opp.token_address,
            token_symbol=opp.token_symbol,
            spread_percent=opp.spread_percent,
            expected_profit_usd=opp.expected_profit_usd,
            net_profit_usd=opp.net_profit_usd,
            path_length=opp.path_length,
            occurred_at=occurred_at,
        )


@dataclass(frozen=True)
class LargeArbitrageAlert:
    opportunity_id: str
    token_address: str
    token_symbol: str
    net_profit_usd: Decimal
    spread_percent: Decimal
    confidence_score: int
    occurred_at: float

    @classmethod
    def from_opportunity(
        cls, opp: ArbitrageOpportunity, occurred_at: float
    ) -> "LargeArbitrageAlert":
        return cls(
            opportunity_id=opp.id,
            token_address=opp.token_address,
            token_symbol=opp.token_symbol,
            net_profit_usd=opp.net_profit_usd,
            spread_percent=opp.spread_percent,
            confidence_score=opp.confidence_score,
            occurred_at=occurred_at,
        )


@dataclass(frozen=True)
class SignificantPriceChange:
    """A token moved more than the configured threshold within a window."""

    token_address: str
    token_symbol: str
    old_price: Decimal
    new_price: Decimal
    price_change_percent: Decimal
    time_period: float
    occurred_at: float


def event_to_dict(event: Any) -> Dict[str, Any]:
    """Flatten an event for logs and JSON: Decimals to floats, times to ISO."""
    data = {"event": type(event).__name__}
    for key, value in asdict(event).items():
        if isinstance(value, Decimal):
            value = float(value)
        elif key == "occurred_at":
            value = timestamp_to_iso(value)
        data[key] = value
    return data


@runtime_checkable
class EventPublisher(Protocol):
    async def publish(self, event: Any) -> None: ...


class InMemoryEventPublisher:
    """Collects events in order."""

    def __init__(self):
        self.events: List[Any] = []

    async def publish(self, event: Any) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> List[Any]:
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self) -> None:
        self.events.clear()


class LoggingEventPublisher:
    """Writes each event to the log at INFO (alerts at WARNING)."""

    def __init__(self, log: logging.Logger = logger):
        self.log = log

    async def publish(self, event: Any) -> None:
        data = event_to_dict(event)
        if isinstance(event, LargeArbitrageAlert):
            self.log.warning(
                f"LARGE ARB {event.token_symbol}: net ${data['net_profit_usd']:.2f}, "
                f"spread {data['spread_percent']:.2f}%, confidence {event.confidence_score}"
            )
        elif isinstance(event, ArbitrageOpportunityDetected):
            self.log.info(
                f"Opportunity {event.token_symbol}: net ${data['net_profit_usd']:.2f}, "
                f"spread {data['spread_percent']:.2f}%, {event.path_length} legs"
            )
        else:
            self.log.info(f"{data['event']}: {data}")
