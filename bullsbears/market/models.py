"""
Market data types shared by the simulator, the AI policy and the engine.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Protocol


def _utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class RandomSource(Protocol):
    """
    Injectable source of uniform random numbers.

    ``random.Random`` satisfies this interface; tests pass scripted
    sources so that price paths and AI decisions are reproducible.
    """

    def random(self) -> float:
        """Return the next float in [0.0, 1.0)."""
        ...


class MarketDataSource(Protocol):
    """
    External market-data collaborator.

    Implementations return the latest price, return None when no new price
    is available, or raise MarketDataError when the provider is down.
    """

    def fetch_price(self) -> Optional[float]:
        ...


class MarketRegime(Enum):
    """Classified market trend derived from recent ticks."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"
    VOLATILE = "volatile"

    def __str__(self) -> str:
        return self.value


class EventType(Enum):
    """Market event category."""

    NEWS = "news"
    EARNINGS = "earnings"
    ECONOMIC = "economic"
    REGULATORY = "regulatory"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class MarketTick:
    """
    One price observation.

    Attributes:
        timestamp: When the tick was produced.
        price: Price after floor clamping.
        sequence: Monotonic tick number within the current simulator run.
        simulated: False when the price came from a market-data source.
    """

    timestamp: datetime
    price: float
    sequence: int = 0
    simulated: bool = True

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "price": self.price,
            "sequence": self.sequence,
            "simulated": self.simulated,
        }


@dataclass
class MarketEvent:
    """
    News shock injected into the price process.

    Attributes:
        event_id: Unique identifier.
        message: Headline shown to players.
        impact: Signed impact in percent (positive is bullish).
        bias: Bias override applied at the first tick after injection.
        decay_ticks: Number of ticks over which the override fades out.
        event_type: Category of the event.
        timestamp: When the event was injected.
    """

    event_id: str
    message: str
    impact: float
    bias: float
    decay_ticks: int
    event_type: EventType = EventType.NEWS
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "message": self.message,
            "impact": self.impact,
            "bias": self.bias,
            "decay_ticks": self.decay_ticks,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
        }
