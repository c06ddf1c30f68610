"""
Synthetic Price Simulator.

Produces the only source of market truth for a game session: a biased
random walk clamped at a price floor.

    price[t+1] = max(floor, price[t] * (1 + noise))
    noise      = volatility * (rand() - 0.5 + bias * bias_weight)

Features:
- Injectable RNG so identical seeds reproduce identical tick sequences
- Caller-supplied trend bias in {-1, 0, +1}
- One-shot event injection: a bias override that decays over N ticks
- Random news events drawn from templates
- Optional market-data source with fallback to simulation
- Subscriber callbacks on every tick
- Regime classification over the recent window
"""

import logging
import random
import uuid
from collections import deque
from datetime import datetime
from typing import Callable, Optional

from .. import config
from ..errors import MarketDataError, ValidationError
from .events import EVENT_TEMPLATES, impact_to_bias
from .models import (
    EventType,
    MarketDataSource,
    MarketEvent,
    MarketRegime,
    MarketTick,
    RandomSource,
    _utc_now,
)
from .regime import classify_regime

logger = logging.getLogger(__name__)

TickCallback = Callable[[MarketTick], None]

VALID_TREND_BIASES = (-1, 0, 1)


class PriceSimulator:
    """
    Biased random-walk price generator.

    Attributes:
        start_price: Price the walk restarts from on reset().
        current_price: Latest price.
        volatility: Noise scale (higher for harder difficulties).
        floor: Minimum price; ticks are clamped, never rejected.
        bias_weight: Weight of the trend bias inside the noise term.
        trend_bias: Default bias used when tick() is called without one.
        rng: Injected random source.
        events: Log of injected market events.

    Example:
        >>> sim = PriceSimulator(start_price=50000, seed=42)
        >>> tick = sim.tick(trend_bias=1)
        >>> sim.regime()
        <MarketRegime.NEUTRAL: 'neutral'>
    """

    def __init__(
        self,
        start_price: float = 50000.0,
        volatility: float = 0.02,
        floor: float = config.PRICE_FLOOR,
        bias_weight: float = config.BIAS_WEIGHT,
        rng: Optional[RandomSource] = None,
        seed: Optional[int] = None,
        regime_window: int = config.REGIME_WINDOW,
        regime_threshold_pct: float = config.REGIME_THRESHOLD_PCT,
        volatile_stdev_pct: float = config.VOLATILE_STDEV_PCT,
        event_probability: float = config.RANDOM_EVENT_PROBABILITY,
        event_decay_ticks: int = config.EVENT_DECAY_TICKS,
        history_limit: int = config.PRICE_HISTORY_LIMIT,
        source: Optional[MarketDataSource] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if start_price <= 0:
            raise ValidationError(f"Start price must be positive, got {start_price}")
        if floor <= 0:
            raise ValidationError(f"Price floor must be positive, got {floor}")

        self.start_price = float(start_price)
        self.current_price = max(floor, self.start_price)
        self.volatility = volatility
        self.floor = floor
        self.bias_weight = bias_weight
        self.trend_bias = 0
        self.rng: RandomSource = rng if rng is not None else random.Random(seed)

        self.regime_window = regime_window
        self.regime_threshold_pct = regime_threshold_pct
        self.volatile_stdev_pct = volatile_stdev_pct
        self.event_probability = event_probability
        self.event_decay_ticks = event_decay_ticks

        self.source = source
        self._clock = clock

        self._ticks: deque[MarketTick] = deque(maxlen=history_limit)
        self._sequence = 0
        self._subscribers: list[TickCallback] = []

        # Active bias override: (bias, decay_ticks, remaining)
        self._override: Optional[tuple[float, int, int]] = None
        self.events: list[MarketEvent] = []

    # =========================================================================
    # Contract
    # =========================================================================

    def tick(self, trend_bias: Optional[int] = None) -> MarketTick:
        """
        Produce the next tick.

        Args:
            trend_bias: Bias for this tick; defaults to ``self.trend_bias``.

        Returns:
            The appended MarketTick.
        """
        bias = self._effective_bias(self.trend_bias if trend_bias is None else trend_bias)

        price = self._fetch_external_price()
        simulated = price is None
        if simulated:
            noise = self.volatility * (self.rng.random() - 0.5 + bias * self.bias_weight)
            price = self.current_price * (1 + noise)

        price = max(self.floor, price)
        self._sequence += 1
        tick = MarketTick(
            timestamp=self._clock(),
            price=price,
            sequence=self._sequence,
            simulated=simulated,
        )
        self.current_price = price
        self._ticks.append(tick)

        logger.debug(f"Tick #{tick.sequence}: {price:.4f} (bias={bias:+.3f})")

        self._notify(tick)
        return tick

    def subscribe(self, callback: TickCallback) -> Callable[[], None]:
        """
        Register a callback invoked with every new tick.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def reset(self, seed: Optional[int] = None, start_price: Optional[float] = None) -> None:
        """
        Restart the walk.

        Args:
            seed: Reseed the RNG in place (shared consumers see the new stream).
            start_price: New starting price; keeps the previous one if None.
        """
        if start_price is not None:
            if start_price <= 0:
                raise ValidationError(f"Start price must be positive, got {start_price}")
            self.start_price = float(start_price)

        if seed is not None:
            reseed = getattr(self.rng, "seed", None)
            if reseed is not None:
                reseed(seed)
            else:
                logger.warning("Injected RNG cannot be reseeded; replacing it")
                self.rng = random.Random(seed)

        self.current_price = max(self.floor, self.start_price)
        self._ticks.clear()
        self._sequence = 0
        self._override = None
        self.events.clear()

        logger.info(f"Price simulator reset: start={self.start_price}, seed={seed}")

    # =========================================================================
    # Events
    # =========================================================================

    def inject_event(
        self,
        bias: float,
        decay_ticks: Optional[int] = None,
        message: str = "",
        impact: float = 0.0,
        event_type: EventType = EventType.NEWS,
    ) -> MarketEvent:
        """
        Push a temporary bias override.

        The override replaces the caller's trend bias on the next tick and
        fades linearly to zero over ``decay_ticks`` ticks. A new injection
        replaces any override still in flight.
        """
        decay = self.event_decay_ticks if decay_ticks is None else decay_ticks
        if decay < 1:
            raise ValidationError(f"Decay window must be at least 1 tick, got {decay}")

        event = MarketEvent(
            event_id=str(uuid.uuid4())[:8],
            message=message,
            impact=impact,
            bias=bias,
            decay_ticks=decay,
            event_type=event_type,
            timestamp=self._clock(),
        )
        self._override = (bias, decay, decay)
        self.events.append(event)

        logger.info(f"Market event injected: {message or 'manual'} (bias={bias:+.2f}, ticks={decay})")
        return event

    def maybe_trigger_event(self) -> Optional[MarketEvent]:
        """
        Roll for a random news event and inject it.

        Returns:
            The injected event, or None when no event fired.
        """
        if self.rng.random() >= self.event_probability:
            return None

        index = min(int(self.rng.random() * len(EVENT_TEMPLATES)), len(EVENT_TEMPLATES) - 1)
        template = EVENT_TEMPLATES[index]
        return self.inject_event(
            bias=impact_to_bias(template.impact),
            message=template.message,
            impact=template.impact,
            event_type=template.event_type,
        )

    @property
    def has_active_event(self) -> bool:
        return self._override is not None

    # =========================================================================
    # History
    # =========================================================================

    def seed_history(self, count: int) -> list[MarketTick]:
        """Generate ``count`` warm-up ticks using the default trend bias."""
        return [self.tick() for _ in range(count)]

    def regime(self) -> MarketRegime:
        """Classify the current regime from the recent window."""
        return classify_regime(
            self.prices,
            window=self.regime_window,
            threshold_pct=self.regime_threshold_pct,
            volatile_stdev_pct=self.volatile_stdev_pct,
        )

    def set_trend_bias(self, trend_bias: int) -> None:
        if trend_bias not in VALID_TREND_BIASES:
            raise ValidationError(f"Trend bias must be one of {VALID_TREND_BIASES}, got {trend_bias}")
        self.trend_bias = trend_bias

    @property
    def latest(self) -> Optional[MarketTick]:
        return self._ticks[-1] if self._ticks else None

    @property
    def history(self) -> tuple[MarketTick, ...]:
        return tuple(self._ticks)

    @property
    def prices(self) -> list[float]:
        return [t.price for t in self._ticks]

    # =========================================================================
    # Private Methods
    # =========================================================================

    def _effective_bias(self, base_bias: float) -> float:
        """Apply and advance the decaying event override, if any."""
        if self._override is None:
            return base_bias

        bias, decay, remaining = self._override
        effective = bias * remaining / decay
        remaining -= 1
        self._override = (bias, decay, remaining) if remaining > 0 else None
        return effective

    def _fetch_external_price(self) -> Optional[float]:
        """Ask the market-data source for a price; None means simulate."""
        if self.source is None:
            return None
        try:
            price = self.source.fetch_price()
        except MarketDataError as e:
            logger.warning(f"Market data unavailable, falling back to simulation: {e}")
            return None
        if price is None or price <= 0:
            return None
        return float(price)

    def _notify(self, tick: MarketTick) -> None:
        for callback in list(self._subscribers):
            try:
                callback(tick)
            except Exception as e:
                logger.error(f"Tick subscriber failed: {e}", exc_info=True)
