"""
Market simulation for the game engine.

This module provides:
- PriceSimulator: biased random walk with event injection
- classify_regime: regime derivation from recent prices
- MarketTick / MarketRegime / MarketEvent data types
"""

from .events import EVENT_TEMPLATES, EventTemplate
from .models import (
    EventType,
    MarketDataSource,
    MarketEvent,
    MarketRegime,
    MarketTick,
    RandomSource,
)
from .regime import classify_regime
from .simulator import PriceSimulator

__all__ = [
    "PriceSimulator",
    "classify_regime",
    "MarketTick",
    "MarketRegime",
    "MarketEvent",
    "EventType",
    "EventTemplate",
    "EVENT_TEMPLATES",
    "MarketDataSource",
    "RandomSource",
]
