"""
News event templates for random market shocks.

Impact is expressed in percent; the simulator converts it to a bias
override of ``impact / IMPACT_PER_BIAS_UNIT`` that fades out over a few ticks.
"""

from typing import NamedTuple

from .models import EventType

IMPACT_PER_BIAS_UNIT = 10.0


class EventTemplate(NamedTuple):
    message: str
    impact: float
    event_type: EventType


EVENT_TEMPLATES: tuple[EventTemplate, ...] = (
    # Bullish
    EventTemplate("New token use case announced", 15, EventType.NEWS),
    EventTemplate("Major exchange listing confirmed", 25, EventType.NEWS),
    EventTemplate("Positive regulatory clarity provided", 20, EventType.REGULATORY),
    EventTemplate("Trading volume surges 50%", 10, EventType.NEWS),
    EventTemplate("Institutional adoption increases", 15, EventType.NEWS),
    EventTemplate("Technical indicators show bullish pattern", 10, EventType.NEWS),
    # Bearish
    EventTemplate("Security vulnerability discovered", -20, EventType.NEWS),
    EventTemplate("Regulatory concerns in key market", -15, EventType.REGULATORY),
    EventTemplate("Major holder liquidates position", -25, EventType.NEWS),
    EventTemplate("Community dispute threatens governance", -10, EventType.NEWS),
    EventTemplate("Competing token launches with better features", -15, EventType.NEWS),
    EventTemplate("Technical analysis shows bearish trend", -10, EventType.NEWS),
    # Mixed
    EventTemplate("Development milestone reached", 5, EventType.NEWS),
    EventTemplate("Governance proposal vote in progress", 0, EventType.NEWS),
    EventTemplate("Market trading sideways amid uncertainty", -2, EventType.ECONOMIC),
    EventTemplate("Trading competition announced", 3, EventType.NEWS),
)


def impact_to_bias(impact: float) -> float:
    """Convert a percent impact into a bias override."""
    return impact / IMPACT_PER_BIAS_UNIT
