"""
AI Trader Decision Policy.

Maps (trader type, strategy, market regime) to a stance using fixed
probability tables and a single uniform draw from the injected RNG.

Base tables (buy / sell / neutral):

    type  regime    buy  sell neutral
    bull  bullish   0.7  0.1  0.2
    bull  bearish   0.2  0.5  0.3
    bull  neutral   0.4  0.2  0.4
    bear  bullish   0.3  0.2  0.5
    bear  bearish   0.1  0.7  0.2
    bear  neutral   0.2  0.4  0.4

A volatile regime uses the neutral row. Strategies transform the row:
trend followers use it as is, contrarians swap buy and sell, random
traders ignore it and use 1/3 each.
"""

import logging
import random
from dataclasses import dataclass
from typing import Optional

from ..errors import ValidationError
from ..market.models import MarketRegime, RandomSource
from .models import AIKind, Player, Stance, Strategy, TraderType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StanceProbabilities:
    """Probability of each stance; the three values sum to 1."""

    buy: float
    sell: float
    neutral: float

    def swapped(self) -> "StanceProbabilities":
        """Return the table with buy and sell exchanged."""
        return StanceProbabilities(buy=self.sell, sell=self.buy, neutral=self.neutral)

    def to_dict(self) -> dict[str, float]:
        return {"buy": self.buy, "sell": self.sell, "neutral": self.neutral}


UNIFORM = StanceProbabilities(buy=1 / 3, sell=1 / 3, neutral=1 / 3)

BASE_TABLES: dict[TraderType, dict[MarketRegime, StanceProbabilities]] = {
    TraderType.BULL: {
        MarketRegime.BULLISH: StanceProbabilities(0.7, 0.1, 0.2),
        MarketRegime.BEARISH: StanceProbabilities(0.2, 0.5, 0.3),
        MarketRegime.NEUTRAL: StanceProbabilities(0.4, 0.2, 0.4),
    },
    TraderType.BEAR: {
        MarketRegime.BULLISH: StanceProbabilities(0.3, 0.2, 0.5),
        MarketRegime.BEARISH: StanceProbabilities(0.1, 0.7, 0.2),
        MarketRegime.NEUTRAL: StanceProbabilities(0.2, 0.4, 0.4),
    },
}


def stance_probabilities(
    trader_type: TraderType,
    strategy: Strategy,
    regime: MarketRegime,
) -> StanceProbabilities:
    """
    Look up the transformed probability table.

    Args:
        trader_type: Bull or bear.
        strategy: Strategy transform to apply.
        regime: Current market regime.

    Returns:
        StanceProbabilities for the decision draw.
    """
    if strategy == Strategy.RANDOM:
        return UNIFORM

    row_regime = MarketRegime.NEUTRAL if regime == MarketRegime.VOLATILE else regime
    base = BASE_TABLES[trader_type][row_regime]

    if strategy == Strategy.CONTRARIAN:
        return base.swapped()
    return base


def pick_stance(probabilities: StanceProbabilities, u: float) -> Stance:
    """Partition [0, 1) into buy / sell / neutral intervals and select by ``u``."""
    if u < probabilities.buy:
        return Stance.BUY
    if u < probabilities.buy + probabilities.sell:
        return Stance.SELL
    return Stance.NEUTRAL


class AITraderPolicy:
    """
    Probabilistic stance selection for AI traders.

    Attributes:
        rng: Random source shared with the price simulator.

    Example:
        >>> policy = AITraderPolicy(seed=7)
        >>> policy.decide(ai_player, MarketRegime.BULLISH)
        <Stance.BUY: 'buy'>
    """

    def __init__(
        self,
        rng: Optional[RandomSource] = None,
        seed: Optional[int] = None,
    ) -> None:
        self.rng: RandomSource = rng if rng is not None else random.Random(seed)

    def decide(self, player: Player, regime: MarketRegime) -> Stance:
        """
        Choose a stance for an AI player.

        Args:
            player: Player record with ``kind`` (AIKind) and ``trader_type``.
            regime: Regime derived for this settlement.

        Returns:
            The selected Stance.

        Raises:
            ValidationError: If the player is not AI-controlled.
        """
        if not isinstance(player.kind, AIKind):
            raise ValidationError(f"Player {player.id} is not an AI trader")

        probabilities = stance_probabilities(player.trader_type, player.kind.strategy, regime)
        stance = pick_stance(probabilities, self.rng.random())

        logger.debug(
            f"AI {player.id} ({player.trader_type}/{player.kind.strategy}) "
            f"regime={regime} -> {stance}"
        )
        return stance
