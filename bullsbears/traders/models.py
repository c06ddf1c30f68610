"""
Trader identity types: stances, trader types, strategies and player kinds.

Human and AI players share one Player record; the ``kind`` field is a
tagged variant telling them apart:

    PlayerKind = HumanKind | AIKind(strategy)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from ..ledger.base import Position


class Stance(Enum):
    """A player's declared trading intention for the round."""

    BUY = "buy"
    SELL = "sell"
    NEUTRAL = "neutral"

    def __str__(self) -> str:
        return self.value


class TraderType(Enum):
    """Trader temperament: bulls lean long, bears lean short."""

    BULL = "bull"
    BEAR = "bear"

    def __str__(self) -> str:
        return self.value


class Strategy(Enum):
    """Transform applied to an AI trader's base probability table."""

    TREND_FOLLOWER = "trend_follower"
    CONTRARIAN = "contrarian"
    RANDOM = "random"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class HumanKind:
    """Marker for the human player."""

    def __str__(self) -> str:
        return "human"


@dataclass(frozen=True)
class AIKind:
    """AI-controlled trader with a decision strategy."""

    strategy: Strategy = Strategy.TREND_FOLLOWER

    def __str__(self) -> str:
        return f"ai:{self.strategy.value}"


PlayerKind = Union[HumanKind, AIKind]


@dataclass
class Player:
    """
    Canonical player record shared by human and AI traders.

    Attributes:
        id: Unique identifier.
        name: Display name.
        kind: HumanKind or AIKind(strategy).
        trader_type: Bull or bear temperament.
        balance: Cash balance; never negative outside a liquidation step.
        initial_balance: Balance at session start.
        open_positions: Positions currently held (mutated by the ledger).
        closed_positions: Closed or liquidated positions.
        stance: Declared stance for the current round.
        score: Last score computed by the scoreboard.
        wins: Rounds won.
        losses: Rounds lost.
    """

    id: str
    name: str
    kind: PlayerKind
    trader_type: TraderType
    balance: Decimal
    initial_balance: Decimal
    open_positions: list[Position] = field(default_factory=list)
    closed_positions: list[Position] = field(default_factory=list)
    stance: Stance = Stance.NEUTRAL
    score: Decimal = Decimal("0")
    wins: int = 0
    losses: int = 0

    @property
    def is_ai(self) -> bool:
        return isinstance(self.kind, AIKind)

    @property
    def is_human(self) -> bool:
        return isinstance(self.kind, HumanKind)

    @property
    def rounds_decided(self) -> int:
        """Rounds that ended in a win or a loss."""
        return self.wins + self.losses

    def to_dict(self) -> dict[str, Any]:
        """Convert player to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "kind": str(self.kind),
            "trader_type": self.trader_type.value,
            "balance": str(self.balance),
            "initial_balance": str(self.initial_balance),
            "open_positions": len(self.open_positions),
            "closed_positions": len(self.closed_positions),
            "stance": self.stance.value,
            "score": str(self.score),
            "wins": self.wins,
            "losses": self.losses,
        }
