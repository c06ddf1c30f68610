"""
Game session data types.

The GameSession is the single root object of a game. It is created by
``initialize_game`` and torn down by ``reset_game``; between those calls
only the engine and the position ledger mutate it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from .. import config
from ..market.models import MarketRegime
from ..traders.models import Player, Strategy


def _utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class GameState(Enum):
    """Session lifecycle states."""

    SETUP = "setup"
    ACTIVE = "active"
    PAUSED = "paused"
    SETTLING = "settling"
    GAME_OVER = "game_over"

    def __str__(self) -> str:
        return self.value


class GameMode(Enum):
    """Session mode."""

    SINGLE_PLAYER = "single_player"
    MULTIPLAYER = "multiplayer"

    def __str__(self) -> str:
        return self.value


class Difficulty(Enum):
    """Difficulty preset."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DifficultySettings:
    """
    Per-difficulty tuning.

    Attributes:
        round_duration: Seconds per round.
        price_interval: Seconds between price ticks.
        volatility: Noise scale of the price walk.
        win_payout: Credit for a winning stance (W).
        loss_payout: Debit for a losing stance (L).
        ai_balance_multiplier: AI starting balance relative to the human's.
        max_leverage: Highest leverage accepted by the ledger.
        ai_strategies: Strategies AI traders are drawn from.
        trend_bias: Fixed session bias, or None to draw +1/-1.
        neutral_bias_chance: Probability that the session bias becomes 0.
    """

    round_duration: int
    price_interval: float
    volatility: float
    win_payout: Decimal
    loss_payout: Decimal
    ai_balance_multiplier: float
    max_leverage: int
    ai_strategies: tuple[Strategy, ...]
    trend_bias: Optional[int]
    neutral_bias_chance: float

    @classmethod
    def for_difficulty(cls, difficulty: Difficulty) -> "DifficultySettings":
        """Build settings from the config preset table."""
        preset = config.DIFFICULTY_SETTINGS[difficulty.value]
        return cls(
            round_duration=int(preset["round_duration"]),
            price_interval=float(preset["price_interval"]),
            volatility=float(preset["volatility"]),
            win_payout=Decimal(str(preset["win_payout"])),
            loss_payout=Decimal(str(preset["loss_payout"])),
            ai_balance_multiplier=float(preset["ai_balance_multiplier"]),
            max_leverage=int(preset["max_leverage"]),
            ai_strategies=tuple(Strategy(s) for s in preset["ai_strategies"]),
            trend_bias=preset["trend_bias"],
            neutral_bias_chance=float(preset["neutral_bias_chance"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "round_duration": self.round_duration,
            "price_interval": self.price_interval,
            "volatility": self.volatility,
            "win_payout": str(self.win_payout),
            "loss_payout": str(self.loss_payout),
            "ai_balance_multiplier": self.ai_balance_multiplier,
            "max_leverage": self.max_leverage,
            "ai_strategies": [s.value for s in self.ai_strategies],
        }


@dataclass
class Round:
    """
    Current round.

    Attributes:
        index: 1-based round number.
        duration_seconds: Length of every round.
        time_remaining: Seconds left; never increases while Active.
    """

    index: int
    duration_seconds: int
    time_remaining: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "duration_seconds": self.duration_seconds,
            "time_remaining": self.time_remaining,
        }


@dataclass
class GameSession:
    """
    Root object of a game.

    Attributes:
        state: Lifecycle state.
        mode: Single player or multiplayer.
        difficulty: Difficulty preset.
        settings: Tuning resolved from the preset.
        max_rounds: Rounds before GameOver.
        round: Current round.
        asset: Simulated asset symbol.
        players: Players by id, human first then AI in creation order.
        human_id: Id of the human player.
        trend_bias: Session trend bias fed to the price simulator.
        last_regime: Regime used by the most recent settlement.
        rounds_settled: Completed settlements.
        total_trades: Trades placed by the human this session.
        winner_id: Top-ranked player once the game is over.
        created_at: Initialization timestamp.
        started_at: start_game timestamp.
        ended_at: GameOver timestamp.
    """

    state: GameState
    mode: GameMode
    difficulty: Difficulty
    settings: DifficultySettings
    max_rounds: int
    round: Round
    asset: str
    players: dict[str, Player] = field(default_factory=dict)
    human_id: Optional[str] = None
    trend_bias: int = 0
    last_regime: Optional[MarketRegime] = None
    rounds_settled: int = 0
    total_trades: int = 0
    winner_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utc_now)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def human(self) -> Optional[Player]:
        if self.human_id is None:
            return None
        return self.players.get(self.human_id)

    @property
    def ai_players(self) -> list[Player]:
        return [p for p in self.players.values() if p.is_ai]

    def to_dict(self) -> dict[str, Any]:
        """Convert session to dictionary."""
        return {
            "state": self.state.value,
            "mode": self.mode.value,
            "difficulty": self.difficulty.value,
            "max_rounds": self.max_rounds,
            "round": self.round.to_dict(),
            "asset": self.asset,
            "players": [p.to_dict() for p in self.players.values()],
            "human_id": self.human_id,
            "trend_bias": self.trend_bias,
            "last_regime": self.last_regime.value if self.last_regime else None,
            "rounds_settled": self.rounds_settled,
            "total_trades": self.total_trades,
            "winner_id": self.winner_id,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


class EventKind(Enum):
    """Kinds of session events published to subscribers."""

    STATE_CHANGED = "state_changed"
    ROUND_TICK = "round_tick"
    PRICE_TICK = "price_tick"
    ROUND_SETTLED = "round_settled"
    POSITION_CLOSED = "position_closed"
    MARKET_EVENT = "market_event"
    GAME_OVER = "game_over"
    GAME_RESET = "game_reset"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class GameEvent:
    """
    Read-only notification for presentation layers.

    Attributes:
        kind: What happened.
        data: JSON-friendly payload.
        timestamp: When it happened.
    """

    kind: EventKind
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }
