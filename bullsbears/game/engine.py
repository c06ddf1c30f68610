"""
Game Engine (round state machine).

Orchestrates a Bulls vs Bears session:

    Setup -> Active <-> Paused
    Active -> Settling -> Active | GameOver
    any    -> Setup (reset_game)

The engine never schedules itself. A host (see GameScheduler) calls
``on_round_timer`` once per second and ``on_price_timer`` every
``price_interval`` seconds, passing the generation id it was started
with. Every pause, resume, reset and game over bumps the generation, so
callbacks scheduled before the change become no-ops.

Settlement of a round runs in a fixed order:
1. Derive the market regime from the latest ticks
2. Ask the AI policy for every AI player's stance
3. Pay out every player from the stance/regime table
4. Advance to the next round or finish the game

Payout table (W/L per difficulty):
    buy  + bullish -> +W
    sell + bearish -> +W
    other buy/sell -> -L
    neutral        ->  0
"""

import logging
import random
from decimal import Decimal
from typing import Any, Callable, Optional, Protocol, Union

from .. import config
from ..errors import InvalidStateError, SchedulingDefect, ValidationError
from ..ledger.base import CloseReason, Position
from ..ledger.positions import PositionLedger
from ..market.models import MarketRegime, RandomSource
from ..market.simulator import PriceSimulator
from ..traders.models import AIKind, HumanKind, Player, Stance, TraderType
from ..traders.policy import AITraderPolicy
from .models import (
    Difficulty,
    DifficultySettings,
    EventKind,
    GameEvent,
    GameMode,
    GameSession,
    GameState,
    Round,
    _utc_now,
)
from .scoreboard import ScoreBoard

logger = logging.getLogger(__name__)

EventListener = Callable[[GameEvent], None]

HUMAN_PLAYER_ID = "human"

ZERO = Decimal("0")


class TimerHost(Protocol):
    """Owner of the round and price timers, and of blocking side work."""

    def start(self, generation: int) -> None:
        ...

    def stop(self) -> None:
        ...

    def run_in_background(self, func: Callable[..., Any], *args: Any) -> None:
        ...


class GameEngine:
    """
    Round state machine for one game session at a time.

    Collaborators are injected; any that are omitted are built from
    config defaults and share one random source.

    Attributes:
        simulator: Price source for the session.
        ledger: Position ledger for all players.
        policy: AI stance policy.
        scoreboard: Score, ranking and leaderboard hook.
        rng: Random source for session setup draws.
        session: Current session, or None before initialize_game.

    Example:
        >>> engine = GameEngine(seed=42)
        >>> engine.initialize_game(player_name="Ada", difficulty="easy")
        >>> engine.start_game()
        >>> engine.place_trade("buy")
        >>> for _ in range(45):
        ...     engine.on_round_timer(engine.generation)
    """

    def __init__(
        self,
        simulator: Optional[PriceSimulator] = None,
        ledger: Optional[PositionLedger] = None,
        policy: Optional[AITraderPolicy] = None,
        scoreboard: Optional[ScoreBoard] = None,
        rng: Optional[RandomSource] = None,
        seed: Optional[int] = None,
    ):
        if rng is None:
            rng = simulator.rng if simulator is not None else random.Random(seed)
        self.rng = rng

        self.simulator = simulator or PriceSimulator(rng=rng)
        self.ledger = ledger or PositionLedger()
        self.policy = policy or AITraderPolicy(rng=rng)
        self.scoreboard = scoreboard or ScoreBoard()

        self.session: Optional[GameSession] = None
        self._generation = 0
        self._settling = False
        self._timers: Optional[TimerHost] = None
        self._listeners: list[EventListener] = []

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> GameState:
        return self.session.state if self.session else GameState.SETUP

    @property
    def generation(self) -> int:
        """Monotonic id of the current timer generation."""
        return self._generation

    @property
    def price_interval(self) -> float:
        if self.session:
            return self.session.settings.price_interval
        return float(config.DIFFICULTY_SETTINGS[Difficulty.MEDIUM.value]["price_interval"])

    # =========================================================================
    # Wiring
    # =========================================================================

    def attach_timers(self, timers: Optional[TimerHost]) -> None:
        """Attach the timer host started/stopped on state changes."""
        self._timers = timers

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """
        Register a read-only listener for session events.

        Returns:
            Function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # =========================================================================
    # Commands
    # =========================================================================

    def initialize_game(
        self,
        player_name: str = "Player",
        trader_type: Union[TraderType, str] = TraderType.BULL,
        difficulty: Union[Difficulty, str] = Difficulty.MEDIUM,
        mode: Union[GameMode, str] = GameMode.SINGLE_PLAYER,
        ai_count: int = config.DEFAULT_AI_COUNT,
        max_rounds: int = config.MAX_ROUNDS,
        asset: str = config.DEFAULT_ASSET,
        starting_balance: float = config.STARTING_BALANCE,
        seed: Optional[int] = None,
    ) -> GameSession:
        """
        Create a session in the Setup state.

        Creates the human player, a batch of AI players, seeds the warm-up
        price history and draws the session trend bias.

        Raises:
            InvalidStateError: If a game is already running.
            ValidationError: If any parameter is invalid.
        """
        if self.session is not None and self.session.state != GameState.SETUP:
            raise InvalidStateError(
                f"Cannot initialize a game in state {self.session.state}; reset first"
            )

        try:
            trader_type = TraderType(trader_type)
            difficulty = Difficulty(difficulty)
            mode = GameMode(mode)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        asset = asset.upper()
        if asset not in config.ASSET_START_PRICES:
            raise ValidationError(f"Unknown asset: {asset}")
        if not player_name or not player_name.strip():
            raise ValidationError("Player name must not be empty")
        if ai_count < 0:
            raise ValidationError(f"AI count must be non-negative, got {ai_count}")
        if max_rounds < 1:
            raise ValidationError(f"Max rounds must be at least 1, got {max_rounds}")
        if starting_balance <= 0:
            raise ValidationError(f"Starting balance must be positive, got {starting_balance}")

        settings = DifficultySettings.for_difficulty(difficulty)

        # Market
        self.simulator.reset(seed=seed, start_price=config.ASSET_START_PRICES[asset])
        self.simulator.volatility = settings.volatility
        trend_bias = self._draw_trend_bias(settings)
        self.simulator.set_trend_bias(trend_bias)

        # Players
        self.ledger.reset()
        self.ledger.max_leverage = settings.max_leverage

        session = GameSession(
            state=GameState.SETUP,
            mode=mode,
            difficulty=difficulty,
            settings=settings,
            max_rounds=max_rounds,
            round=Round(
                index=1,
                duration_seconds=settings.round_duration,
                time_remaining=settings.round_duration,
            ),
            asset=asset,
            trend_bias=trend_bias,
        )

        balance = Decimal(str(starting_balance))
        human = Player(
            id=HUMAN_PLAYER_ID,
            name=player_name.strip(),
            kind=HumanKind(),
            trader_type=trader_type,
            balance=balance,
            initial_balance=balance,
        )
        session.players[human.id] = human
        session.human_id = human.id

        ai_balance = balance * Decimal(str(settings.ai_balance_multiplier))
        for i in range(ai_count):
            player = self._create_ai_player(i + 1, settings, ai_balance)
            session.players[player.id] = player

        for player in session.players.values():
            self.ledger.register(player)

        # Warm-up history so the first regime is defined
        self.simulator.seed_history(config.WARMUP_TICKS)
        self.ledger.set_price(self.simulator.current_price)

        self.session = session

        logger.info(
            f"Game initialized: {mode} {difficulty}, {ai_count} AI traders, "
            f"{max_rounds} rounds, asset={asset}, trend_bias={trend_bias:+d}"
        )
        self._publish(EventKind.STATE_CHANGED, {"state": session.state.value})
        return session

    def start_game(self) -> None:
        """Setup -> Active; starts the timers."""
        session = self._require_state(GameState.SETUP, "start")

        session.round = Round(
            index=1,
            duration_seconds=session.settings.round_duration,
            time_remaining=session.settings.round_duration,
        )
        session.state = GameState.ACTIVE
        session.started_at = _utc_now()
        self._restart_timers()

        logger.info(f"Game started: round 1/{session.max_rounds}")
        self._publish(EventKind.STATE_CHANGED, {"state": session.state.value})

    def pause_game(self) -> None:
        """Active -> Paused; time remaining is kept exactly."""
        session = self._require_state(GameState.ACTIVE, "pause")

        session.state = GameState.PAUSED
        self._stop_timers()

        logger.info(
            f"Game paused: round {session.round.index}, "
            f"{session.round.time_remaining}s remaining"
        )
        self._publish(EventKind.STATE_CHANGED, {"state": session.state.value})

    def resume_game(self) -> None:
        """Paused -> Active."""
        session = self._require_state(GameState.PAUSED, "resume")

        session.state = GameState.ACTIVE
        self._restart_timers()

        logger.info(f"Game resumed: round {session.round.index}")
        self._publish(EventKind.STATE_CHANGED, {"state": session.state.value})

    def reset_game(self) -> None:
        """Tear down the session from any state and return to Setup."""
        self._stop_timers()
        self.ledger.reset()
        self.simulator.reset()
        self.session = None

        logger.info("Game reset")
        self._publish(EventKind.GAME_RESET, {"state": GameState.SETUP.value})

    def place_trade(self, stance: Union[Stance, str], player_id: Optional[str] = None) -> Player:
        """
        Declare a human player's stance for the current round.

        Raises:
            InvalidStateError: If the game is not Active.
            ValidationError: If the stance or player is invalid.
        """
        session = self._require_state(GameState.ACTIVE, "place a trade")
        player = self._get_human(session, player_id)
        try:
            stance = Stance(stance)
        except ValueError as e:
            raise ValidationError(f"Invalid stance: {stance!r}") from e

        player.stance = stance
        if stance != Stance.NEUTRAL:
            session.total_trades += 1

        logger.info(f"{player.name} declared {stance} for round {session.round.index}")
        return player

    def open_position(
        self,
        size: Union[Decimal, float, int, str],
        leverage: int = 1,
        stop_loss: Optional[Union[Decimal, float, int, str]] = None,
        take_profit: Optional[Union[Decimal, float, int, str]] = None,
        player_id: Optional[str] = None,
    ) -> str:
        """
        Open a leveraged position for a human player at the current price.

        Returns:
            The new position id.
        """
        session = self._require_state(GameState.ACTIVE, "open a position")
        player = self._get_human(session, player_id)
        return self.ledger.open(
            player.id,
            size,
            leverage=leverage,
            stop_loss=stop_loss,
            take_profit=take_profit,
        )

    def close_position(self, position_id: str) -> Decimal:
        """
        Close a position at the current price.

        Returns:
            Realized P&L.
        """
        self._require_state((GameState.ACTIVE, GameState.PAUSED), "close a position")
        pnl = self.ledger.close(position_id)
        self._publish_closed([self.ledger.get_position(position_id)])
        return pnl

    # =========================================================================
    # Timer Callbacks
    # =========================================================================

    def on_round_timer(self, generation: int) -> bool:
        """
        One-second round tick.

        Returns:
            True while the caller should keep ticking this generation.
        """
        if not self._is_current(generation):
            return False

        session = self.session
        session.round.time_remaining = max(0, session.round.time_remaining - 1)
        self._publish(EventKind.ROUND_TICK, session.round.to_dict())

        if self._is_current(generation) and session.round.time_remaining <= 0:
            self._settle_round()

        return self._is_current(generation)

    def on_price_timer(self, generation: int) -> bool:
        """
        Price tick: advance the market and apply position triggers.

        Returns:
            True while the caller should keep ticking this generation.
        """
        if not self._is_current(generation):
            return False

        tick = self.simulator.tick()
        closed = self.ledger.evaluate_tick(tick.price)

        logger.debug(f"Price tick #{tick.sequence}: {tick.price:.2f}")
        self._publish(EventKind.PRICE_TICK, tick.to_dict())
        self._publish_closed(closed)

        event = self.simulator.maybe_trigger_event()
        if event is not None:
            self._publish(EventKind.MARKET_EVENT, event.to_dict())

        return self._is_current(generation)

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> dict[str, Any]:
        """
        Snapshot of the session for presentation layers.

        Returns:
            JSON-friendly dictionary.
        """
        latest = self.simulator.latest
        status: dict[str, Any] = {
            "state": self.state.value,
            "generation": self._generation,
            "price": latest.price if latest else None,
            "regime": self.simulator.regime().value,
            "active_event": self.simulator.has_active_event,
            "session": None,
            "pnl": {},
        }
        if self.session:
            status["session"] = self.session.to_dict()
            status["pnl"] = {
                player_id: self.ledger.get_pnl_summary(player_id)
                for player_id in self.session.players
            }
        return status

    # =========================================================================
    # Private Methods
    # =========================================================================

    def _settle_round(self) -> None:
        if self._settling:
            raise SchedulingDefect("Round settlement re-entered")
        self._settling = True
        try:
            session = self.session
            session.state = GameState.SETTLING
            settled_index = session.round.index

            regime = self.simulator.regime()
            session.last_regime = regime

            for player in session.ai_players:
                player.stance = self.policy.decide(player, regime)

            results = []
            for player in session.players.values():
                payout = self._payout(player.stance, regime, session.settings)
                if payout > 0:
                    player.wins += 1
                elif payout < 0:
                    player.losses += 1
                player.balance = max(ZERO, player.balance + payout)
                self.scoreboard.recompute(player)
                results.append({
                    "player_id": player.id,
                    "stance": player.stance.value,
                    "payout": str(payout),
                    "balance": str(player.balance),
                })
                player.stance = Stance.NEUTRAL

            session.rounds_settled += 1
            game_over = settled_index + 1 > session.max_rounds
            if not game_over:
                session.round.index = settled_index + 1
                session.round.time_remaining = session.round.duration_seconds
                session.state = GameState.ACTIVE

            logger.info(
                f"Round {settled_index}/{session.max_rounds} settled: regime={regime}"
            )
            generation = self._generation
            self._publish(EventKind.ROUND_SETTLED, {
                "round": settled_index,
                "regime": regime.value,
                "results": results,
            })

            if game_over:
                if generation != self._generation or self.session is not session:
                    logger.info(f"Session changed during round {settled_index} settlement; skipping game over")
                    return
                self._finish_game()
        finally:
            self._settling = False

    def _finish_game(self) -> None:
        session = self.session
        session.state = GameState.GAME_OVER
        session.ended_at = _utc_now()
        self._stop_timers()

        self._publish_closed(self.ledger.close_all(CloseReason.GAME_END))

        for player in session.players.values():
            self.scoreboard.recompute(player)
        ranking = self.scoreboard.rank(session.players.values())
        session.winner_id = ranking[0].id if ranking else None

        human = session.human
        if human is not None:
            self.scoreboard.record_high_score(human, session.mode.value, session.difficulty.value)
            self._submit_score(human, session.difficulty.value)

        winner = session.players.get(session.winner_id) if session.winner_id else None
        logger.info(
            f"Game over after {session.rounds_settled} rounds: "
            f"winner={winner.name if winner else None}"
        )
        self._publish(EventKind.GAME_OVER, {
            "winner_id": session.winner_id,
            "ranking": [
                {"player_id": p.id, "name": p.name, "score": str(p.score), "balance": str(p.balance)}
                for p in ranking
            ],
        })

    def _submit_score(self, player: Player, difficulty: str) -> None:
        # Leaderboard calls block; a timer host runs them off its loop
        if self._timers is not None:
            self._timers.run_in_background(self.scoreboard.submit, player, difficulty)
        else:
            self.scoreboard.submit(player, difficulty)

    @staticmethod
    def _payout(stance: Stance, regime: MarketRegime, settings: DifficultySettings) -> Decimal:
        if stance == Stance.NEUTRAL:
            return ZERO
        if (stance == Stance.BUY and regime == MarketRegime.BULLISH) or (
            stance == Stance.SELL and regime == MarketRegime.BEARISH
        ):
            return settings.win_payout
        return -settings.loss_payout

    def _draw_trend_bias(self, settings: DifficultySettings) -> int:
        if settings.trend_bias is None:
            bias = 1 if self.rng.random() > 0.5 else -1
        else:
            bias = settings.trend_bias
        if settings.neutral_bias_chance > 0 and self.rng.random() < settings.neutral_bias_chance:
            bias = 0
        return bias

    def _create_ai_player(self, number: int, settings: DifficultySettings, balance: Decimal) -> Player:
        strategies = settings.ai_strategies
        index = min(int(self.rng.random() * len(strategies)), len(strategies) - 1)
        trader_type = TraderType.BULL if self.rng.random() > 0.5 else TraderType.BEAR
        return Player(
            id=f"ai-{number}",
            name=f"AI Trader {number}",
            kind=AIKind(strategy=strategies[index]),
            trader_type=trader_type,
            balance=balance,
            initial_balance=balance,
        )

    def _get_human(self, session: GameSession, player_id: Optional[str]) -> Player:
        player_id = player_id or session.human_id
        player = session.players.get(player_id)
        if player is None:
            raise ValidationError(f"Unknown player: {player_id}")
        if not player.is_human:
            raise ValidationError(f"Player {player_id} is AI-controlled")
        return player

    def _require_state(self, allowed, action: str) -> GameSession:
        allowed = allowed if isinstance(allowed, tuple) else (allowed,)
        if self.session is None or self.session.state not in allowed:
            logger.warning(f"Rejected: cannot {action} in state {self.state}")
            raise InvalidStateError(f"Cannot {action} in state {self.state}")
        return self.session

    def _is_current(self, generation: int) -> bool:
        if generation != self._generation:
            logger.debug(f"Stale timer callback ignored (generation {generation} != {self._generation})")
            return False
        return self.session is not None and self.session.state == GameState.ACTIVE

    def _restart_timers(self) -> None:
        self._generation += 1
        if self._timers is not None:
            self._timers.start(self._generation)

    def _stop_timers(self) -> None:
        self._generation += 1
        if self._timers is not None:
            self._timers.stop()

    def _publish_closed(self, positions: list[Position]) -> None:
        for position in positions:
            self._publish(EventKind.POSITION_CLOSED, position.to_dict())

    def _publish(self, kind: EventKind, data: dict[str, Any]) -> None:
        event = GameEvent(kind=kind, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except SchedulingDefect:
                raise
            except Exception as e:
                logger.error(f"Game event listener failed on {kind}: {e}", exc_info=True)
