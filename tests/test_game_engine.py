"""
Tests for the Game Engine (round state machine).

Tests cover:
- Session initialization and difficulty presets
- State transitions and rejected commands
- Round timer countdown and settlement
- Payout table
- Pause / resume without losing time
- Reset and stale timer callbacks
- Game over, end-of-game closing and winner selection
- Session events and status snapshot
- Determinism with a seed
"""

import json
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from bullsbears.errors import InvalidStateError, ValidationError
from bullsbears.game import (
    Difficulty,
    EventKind,
    GameEngine,
    GameState,
    ScoreBoard,
)
from bullsbears.ledger import CloseReason, PositionLedger, PositionStatus
from bullsbears.market import MarketRegime, PriceSimulator
from bullsbears.traders import AITraderPolicy, Stance, Strategy, TraderType


class FixedRandom:
    """Random source that always returns the same draw."""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


class RecordingTimers:
    """Timer host that records start/stop calls."""

    def __init__(self):
        self.calls = []

    def start(self, generation):
        self.calls.append(("start", generation))

    def stop(self):
        self.calls.append(("stop",))

    def run_in_background(self, func, *args):
        self.calls.append(("background", func.__name__))
        func(*args)


def make_engine(value=0.99, scoreboard=None, policy=None):
    """
    Engine on a fixed draw.

    With 0.99 every draw picks a +1 trend, the price rises steadily (bullish,
    zero return stdev), AI traders get the random strategy and stay neutral,
    and no news events fire.
    """
    rng = FixedRandom(value)
    return GameEngine(
        simulator=PriceSimulator(rng=rng),
        ledger=PositionLedger(log_trades=False),
        policy=policy or AITraderPolicy(rng=rng),
        scoreboard=scoreboard or ScoreBoard(),
    )


def run_seconds(engine, seconds):
    results = []
    for _ in range(seconds):
        results.append(engine.on_round_timer(engine.generation))
    return results


@pytest.fixture
def engine():
    engine = make_engine()
    engine.initialize_game(player_name="Ada", difficulty="medium", ai_count=5)
    return engine


@pytest.fixture
def active_engine(engine):
    engine.start_game()
    return engine


# =============================================================================
# Initialization
# =============================================================================


class TestInitialize:
    """Session setup."""

    def test_creates_players(self, engine):
        session = engine.session

        assert session.state == GameState.SETUP
        assert session.human.name == "Ada"
        assert session.human.balance == Decimal("10000")
        assert len(session.ai_players) == 5
        assert all(p.balance == Decimal("10000") for p in session.ai_players)
        assert set(engine.ledger.accounts) == set(session.players)

    def test_ai_strategy_and_type_from_rng(self, engine):
        for player in engine.session.ai_players:
            assert player.kind.strategy == Strategy.RANDOM
            assert player.trader_type == TraderType.BULL

    def test_warmup_history(self, engine):
        assert len(engine.simulator.history) == 20
        assert engine.simulator.regime() == MarketRegime.BULLISH
        assert engine.ledger.current_price == Decimal(str(engine.simulator.current_price))

    def test_medium_draws_trend_bias(self, engine):
        assert engine.session.trend_bias == 1
        assert engine.simulator.trend_bias == 1

    def test_hard_bias_can_be_neutralized(self):
        engine = make_engine(value=0.1)
        engine.initialize_game(difficulty="hard")

        assert engine.session.trend_bias == 0
        assert engine.session.settings.max_leverage == 50
        assert engine.ledger.max_leverage == 50

    def test_easy_preset(self):
        engine = make_engine()
        engine.initialize_game(difficulty=Difficulty.EASY, ai_count=2, asset="eth")

        session = engine.session
        assert session.trend_bias == 1
        assert session.round.duration_seconds == 45
        assert session.asset == "ETH"
        assert engine.simulator.start_price == 3000.0
        assert all(p.balance == Decimal("8000.0") for p in session.ai_players)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"difficulty": "impossible"},
            {"trader_type": "whale"},
            {"asset": "DOGE"},
            {"ai_count": -1},
            {"max_rounds": 0},
            {"starting_balance": 0},
            {"player_name": "  "},
        ],
    )
    def test_invalid_parameters(self, kwargs):
        engine = make_engine()
        with pytest.raises(ValidationError):
            engine.initialize_game(**kwargs)
        assert engine.session is None

    def test_cannot_initialize_while_active(self, active_engine):
        with pytest.raises(InvalidStateError):
            active_engine.initialize_game()

    def test_reinitialize_from_setup(self, engine):
        engine.initialize_game(player_name="Bob", ai_count=1)

        assert engine.session.human.name == "Bob"
        assert len(engine.ledger.accounts) == 2


# =============================================================================
# State transitions
# =============================================================================


class TestTransitions:
    """Lifecycle commands."""

    def test_start(self, engine):
        engine.start_game()

        assert engine.state == GameState.ACTIVE
        assert engine.session.round.index == 1
        assert engine.session.round.time_remaining == 30

    def test_start_twice(self, active_engine):
        with pytest.raises(InvalidStateError):
            active_engine.start_game()

    def test_pause_requires_active(self, engine):
        with pytest.raises(InvalidStateError):
            engine.pause_game()

    def test_resume_requires_paused(self, active_engine):
        with pytest.raises(InvalidStateError):
            active_engine.resume_game()

    def test_commands_without_session(self):
        engine = make_engine()
        assert engine.state == GameState.SETUP
        with pytest.raises(InvalidStateError):
            engine.start_game()

    def test_timer_host_follows_state(self, engine):
        timers = RecordingTimers()
        engine.attach_timers(timers)

        engine.start_game()
        engine.pause_game()
        engine.resume_game()
        engine.reset_game()

        assert timers.calls == [("start", 1), ("stop",), ("start", 3), ("stop",)]


# =============================================================================
# Trading commands
# =============================================================================


class TestTrades:
    """place_trade and position commands."""

    def test_place_trade(self, active_engine):
        player = active_engine.place_trade("buy")

        assert player.stance == Stance.BUY
        assert active_engine.session.total_trades == 1

    def test_place_trade_requires_active(self, engine):
        with pytest.raises(InvalidStateError):
            engine.place_trade("buy")

    def test_rejected_trade_keeps_stance(self, active_engine):
        active_engine.place_trade("sell")

        with pytest.raises(ValidationError):
            active_engine.place_trade("moon")

        assert active_engine.session.human.stance == Stance.SELL
        assert active_engine.session.human.balance == Decimal("10000")

    def test_ai_player_cannot_trade(self, active_engine):
        with pytest.raises(ValidationError):
            active_engine.place_trade("buy", player_id="ai-1")

    def test_open_and_close_position(self, active_engine):
        events = []
        active_engine.subscribe(events.append)

        position_id = active_engine.open_position(size=0.1, leverage=10)
        pnl = active_engine.close_position(position_id)

        assert pnl == Decimal("0")
        closed = [e for e in events if e.kind == EventKind.POSITION_CLOSED]
        assert closed[0].data["position_id"] == position_id

    def test_leverage_capped_by_difficulty(self, active_engine):
        with pytest.raises(ValidationError):
            active_engine.open_position(size=0.01, leverage=21)


# =============================================================================
# Round timer and settlement
# =============================================================================


class TestSettlement:
    """Countdown, payouts and round advance."""

    def test_countdown(self, active_engine):
        before = active_engine.session.round.time_remaining
        assert active_engine.on_round_timer(active_engine.generation) is True
        assert active_engine.session.round.time_remaining == before - 1

    def test_bullish_buy_wins(self, active_engine):
        """Medium, 5 AI, bullish first round: buy pays +100."""
        active_engine.place_trade("buy")

        run_seconds(active_engine, 30)

        human = active_engine.session.human
        assert human.balance == Decimal("10100")
        assert human.wins == 1
        assert human.losses == 0
        assert human.score == Decimal("1100")
        assert human.stance == Stance.NEUTRAL
        assert active_engine.session.round.index == 2
        assert active_engine.session.round.time_remaining == 30
        assert active_engine.state == GameState.ACTIVE
        assert active_engine.session.last_regime == MarketRegime.BULLISH

    def test_wrong_stance_loses(self, active_engine):
        active_engine.place_trade("sell")
        run_seconds(active_engine, 30)

        human = active_engine.session.human
        assert human.balance == Decimal("9950")
        assert human.losses == 1

    def test_loss_clamps_balance_at_zero(self):
        engine = make_engine()
        engine.initialize_game(difficulty="medium", starting_balance=30)
        engine.start_game()
        engine.place_trade("sell")

        run_seconds(engine, 30)

        human = engine.session.human
        assert engine.session.last_regime == MarketRegime.BULLISH
        assert human.balance == Decimal("0")
        assert human.losses == 1

    def test_neutral_pays_nothing(self, active_engine):
        run_seconds(active_engine, 30)

        human = active_engine.session.human
        assert human.balance == Decimal("10000")
        assert human.wins + human.losses == 0

    def test_ai_stances_decided(self, active_engine):
        """Random-strategy AIs draw 0.99 and stay neutral."""
        events = []
        active_engine.subscribe(events.append)

        run_seconds(active_engine, 30)

        settled = [e for e in events if e.kind == EventKind.ROUND_SETTLED][0]
        ai_results = [r for r in settled.data["results"] if r["player_id"] != "human"]
        assert len(ai_results) == 5
        assert all(r["stance"] == "neutral" for r in ai_results)

    def test_wins_and_losses_bounded_by_round(self, active_engine):
        for _ in range(3):
            active_engine.place_trade("buy")
            run_seconds(active_engine, 30)
            session = active_engine.session
            for player in session.players.values():
                assert player.wins + player.losses <= session.round.index

    def test_reentrant_timer_during_settlement_is_noop(self):
        class ReentrantPolicy:
            def __init__(self):
                self.engine = None
                self.results = []

            def decide(self, player, regime):
                self.results.append(self.engine.on_round_timer(self.engine.generation))
                return Stance.NEUTRAL

        policy = ReentrantPolicy()
        engine = make_engine(policy=policy)
        policy.engine = engine
        engine.initialize_game(ai_count=2)
        engine.start_game()

        run_seconds(engine, 30)

        assert policy.results == [False, False]
        assert engine.session.rounds_settled == 1
        assert engine.session.round.time_remaining == 30


# =============================================================================
# Pause / resume
# =============================================================================


class TestPauseResume:
    """Time is preserved exactly across a pause."""

    def test_pause_in_round_three(self, active_engine):
        run_seconds(active_engine, 30 + 30 + 18)
        session = active_engine.session
        assert session.round.index == 3
        assert session.round.time_remaining == 12

        stale = active_engine.generation
        active_engine.pause_game()

        assert active_engine.on_round_timer(stale) is False
        assert active_engine.on_round_timer(active_engine.generation) is False
        assert active_engine.on_price_timer(active_engine.generation) is False
        assert session.round.time_remaining == 12

        active_engine.resume_game()
        assert session.round.time_remaining == 12

        run_seconds(active_engine, 11)
        assert session.round.time_remaining == 1
        assert session.rounds_settled == 2

        run_seconds(active_engine, 1)
        assert session.rounds_settled == 3
        assert session.round.index == 4

    def test_close_position_while_paused(self, active_engine):
        position_id = active_engine.open_position(size=0.01)
        active_engine.pause_game()

        active_engine.close_position(position_id)

        assert not active_engine.ledger.get_position(position_id).is_open


# =============================================================================
# Reset
# =============================================================================


class TestReset:
    """Reset tears down the session."""

    def test_reset_during_active(self, active_engine):
        stale = active_engine.generation
        active_engine.reset_game()

        assert active_engine.state == GameState.SETUP
        assert active_engine.session is None
        assert active_engine.on_round_timer(stale) is False
        assert active_engine.on_price_timer(stale) is False
        assert active_engine.ledger.accounts == {}

    def test_new_game_after_reset(self, active_engine):
        active_engine.reset_game()
        active_engine.initialize_game(player_name="Bob")
        active_engine.start_game()

        assert active_engine.session.human.name == "Bob"
        assert active_engine.on_round_timer(active_engine.generation) is True

    def test_reset_event(self, active_engine):
        events = []
        active_engine.subscribe(events.append)

        active_engine.reset_game()

        assert events[-1].kind == EventKind.GAME_RESET

    def test_reset_from_final_round_listener(self):
        engine = make_engine()
        engine.initialize_game(max_rounds=1)
        engine.start_game()
        events = []

        def reset_on_settle(event):
            events.append(event.kind)
            if event.kind == EventKind.ROUND_SETTLED:
                engine.reset_game()

        engine.subscribe(reset_on_settle)
        stale = engine.generation

        results = run_seconds(engine, 30)

        assert results[-1] is False
        assert engine.state == GameState.SETUP
        assert engine.session is None
        assert EventKind.GAME_OVER not in events
        assert events[-1] == EventKind.GAME_RESET
        assert engine.on_round_timer(stale) is False
        assert all(r is False for r in run_seconds(engine, 30))


# =============================================================================
# Price timer
# =============================================================================


class TestPriceTimer:
    """Price ticks while Active."""

    def test_price_tick_updates_ledger(self, active_engine):
        events = []
        active_engine.subscribe(events.append)
        before = active_engine.simulator.current_price

        assert active_engine.on_price_timer(active_engine.generation) is True

        assert active_engine.simulator.current_price > before
        assert active_engine.ledger.current_price == Decimal(str(active_engine.simulator.current_price))
        assert [e.kind for e in events] == [EventKind.PRICE_TICK]

    def test_market_event_published(self):
        engine = make_engine(value=0.01)
        engine.initialize_game()
        engine.start_game()
        events = []
        engine.subscribe(events.append)

        engine.on_price_timer(engine.generation)

        assert EventKind.MARKET_EVENT in [e.kind for e in events]
        assert engine.simulator.has_active_event


# =============================================================================
# Game over
# =============================================================================


class TestGameOver:
    """Final round, closing and ranking."""

    def test_game_over_after_max_rounds(self):
        client = MagicMock()
        engine = make_engine(scoreboard=ScoreBoard(client=client))
        engine.initialize_game(player_name="Ada", difficulty="easy", ai_count=3, max_rounds=2)
        engine.start_game()
        events = []
        engine.subscribe(events.append)

        engine.place_trade("buy")
        position_id = engine.open_position(size=0.01)
        first = run_seconds(engine, 45)
        last = run_seconds(engine, 45)

        session = engine.session
        assert all(first)
        assert last[-1] is False
        assert session.state == GameState.GAME_OVER
        assert session.rounds_settled == 2
        assert session.winner_id == "human"
        assert session.human.score == Decimal("1100")

        position = engine.ledger.get_position(position_id)
        assert position.status == PositionStatus.CLOSED
        assert position.close_reason == CloseReason.GAME_END

        assert events[-1].kind == EventKind.GAME_OVER
        assert events[-1].data["ranking"][0]["player_id"] == "human"
        client.submit_score.assert_called_once_with("Ada", 1100.0, "easy")
        assert len(engine.scoreboard.get_high_scores("single_player", "easy")) == 1

    def test_no_ticks_after_game_over(self):
        engine = make_engine()
        engine.initialize_game(max_rounds=1)
        engine.start_game()
        run_seconds(engine, 30)

        assert engine.on_round_timer(engine.generation) is False
        assert engine.on_price_timer(engine.generation) is False
        with pytest.raises(InvalidStateError):
            engine.place_trade("buy")

    def test_submission_handed_to_timer_host(self):
        client = MagicMock()
        engine = make_engine(scoreboard=ScoreBoard(client=client))
        timers = RecordingTimers()
        engine.attach_timers(timers)
        engine.initialize_game(player_name="Ada", difficulty="easy", max_rounds=1)
        engine.start_game()

        run_seconds(engine, 30)

        assert ("background", "submit") in timers.calls
        client.submit_score.assert_called_once()

    def test_leaderboard_failure_does_not_block(self):
        from bullsbears.errors import CollaboratorUnavailableError

        client = MagicMock()
        client.submit_score.side_effect = CollaboratorUnavailableError("down")
        engine = make_engine(scoreboard=ScoreBoard(client=client))
        engine.initialize_game(max_rounds=1)
        engine.start_game()

        run_seconds(engine, 30)

        assert engine.state == GameState.GAME_OVER


# =============================================================================
# Events, status, determinism
# =============================================================================


class TestEventsAndStatus:
    """Listeners and status snapshot."""

    def test_failing_listener_is_isolated(self, engine):
        def broken(_event):
            raise RuntimeError("boom")

        engine.subscribe(broken)
        engine.start_game()

        assert engine.state == GameState.ACTIVE

    def test_unsubscribe(self, engine):
        events = []
        unsubscribe = engine.subscribe(events.append)
        unsubscribe()

        engine.start_game()

        assert events == []

    def test_status_is_json_friendly(self, active_engine):
        active_engine.place_trade("buy")
        status = active_engine.get_status()

        assert status["state"] == "active"
        assert status["session"]["round"]["index"] == 1
        assert set(status["pnl"]) == set(active_engine.session.players)
        json.dumps(status)

    def test_status_without_session(self):
        status = make_engine().get_status()
        assert status["state"] == "setup"
        assert status["session"] is None


class TestDeterminism:
    """Same seed and configuration give the same game."""

    @staticmethod
    def play(seed):
        engine = GameEngine(ledger=PositionLedger(log_trades=False), seed=seed)
        settled = []
        engine.subscribe(lambda e: settled.append(e.data) if e.kind == EventKind.ROUND_SETTLED else None)
        engine.initialize_game(difficulty="medium", ai_count=5, seed=seed)
        engine.start_game()
        for _ in range(3):
            for _ in range(30):
                engine.on_price_timer(engine.generation)
                engine.on_round_timer(engine.generation)
        kinds = [str(p.kind) for p in engine.session.ai_players]
        return engine.simulator.prices, kinds, settled

    def test_same_seed_same_game(self):
        assert self.play(1234) == self.play(1234)
