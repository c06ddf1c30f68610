"""
Tests for the ScoreBoard.

Tests cover:
- Score formula and idempotence
- Ranking with tie-breakers
- Leaderboard submission (success, failure, no client)
- Local high-score tables
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from bullsbears.errors import CollaboratorUnavailableError
from bullsbears.game import ScoreBoard
from bullsbears.game.scoreboard import win_rate_percent
from bullsbears.traders import AIKind, HumanKind, Player, TraderType


def make_player(player_id="human", balance="10000", initial="10000", wins=0, losses=0, kind=None):
    return Player(
        id=player_id,
        name=f"Player {player_id}",
        kind=kind or HumanKind(),
        trader_type=TraderType.BULL,
        balance=Decimal(balance),
        initial_balance=Decimal(initial),
        wins=wins,
        losses=losses,
    )


@pytest.fixture
def scoreboard():
    return ScoreBoard(bonus_factor=10)


class TestRecompute:
    """Score formula."""

    def test_profit_plus_bonus(self, scoreboard):
        player = make_player(balance="10100", wins=1)
        assert scoreboard.recompute(player) == Decimal("1100")
        assert player.score == Decimal("1100")

    def test_win_rate_floored(self, scoreboard):
        """2 wins in 3 rounds is 66%, not 66.67%."""
        player = make_player(wins=2, losses=1)

        assert win_rate_percent(player) == 66
        assert scoreboard.recompute(player) == Decimal("660")

    def test_no_rounds(self, scoreboard):
        player = make_player(balance="9950")
        assert scoreboard.recompute(player) == Decimal("-50")

    def test_idempotent(self, scoreboard):
        player = make_player(balance="10300", wins=3, losses=2)

        first = scoreboard.recompute(player)
        second = scoreboard.recompute(player)

        assert first == second == Decimal("900")


class TestRank:
    """Ranking order."""

    def test_orders_by_score_then_balance_then_id(self, scoreboard):
        a = make_player("b", balance="10500", initial="10000")
        b = make_player("a", balance="8500", initial="8000")
        c = make_player("c", balance="12000", initial="11000")
        d = make_player("d", balance="10000", initial="10000")
        for p in (a, b, c, d):
            scoreboard.recompute(p)

        ranking = scoreboard.rank([d, b, a, c])

        # "b" and "a" tie at 500; "b" has the higher balance
        assert [p.id for p in ranking] == ["c", "b", "a", "d"]

    def test_id_breaks_full_tie(self, scoreboard):
        x = make_player("x")
        y = make_player("y")
        assert [p.id for p in scoreboard.rank([y, x])] == ["x", "y"]


class TestSubmit:
    """Leaderboard hook."""

    def test_submit_success(self):
        client = MagicMock()
        scoreboard = ScoreBoard(client=client)
        player = make_player(balance="10100", wins=1)
        scoreboard.recompute(player)

        assert scoreboard.submit(player, "medium") is True
        client.submit_score.assert_called_once_with("Player human", 1100.0, "medium")

    def test_submit_failure_is_swallowed(self):
        client = MagicMock()
        client.submit_score.side_effect = CollaboratorUnavailableError("down")
        scoreboard = ScoreBoard(client=client)

        assert scoreboard.submit(make_player(), "hard") is False

    def test_submit_without_client(self, scoreboard):
        assert scoreboard.submit(make_player(), "easy") is False


class TestHighScores:
    """Local high-score tables."""

    def test_table_is_sorted_and_limited(self):
        scoreboard = ScoreBoard(high_score_limit=3)
        for i, balance in enumerate(["10100", "10500", "10300", "10200"]):
            player = make_player(f"p{i}", balance=balance)
            scoreboard.recompute(player)
            scoreboard.record_high_score(player, "single_player", "medium")

        table = scoreboard.get_high_scores("single_player", "medium")

        assert [e["score"] for e in table] == ["500", "300", "200"]

    def test_low_score_does_not_make_full_table(self):
        scoreboard = ScoreBoard(high_score_limit=1)
        best = make_player("best", balance="11000")
        worst = make_player("worst", balance="9000")
        for p in (best, worst):
            scoreboard.recompute(p)

        assert scoreboard.record_high_score(best, "single_player", "easy") is True
        assert scoreboard.record_high_score(worst, "single_player", "easy") is False

    def test_tables_are_per_difficulty(self, scoreboard):
        player = make_player(kind=AIKind())
        scoreboard.record_high_score(player, "single_player", "hard")

        assert scoreboard.get_high_scores("single_player", "easy") == []
        assert len(scoreboard.get_high_scores("single_player", "hard")) == 1
