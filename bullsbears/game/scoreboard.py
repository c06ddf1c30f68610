"""
Score computation, ranking and leaderboard submission.

    score    = (balance - initial_balance) + floor(win_rate) * bonus_factor
    win_rate = wins / max(1, wins + losses) * 100

Ranking is by score descending, then balance descending, then player id.
"""

import logging
from decimal import Decimal
from typing import Any, Iterable, Optional

from .. import config
from ..errors import CollaboratorUnavailableError
from ..traders.models import Player
from .models import _utc_now

logger = logging.getLogger(__name__)


def win_rate_percent(player: Player) -> int:
    """Whole-percent win rate (floored)."""
    return (player.wins * 100) // max(1, player.rounds_decided)


class ScoreBoard:
    """
    Derives scores and rankings; forwards final scores to the leaderboard.

    Attributes:
        bonus_factor: Points per whole percent of win rate.
        client: Optional leaderboard client (anything with ``submit_score``).
        high_score_limit: Entries kept per (mode, difficulty) table.
        high_scores: Local high-score tables.
    """

    def __init__(
        self,
        bonus_factor: int = config.SCORE_BONUS_FACTOR,
        client: Optional[Any] = None,
        high_score_limit: int = config.HIGH_SCORE_LIMIT,
    ) -> None:
        self.bonus_factor = bonus_factor
        self.client = client
        self.high_score_limit = high_score_limit
        self.high_scores: dict[tuple[str, str], list[dict[str, Any]]] = {}

    def recompute(self, player: Player) -> Decimal:
        """Recompute and store the player's score. Idempotent."""
        profit = player.balance - player.initial_balance
        bonus = Decimal(win_rate_percent(player) * self.bonus_factor)
        player.score = profit + bonus
        return player.score

    def rank(self, players: Iterable[Player]) -> list[Player]:
        """Players ordered best first."""
        return sorted(players, key=lambda p: (-p.score, -p.balance, p.id))

    def submit(self, player: Player, difficulty: str) -> bool:
        """
        Forward a final score to the leaderboard.

        Returns:
            True if the collaborator accepted the score. Failures are
            logged and never raised.
        """
        if self.client is None:
            logger.debug("No leaderboard client configured; skipping submission")
            return False

        try:
            self.client.submit_score(player.name, float(player.score), difficulty)
            return True
        except CollaboratorUnavailableError as e:
            logger.warning(f"Score submission for {player.name} failed: {e}")
            return False

    def record_high_score(self, player: Player, mode: str, difficulty: str) -> bool:
        """
        Add a score to the local table for (mode, difficulty).

        Returns:
            True if the score made the table.
        """
        table = self.high_scores.setdefault((mode, difficulty), [])
        entry = {
            "name": player.name,
            "score": str(player.score),
            "balance": str(player.balance),
            "wins": player.wins,
            "losses": player.losses,
            "timestamp": _utc_now().isoformat(),
        }
        table.append(entry)
        table.sort(key=lambda e: Decimal(e["score"]), reverse=True)
        del table[self.high_score_limit:]

        made_table = any(e is entry for e in table)
        if made_table:
            logger.info(f"New high score for {mode}/{difficulty}: {player.name} {player.score}")
        return made_table

    def get_high_scores(self, mode: str, difficulty: str) -> list[dict[str, Any]]:
        return list(self.high_scores.get((mode, difficulty), []))

    def clear_high_scores(self) -> None:
        self.high_scores.clear()
