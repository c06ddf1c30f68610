"""External service clients."""
from .leaderboard import LeaderboardClient

__all__ = ["LeaderboardClient"]
