"""
Game session orchestration.

This module provides:
- GameEngine: round state machine driven by timer callbacks and commands
- GameScheduler: asyncio host for the round and price timers
- ScoreBoard: scores, ranking, local high scores and leaderboard hook
- GameSession / Round / GameEvent data types

Usage:
    from bullsbears.game import GameEngine, GameScheduler

    engine = GameEngine(seed=7)
    scheduler = GameScheduler(engine)
    engine.initialize_game(player_name="Ada", difficulty="medium")
    engine.start_game()
    engine.place_trade("buy")
"""

from .engine import GameEngine
from .models import (
    Difficulty,
    DifficultySettings,
    EventKind,
    GameEvent,
    GameMode,
    GameSession,
    GameState,
    Round,
)
from .scheduler import GameScheduler
from .scoreboard import ScoreBoard

__all__ = [
    "GameEngine",
    "GameScheduler",
    "ScoreBoard",
    "GameSession",
    "GameState",
    "GameMode",
    "Difficulty",
    "DifficultySettings",
    "Round",
    "GameEvent",
    "EventKind",
]
