#!/usr/bin/env python3
"""
Run a Bulls vs Bears Game

Headless runner for the game engine. The human player's stance is chosen
automatically at the start of every round; AI traders, the price walk and
settlement run exactly as in an interactive game.

Usage:
    # Medium difficulty, 5 AI traders, real-time timers
    python scripts/run_game.py

    # Hard game, 10x speed, reproducible
    python scripts/run_game.py --difficulty hard --speed 10 --seed 42

    # Always buy, 3 rounds, verbose output
    python scripts/run_game.py --stance buy --rounds 3 --verbose

    # Submit the final score to a leaderboard service
    python scripts/run_game.py --leaderboard-url http://localhost:8000

    # Print the leaderboard and exit
    python scripts/run_game.py --show-leaderboard

Environment Variables:
    STARTING_BALANCE - Human starting balance (default 10000)
    MAX_ROUNDS - Rounds per game (default 10)
    LEADERBOARD_URL - Leaderboard service root (empty disables submission)
    TRADE_LOG_ENABLED - "true" to append ledger records to TRADE_LOG_PATH
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from bullsbears.api import LeaderboardClient
from bullsbears.config import (
    DEFAULT_AI_COUNT,
    DEFAULT_ASSET,
    LEADERBOARD_URL,
    LOGS_DIR,
    MAX_ROUNDS,
    ASSET_START_PRICES,
)
from bullsbears.errors import CollaboratorUnavailableError, GameError
from bullsbears.game import EventKind, GameEngine, GameEvent, GameScheduler, GameState, ScoreBoard
from bullsbears.market import MarketRegime

STANCE_CHOICES = ["trend", "buy", "sell", "neutral", "random"]


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the game runner."""
    level = logging.DEBUG if verbose else logging.INFO

    # Create formatters
    console_format = "%(asctime)s [%(levelname)s] %(message)s"
    file_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(console_format, datefmt="%H:%M:%S"))

    # File handler
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOGS_DIR / f"game_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(file_format))

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    # Reduce noise from external libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)

    print(f"Logs will be written to: {log_file}")


def choose_stance(engine: GameEngine, strategy: str) -> str:
    """Pick the human stance for the coming round."""
    if strategy == "random":
        return ["buy", "sell", "neutral"][int(engine.rng.random() * 3) % 3]
    if strategy != "trend":
        return strategy

    regime = engine.simulator.regime()
    if regime == MarketRegime.BULLISH:
        return "buy"
    if regime == MarketRegime.BEARISH:
        return "sell"
    return "neutral"


def show_leaderboard(url: str, limit: int) -> int:
    """Print the leaderboard; returns the process exit code."""
    if not url:
        print("Error: no leaderboard URL configured (use --leaderboard-url or LEADERBOARD_URL)")
        return 1

    try:
        entries = LeaderboardClient(base_url=url).get_leaderboard(limit=limit)
    except CollaboratorUnavailableError as e:
        print(f"Error: {e}")
        return 1

    print("\n" + "=" * 70)
    print("Leaderboard")
    print("=" * 70)
    for i, entry in enumerate(entries, 1):
        print(
            f"  {i:>2}. {entry.get('playerName', '?'):<20} "
            f"{entry.get('score', 0):>10} ({entry.get('difficulty', '?')})"
        )
    if not entries:
        print("  No entries yet")
    print("=" * 70)
    return 0


async def run_game(args: argparse.Namespace) -> None:
    """Play one headless game to completion."""
    client = LeaderboardClient(base_url=args.leaderboard_url) if args.leaderboard_url else None
    engine = GameEngine(scoreboard=ScoreBoard(client=client), seed=args.seed)
    scheduler = GameScheduler(engine, time_scale=1.0 / args.speed)

    def on_event(event: GameEvent) -> None:
        if event.kind == EventKind.ROUND_SETTLED:
            data = event.data
            human = next(r for r in data["results"] if r["player_id"] == engine.session.human_id)
            print(
                f"Round {data['round']:>2}: regime={data['regime']:<8} "
                f"you={human['stance']:<7} payout={human['payout']:>6} balance={human['balance']}"
            )
            if engine.state == GameState.ACTIVE:
                engine.place_trade(choose_stance(engine, args.stance))
        elif event.kind == EventKind.MARKET_EVENT:
            print(f"  NEWS: {event.data['message']}")

    engine.subscribe(on_event)

    engine.initialize_game(
        player_name=args.name,
        trader_type=args.player_type,
        difficulty=args.difficulty,
        ai_count=args.ai_count,
        max_rounds=args.rounds,
        asset=args.asset,
        seed=args.seed,
    )

    session = engine.session
    print("\n" + "=" * 70)
    print(f"Bulls vs Bears: {session.difficulty.value.upper()} ({session.asset})")
    print("=" * 70)
    print(f"\nConfiguration:")
    print(f"  Player: {args.name} ({args.player_type})")
    print(f"  AI Traders: {len(session.ai_players)}")
    print(f"  Rounds: {session.max_rounds} x {session.settings.round_duration}s")
    print(f"  Speed: {args.speed}x")
    print(f"  Stance Strategy: {args.stance}")
    print(f"\nPress Ctrl+C to stop\n")

    engine.start_game()
    engine.place_trade(choose_stance(engine, args.stance))

    try:
        await scheduler.wait_finished()
    except asyncio.CancelledError:
        print("\nShutdown requested by user...")
    finally:
        await scheduler.shutdown()

    print_summary(engine)


def print_summary(engine: GameEngine) -> None:
    """Print the final ranking."""
    session = engine.session
    if session is None:
        return

    print("\n" + "=" * 70)
    print("Final Standings" if session.state == GameState.GAME_OVER else "Standings (game interrupted)")
    print("=" * 70)

    ranking = engine.scoreboard.rank(session.players.values())
    for i, player in enumerate(ranking, 1):
        marker = " <- you" if player.is_human else ""
        print(
            f"  {i:>2}. {player.name:<16} {str(player.kind):<18} "
            f"score={player.score:>9} balance={player.balance:>10} "
            f"W/L={player.wins}/{player.losses}{marker}"
        )

    human = session.human
    if human is not None:
        print(f"\nYour trades: {session.total_trades}")
        print(f"Your score: {human.score}")
    print("\n" + "=" * 70)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run a headless Bulls vs Bears game",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_game.py                          # Medium game, real time
  python scripts/run_game.py --speed 20 --seed 7      # Fast, reproducible
  python scripts/run_game.py --difficulty hard        # Hard game
  python scripts/run_game.py --show-leaderboard       # Print leaderboard
        """,
    )

    parser.add_argument(
        "--difficulty",
        choices=["easy", "medium", "hard"],
        default="medium",
        help="Difficulty preset (default: medium)",
    )
    parser.add_argument(
        "--ai-count",
        type=int,
        default=DEFAULT_AI_COUNT,
        help=f"Number of AI traders (default: {DEFAULT_AI_COUNT})",
    )
    parser.add_argument(
        "--rounds",
        type=int,
        default=MAX_ROUNDS,
        help=f"Rounds per game (default: {MAX_ROUNDS})",
    )
    parser.add_argument(
        "--asset",
        choices=sorted(ASSET_START_PRICES),
        default=DEFAULT_ASSET,
        help=f"Simulated asset (default: {DEFAULT_ASSET})",
    )
    parser.add_argument("--name", default="Player", help="Player name")
    parser.add_argument(
        "--player-type",
        choices=["bull", "bear"],
        default="bull",
        help="Trader type of the human player (default: bull)",
    )
    parser.add_argument(
        "--stance",
        choices=STANCE_CHOICES,
        default="trend",
        help="How the human stance is chosen each round (default: trend)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible games")
    parser.add_argument(
        "--speed",
        type=float,
        default=1.0,
        help="Timer speed-up factor (default: 1.0 = real time)",
    )
    parser.add_argument(
        "--leaderboard-url",
        default=LEADERBOARD_URL,
        help="Leaderboard service root (default: LEADERBOARD_URL)",
    )
    parser.add_argument(
        "--show-leaderboard",
        action="store_true",
        help="Print the leaderboard and exit",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    if args.show_leaderboard:
        sys.exit(show_leaderboard(args.leaderboard_url, limit=10))

    if args.speed <= 0:
        parser.error("--speed must be positive")

    setup_logging(verbose=args.verbose)

    try:
        asyncio.run(run_game(args))
    except KeyboardInterrupt:
        print("\nInterrupted.")
    except GameError as e:
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
