"""Configuration management for the Bulls vs Bears simulation engine."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent

# Data directory
DATA_DIR = PROJECT_ROOT / "data"
LOGS_DIR = PROJECT_ROOT / "logs"

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# =============================================================================
# SESSION DEFAULTS
# =============================================================================

# Starting balance for the human player (AI balances are scaled per difficulty)
STARTING_BALANCE = float(os.getenv("STARTING_BALANCE", "10000"))

# Rounds per game
MAX_ROUNDS = int(os.getenv("MAX_ROUNDS", "10"))

# Number of AI traders created at session initialization
DEFAULT_AI_COUNT = int(os.getenv("DEFAULT_AI_COUNT", "5"))

DEFAULT_ASSET = os.getenv("DEFAULT_ASSET", "BTC")

# Warm-up ticks generated before the first round so the regime is defined
WARMUP_TICKS = int(os.getenv("WARMUP_TICKS", "20"))

# =============================================================================
# PRICE SIMULATION
# =============================================================================

# Prices never drop below this floor
PRICE_FLOOR = float(os.getenv("PRICE_FLOOR", "1.0"))

# Weight applied to the trend bias inside the noise term
BIAS_WEIGHT = float(os.getenv("BIAS_WEIGHT", "0.25"))

# Regime classification: ticks in the window, trend threshold (%), volatility threshold (%)
REGIME_WINDOW = int(os.getenv("REGIME_WINDOW", "10"))
REGIME_THRESHOLD_PCT = float(os.getenv("REGIME_THRESHOLD_PCT", "2.0"))
VOLATILE_STDEV_PCT = float(os.getenv("VOLATILE_STDEV_PCT", "1.0"))

# Chance per price tick that a news event is injected
RANDOM_EVENT_PROBABILITY = float(os.getenv("RANDOM_EVENT_PROBABILITY", "0.05"))

# Ticks over which an injected event bias fades linearly to zero; the base
# trend applies again once the override expires
EVENT_DECAY_TICKS = int(os.getenv("EVENT_DECAY_TICKS", "5"))

# Ticks kept in the simulator's rolling history
PRICE_HISTORY_LIMIT = int(os.getenv("PRICE_HISTORY_LIMIT", "100"))

ASSET_START_PRICES = {
    "BTC": 50000.0,
    "ETH": 3000.0,
    "SOL": 100.0,
    "FUTURES_INDEX": 1000.0,
}

# =============================================================================
# SCORING
# =============================================================================

# Points per whole percent of win rate
SCORE_BONUS_FACTOR = int(os.getenv("SCORE_BONUS_FACTOR", "10"))

# Local high-score table size per (mode, difficulty)
HIGH_SCORE_LIMIT = int(os.getenv("HIGH_SCORE_LIMIT", "10"))

# =============================================================================
# DIFFICULTY PRESETS
# =============================================================================

# trend_bias: fixed bias, or None to draw +1/-1 at session start.
# neutral_bias_chance: probability that the drawn bias is replaced by 0.
DIFFICULTY_SETTINGS = {
    "easy": {
        "round_duration": 45,
        "price_interval": 2.0,
        "volatility": 0.01,
        "win_payout": 100,
        "loss_payout": 25,
        "ai_balance_multiplier": 0.8,
        "max_leverage": 5,
        "ai_strategies": ("random",),
        "trend_bias": 1,
        "neutral_bias_chance": 0.0,
    },
    "medium": {
        "round_duration": 30,
        "price_interval": 1.0,
        "volatility": 0.02,
        "win_payout": 100,
        "loss_payout": 50,
        "ai_balance_multiplier": 1.0,
        "max_leverage": 20,
        "ai_strategies": ("trend_follower", "contrarian", "random"),
        "trend_bias": None,
        "neutral_bias_chance": 0.0,
    },
    "hard": {
        "round_duration": 20,
        "price_interval": 0.5,
        "volatility": 0.04,
        "win_payout": 150,
        "loss_payout": 100,
        "ai_balance_multiplier": 1.2,
        "max_leverage": 50,
        "ai_strategies": ("trend_follower",),
        "trend_bias": -1,
        "neutral_bias_chance": 0.3,
    },
}

# =============================================================================
# LEADERBOARD COLLABORATOR
# =============================================================================

# Empty URL disables score submission
LEADERBOARD_URL = os.getenv("LEADERBOARD_URL", "")
LEADERBOARD_TIMEOUT = float(os.getenv("LEADERBOARD_TIMEOUT", "5"))

# =============================================================================
# TRADE LOG
# =============================================================================

TRADE_LOG_ENABLED = os.getenv("TRADE_LOG_ENABLED", "false").lower() == "true"
TRADE_LOG_PATH = os.getenv("TRADE_LOG_PATH", "data/trade_log.jsonl")
