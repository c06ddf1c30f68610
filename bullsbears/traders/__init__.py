"""AI trader decision model and trader identity types."""
from .models import AIKind, HumanKind, Player, PlayerKind, Stance, Strategy, TraderType
from .policy import AITraderPolicy, StanceProbabilities, stance_probabilities

__all__ = [
    "AITraderPolicy",
    "StanceProbabilities",
    "stance_probabilities",
    "Stance",
    "Strategy",
    "TraderType",
    "HumanKind",
    "AIKind",
    "PlayerKind",
    "Player",
]
