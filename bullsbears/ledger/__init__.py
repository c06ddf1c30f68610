"""
Position ledger for the game engine.

This module provides:
- Position: leveraged position record with signed size
- PositionLedger: open/close, per-tick liquidation and stop/target checks

Usage:
    from bullsbears.ledger import PositionLedger

    ledger = PositionLedger()
    ledger.register(player)
    ledger.set_price(50000)
    position_id = ledger.open(player.id, size=1, leverage=10)
    closed = ledger.evaluate_tick(49000)
"""

from .base import CloseReason, Position, PositionStatus
from .positions import PositionLedger

__all__ = [
    "Position",
    "PositionStatus",
    "CloseReason",
    "PositionLedger",
]
