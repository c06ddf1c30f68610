"""
Position types for the simulated ledger.

A position's direction is encoded in the sign of ``size`` (positive is
long, negative is short) and is fixed at creation.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


def _utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class PositionStatus(Enum):
    """Position lifecycle status."""

    OPEN = "open"
    CLOSED = "closed"
    LIQUIDATED = "liquidated"

    def __str__(self) -> str:
        return self.value


class CloseReason(Enum):
    """Why a position left the open book."""

    MANUAL = "manual"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    LIQUIDATION = "liquidation"
    GAME_END = "game_end"

    def __str__(self) -> str:
        return self.value


@dataclass
class Position:
    """
    Represents a leveraged position.

    Attributes:
        position_id: Unique identifier.
        owner_id: Player holding the position.
        entry_price: Market price at open.
        size: Signed quantity (+ long / - short); immutable after creation.
        leverage: Margin multiplier.
        stop_loss: Optional stop-loss trigger price.
        take_profit: Optional take-profit trigger price.
        status: Open, closed or liquidated.
        exit_price: Price at close (set once closed).
        pnl: Realized P&L, ``(exit_price - entry_price) * size``.
        close_reason: Why the position was closed.
        opened_at: Open timestamp.
        closed_at: Close timestamp.
    """

    position_id: str
    owner_id: str
    entry_price: Decimal
    size: Decimal
    leverage: int = 1
    stop_loss: Optional[Decimal] = None
    take_profit: Optional[Decimal] = None
    status: PositionStatus = PositionStatus.OPEN
    exit_price: Optional[Decimal] = None
    pnl: Optional[Decimal] = None
    close_reason: Optional[CloseReason] = None
    opened_at: datetime = field(default_factory=_utc_now)
    closed_at: Optional[datetime] = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "size" and "size" in self.__dict__:
            raise AttributeError("Position size cannot change after creation")
        super().__setattr__(name, value)

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    @property
    def is_long(self) -> bool:
        return self.size > 0

    @property
    def is_short(self) -> bool:
        return self.size < 0

    @property
    def notional_value(self) -> Decimal:
        """Notional value at entry."""
        return abs(self.size) * self.entry_price

    @property
    def margin(self) -> Decimal:
        """Margin reserved while the position is open."""
        return self.notional_value / Decimal(self.leverage)

    def unrealized_pnl(self, price: Decimal) -> Decimal:
        """P&L if the position were closed at ``price``."""
        return (price - self.entry_price) * self.size

    def stop_loss_hit(self, price: Decimal) -> bool:
        if self.stop_loss is None:
            return False
        if self.is_long:
            return price <= self.stop_loss
        return price >= self.stop_loss

    def take_profit_hit(self, price: Decimal) -> bool:
        if self.take_profit is None:
            return False
        if self.is_long:
            return price >= self.take_profit
        return price <= self.take_profit

    def to_dict(self) -> dict[str, Any]:
        """Convert position to dictionary."""
        return {
            "position_id": self.position_id,
            "owner_id": self.owner_id,
            "entry_price": str(self.entry_price),
            "size": str(self.size),
            "leverage": self.leverage,
            "stop_loss": str(self.stop_loss) if self.stop_loss is not None else None,
            "take_profit": str(self.take_profit) if self.take_profit is not None else None,
            "status": self.status.value,
            "exit_price": str(self.exit_price) if self.exit_price is not None else None,
            "pnl": str(self.pnl) if self.pnl is not None else None,
            "close_reason": self.close_reason.value if self.close_reason else None,
            "opened_at": self.opened_at.isoformat(),
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
        }
