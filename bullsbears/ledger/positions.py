"""
Position Ledger.

Owns every open and closed position for every registered player and
settles them against the simulated market price.

Features:
- Margin check on open: ``|size| * entry_price / leverage`` must fit in
  the available balance (balance minus margin held by open positions)
- Realized P&L ``(exit_price - entry_price) * size`` on close
- Per-tick evaluation of liquidation, stop-loss and take-profit
- Stop-loss / take-profit updates on open positions
- Trade history with optional JSONL trade log
- reset() for a new session

Per-tick evaluation order for each open position (in opening order):
1. Liquidation: owner balance + unrealized P&L of all the owner's open
   positions <= 0. Closed as LIQUIDATED, balance clamped to 0.
2. Stop-loss crossing.
3. Take-profit crossing.
The first rule that fires closes the position; later rules are skipped.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Union

from .. import config
from ..errors import (
    InsufficientFundsError,
    PositionAlreadyClosedError,
    PositionNotFoundError,
    ValidationError,
)
from ..traders.models import Player
from .base import CloseReason, Position, PositionStatus

logger = logging.getLogger(__name__)

Number = Union[Decimal, float, int, str]

ZERO = Decimal("0")


def _to_decimal(value: Number) -> Decimal:
    return Decimal(str(value))


class PositionLedger:
    """
    Simulated position and P&L ledger.

    Attributes:
        accounts: Registered players by id.
        positions: Every position ever opened this session, by id.
        current_price: Last price seen by the ledger.
        max_leverage: Highest leverage accepted on open.
        trade_history: Open/close records for analysis.
        log_trades: Whether to append records to the JSONL log.
        log_path: Path to the trade log file.
    """

    def __init__(
        self,
        max_leverage: int = 100,
        log_trades: bool = config.TRADE_LOG_ENABLED,
        log_path: str = config.TRADE_LOG_PATH,
    ) -> None:
        """
        Initialize the ledger.

        Args:
            max_leverage: Highest leverage accepted on open.
            log_trades: Whether to log trades to a JSONL file.
            log_path: Path to the trade log file.
        """
        self.accounts: dict[str, Player] = {}
        self.positions: dict[str, Position] = {}
        self.current_price: Optional[Decimal] = None
        self.max_leverage = max_leverage

        self.trade_history: list[dict[str, Any]] = []
        self.log_trades = log_trades
        self.log_path = Path(log_path)

    # =========================================================================
    # Accounts
    # =========================================================================

    def register(self, player: Player) -> None:
        """Attach a player account to the ledger."""
        self.accounts[player.id] = player

    def get_account(self, owner_id: str) -> Player:
        if owner_id not in self.accounts:
            raise ValidationError(f"Unknown player: {owner_id}")
        return self.accounts[owner_id]

    def reserved_margin(self, owner_id: str) -> Decimal:
        """Margin held by the owner's open positions."""
        player = self.get_account(owner_id)
        return sum((p.margin for p in player.open_positions), ZERO)

    def available_balance(self, owner_id: str) -> Decimal:
        """Balance not yet committed as margin."""
        player = self.get_account(owner_id)
        return player.balance - self.reserved_margin(owner_id)

    def unrealized_pnl(self, owner_id: str, price: Optional[Number] = None) -> Decimal:
        """Total unrealized P&L of the owner's open positions."""
        player = self.get_account(owner_id)
        mark = self._mark_price(price)
        return sum((p.unrealized_pnl(mark) for p in player.open_positions), ZERO)

    def equity(self, owner_id: str, price: Optional[Number] = None) -> Decimal:
        """Balance plus unrealized P&L."""
        return self.get_account(owner_id).balance + self.unrealized_pnl(owner_id, price)

    # =========================================================================
    # Orders
    # =========================================================================

    def set_price(self, price: Number) -> None:
        """Update the mark price without evaluating triggers."""
        price = _to_decimal(price)
        if price <= 0:
            raise ValidationError(f"Price must be positive, got {price}")
        self.current_price = price

    def open(
        self,
        owner_id: str,
        size: Number,
        leverage: int = 1,
        stop_loss: Optional[Number] = None,
        take_profit: Optional[Number] = None,
    ) -> str:
        """
        Open a position at the current price.

        Args:
            owner_id: Player opening the position.
            size: Signed size (+ long / - short).
            leverage: Margin multiplier.
            stop_loss: Optional stop-loss price.
            take_profit: Optional take-profit price.

        Returns:
            The new position id.

        Raises:
            ValidationError: If parameters are invalid or no price is known.
            InsufficientFundsError: If the required margin exceeds available balance.
        """
        player = self.get_account(owner_id)
        entry_price = self._mark_price(None)
        size = _to_decimal(size)
        stop = _to_decimal(stop_loss) if stop_loss is not None else None
        target = _to_decimal(take_profit) if take_profit is not None else None

        self._validate_order(size, leverage, entry_price, stop, target)

        required_margin = abs(size) * entry_price / Decimal(leverage)
        available = self.available_balance(owner_id)
        if required_margin > available:
            raise InsufficientFundsError(
                f"Insufficient balance: {available} < {required_margin}"
            )

        position = Position(
            position_id=str(uuid.uuid4())[:8],
            owner_id=owner_id,
            entry_price=entry_price,
            size=size,
            leverage=leverage,
            stop_loss=stop,
            take_profit=target,
        )
        self.positions[position.position_id] = position
        player.open_positions.append(position)

        self._log_trade("OPEN", position, player)

        side = "long" if position.is_long else "short"
        logger.info(
            f"Position opened: {player.name} {side} {abs(size)} @ {entry_price} "
            f"x{leverage} (margin={required_margin})"
        )
        return position.position_id

    def close(self, position_id: str, reason: CloseReason = CloseReason.MANUAL) -> Decimal:
        """
        Close a position at the current price.

        Returns:
            Realized P&L.

        Raises:
            PositionNotFoundError: If the id is unknown.
            PositionAlreadyClosedError: If the position is not open.
        """
        position = self._get_open_position(position_id)
        self._settle(position, self._mark_price(None), reason)
        return position.pnl

    def update_stop_loss(self, position_id: str, stop_loss: Optional[Number]) -> Position:
        """Set or clear the stop-loss of an open position."""
        position = self._get_open_position(position_id)
        stop = _to_decimal(stop_loss) if stop_loss is not None else None
        self._validate_triggers(position.size, position.entry_price, stop, position.take_profit)
        position.stop_loss = stop
        logger.debug(f"Stop-loss for {position_id} set to {stop}")
        return position

    def update_take_profit(self, position_id: str, take_profit: Optional[Number]) -> Position:
        """Set or clear the take-profit of an open position."""
        position = self._get_open_position(position_id)
        target = _to_decimal(take_profit) if take_profit is not None else None
        self._validate_triggers(position.size, position.entry_price, position.stop_loss, target)
        position.take_profit = target
        logger.debug(f"Take-profit for {position_id} set to {target}")
        return position

    def evaluate_tick(self, price: Number) -> list[Position]:
        """
        Mark every open position to ``price`` and apply triggers.

        Returns:
            Positions closed on this tick, in evaluation order.
        """
        self.set_price(price)
        mark = self.current_price
        closed: list[Position] = []

        for position in list(self.positions.values()):
            if not position.is_open:
                continue

            if self.equity(position.owner_id, mark) <= 0:
                reason = CloseReason.LIQUIDATION
            elif position.stop_loss_hit(mark):
                reason = CloseReason.STOP_LOSS
            elif position.take_profit_hit(mark):
                reason = CloseReason.TAKE_PROFIT
            else:
                continue

            self._settle(position, mark, reason)
            closed.append(position)

        return closed

    def close_all(self, reason: CloseReason = CloseReason.GAME_END) -> list[Position]:
        """Close every open position at the current price."""
        closed = []
        for position in list(self.positions.values()):
            if position.is_open:
                self._settle(position, self._mark_price(None), reason)
                closed.append(position)
        return closed

    # =========================================================================
    # Queries
    # =========================================================================

    def get_position(self, position_id: str) -> Position:
        if position_id not in self.positions:
            raise PositionNotFoundError(f"Position not found: {position_id}")
        return self.positions[position_id]

    def open_positions(self, owner_id: Optional[str] = None) -> list[Position]:
        return [
            p for p in self.positions.values()
            if p.is_open and (owner_id is None or p.owner_id == owner_id)
        ]

    def get_trade_history(self) -> list[dict[str, Any]]:
        """Get complete trade history."""
        return self.trade_history.copy()

    def get_pnl_summary(self, owner_id: str) -> dict[str, Any]:
        """
        Get P&L summary for one player.

        Returns:
            Dictionary with P&L breakdown.
        """
        player = self.get_account(owner_id)
        realized = sum((p.pnl for p in player.closed_positions), ZERO)
        unrealized = self.unrealized_pnl(owner_id) if self.current_price is not None else ZERO
        return {
            "initial_balance": str(player.initial_balance),
            "current_balance": str(player.balance),
            "available_balance": str(self.available_balance(owner_id)),
            "realized_pnl": str(realized),
            "unrealized_pnl": str(unrealized),
            "open_positions": len(player.open_positions),
            "closed_positions": len(player.closed_positions),
            "liquidations": sum(
                1 for p in player.closed_positions if p.status == PositionStatus.LIQUIDATED
            ),
        }

    def reset(self) -> None:
        """
        Reset ledger to an empty state.

        Called when the game session is torn down.
        """
        self.accounts.clear()
        self.positions.clear()
        self.trade_history.clear()
        self.current_price = None

        logger.info("Position ledger reset")

    # =========================================================================
    # Private Methods
    # =========================================================================

    def _mark_price(self, price: Optional[Number]) -> Decimal:
        if price is not None:
            return _to_decimal(price)
        if self.current_price is None:
            raise ValidationError("No market price available")
        return self.current_price

    def _get_open_position(self, position_id: str) -> Position:
        position = self.get_position(position_id)
        if not position.is_open:
            raise PositionAlreadyClosedError(
                f"Position {position_id} is already {position.status.value}"
            )
        return position

    def _validate_order(
        self,
        size: Decimal,
        leverage: int,
        entry_price: Decimal,
        stop_loss: Optional[Decimal],
        take_profit: Optional[Decimal],
    ) -> None:
        if size == 0:
            raise ValidationError("Position size must be non-zero")
        if not isinstance(leverage, int) or isinstance(leverage, bool):
            raise ValidationError(f"Leverage must be an integer, got {leverage!r}")
        if leverage < 1 or leverage > self.max_leverage:
            raise ValidationError(
                f"Leverage must be between 1 and {self.max_leverage}, got {leverage}"
            )
        self._validate_triggers(size, entry_price, stop_loss, take_profit)

    def _validate_triggers(
        self,
        size: Decimal,
        entry_price: Decimal,
        stop_loss: Optional[Decimal],
        take_profit: Optional[Decimal],
    ) -> None:
        """Stops sit on the losing side of entry, targets on the winning side."""
        long = size > 0
        if stop_loss is not None:
            if stop_loss <= 0:
                raise ValidationError("Stop-loss must be positive")
            if (long and stop_loss >= entry_price) or (not long and stop_loss <= entry_price):
                raise ValidationError(
                    f"Stop-loss {stop_loss} is on the wrong side of entry {entry_price}"
                )
        if take_profit is not None:
            if take_profit <= 0:
                raise ValidationError("Take-profit must be positive")
            if (long and take_profit <= entry_price) or (not long and take_profit >= entry_price):
                raise ValidationError(
                    f"Take-profit {take_profit} is on the wrong side of entry {entry_price}"
                )

    def _settle(self, position: Position, exit_price: Decimal, reason: CloseReason) -> None:
        """Realize P&L into the owner's balance and move the position to closed."""
        player = self.accounts[position.owner_id]
        pnl = (exit_price - position.entry_price) * position.size

        position.exit_price = exit_price
        position.pnl = pnl
        position.close_reason = reason
        position.closed_at = datetime.now(timezone.utc)
        position.status = (
            PositionStatus.LIQUIDATED if reason == CloseReason.LIQUIDATION else PositionStatus.CLOSED
        )

        player.balance += pnl
        if player.balance < 0:
            player.balance = ZERO

        if position in player.open_positions:
            player.open_positions.remove(position)
        player.closed_positions.append(position)

        self._log_trade(position.status.value.upper(), position, player)

        if reason == CloseReason.LIQUIDATION:
            logger.warning(
                f"Position {position.position_id} of {player.name} liquidated @ {exit_price}: "
                f"pnl={pnl}, balance={player.balance}"
            )
        else:
            logger.info(
                f"Position {position.position_id} closed ({reason}) @ {exit_price}: pnl={pnl}"
            )

    def _log_trade(self, event: str, position: Position, player: Player) -> None:
        """Log a trade to history and optionally to file."""
        trade = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "position_id": position.position_id,
            "owner_id": position.owner_id,
            "size": str(position.size),
            "leverage": position.leverage,
            "entry_price": str(position.entry_price),
            "exit_price": str(position.exit_price) if position.exit_price is not None else None,
            "pnl": str(position.pnl) if position.pnl is not None else None,
            "balance_after": str(player.balance),
        }
        self.trade_history.append(trade)

        if self.log_trades:
            self._write_to_log(trade)

    def _write_to_log(self, data: dict[str, Any]) -> None:
        """Write data to log file."""
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a") as f:
                f.write(json.dumps(data) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write to trade log: {e}")
