"""Data models for the portfolio simulator."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum


class TradeSide(str, Enum):
    """Side of a trade ledger entry."""
    BUY = "BUY"
    SELL = "SELL"
    RECOVERY = "RECOVERY"


def now_utc() -> datetime:
    """Current time truncated to the millisecond precision the store keeps."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


@dataclass
class Position:
    """Represents a holding position in the portfolio.

    Attributes:
        symbol: Instrument symbol as first traded (e.g., "AAPL")
        quantity: Whole number of shares held, always positive
        average_cost: Volume-weighted average purchase price per share
        market_price: Last known quote for this symbol
    """
    symbol: str
    quantity: int
    average_cost: Decimal
    market_price: Decimal

    @property
    def market_value(self) -> Decimal:
        """Current value of the holding at the last known price."""
        return self.quantity * self.market_price

    @property
    def unrealized_pnl(self) -> Decimal:
        """Profit/loss of the holding if it were closed at the last known price."""
        return (self.market_price - self.average_cost) * self.quantity

    def add_shares(self, quantity: int, price: Decimal) -> None:
        """Add shares bought at ``price`` and re-weight the average cost."""
        total_cost = (self.average_cost * self.quantity) + (price * quantity)
        self.quantity += quantity
        self.average_cost = total_cost / self.quantity

    def remove_shares(self, quantity: int) -> None:
        """Remove sold shares. The average cost of the remainder is unchanged."""
        if quantity > self.quantity:
            raise ValueError(
                f"Cannot remove {quantity} shares of {self.symbol}, only {self.quantity} held"
            )
        self.quantity -= quantity


@dataclass(frozen=True)
class TradeRecord:
    """Represents an executed order or a recovery event.

    Attributes:
        side: BUY, SELL or RECOVERY
        symbol: Instrument symbol ("CASH" for recovery events)
        quantity: Shares traded (1 for recovery events)
        price: Execution price per share (emergency amount for recovery events)
        timestamp: Time of execution
    """
    side: TradeSide
    symbol: str
    quantity: int
    price: Decimal
    timestamp: datetime = field(default_factory=now_utc)

    @property
    def total_value(self) -> Decimal:
        """Calculate total value of this trade."""
        return self.quantity * self.price
