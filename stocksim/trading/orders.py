"""Order outcomes and input validation.

This module provides:
- OrderStatus and OrderRejectionReason enums
- OrderResult dataclass for order outcomes
- parse_quantity / parse_price / parse_side for normalizing caller input
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from .models import TradeRecord, TradeSide


class OrderStatus(Enum):
    """Status of an order after submission."""
    EXECUTED = "executed"
    REJECTED = "rejected"


class OrderRejectionReason(Enum):
    """Reason for order rejection."""
    NOT_READY = "not_ready"
    TRADING_HALTED = "trading_halted"
    INVALID_SIDE = "invalid_side"
    INVALID_QUANTITY = "invalid_quantity"
    NO_PRICE_DATA = "no_price_data"
    INVALID_PRICE = "invalid_price"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_HOLDINGS = "insufficient_holdings"


@dataclass
class OrderResult:
    """Result of an order submission.

    Attributes:
        status: The status of the order (EXECUTED, REJECTED)
        trade: The trade record if order was executed
        rejection_reason: The reason for rejection if order was rejected
        message: Human-readable message describing the result
    """
    status: OrderStatus
    trade: Optional[TradeRecord] = None
    rejection_reason: Optional[OrderRejectionReason] = None
    message: str = ""

    @property
    def executed(self) -> bool:
        return self.status == OrderStatus.EXECUTED

    @classmethod
    def rejected(cls, reason: OrderRejectionReason, message: str) -> "OrderResult":
        return cls(status=OrderStatus.REJECTED, rejection_reason=reason, message=message)


def parse_quantity(value: Any) -> Optional[int]:
    """Parse an order quantity as a positive whole number of shares.

    Accepts ints and integral strings such as ``"10"`` or ``" 3 "``.
    Booleans, fractions, floats, zero, negatives and non-numeric input are
    all rejected the same way.

    Returns:
        The quantity, or None if it is not a positive whole number
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text or not text.lstrip("+").isdigit():
        return None
    try:
        quantity = int(text)
    except ValueError:
        return None
    return quantity if quantity > 0 else None


def parse_price(value: Any) -> Optional[Decimal]:
    """Convert a price to Decimal.

    Floats and numeric strings go through their text form so ``50.1``
    becomes ``Decimal("50.1")``. Booleans, NaN, infinities and anything
    non-numeric give None. The sign is not checked here.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float, str)):
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            return None
    else:
        return None
    return number if number.is_finite() else None


def parse_side(value: Any) -> Optional[TradeSide]:
    """Parse an order side. Only BUY and SELL can be submitted as orders."""
    if isinstance(value, TradeSide):
        side = value
    elif isinstance(value, str):
        try:
            side = TradeSide(value.strip().upper())
        except ValueError:
            return None
    else:
        return None
    if side not in (TradeSide.BUY, TradeSide.SELL):
        return None
    return side
