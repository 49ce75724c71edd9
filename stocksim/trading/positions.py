"""Position ledger: held symbols and their cost accounting."""

from __future__ import annotations

from copy import copy
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from stocksim.config import MIN_MARKET_PRICE

from .models import Position


def symbol_key(symbol: str) -> str:
    """Case-insensitive lookup key for a symbol."""
    return symbol.strip().upper()


class PositionLedger:
    """Set of held positions keyed by symbol, case-insensitively.

    Uses weighted average cost method for position tracking. Positions are
    listed most recently opened first.
    """

    def __init__(self) -> None:
        self._positions: Dict[str, Position] = {}

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, symbol: str) -> bool:
        return symbol_key(symbol) in self._positions

    def get(self, symbol: str) -> Optional[Position]:
        """Get position for a specific symbol."""
        return self._positions.get(symbol_key(symbol))

    def positions(self) -> List[Position]:
        """Copies of all positions, most recently opened first."""
        return [copy(position) for position in reversed(self._positions.values())]

    def symbols(self) -> List[str]:
        return [position.symbol for position in reversed(self._positions.values())]

    def apply_buy(self, symbol: str, quantity: int, price: Decimal) -> Position:
        """Add bought shares to the ledger.

        Creates the position with ``price`` as both average cost and market
        price, or re-weights the average cost of an existing one and marks it
        at the buy price.

        Args:
            symbol: Instrument symbol
            quantity: Positive number of shares bought
            price: Non-negative execution price

        Returns:
            The updated position
        """
        key = symbol_key(symbol)
        existing = self._positions.get(key)
        if existing is None:
            position = Position(
                symbol=symbol,
                quantity=quantity,
                average_cost=price,
                market_price=price
            )
            self._positions[key] = position
            return position

        existing.add_shares(quantity, price)
        existing.market_price = price
        return existing

    def apply_sell(self, symbol: str, quantity: int) -> Optional[Position]:
        """Remove sold shares from the ledger.

        The position is dropped entirely once its quantity reaches zero.

        Args:
            symbol: Instrument symbol
            quantity: Number of shares sold, at most the held quantity

        Returns:
            The remaining position, or None if it was closed

        Raises:
            ValueError: If no position exists or it holds fewer shares
        """
        key = symbol_key(symbol)
        position = self._positions.get(key)
        if position is None:
            raise ValueError(f"No position held for {symbol}")

        position.remove_shares(quantity)
        if position.quantity == 0:
            del self._positions[key]
            return None
        return position

    def update_market_price(self, symbol: str, price: Decimal) -> bool:
        """Mark a held position at ``price``.

        Returns:
            True if a position was updated. Non-positive prices and symbols
            without a position are ignored.
        """
        if price is None or price <= Decimal("0"):
            return False
        position = self._positions.get(symbol_key(symbol))
        if position is None:
            return False
        position.market_price = price
        return True

    def net_worth_contribution(self) -> Decimal:
        return sum((p.market_value for p in self._positions.values()), Decimal("0"))

    def unrealized_pnl_total(self) -> Decimal:
        return sum((p.unrealized_pnl for p in self._positions.values()), Decimal("0"))

    def clear(self) -> None:
        self._positions.clear()

    def restore(self, positions: Iterable[Position]) -> None:
        """Replace the ledger with persisted positions.

        Positions arrive most recently opened first. Rows that cannot form a
        valid position are skipped; a missing market price falls back to the
        average cost, and to the minimum price if both are non-positive.
        """
        restored: Dict[str, Position] = {}
        for position in positions:
            if position.quantity <= 0 or not position.symbol or not position.symbol.strip():
                continue
            key = symbol_key(position.symbol)
            if key in restored:
                continue
            average_cost = max(Decimal("0"), position.average_cost)
            market_price = position.market_price if position.market_price > 0 else average_cost
            if market_price <= Decimal("0"):
                market_price = MIN_MARKET_PRICE
            restored[key] = Position(
                symbol=position.symbol,
                quantity=position.quantity,
                average_cost=average_cost,
                market_price=market_price
            )

        # Stored newest first; the dict keeps insertion order oldest first
        self._positions = dict(reversed(list(restored.items())))
