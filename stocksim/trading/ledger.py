"""Capped trade history."""

from __future__ import annotations

from collections import deque
from datetime import datetime
from decimal import Decimal
from typing import Deque, Iterable, List, Optional

from stocksim.config import TRADE_HISTORY_LIMIT

from .models import TradeRecord, TradeSide, now_utc


class TradeLedger:
    """Append-only trade history, most recent first.

    Only the newest ``limit`` entries are kept; recording past the cap
    evicts the oldest entry.
    """

    def __init__(self, limit: int = TRADE_HISTORY_LIMIT) -> None:
        self._limit = limit
        self._trades: Deque[TradeRecord] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._trades)

    @property
    def limit(self) -> int:
        return self._limit

    def record(
        self,
        side: TradeSide,
        symbol: str,
        quantity: int,
        price: Decimal,
        timestamp: Optional[datetime] = None,
    ) -> TradeRecord:
        """Insert a trade at the front of the history.

        Args:
            side: BUY, SELL or RECOVERY
            symbol: Instrument symbol
            quantity: Positive number of shares
            price: Non-negative price per share
            timestamp: Execution time (default: now)

        Returns:
            The recorded trade
        """
        trade = TradeRecord(
            side=TradeSide(side),
            symbol=symbol,
            quantity=quantity,
            price=price,
            timestamp=timestamp or now_utc()
        )
        self._trades.appendleft(trade)
        return trade

    def trades(self) -> List[TradeRecord]:
        """All kept trades, most recent first."""
        return list(self._trades)

    def clear(self) -> None:
        self._trades.clear()

    def restore(self, trades: Iterable[TradeRecord]) -> None:
        """Replace the history with persisted trades given most recent first."""
        self._trades = deque(maxlen=self._limit)
        for trade in trades:
            if len(self._trades) >= self._limit:
                break
            self._trades.append(trade)
