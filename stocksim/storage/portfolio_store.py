"""Durable snapshot of the simulated portfolio.

The store holds exactly one portfolio as three logical documents kept in a
single JSON file:

- ``state``: singleton record ``{id=1, cash, realized_pnl, recovery_used,
  is_trading_halted}``
- ``positions``: rows ``{id, symbol, quantity, average_cost, market_price}``
- ``trades``: rows ``{id, side, symbol, quantity, price, timestamp_ms}``

Row ids are auto-incremented and never reused. Decimals are stored as
strings, timestamps as epoch milliseconds.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from stocksim.config import TRADE_HISTORY_LIMIT

from .storage import JsonFileStorage, StorageError

logger = logging.getLogger(__name__)

PORTFOLIO_KEY = "portfolio"
SCHEMA_VERSION = 1
SINGLETON_ID = 1
TRADE_SIDES = ("BUY", "SELL", "RECOVERY")
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class PortfolioStoreError(Exception):
    """Raised when the persisted portfolio cannot be loaded, saved or erased."""


@dataclass(frozen=True)
class PersistedPosition:
    symbol: str
    quantity: int
    average_cost: Decimal
    market_price: Decimal


@dataclass(frozen=True)
class PersistedTrade:
    side: str
    symbol: str
    quantity: int
    price: Decimal
    timestamp: datetime


@dataclass(frozen=True)
class PersistedState:
    """Portfolio snapshot as it crosses the persistence boundary.

    Positions are ordered most recently opened first, trades most recent
    first.
    """
    cash: Decimal
    realized_pnl: Decimal = Decimal("0")
    recovery_used: bool = False
    is_trading_halted: bool = False
    positions: Tuple[PersistedPosition, ...] = field(default_factory=tuple)
    trades: Tuple[PersistedTrade, ...] = field(default_factory=tuple)


class IPortfolioStore(ABC):
    """Interface for the durable portfolio snapshot."""

    @abstractmethod
    def load(self, default_starting_cash: Decimal) -> PersistedState:
        """Load the stored snapshot, or a fresh one with the default cash."""
        ...

    @abstractmethod
    def save(self, state: PersistedState) -> None:
        """Atomically replace the stored snapshot."""
        ...

    @abstractmethod
    def reset(self) -> None:
        """Atomically erase every stored row."""
        ...


def _empty_document() -> Dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "sequences": {"positions": 0, "trades": 0},
        "state": None,
        "positions": [],
        "trades": [],
    }


def _to_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _to_epoch_ms(timestamp: datetime) -> int:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return (timestamp - EPOCH) // timedelta(milliseconds=1)


def _from_epoch_ms(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)


def _position_from_row(row: Any) -> Optional[PersistedPosition]:
    if not isinstance(row, dict):
        return None
    symbol = row.get("symbol")
    quantity = _to_int(row.get("quantity"))
    average_cost = _to_decimal(row.get("average_cost"))
    market_price = _to_decimal(row.get("market_price"))
    if not isinstance(symbol, str) or not symbol.strip():
        return None
    if quantity is None or quantity <= 0 or average_cost is None:
        return None
    return PersistedPosition(
        symbol=symbol,
        quantity=quantity,
        average_cost=average_cost,
        market_price=market_price if market_price is not None else Decimal("0")
    )


def _trade_from_row(row: Any) -> Optional[PersistedTrade]:
    if not isinstance(row, dict):
        return None
    side = row.get("side")
    symbol = row.get("symbol")
    quantity = _to_int(row.get("quantity"))
    price = _to_decimal(row.get("price"))
    timestamp_ms = _to_int(row.get("timestamp_ms"))
    if side not in TRADE_SIDES or not isinstance(symbol, str) or not symbol.strip():
        return None
    if quantity is None or quantity <= 0 or price is None or price < 0:
        return None
    if timestamp_ms is None:
        return None
    try:
        timestamp = _from_epoch_ms(timestamp_ms)
    except (OverflowError, OSError, ValueError):
        return None
    return PersistedTrade(side=side, symbol=symbol, quantity=quantity, price=price, timestamp=timestamp)


def _row_id(row: Any) -> int:
    row_id = _to_int(row.get("id")) if isinstance(row, dict) else None
    return row_id if row_id is not None else 0


class JsonFilePortfolioStore(IPortfolioStore):
    """Portfolio store backed by a single JSON document.

    The document is created lazily on first access. A single lock spans
    initialization, load, save and reset, so concurrent callers queue
    instead of interleaving partial snapshots.
    """

    def __init__(self, base_path: str | Path, trade_limit: int = TRADE_HISTORY_LIMIT) -> None:
        """Initialize the store.

        Args:
            base_path: Directory holding ``portfolio.json``
            trade_limit: Number of most recent trades kept
        """
        self._base_path = Path(base_path)
        self._trade_limit = trade_limit
        self._lock = threading.Lock()
        self._storage: Optional[JsonFileStorage] = None

    @property
    def file_path(self) -> Path:
        return self._base_path / f"{PORTFOLIO_KEY}.json"

    def initialize(self) -> None:
        """Create the backing document if it does not exist yet."""
        with self._lock:
            self._ensure_initialized()

    def _ensure_initialized(self) -> JsonFileStorage:
        # Caller holds self._lock
        if self._storage is not None:
            return self._storage
        try:
            storage = JsonFileStorage(self._base_path)
            if not storage.exists(PORTFOLIO_KEY):
                storage.save(PORTFOLIO_KEY, _empty_document())
        except (OSError, StorageError) as e:
            raise PortfolioStoreError(f"Cannot initialize portfolio store at {self._base_path}: {e}") from e
        self._storage = storage
        logger.info(f"Portfolio store ready at {self.file_path}")
        return storage

    def _read_document(self, storage: JsonFileStorage) -> Dict[str, Any]:
        try:
            document = storage.load(PORTFOLIO_KEY)
        except StorageError as e:
            raise PortfolioStoreError(str(e)) from e
        if document is None:
            return _empty_document()
        if not isinstance(document, dict):
            raise PortfolioStoreError("Portfolio document is not a JSON object")
        for table in ("positions", "trades"):
            if not isinstance(document.get(table) or [], list):
                raise PortfolioStoreError(f"Portfolio {table} table is not a list")
        if not isinstance(document.get("sequences") or {}, dict):
            raise PortfolioStoreError("Portfolio id sequences are malformed")
        return document

    def load(self, default_starting_cash: Decimal) -> PersistedState:
        """Load the stored snapshot.

        Synthesizes a fresh snapshot with ``default_starting_cash`` when no
        state record exists. Position and trade rows that cannot be read
        (blank symbol, non-positive quantity, negative price, unknown side)
        are skipped.

        Raises:
            PortfolioStoreError: If the document is corrupt, its tables
                are not lists, or its state record is unreadable
        """
        with self._lock:
            storage = self._ensure_initialized()
            document = self._read_document(storage)

        state_row = document.get("state")
        if state_row is None:
            cash = default_starting_cash
            realized_pnl = Decimal("0")
            recovery_used = False
            is_trading_halted = False
        else:
            if not isinstance(state_row, dict):
                raise PortfolioStoreError("Portfolio state record is malformed")
            cash = _to_decimal(state_row.get("cash"))
            realized_pnl = _to_decimal(state_row.get("realized_pnl", "0"))
            if cash is None or realized_pnl is None:
                raise PortfolioStoreError("Portfolio state record has unreadable amounts")
            recovery_used = state_row.get("recovery_used", False)
            is_trading_halted = state_row.get("is_trading_halted", False)
            if not isinstance(recovery_used, bool) or not isinstance(is_trading_halted, bool):
                raise PortfolioStoreError("Portfolio state record has unreadable flags")

        position_rows = sorted(document.get("positions") or [], key=_row_id, reverse=True)
        positions = [p for p in (_position_from_row(row) for row in position_rows) if p is not None]

        trade_rows = [row for row in (document.get("trades") or []) if isinstance(row, dict)]
        trade_rows.sort(key=lambda row: (_to_int(row.get("timestamp_ms")) or 0, _row_id(row)), reverse=True)
        trades = [t for t in (_trade_from_row(row) for row in trade_rows) if t is not None]

        return PersistedState(
            cash=cash,
            realized_pnl=realized_pnl,
            recovery_used=recovery_used,
            is_trading_halted=is_trading_halted,
            positions=tuple(positions),
            trades=tuple(trades[: self._trade_limit]),
        )

    def save(self, state: PersistedState) -> None:
        """Replace the state record and every position and trade row.

        Rows are inserted oldest first so that loading by descending id
        returns them in the snapshot's order. Only the newest trades up to
        the cap are written.

        Raises:
            PortfolioStoreError: If the document is malformed or cannot be written
        """
        with self._lock:
            storage = self._ensure_initialized()
            document = self._read_document(storage)
            sequences = document.get("sequences") or {}
            next_position_id = _to_int(sequences.get("positions")) or 0
            next_trade_id = _to_int(sequences.get("trades")) or 0

            positions = []
            for position in reversed(state.positions):
                next_position_id += 1
                positions.append({
                    "id": next_position_id,
                    "symbol": position.symbol,
                    "quantity": position.quantity,
                    "average_cost": str(position.average_cost),
                    "market_price": str(position.market_price),
                })

            trades = []
            for trade in reversed(state.trades[: self._trade_limit]):
                next_trade_id += 1
                trades.append({
                    "id": next_trade_id,
                    "side": trade.side,
                    "symbol": trade.symbol,
                    "quantity": trade.quantity,
                    "price": str(trade.price),
                    "timestamp_ms": _to_epoch_ms(trade.timestamp),
                })

            new_document = {
                "schema_version": SCHEMA_VERSION,
                "sequences": {"positions": next_position_id, "trades": next_trade_id},
                "state": {
                    "id": SINGLETON_ID,
                    "cash": str(state.cash),
                    "realized_pnl": str(state.realized_pnl),
                    "recovery_used": state.recovery_used,
                    "is_trading_halted": state.is_trading_halted,
                },
                "positions": positions,
                "trades": trades,
            }
            try:
                storage.save(PORTFOLIO_KEY, new_document)
            except StorageError as e:
                raise PortfolioStoreError(str(e)) from e

    def reset(self) -> None:
        """Erase the state record and all position and trade rows.

        Raises:
            PortfolioStoreError: If the document cannot be written
        """
        with self._lock:
            storage = self._ensure_initialized()
            try:
                storage.save(PORTFOLIO_KEY, _empty_document())
            except StorageError as e:
                raise PortfolioStoreError(str(e)) from e
        logger.info("Portfolio store erased")

    def row_counts(self) -> Dict[str, int]:
        """Number of stored rows per logical table."""
        with self._lock:
            document = self._read_document(self._ensure_initialized())
        return {
            "state": 0 if document.get("state") is None else 1,
            "positions": len(document.get("positions") or []),
            "trades": len(document.get("trades") or []),
        }
