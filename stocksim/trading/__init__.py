# Trading module
"""Portfolio accounting: positions, trade history, orders and the engine."""

from .models import Position, TradeRecord, TradeSide
from .positions import PositionLedger
from .ledger import TradeLedger
from .orders import (
    OrderStatus,
    OrderRejectionReason,
    OrderResult,
    parse_price,
    parse_quantity,
    parse_side,
)
from .engine import EngineState, PortfolioEngine, PortfolioSnapshot

__all__ = [
    "Position",
    "TradeRecord",
    "TradeSide",
    "PositionLedger",
    "TradeLedger",
    "OrderStatus",
    "OrderRejectionReason",
    "OrderResult",
    "parse_price",
    "parse_quantity",
    "parse_side",
    "EngineState",
    "PortfolioEngine",
    "PortfolioSnapshot",
]
