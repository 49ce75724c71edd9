"""Simulation constants and data directory resolution."""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path

STARTING_BALANCE = Decimal("10000")
EMERGENCY_FUND_AMOUNT = Decimal("5000")
TRADE_HISTORY_LIMIT = 100
MIN_MARKET_PRICE = Decimal("0.01")

QUOTE_TIMEOUT_S = 8.0
DEFAULT_SYMBOL = "AAPL"

DATA_DIR_ENV = "STOCKSIM_DATA_DIR"


def default_data_dir() -> Path:
    """Directory holding the persisted portfolio.

    Honors ``STOCKSIM_DATA_DIR`` when set, otherwise ``~/.stock_simulator/data``.
    """
    override = os.environ.get(DATA_DIR_ENV)
    if override and override.strip():
        return Path(override).expanduser()
    return Path.home() / ".stock_simulator" / "data"
