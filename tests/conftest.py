from __future__ import annotations

import os
from decimal import Decimal
from typing import List, Optional

import pytest
from PySide6.QtWidgets import QApplication

from stocksim.storage.portfolio_store import IPortfolioStore, PersistedState, PortfolioStoreError
from stocksim.trading.engine import PortfolioEngine


@pytest.fixture(scope="session", autouse=True)
def _qt_app():
    # Use offscreen to avoid GUI requirement in CI
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    app = QApplication.instance() or QApplication([])
    yield app


class MemoryPortfolioStore(IPortfolioStore):
    """In-memory store double that records every call."""

    def __init__(self, state: Optional[PersistedState] = None) -> None:
        self.state = state
        self.saved: List[PersistedState] = []
        self.reset_calls = 0
        self.fail_load = False
        self.fail_save = False
        self.fail_reset = False

    def load(self, default_starting_cash: Decimal) -> PersistedState:
        if self.fail_load:
            raise PortfolioStoreError("disk unavailable")
        return self.state or PersistedState(cash=default_starting_cash)

    def save(self, state: PersistedState) -> None:
        if self.fail_save:
            raise PortfolioStoreError("disk full")
        self.state = state
        self.saved.append(state)

    def reset(self) -> None:
        if self.fail_reset:
            raise PortfolioStoreError("disk unavailable")
        self.reset_calls += 1
        self.state = None


def make_engine(state: Optional[PersistedState] = None, **kwargs) -> PortfolioEngine:
    engine = PortfolioEngine(MemoryPortfolioStore(state), **kwargs)
    assert engine.initialize()
    return engine


@pytest.fixture
def memory_store() -> MemoryPortfolioStore:
    return MemoryPortfolioStore()


@pytest.fixture
def engine(memory_store: MemoryPortfolioStore) -> PortfolioEngine:
    engine = PortfolioEngine(memory_store)
    assert engine.initialize()
    return engine
