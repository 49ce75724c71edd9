# Storage module
"""Persistence services for the portfolio snapshot."""

from stocksim.storage.storage import IStorageService, JsonFileStorage, StorageError
from stocksim.storage.portfolio_store import (
    IPortfolioStore,
    JsonFilePortfolioStore,
    PersistedPosition,
    PersistedState,
    PersistedTrade,
    PortfolioStoreError,
)

__all__ = [
    "IStorageService",
    "JsonFileStorage",
    "StorageError",
    "IPortfolioStore",
    "JsonFilePortfolioStore",
    "PersistedPosition",
    "PersistedState",
    "PersistedTrade",
    "PortfolioStoreError",
]
