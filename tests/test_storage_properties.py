"""Property-based tests for storage module.

Tests the key-value storage and the portfolio store contract using Hypothesis.
"""

from __future__ import annotations

import json
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict

import pytest
from hypothesis import given, settings, strategies as st

from stocksim.storage import (
    JsonFileStorage,
    JsonFilePortfolioStore,
    PersistedPosition,
    PersistedState,
    PersistedTrade,
    PortfolioStoreError,
    StorageError,
)


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

symbol_strategy = st.sampled_from(["AAPL", "MSFT", "NVDA", "VOLV-B.ST", "ERIC-B.ST"])

price_strategy = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("100000"),
    places=2,
    allow_nan=False,
    allow_infinity=False
)


@st.composite
def persisted_state_strategy(draw):
    """Generate snapshots shaped like what the engine persists."""
    symbols = draw(st.lists(symbol_strategy, unique=True, max_size=5))
    positions = tuple(
        PersistedPosition(
            symbol=symbol,
            quantity=draw(st.integers(min_value=1, max_value=10000)),
            average_cost=draw(price_strategy),
            market_price=draw(price_strategy),
        )
        for symbol in symbols
    )

    num_trades = draw(st.integers(min_value=0, max_value=30))
    trades = tuple(
        PersistedTrade(
            side=draw(st.sampled_from(["BUY", "SELL", "RECOVERY"])),
            symbol=draw(symbol_strategy),
            quantity=draw(st.integers(min_value=1, max_value=1000)),
            price=draw(price_strategy),
            # Most recent first, some sharing a timestamp
            timestamp=BASE_TIME - timedelta(seconds=i // 2),
        )
        for i in range(num_trades)
    )

    return PersistedState(
        cash=draw(st.decimals(min_value=Decimal("0"), max_value=Decimal("10000000"), places=2)),
        realized_pnl=draw(st.decimals(min_value=Decimal("-100000"), max_value=Decimal("100000"), places=2)),
        recovery_used=draw(st.booleans()),
        is_trading_halted=draw(st.booleans()),
        positions=positions,
        trades=trades,
    )


def _read_document(store: JsonFilePortfolioStore) -> Dict[str, Any]:
    return json.loads(store.file_path.read_text(encoding="utf-8"))


def _rows_without_ids(document: Dict[str, Any], table: str):
    return [{k: v for k, v in row.items() if k != "id"} for row in document[table]]


@given(payload=st.dictionaries(
    keys=st.text(min_size=1, max_size=10),
    values=st.one_of(st.integers(), st.text(max_size=20), st.booleans(), st.none()),
    max_size=10
))
@settings(max_examples=50)
def test_json_storage_round_trip(payload: Dict[str, Any]):
    """Saving and loading a JSON document returns the same document."""
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JsonFileStorage(tmpdir)
        storage.save("doc", payload)
        assert storage.load("doc") == payload
        # No temporary files left behind
        assert [p.name for p in Path(tmpdir).iterdir()] == ["doc.json"]


@given(key=st.text(min_size=1, max_size=50, alphabet=st.characters(whitelist_categories=('L', 'N'))))
@settings(max_examples=50)
def test_storage_delete_removes_data(key: str):
    """Test that delete properly removes stored data."""
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JsonFileStorage(tmpdir)
        test_data = {"test": "value"}

        storage.save(key, test_data)
        assert storage.load(key) == test_data

        storage.delete(key)

        assert storage.load(key) is None


def test_storage_load_nonexistent_returns_none(tmp_path):
    """Test that loading a non-existent key returns None."""
    storage = JsonFileStorage(tmp_path)
    assert storage.load("nonexistent_key") is None


def test_storage_corrupted_file_raises(tmp_path):
    storage = JsonFileStorage(tmp_path)
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageError):
        storage.load("broken")


def test_storage_unserializable_data_keeps_previous_content(tmp_path):
    storage = JsonFileStorage(tmp_path)
    storage.save("doc", {"a": 1})
    with pytest.raises(StorageError):
        storage.save("doc", {"a": object()})
    assert storage.load("doc") == {"a": 1}
    assert [p.name for p in tmp_path.iterdir()] == ["doc.json"]


def test_load_without_prior_state_synthesizes_default(tmp_path):
    store = JsonFilePortfolioStore(tmp_path / "data")

    state = store.load(Decimal("10000"))

    assert state == PersistedState(cash=Decimal("10000"))
    assert store.file_path.exists(), "Backing document is created lazily on first access"
    assert store.row_counts() == {"state": 0, "positions": 0, "trades": 0}


@given(state=persisted_state_strategy())
@settings(max_examples=50, deadline=None)
def test_portfolio_store_round_trip(state: PersistedState):
    """
    Saving a snapshot and loading it back yields the same snapshot, and
    saving a freshly loaded snapshot rewrites identical rows apart from ids.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonFilePortfolioStore(tmpdir)
        store.save(state)
        first = _read_document(store)

        loaded = store.load(Decimal("10000"))
        assert loaded == state

        store.save(loaded)
        second = _read_document(store)

        assert second["state"] == first["state"]
        for table in ("positions", "trades"):
            assert _rows_without_ids(second, table) == _rows_without_ids(first, table)


def test_save_replaces_previous_rows(tmp_path):
    store = JsonFilePortfolioStore(tmp_path)
    store.save(PersistedState(
        cash=Decimal("100"),
        positions=(PersistedPosition("AAPL", 1, Decimal("10"), Decimal("10")),
                   PersistedPosition("MSFT", 2, Decimal("20"), Decimal("20"))),
    ))
    store.save(PersistedState(
        cash=Decimal("50"),
        positions=(PersistedPosition("NVDA", 3, Decimal("30"), Decimal("31")),),
    ))

    state = store.load(Decimal("10000"))

    assert state.cash == Decimal("50")
    assert [p.symbol for p in state.positions] == ["NVDA"]
    assert store.row_counts() == {"state": 1, "positions": 1, "trades": 0}


def test_row_ids_keep_incrementing_across_saves(tmp_path):
    store = JsonFilePortfolioStore(tmp_path)
    position = PersistedPosition("AAPL", 1, Decimal("10"), Decimal("10"))
    store.save(PersistedState(cash=Decimal("1"), positions=(position,)))
    store.save(PersistedState(cash=Decimal("1"), positions=(position,)))

    document = _read_document(store)
    assert [row["id"] for row in document["positions"]] == [2]


def test_save_keeps_only_most_recent_trades(tmp_path):
    store = JsonFilePortfolioStore(tmp_path)
    trades = tuple(
        PersistedTrade("BUY", "AAPL", i + 1, Decimal("1"), BASE_TIME - timedelta(seconds=i))
        for i in range(130)
    )
    store.save(PersistedState(cash=Decimal("1"), trades=trades))

    loaded = store.load(Decimal("10000"))

    assert store.row_counts()["trades"] == 100
    assert [t.quantity for t in loaded.trades] == list(range(1, 101))


def test_load_orders_trades_by_timestamp_then_insertion(tmp_path):
    store = JsonFilePortfolioStore(tmp_path)
    document = {
        "schema_version": 1,
        "sequences": {"positions": 0, "trades": 3},
        "state": {"id": 1, "cash": "5", "realized_pnl": "0",
                  "recovery_used": False, "is_trading_halted": False},
        "positions": [],
        "trades": [
            {"id": 1, "side": "BUY", "symbol": "A", "quantity": 1, "price": "1", "timestamp_ms": 2000},
            {"id": 2, "side": "BUY", "symbol": "B", "quantity": 1, "price": "1", "timestamp_ms": 1000},
            {"id": 3, "side": "SELL", "symbol": "C", "quantity": 1, "price": "1", "timestamp_ms": 2000},
        ],
    }
    tmp_path.mkdir(exist_ok=True)
    store.file_path.write_text(json.dumps(document), encoding="utf-8")

    state = store.load(Decimal("10000"))

    assert [t.symbol for t in state.trades] == ["C", "A", "B"]


def test_load_drops_invalid_rows(tmp_path):
    store = JsonFilePortfolioStore(tmp_path)
    document = {
        "schema_version": 1,
        "sequences": {"positions": 5, "trades": 4},
        "state": {"id": 1, "cash": "-25", "realized_pnl": "12.5",
                  "recovery_used": True, "is_trading_halted": False},
        "positions": [
            {"id": 1, "symbol": "AAPL", "quantity": 5, "average_cost": "10", "market_price": "12"},
            {"id": 2, "symbol": "  ", "quantity": 5, "average_cost": "10", "market_price": "12"},
            {"id": 3, "symbol": "MSFT", "quantity": 0, "average_cost": "10", "market_price": "12"},
            {"id": 4, "symbol": "NVDA", "quantity": -2, "average_cost": "10", "market_price": "12"},
            {"id": 5, "symbol": "TSLA", "quantity": 1, "average_cost": "oops", "market_price": "1"},
        ],
        "trades": [
            {"id": 1, "side": "BUY", "symbol": "AAPL", "quantity": 5, "price": "10", "timestamp_ms": 1000},
            {"id": 2, "side": "HOLD", "symbol": "AAPL", "quantity": 5, "price": "10", "timestamp_ms": 1001},
            {"id": 3, "side": "SELL", "symbol": "AAPL", "quantity": 0, "price": "10", "timestamp_ms": 1002},
            {"id": 4, "side": "SELL", "symbol": "AAPL", "quantity": 1, "price": "-1", "timestamp_ms": 1003},
        ],
    }
    store.file_path.write_text(json.dumps(document), encoding="utf-8")

    state = store.load(Decimal("10000"))

    assert state.cash == Decimal("-25"), "Cash is clamped by the engine, not the store"
    assert state.realized_pnl == Decimal("12.5")
    assert state.recovery_used is True
    assert [p.symbol for p in state.positions] == ["AAPL"]
    assert [(t.side, t.quantity) for t in state.trades] == [("BUY", 5)]


def test_load_corrupted_document_raises(tmp_path):
    store = JsonFilePortfolioStore(tmp_path)
    store.file_path.write_text("[[[", encoding="utf-8")
    with pytest.raises(PortfolioStoreError):
        store.load(Decimal("10000"))


def test_load_malformed_state_record_raises(tmp_path):
    store = JsonFilePortfolioStore(tmp_path)
    store.file_path.write_text(json.dumps({"state": {"id": 1, "cash": "lots"}}), encoding="utf-8")
    with pytest.raises(PortfolioStoreError):
        store.load(Decimal("10000"))


@pytest.mark.parametrize("document", [
    {"state": None, "positions": 5, "trades": []},
    {"state": None, "positions": [], "trades": {"id": 1}},
    {"state": None, "positions": [], "trades": [], "sequences": [3, 4]},
])
def test_malformed_tables_raise_store_error(tmp_path, document):
    store = JsonFilePortfolioStore(tmp_path)
    store.file_path.write_text(json.dumps(document), encoding="utf-8")

    with pytest.raises(PortfolioStoreError):
        store.load(Decimal("10000"))
    with pytest.raises(PortfolioStoreError):
        store.save(PersistedState(cash=Decimal("1")))


@pytest.mark.parametrize("flags", [
    {"recovery_used": "false"},
    {"is_trading_halted": 1},
    {"recovery_used": None},
])
def test_load_rejects_non_boolean_flags(tmp_path, flags):
    store = JsonFilePortfolioStore(tmp_path)
    state = {"id": 1, "cash": "100", "realized_pnl": "0", **flags}
    store.file_path.write_text(json.dumps({"state": state}), encoding="utf-8")

    with pytest.raises(PortfolioStoreError):
        store.load(Decimal("10000"))


def test_reset_erases_every_row(tmp_path):
    store = JsonFilePortfolioStore(tmp_path)
    store.save(PersistedState(
        cash=Decimal("42"),
        positions=(PersistedPosition("AAPL", 1, Decimal("10"), Decimal("10")),),
        trades=(PersistedTrade("BUY", "AAPL", 1, Decimal("10"), BASE_TIME),),
    ))

    store.reset()

    assert store.row_counts() == {"state": 0, "positions": 0, "trades": 0}
    assert store.load(Decimal("10000")) == PersistedState(cash=Decimal("10000"))


def test_concurrent_saves_never_interleave(tmp_path):
    store = JsonFilePortfolioStore(tmp_path)
    errors = []

    def writer(n: int) -> None:
        try:
            for i in range(10):
                store.save(PersistedState(
                    cash=Decimal(n),
                    positions=tuple(
                        PersistedPosition(f"S{n}-{k}", n + 1, Decimal("1"), Decimal("1"))
                        for k in range(3)
                    ),
                ))
        except Exception as e:  # pragma: no cover - surfaced below
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    state = store.load(Decimal("0"))
    n = int(state.cash)
    assert [p.symbol for p in state.positions] == [f"S{n}-{k}" for k in range(3)]
    assert all(p.quantity == n + 1 for p in state.positions)
