"""Portfolio engine: order execution, solvency and the recovery lifecycle."""

from __future__ import annotations

import logging
from copy import copy
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from stocksim.config import EMERGENCY_FUND_AMOUNT, STARTING_BALANCE, TRADE_HISTORY_LIMIT
from stocksim.storage.portfolio_store import (
    IPortfolioStore,
    PersistedPosition,
    PersistedState,
    PersistedTrade,
    PortfolioStoreError,
)

from .ledger import TradeLedger
from .models import Position, TradeRecord, TradeSide
from .orders import OrderRejectionReason, OrderResult, OrderStatus, parse_price, parse_quantity, parse_side
from .positions import PositionLedger, symbol_key

logger = logging.getLogger(__name__)

RECOVERY_SYMBOL = "CASH"


class EngineState(Enum):
    """Trading lifecycle state."""
    ACTIVE = "active"
    HALTED = "halted"
    HALTED_EXHAUSTED = "halted_exhausted"


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Read-only view of the portfolio handed to callers and subscribers."""
    cash: Decimal
    net_worth: Decimal
    realized_pnl: Decimal
    unrealized_pnl: Decimal
    total_pnl: Decimal
    is_trading_halted: bool
    recovery_used: bool
    can_trade: bool
    can_recover: bool
    state: EngineState
    positions: Tuple[Position, ...]
    trades: Tuple[TradeRecord, ...]


SnapshotListener = Callable[[PortfolioSnapshot], None]


class PortfolioEngine:
    """Owns the simulated portfolio and every rule that changes it.

    Orders are validated and applied against the position ledger, solvency
    is re-evaluated after every mutation, and the resulting state is written
    to the store. Operations are synchronous and must not be invoked
    concurrently.

    Lifecycle: ACTIVE while net worth is positive; HALTED once it drops to
    zero or below; HALTED_EXHAUSTED when halted after the one-time
    emergency recovery has been used. A later price update or trade that
    lifts net worth above zero returns the engine to ACTIVE.
    """

    def __init__(
        self,
        store: IPortfolioStore,
        starting_balance: Decimal = STARTING_BALANCE,
        emergency_fund_amount: Decimal = EMERGENCY_FUND_AMOUNT,
        trade_limit: int = TRADE_HISTORY_LIMIT,
    ) -> None:
        """Initialize an engine that is not yet loaded.

        Args:
            store: Durable snapshot store
            starting_balance: Cash of a fresh or reset portfolio
            emergency_fund_amount: Cash granted by the one-time recovery
            trade_limit: Number of most recent trades kept
        """
        self._store = store
        self._starting_balance = starting_balance
        self._emergency_fund_amount = emergency_fund_amount

        self._cash = starting_balance
        self._realized_pnl = Decimal("0")
        self._recovery_used = False
        self._is_trading_halted = False
        self._positions = PositionLedger()
        self._trades = TradeLedger(trade_limit)
        self._latest_prices: Dict[str, Decimal] = {}

        self._ready = False
        self._refreshing = False
        self._load_error: Optional[str] = None
        self._last_save_error: Optional[str] = None
        self._status_message = "Portfolio not loaded"
        self._listeners: List[SnapshotListener] = []

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        """Load the persisted portfolio.

        A load failure leaves the engine not ready with ``load_error`` and
        ``status_message`` describing it; the portfolio is never silently
        replaced with an empty one.

        Returns:
            True if the engine is ready for trading operations
        """
        if self._ready:
            return True

        self._status_message = "Loading local portfolio..."
        try:
            state = self._store.load(self._starting_balance)
        except PortfolioStoreError as e:
            self._load_error = str(e)
            self._status_message = f"Portfolio load failed: {e}"
            logger.error(f"Failed to load portfolio: {e}")
            return False

        self._restore(state)
        self._load_error = None
        self._ready = True
        self._status_message = "Portfolio loaded"
        logger.info(
            f"Portfolio restored: cash={self._cash}, positions={len(self._positions)}, "
            f"trades={len(self._trades)}"
        )
        self._commit()
        return True

    def _restore(self, state: PersistedState) -> None:
        self._cash = max(Decimal("0"), state.cash)
        self._realized_pnl = state.realized_pnl
        self._recovery_used = state.recovery_used
        self._is_trading_halted = state.is_trading_halted

        self._positions.restore(
            Position(
                symbol=p.symbol,
                quantity=p.quantity,
                average_cost=p.average_cost,
                market_price=p.market_price
            )
            for p in state.positions
        )
        self._latest_prices = {
            symbol_key(position.symbol): position.market_price
            for position in self._positions.positions()
        }

        trades = []
        for t in state.trades:
            if t.quantity <= 0 or t.price < 0 or not t.symbol.strip():
                continue
            try:
                side = TradeSide(t.side)
            except ValueError:
                continue
            trades.append(TradeRecord(
                side=side,
                symbol=t.symbol,
                quantity=t.quantity,
                price=t.price,
                timestamp=t.timestamp
            ))
        self._trades.restore(trades)

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def load_error(self) -> Optional[str]:
        return self._load_error

    @property
    def last_save_error(self) -> Optional[str]:
        return self._last_save_error

    @property
    def status_message(self) -> str:
        return self._status_message

    @property
    def starting_balance(self) -> Decimal:
        return self._starting_balance

    @property
    def emergency_fund_amount(self) -> Decimal:
        return self._emergency_fund_amount

    @property
    def cash(self) -> Decimal:
        return self._cash

    @property
    def realized_pnl(self) -> Decimal:
        return self._realized_pnl

    @property
    def unrealized_pnl(self) -> Decimal:
        return self._positions.unrealized_pnl_total()

    @property
    def total_pnl(self) -> Decimal:
        return self._realized_pnl + self.unrealized_pnl

    @property
    def net_worth(self) -> Decimal:
        return self._cash + self._positions.net_worth_contribution()

    @property
    def is_trading_halted(self) -> bool:
        return self._is_trading_halted

    @property
    def recovery_used(self) -> bool:
        return self._recovery_used

    @property
    def can_trade(self) -> bool:
        return self._ready and not self._is_trading_halted

    @property
    def can_recover(self) -> bool:
        return self._ready and self._is_trading_halted and not self._recovery_used

    @property
    def state(self) -> EngineState:
        if not self._is_trading_halted:
            return EngineState.ACTIVE
        if self._recovery_used:
            return EngineState.HALTED_EXHAUSTED
        return EngineState.HALTED

    def positions(self) -> List[Position]:
        """Copies of held positions, most recently opened first."""
        return self._positions.positions()

    def get_position(self, symbol: str) -> Optional[Position]:
        position = self._positions.get(symbol)
        return copy(position) if position is not None else None

    def trades(self) -> List[TradeRecord]:
        """Recent trades, most recent first."""
        return self._trades.trades()

    def latest_price(self, symbol: str) -> Optional[Decimal]:
        """Most recently fetched usable price for exactly this symbol."""
        return self._latest_prices.get(symbol_key(symbol))

    def tracked_symbols(self, extra: Iterable[str] = ()) -> List[str]:
        """Given symbols followed by every held symbol, without duplicates."""
        seen: Dict[str, str] = {}
        for symbol in list(extra) + self._positions.symbols():
            if symbol and symbol.strip():
                seen.setdefault(symbol_key(symbol), symbol.strip())
        return list(seen.values())

    def get_snapshot(self) -> PortfolioSnapshot:
        return PortfolioSnapshot(
            cash=self._cash,
            net_worth=self.net_worth,
            realized_pnl=self._realized_pnl,
            unrealized_pnl=self.unrealized_pnl,
            total_pnl=self.total_pnl,
            is_trading_halted=self._is_trading_halted,
            recovery_used=self._recovery_used,
            can_trade=self.can_trade,
            can_recover=self.can_recover,
            state=self.state,
            positions=tuple(self._positions.positions()),
            trades=tuple(self._trades.trades()),
        )

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a callback invoked with a snapshot after every mutation.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.get_snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Portfolio listener failed: {e}")

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    def recompute_and_transition(self) -> EngineState:
        """Re-evaluate solvency and drive the halted flag from net worth.

        Runs at the end of every mutating operation.
        """
        net_worth = self.net_worth
        previous = self._is_trading_halted
        self._is_trading_halted = net_worth <= Decimal("0")

        if self._is_trading_halted and not previous:
            self._status_message = "Portfolio bankrupt"
            logger.info(f"Trading halted: net worth {net_worth}")
        elif previous and not self._is_trading_halted:
            self._status_message = "Portfolio solvent again"
            logger.info(f"Trading resumed: net worth {net_worth}")
        return self.state

    def _commit(self) -> None:
        self.recompute_and_transition()
        self._notify()

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def submit_order(
        self,
        side: Any,
        symbol: str,
        quantity: Any,
        price: Optional[Decimal] = None,
    ) -> OrderResult:
        """Submit an immediately filled market order.

        Args:
            side: "BUY"/"SELL" or the matching TradeSide
            symbol: Instrument symbol
            quantity: Whole number of shares, as int or text
            price: Execution price as Decimal, int, float or numeric text;
                defaults to the latest fetched price for exactly this symbol

        Returns:
            OrderResult with EXECUTED status if successful,
            REJECTED status with reason if validation fails
        """
        if not self._ready:
            return OrderResult.rejected(
                OrderRejectionReason.NOT_READY,
                "Portfolio is still loading. Try again in a second."
            )

        if self._is_trading_halted:
            return OrderResult.rejected(
                OrderRejectionReason.TRADING_HALTED,
                "Trading halted. Activate emergency funds or reset the simulation."
            )

        order_side = parse_side(side)
        if order_side is None:
            return OrderResult.rejected(
                OrderRejectionReason.INVALID_SIDE,
                f"Unsupported order side: {side!r}"
            )

        shares = parse_quantity(quantity)
        if shares is None:
            return OrderResult.rejected(
                OrderRejectionReason.INVALID_QUANTITY,
                "Enter a whole number greater than 0."
            )

        if not symbol or not symbol.strip():
            return OrderResult.rejected(
                OrderRejectionReason.NO_PRICE_DATA,
                "No symbol selected"
            )
        symbol = symbol.strip()

        if price is None:
            price = self.latest_price(symbol)
            if price is None:
                return OrderResult.rejected(
                    OrderRejectionReason.NO_PRICE_DATA,
                    f"No price data available for {symbol}"
                )
        else:
            price = parse_price(price)

        if price is None or price <= Decimal("0"):
            return OrderResult.rejected(
                OrderRejectionReason.INVALID_PRICE,
                f"Current price for {symbol} is invalid. Wait for a refreshed quote."
            )

        if order_side == TradeSide.BUY:
            result = self._execute_buy(symbol, shares, price)
        else:
            result = self._execute_sell(symbol, shares, price)

        if result.executed:
            self._apply_price(symbol, price)
            self._status_message = result.message
            logger.info(result.message)
            self._commit()
            self.save()
        return result

    def _execute_buy(self, symbol: str, quantity: int, price: Decimal) -> OrderResult:
        cost = price * quantity
        if cost > self._cash:
            return OrderResult.rejected(
                OrderRejectionReason.INSUFFICIENT_BALANCE,
                f"Insufficient cash: need {cost}, have {self._cash}"
            )

        self._cash -= cost
        self._positions.apply_buy(symbol, quantity, price)
        trade = self._trades.record(TradeSide.BUY, symbol, quantity, price)
        return OrderResult(
            status=OrderStatus.EXECUTED,
            trade=trade,
            message=f"Bought {quantity} {symbol} at {price}"
        )

    def _execute_sell(self, symbol: str, quantity: int, price: Decimal) -> OrderResult:
        position = self._positions.get(symbol)
        held = position.quantity if position is not None else 0
        if position is None or held < quantity:
            return OrderResult.rejected(
                OrderRejectionReason.INSUFFICIENT_HOLDINGS,
                f"Insufficient shares: need {quantity}, have {held}"
            )

        # Realized PnL uses the average cost before the ledger changes
        self._realized_pnl += (price - position.average_cost) * quantity
        self._cash += price * quantity
        self._positions.apply_sell(symbol, quantity)
        trade = self._trades.record(TradeSide.SELL, symbol, quantity, price)
        return OrderResult(
            status=OrderStatus.EXECUTED,
            trade=trade,
            message=f"Sold {quantity} {symbol} at {price}"
        )

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    def _apply_price(self, symbol: str, price: Any) -> bool:
        price = parse_price(price)
        if not symbol or price is None or price <= Decimal("0"):
            return False
        self._latest_prices[symbol_key(symbol)] = price
        self._positions.update_market_price(symbol, price)
        return True

    def apply_price_update(self, symbol: str, price: Optional[Decimal]) -> bool:
        """Record a fresh quote and re-mark any held position.

        A missing, non-numeric or non-positive price is ignored and the
        prior price kept.
        Does not persist; use ``apply_price_updates`` or ``save``.

        Returns:
            True if the price was usable
        """
        if not self._apply_price(symbol, price):
            return False
        self._commit()
        return True

    def apply_price_updates(self, prices: Mapping[str, Optional[Decimal]], persist: bool = True) -> int:
        """Apply a batch of quotes with one re-evaluation and one save.

        Returns:
            Number of usable prices applied
        """
        applied = sum(1 for symbol, price in prices.items() if self._apply_price(symbol, price))
        if applied:
            self._commit()
            if persist:
                self.save()
        return applied

    def refresh(self, quote_source: Any, symbols: Iterable[str] = ()) -> Dict[str, Any]:
        """Fetch quotes for ``symbols`` and every held symbol, then apply them.

        A failing lookup only costs that symbol its update. Calls made
        while a refresh is already running are skipped.

        Args:
            quote_source: Object with ``get_quote(symbol)`` returning a quote
                with a ``price`` attribute
            symbols: Extra symbols to quote, such as the selected instrument

        Returns:
            Quotes with a usable price, keyed by requested symbol
        """
        if self._refreshing:
            return {}

        self._refreshing = True
        try:
            quotes: Dict[str, Any] = {}
            prices: Dict[str, Decimal] = {}
            for symbol in self.tracked_symbols(symbols):
                try:
                    quote = quote_source.get_quote(symbol)
                except Exception as e:
                    logger.warning(f"Quote lookup failed for {symbol}: {e}")
                    continue
                price = parse_price(getattr(quote, "price", None))
                if price is None or price <= Decimal("0"):
                    continue
                quotes[symbol] = quote
                prices[symbol] = price

            self.apply_price_updates(prices)
            return quotes
        finally:
            self._refreshing = False

    # ------------------------------------------------------------------
    # Recovery and reset
    # ------------------------------------------------------------------

    def recover(self) -> bool:
        """Activate the one-time emergency funds.

        Clears all positions, grants the emergency amount as cash and lifts
        the trading halt. Does nothing when not halted or when the recovery
        has already been used.

        Returns:
            True if the recovery was applied
        """
        if not self.can_recover:
            return False

        self._positions.clear()
        self._cash = self._emergency_fund_amount
        self._recovery_used = True
        self._is_trading_halted = False
        self._trades.record(TradeSide.RECOVERY, RECOVERY_SYMBOL, 1, self._emergency_fund_amount)
        self._status_message = "Emergency funds activated"
        logger.info(f"Emergency funds activated: cash={self._cash}")

        self._commit()
        self.save()
        return True

    def reset(self) -> None:
        """Start a new simulation from the starting balance.

        Erases every stored row first; if that fails the error propagates
        and the in-memory portfolio is left untouched. A successful reset
        also clears a previous load failure.

        Raises:
            PortfolioStoreError: If the store cannot be erased
        """
        try:
            self._store.reset()
        except PortfolioStoreError as e:
            logger.error(f"Failed to erase stored portfolio: {e}")
            raise

        self._positions.clear()
        self._trades.clear()
        self._latest_prices.clear()
        self._cash = self._starting_balance
        self._realized_pnl = Decimal("0")
        self._recovery_used = False
        self._is_trading_halted = False
        self._status_message = "Portfolio reset"
        self._ready = True
        self._load_error = None
        logger.info(f"Portfolio reset to {self._starting_balance}")
        self._commit()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_persisted_state(self) -> PersistedState:
        return PersistedState(
            cash=self._cash,
            realized_pnl=self._realized_pnl,
            recovery_used=self._recovery_used,
            is_trading_halted=self._is_trading_halted,
            positions=tuple(
                PersistedPosition(
                    symbol=p.symbol,
                    quantity=p.quantity,
                    average_cost=p.average_cost,
                    market_price=p.market_price
                )
                for p in self._positions.positions()
            ),
            trades=tuple(
                PersistedTrade(
                    side=t.side.value,
                    symbol=t.symbol,
                    quantity=t.quantity,
                    price=t.price,
                    timestamp=t.timestamp
                )
                for t in self._trades.trades()
            ),
        )

    def save(self) -> bool:
        """Persist the current portfolio.

        A failed save is logged and reported; the in-memory portfolio stays
        the source of truth until the next successful save.

        Returns:
            True if the snapshot was written
        """
        if not self._ready:
            return False
        try:
            self._store.save(self.to_persisted_state())
        except PortfolioStoreError as e:
            self._last_save_error = str(e)
            logger.error(f"Failed to save portfolio: {e}")
            return False
        self._last_save_error = None
        return True
