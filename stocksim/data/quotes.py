from __future__ import annotations

import logging
import random
import ssl
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from urllib.parse import quote as url_quote

import certifi
import httpx
import truststore

from stocksim.config import MIN_MARKET_PRICE, QUOTE_TIMEOUT_S

logger = logging.getLogger(__name__)

YAHOO_BASE = "https://query1.finance.yahoo.com"
USER_AGENT = "StockSimulator/1.0"


@dataclass(frozen=True)
class QuoteSnapshot:
    symbol: str
    price: Decimal
    change_percent: Decimal
    timestamp: datetime
    is_live: bool


class IQuoteSource(ABC):
    """Source of current prices for the engine's refresh cycle."""

    @abstractmethod
    def get_quote(self, symbol: str) -> QuoteSnapshot:
        """Get the current quote for a symbol.

        Args:
            symbol: Instrument symbol (e.g., "AAPL", "VOLV-B.ST")

        Returns:
            The quote; ``is_live`` is False for synthetic estimates
        """
        ...


def _to_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return number if number.is_finite() else Decimal("0")


class MarketDataService(IQuoteSource):
    """Live quotes from the Yahoo chart endpoint with a random-walk fallback.

    Any failure of the live lookup (network, HTTP status, missing price)
    produces a synthetic quote that drifts up to 1% from the last known
    price, so the caller is never left waiting on the network.
    """

    def __init__(self, timeout_s: float = QUOTE_TIMEOUT_S, rng: Optional[random.Random] = None) -> None:
        self._client = httpx.Client(
            base_url=YAHOO_BASE,
            timeout=timeout_s,
            headers={"User-Agent": USER_AGENT},
            verify=self._make_ssl_context(),
        )
        self._lock = threading.Lock()
        self._random = rng or random.Random()
        self._fallback_prices: Dict[str, Decimal] = {}

    def _make_ssl_context(self) -> ssl.SSLContext:
        # Prefer the OS trust store, fall back to the certifi bundle
        try:
            return truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        except (ssl.SSLError, OSError) as e:
            logger.warning(f"System trust store unavailable, using certifi bundle: {e}")
            return ssl.create_default_context(cafile=certifi.where())

    def close(self) -> None:
        self._client.close()

    def get_quote(self, symbol: str) -> QuoteSnapshot:
        try:
            quote = self._fetch_live(symbol)
        except Exception as e:
            logger.warning(f"Live quote unavailable for {symbol}, using fallback: {e}")
            return self._fallback_quote(symbol)
        self._fallback_prices[symbol.upper()] = quote.price
        return quote

    def _fetch_live(self, symbol: str) -> QuoteSnapshot:
        with self._lock:
            r = self._client.get(
                f"/v8/finance/chart/{url_quote(symbol, safe='')}",
                params={"interval": "1m", "range": "1d"},
            )
        r.raise_for_status()
        chart = (r.json() or {}).get("chart") or {}
        result = chart.get("result") or []
        if not result:
            raise ValueError("No quote data returned.")

        meta = result[0].get("meta") or {}
        market_price = _to_decimal(meta.get("regularMarketPrice"))
        if market_price <= 0:
            raise ValueError("Price is unavailable.")

        previous_close = _to_decimal(meta.get("previousClose"))
        if previous_close <= 0:
            previous_close = market_price

        change_pct = ((market_price - previous_close) / previous_close) * 100
        return QuoteSnapshot(symbol, market_price, change_pct, datetime.now(timezone.utc), True)

    def _fallback_quote(self, symbol: str) -> QuoteSnapshot:
        normalized = symbol.upper()
        base_price = self._fallback_prices.get(normalized)
        if base_price is None or base_price <= 0:
            base_price = Decimal("100") + Decimal(str(self._random.random())) * Decimal("200")

        jitter = (Decimal(str(self._random.random())) - Decimal("0.5")) * Decimal("0.02")
        next_price = max(MIN_MARKET_PRICE, base_price * (1 + jitter))
        change_pct = ((next_price - base_price) / base_price) * 100
        self._fallback_prices[normalized] = next_price
        return QuoteSnapshot(normalized, next_price, change_pct, datetime.now(timezone.utc), False)
