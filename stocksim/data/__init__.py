"""Market data collaborators: instrument catalog and quote source."""

from stocksim.data.catalog import Instrument, TRADE_UNIVERSE, find_instrument, list_instruments
from stocksim.data.quotes import IQuoteSource, MarketDataService, QuoteSnapshot

__all__ = [
    "Instrument",
    "TRADE_UNIVERSE",
    "find_instrument",
    "list_instruments",
    "IQuoteSource",
    "MarketDataService",
    "QuoteSnapshot",
]
