"""Static catalog of tradable instruments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class Instrument:
    symbol: str
    name: str
    cap: str
    region: str

    @property
    def display_name(self) -> str:
        return f"{self.symbol} - {self.name}"


TRADE_UNIVERSE: Tuple[Instrument, ...] = (
    Instrument("AAPL", "Apple", "Mega", "US"),
    Instrument("MSFT", "Microsoft", "Mega", "US"),
    Instrument("NVDA", "NVIDIA", "Mega", "US"),
    Instrument("AMZN", "Amazon", "Mega", "US"),
    Instrument("GOOGL", "Alphabet", "Mega", "US"),
    Instrument("TSLA", "Tesla", "Large", "US"),

    Instrument("ATCO-A.ST", "Atlas Copco A", "Large", "Sweden"),
    Instrument("ATCO-B.ST", "Atlas Copco B", "Large", "Sweden"),
    Instrument("VOLV-B.ST", "Volvo B", "Large", "Sweden"),
    Instrument("ERIC-B.ST", "Ericsson B", "Large", "Sweden"),
    Instrument("INVE-B.ST", "Investor B", "Large", "Sweden"),
    Instrument("SEB-A.ST", "SEB A", "Large", "Sweden"),
    Instrument("SWED-A.ST", "Swedbank A", "Large", "Sweden"),
    Instrument("SHB-A.ST", "Handelsbanken A", "Large", "Sweden"),
    Instrument("ASSA-B.ST", "Assa Abloy B", "Large", "Sweden"),
    Instrument("SAND.ST", "Sandvik", "Large", "Sweden"),
    Instrument("SKF-B.ST", "SKF B", "Large", "Sweden"),
    Instrument("EVO.ST", "Evolution", "Large", "Sweden"),

    Instrument("NIBE-B.ST", "Nibe B", "Mid", "Sweden"),
    Instrument("LATO-B.ST", "Latour B", "Mid", "Sweden"),
    Instrument("ALFA.ST", "Alfa Laval", "Mid", "Sweden"),
    Instrument("HEXA-B.ST", "Hexagon B", "Mid", "Sweden"),
    Instrument("TEL2-B.ST", "Tele2 B", "Mid", "Sweden"),
    Instrument("BOL.ST", "Boliden", "Mid", "Sweden"),
    Instrument("SCA-B.ST", "SCA B", "Mid", "Sweden"),
    Instrument("ESSITY-B.ST", "Essity B", "Mid", "Sweden"),
    Instrument("SINCH.ST", "Sinch", "Mid", "Sweden"),

    Instrument("SBB-B.ST", "SBB B", "Small", "Sweden"),
    Instrument("JM.ST", "JM", "Small", "Sweden"),
    Instrument("MYCR.ST", "Mycronic", "Small", "Sweden"),
    Instrument("AAK.ST", "AAK", "Small", "Sweden"),
    Instrument("WIHL.ST", "Wihlborgs", "Small", "Sweden"),
    Instrument("BICO.ST", "BICO Group", "Small", "Sweden"),
    Instrument("CATE.ST", "Catena", "Small", "Sweden"),
)


def list_instruments(region: Optional[str] = None, cap: Optional[str] = None) -> List[Instrument]:
    """Instruments in catalog order, optionally filtered by region and cap."""
    return [
        item for item in TRADE_UNIVERSE
        if (region is None or item.region.lower() == region.lower())
        and (cap is None or item.cap.lower() == cap.lower())
    ]


def find_instrument(symbol: str) -> Optional[Instrument]:
    wanted = symbol.strip().upper()
    for item in TRADE_UNIVERSE:
        if item.symbol.upper() == wanted:
            return item
    return None
