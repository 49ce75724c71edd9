"""Qt signal bridge for the portfolio engine.

Lets a PySide6 presentation layer react to portfolio changes without the
engine depending on Qt.
"""

from __future__ import annotations

from typing import Callable, Optional

from PySide6.QtCore import QObject, Signal

from stocksim.trading.engine import PortfolioEngine, PortfolioSnapshot


class PortfolioSignals(QObject):
    """Re-emits engine change notifications as Qt signals.

    Signals:
        snapshotChanged: Emitted with the new PortfolioSnapshot after every mutation
        haltedChanged: Emitted with the new halted flag when trading halts or resumes
    """

    snapshotChanged = Signal(object)
    haltedChanged = Signal(bool)

    def __init__(self, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._halted: Optional[bool] = None

    def attach(self, engine: PortfolioEngine) -> None:
        """Start forwarding notifications from ``engine``."""
        self.detach()
        self._halted = engine.is_trading_halted
        self._unsubscribe = engine.subscribe(self._on_snapshot)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_snapshot(self, snapshot: PortfolioSnapshot) -> None:
        self.snapshotChanged.emit(snapshot)
        if snapshot.is_trading_halted != self._halted:
            self._halted = snapshot.is_trading_halted
            self.haltedChanged.emit(snapshot.is_trading_halted)
