# UI module
"""Presentation-layer adapters."""

from .bindings import PortfolioSignals

__all__ = ["PortfolioSignals"]
