"""Paper-trading portfolio simulator."""

__version__ = "1.0.0"
