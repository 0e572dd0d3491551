"""Live valuation sync engine for weighted baskets of tickers."""

__version__ = "0.1.0"
