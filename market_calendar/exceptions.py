"""Error types raised by the market data pipeline."""

from typing import Optional


class MarketDataError(Exception):
    """Base class for market data errors."""
    pass


class InputError(MarketDataError, ValueError):
    """Invalid symbol or date range, raised before any network call."""
    pass


class TransportError(MarketDataError):
    """Non-2xx response or network failure while talking to the provider."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class ResponseFormatError(MarketDataError):
    """Provider returned a payload with an unexpected top-level shape."""
    pass
