"""Shared fixtures: record builders and a fake aiohttp session."""

from datetime import date, timedelta

import pytest

from market_calendar.models import DailyRecord
from market_calendar.utils import to_epoch_ms


def make_record(
    day: date,
    open_: float = 100.0,
    close: float = 100.0,
    volume: float = 1000.0,
    volatility: float = 1.0,
) -> DailyRecord:
    """A valid record whose high/low bracket open and close by 1%."""
    return DailyRecord(
        date=day,
        open=open_,
        high=max(open_, close) * 1.01,
        low=min(open_, close) * 0.99,
        close=close,
        volume=volume,
        volatility=volatility,
    )


def make_series(start: date, volatilities, **kwargs):
    return [
        make_record(start + timedelta(days=i), volatility=v, **kwargs)
        for i, v in enumerate(volatilities)
    ]


def kline_row(day: date, open_, high, low, close, volume=1000.0):
    """A raw Binance kline row for ``day``."""
    open_time = to_epoch_ms(day)
    return [
        open_time, str(open_), str(high), str(low), str(close), str(volume),
        open_time + 86_399_999, "0", 100, "0", "0", "0",
    ]


class FakeResponse:
    def __init__(self, body=None, status=200, reason="OK"):
        self.body = body
        self.status = status
        self.reason = reason

    async def json(self, content_type="application/json"):
        if isinstance(self.body, Exception):
            raise self.body
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Replays queued responses and records every GET."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def get(self, url, params=None):
        self.calls.append((url, dict(params or {})))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_session():
    def _build(*responses):
        return FakeSession(
            r if isinstance(r, (FakeResponse, Exception)) else FakeResponse(r)
            for r in responses
        )
    return _build
