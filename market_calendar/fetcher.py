"""
Daily kline retrieval from the Binance REST API.

This module handles:
- API communication with Binance
- Paging through the klines endpoint under the rate limiter
- Mapping provider failures to the pipeline's error taxonomy
- Converting validated rows to DailyRecords
"""

import asyncio
import time
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

import aiohttp

from .config import Config
from .exceptions import InputError, ResponseFormatError, TransportError
from .models import DailyRecord, EmptyReason, FetchResult, TimeRange
from .monitoring.metrics import MetricsCollector
from .rate_limiter import RateLimiter
from .utils import from_epoch_ms, month_end, month_start, to_epoch_ms
from .validators import DataValidator
from .volatility import enhance_volatility

logger = logging.getLogger(__name__)

Instant = Union[int, datetime]


class BinanceKlineFetcher:
    """
    Fetches daily klines and turns them into clean DailyRecords.

    Responsibilities:
    - Manage the aiohttp session
    - Gate every request through the injected rate limiter
    - Page through ranges longer than one response
    - Drop malformed rows without failing the fetch

    Transport and input errors propagate to the caller; there is no automatic
    retry. Callers that fire overlapping requests should discard stale
    results with :meth:`FetchResult.matches`.
    """

    INTERVAL = "1d"

    def __init__(
        self,
        config: Optional[Config] = None,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[aiohttp.ClientSession] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or Config()
        self.metrics = metrics or MetricsCollector()
        self.rate_limiter = rate_limiter or RateLimiter.from_config(self.config, self.metrics)
        self.validator = DataValidator(self.config, self.metrics)

        self.base_url = self.config.api.base_url.rstrip("/")
        self.page_size = min(self.config.api.page_size, 1000)
        self.launch_date = self.config.fetch.launch_date

        self.session = session
        self._owns_session = session is None
        self.session_lock = asyncio.Lock()

        self.request_count = 0
        self.error_count = 0

        logger.info("Initialized BinanceKlineFetcher")

    async def __aenter__(self) -> 'BinanceKlineFetcher':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        async with self.session_lock:
            if self.session is None or self.session.closed:
                timeout = aiohttp.ClientTimeout(total=self.config.api.timeout)
                self.session = aiohttp.ClientSession(
                    timeout=timeout,
                    headers={"Accept": "application/json"},
                    trust_env=True
                )
                self._owns_session = True
                logger.debug("Created new aiohttp session")

            return self.session

    async def close(self):
        """Close the session if this fetcher created it."""
        async with self.session_lock:
            if self._owns_session and self.session is not None and not self.session.closed:
                await self.session.close()
                self.session = None
                logger.debug("Closed aiohttp session")

    async def make_request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Issue a GET request to the Binance API.

        Args:
            endpoint: API endpoint (e.g., 'klines', 'exchangeInfo')
            params: Query parameters

        Returns:
            Decoded JSON body

        Raises:
            TransportError: Non-2xx status or network failure
            ResponseFormatError: Body is not valid JSON
        """
        session = await self.get_session()
        url = f"{self.base_url}/{endpoint}"

        await self.rate_limiter.wait_if_needed()
        start_time = time.time()

        try:
            async with session.get(url, params=params or {}) as response:
                self.request_count += 1

                if not 200 <= response.status < 300:
                    message = await self._error_message(response)
                    raise TransportError(message, status=response.status)

                try:
                    data = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError) as e:
                    raise ResponseFormatError("Invalid response format from Binance API") from e

        except TransportError as e:
            self.error_count += 1
            self.metrics.record_error(endpoint, f"http_{e.status}")
            logger.error(f"Request failed: {e.message}")
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.error_count += 1
            self.metrics.record_error(endpoint, type(e).__name__)
            logger.error(f"Request failed: {str(e)}")
            raise TransportError(f"Network error contacting Binance API: {e}") from e
        except ResponseFormatError as e:
            self.error_count += 1
            self.metrics.record_error(endpoint, "invalid_body")
            logger.error(f"Request failed: {str(e)}")
            raise

        rows = len(data) if isinstance(data, list) else 1
        self.metrics.record_api_call(endpoint, time.time() - start_time, rows)
        return data

    @staticmethod
    async def _error_message(response: aiohttp.ClientResponse) -> str:
        message = f"Binance API error: {response.status} {response.reason}"
        try:
            body = await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            return message
        if isinstance(body, dict) and body.get("msg"):
            return f"Binance API: {body['msg']}"
        return message

    async def fetch_klines(self, symbol: str, start_time: Instant, end_time: Instant) -> FetchResult:
        """
        Fetch validated daily records for ``[start_time, end_time]``.

        Args:
            symbol: Trading symbol (e.g., 'BTCUSDT')
            start_time: Range start, epoch milliseconds or datetime
            end_time: Range end, epoch milliseconds or datetime

        Returns:
            FetchResult with records in provider order; an empty result
            carries PRE_LAUNCH or NO_DATA as its reason
        """
        self.validator.validate_symbol(symbol)
        start_ms, end_ms = _to_ms(start_time), _to_ms(end_time)
        if start_ms <= 0 or start_ms >= end_ms:
            raise InputError("Invalid date range provided")

        launch_ms = to_epoch_ms(self.launch_date)
        if end_ms < launch_ms:
            logger.warning(f"Requested range for {symbol} is before Binance launch ({self.launch_date})")
            return FetchResult(
                symbol=symbol,
                start=from_epoch_ms(start_ms).date(),
                end=from_epoch_ms(end_ms).date(),
                reason=EmptyReason.PRE_LAUNCH,
            )

        start_ms = max(start_ms, launch_ms)
        result = FetchResult(
            symbol=symbol,
            start=from_epoch_ms(start_ms).date(),
            end=from_epoch_ms(end_ms).date(),
        )

        logger.info(
            f"Fetching {symbol} data from {from_epoch_ms(start_ms).isoformat()} "
            f"to {from_epoch_ms(end_ms).isoformat()}"
        )

        cursor = start_ms
        offset = 0
        while cursor <= end_ms:
            params = {
                "symbol": symbol,
                "interval": self.INTERVAL,
                "startTime": cursor,
                "endTime": end_ms,
                "limit": self.page_size,
            }
            page = await self.make_request("klines", params)

            if not isinstance(page, list):
                raise ResponseFormatError("Invalid response format from Binance API")
            if not page:
                break

            self._append_page(result, page, offset)
            offset += len(page)

            if len(page) < self.page_size:
                break
            last_open = _last_open_time(page)
            if last_open is None or last_open + 1 <= cursor:
                break
            cursor = last_open + 1

        if result.empty:
            result.reason = EmptyReason.NO_DATA
            logger.warning(f"No data returned for {symbol} in the specified date range")
        else:
            logger.info(
                f"Received {offset} kline rows for {symbol}, kept {len(result.records)}"
            )

        return result

    def _append_page(self, result: FetchResult, page: Sequence[Any], offset: int):
        validation = self.validator.validate_klines(page, offset)
        result.dropped += validation.dropped
        result.issues.extend(validation.issues)

        for record in validation.records:
            if result.records and record.date <= result.records[-1].date:
                message = f"duplicate or out-of-order date {record.date}"
                logger.warning(f"Dropping kline: {message}")
                self.metrics.record_dropped_row("duplicate_date")
                result.dropped += 1
                result.issues.append(message)
                continue
            result.records.append(record)

    async def get_daily_records(self, symbol: str, time_range: TimeRange) -> List[DailyRecord]:
        """
        Fetch the raw daily records for an inclusive calendar range.

        Raises:
            InputError: Bad symbol or range, before any network call
            TransportError: Provider or network failure
            ResponseFormatError: Unexpected payload shape
        """
        self.validator.validate_request(symbol, time_range)
        result = await self.fetch_klines(
            symbol,
            to_epoch_ms(time_range.start),
            to_epoch_ms(time_range.end, end_of_day=True),
        )
        return result.records

    async def get_month_records(self, symbol: str, month: date) -> FetchResult:
        """
        Fetch one calendar month with enhanced volatility.

        Data from ``month_lookback_days`` before the month is fetched as well
        so the first days of the month get full trailing windows, then trimmed
        off after enhancement.
        """
        self.validator.validate_symbol(symbol)
        first, last = month_start(month), month_end(month)

        if last < self.launch_date:
            logger.warning(f"Requested month {first:%Y-%m} is before Binance launch")
            return FetchResult(symbol=symbol, start=first, end=last, reason=EmptyReason.PRE_LAUNCH)

        lookback = timedelta(days=self.config.fetch.month_lookback_days)
        extended = max(first - lookback, self.launch_date)
        self.validator.validate_range(TimeRange(extended, last))

        fetched = await self.fetch_klines(symbol, to_epoch_ms(extended), to_epoch_ms(last, end_of_day=True))

        volatility = self.config.volatility
        enhanced = enhance_volatility(
            fetched.records,
            window=volatility.window,
            daily_weight=volatility.daily_weight,
            rolling_weight=volatility.rolling_weight,
        )
        month_range = TimeRange(first, last)
        in_month = [r for r in enhanced if month_range.contains(r.date)]

        logger.info(f"Processed {len(in_month)} days of data for {symbol} in {first:%B %Y}")
        return FetchResult(
            symbol=symbol,
            start=first,
            end=last,
            records=in_month,
            reason=EmptyReason.NONE if in_month else EmptyReason.NO_DATA,
            dropped=fetched.dropped,
            issues=fetched.issues,
        )

    async def get_trading_pairs(self) -> List[str]:
        """Symbols currently trading against USDT or USDC, sorted."""
        info = await self.make_request("exchangeInfo")
        if not isinstance(info, dict) or not isinstance(info.get("symbols"), list):
            raise ResponseFormatError("Invalid exchangeInfo response from Binance API")

        return sorted(
            s["symbol"] for s in info["symbols"]
            if isinstance(s, dict)
            and s.get("status") == "TRADING"
            and str(s.get("symbol", "")).endswith(("USDT", "USDC"))
        )

    def get_metrics(self) -> Dict[str, Any]:
        """Get current performance metrics."""
        return {
            "requests": self.request_count,
            "errors": self.error_count,
            "error_rate": self.error_count / max(1, self.request_count) * 100,
            "rate_limiter": self.rate_limiter.get_metrics(),
            "collector": self.metrics.get_all_metrics(),
        }


def _to_ms(value: Instant) -> int:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    if isinstance(value, bool):
        raise InputError(f"Invalid timestamp: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InputError(f"Invalid timestamp: {value!r}")


def _last_open_time(page: Sequence[Any]) -> Optional[int]:
    for row in reversed(page):
        if isinstance(row, (list, tuple)) and row:
            try:
                return int(row[0])
            except (TypeError, ValueError):
                continue
    return None
