"""
market_data.py
--------------
REST adapter for candles and last-traded prices (LBank ``/v2`` API), plus
the candle-derived market snapshot the decision cycle runs against.

``RestMarketData`` plays three roles for the scheduler and providers:

* ``fetch_klines(symbol)``  – OHLCV DataFrame, cached for ``cache_ttl`` s
* ``current_price(symbol)`` – PriceProvider
* ``snapshot(symbol, price)`` – MarketContextProvider
"""

from __future__ import annotations

import asyncio
import logging
import statistics
import time
from collections import deque
from typing import Dict, Optional

import aiohttp
import pandas as pd

from tradebrain.models.errors import MarketDataError
from tradebrain.models.evidence import MarketSnapshot, Trend
from tradebrain.modules.data_provider import DataProvider
from tradebrain.modules.indicator import IndicatorCalculator
from tradebrain.utils.logger import get_logger

# ----------------------------- constants ---------------------------------- #
SECONDS_PER_TF: Dict[str, int] = {
    "1m": 60,
    "5m": 5 * 60,
    "15m": 15 * 60,
    "30m": 30 * 60,
    "1h": 60 * 60,
    "4h": 4 * 60 * 60,
    "1d": 24 * 60 * 60,
}

REST_TIMEFRAME_CODES: Dict[str, str] = {
    "1m": "minute1",
    "5m": "minute5",
    "15m": "minute15",
    "30m": "minute30",
    "1h": "hour1",
    "4h": "hour4",
    "1d": "day1",
}

TREND_SLOPE = 0.001
TREND_LOOKBACK = 5
# request latencies kept for the average in log_metrics
LATENCY_WINDOW = 500


# ---------------------------- rate limiter -------------------------------- #
class RateLimiter:
    """Simple sliding-window limiter (max N requests per 10 s window)."""

    def __init__(self, max_requests_per_10s: int) -> None:
        self.max_requests = max_requests_per_10s
        self.timestamps: deque[float] = deque()

    async def acquire(self) -> None:
        now = time.time()
        while self.timestamps and now - self.timestamps[0] > 10:
            self.timestamps.popleft()
        if len(self.timestamps) >= self.max_requests:
            await asyncio.sleep(10 - (now - self.timestamps[0]))
        self.timestamps.append(time.time())


# ---------------------------- snapshot ------------------------------------ #
def build_snapshot(symbol: str, df: pd.DataFrame, price: float) -> MarketSnapshot:
    """Derive support / resistance / volatility / trend from candles.

    Support is the nearest swing low below ``price`` and resistance the
    nearest swing high above it; 0.0 means none was found.  Volatility is
    ATR over price.  Trend needs price and the slow EMA's recent slope to
    agree, otherwise it is SIDEWAYS.
    """
    if df is None or df.empty:
        return MarketSnapshot(symbol=symbol, current_price=price, support=0.0, resistance=0.0)

    enriched = IndicatorCalculator(df).run_all().get_df()

    lows = enriched["swing_low"].dropna()
    below = lows[lows < price]
    support = float(below.max()) if not below.empty else 0.0

    highs = enriched["swing_high"].dropna()
    above = highs[highs > price]
    resistance = float(above.min()) if not above.empty else 0.0

    atr = enriched["atr"].iloc[-1]
    volatility = float(atr / price) if pd.notna(atr) else 0.0

    trend: Trend = "SIDEWAYS"
    ema = enriched["ema_slow"]
    if len(ema) > TREND_LOOKBACK:
        base = ema.iloc[-1 - TREND_LOOKBACK]
        slope = (ema.iloc[-1] - base) / base if base else 0.0
        if price > ema.iloc[-1] and slope > TREND_SLOPE:
            trend = "BULLISH"
        elif price < ema.iloc[-1] and slope < -TREND_SLOPE:
            trend = "BEARISH"

    return MarketSnapshot(
        symbol=symbol,
        current_price=price,
        support=support,
        resistance=resistance,
        volatility=volatility,
        trend=trend,
    )


# ---------------------------- REST adapter -------------------------------- #
class RestMarketData:
    """Asynchronous REST client for OHLCV and ticker data."""

    def __init__(
        self,
        base_url: str = "https://api.lbank.info",
        timeframe: str = "1h",
        *,
        bars: int = 200,
        timeout: float = 10,
        cache_ttl: float = 60,
        symbol_map: Optional[Dict[str, str]] = None,
        data_provider: Optional[DataProvider] = None,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[aiohttp.ClientSession] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if timeframe not in SECONDS_PER_TF:
            raise ValueError(f"Unknown timeframe {timeframe!r}")
        self.logger = logger or get_logger("market_data")
        self.base_url = base_url.rstrip("/")
        self.timeframe = timeframe
        self.bars = bars
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.symbol_map = symbol_map or {}
        self.data_provider = data_provider or DataProvider()
        self.rate_limiter = rate_limiter or RateLimiter(max_requests_per_10s=200)
        self._session = session
        self._owns_session = session is None
        self._fetched_at: Dict[str, float] = {}

        self.metrics = {
            "requests_sent": 0,
            "errors": 0,
            "latencies": deque(maxlen=LATENCY_WINDOW),
        }

    async def __aenter__(self) -> "RestMarketData":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _remote_symbol(self, symbol: str) -> str:
        return self.symbol_map.get(symbol, symbol.lower())

    # -------------------------------------------------------------------- #
    async def _get_json(self, path: str, params: Dict) -> Dict:
        await self.rate_limiter.acquire()
        url = f"{self.base_url}{path}"
        session = self._get_session()
        try:
            t0 = time.time()
            async with session.get(
                url, params=params, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                self.metrics["requests_sent"] += 1
                if resp.status != 200:
                    raise MarketDataError(f"HTTP {resp.status} for {path}")
                data = await resp.json(content_type=None)
                self.metrics["latencies"].append(time.time() - t0)
                return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self.metrics["errors"] += 1
            raise MarketDataError(f"{path} request failed: {exc}") from exc
        except MarketDataError:
            self.metrics["errors"] += 1
            raise

    async def fetch_klines(self, symbol: str) -> pd.DataFrame:
        """Last ``bars`` candles for ``symbol``; served from cache within ``cache_ttl``."""
        cached = self.data_provider.get_ohlcv(symbol, self.timeframe)
        if cached is not None and time.time() - self._fetched_at.get(symbol, 0) < self.cache_ttl:
            return cached

        start_ts = int(time.time() - self.bars * SECONDS_PER_TF[self.timeframe])
        params = {
            "symbol": self._remote_symbol(symbol),
            "type": REST_TIMEFRAME_CODES[self.timeframe],
            "size": self.bars,
            "time": start_ts,
        }
        data = await self._get_json("/v2/kline.do", params)
        df = self.data_provider.create_dataframe_from_kline(data)
        if df.empty:
            raise MarketDataError(f"No candles returned for {symbol}")
        self.data_provider.put(symbol, self.timeframe, df)
        self._fetched_at[symbol] = time.time()
        return df

    async def current_price(self, symbol: str) -> float:
        data = await self._get_json("/v2/ticker.do", {"symbol": self._remote_symbol(symbol)})
        price = self.data_provider.latest_price_from_ticker(data)
        if price is None:
            raise MarketDataError(f"No price in ticker response for {symbol}")
        return price

    async def snapshot(self, symbol: str, price: float) -> MarketSnapshot:
        df = await self.fetch_klines(symbol)
        return build_snapshot(symbol, df, price)

    def log_metrics(self) -> None:
        avg = statistics.mean(self.metrics["latencies"]) if self.metrics["latencies"] else 0
        self.logger.info(
            "📊 Requests: %s | Errors: %s | Avg latency: %.3fs",
            self.metrics["requests_sent"],
            self.metrics["errors"],
            avg,
        )
