from unittest.mock import AsyncMock

import numpy as np
import pandas as pd
import pytest

from tradebrain.models.errors import EvidenceError
from tradebrain.modules.data_provider import DataProvider
from tradebrain.modules.indicator import IndicatorCalculator
from tradebrain.modules.market_data import build_snapshot
from tradebrain.modules.providers.technical import (
    _CandleEvidenceProvider,
    ChartPatternEvidenceProvider,
    TechnicalEvidenceProvider,
)

# ------------------------- Fixtures ------------------------- #


@pytest.fixture
def engulfing_candles():
    """Flat tape ending in a bearish bar followed by a bullish engulfing bar."""
    n = 40
    df = pd.DataFrame({
        "timestamp": np.arange(n) * 3600,
        "open": np.full(n, 100.0),
        "high": np.full(n, 100.2),
        "low": np.full(n, 99.8),
        "close": np.full(n, 100.0),
        "volume": np.full(n, 1.0),
    })
    df.loc[n - 2, ["open", "high", "low", "close"]] = [101.0, 101.2, 98.8, 99.0]
    df.loc[n - 1, ["open", "high", "low", "close"]] = [98.5, 102.1, 98.4, 102.0]
    return df


def candles_source(df):
    source = AsyncMock()
    source.fetch_klines.return_value = df
    return source


# ------------------------- DataProvider ------------------------- #


def test_kline_list_payload_is_normalised():
    raw = {"result": True, "data": [
        [1700003600, "2", "3", "1", "2.5", "10"],
        [1700000000, 1, 2, 0.5, 1.5, 5],
        [1700003600, 2, 3, 1, 2.6, 11],
    ]}
    df = DataProvider().create_dataframe_from_kline(raw)

    assert list(df.columns) == DataProvider.columns
    assert df["timestamp"].tolist() == [1700000000, 1700003600]
    assert df["close"].tolist() == [1.5, 2.6]


def test_kline_dict_payload_skips_bad_rows():
    raw = {"data": [
        {"timestamp": 1, "open": 1, "high": 2, "low": 0.5, "close": 1.5, "volume": 3},
        {"timestamp": 2, "open": "x"},
    ]}
    df = DataProvider().create_dataframe_from_kline(raw)
    assert len(df) == 1


@pytest.mark.parametrize("raw", [None, {}, {"data": []}, {"data": "nope"}, {"data": [["a", "b"]]}])
def test_malformed_kline_payload_gives_empty_frame(raw):
    assert DataProvider().create_dataframe_from_kline(raw).empty


@pytest.mark.parametrize("raw,expected", [
    ({"data": [{"symbol": "xauusd", "ticker": {"latest": "2650.5"}}]}, 2650.5),
    ({"data": {"price": 1.08}}, 1.08),
    ({"price": "151.2"}, 151.2),
    ({"data": []}, None),
    ({"data": [{"ticker": {"latest": "0"}}]}, None),
    ("garbage", None),
])
def test_latest_price_from_ticker(raw, expected):
    assert DataProvider().latest_price_from_ticker(raw) == expected


# ------------------------- Indicators ------------------------- #


def test_run_all_adds_indicator_columns(make_candles):
    df = IndicatorCalculator(make_candles()).run_all().get_df()
    for column in ("ema_fast", "ema_slow", "atr", "rsi", "macd_hist", "swing_low",
                   "swing_high", "bullish_engulfing", "hammer", "doji"):
        assert column in df.columns
    assert df["swing_low"].notna().any()
    assert df["swing_high"].notna().any()


def test_candlestick_patterns(engulfing_candles):
    df = IndicatorCalculator(engulfing_candles).run_all().get_df()
    assert bool(df["bullish_engulfing"].iloc[-1])
    assert not bool(df["bearish_engulfing"].iloc[-1])


# ------------------------- Snapshot ------------------------- #


def test_snapshot_from_uptrend(make_candles):
    df = make_candles(slope=0.5)
    price = float(df["close"].iloc[-1])
    snap = build_snapshot("XAUUSD", df, price)

    assert snap.trend == "BULLISH"
    assert 0 < snap.support < price
    assert snap.resistance == 0 or snap.resistance > price
    assert snap.volatility > 0


def test_snapshot_from_downtrend(make_candles):
    df = make_candles(start=200.0, slope=-0.5)
    price = float(df["close"].iloc[-1])
    snap = build_snapshot("XAUUSD", df, price)

    assert snap.trend == "BEARISH"
    assert snap.resistance > price


def test_snapshot_without_candles():
    snap = build_snapshot("EURUSD", pd.DataFrame(), 1.08)
    assert (snap.support, snap.resistance, snap.trend) == (0.0, 0.0, "SIDEWAYS")


# ------------------------- Evidence providers ------------------------- #


@pytest.mark.asyncio
async def test_technical_provider_on_steady_uptrend(make_candles):
    provider = TechnicalEvidenceProvider(candles_source(make_candles(wobble=0.0)), weight=1.5)
    factors = await provider.fetch("XAUUSD")

    assert len(factors) == 1
    factor = factors[0]
    assert factor.source_name == "technical"
    assert factor.weight == 1.5
    assert "ema:bullish_stack" in factor.tags
    assert "rsi:overbought" in factor.tags


@pytest.mark.asyncio
async def test_technical_provider_on_steady_downtrend(make_candles):
    provider = TechnicalEvidenceProvider(candles_source(make_candles(start=200.0, slope=-0.5, wobble=0.0)))
    factor = (await provider.fetch("XAUUSD"))[0]

    assert "ema:bearish_stack" in factor.tags
    assert "rsi:oversold" in factor.tags
    assert factor.bullish_score >= 3


@pytest.mark.asyncio
async def test_provider_needs_enough_candles(make_candles):
    provider = TechnicalEvidenceProvider(candles_source(make_candles(n=10)))
    with pytest.raises(EvidenceError):
        await provider.fetch("XAUUSD")


def test_candle_provider_requires_score(make_candles):
    class Unscored(_CandleEvidenceProvider):
        name = "unscored"

    with pytest.raises(TypeError):
        Unscored(candles_source(make_candles()))


@pytest.mark.asyncio
async def test_chart_pattern_provider_scores_engulfing(engulfing_candles):
    provider = ChartPatternEvidenceProvider(candles_source(engulfing_candles))
    factor = (await provider.fetch("EURUSD"))[0]

    assert factor.source_name == "chart_pattern"
    assert factor.tags == ("pattern:bullish_engulfing",)
    assert factor.bullish_score == 3.0
    assert factor.bearish_score == 0.0


@pytest.mark.asyncio
async def test_chart_pattern_provider_without_pattern(make_candles):
    df = make_candles(wobble=0.0)
    provider = ChartPatternEvidenceProvider(candles_source(df))
    assert await provider.fetch("EURUSD") == []
