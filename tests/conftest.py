import numpy as np
import pandas as pd
import pytest

from tradebrain.models.evidence import EvidenceFactor, MarketSnapshot
from tradebrain.models.signal import Signal

# ------------------------- Factories ------------------------- #


@pytest.fixture
def make_snapshot():
    def _make(symbol="XAUUSD", price=2650.0, support=0.0, resistance=0.0,
              volatility=0.01, trend="BULLISH"):
        return MarketSnapshot(
            symbol=symbol,
            current_price=price,
            support=support,
            resistance=resistance,
            volatility=volatility,
            trend=trend,
        )
    return _make


@pytest.fixture
def make_factor():
    def _make(source="technical", bullish=0.0, bearish=0.0, weight=1.0, quality=0.0, tags=()):
        return EvidenceFactor(
            source_name=source,
            bullish_score=bullish,
            bearish_score=bearish,
            weight=weight,
            quality_contribution=quality,
            tags=tuple(tags),
        )
    return _make


@pytest.fixture
def make_signal():
    def _make(symbol="EURUSD", direction="BUY", entry=1.0550, stop=1.0500,
              tp1=1.0650, tp2=1.0700, tp3=1.0750, confidence=0.75,
              factors=("rsi:oversold",)):
        return Signal(
            symbol=symbol,
            direction=direction,
            confidence=confidence,
            entry_price=entry,
            stop_loss=stop,
            take_profit_1=tp1,
            take_profit_2=tp2,
            take_profit_3=tp3,
            risk_reward_ratio=round(abs(tp1 - entry) / abs(entry - stop), 2),
            reasoning_factors=list(factors),
        )
    return _make


@pytest.fixture
def make_candles():
    """OHLCV frame with raw column names; ``slope`` per bar plus a sine wobble."""
    def _make(n=120, start=100.0, slope=0.5, wobble=3.0):
        i = np.arange(n)
        close = start + slope * i + wobble * np.sin(i / 3)
        open_ = np.concatenate([[close[0]], close[:-1]])
        return pd.DataFrame({
            "timestamp": 1_700_000_000 + i * 3600,
            "open": open_,
            "high": np.maximum(open_, close) + 0.5,
            "low": np.minimum(open_, close) - 0.5,
            "close": close,
            "volume": np.full(n, 10.0),
        })
    return _make
