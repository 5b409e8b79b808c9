"""
providers/technical.py
----------------------
Evidence sources computed from candles:

• TechnicalEvidenceProvider – RSI extremes, MACD histogram cross / side,
  EMA stacking
• ChartPatternEvidenceProvider – engulfing, hammer and shooting-star bars

Both read candles through any object exposing ``async fetch_klines(symbol)``
(normally :class:`tradebrain.modules.market_data.RestMarketData`).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import List, Tuple

import pandas as pd

from tradebrain.models.errors import EvidenceError
from tradebrain.models.evidence import EvidenceFactor
from tradebrain.modules.indicator import IndicatorCalculator
from tradebrain.modules.providers.base import BaseEvidenceProvider

MIN_BARS = 30


class _CandleEvidenceProvider(BaseEvidenceProvider):
    quality = 0.0

    def __init__(self, candles, weight: float = 1.0) -> None:
        self.candles = candles
        self.weight = weight

    async def _enriched(self, symbol: str) -> pd.DataFrame:
        df = await self.candles.fetch_klines(symbol)
        if df is None or len(df) < MIN_BARS:
            raise EvidenceError(f"{self.name}: not enough candles for {symbol}")
        return IndicatorCalculator(df).run_all().get_df()

    async def fetch(self, symbol: str) -> List[EvidenceFactor]:
        df = await self._enriched(symbol)
        bullish, bearish, tags = self.score(df)
        if not tags:
            return []
        return [
            EvidenceFactor(
                source_name=self.name,
                bullish_score=bullish,
                bearish_score=bearish,
                weight=self.weight,
                quality_contribution=self.quality,
                tags=tuple(tags),
            )
        ]

    @abstractmethod
    def score(self, df: pd.DataFrame) -> Tuple[float, float, List[str]]:
        """Return ``(bullish, bearish, tags)`` for the enriched candles."""
        raise NotImplementedError


class TechnicalEvidenceProvider(_CandleEvidenceProvider):
    """Momentum and trend-following indicators on the latest bar."""

    name = "technical"
    quality = 0.3

    RSI_OVERSOLD = 30
    RSI_OVERBOUGHT = 70

    def score(self, df: pd.DataFrame) -> Tuple[float, float, List[str]]:
        last, prev = df.iloc[-1], df.iloc[-2]
        bullish = bearish = 0.0
        tags: List[str] = []

        rsi = last["rsi"]
        if pd.notna(rsi):
            if rsi < self.RSI_OVERSOLD:
                bullish += 3
                tags.append("rsi:oversold")
            elif rsi > self.RSI_OVERBOUGHT:
                bearish += 3
                tags.append("rsi:overbought")

        prev_hist, curr_hist = prev["macd_hist"], last["macd_hist"]
        if prev_hist < 0 < curr_hist:
            bullish += 3
            tags.append("macd:bullish_cross")
        elif prev_hist > 0 > curr_hist:
            bearish += 3
            tags.append("macd:bearish_cross")
        elif curr_hist > 0:
            bullish += 1.5
            tags.append("macd:bullish")
        elif curr_hist < 0:
            bearish += 1.5
            tags.append("macd:bearish")

        close, fast, slow = last["close_price"], last["ema_fast"], last["ema_slow"]
        if close > fast > slow:
            bullish += 2
            tags.append("ema:bullish_stack")
        elif close < fast < slow:
            bearish += 2
            tags.append("ema:bearish_stack")

        return bullish, bearish, tags


class ChartPatternEvidenceProvider(_CandleEvidenceProvider):
    """Single- and two-bar candlestick patterns on the latest bar."""

    name = "chart_pattern"
    quality = 0.2

    PATTERNS = (
        ("bullish_engulfing", 3.0, 0.0),
        ("hammer", 2.0, 0.0),
        ("bearish_engulfing", 0.0, 3.0),
        ("shooting_star", 0.0, 2.0),
    )

    def score(self, df: pd.DataFrame) -> Tuple[float, float, List[str]]:
        last = df.iloc[-1]
        bullish = bearish = 0.0
        tags: List[str] = []
        for column, bull, bear in self.PATTERNS:
            if bool(last[column]):
                bullish += bull
                bearish += bear
                tags.append(f"pattern:{column}")
        if bool(last["doji"]) and not tags:
            tags.append("pattern:doji")
        return bullish, bearish, tags
