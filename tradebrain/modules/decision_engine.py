"""
decision_engine.py
------------------
Turns an aggregated evidence score into BUY / SELL / HOLD with a bounded
confidence:

• BUY  – bullish beats bearish by more than ``min_score_gap``
• SELL – bearish beats bullish by more than ``min_score_gap``
• HOLD – otherwise, or when the direction fights the market trend, or when
  risk is HIGH and the gap is below ``high_risk_score_gap``

The engine is deterministic: the same score, snapshot and symbol model
always give the same decision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from tradebrain.models.brain import SymbolModel
from tradebrain.models.evidence import AggregateScore, MarketSnapshot, RiskLevel
from tradebrain.models.signal import Direction, clamp_confidence

logger = logging.getLogger(__name__)

HIGH_IMPACT_NEWS_TAG = "news:high_impact"

# Symbol bias kicks in once this many trades are resolved.
BIAS_MIN_RESOLVED = 5
BIAS_LOW_WIN_RATE = 0.4
BIAS_HIGH_WIN_RATE = 0.7
BIAS_STEP = 0.10


@dataclass(frozen=True)
class Decision:
    direction: Direction
    confidence: float
    score_gap: float = 0.0
    risk_level: RiskLevel = "LOW"
    notes: Tuple[str, ...] = ()

    @property
    def is_actionable(self) -> bool:
        return self.direction != "HOLD"


def risk_level(
    snapshot: MarketSnapshot,
    tags: Iterable[str] = (),
    medium_volatility: float = 0.025,
    high_volatility: float = 0.04,
) -> RiskLevel:
    """Classify market risk from volatility and high-impact news tags."""
    if snapshot.volatility >= high_volatility or HIGH_IMPACT_NEWS_TAG in tags:
        return "HIGH"
    if snapshot.volatility >= medium_volatility:
        return "MEDIUM"
    return "LOW"


class SignalDecisionEngine:
    """Direction rule, trend veto, risk gate and confidence formula."""

    BASE_CONFIDENCE = 0.65
    MAX_QUALITY_BOOST = 0.25
    MAX_GAP_BOOST = 0.25
    GAP_BOOST_PER_POINT = 0.03

    def __init__(
        self,
        min_score_gap: float = 4.0,
        high_risk_score_gap: float = 6.0,
        medium_volatility: float = 0.025,
        high_volatility: float = 0.04,
    ) -> None:
        self.min_score_gap = min_score_gap
        self.high_risk_score_gap = max(high_risk_score_gap, min_score_gap)
        self.medium_volatility = medium_volatility
        self.high_volatility = high_volatility

    # ------------------------------------------------------------------ #
    def decide(
        self,
        score: AggregateScore,
        snapshot: MarketSnapshot,
        model: Optional[SymbolModel] = None,
    ) -> Decision:
        notes: list[str] = []
        gap = score.score_gap
        level = risk_level(snapshot, score.factors, self.medium_volatility, self.high_volatility)

        direction = self._direction(score)
        if score.is_neutral:
            notes.append("no evidence available")

        if direction != "HOLD" and self._against_trend(direction, snapshot.trend):
            notes.append(f"trend veto: {direction} against {snapshot.trend} trend")
            direction = "HOLD"

        if direction != "HOLD" and level == "HIGH" and gap < self.high_risk_score_gap:
            notes.append("high risk conditions require stronger conviction")
            direction = "HOLD"

        confidence = self.base_confidence(score)
        confidence, bias_note = self._apply_symbol_bias(confidence, model)
        if bias_note:
            notes.append(bias_note)

        decision = Decision(
            direction=direction,
            confidence=clamp_confidence(confidence),
            score_gap=gap,
            risk_level=level,
            notes=tuple(notes),
        )
        logger.debug(
            "%s decision %s conf=%.3f gap=%.2f risk=%s %s",
            snapshot.symbol, decision.direction, decision.confidence, gap, level, list(notes),
        )
        return decision

    # ------------------------------------------------------------------ #
    def _direction(self, score: AggregateScore) -> Direction:
        if score.bullish > score.bearish + self.min_score_gap:
            return "BUY"
        if score.bearish > score.bullish + self.min_score_gap:
            return "SELL"
        return "HOLD"

    @staticmethod
    def _against_trend(direction: Direction, trend: str) -> bool:
        return (direction == "BUY" and trend == "BEARISH") or (
            direction == "SELL" and trend == "BULLISH"
        )

    def base_confidence(self, score: AggregateScore) -> float:
        quality_boost = self.MAX_QUALITY_BOOST * min(1.0, score.quality_sum)
        gap_boost = min(self.MAX_GAP_BOOST, score.score_gap * self.GAP_BOOST_PER_POINT)
        return clamp_confidence(self.BASE_CONFIDENCE + quality_boost + gap_boost)

    @staticmethod
    def _apply_symbol_bias(confidence: float, model: Optional[SymbolModel]) -> tuple[float, str]:
        if model is None or model.resolved < BIAS_MIN_RESOLVED:
            return confidence, ""
        if model.win_rate > BIAS_HIGH_WIN_RATE:
            return confidence * (1 + BIAS_STEP), f"{model.symbol} history favourable ({model.win_rate:.0%} wins)"
        if model.win_rate < BIAS_LOW_WIN_RATE:
            return confidence * (1 - BIAS_STEP), f"{model.symbol} history weak ({model.win_rate:.0%} wins)"
        return confidence, ""
