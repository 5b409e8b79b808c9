# --------------------------------------------------------------------
# models/evidence.py
# Inputs of a decision cycle: weighted evidence from analysis sources and
# the market context snapshot supplied alongside it.
# --------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Tuple

from pydantic import BaseModel, ConfigDict, Field

Trend = Literal["BULLISH", "BEARISH", "SIDEWAYS"]
RiskLevel = Literal["LOW", "MEDIUM", "HIGH"]


class EvidenceFactor(BaseModel):
    """One weighted bullish/bearish contribution from an analysis source."""

    model_config = ConfigDict(frozen=True)

    source_name: str = Field(..., min_length=1)
    bullish_score: float = Field(0.0, ge=0)
    bearish_score: float = Field(0.0, ge=0)
    weight: float = Field(1.0, ge=0)
    quality_contribution: float = Field(0.0, ge=0)
    tags: Tuple[str, ...] = ()


class MarketSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., min_length=1)
    current_price: float = Field(..., gt=0)
    support: float = Field(..., ge=0)
    resistance: float = Field(..., ge=0)
    volatility: float = Field(0.0, ge=0)
    trend: Trend = "SIDEWAYS"

    def conditions(self) -> dict:
        """Plain dict stored on trade records for later lesson extraction."""
        return self.model_dump()


@dataclass(frozen=True)
class AggregateScore:
    bullish: float = 0.0
    bearish: float = 0.0
    quality_sum: float = 0.0
    factors: Tuple[str, ...] = ()
    sources: Tuple[str, ...] = ()
    missing_sources: Tuple[str, ...] = ()

    @property
    def score_gap(self) -> float:
        return abs(self.bullish - self.bearish)

    @property
    def is_neutral(self) -> bool:
        return self.bullish == 0 and self.bearish == 0
