from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tradebrain.models.evidence import Trend

Direction = Literal["BUY", "SELL", "HOLD"]

CONFIDENCE_FLOOR = 0.30
CONFIDENCE_CEILING = 0.95
MIN_RISK_REWARD = 1.5


def clamp_confidence(value: float) -> float:
    return max(CONFIDENCE_FLOOR, min(CONFIDENCE_CEILING, value))


def direction_sign(direction: str) -> int:
    return {"BUY": 1, "SELL": -1}.get(direction, 0)


class Signal(BaseModel):
    """An emitted, immutable BUY/SELL decision with its price ladder."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    symbol: str = Field(..., min_length=1)
    direction: Direction
    confidence: float = Field(..., ge=CONFIDENCE_FLOOR, le=CONFIDENCE_CEILING)
    entry_price: float = Field(..., gt=0)
    stop_loss: float = Field(..., gt=0)
    take_profit_1: float = Field(..., gt=0)
    take_profit_2: float = Field(..., gt=0)
    take_profit_3: float = Field(..., gt=0)
    risk_reward_ratio: float = Field(..., ge=MIN_RISK_REWARD)
    risk_percent: float = Field(0.02, gt=0)
    reasoning_factors: List[str] = Field(default_factory=list)
    reasoning: str = ""
    trend: Trend = "SIDEWAYS"
    warnings: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("direction")
    @classmethod
    def no_hold(cls, v):
        if v == "HOLD":
            raise ValueError("HOLD decisions are never emitted as signals")
        return v

    @model_validator(mode="after")
    def ladder_order(self):
        levels = [self.stop_loss, self.entry_price,
                  self.take_profit_1, self.take_profit_2, self.take_profit_3]
        if self.direction == "SELL":
            levels.reverse()
        if any(a >= b for a, b in zip(levels, levels[1:])):
            raise ValueError(f"ladder out of order for {self.direction}: {levels}")
        return self
