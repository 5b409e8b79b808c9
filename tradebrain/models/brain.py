# --------------------------------------------------------------------
# models/brain.py
# Learned state: per-symbol statistics ("brain") and factor rules.
# --------------------------------------------------------------------
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Tuple

RuleAction = Literal["BOOST", "PENALIZE", "AVOID"]

NEUTRAL_CONFIDENCE = 0.65


@dataclass
class SymbolModel:
    symbol: str
    running_confidence: float = NEUTRAL_CONFIDENCE
    win_count: int = 0
    loss_count: int = 0
    last_insights: List[str] = field(default_factory=list)
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def resolved(self) -> int:
        return self.win_count + self.loss_count

    @property
    def win_rate(self) -> float:
        return self.win_count / self.resolved if self.resolved else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SymbolModel":
        data = dict(data)
        if isinstance(data.get("updated_at"), str):
            data["updated_at"] = datetime.fromisoformat(data["updated_at"])
        return cls(**data)


@dataclass(frozen=True)
class LearningRule:
    condition_tag: str
    action: RuleAction
    success_rate: float
    times_applied: int


@dataclass(frozen=True)
class AdjustedConfidence:
    value: float
    avoid_flag: bool = False
    recommendations: Tuple[str, ...] = ()
