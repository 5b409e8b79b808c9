# --------------------------------------------------------------------
# models/trade_record.py
# The life-cycle record of one emitted signal. Created PENDING, moved to a
# terminal status exactly once by the learning loop.
# --------------------------------------------------------------------
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from tradebrain.models.signal import Signal

TradeStatus = Literal["PENDING", "WIN", "PARTIAL", "LOSS"]
TERMINAL_STATUSES = frozenset({"WIN", "PARTIAL", "LOSS"})


@dataclass(frozen=True)
class PriceObservation:
    symbol: str
    price: float
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TradeRecord:
    signal_id: str
    symbol: str
    direction: Literal["BUY", "SELL"]
    entry_price: float
    stop_loss: float
    tp1: float
    tp2: float
    tp3: float
    confidence: float
    status: TradeStatus = "PENDING"
    pnl_percentage: float = 0.0
    reasoning_factors: List[str] = field(default_factory=list)
    market_conditions: Dict[str, Any] = field(default_factory=dict)
    lessons_learned: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    closed_at: Optional[datetime] = None
    exit_price: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_success(self) -> bool:
        return self.status in ("WIN", "PARTIAL")

    @classmethod
    def from_signal(cls, signal: Signal, market_conditions: Optional[Dict[str, Any]] = None) -> "TradeRecord":
        return cls(
            signal_id=signal.id,
            symbol=signal.symbol,
            direction=signal.direction,
            entry_price=signal.entry_price,
            stop_loss=signal.stop_loss,
            tp1=signal.take_profit_1,
            tp2=signal.take_profit_2,
            tp3=signal.take_profit_3,
            confidence=signal.confidence,
            reasoning_factors=list(signal.reasoning_factors),
            market_conditions=dict(market_conditions or {}),
            created_at=signal.created_at,
        )

    # ---------------------------- serialisation ---------------------------- #
    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["closed_at"] = self.closed_at.isoformat() if self.closed_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeRecord":
        data = dict(data)
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        if data.get("closed_at"):
            data["closed_at"] = datetime.fromisoformat(data["closed_at"])
        return cls(**data)
