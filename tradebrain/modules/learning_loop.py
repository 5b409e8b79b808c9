"""
learning_loop.py
----------------
Outcome tracking and confidence recalibration.

Every emitted signal becomes a PENDING :class:`TradeRecord`.  Price
observations handed in by the scheduler move a record to WIN / PARTIAL /
LOSS exactly once.  A separate aggregation pass recomputes each symbol's
running confidence and the per-factor :class:`LearningRule` set, which
:meth:`LearningFeedbackLoop.apply_learning` consults before a signal is
emitted.

The loop is the single writer of symbol models and rules.  Readers get
copies (:meth:`snapshot`, :attr:`rules`), never the live objects.
"""

from __future__ import annotations

import copy
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from tradebrain.models.brain import (
    NEUTRAL_CONFIDENCE,
    AdjustedConfidence,
    LearningRule,
    SymbolModel,
)
from tradebrain.models.signal import Signal, clamp_confidence, direction_sign
from tradebrain.models.trade_record import PriceObservation, TradeRecord, TradeStatus
from tradebrain.persistence.sqlite import ResilientStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LearningMetrics:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    avg_pnl: float = 0.0
    avg_confidence: float = 0.0
    best_factors: List[str] = field(default_factory=list)
    worst_factors: List[str] = field(default_factory=list)
    symbol_performance: Dict[str, dict] = field(default_factory=dict)


def evaluate_outcome(record: TradeRecord, price: float) -> Optional[TradeStatus]:
    """Return the terminal status ``price`` triggers for ``record``, or None.

    Stop-loss wins ties: a price through the stop is a LOSS even on a
    malformed ladder.  tp3 is a WIN, tp1/tp2 without tp3 is PARTIAL.
    """
    if record.is_terminal:
        return None
    if record.direction == "BUY":
        if price <= record.stop_loss:
            return "LOSS"
        if price >= record.tp3:
            return "WIN"
        if price >= record.tp1:
            return "PARTIAL"
    elif record.direction == "SELL":
        if price >= record.stop_loss:
            return "LOSS"
        if price <= record.tp3:
            return "WIN"
        if price <= record.tp1:
            return "PARTIAL"
    return None


def generate_lessons(record: TradeRecord) -> List[str]:
    """Natural-language takeaways from a resolved trade and its market context."""
    mc = record.market_conditions or {}
    lessons: List[str] = []
    volatility = float(mc.get("volatility") or 0.0)
    trend = mc.get("trend")

    if record.is_success:
        lessons.append(
            f"{record.symbol} {record.direction} signals work well at {record.confidence:.0%} confidence"
        )
        if volatility > 0.03:
            lessons.append("works well under high volatility")
        if (record.direction, trend) in (("BUY", "BULLISH"), ("SELL", "BEARISH")):
            lessons.append("trend alignment supported the trade")
        if record.status == "PARTIAL":
            lessons.append("consider scaling out at tp1 on similar setups")
    else:
        lessons.append(
            f"{record.symbol} {record.direction} signals need refinement at {record.confidence:.0%} confidence"
        )
        if mc.get("news_impact") == "HIGH":
            lessons.append("avoid during high-impact news")
        if mc.get("risk_level") == "HIGH":
            lessons.append("high risk conditions require stronger conviction")
        if record.confidence < 0.7:
            lessons.append("low confidence signals should be avoided or risk reduced")
        if trend == "SIDEWAYS":
            lessons.append("sideways markets weaken directional setups")
    return lessons


class LearningFeedbackLoop:
    """Owns trade records, per-symbol models and learning rules."""

    RECENT_WINDOW = 20
    MAX_INSIGHTS = 5

    MIN_RULE_OBSERVATIONS = 3
    BOOST_SUCCESS = 0.6
    PENALIZE_SUCCESS = 0.4
    RETIRE_SUCCESS = 0.2
    RETIRE_OBSERVATIONS = 10

    BOOST_FACTOR = 1.05
    PENALIZE_FACTOR = 0.90
    MAX_ADJUSTMENT = 0.10

    AVOID_MIN_RESOLVED = 10
    AVOID_WIN_RATE = 0.3

    def __init__(
        self,
        store=None,
        bus=None,
        clock: Optional[Clock] = None,
        history_limit: int = 1000,
    ) -> None:
        if store is not None and not isinstance(store, ResilientStore):
            store = ResilientStore(store)
        self.store = store
        self.bus = bus
        self.clock = clock or _utcnow
        self.history_limit = history_limit

        self._records: "OrderedDict[str, TradeRecord]" = OrderedDict()
        self._models: Dict[str, SymbolModel] = {}
        self._rules: Tuple[LearningRule, ...] = ()

    # ------------------------------------------------------------------ #
    # Start-up
    # ------------------------------------------------------------------ #
    def restore(self, symbols: Iterable[str] = ()) -> None:
        """Reload trade history and brain data from the store."""
        if self.store is None:
            return
        records = self.store.load_trade_records(self.history_limit)
        for record in sorted(records, key=lambda r: r.created_at):
            self._records[record.signal_id] = record

        for symbol in symbols:
            model = self.store.get_brain_data(symbol)
            if model is not None:
                self._models[symbol] = model
            else:
                self._models[symbol] = self._model_from_history(symbol)

        self.run_aggregation(persist=False)
        logger.info(
            "📚 Learning state restored: %d trades (%d pending), %d symbol models",
            len(self._records), len(self.pending()), len(self._models),
        )

    def _model_from_history(self, symbol: str) -> SymbolModel:
        resolved = [r for r in self._records.values() if r.symbol == symbol and r.is_terminal]
        wins = sum(1 for r in resolved if r.is_success)
        return SymbolModel(symbol=symbol, win_count=wins, loss_count=len(resolved) - wins)

    # ------------------------------------------------------------------ #
    # Read side
    # ------------------------------------------------------------------ #
    def snapshot(self, symbol: str) -> SymbolModel:
        """Copy of the symbol model, safe to hand to the decision engine."""
        model = self._models.get(symbol)
        return copy.deepcopy(model) if model is not None else SymbolModel(symbol=symbol)

    @property
    def rules(self) -> Tuple[LearningRule, ...]:
        return self._rules

    def pending(self, symbol: Optional[str] = None) -> List[TradeRecord]:
        return [
            r for r in self._records.values()
            if not r.is_terminal and (symbol is None or r.symbol == symbol)
        ]

    def get_record(self, signal_id: str) -> Optional[TradeRecord]:
        return self._records.get(signal_id)

    def history(self) -> List[TradeRecord]:
        return list(self._records.values())

    # ------------------------------------------------------------------ #
    # Write side
    # ------------------------------------------------------------------ #
    def record_signal(self, signal: Signal, market_conditions: Optional[dict] = None) -> TradeRecord:
        """Register an emitted signal as a PENDING trade."""
        existing = self._records.get(signal.id)
        if existing is not None:
            return existing
        record = TradeRecord.from_signal(signal, market_conditions)
        self._records[record.signal_id] = record
        self._models.setdefault(signal.symbol, SymbolModel(symbol=signal.symbol))
        if self.store is not None:
            self.store.save_trade_record(record)
        logger.info(
            "📝 Trade recorded: %s %s @ %s (id %s)",
            record.direction, record.symbol, record.entry_price, record.signal_id,
        )
        return record

    def observe(self, observation: PriceObservation) -> List[TradeRecord]:
        """Check every PENDING record of the symbol against the observed price.

        Returns the records that reached a terminal status on this call.
        """
        resolved: List[TradeRecord] = []
        for record in self.pending(observation.symbol):
            status = evaluate_outcome(record, observation.price)
            if status is None:
                continue
            self._resolve(record, status, observation.price, observation.observed_at)
            resolved.append(record)
        return resolved

    def _resolve(self, record: TradeRecord, status: TradeStatus, price: float, at: datetime) -> None:
        if record.is_terminal:
            return
        sign = direction_sign(record.direction)
        record.status = status
        record.exit_price = price
        record.closed_at = at
        record.pnl_percentage = (price - record.entry_price) / record.entry_price * sign * 100
        record.lessons_learned = generate_lessons(record)

        model = self._models.setdefault(record.symbol, SymbolModel(symbol=record.symbol))
        if record.is_success:
            model.win_count += 1
        else:
            model.loss_count += 1
        model.last_insights = (record.lessons_learned + model.last_insights)[: self.MAX_INSIGHTS]
        model.updated_at = at

        if self.store is not None:
            self.store.save_trade_record(record)
            self.store.save_brain_data(model)
        if self.bus is not None:
            self.bus.publish("trade_outcome", record)

        logger.info(
            "📊 Trade outcome: %s %s %s @ %s (P&L %.2f%%)",
            status, record.direction, record.symbol, price, record.pnl_percentage,
        )

    # ------------------------------------------------------------------ #
    # Aggregation job
    # ------------------------------------------------------------------ #
    def _resolved_frame(self) -> pd.DataFrame:
        rows = [
            {
                "signal_id": r.signal_id,
                "symbol": r.symbol,
                "success": int(r.is_success),
                "pnl": r.pnl_percentage,
                "confidence": r.confidence,
                "factors": list(r.reasoning_factors),
                "closed_at": r.closed_at or r.created_at,
            }
            for r in self._records.values()
            if r.is_terminal
        ]
        columns = ["signal_id", "symbol", "success", "pnl", "confidence", "factors", "closed_at"]
        return pd.DataFrame(rows, columns=columns)

    def run_aggregation(self, persist: bool = True) -> Tuple[LearningRule, ...]:
        """Recompute running confidence per symbol and the learning rule set."""
        df = self._resolved_frame()

        if not df.empty:
            df = df.sort_values("closed_at")
            recent = df.groupby("symbol").tail(self.RECENT_WINDOW)
            recent_wr = recent.groupby("symbol")["success"].mean()
            for symbol, win_rate in recent_wr.items():
                model = self._models.setdefault(symbol, SymbolModel(symbol=symbol))
                model.running_confidence = clamp_confidence(0.30 + 0.65 * float(win_rate))
                model.updated_at = self.clock()

        rules = self._factor_rules(df) + self._symbol_rules()
        self._rules = tuple(rules)
        self._trim_history()

        if persist and self.store is not None:
            for model in self._models.values():
                self.store.save_brain_data(model)

        logger.info("🧠 Learning rules updated: %d active rules", len(self._rules))
        return self._rules

    def _factor_rules(self, df: pd.DataFrame) -> List[LearningRule]:
        if df.empty:
            return []
        exploded = df.explode("factors").dropna(subset=["factors"])
        if exploded.empty:
            return []
        stats = exploded.groupby("factors")["success"].agg(["mean", "count"])

        rules: List[LearningRule] = []
        for tag, row in stats.sort_index().iterrows():
            n = int(row["count"])
            rate = float(row["mean"])
            if n < self.MIN_RULE_OBSERVATIONS:
                continue
            if rate < self.RETIRE_SUCCESS and n >= self.RETIRE_OBSERVATIONS:
                logger.debug("Retiring rule for %s (%.0f%% over %d)", tag, rate * 100, n)
                continue
            if rate >= self.BOOST_SUCCESS:
                rules.append(LearningRule(str(tag), "BOOST", rate, n))
            elif rate < self.PENALIZE_SUCCESS:
                rules.append(LearningRule(str(tag), "PENALIZE", rate, n))
        return rules

    def _symbol_rules(self) -> List[LearningRule]:
        return [
            LearningRule(f"symbol:{m.symbol}", "AVOID", m.win_rate, m.resolved)
            for m in self._models.values()
            if self._should_avoid(m)
        ]

    def _should_avoid(self, model: Optional[SymbolModel]) -> bool:
        return (
            model is not None
            and model.resolved >= self.AVOID_MIN_RESOLVED
            and model.win_rate < self.AVOID_WIN_RATE
        )

    def _trim_history(self) -> None:
        excess = len(self._records) - self.history_limit
        if excess <= 0:
            return
        for signal_id in [sid for sid, r in self._records.items() if r.is_terminal][:excess]:
            del self._records[signal_id]

    # ------------------------------------------------------------------ #
    # Confidence adjustment
    # ------------------------------------------------------------------ #
    def apply_learning(
        self,
        symbol: str,
        direction: str,
        confidence: float,
        factors: Sequence[str] = (),
    ) -> AdjustedConfidence:
        """Scale ``confidence`` by what past outcomes say about this symbol
        and these factors, and flag symbols that should not be traded."""
        model = self._models.get(symbol)
        recommendations: List[str] = []
        lo, hi = 1 - self.MAX_ADJUSTMENT, 1 + self.MAX_ADJUSTMENT

        symbol_factor = 1.0
        if model is not None:
            symbol_factor = min(hi, max(lo, model.running_confidence / NEUTRAL_CONFIDENCE))
            if symbol_factor != 1.0:
                recommendations.append(
                    f"{symbol} running confidence {model.running_confidence:.2f} -> x{symbol_factor:.2f}"
                )

        factor_factor = 1.0
        present = set(factors)
        for rule in self._rules:
            if rule.condition_tag not in present:
                continue
            if rule.action == "BOOST":
                factor_factor *= self.BOOST_FACTOR
                recommendations.append(f"High-performing factor: {rule.condition_tag}")
            elif rule.action == "PENALIZE":
                factor_factor *= self.PENALIZE_FACTOR
                recommendations.append(f"Low-performing factor: {rule.condition_tag} - proceed with caution")
        factor_factor = min(hi, max(lo, factor_factor))

        avoid = self._should_avoid(model) or any(
            r.action == "AVOID" and r.condition_tag == f"symbol:{symbol}" for r in self._rules
        )
        if avoid:
            recommendations.append(f"Avoiding {symbol} due to persistently poor performance")

        value = confidence if direction == "HOLD" else confidence * symbol_factor * factor_factor
        return AdjustedConfidence(
            value=clamp_confidence(value),
            avoid_flag=avoid,
            recommendations=tuple(recommendations),
        )

    # ------------------------------------------------------------------ #
    # Reporting
    # ------------------------------------------------------------------ #
    def metrics(self) -> LearningMetrics:
        df = self._resolved_frame()
        if df.empty:
            return LearningMetrics()

        wins = int(df["success"].sum())
        total = len(df)
        per_symbol = df.groupby("symbol").agg(
            wins=("success", "sum"), trades=("success", "count"), avg_pnl=("pnl", "mean")
        )
        symbol_performance = {
            str(sym): {
                "wins": int(row["wins"]),
                "losses": int(row["trades"] - row["wins"]),
                "avg_pnl": float(row["avg_pnl"]),
                "win_rate": float(row["wins"] / row["trades"]),
            }
            for sym, row in per_symbol.iterrows()
        }

        best: List[str] = []
        worst: List[str] = []
        exploded = df.explode("factors").dropna(subset=["factors"])
        if not exploded.empty:
            stats = exploded.groupby("factors")["success"].agg(["mean", "count"])
            stats = stats[stats["count"] >= self.MIN_RULE_OBSERVATIONS].sort_values("mean", ascending=False)
            best = [str(t) for t in stats.index[:5]]
            worst = [str(t) for t in stats.index[::-1][:5]]

        return LearningMetrics(
            total_trades=total,
            winning_trades=wins,
            losing_trades=total - wins,
            win_rate=wins / total,
            avg_pnl=float(df["pnl"].mean()),
            avg_confidence=float(df["confidence"].mean()),
            best_factors=best,
            worst_factors=worst,
            symbol_performance=symbol_performance,
        )

    def insights(self) -> List[str]:
        m = self.metrics()
        if m.total_trades <= 5:
            return ["Collecting data for learning analysis..."]

        lines = [
            f"Overall win rate: {m.win_rate:.1%} over {m.total_trades} trades",
            f"Average P&L per trade: {m.avg_pnl:.2f}%",
        ]
        if m.best_factors:
            lines.append(f"Best performing factors: {', '.join(m.best_factors[:3])}")
        for symbol, perf in m.symbol_performance.items():
            if perf["wins"] + perf["losses"] >= 3:
                lines.append(f"{symbol}: {perf['win_rate']:.1%} win rate, avg P&L: {perf['avg_pnl']:.2f}%")

        if m.win_rate < 0.6:
            lines.append("Consider increasing the minimum score gap for signals")
        if m.avg_pnl < 0:
            lines.append("Review risk management - average P&L is negative")
        for symbol, perf in m.symbol_performance.items():
            if perf["win_rate"] < 0.4 and perf["wins"] + perf["losses"] >= 10:
                lines.append(f"Consider avoiding {symbol} signals - low win rate ({perf['win_rate']:.1%})")
        return lines
