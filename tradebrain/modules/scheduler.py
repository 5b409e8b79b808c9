"""
scheduler.py
------------
Periodic driver of the decision service.  Three independent loops:

• decision – per symbol, in configured order: evidence → aggregate →
  decide → learning adjustment → ladder → Signal → PENDING trade record
• outcome  – per symbol with pending trades: price → outcome transitions
• learning – recompute running confidence and learning rules

Each loop waits a jittered period between cycles, so the loops drift apart
instead of firing together.  ``stop()`` ends every loop at the next symbol
boundary.  Cancelling ``run()`` lets the symbol currently being processed
finish before the loop exits.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from datetime import datetime, timezone
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Sequence, Tuple

from tradebrain.models.errors import InvalidLadderError
from tradebrain.models.evidence import EvidenceFactor, MarketSnapshot
from tradebrain.models.signal import Signal
from tradebrain.models.trade_record import PriceObservation, TradeRecord
from tradebrain.modules.aggregator import aggregate
from tradebrain.modules.decision_engine import HIGH_IMPACT_NEWS_TAG, Decision, SignalDecisionEngine
from tradebrain.modules.learning_loop import LearningFeedbackLoop
from tradebrain.modules.providers.base import (
    BaseEvidenceProvider,
    MarketContextProvider,
    PriceProvider,
)
from tradebrain.modules.risk_ladder import Ladder, RiskLadderCalculator
from tradebrain.persistence.sqlite import ResilientStore
from tradebrain.utils.logger import get_logger


class DecisionScheduler:
    """Runs the decision, outcome and learning cycles until stopped."""

    def __init__(
        self,
        symbols: Sequence[str],
        providers: Sequence[BaseEvidenceProvider],
        price_provider: PriceProvider,
        context_provider: MarketContextProvider,
        engine: SignalDecisionEngine,
        ladder: RiskLadderCalculator,
        learning: LearningFeedbackLoop,
        store=None,
        bus=None,
        *,
        decision_period: float = 600,
        outcome_period: float = 30,
        learning_period: float = 300,
        jitter: float = 0.1,
        provider_timeout: float = 10,
        max_signals: int = 100,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
        metrics_sources: Sequence = (),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or get_logger("scheduler")

        self.symbols = list(dict.fromkeys(symbols))
        self.providers = list(providers)
        self.price_provider = price_provider
        self.context_provider = context_provider
        self.engine = engine
        self.ladder = ladder
        self.learning = learning
        if store is not None and not isinstance(store, ResilientStore):
            store = ResilientStore(store)
        self.store = store
        self.bus = bus
        # anything exposing log_metrics(), reported once per learning cycle
        self.metrics_sources = list(metrics_sources)

        self.decision_period = decision_period
        self.outcome_period = outcome_period
        self.learning_period = learning_period
        self.jitter = jitter
        self.provider_timeout = provider_timeout
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.rng = rng or random.Random()

        self.signals: Deque[Signal] = deque(maxlen=max_signals)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._stop = asyncio.Event()
        self._tasks: List[asyncio.Task] = []

        self.metrics = {
            "decision_cycles": 0,
            "outcome_cycles": 0,
            "signals_emitted": 0,
            "holds": 0,
            "avoided": 0,
            "provider_failures": 0,
        }

    # ------------------------------------------------------------------ #
    # Evidence
    # ------------------------------------------------------------------ #
    async def gather_evidence(self, symbol: str) -> Tuple[List[EvidenceFactor], List[str]]:
        """Query every provider in turn; failures and timeouts become missing sources."""
        factors: List[EvidenceFactor] = []
        missing: List[str] = []
        for provider in self.providers:
            try:
                result = await asyncio.wait_for(provider.fetch(symbol), self.provider_timeout)
            except asyncio.TimeoutError:
                self.metrics["provider_failures"] += 1
                self.logger.warning("⚠️ %s: %s timed out after %ss", symbol, provider.name, self.provider_timeout)
                missing.append(provider.name)
                continue
            except Exception as exc:
                self.metrics["provider_failures"] += 1
                self.logger.warning("⚠️ %s: %s failed: %s", symbol, provider.name, exc)
                missing.append(provider.name)
                continue
            factors.extend(result or [])
        return factors, missing

    async def _price(self, symbol: str) -> Optional[float]:
        try:
            return await asyncio.wait_for(self.price_provider.current_price(symbol), self.provider_timeout)
        except Exception as exc:
            self.logger.warning("⚠️ %s: price unavailable: %s", symbol, exc)
            return None

    async def _snapshot(self, symbol: str, price: float) -> Optional[MarketSnapshot]:
        try:
            return await asyncio.wait_for(self.context_provider.snapshot(symbol, price), self.provider_timeout)
        except Exception as exc:
            self.logger.warning("⚠️ %s: market context unavailable: %s", symbol, exc)
            return None

    # ------------------------------------------------------------------ #
    # Decision cycle
    # ------------------------------------------------------------------ #
    def _lock(self, symbol: str) -> asyncio.Lock:
        return self._locks.setdefault(symbol, asyncio.Lock())

    async def run_decision(self, symbol: str) -> Optional[Signal]:
        """Full decision pipeline for one symbol.  Returns the emitted Signal, if any."""
        async with self._lock(symbol):
            factors, missing = await self.gather_evidence(symbol)

            price = await self._price(symbol)
            if price is None:
                return None
            snapshot = await self._snapshot(symbol, price)
            if snapshot is None:
                return None

            score = aggregate(symbol, factors, missing)
            decision = self.engine.decide(score, snapshot, self.learning.snapshot(symbol))
            if not decision.is_actionable:
                self.metrics["holds"] += 1
                self.logger.info("⏸️ %s HOLD (gap %.2f) %s", symbol, decision.score_gap, "; ".join(decision.notes))
                return None

            adjusted = self.learning.apply_learning(symbol, decision.direction, decision.confidence, score.factors)
            if adjusted.avoid_flag:
                self.metrics["avoided"] += 1
                self.logger.info("🚫 %s %s suppressed: %s", symbol, decision.direction, "; ".join(adjusted.recommendations))
                return None

            try:
                ladder = self.ladder.compute_ladder(decision.direction, price, snapshot)
            except InvalidLadderError as exc:
                self.logger.error("❌ %s: invalid ladder, skipping: %s", symbol, exc)
                return None

            signal = Signal(
                symbol=symbol,
                direction=decision.direction,
                confidence=adjusted.value,
                entry_price=ladder.entry_price,
                stop_loss=ladder.stop_loss,
                take_profit_1=ladder.tp1,
                take_profit_2=ladder.tp2,
                take_profit_3=ladder.tp3,
                risk_reward_ratio=ladder.risk_reward_ratio,
                risk_percent=self.ladder.risk_percent,
                reasoning_factors=list(score.factors),
                reasoning=self._reasoning(decision, ladder, score.factors, adjusted.recommendations),
                trend=snapshot.trend,
                warnings=list(ladder.warnings),
                created_at=self.clock(),
            )
            self.signals.append(signal)
            if self.store is not None:
                self.store.save_signal(signal)

            conditions = {
                **snapshot.conditions(),
                "risk_level": decision.risk_level,
                "news_impact": "HIGH" if HIGH_IMPACT_NEWS_TAG in score.factors else "LOW",
                "score_gap": decision.score_gap,
                "missing_sources": list(score.missing_sources),
            }
            self.learning.record_signal(signal, conditions)
            if self.bus is not None:
                self.bus.publish("signal", signal)

            self.metrics["signals_emitted"] += 1
            self.logger.info(
                "🚀 %s %s @ %s conf=%.2f SL %s TP %s/%s/%s",
                signal.direction, symbol, signal.entry_price, signal.confidence,
                signal.stop_loss, signal.take_profit_1, signal.take_profit_2, signal.take_profit_3,
            )
            return signal

    @staticmethod
    def _reasoning(decision: Decision, ladder: Ladder, factors: Sequence[str], recommendations: Sequence[str]) -> str:
        parts = [
            f"{decision.direction} with score gap {decision.score_gap:.2f} ({decision.risk_level} risk)",
        ]
        if factors:
            parts.append("factors: " + ", ".join(factors))
        parts.extend(decision.notes)
        parts.extend(recommendations)
        parts.extend(ladder.warnings)
        return "; ".join(parts)

    async def run_decision_cycle(self) -> List[Signal]:
        self.metrics["decision_cycles"] += 1
        emitted: List[Signal] = []
        for symbol in self.symbols:
            if self._stop.is_set():
                break
            try:
                signal = await self._complete(self.run_decision(symbol))
            except Exception:
                self.logger.exception("Decision failed for %s", symbol)
                continue
            if signal is not None:
                emitted.append(signal)
        return emitted

    # ------------------------------------------------------------------ #
    # Outcome cycle
    # ------------------------------------------------------------------ #
    async def run_outcome_check(self, symbol: str) -> List[TradeRecord]:
        if not self.learning.pending(symbol):
            return []
        price = await self._price(symbol)
        if price is None:
            return []
        return self.learning.observe(PriceObservation(symbol, price, self.clock()))

    async def run_outcome_cycle(self) -> List[TradeRecord]:
        self.metrics["outcome_cycles"] += 1
        resolved: List[TradeRecord] = []
        for symbol in self.symbols:
            if self._stop.is_set():
                break
            try:
                resolved.extend(await self._complete(self.run_outcome_check(symbol)))
            except Exception:
                self.logger.exception("Outcome check failed for %s", symbol)
        return resolved

    def run_learning_cycle(self) -> None:
        self.learning.run_aggregation()
        for line in self.learning.insights():
            self.logger.debug("🧠 %s", line)
        for source in self.metrics_sources:
            source.log_metrics()

    # ------------------------------------------------------------------ #
    # Loop plumbing
    # ------------------------------------------------------------------ #
    @staticmethod
    async def _complete(coro: Awaitable):
        """Await ``coro`` so that cancelling the caller lets it finish first."""
        task = asyncio.ensure_future(coro)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            await task
            raise

    def _jittered(self, period: float) -> float:
        return max(0.0, period * (1 + self.rng.uniform(-self.jitter, self.jitter)))

    async def _wait(self, delay: float) -> bool:
        """Sleep ``delay`` seconds; True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def _loop(self, name: str, cycle: Callable, period: float) -> None:
        self.logger.info("⏱️ %s loop every ~%.0fs", name, period)
        while not self._stop.is_set():
            try:
                result = cycle()
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                self.logger.exception("%s cycle failed", name)
            if await self._wait(self._jittered(period)):
                break
        self.logger.info("%s loop stopped", name)

    def stop(self) -> None:
        self._stop.set()

    async def run(self) -> None:
        self.logger.info(
            "✅ DecisionScheduler started – %s with %d evidence providers",
            self.symbols, len(self.providers),
        )
        self._stop.clear()
        self._tasks = [
            asyncio.create_task(self._loop("decision", self.run_decision_cycle, self.decision_period)),
            asyncio.create_task(self._loop("outcome", self.run_outcome_cycle, self.outcome_period)),
            asyncio.create_task(self._loop("learning", self.run_learning_cycle, self.learning_period)),
        ]
        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            self.logger.info("Scheduler cancelled – shutting down")
            self._stop.set()
            await asyncio.gather(*self._tasks, return_exceptions=True)
