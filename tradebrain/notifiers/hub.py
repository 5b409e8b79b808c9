"""
notifiers/hub.py
----------------
Fan-out layer that owns the configured back-end notifiers and turns
``signal`` / ``trade_outcome`` bus events into human-readable messages.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from tradebrain.models.signal import Signal
from tradebrain.models.trade_record import TradeRecord
from tradebrain.notifiers.base import BaseNotifier
from tradebrain.notifiers.telegram import TelegramNotifier

logger = logging.getLogger(__name__)


class NotifierHub:
    """Collects active back-ends and broadcasts messages to all of them."""

    def __init__(self, backends: Optional[List[BaseNotifier]] = None) -> None:
        self.backends: List[BaseNotifier] = list(backends or [])

    @classmethod
    def from_config(cls, cfg: Dict) -> "NotifierHub":
        backends: List[BaseNotifier] = []
        token, chat_id = cfg.get("TELEGRAM_TOKEN"), cfg.get("TELEGRAM_CHAT_ID")
        if token and chat_id:
            backends.append(TelegramNotifier(token=token, chat_id=chat_id))
        else:
            logger.info("TelegramNotifier disabled – TELEGRAM_TOKEN/TELEGRAM_CHAT_ID not set")
        return cls(backends)

    def attach(self, bus) -> None:
        bus.subscribe("signal", self.send_trade_signal)
        bus.subscribe("trade_outcome", self.send_trade_outcome)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def broadcast(self, text: str) -> None:
        for b in self.backends:
            try:
                await b.send(text)
            except Exception:
                # one failing back-end must not block the others
                logger.exception("Notifier back-end %s failed", b.__class__.__name__)

    async def send_trade_signal(self, signal: Signal) -> None:
        await self.broadcast(self._format_signal(signal))

    async def send_trade_outcome(self, record: TradeRecord) -> None:
        await self.broadcast(self._format_outcome(record))

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    @staticmethod
    def _format_signal(s: Signal) -> str:
        icon = "📈" if s.direction == "BUY" else "📉"
        lines = [
            f"{icon} {s.symbol} · {s.direction}  (confidence {s.confidence:.0%})",
            f"Entry {s.entry_price}   SL {s.stop_loss}",
            f"TP1 {s.take_profit_1}   TP2 {s.take_profit_2}   TP3 {s.take_profit_3}",
            f"R:R {s.risk_reward_ratio}   Trend {s.trend}",
        ]
        if s.reasoning_factors:
            lines.append("Factors: " + ", ".join(s.reasoning_factors))
        if s.warnings:
            lines.append("⚠️ " + ", ".join(s.warnings))
        return "\n".join(lines)

    @staticmethod
    def _format_outcome(r: TradeRecord) -> str:
        icon = {"WIN": "✅", "PARTIAL": "☑️", "LOSS": "❌"}.get(r.status, "•")
        text = f"{icon} {r.symbol} {r.direction} {r.status} @ {r.exit_price}  P&L {r.pnl_percentage:+.2f}%"
        if r.lessons_learned:
            text += "\n" + "\n".join(f"– {lesson}" for lesson in r.lessons_learned)
        return text
