"""
risk_ladder.py
--------------
Stop-loss / three take-profit ladder under a fixed account-risk percentage.

The stop sits ``entry * risk_percent`` away from entry unless the nearest
structural level (support for BUY, resistance for SELL) is tighter.  Take
profits are placed at ``risk_amount * multiplier`` for each rung.  Prices
are rounded to the symbol's precision only when the ladder is emitted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from tradebrain.models.errors import InvalidLadderError
from tradebrain.models.evidence import MarketSnapshot
from tradebrain.models.signal import MIN_RISK_REWARD, Direction, direction_sign

logger = logging.getLogger(__name__)

DEFAULT_MULTIPLIERS: Tuple[float, float, float] = (2.0, 3.0, 4.0)


@dataclass(frozen=True)
class Ladder:
    entry_price: float
    stop_loss: float
    tp1: float
    tp2: float
    tp3: float
    risk_reward_ratio: float
    warnings: Tuple[str, ...] = ()

    def levels(self) -> Tuple[float, float, float, float, float]:
        return (self.stop_loss, self.entry_price, self.tp1, self.tp2, self.tp3)


def normalize_symbol(symbol: str) -> str:
    """Upper-case ``symbol`` with ``/`` and ``_`` separators removed."""
    return symbol.upper().replace("/", "").replace("_", "")


def price_precision(symbol: str, overrides: Optional[Dict[str, int]] = None) -> int:
    """Decimal places for ``symbol``: 2 for metals, 3 for JPY pairs, else 4."""
    key = normalize_symbol(symbol)
    if overrides:
        for name, digits in overrides.items():
            if normalize_symbol(name) == key:
                return int(digits)
    if key.startswith(("XAU", "XAG")):
        return 2
    if "JPY" in key:
        return 3
    return 4


def validate_ladder(direction: Direction, ladder: Ladder) -> None:
    """Raise :class:`InvalidLadderError` unless levels are strictly ordered
    for ``direction`` and tp1 offers at least the minimum risk-reward."""
    levels = list(ladder.levels())
    if direction == "SELL":
        levels.reverse()
    elif direction != "BUY":
        raise InvalidLadderError(f"no ladder for direction {direction}")
    if any(a >= b for a, b in zip(levels, levels[1:])):
        raise InvalidLadderError(f"{direction} ladder out of order: {ladder.levels()}")
    if ladder.risk_reward_ratio < MIN_RISK_REWARD:
        raise InvalidLadderError(
            f"tp1 risk-reward {ladder.risk_reward_ratio} below {MIN_RISK_REWARD}"
        )


class RiskLadderCalculator:
    def __init__(
        self,
        risk_percent: float = 0.02,
        multipliers: Sequence[float] = DEFAULT_MULTIPLIERS,
        precision_overrides: Optional[Dict[str, int]] = None,
    ) -> None:
        if len(multipliers) != 3:
            raise ValueError("exactly three take-profit multipliers are required")
        self.risk_percent = risk_percent
        self.multipliers = tuple(float(m) for m in multipliers)
        self.precision_overrides = precision_overrides or {}

    # ------------------------------------------------------------------ #
    def compute_ladder(
        self,
        direction: Direction,
        entry_price: float,
        snapshot: MarketSnapshot,
        risk_percent: Optional[float] = None,
    ) -> Ladder:
        sign = direction_sign(direction)
        if sign == 0:
            raise InvalidLadderError("HOLD has no ladder")
        if entry_price <= 0:
            raise InvalidLadderError(f"entry price must be positive, got {entry_price}")

        risk_amount = entry_price * (risk_percent if risk_percent is not None else self.risk_percent)
        percent_stop = entry_price - sign * risk_amount
        warnings: list[str] = []

        stop = self._structural_stop(direction, entry_price, percent_stop, snapshot, warnings)
        ladder = self._build(direction, entry_price, stop, risk_amount, snapshot.symbol, warnings)

        try:
            validate_ladder(direction, ladder)
        except InvalidLadderError:
            if stop == percent_stop:
                raise
            # rounding collapsed a very tight structural stop onto entry
            logger.warning(
                "⚠️ %s: structural stop %.6f too close to entry %.6f – using percentage stop",
                snapshot.symbol, stop, entry_price,
            )
            warnings.append("data_quality:structural_stop_too_tight")
            ladder = self._build(direction, entry_price, percent_stop, risk_amount, snapshot.symbol, warnings)
            validate_ladder(direction, ladder)
        return ladder

    # ------------------------------------------------------------------ #
    @staticmethod
    def _structural_stop(
        direction: Direction,
        entry: float,
        percent_stop: float,
        snapshot: MarketSnapshot,
        warnings: list,
    ) -> float:
        if direction == "BUY":
            support = snapshot.support
            if support <= 0:
                return percent_stop
            if support >= entry:
                logger.warning(
                    "⚠️ %s: support %.6f is not below entry %.6f – clamping stop to %.2f%% risk",
                    snapshot.symbol, support, entry, (entry - percent_stop) / entry * 100,
                )
                warnings.append("data_quality:support_above_entry")
                return percent_stop
            return max(percent_stop, support)

        resistance = snapshot.resistance
        if resistance <= 0:
            return percent_stop
        if resistance <= entry:
            logger.warning(
                "⚠️ %s: resistance %.6f is not above entry %.6f – clamping stop to %.2f%% risk",
                snapshot.symbol, resistance, entry, (percent_stop - entry) / entry * 100,
            )
            warnings.append("data_quality:resistance_below_entry")
            return percent_stop
        return min(percent_stop, resistance)

    def _build(
        self,
        direction: Direction,
        entry: float,
        stop: float,
        risk_amount: float,
        symbol: str,
        warnings: list,
    ) -> Ladder:
        sign = direction_sign(direction)
        tps = [entry + sign * risk_amount * m for m in self.multipliers]
        rr = abs(tps[0] - entry) / abs(entry - stop) if entry != stop else 0.0

        digits = price_precision(symbol, self.precision_overrides)
        return Ladder(
            entry_price=round(entry, digits),
            stop_loss=round(stop, digits),
            tp1=round(tps[0], digits),
            tp2=round(tps[1], digits),
            tp3=round(tps[2], digits),
            risk_reward_ratio=round(rr, 2),
            warnings=tuple(warnings),
        )
