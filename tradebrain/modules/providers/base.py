"""
providers/base.py
-----------------
Collaborator interfaces the decision service consumes.

* ``BaseEvidenceProvider`` – one per analysis source (technical, sentiment,
  news, correlation, chart pattern).  ``fetch`` returns the factors that
  source contributes for a symbol; raising is allowed and simply drops the
  source for that cycle.
* ``PriceProvider`` – latest traded price, used for entries and outcome polling.
* ``MarketContextProvider`` – the market snapshot (support, resistance,
  volatility, trend) for a symbol at a given price.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Protocol

from tradebrain.models.evidence import EvidenceFactor, MarketSnapshot


class BaseEvidenceProvider(ABC):
    """Abstract evidence source with a single entry point."""

    name: str = "evidence"

    @abstractmethod
    async def fetch(self, symbol: str) -> List[EvidenceFactor]:
        """Return this source's evidence for ``symbol`` (possibly empty)."""
        raise NotImplementedError


class PriceProvider(Protocol):
    async def current_price(self, symbol: str) -> float:
        ...


class MarketContextProvider(Protocol):
    async def snapshot(self, symbol: str, price: float) -> MarketSnapshot:
        ...
