"""
aggregator.py
-------------
Folds heterogeneous evidence factors into one weighted bullish/bearish
score.  Pure function, no I/O: a provider that failed upstream simply does
not appear in ``factors`` and is listed in ``missing_sources`` instead.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from tradebrain.models.evidence import AggregateScore, EvidenceFactor

logger = logging.getLogger(__name__)

MAX_QUALITY = 1.0


def aggregate(
    symbol: str,
    factors: Iterable[EvidenceFactor],
    missing_sources: Sequence[str] = (),
) -> AggregateScore:
    """Combine ``factors`` into an :class:`AggregateScore`.

    ``bullish += bullish_score * weight`` (symmetric for bearish).  Quality
    contributions accumulate up to 1.0.  Factors with a zero weight are
    dropped with a warning.  No usable factor gives a neutral score, which
    the decision engine turns into HOLD.
    """
    bullish = 0.0
    bearish = 0.0
    quality = 0.0
    reasons: list[str] = []
    sources: list[str] = []

    for factor in factors:
        if factor.weight <= 0:
            logger.warning("⚠️ %s: dropping zero-weight factor from %s", symbol, factor.source_name)
            continue
        bullish += factor.bullish_score * factor.weight
        bearish += factor.bearish_score * factor.weight
        quality += factor.quality_contribution
        sources.append(factor.source_name)
        for tag in factor.tags or (factor.source_name,):
            if tag not in reasons:
                reasons.append(tag)

    if missing_sources:
        logger.info("%s: evidence missing from %s", symbol, ", ".join(missing_sources))

    score = AggregateScore(
        bullish=bullish,
        bearish=bearish,
        quality_sum=min(MAX_QUALITY, quality),
        factors=tuple(reasons),
        sources=tuple(sources),
        missing_sources=tuple(missing_sources),
    )
    logger.debug(
        "%s aggregate: bull=%.2f bear=%.2f quality=%.2f from %d factors",
        symbol, score.bullish, score.bearish, score.quality_sum, len(sources),
    )
    return score
