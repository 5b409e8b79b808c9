"""
data_provider.py
-----------------

Normalises raw market-data responses from the REST API into clean
Pandas objects.  Kline endpoints return a JSON payload with a ``data``
field holding either a list of lists (``[timestamp, open, high, low,
close, volume]``) or a list of dictionaries; ticker endpoints return a
list with one ``ticker`` object per symbol.

Malformed payloads produce an empty DataFrame (or ``None`` for a
price) instead of raising, so the caller decides what a missing series
means for the current cycle.

Example usage::

    provider = DataProvider()
    df = provider.create_dataframe_from_kline(raw)
    if not df.empty:
        provider.put("XAUUSD", "1h", df)

"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)


class DataProvider:
    """Convert raw kline / ticker JSON into Pandas structures.

    Kline DataFrames carry the columns ``timestamp`` (UNIX seconds),
    ``open``, ``high``, ``low``, ``close`` and ``volume``, sorted by
    timestamp with duplicate bars dropped.
    """

    columns: List[str] = ["timestamp", "open", "high", "low", "close", "volume"]

    def __init__(self) -> None:
        self._cache: dict[tuple[str, str], pd.DataFrame] = {}

    def _empty(self) -> pd.DataFrame:
        return pd.DataFrame(columns=self.columns)

    def create_dataframe_from_kline(self, data: Dict[str, Any]) -> pd.DataFrame:
        """Return a DataFrame from a raw kline response.

        Parameters
        ----------
        data: Dict[str, Any]
            Decoded JSON, either ``{"data": [[ts, o, h, l, c, v], ...]}``
            or ``{"data": [{"timestamp": ..., "open": ...}, ...]}``.

        Returns
        -------
        pd.DataFrame
            Standard columns, or an empty frame if the input does not match.
        """
        if not isinstance(data, dict):
            return self._empty()

        raw = data.get("data")
        if not isinstance(raw, list) or not raw:
            return self._empty()

        if isinstance(raw[0], list):
            try:
                df = pd.DataFrame([row[:6] for row in raw], columns=self.columns)
                df = df.astype({"timestamp": "int64", "open": "float64", "high": "float64",
                                "low": "float64", "close": "float64", "volume": "float64"})
            except (ValueError, TypeError) as exc:
                logger.warning("Malformed kline payload: %s", exc)
                return self._empty()
        elif isinstance(raw[0], dict):
            rows: List[Dict[str, Any]] = []
            for row in raw:
                try:
                    rows.append({
                        "timestamp": int(row.get("timestamp") or row.get("date")),
                        "open": float(row["open"]),
                        "high": float(row["high"]),
                        "low": float(row["low"]),
                        "close": float(row["close"]),
                        "volume": float(row.get("volume") or 0.0),
                    })
                except (KeyError, ValueError, TypeError):
                    # skip malformed rows
                    continue
            df = pd.DataFrame(rows, columns=self.columns)
        else:
            return self._empty()

        return (
            df.drop_duplicates(subset="timestamp", keep="last")
              .sort_values("timestamp")
              .reset_index(drop=True)
        )

    def latest_price_from_ticker(self, data: Dict[str, Any]) -> Optional[float]:
        """Extract the last traded price from a ticker response.

        Accepts ``{"data": [{"ticker": {"latest": ...}}]}`` as well as a
        flat ``{"data": {"latest": ...}}`` / ``{"price": ...}`` shape.
        """
        if not isinstance(data, dict):
            return None
        raw = data.get("data", data)
        if isinstance(raw, list):
            raw = raw[0] if raw else {}
        if isinstance(raw, dict) and isinstance(raw.get("ticker"), dict):
            raw = raw["ticker"]
        if not isinstance(raw, dict):
            return None
        for key in ("latest", "price", "close", "last"):
            if raw.get(key) is not None:
                try:
                    price = float(raw[key])
                except (TypeError, ValueError):
                    return None
                return price if price > 0 else None
        return None

    def put(self, symbol: str, tf: str, df: pd.DataFrame) -> None:
        """Store the most-recent DataFrame so other components can query it."""
        self._cache[(symbol, tf)] = df

    def get_ohlcv(self, symbol: str, tf: str) -> Optional[pd.DataFrame]:
        """Return cached DF or None if that series has not been fetched yet."""
        return self._cache.get((symbol, tf))
