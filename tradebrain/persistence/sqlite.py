"""
persistence/sqlite.py
---------------------
SQLite store for emitted signals, per-symbol brain data and trade records.

Rows keep a few indexed columns next to the full JSON payload, so the
schema does not have to follow every model field.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import List, Optional

from tradebrain.models.brain import SymbolModel
from tradebrain.models.errors import PersistenceError
from tradebrain.models.signal import Signal
from tradebrain.models.trade_record import TradeRecord

logger = logging.getLogger(__name__)

SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS signals (
    id         TEXT PRIMARY KEY,
    seq        INTEGER,
    created_at TEXT,
    symbol     TEXT,
    direction  TEXT,
    confidence REAL,
    payload    TEXT          -- raw JSON blob
);

CREATE TABLE IF NOT EXISTS brain_data (
    symbol     TEXT PRIMARY KEY,
    updated_at TEXT,
    payload    TEXT
);

CREATE TABLE IF NOT EXISTS trade_records (
    signal_id  TEXT PRIMARY KEY,
    created_at TEXT,
    symbol     TEXT,
    status     TEXT,
    payload    TEXT
);
"""


class SQLitePersistence:
    def __init__(self, db_path: str = "data/tradebrain.db", max_signals: int = 100):
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.max_signals = max_signals
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    # ---------------------------- signals -------------------------------- #
    def save_signal(self, signal: Signal) -> None:
        self.conn.execute(
            """
            INSERT INTO signals (id, seq, created_at, symbol, direction, confidence, payload)
            VALUES (:id, (SELECT COALESCE(MAX(seq), 0) + 1 FROM signals),
                    :created_at, :symbol, :direction, :confidence, :payload)
            ON CONFLICT(id) DO UPDATE SET payload = excluded.payload
            """,
            {
                "id": signal.id,
                "created_at": signal.created_at.isoformat(),
                "symbol": signal.symbol,
                "direction": signal.direction,
                "confidence": signal.confidence,
                "payload": signal.model_dump_json(),
            },
        )
        # retention: keep only the newest max_signals rows
        self.conn.execute(
            """
            DELETE FROM signals WHERE seq NOT IN (
                SELECT seq FROM signals ORDER BY seq DESC LIMIT :keep
            )
            """,
            {"keep": self.max_signals},
        )
        self.conn.commit()

    def recent_signals(self, limit: int = 20) -> List[Signal]:
        """Newest first."""
        rows = self.conn.execute(
            "SELECT payload FROM signals ORDER BY seq DESC LIMIT ?", (limit,)
        ).fetchall()
        return [Signal.model_validate_json(row["payload"]) for row in rows]

    # ---------------------------- brain data ----------------------------- #
    def save_brain_data(self, model: SymbolModel) -> None:
        self.conn.execute(
            """
            INSERT INTO brain_data (symbol, updated_at, payload)
            VALUES (:symbol, :updated_at, :payload)
            ON CONFLICT(symbol) DO UPDATE SET
              updated_at = excluded.updated_at,
              payload = excluded.payload
            """,
            {
                "symbol": model.symbol,
                "updated_at": model.updated_at.isoformat(),
                "payload": json.dumps(model.to_dict()),
            },
        )
        self.conn.commit()

    def get_brain_data(self, symbol: str) -> Optional[SymbolModel]:
        row = self.conn.execute(
            "SELECT payload FROM brain_data WHERE symbol = ?", (symbol,)
        ).fetchone()
        return SymbolModel.from_dict(json.loads(row["payload"])) if row else None

    # ---------------------------- trade records -------------------------- #
    def save_trade_record(self, record: TradeRecord) -> None:
        self.conn.execute(
            """
            INSERT INTO trade_records (signal_id, created_at, symbol, status, payload)
            VALUES (:signal_id, :created_at, :symbol, :status, :payload)
            ON CONFLICT(signal_id) DO UPDATE SET
              status = excluded.status,
              payload = excluded.payload
            """,
            {
                "signal_id": record.signal_id,
                "created_at": record.created_at.isoformat(),
                "symbol": record.symbol,
                "status": record.status,
                "payload": json.dumps(record.to_dict()),
            },
        )
        self.conn.commit()

    def load_trade_records(self, limit: int = 1000) -> List[TradeRecord]:
        """Newest ``limit`` records, oldest first."""
        rows = self.conn.execute(
            "SELECT payload FROM trade_records ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [TradeRecord.from_dict(json.loads(row["payload"])) for row in reversed(rows)]


class ResilientStore:
    """Wraps a store so a failing save or load never reaches the caller.

    Each call is attempted once; errors are logged and counted.  Loads fall
    back to an empty result.
    """

    def __init__(self, store) -> None:
        self.store = store
        self.failures = 0

    def _call(self, op: str, default, *args):
        try:
            return getattr(self.store, op)(*args)
        except Exception as exc:
            self.failures += 1
            err = PersistenceError(f"{op} failed: {exc}")
            logger.warning("💾 Persistence error (%d so far): %s", self.failures, err)
            return default

    def save_signal(self, signal: Signal) -> None:
        self._call("save_signal", None, signal)

    def recent_signals(self, limit: int = 20) -> List[Signal]:
        return self._call("recent_signals", [], limit)

    def save_brain_data(self, model: SymbolModel) -> None:
        self._call("save_brain_data", None, model)

    def get_brain_data(self, symbol: str) -> Optional[SymbolModel]:
        return self._call("get_brain_data", None, symbol)

    def save_trade_record(self, record: TradeRecord) -> None:
        self._call("save_trade_record", None, record)

    def load_trade_records(self, limit: int = 1000) -> List[TradeRecord]:
        return self._call("load_trade_records", [], limit)
