from __future__ import annotations

import json
import sqlite3
import time
from dataclasses import asdict
from datetime import datetime
from typing import Any, Iterable

from signal_engine.config import EngineConfig
from signal_engine.performance import StrategyPerformance
from signal_engine.types import Decision


class SqliteStore:
    """Snapshot store for strategy performance and the decision log."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn = sqlite3.connect(db_path)
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SqliteStore":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def start_run(self, cfg: EngineConfig, *, label: str | None = None) -> int:
        cur = self._conn.cursor()
        cur.execute(
            "INSERT INTO runs(started_epoch_s, label, config_json) VALUES(?, ?, ?)",
            (time.time(), label, json.dumps(_to_jsonable(asdict(cfg)), sort_keys=True)),
        )
        self._conn.commit()
        return int(cur.lastrowid)

    def end_run(self, run_id: int) -> None:
        self._conn.execute("UPDATE runs SET ended_epoch_s=? WHERE id=?", (time.time(), int(run_id)))
        self._conn.commit()

    def save_performances(self, records: Iterable[StrategyPerformance]) -> int:
        """Upsert one row per strategy; returns the number written."""
        rows = [
            (
                str(p.strategy_id),
                time.time(),
                int(p.total_trades),
                float(p.total_pnl),
                json.dumps(p.to_dict(), sort_keys=True),
            )
            for p in records
        ]
        self._conn.executemany(
            "INSERT INTO performances(strategy_id, updated_epoch_s, total_trades, total_pnl, record_json) "
            "VALUES(?, ?, ?, ?, ?) "
            "ON CONFLICT(strategy_id) DO UPDATE SET "
            "updated_epoch_s=excluded.updated_epoch_s, total_trades=excluded.total_trades, "
            "total_pnl=excluded.total_pnl, record_json=excluded.record_json",
            rows,
        )
        self._conn.commit()
        return len(rows)

    def load_performances(self, *, window: int = 100) -> list[StrategyPerformance]:
        cur = self._conn.execute("SELECT record_json FROM performances ORDER BY id")
        return [StrategyPerformance.from_dict(json.loads(row[0]), window=window) for row in cur.fetchall()]

    def log_decision(self, decision: Decision, *, run_id: int | None = None, ts: datetime | None = None) -> None:
        ts_epoch = ts.timestamp() if ts is not None else time.time()
        self._conn.execute(
            "INSERT INTO decisions(run_id, ts_epoch_s, symbol, strategy_id, action, confidence, size, reason, decision_json) "
            "VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                int(run_id) if run_id is not None else None,
                ts_epoch,
                str(decision.symbol),
                decision.strategy_id,
                decision.action.value,
                float(decision.confidence),
                float(decision.size),
                decision.reason,
                json.dumps(_to_jsonable(decision.to_dict()), sort_keys=True),
            ),
        )
        self._conn.commit()

    def list_decisions(self, *, symbol: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        sql = "SELECT decision_json, ts_epoch_s FROM decisions"
        params: list[Any] = []
        if symbol is not None:
            sql += " WHERE symbol=?"
            params.append(str(symbol))
        sql += " ORDER BY ts_epoch_s, id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        out: list[dict[str, Any]] = []
        for raw, ts_epoch in self._conn.execute(sql, params).fetchall():
            row = json.loads(raw)
            row["ts_epoch_s"] = float(ts_epoch)
            out.append(row)
        return out

    def _ensure_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS schema_version(
                version INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS runs(
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                started_epoch_s REAL NOT NULL,
                ended_epoch_s REAL,
                label TEXT,
                config_json TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS performances(
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                strategy_id TEXT NOT NULL UNIQUE,
                updated_epoch_s REAL NOT NULL,
                total_trades INTEGER NOT NULL,
                total_pnl REAL NOT NULL,
                record_json TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS decisions(
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id INTEGER,
                ts_epoch_s REAL NOT NULL,
                symbol TEXT NOT NULL,
                strategy_id TEXT,
                action TEXT NOT NULL,
                confidence REAL NOT NULL,
                size REAL NOT NULL,
                reason TEXT,
                decision_json TEXT NOT NULL,
                FOREIGN KEY(run_id) REFERENCES runs(id)
            );

            CREATE INDEX IF NOT EXISTS idx_decisions_symbol ON decisions(symbol);
            """
        )
        cur = self._conn.execute("SELECT COUNT(*) FROM schema_version")
        if int(cur.fetchone()[0]) == 0:
            self._conn.execute("INSERT INTO schema_version(version) VALUES(1)")
        self._conn.commit()


def _to_jsonable(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(v) for v in obj]
    if isinstance(obj, (str, int, float, bool)) or obj is None:
        return obj
    return str(obj)
