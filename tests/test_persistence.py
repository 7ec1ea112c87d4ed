import logging
import os
import sqlite3
import tempfile
import unittest
from datetime import datetime

from signal_engine.config import EngineConfig
from signal_engine.performance import PerformanceTracker
from signal_engine.persistence import SqliteStore
from signal_engine.types import Action, Decision

logging.disable(logging.CRITICAL)


class TestPersistence(unittest.TestCase):
    def setUp(self) -> None:
        fd, self.path = tempfile.mkstemp(suffix=".sqlite3")
        os.close(fd)

    def tearDown(self) -> None:
        for suffix in ("", "-wal", "-shm"):
            try:
                os.remove(self.path + suffix)
            except OSError:
                pass

    def _tracker(self) -> PerformanceTracker:
        tracker = PerformanceTracker()
        tracker.register("trend", "MACD Trend")
        tracker.register("bands", "Bollinger Bands")
        for pnl in (3.0, -1.0, 2.0, 4.0, -2.0, 1.5):
            tracker.record_trade("trend", "AAPL", pnl, datetime(2024, 3, 1, 10, 0))
        return tracker

    def test_sqlite_store_writes_run_and_decision(self):
        store = SqliteStore(self.path)
        run_id = store.start_run(EngineConfig(), label="unit")
        self.assertIsInstance(run_id, int)
        decision = Decision(
            symbol="AAPL",
            action=Action.BUY,
            confidence=0.72,
            size=0.7228,
            reason="[MA Crossover] Golden Cross",
            strategy_id="crossover",
            stop_loss=97.0,
            take_profit=106.0,
            testing=True,
        )
        store.log_decision(decision, run_id=run_id, ts=datetime(2024, 3, 1, 10, 0))
        store.end_run(run_id)

        rows = store.list_decisions(symbol="AAPL")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["action"], "BUY")
        self.assertEqual(rows[0]["strategy_id"], "crossover")
        self.assertTrue(rows[0]["testing"])
        self.assertEqual(store.list_decisions(symbol="MSFT"), [])
        store.close()

        conn = sqlite3.connect(self.path)
        try:
            ended = conn.execute("SELECT ended_epoch_s, label FROM runs WHERE id=?", (run_id,)).fetchone()
        finally:
            conn.close()
        self.assertIsNotNone(ended[0])
        self.assertEqual(ended[1], "unit")

    def test_performance_snapshot_round_trip(self):
        tracker = self._tracker()
        with SqliteStore(self.path) as store:
            self.assertEqual(store.save_performances(tracker.all()), 2)

        with SqliteStore(self.path) as store:
            loaded = store.load_performances()
        self.assertEqual([p.strategy_id for p in loaded], ["trend", "bands"])
        self.assertEqual(loaded[0].to_dict(), tracker.get("trend").to_dict())

    def test_save_performances_upserts(self):
        tracker = self._tracker()
        with SqliteStore(self.path) as store:
            store.save_performances(tracker.all())
            tracker.record_trade("bands", "AAPL", 5.0, datetime(2024, 3, 2, 10, 0))
            store.save_performances(tracker.all())
            loaded = {p.strategy_id: p for p in store.load_performances()}
        self.assertEqual(len(loaded), 2)
        self.assertEqual(loaded["bands"].total_trades, 1)
        self.assertAlmostEqual(loaded["bands"].total_pnl, 5.0)

    def test_list_decisions_orders_and_limits(self):
        with SqliteStore(self.path) as store:
            for hour in (12, 10, 11):
                store.log_decision(
                    Decision(symbol="AAPL", action=Action.HOLD, confidence=0.0, size=0.0, reason=f"h{hour}"),
                    ts=datetime(2024, 3, 1, hour, 0),
                )
            rows = store.list_decisions(limit=2)
        self.assertEqual([r["reason"] for r in rows], ["h10", "h11"])


if __name__ == "__main__":
    unittest.main()
