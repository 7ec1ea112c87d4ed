"""
Signal engine CLI.

Commands:
1. analyze - Run every strategy over a CSV of bars and print the decision
2. backtest - Replay a CSV through the adaptive engine
3. compare - Rank strategies from a saved performance snapshot

Usage:
    python -m signal_engine analyze --csv data/AAPL.csv --symbol AAPL
    python -m signal_engine backtest --csv data/AAPL.csv --symbol AAPL --db perf.sqlite3
    python -m signal_engine compare --db perf.sqlite3
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from signal_engine.backtest import ReplayBacktester
from signal_engine.config import EngineConfig
from signal_engine.engine import SignalEngine
from signal_engine.errors import ConfigurationInvalid
from signal_engine.logging_setup import configure_logging
from signal_engine.persistence import SqliteStore
from signal_engine.types import MarketBar

logger = logging.getLogger("signal_engine.cli")

_TIMESTAMP_FORMATS = ["%Y-%m-%d %H:%M:%S", "%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y %H:%M", "%m/%d/%Y"]


def parse_timestamp(value: str) -> datetime:
    value = value.strip()
    if "T" in value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise ValueError(f"Could not parse timestamp: {value}")


def load_bars_csv(path: str | Path) -> List[MarketBar]:
    """
    Load OHLCV bars from a CSV with a header row.

    Column names are case-insensitive; the time column may be called
    ``timestamp``, ``date`` or ``datetime``. Missing open/high/low fall
    back to close, missing volume to 0.
    """
    bars: List[MarketBar] = []
    with open(path, newline="") as f:
        reader = csv.DictReader(f)
        for line_no, raw in enumerate(reader, start=2):
            row = {str(k).strip().lower(): v for k, v in raw.items() if k is not None}
            ts_str = row.get("timestamp") or row.get("date") or row.get("datetime")
            close_str = row.get("close") or row.get("adj close")
            if not ts_str or not close_str:
                logger.debug("Skipping line %d of %s: missing timestamp or close", line_no, path)
                continue
            close = float(close_str)
            bars.append(MarketBar(
                timestamp=parse_timestamp(ts_str),
                open=float(row.get("open") or close),
                high=float(row.get("high") or close),
                low=float(row.get("low") or close),
                close=close,
                volume=float(row.get("volume") or 0.0),
            ))
    if not bars:
        raise ValueError(f"No bars found in {path}")
    bars.sort(key=lambda b: b.timestamp)
    return bars


def _build_engine(args: argparse.Namespace) -> SignalEngine:
    engine = SignalEngine(EngineConfig.from_env())
    if getattr(args, "inverse", False):
        engine.set_inverse_mode(True)
    return engine


def cmd_analyze(args: argparse.Namespace) -> int:
    """Run the ensemble once over the full CSV."""
    bars = load_bars_csv(args.csv)
    engine = _build_engine(args)
    if args.db:
        with SqliteStore(args.db) as store:
            engine.load_performances(store.load_performances(window=engine.config.performance_window))

    result = engine.analyze_all(bars)
    decision = engine.decide(args.symbol, bars, now=bars[-1].timestamp)

    if args.json:
        payload = {
            "symbol": args.symbol,
            "bars": len(bars),
            "signals": [
                {
                    "strategy_id": s.strategy_id,
                    "action": s.action.value,
                    "confidence": s.confidence,
                    "risk_score": s.signal.risk_score,
                    "reason": s.signal.reason,
                }
                for s in result.signals
            ],
            "weighted": {
                "action": result.weighted_signal.action.value,
                "confidence": result.weighted_signal.confidence,
                "reasoning": result.weighted_signal.reasoning,
            },
            "decision": decision.to_dict(),
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0

    print(f"\n{'=' * 72}")
    print(f"ANALYSIS: {args.symbol} ({len(bars)} bars)")
    print("=" * 72)
    for s in result.signals:
        print(f"  {s.strategy_name:<28} {s.action.value:<5} {s.confidence:>5.2f}  {s.signal.reason}")
    c = result.consensus
    print(f"\nConsensus: BUY {c.buy_votes} / SELL {c.sell_votes} / HOLD {c.hold_votes} "
          f"({c.agreement:.0%} agreement)")
    print(f"Weighted:  {result.weighted_signal.reasoning}")
    print(f"\nDecision:  {decision.action.value} size ${decision.size:.2f} "
          f"confidence {decision.confidence:.2f}")
    print(f"           {decision.reason}")
    return 0


def cmd_backtest(args: argparse.Namespace) -> int:
    """Replay a CSV through the adaptive engine."""
    bars = load_bars_csv(args.csv)
    engine = _build_engine(args)

    store: Optional[SqliteStore] = SqliteStore(args.db) if args.db else None
    try:
        run_id = None
        if store is not None:
            if args.resume:
                engine.load_performances(store.load_performances(window=engine.config.performance_window))
            run_id = store.start_run(engine.config, label=f"backtest {args.symbol}")

        result = ReplayBacktester(engine, store=store, run_id=run_id).run(args.symbol, bars, warmup=args.warmup)

        if store is not None:
            store.save_performances(engine.snapshot())
            store.end_run(run_id)
    finally:
        if store is not None:
            store.close()

    summary = result.to_dict()
    summary["status"] = engine.get_status()
    if args.output:
        Path(args.output).write_text(json.dumps(summary, indent=2, sort_keys=True, default=str))
        logger.info("Backtest report written to %s", args.output)

    print(f"\n{'=' * 60}")
    print(f"BACKTEST: {args.symbol}")
    print("=" * 60)
    print(f"  Bars:         {result.bars_processed}")
    print(f"  Trades:       {len(result.trades)}")
    print(f"  Total P&L:    ${result.total_pnl:.2f}")
    print(f"  Win rate:     {result.win_rate:.1%}")
    print(f"  Max drawdown: ${result.max_drawdown:.2f}")
    print(f"  Switches:     {len(result.switches)}")
    for s in result.switches:
        print(f"    {s.from_id or '-'} -> {s.to_id or '-'}: {s.reason}")
    print("=" * 60)
    return 0


def cmd_compare(args: argparse.Namespace) -> int:
    """Rank strategies from a saved snapshot."""
    engine = _build_engine(args)
    with SqliteStore(args.db) as store:
        loaded = engine.load_performances(store.load_performances(window=engine.config.performance_window))
    if loaded == 0:
        print(f"No saved performance in {args.db}")

    comparison = engine.get_strategy_comparison()
    print(f"\n{'=' * 72}")
    print("STRATEGY RANKING")
    print("=" * 72)
    for r in comparison.ranking:
        p = r.performance
        print(f"  {r.rank}. {p.strategy_name:<28} score {r.score:6.1f}  trades {p.total_trades:4d}  "
              f"win {p.win_rate:6.1%}  P&L ${p.total_pnl:9.2f}")
    print(f"\n{comparison.recommendation}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Adaptive multi-strategy trading signal engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--log-file", help="Also log to this file")
    parser.add_argument("--strategy-log-level", help="Separate level for per-strategy analysis logs")
    parser.add_argument("--inverse", action="store_true", help="Flip BUY/SELL on final decisions")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    analyze_parser = subparsers.add_parser("analyze", help="Analyze a CSV of bars")
    analyze_parser.add_argument("--csv", required=True, help="CSV file with OHLCV bars")
    analyze_parser.add_argument("--symbol", "-s", default="SYMBOL", help="Symbol label")
    analyze_parser.add_argument("--db", help="Load strategy performance from this sqlite file")
    analyze_parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    analyze_parser.set_defaults(func=cmd_analyze)

    bt_parser = subparsers.add_parser("backtest", help="Replay a CSV through the engine")
    bt_parser.add_argument("--csv", required=True, help="CSV file with OHLCV bars")
    bt_parser.add_argument("--symbol", "-s", default="SYMBOL", help="Symbol label")
    bt_parser.add_argument("--warmup", type=int, default=50, help="Bars before the first decision")
    bt_parser.add_argument("--db", help="Persist decisions and performance to this sqlite file")
    bt_parser.add_argument("--resume", action="store_true", help="Start from performance saved in --db")
    bt_parser.add_argument("--output", "-o", help="Write a JSON report here")
    bt_parser.set_defaults(func=cmd_backtest)

    compare_parser = subparsers.add_parser("compare", help="Rank strategies from a snapshot")
    compare_parser.add_argument("--db", required=True, help="sqlite file written by backtest")
    compare_parser.set_defaults(func=cmd_compare)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        configure_logging(
            level=args.log_level,
            log_file=args.log_file,
            console=True,
            strategy_level=args.strategy_log_level,
        )
        return args.func(args)
    except (OSError, ValueError, ConfigurationInvalid) as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
