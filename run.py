#!/usr/bin/env python3
"""
Adaptive Signal Engine - Multi-Strategy Analysis and Replay

Entry point for running the engine over historical bars. It:
1. Loads OHLCV bars from a CSV file
2. Runs the five strategies (RSI, MACD, Bollinger, MA crossover, mean reversion)
3. Lets the adaptive selector pick the governing strategy
4. Sizes the position from that strategy's track record

Configuration comes from SIGNAL_ENGINE_* environment variables.

Usage:
    # One decision over the whole file
    python run.py analyze --csv data/AAPL.csv --symbol AAPL

    # Walk-forward replay, saving performance for later runs
    python run.py backtest --csv data/AAPL.csv --symbol AAPL --db perf.sqlite3

    # Continue from a saved snapshot with inverted signals
    python run.py --inverse backtest --csv data/MSFT.csv --symbol MSFT --db perf.sqlite3 --resume

    # Rank strategies from a snapshot
    python run.py compare --db perf.sqlite3
"""

import sys

from signal_engine.cli import main

if __name__ == "__main__":
    sys.exit(main())
