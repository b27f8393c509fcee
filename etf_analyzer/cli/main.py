"""
Top-level CLI dispatcher: etf-analyzer <command> [args...].

  quote SYMBOL [SYMBOL ...]   cross-validated realtime prices
  kline SYMBOL [--days N]     daily candles from the first healthy provider
  status [SYMBOL ...]         poll once, then print provider health as JSON
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .. import __version__
from .. import config as cfg_module
from ..providers.chain import AcquisitionEngine, candles_to_frame
from ..providers.defaults import create_engine
from ..providers.errors import AllSourcesUnavailable, ConfigurationError

logger = logging.getLogger(__name__)


def _cmd_quote(engine: AcquisitionEngine, args: argparse.Namespace) -> int:
    prices = asyncio.run(engine.fetch_many(args.symbols, concurrency=args.concurrency))
    for symbol in args.symbols:
        if symbol in prices:
            print(f"{symbol}\t{prices[symbol]}")
        else:
            print(f"{symbol}\tunavailable")
    return 0 if prices else 1


def _cmd_kline(engine: AcquisitionEngine, args: argparse.Namespace) -> int:
    try:
        candles = asyncio.run(engine.fetch_kline_data(args.symbol, args.days))
    except AllSourcesUnavailable as exc:
        print(str(exc), file=sys.stderr)
        return 1
    print(candles_to_frame(candles).to_string())
    return 0


def _cmd_status(engine: AcquisitionEngine, args: argparse.Namespace) -> int:
    symbols = args.symbols or cfg_module.symbols()
    if symbols:
        asyncio.run(engine.fetch_many(symbols))
    print(json.dumps(engine.get_status(), indent=2, ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="etf-analyzer",
        description=f"ETF price acquisition CLI ({__version__})",
    )
    parser.add_argument("--log-level", default="WARNING", help="logging level (default: WARNING)")
    parser.add_argument("--error-log", default=None, help="JSON-lines event log path (default: from config)")
    subparsers = parser.add_subparsers(dest="command", help="command")

    p_quote = subparsers.add_parser("quote", help="realtime prices")
    p_quote.add_argument("symbols", nargs="+", help="instrument codes, e.g. sh510300")
    p_quote.add_argument("--concurrency", type=int, default=3)

    p_kline = subparsers.add_parser("kline", help="daily candles")
    p_kline.add_argument("symbol")
    p_kline.add_argument("--days", type=int, default=20)

    p_status = subparsers.add_parser("status", help="provider health snapshot")
    p_status.add_argument("symbols", nargs="*", help="instruments to poll first (default: config symbols)")
    return parser


def main(argv: Optional[List[str]] = None, engine: Optional[AcquisitionEngine] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if engine is None:
        try:
            engine = create_engine(error_log=args.error_log)
        except ConfigurationError as exc:
            print(f"Configuration error: {exc}", file=sys.stderr)
            return 2

    if args.command == "quote":
        return _cmd_quote(engine, args)
    if args.command == "kline":
        return _cmd_kline(engine, args)
    if args.command == "status":
        return _cmd_status(engine, args)
    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
