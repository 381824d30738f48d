#!/usr/bin/env python3
"""x1explorer command-line entry point

Prints explorer data as JSON:
- snapshot: dashboard snapshot
- blocks: recent classified blocks
- windows: throughput windows split by transaction category
- validators: enriched validator directory
- epoch: epoch progress and skip statistics
- probe: per-endpoint status
"""

import argparse
import asyncio
import sys

import orjson
import structlog

from x1explorer.agents.explorer_service import ExplorerService
from x1explorer.config import configure_logging, get_settings
from x1explorer.utils.errors import X1ExplorerError

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Query the X1 network through the explorer data layer")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("snapshot", help="Dashboard snapshot")

    blocks = sub.add_parser("blocks", help="Recent classified blocks")
    blocks.add_argument("--count", type=int, default=10)

    windows = sub.add_parser("windows", help="Throughput windows")
    windows.add_argument("--size", type=int, default=10, help="Samples per window")
    windows.add_argument("--max", type=int, default=6, help="Maximum number of windows")

    sub.add_parser("validators", help="Enriched validator directory")
    sub.add_parser("epoch", help="Epoch progress and skip statistics")
    sub.add_parser("probe", help="Query every endpoint individually")
    return parser


async def run(args: argparse.Namespace) -> object:
    settings = get_settings()
    async with ExplorerService.from_settings(settings) as explorer:
        if args.command == "snapshot":
            return await explorer.get_snapshot()
        if args.command == "blocks":
            return await explorer.get_recent_blocks(args.count)
        if args.command == "windows":
            # Window splits use the category mix of the latest blocks
            await explorer.get_recent_blocks(10)
            return await explorer.get_throughput_windows(args.size, args.max)
        if args.command == "validators":
            await explorer.identities.initialize()
            return await explorer.get_validator_directory()
        if args.command == "epoch":
            return await explorer.get_epoch_history()
        if args.command == "probe":
            return await explorer.probe_endpoints()
    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    try:
        result = asyncio.run(run(args))
    except X1ExplorerError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        return 1
    except KeyboardInterrupt:
        return 130

    sys.stdout.buffer.write(orjson.dumps(result, option=orjson.OPT_INDENT_2))
    sys.stdout.buffer.write(b"\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
