#!/usr/bin/env python3
"""AVS Price Oracle.

Runs the oracle node in one of two modes:

- tasks:  feed a JSON-lines task file through the oracle performer
          (price attestations, consensus validation, manipulation challenges,
          operator slashing evidence) and print one JSON result per task
- attest: fetch a pair from several exchanges, combine the prices and print
          the price_attestation task an operator would submit

Configure via CLI flags or environment variables (flags take precedence).
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import TextIO

from .src.errors import OracleError
from .src.fetchers import BaseFetcher, get_available_fetchers, get_fetcher
from .src.OracleEvents import event_to_dict
from .src.OracleService import OracleService
from .src.PoolKey import PoolKey
from .src.PriceAttestor import PriceAttestor
from .src.PriceValidator import OracleConfig
from .src.TaskPerformer import TaskPerformer, TaskRequest

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


def parse_source_weights(weights_str: str | None) -> dict[str, int]:
    """Parse comma-separated source weights into a dictionary.

    Format: source1=weight1,source2=weight2
    Example: coinbase=3,kraken=2

    :param weights_str: Comma-separated weight string.
    :returns: Dict mapping source names to integer weights.
    :raises ValueError: If a weight is not an integer.
    """
    if not weights_str:
        return {}

    weights = {}
    for item in weights_str.split(","):
        item = item.strip()
        if "=" in item:
            source, weight = item.split("=", 1)
            weights[source.strip().lower()] = int(weight.strip())
    return weights


def resolve_pool_id(pool: str) -> str:
    """Accept either a raw 0x pool id or a slash-separated pool key."""
    if "/" in pool:
        return PoolKey.from_string(pool).pool_id
    return pool.lower()


def build_service(args: argparse.Namespace, pool_ids: list[str]) -> OracleService:
    """Create an OracleService with every pool configured from the CLI.

    :raises OracleError: If the pool configuration is invalid.
    """
    service = OracleService(history_size=args.history_size)
    config = OracleConfig(
        enabled=True,
        max_price_deviation_bps=args.max_deviation_bps,
        min_stake_required=args.min_stake,
        consensus_threshold_bps=args.threshold_bps,
        max_staleness_seconds=args.max_staleness,
    )
    for pool_id in pool_ids:
        service.configure_pool(pool_id, config)
    return service


async def run_tasks(
    performer: TaskPerformer, stream: TextIO, out: TextIO
) -> int:
    """Process a JSON-lines task stream.

    Each line is ``{"task_id": ..., "type": ..., "parameters": {...}}``.

    :returns: Number of tasks that failed.
    """
    failures = 0
    for line_no, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
            task_id = str(entry.pop("task_id", line_no))
        except (json.JSONDecodeError, AttributeError, TypeError) as e:
            logger.error(f"Line {line_no}: invalid task entry: {e}")
            failures += 1
            continue

        task = TaskRequest(task_id=task_id.encode(), payload=json.dumps(entry).encode())
        try:
            response = await performer.handle_task(task)
        except OracleError as e:
            out.write(json.dumps({"task_id": task_id, "error": str(e)}) + "\n")
            failures += 1
            continue

        out.write(
            json.dumps({"task_id": task_id, "result": json.loads(response.result)})
            + "\n"
        )
    return failures


async def run_attest(args: argparse.Namespace, pool_ids: list[str]) -> int:
    """Fetch, combine and print a price_attestation task per pool.

    :returns: Process exit code.
    """
    sources = [s.strip().lower() for s in args.sources.split(",") if s.strip()]
    fetchers = {s: get_fetcher(s, timeout=args.fetch_timeout) for s in sources}
    attestor = PriceAttestor(
        fetchers=fetchers,
        weights=parse_source_weights(args.source_weights),
        fetch_timeout=args.fetch_timeout,
        min_sources=args.min_sources,
        min_consistency_bps=args.min_consistency_bps,
    )

    base, quote = args.pair.lower().split("/", 1)
    try:
        observation = await attestor.observe(base, quote)
    finally:
        await BaseFetcher.close_shared_client()

    if observation is None:
        logger.error(f"No attestable price for {args.pair}")
        return 1

    stake = int(args.stake) if args.stake else None
    for pool_id in pool_ids:
        payload = PriceAttestor.build_task_payload(
            observation, pool_id=pool_id, operator=args.operator, stake=stake
        )
        print(json.dumps(payload))
    return 0


def main() -> None:
    """Main entry point for the AVS Price Oracle CLI."""
    available_sources = get_available_fetchers()

    parser = argparse.ArgumentParser(
        description="AVS Price Oracle: stake-weighted price consensus for pools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available price sources:
  {', '.join(available_sources)}

Examples:
  # Process a task file against one pool
  python -m avs_oracle.main tasks --pools 0xabc... --tasks tasks.jsonl

  # Pools can also be given as currency0/currency1/fee/tickSpacing[/hooks]
  python -m avs_oracle.main tasks \\
      --pools 0xC02a...Cc2/0xA0b8...eB48/3000/60 --tasks -

  # Fetch ETH/USD and print an attestation task
  python -m avs_oracle.main attest --pools 0xabc... --pair eth/usd \\
      --sources coinbase,kraken,bitstamp --operator 0xop...

Environment variables (CLI args take precedence):
  POOLS, MAX_DEVIATION_BPS, MIN_STAKE, CONSENSUS_THRESHOLD_BPS, MAX_STALENESS,
  HISTORY_SIZE, DEFAULT_STAKE, PAIR, SOURCES, SOURCE_WEIGHTS, MIN_SOURCES,
  MIN_CONSISTENCY_BPS, FETCH_TIMEOUT, OPERATOR, STAKE
""",
    )

    parser.add_argument(
        "mode",
        choices=["tasks", "attest"],
        help="tasks: process a task file; attest: fetch and print an attestation",
    )

    parser.add_argument(
        "--pools",
        type=str,
        help="Comma-separated pool ids or pool keys",
        default=os.environ.get("POOLS") or "",
    )

    parser.add_argument(
        "--max-deviation-bps",
        dest="max_deviation_bps",
        type=int,
        help="Max deviation from consensus in bps (default: 500)",
        default=int(os.environ.get("MAX_DEVIATION_BPS") or "500"),
    )

    parser.add_argument(
        "--min-stake",
        dest="min_stake",
        type=int,
        help="Stake a consensus must carry to gate swaps (default: 0)",
        default=int(os.environ.get("MIN_STAKE") or "0"),
    )

    parser.add_argument(
        "--threshold-bps",
        dest="threshold_bps",
        type=int,
        help="Confidence required for consensus, at least 5100 (default: 6600)",
        default=int(os.environ.get("CONSENSUS_THRESHOLD_BPS") or "6600"),
    )

    parser.add_argument(
        "--max-staleness",
        dest="max_staleness",
        type=int,
        help="Oldest accepted consensus/attestation in seconds (default: 300)",
        default=int(os.environ.get("MAX_STALENESS") or "300"),
    )

    parser.add_argument(
        "--history-size",
        dest="history_size",
        type=int,
        help="Consensus prices kept per pool for manipulation checks (default: 64)",
        default=int(os.environ.get("HISTORY_SIZE") or "64"),
    )

    parser.add_argument(
        "--default-stake",
        dest="default_stake",
        type=int,
        help="Stake assumed for attestation tasks without one (default: 0)",
        default=int(os.environ.get("DEFAULT_STAKE") or "0"),
    )

    parser.add_argument(
        "--tasks",
        type=str,
        help="JSON-lines task file, '-' for stdin (tasks mode)",
        default="-",
    )

    parser.add_argument(
        "--pair",
        type=str,
        help="Pair to attest, e.g. eth/usd (attest mode)",
        default=os.environ.get("PAIR") or "eth/usd",
    )

    parser.add_argument(
        "--sources",
        type=str,
        help=f"Comma-separated price sources ({', '.join(available_sources)})",
        default=os.environ.get("SOURCES") or "coinbase,kraken,bitstamp",
    )

    parser.add_argument(
        "--source-weights",
        dest="source_weights",
        type=str,
        help="Comma-separated source weights (e.g., coinbase=2,kraken=1)",
        default=os.environ.get("SOURCE_WEIGHTS"),
    )

    parser.add_argument(
        "--min-sources",
        dest="min_sources",
        type=int,
        help="Minimum answering sources required to attest (default: 2)",
        default=int(os.environ.get("MIN_SOURCES") or "2"),
    )

    parser.add_argument(
        "--min-consistency-bps",
        dest="min_consistency_bps",
        type=int,
        help="Minimum source agreement in bps to attest (default: 9500)",
        default=int(os.environ.get("MIN_CONSISTENCY_BPS") or "9500"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for individual fetch requests in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--operator",
        type=str,
        help="Operator identifier to attest as (attest mode)",
        default=os.environ.get("OPERATOR"),
    )

    parser.add_argument(
        "--stake",
        type=str,
        help="Stake to report with the attestation (attest mode)",
        default=os.environ.get("STAKE"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    pools = [p.strip() for p in args.pools.split(",") if p.strip()]
    if not pools:
        parser.error("At least one pool must be specified")

    if args.mode == "attest":
        if not args.operator:
            parser.error("--operator is required in attest mode")
        if "/" not in args.pair:
            parser.error(f"Invalid pair '{args.pair}'. Expected 'base/quote'")
        sources = [s.strip().lower() for s in args.sources.split(",") if s.strip()]
        invalid_sources = [s for s in sources if s not in available_sources]
        if invalid_sources:
            parser.error(
                f"Unknown sources: {invalid_sources}. "
                f"Available: {', '.join(available_sources)}"
            )

    try:
        pool_ids = [resolve_pool_id(p) for p in pools]
    except ValueError as e:
        parser.error(str(e))

    logger.info("=" * 60)
    logger.info("AVS Price Oracle")
    logger.info("=" * 60)
    logger.info(f"Mode:              {args.mode}")
    logger.info(f"Pools:             {', '.join(pool_ids)}")
    logger.info(f"Max Deviation:     {args.max_deviation_bps} bps")
    logger.info(f"Min Stake:         {args.min_stake}")
    logger.info(f"Threshold:         {args.threshold_bps} bps")
    logger.info(f"Max Staleness:     {args.max_staleness}s")
    if args.mode == "attest":
        logger.info(f"Pair:              {args.pair}")
        logger.info(f"Sources:           {args.sources}")
        logger.info(f"Operator:          {args.operator}")
    logger.info("=" * 60)

    try:
        if args.mode == "attest":
            sys.exit(asyncio.run(run_attest(args, pool_ids)))

        service = build_service(args, pool_ids)
        service.add_listener(lambda event: print(json.dumps(event_to_dict(event))))
        performer = TaskPerformer(service, default_stake=args.default_stake)

        if args.tasks == "-":
            failures = asyncio.run(run_tasks(performer, sys.stdin, sys.stdout))
        else:
            with open(args.tasks, "r") as stream:
                failures = asyncio.run(run_tasks(performer, stream, sys.stdout))

        if failures:
            logger.warning(f"{failures} task(s) failed")
            sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except (OracleError, ValueError, OSError) as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
