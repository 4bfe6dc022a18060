"""
Runnable script for the chain-mirror ingestor.
"""

import argparse
import sys

from ingestor.main import main as run_ingestor


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chain-mirror block ingestor")
    parser.add_argument(
        "--backfill-range",
        nargs=2,
        type=int,
        metavar=("START", "END"),
        help="Enqueue an explicit inclusive block range instead of catching up from the checkpoint",
    )
    parser.add_argument(
        "--no-backfill",
        action="store_true",
        help="Skip the startup catch-up from the checkpoint to the chain head",
    )
    parser.add_argument(
        "--no-live-tail",
        action="store_true",
        help="Exit once queued jobs are drained instead of following the chain head",
    )
    parser.add_argument("--concurrency", type=int, help="Number of worker threads")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.backfill_range and args.backfill_range[0] > args.backfill_range[1]:
        parser.error("--backfill-range START must not be greater than END")

    sys.exit(
        run_ingestor(
            debug=args.debug,
            concurrency=args.concurrency,
            backfill=not args.no_backfill,
            live_tail=not args.no_live_tail,
            backfill_range=tuple(args.backfill_range) if args.backfill_range else None,
        )
    )
