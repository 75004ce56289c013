"""
Standalone entrypoint for running the job processor independently.

This allows the processor to run as a separate process from the API server.
Only one processor should poll a given database at a time; a second one is
harmless (jobs are claimed atomically) but gains nothing.

Usage:
    python -m perfly_processor [OPTIONS]
    perfly-processor [OPTIONS]  (after pip install)

Environment Variables:
    PERFLY_DB_PATH: Database path (default: perfly.db)
    PERFLY_POLL_INTERVAL: Seconds between poll passes (default: 10.0)
    PERFLY_BATCH_SIZE: Jobs picked up per pass (default: 5)
    PERFLY_STRATEGY: PageSpeed strategy, mobile or desktop (default: mobile)
    PAGESPEED_API_KEY: Google PageSpeed Insights API key
"""

import argparse
import asyncio
import logging
import signal
import sys

from perfly_common.config import (
    get_batch_size,
    get_database_path,
    get_poll_interval,
    get_strategy,
)
from perfly_persistence.sqlite_repository import SQLiteJobRepository
from perfly_processor.processor import JobProcessor

logger = logging.getLogger(__name__)


def install_signal_handlers(
    loop: asyncio.AbstractEventLoop, shutdown_event: asyncio.Event
) -> None:
    """
    Set shutdown_event on SIGINT or SIGTERM.

    The handlers run inside the event loop, so a task waiting on the event
    wakes up right away.
    """

    def handle(sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating graceful shutdown...")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle, sig)


def parse_args() -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Perfly job processor - runs pending performance tests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  PERFLY_DB_PATH          Database path (default: perfly.db)
  PERFLY_POLL_INTERVAL    Seconds between poll passes (default: 10.0)
  PERFLY_BATCH_SIZE       Jobs picked up per pass (default: 5)
  PERFLY_STRATEGY         mobile or desktop (default: mobile)
  PAGESPEED_API_KEY       Google PageSpeed Insights API key

Note: Command-line arguments override environment variables.

Examples:
  # Run with default settings
  perfly-processor

  # Use custom database and poll interval
  perfly-processor --db-path /tmp/perfly.db --interval 5.0

  # Enable debug logging
  perfly-processor --log-level DEBUG
        """,
    )

    parser.add_argument(
        "--db-path",
        type=str,
        default=None,
        help="Path to SQLite database file (default: PERFLY_DB_PATH env or perfly.db)",
    )

    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between poll passes (default: PERFLY_POLL_INTERVAL env or 10.0)",
    )

    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Jobs picked up per pass (default: PERFLY_BATCH_SIZE env or 5)",
    )

    parser.add_argument(
        "--strategy",
        type=str,
        default=None,
        choices=["mobile", "desktop"],
        help="PageSpeed strategy (default: PERFLY_STRATEGY env or mobile)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    return parser.parse_args()


async def run_processor(args: argparse.Namespace) -> None:
    """
    Initialize and run the job processor.

    Args:
        args: Parsed command-line arguments

    Runs until interrupted by SIGINT or SIGTERM, then waits for in-flight
    jobs before closing the database.
    """
    db_path = get_database_path(args.db_path)
    poll_interval = get_poll_interval(args.interval)
    batch_size = get_batch_size(args.batch_size)
    strategy = get_strategy(args.strategy)

    logger.info("Starting Perfly processor")
    logger.info(f"  Database: {db_path}")
    logger.info(f"  Poll interval: {poll_interval}s")
    logger.info(f"  Batch size: {batch_size}")
    logger.info(f"  Strategy: {strategy}")

    repository = SQLiteJobRepository(db_path)
    await repository.initialize()
    logger.info("Database initialized")

    processor = JobProcessor(
        repository=repository,
        poll_interval=poll_interval,
        batch_size=batch_size,
        strategy=strategy,
    )

    # Set up signal handlers for graceful shutdown
    shutdown_event = asyncio.Event()
    install_signal_handlers(asyncio.get_running_loop(), shutdown_event)

    try:
        await processor.start()
        logger.info("Processor started successfully")

        await shutdown_event.wait()

    except Exception as e:
        logger.error(f"Processor error: {e}", exc_info=True)
        raise
    finally:
        logger.info("Stopping processor...")
        await processor.stop()
        logger.info("Waiting for in-flight jobs...")
        await processor.drain()
        logger.info("Closing database connections...")
        await repository.close()
        logger.info("Processor stopped cleanly")


def main() -> int:
    """
    Main entrypoint for the processor.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(run_processor(args))
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
