"""
Environment-based configuration shared by the server, processor and admin CLI.

Each getter takes an optional explicit value (e.g. from a command-line flag)
that wins over the environment.
"""

import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "perfly.db"
DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_BATCH_SIZE = 5
DEFAULT_STRATEGY = "mobile"


def get_database_path(override: str | None = None) -> str:
    """
    Get the database path.

    Environment variables:
    - PERFLY_DB_PATH: Custom database path (useful for testing)
    """
    if override:
        return override
    return os.environ.get("PERFLY_DB_PATH", DEFAULT_DB_PATH)


def get_poll_interval(override: float | None = None) -> float:
    """
    Get the seconds between poll passes.

    Environment variables:
    - PERFLY_POLL_INTERVAL: Poll interval in seconds (default 10.0)
    """
    if override is not None:
        if override <= 0:
            logger.warning(
                f"Invalid interval={override}, using default {DEFAULT_POLL_INTERVAL}"
            )
            return DEFAULT_POLL_INTERVAL
        return override

    raw = os.environ.get("PERFLY_POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL))
    try:
        interval = float(raw)
    except ValueError:
        logger.warning(
            f"Invalid PERFLY_POLL_INTERVAL={raw}, using default {DEFAULT_POLL_INTERVAL}"
        )
        return DEFAULT_POLL_INTERVAL

    if interval <= 0:
        logger.warning(
            f"Invalid PERFLY_POLL_INTERVAL={interval}, using default {DEFAULT_POLL_INTERVAL}"
        )
        return DEFAULT_POLL_INTERVAL
    return interval


def get_batch_size(override: int | None = None) -> int:
    """
    Get the maximum number of jobs picked up per poll pass.

    Environment variables:
    - PERFLY_BATCH_SIZE: Batch size (default 5)
    """
    if override is not None:
        if override <= 0:
            logger.warning(
                f"Invalid batch size={override}, using default {DEFAULT_BATCH_SIZE}"
            )
            return DEFAULT_BATCH_SIZE
        return override

    raw = os.environ.get("PERFLY_BATCH_SIZE", str(DEFAULT_BATCH_SIZE))
    try:
        batch_size = int(raw)
    except ValueError:
        logger.warning(
            f"Invalid PERFLY_BATCH_SIZE={raw}, using default {DEFAULT_BATCH_SIZE}"
        )
        return DEFAULT_BATCH_SIZE

    if batch_size <= 0:
        logger.warning(
            f"Invalid PERFLY_BATCH_SIZE={batch_size}, using default {DEFAULT_BATCH_SIZE}"
        )
        return DEFAULT_BATCH_SIZE
    return batch_size


def get_strategy(override: str | None = None) -> str:
    """
    Get the PageSpeed strategy.

    Environment variables:
    - PERFLY_STRATEGY: "mobile" or "desktop" (default mobile)
    """
    strategy = override or os.environ.get("PERFLY_STRATEGY", DEFAULT_STRATEGY)
    if strategy not in ("mobile", "desktop"):
        logger.warning(f"Invalid strategy={strategy}, using default {DEFAULT_STRATEGY}")
        return DEFAULT_STRATEGY
    return strategy


def auto_start_processor() -> bool:
    """
    Whether the API server starts the processor at startup.

    Environment variables:
    - AUTO_START_PROCESSOR: "true" to start at startup (otherwise the
      processor starts on the first submission)
    """
    return os.environ.get("AUTO_START_PROCESSOR", "").lower() == "true"
