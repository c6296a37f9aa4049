"""
Unified logging.
Uses loguru for a consistent interface with an optional rotating log file.
"""
from loguru import logger
import sys
from pathlib import Path

from imgx import config


def get_log_file_path() -> str:
    """Return the log file path, creating its folder."""
    log_file = Path(config.LOG_FILE)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    return str(log_file)


def setup_logging(verbose: bool = False, log_to_file: bool = True):
    """
    Configure the global loguru logger.

    Library modules only import `logger`; entry points call this once.
    """
    logger.remove()  # drop the default handler

    # Console output (only when there is a stderr)
    if sys.stderr is not None:
        logger.add(
            sys.stderr,
            format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
            level="DEBUG" if verbose else "INFO",
            colorize=True
        )

    # File output: daily rotation, keep the last 7 days
    if log_to_file:
        try:
            logger.add(
                get_log_file_path(),
                format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
                level="DEBUG",
                rotation="1 day",
                retention="7 days",
                compression="zip",
                encoding="utf-8"
            )
        except OSError as e:
            logger.warning(f"File logging disabled: {e}")


def tagged_logger(tag: str):
    """
    Return a view of the global logger that prefixes every message with
    `[tag] `, e.g. `[run#12] Start: ...`. Sinks and levels are shared.
    """
    prefix = f"[{tag}] "
    return logger.patch(lambda record: record.update(message=prefix + record["message"]))
