"""PyRaQC package initialization with version and entry point helpers.

The module provides:
- VERSION: Package version string
- logging_version(): Version logging utility
- entrypoint(): Decorator for main entry point exception handling
"""
import logging
import multiprocessing
import sys
import traceback
from functools import wraps
from typing import Any, Callable

VERSION = "0.3.0"

logger = logging.getLogger(__name__)


def logging_version(logger: Any) -> None:
    """Log PyRaQC and Python version information."""
    logger.info("PyRaQC version {} with Python{}.{}.{}".format(
                *[VERSION] + list(sys.version_info[:3])))
    for line in sys.version.split('\n'):
        logger.debug(line)


def _ensure_spawn() -> None:
    """Use the `spawn` start method for classification workers."""
    current = multiprocessing.get_start_method(allow_none=True)
    if current != "spawn":
        try:
            multiprocessing.set_start_method("spawn")
        except RuntimeError:
            logger.warning(
                "Failed to set multiprocessing start method to 'spawn'. "
                "Worker processes use '{}' instead.".format(current)
            )


def entrypoint(logger: Any) -> Callable[[Callable[[], None]], Callable[[], None]]:
    """Decorator for command-line main functions.

    Sets up the multiprocessing start method, logs the final status and
    turns KeyboardInterrupt into a quiet exit.

    Example:
        @entrypoint(logger)
        def main():
            ...
    """
    def _entrypoint_wrapper_base(main_func: Callable[[], None]) -> Callable[[], None]:
        @wraps(main_func)
        def _inner() -> None:
            try:
                _ensure_spawn()
                main_func()
                logger.info("PyRaQC finished.")
            except KeyboardInterrupt:
                sys.stderr.write("\r\033[K")
                sys.stderr.flush()
                logger.info("Got KeyboardInterrupt. bye")
                if 0 < logger.level <= logging.DEBUG:
                    traceback.print_exc()
        return _inner
    return _entrypoint_wrapper_base
