# tracemath/log.py
"""
Log sinks for applications embedding tracemath.

The library itself only emits records through loguru's ``logger``; the host
decides where they go by calling start_log().
"""

import os
import pathlib
import sys

from loguru import logger

from .core.config import DEFAULT_LOGLEVEL, TEMP_DIR


def start_log(
    log_to_file=True,
    log_to_stdout=False,
    log_path=None,
    clear_prev=True,
    log_level=DEFAULT_LOGLEVEL,
):
    if log_path is None or log_path == "":
        log_path = log_default_path()
    else:
        log_path = os.path.abspath(log_path)

    if clear_prev:
        clear_log(log_path)

    # first remove (default) stderr output
    logger.remove()

    if log_to_file:
        logger.add(log_path, level=log_level, enqueue=True, colorize=False)
    if log_to_stdout:
        logger.add(sys.stderr, level=log_level, colorize=True)
    if log_to_file:
        logger.info("Trace log started at {}", log_path)
    else:
        logger.info("Trace log started.")
    return log_path


def log_default_path() -> str:
    return str(pathlib.Path(TEMP_DIR).joinpath("tracemath.log"))


def clear_log(log_path: str):
    """
    Clear the log file at the given path, if it exists.

    Arguments
    ---------
    log_path : str
        The path to the log file. The default one is log_default_path().
    """
    if os.path.exists(log_path):
        try:
            os.remove(log_path)
        except PermissionError:
            logger.error(
                f"Could not clear log file {log_path}. Permission denied. Continuing."
            )
