#!/usr/bin/env python3
# Copyright (C) 2026 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

import logging
import sys
from typing import IO

logger = logging.getLogger("gpcheck")


def get_formatter(format_str: str = "%(levelname)s: %(message)s") -> logging.Formatter:
    """Returns a new message formater instance. The check itself writes its
    result to stdout, so everything logged here is meant for the console of
    someone debugging the check."""
    return logging.Formatter(format_str)


def clear_console_logging() -> None:
    logger.handlers[:] = []
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.WARNING)


# Set default logging handler to avoid "No handler found" warnings.
clear_console_logging()


def setup_logging_handler(stream: IO[str], formatter: logging.Formatter | None = None) -> None:
    """This method enables all log messages to be written to the given
    stream file object."""
    if formatter is None:
        formatter = get_formatter()

    handler = logging.StreamHandler(stream=stream)
    handler.setFormatter(formatter)

    del logger.handlers[:]  # Remove all previously existing handlers
    logger.addHandler(handler)


def verbosity_to_log_level(verbosity: int) -> int:
    """Values for "verbosity":

      0: enables WARNING and above
      1: enables INFO and above
      2: enables DEBUG and above (ALL messages)

    >>> verbosity_to_log_level(0) == logging.WARNING
    True
    >>> verbosity_to_log_level(5) == logging.DEBUG
    True
    """
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def setup_logging(verbosity: int) -> None:
    """Log to stderr, stdout is reserved for the check result"""
    if verbosity >= 2:
        formatter = get_formatter("%(levelname)s: %(name)s: %(filename)s: %(lineno)s %(message)s")
    else:
        formatter = get_formatter()
    setup_logging_handler(sys.stderr, formatter)
    logger.setLevel(verbosity_to_log_level(verbosity))
