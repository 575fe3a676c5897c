#!/usr/bin/env python3
# Copyright (C) 2026 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""User-defined exceptions of the Greenplum check."""

from collections.abc import Sequence

__all__ = [
    "CheckTimeout",
    "ConnectionFailed",
    "GreenplumCheckError",
    "InvalidOptions",
    "MissingOptions",
    "QueryFailed",
]


# never used directly in the code. Just some wrapper to make all of our
# exceptions handleable with one call
class GreenplumCheckError(Exception):
    pass


class ConnectionFailed(GreenplumCheckError):
    """The database could not be reached or refused the login."""


class QueryFailed(GreenplumCheckError):
    """The database rejected the statement, e.g. an unknown table."""


class CheckTimeout(GreenplumCheckError):
    """Raise when the deadline of the check is reached.

    See also:
        `gpcheck.timeout.Deadline` which hands the remaining time to the
        connect and the query.
    """


# This is raised to print an error message and the usage and then end the
# program. It is caught at top level and ends the program with exit code 3,
# in order to be compatible with the monitoring plug-in API.
class InvalidOptions(GreenplumCheckError):
    pass


class MissingOptions(InvalidOptions):
    def __init__(self, options: Sequence[str]) -> None:
        super().__init__("missing mandatory options: %s" % ", ".join(options))
        self.options = tuple(options)
