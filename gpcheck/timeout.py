#!/usr/bin/env python3
# Copyright (C) 2026 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

from __future__ import annotations

import math
import time
from collections.abc import Callable
from typing import Final

from gpcheck.exceptions import CheckTimeout

__all__ = ["CheckTimeout", "Deadline"]


class Deadline:
    """A wall clock budget for one check run.

    The remaining time is handed to the driver explicitly (as connect timeout
    and as statement timeout) instead of interrupting it with a signal.

    >>> now = [100.0]
    >>> deadline = Deadline(10, clock=lambda: now[0])
    >>> deadline.remaining()
    10.0
    >>> now[0] = 107.5
    >>> deadline.remaining_seconds(), deadline.remaining_milliseconds()
    (3, 2500)
    >>> deadline.expired
    False
    >>> now[0] = 111.0
    >>> deadline.remaining(), deadline.expired
    (0.0, True)
    """

    def __init__(self, timeout: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.timeout: Final = timeout
        self._clock: Final = clock
        self._end: Final = clock() + timeout

    def remaining(self) -> float:
        return max(0.0, self._end - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def remaining_seconds(self) -> int:
        # libpq only knows whole seconds, and 0 would mean "wait forever"
        return max(1, math.ceil(self.remaining()))

    def remaining_milliseconds(self) -> int:
        # a statement_timeout of 0 disables the timeout
        return max(1, math.ceil(self.remaining() * 1000))

    def check(self, what: str) -> None:
        if self.expired:
            raise CheckTimeout(f"{what} timeout after {self.timeout} seconds")
