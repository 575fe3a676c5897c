#!/usr/bin/env python3
# Copyright (C) 2026 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

import pytest

from gpcheck.timeout import CheckTimeout, Deadline


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_check_within_deadline() -> None:
    clock = _Clock()
    deadline = Deadline(300, clock=clock)
    clock.now = 299.9
    deadline.check("query")


def test_check_after_deadline() -> None:
    clock = _Clock()
    deadline = Deadline(300, clock=clock)
    clock.now = 300.0
    with pytest.raises(CheckTimeout, match="^query timeout after 300 seconds$"):
        deadline.check("query")


@pytest.mark.parametrize(
    "elapsed, expected_seconds, expected_milliseconds",
    [
        (0.0, 10, 10000),
        (9.9995, 1, 1),
        (12.0, 1, 1),
    ],
)
def test_remaining_never_disables_driver_timeouts(
    elapsed: float, expected_seconds: int, expected_milliseconds: int
) -> None:
    clock = _Clock()
    deadline = Deadline(10, clock=clock)
    clock.now = elapsed
    assert deadline.remaining_seconds() == expected_seconds
    assert deadline.remaining_milliseconds() == expected_milliseconds
