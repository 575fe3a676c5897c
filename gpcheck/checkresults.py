#!/usr/bin/env python3
# Copyright (C) 2026 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

from __future__ import annotations

import dataclasses
import enum

__all__ = ["ActiveCheckResult", "metric", "State", "state_markers"]


# Symbolic representations of states in plug-in output
state_markers = ("", "(!)", "(!!)", "(?)", "")


class State(enum.IntEnum):
    """Monitoring plug-in states, the value is the exit code"""

    OK = 0
    WARN = 1
    CRIT = 2
    UNKNOWN = 3
    # defined by the plug-in API, never returned by this check
    DEPENDENT = 4

    @property
    def long_name(self) -> str:
        """
        >>> State.CRIT.long_name
        'CRITICAL'
        """
        return _LONG_NAMES[self]


_LONG_NAMES = {
    State.OK: "OK",
    State.WARN: "WARNING",
    State.CRIT: "CRITICAL",
    State.UNKNOWN: "UNKNOWN",
    State.DEPENDENT: "DEPENDENT",
}


@dataclasses.dataclass(frozen=True, kw_only=True)
class ActiveCheckResult:
    state: State = State.OK
    summary: str = ""
    metrics: tuple[str, ...] = ()

    def as_text(self, subsystem: str) -> str:
        """Render the single line the monitoring core reads

        >>> result = ActiveCheckResult(state=State.WARN, summary="slow", metrics=("time=3.0s",))
        >>> result.as_text("GREENPLUM")
        'GREENPLUM WARNING - slow | time=3.0s'
        >>> ActiveCheckResult(summary="a|b\\nc").as_text("GREENPLUM")
        'GREENPLUM OK - a❘b c'
        """
        text = f"{subsystem} {self.state.long_name} - {self._sanitize(self.summary)}"
        return " | ".join((text, " ".join(self.metrics))) if self.metrics else text

    @staticmethod
    def _sanitize(txt: str) -> str:
        """The vertical bar indicates end of service output and start of metrics.
        Replace the ones in the output by a Unicode "Light vertical bar" and keep
        everything on one line.
        """
        return " ".join(txt.replace("|", "❘").split())


def metric(
    name: str,
    value: float,
    unit: str = "",
    levels: tuple[float, float] | None = None,
) -> str:
    """Format one performance data entry

    >>> metric("segments_down", 2)
    'segments_down=2'
    >>> metric("longest_query", 12, levels=(10, 30))
    'longest_query=12;10;30'
    >>> metric("time", 0.1234, "s")
    'time=0.123s'
    """
    formatted = str(value) if isinstance(value, int) else f"{value:.3f}"
    entry = f"{name}={formatted}{unit}"
    if levels is not None:
        entry += ";%s;%s" % levels
    return entry
