#!/usr/bin/env python3
# Copyright (C) 2026 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""The Greenplum diagnostics

Every check is a statement plus a function deciding on the returned rows.
`run_check` does the rest: connect under the deadline, execute, decide and
close the connection again.
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable, Sequence
from contextlib import closing
from dataclasses import dataclass

from psycopg import sql

from gpcheck.checkresults import ActiveCheckResult, metric, State, state_markers
from gpcheck.connection import ConnectionParams, ConnectorProto, Row, Statement
from gpcheck.exceptions import CheckTimeout, ConnectionFailed, QueryFailed
from gpcheck.timeout import Deadline

LOGGER = logging.getLogger(__name__)

# pg_stat_activity got the "state" column with PostgreSQL 9.2
_SERVER_VERSION_WITH_ACTIVITY_STATE = 90200


class Mode(enum.Enum):
    CONNECT = "connect"
    SELECT = "select"
    CREATE = "create"
    SEGMENTS_V3 = "segments-v3"
    SEGMENTS_V4 = "segments-v4"
    LONG_RUNNING = "long-running"


@dataclass(frozen=True)
class QueryResult:
    rows: Sequence[Row]
    elapsed: float


@dataclass(frozen=True)
class Check:
    title: str
    # None means: connecting is all there is to do
    statement: Callable[[int], Statement] | None
    evaluate: Callable[[QueryResult], ActiveCheckResult]


def run_check(
    check: Check,
    connector: ConnectorProto,
    params: ConnectionParams,
    deadline: Deadline,
) -> ActiveCheckResult:
    start = time.monotonic()
    try:
        connection = connector(params, deadline=deadline)
    except CheckTimeout as e:
        return ActiveCheckResult(state=State.CRIT, summary=str(e))
    except ConnectionFailed as e:
        return ActiveCheckResult(state=State.CRIT, summary=f"connect error: {e}")

    with closing(connection):
        if check.statement is None:
            return check.evaluate(QueryResult((), time.monotonic() - start))

        statement = check.statement(connection.server_version)
        start = time.monotonic()
        try:
            rows = connection.execute(statement, deadline=deadline)
        except CheckTimeout as e:
            return ActiveCheckResult(state=State.CRIT, summary=f"{check.title} {e}")
        except QueryFailed as e:
            return ActiveCheckResult(state=State.CRIT, summary=f"{check.title} error: {e}")
        elapsed = time.monotonic() - start

    LOGGER.info("%s took %.3f seconds", check.title, elapsed)
    return check.evaluate(QueryResult(rows, elapsed))


#   .--connect-------------------------------------------------------------.


def connect_check() -> Check:
    def evaluate(result: QueryResult) -> ActiveCheckResult:
        return ActiveCheckResult(
            state=State.OK,
            summary="connect successful",
            metrics=(metric("time", result.elapsed, "s"),),
        )

    return Check("connect", None, evaluate)


#   .--select--------------------------------------------------------------.


def select_check(schema: str, table: str) -> Check:
    statement = sql.SQL(
        "SELECT COUNT(1), gp_segment_id FROM {}.{} GROUP BY gp_segment_id"
    ).format(sql.Identifier(schema), sql.Identifier(table))

    def evaluate(result: QueryResult) -> ActiveCheckResult:
        segments = len(result.rows)
        return ActiveCheckResult(
            state=State.OK,
            summary="select on %s.%s took %.3f seconds, %d segment%s answered"
            % (schema, table, result.elapsed, segments, "" if segments == 1 else "s"),
            metrics=(metric("time", result.elapsed, "s"), metric("segments", segments)),
        )

    return Check("select", lambda _version: statement, evaluate)


#   .--create--------------------------------------------------------------.


def create_check(table: str) -> Check:
    # the temporary table vanishes together with the session
    statement = sql.SQL("CREATE TEMP TABLE {} (id integer, value text) DISTRIBUTED BY (id)").format(
        sql.Identifier(table)
    )

    def evaluate(result: QueryResult) -> ActiveCheckResult:
        return ActiveCheckResult(
            state=State.OK,
            summary="create temp table %s took %.3f seconds" % (table, result.elapsed),
            metrics=(metric("time", result.elapsed, "s"),),
        )

    return Check("create temp table", lambda _version: statement, evaluate)


#   .--segments------------------------------------------------------------.

# Greenplum 3.x keeps the segment state in gp_configuration
_SEGMENTS_V3 = sql.SQL("SELECT * FROM gp_configuration WHERE valid = false")

# Greenplum 4.x and later: status is 'u' (up) or 'd' (down)
_SEGMENTS_V4 = sql.SQL("SELECT * FROM gp_segment_configuration WHERE status <> 'u'")


def evaluate_segments(result: QueryResult) -> ActiveCheckResult:
    """
    >>> evaluate_segments(QueryResult(rows=[], elapsed=0.1)).summary
    'all segments up'
    >>> evaluate_segments(QueryResult(rows=[("d",), ("d",)], elapsed=0.1)).summary
    '2 segments down(!!)'
    """
    down = len(result.rows)
    metrics = (metric("segments_down", down),)
    if not down:
        return ActiveCheckResult(state=State.OK, summary="all segments up", metrics=metrics)
    return ActiveCheckResult(
        state=State.CRIT,
        summary="%d segment%s down%s" % (down, "" if down == 1 else "s", state_markers[State.CRIT]),
        metrics=metrics,
    )


def segments_v3_check() -> Check:
    return Check("segment check", lambda _version: _SEGMENTS_V3, evaluate_segments)


def segments_v4_check() -> Check:
    return Check("segment check", lambda _version: _SEGMENTS_V4, evaluate_segments)


#   .--long running--------------------------------------------------------.


def activity_filter(server_version: int) -> str:
    """Sessions running a statement right now, our own backend excluded

    Idle sessions and sessions idle in an open transaction do not count.
    """
    if server_version >= _SERVER_VERSION_WITH_ACTIVITY_STATE:
        return "state = 'active' AND pid <> pg_backend_pid()"
    return "current_query NOT LIKE '<IDLE>%' AND procpid <> pg_backend_pid()"


def long_running_statement(server_version: int) -> Statement:
    return sql.SQL(
        "SELECT COALESCE(MAX(EXTRACT(EPOCH FROM now() - query_start)), 0) "
        "FROM pg_stat_activity WHERE query_start IS NOT NULL AND " + activity_filter(server_version)
    )


def evaluate_query_age(minutes: int, warn: int, crit: int) -> State:
    """Levels are "greater or equal"

    >>> [evaluate_query_age(age, 10, 30).name for age in (9, 10, 29, 30, 31)]
    ['OK', 'WARN', 'WARN', 'CRIT', 'CRIT']
    """
    if minutes >= crit:
        return State.CRIT
    if minutes >= warn:
        return State.WARN
    return State.OK


def long_running_check(warn: int, crit: int) -> Check:
    def evaluate(result: QueryResult) -> ActiveCheckResult:
        if not result.rows or result.rows[0][0] is None:
            return ActiveCheckResult(
                state=State.UNKNOWN, summary="no result for the longest running query"
            )
        minutes = int(float(result.rows[0][0]) // 60)
        state = evaluate_query_age(minutes, warn, crit)
        return ActiveCheckResult(
            state=state,
            summary="longest running query: %d minute%s%s"
            % (
                minutes,
                "" if minutes == 1 else "s",
                ""
                if state is State.OK
                else " (warn/crit at %d/%d minutes)%s" % (warn, crit, state_markers[state]),
            ),
            metrics=(metric("longest_query", minutes, levels=(warn, crit)),),
        )

    return Check("long running queries", long_running_statement, evaluate)
