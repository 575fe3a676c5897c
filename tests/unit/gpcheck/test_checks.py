#!/usr/bin/env python3
# Copyright (C) 2026 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

import sqlite3
from collections.abc import Sequence
from contextlib import closing
from decimal import Decimal

import pytest

from tests.testlib.fake_database import FakeConnection, FakeConnector

from gpcheck.checkresults import ActiveCheckResult, State
from gpcheck.checks import (
    activity_filter,
    Check,
    connect_check,
    create_check,
    long_running_check,
    long_running_statement,
    QueryResult,
    run_check,
    segments_v3_check,
    segments_v4_check,
    select_check,
)
from gpcheck.connection import ConnectionParams
from gpcheck.exceptions import CheckTimeout, ConnectionFailed, QueryFailed
from gpcheck.timeout import Deadline

_PARAMS = ConnectionParams(host="gpmaster", dbname="warehouse")


def _run(connection: FakeConnection, check: Check | None = None) -> ActiveCheckResult:
    return run_check(
        check or segments_v4_check(),
        FakeConnector(connection=connection),
        _PARAMS,
        Deadline(300),
    )


def test_connect_successful() -> None:
    connection = FakeConnection()
    result = _run(connection, connect_check())
    assert result.state is State.OK
    assert result.summary == "connect successful"
    assert connection.closed
    assert not connection.statements


@pytest.mark.parametrize(
    "error, expected_summary",
    [
        pytest.param(
            ConnectionFailed('could not translate host name "gpmaster"'),
            'connect error: could not translate host name "gpmaster"',
            id="unreachable",
        ),
        pytest.param(
            CheckTimeout("connect timeout after 300 seconds"),
            "connect timeout after 300 seconds",
            id="timeout",
        ),
    ],
)
def test_connect_failures_are_critical(error: Exception, expected_summary: str) -> None:
    result = run_check(connect_check(), FakeConnector(error=error), _PARAMS, Deadline(300))
    assert result == ActiveCheckResult(state=State.CRIT, summary=expected_summary)


def test_connection_failure_in_query_mode() -> None:
    result = run_check(
        select_check("public", "sales"),
        FakeConnector(error=ConnectionFailed("password authentication failed")),
        _PARAMS,
        Deadline(300),
    )
    assert result.state is State.CRIT
    assert result.summary == "connect error: password authentication failed"


@pytest.mark.parametrize(
    "error, expected_summary",
    [
        pytest.param(
            QueryFailed('relation "public.sales" does not exist'),
            'select error: relation "public.sales" does not exist',
            id="error",
        ),
        pytest.param(
            CheckTimeout("query timeout after 300 seconds"),
            "select query timeout after 300 seconds",
            id="timeout",
        ),
    ],
)
def test_query_failures_are_critical_and_close_the_connection(
    error: Exception, expected_summary: str
) -> None:
    connection = FakeConnection(error=error)
    result = _run(connection, select_check("public", "sales"))
    assert result == ActiveCheckResult(state=State.CRIT, summary=expected_summary)
    assert connection.closed


def test_unexpected_errors_propagate_and_close_the_connection() -> None:
    connection = FakeConnection(error=RuntimeError("boom"))
    with pytest.raises(RuntimeError):
        _run(connection)
    assert connection.closed


def test_select() -> None:
    connection = FakeConnection(rows=[(120, 0), (118, 1), (121, 2)])
    result = _run(connection, select_check("public", "sales"))
    assert result.state is State.OK
    assert result.summary.startswith("select on public.sales took ")
    assert result.summary.endswith("seconds, 3 segments answered")
    assert result.metrics[1] == "segments=3"
    assert "Identifier('sales')" in repr(connection.statements[0])


def test_create() -> None:
    connection = FakeConnection(rows=[])
    result = _run(connection, create_check("gp_check_tmp"))
    assert result.state is State.OK
    assert result.summary.startswith("create temp table gp_check_tmp took ")
    assert "DISTRIBUTED BY (id)" in repr(connection.statements[0])


@pytest.mark.parametrize("check", [segments_v3_check(), segments_v4_check()])
def test_all_segments_up(check: Check) -> None:
    result = _run(FakeConnection(rows=[]), check)
    assert result == ActiveCheckResult(
        state=State.OK, summary="all segments up", metrics=("segments_down=0",)
    )


@pytest.mark.parametrize("check", [segments_v3_check(), segments_v4_check()])
@pytest.mark.parametrize(
    "down, expected_summary",
    [
        (1, "1 segment down(!!)"),
        (3, "3 segments down(!!)"),
    ],
)
def test_segments_down(check: Check, down: int, expected_summary: str) -> None:
    result = _run(FakeConnection(rows=[("d",)] * down), check)
    assert result == ActiveCheckResult(
        state=State.CRIT, summary=expected_summary, metrics=(f"segments_down={down}",)
    )


def test_segment_tables() -> None:
    v3, v4 = FakeConnection(), FakeConnection()
    _run(v3, segments_v3_check())
    _run(v4, segments_v4_check())
    assert "gp_configuration WHERE valid = false" in repr(v3.statements[0])
    assert "gp_segment_configuration WHERE status <> 'u'" in repr(v4.statements[0])


@pytest.mark.parametrize(
    "age_seconds, expected_state",
    [
        pytest.param(0, State.OK, id="idle"),
        pytest.param(9 * 60 + 59, State.OK, id="below warn"),
        pytest.param(10 * 60, State.WARN, id="at warn"),
        pytest.param(29 * 60 + 59, State.WARN, id="below crit"),
        pytest.param(30 * 60, State.CRIT, id="at crit"),
        pytest.param(Decimal("7200.25"), State.CRIT, id="above crit"),
    ],
)
def test_long_running_levels(age_seconds: float, expected_state: State) -> None:
    result = _run(FakeConnection(rows=[(age_seconds,)]), long_running_check(10, 30))
    assert result.state is expected_state


def test_long_running_output() -> None:
    result = long_running_check(10, 30).evaluate(QueryResult(rows=[(12 * 60 + 5,)], elapsed=0.1))
    assert result == ActiveCheckResult(
        state=State.WARN,
        summary="longest running query: 12 minutes (warn/crit at 10/30 minutes)(!)",
        metrics=("longest_query=12;10;30",),
    )


def test_long_running_without_result() -> None:
    result = long_running_check(10, 30).evaluate(QueryResult(rows=[], elapsed=0.1))
    assert result.state is State.UNKNOWN


@pytest.mark.parametrize(
    "server_version, expected, unexpected",
    [
        pytest.param(80223, "current_query NOT LIKE '<IDLE>%'", "state =", id="greenplum 4/5"),
        pytest.param(90424, "state = 'active'", "current_query", id="greenplum 6"),
    ],
)
def test_long_running_statement_follows_server_version(
    server_version: int, expected: str, unexpected: str
) -> None:
    statement = repr(long_running_statement(server_version))
    assert expected in statement
    assert unexpected not in statement


def _matching_sessions(server_version: int, sessions: Sequence[tuple[int, str]]) -> list[int]:
    # pid 1 is the backend of the check itself
    column, pid = ("state", "pid") if server_version >= 90200 else ("current_query", "procpid")
    query = f"SELECT {pid} FROM pg_stat_activity WHERE {activity_filter(server_version)}"
    with closing(sqlite3.connect(":memory:")) as db:
        db.create_function("pg_backend_pid", 0, lambda: 1)
        db.execute(f"CREATE TABLE pg_stat_activity ({pid} INTEGER, {column} TEXT)")
        db.executemany("INSERT INTO pg_stat_activity VALUES (?, ?)", sessions)
        return sorted(row[0] for row in db.execute(query))


def test_activity_filter_greenplum_6() -> None:
    assert _matching_sessions(
        90424,
        [
            (1, "active"),
            (2, "active"),
            (3, "idle"),
            (4, "idle in transaction"),
            (5, "idle in transaction (aborted)"),
        ],
    ) == [2]


def test_activity_filter_greenplum_4() -> None:
    assert _matching_sessions(
        80223,
        [
            (1, "SELECT now()"),
            (2, "SELECT COUNT(1) FROM sales"),
            (3, "<IDLE>"),
            (4, "<IDLE> in transaction"),
        ],
    ) == [2]


def test_same_database_same_state() -> None:
    connection = FakeConnection(rows=[("d",)])
    assert _run(connection).state is _run(connection).state is State.CRIT
