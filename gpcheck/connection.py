#!/usr/bin/env python3
# Copyright (C) 2026 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Talking to the Greenplum master

Everything that touches the driver lives here. The checks only see the
`DBConnection` protocol, so they can be run against a fake database.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Sequence
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Protocol

import psycopg
from psycopg import sql
from psycopg.conninfo import make_conninfo

from gpcheck.exceptions import CheckTimeout, ConnectionFailed, QueryFailed
from gpcheck.timeout import Deadline

LOGGER = logging.getLogger(__name__)

DEFAULT_PORT = 5432

Row = Sequence[Any]
Statement = sql.Composable


@dataclasses.dataclass(frozen=True)
class ConnectionParams:
    host: str
    dbname: str
    port: int = DEFAULT_PORT
    user: str | None = None
    password: str | None = dataclasses.field(default=None, repr=False)

    @property
    def dsn(self) -> str:
        """The connection string, credentials are passed separately

        >>> ConnectionParams("gpmaster", "warehouse").dsn
        'host=gpmaster port=5432 dbname=warehouse'
        >>> ConnectionParams("gpmaster", "warehouse", password="secret")
        ConnectionParams(host='gpmaster', dbname='warehouse', port=5432, user=None)
        """
        return make_conninfo(host=self.host, port=self.port, dbname=self.dbname)


class DBConnection(Protocol):
    @property
    def server_version(self) -> int: ...

    def execute(self, statement: Statement, *, deadline: Deadline) -> Sequence[Row]: ...

    def close(self) -> None: ...


class ConnectorProto(Protocol):
    def __call__(self, params: ConnectionParams, *, deadline: Deadline) -> DBConnection: ...


def first_line(error: BaseException) -> str:
    """Driver messages may span several lines (DETAIL, HINT, ...)

    >>> first_line(ValueError('relation "public.nope" does not exist\\nLINE 1: ...'))
    'relation "public.nope" does not exist'
    >>> first_line(ValueError(""))
    'ValueError'
    """
    lines = str(error).strip().splitlines()
    return lines[0].strip() if lines else type(error).__name__


class PsycopgConnector:
    def __call__(self, params: ConnectionParams, *, deadline: Deadline) -> PsycopgConnection:
        deadline.check("connect")
        LOGGER.info("Connecting to %s as %s", params.dsn, params.user or "<default user>")
        try:
            connection = psycopg.connect(
                params.dsn,
                user=params.user,
                password=params.password,
                connect_timeout=deadline.remaining_seconds(),
                autocommit=True,
            )
        except psycopg.Error as e:
            LOGGER.debug("Connect failed: %r", e)
            if deadline.expired:
                raise CheckTimeout(f"connect timeout after {deadline.timeout} seconds") from e
            raise ConnectionFailed(first_line(e)) from e

        LOGGER.debug("Connected, server version %s", connection.info.server_version)
        return PsycopgConnection(connection)


class PsycopgConnection:
    def __init__(self, connection: psycopg.Connection[Any]) -> None:
        self._connection = connection

    @property
    def server_version(self) -> int:
        return self._connection.info.server_version

    def execute(self, statement: Statement, *, deadline: Deadline) -> Sequence[Row]:
        deadline.check("query")
        future: Future[Sequence[Row]] = Future()
        worker = threading.Thread(
            target=self._execute_into,
            args=(future, statement, deadline),
            name="gpcheck-query",
            daemon=True,
        )
        worker.start()
        try:
            rows = future.result(timeout=deadline.remaining())
        except FutureTimeoutError as e:
            # a master that stopped answering never honours statement_timeout.
            # The worker is left behind, closing the connection releases it.
            LOGGER.debug("No answer from the server within %s seconds", deadline.timeout)
            raise CheckTimeout(f"query timeout after {deadline.timeout} seconds") from e

        LOGGER.info("Statement returned %d rows", len(rows))
        return rows

    def _execute_into(
        self, future: Future[Sequence[Row]], statement: Statement, deadline: Deadline
    ) -> None:
        try:
            future.set_result(self._execute(statement, deadline))
        except Exception as e:
            future.set_exception(e)

    def _execute(self, statement: Statement, deadline: Deadline) -> Sequence[Row]:
        try:
            with self._connection.cursor() as cursor:
                # the server cancels the statement once the rest of our budget is used up
                cursor.execute(
                    sql.SQL("SET statement_timeout = {}").format(
                        sql.Literal(deadline.remaining_milliseconds())
                    )
                )
                LOGGER.debug("Executing %r", statement)
                cursor.execute(statement)
                return cursor.fetchall() if cursor.description is not None else []
        except psycopg.Error as e:
            LOGGER.debug("Query failed: %r", e)
            # QueryCanceled before the deadline comes from pg_cancel_backend, not from us
            if deadline.expired:
                raise CheckTimeout(f"query timeout after {deadline.timeout} seconds") from e
            raise QueryFailed(first_line(e)) from e

    def close(self) -> None:
        self._connection.close()
