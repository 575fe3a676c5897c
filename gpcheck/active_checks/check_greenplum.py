#!/usr/bin/env python3
# Copyright (C) 2026 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""check_greenplum - Monitor Greenplum clusters"""

# This check connects to the master of a Greenplum cluster and runs exactly one
# of the following diagnostics:
#
#   --do-connect-test                 connect and disconnect (the default)
#   --do-select-test                  count the rows of a table per segment
#   --do-create-test                  create a temporary table
#   --do-3x-all-segments-valid        look for invalid segments (Greenplum 3.x)
#   --do-4x-all-segments-valid        look for segments that are not up (Greenplum 4.x and later)
#   --do-check-long-running-queries   age of the oldest active query against levels
#
# Example output:
#   GREENPLUM OK - all segments up | segments_down=0
#   GREENPLUM CRITICAL - connect timeout after 300 seconds
#   GREENPLUM WARNING - longest running query: 12 minutes (warn/crit at 10/30 minutes)(!)
#     | longest_query=12;10;30

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from typing import Annotated, assert_never, NoReturn, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
    NonNegativeInt,
    PositiveInt,
    ValidationError,
)

from gpcheck import __version__
from gpcheck.checkresults import ActiveCheckResult, State
from gpcheck.checks import (
    Check,
    connect_check,
    create_check,
    long_running_check,
    Mode,
    run_check,
    segments_v3_check,
    segments_v4_check,
    select_check,
)
from gpcheck.connection import ConnectionParams, ConnectorProto, DEFAULT_PORT, PsycopgConnector
from gpcheck.exceptions import InvalidOptions, MissingOptions
from gpcheck.log import setup_logging
from gpcheck.timeout import Deadline

SUBSYSTEM = "GREENPLUM"


class Args(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: Mode
    dbhost: None | str
    db: None | str
    port: Annotated[int, Field(ge=1, le=65535)]
    username: None | str
    password: None | str
    timeout: PositiveInt
    select_schema: None | str
    select_table: None | str
    create_table: None | str
    long_running_warn: None | NonNegativeInt
    long_running_crit: None | NonNegativeInt
    missing_options_ok: bool
    debug: bool
    verbose: int

    @model_validator(mode="after")
    def _check_long_running_levels(self) -> Self:
        if (
            self.long_running_warn is not None
            and self.long_running_crit is not None
            and self.long_running_warn > self.long_running_crit
        ):
            raise ValueError("--long-running-warn must not be greater than --long-running-crit")
        return self

    def missing_options(self) -> list[str]:
        mandatory: dict[str, object] = {"--dbhost": self.dbhost, "--db": self.db}
        match self.mode:
            case Mode.SELECT:
                mandatory |= {
                    "--select-schema": self.select_schema,
                    "--select-table": self.select_table,
                }
            case Mode.CREATE:
                mandatory["--create-table"] = self.create_table
            case Mode.LONG_RUNNING:
                mandatory |= {
                    "--long-running-warn": self.long_running_warn,
                    "--long-running-crit": self.long_running_crit,
                }
            case Mode.CONNECT | Mode.SEGMENTS_V3 | Mode.SEGMENTS_V4:
                pass
            case _:
                assert_never(self.mode)
        return [option for option, value in mandatory.items() if value is None or value == ""]

    def connection_params(self) -> ConnectionParams:
        assert self.dbhost and self.db
        return ConnectionParams(
            host=self.dbhost,
            dbname=self.db,
            port=self.port,
            user=self.username,
            password=self.password,
        )


class _ArgumentParser(argparse.ArgumentParser):
    # argparse would exit with 2, which the monitoring core reads as CRITICAL
    def error(self, message: str) -> NoReturn:
        raise InvalidOptions(message)


def create_argument_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="check_greenplum",
        description="Check the health of a Greenplum cluster.",
    )

    modes = parser.add_mutually_exclusive_group()
    for flag, mode, help_text in (
        ("--do-connect-test", Mode.CONNECT, "Connect to the database (default)"),
        (
            "--do-select-test",
            Mode.SELECT,
            "Count the rows of --select-schema.--select-table per segment",
        ),
        ("--do-create-test", Mode.CREATE, "Create the temporary table --create-table"),
        (
            "--do-3x-all-segments-valid",
            Mode.SEGMENTS_V3,
            "Check that all segments are valid (Greenplum 3.x)",
        ),
        (
            "--do-4x-all-segments-valid",
            Mode.SEGMENTS_V4,
            "Check that all segments are up (Greenplum 4.x and later)",
        ),
        (
            "--do-check-long-running-queries",
            Mode.LONG_RUNNING,
            "Check the age of the longest running query",
        ),
    ):
        modes.add_argument(flag, dest="mode", action="store_const", const=mode, help=help_text)
    parser.set_defaults(mode=Mode.CONNECT)

    parser.add_argument(
        "-t",
        "--timeout",
        type=int,
        metavar="SECONDS",
        default=300,
        help="Seconds before the connection or the query times out (Default: 300)",
    )
    parser.add_argument("-U", "--username", default=None, help="User name for the login")
    parser.add_argument("-P", "--password", default=None, help="Password for the login")
    parser.add_argument("-H", "--dbhost", default=None, help="Host of the Greenplum master")
    parser.add_argument("-D", "--db", default=None, help="Name of the database")
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port of the Greenplum master (Default: {DEFAULT_PORT})",
    )
    parser.add_argument("--select-schema", default=None, help="Schema for --do-select-test")
    parser.add_argument("--select-table", default=None, help="Table for --do-select-test")
    parser.add_argument(
        "--create-table", default=None, help="Name of the temporary table for --do-create-test"
    )
    parser.add_argument(
        "--long-running-warn",
        type=int,
        metavar="MINUTES",
        default=None,
        help="Report WARNING if a query runs at least this many minutes",
    )
    parser.add_argument(
        "--long-running-crit",
        type=int,
        metavar="MINUTES",
        default=None,
        help="Report CRITICAL if a query runs at least this many minutes",
    )
    parser.add_argument(
        "--missing-options-ok",
        action="store_true",
        help="Compatibility: print the help and report OK if mandatory options are missing "
        "(the default is to report UNKNOWN)",
    )
    parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Log to stderr, repeat for more"
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Debug mode: log everything to stderr and let Python exceptions come through",
    )
    return parser


def _format_validation_error(error: ValidationError) -> str:
    return "; ".join(
        (f"--{'.'.join(map(str, e['loc'])).replace('_', '-')}: " if e["loc"] else "") + e["msg"]
        for e in error.errors()
    )


def parse_arguments(parser: argparse.ArgumentParser, argv: Sequence[str]) -> Args:
    namespace = parser.parse_args(argv)
    try:
        return Args.model_validate(vars(namespace))
    except ValidationError as e:
        raise InvalidOptions(_format_validation_error(e)) from e


def make_check(args: Args) -> Check:
    match args.mode:
        case Mode.CONNECT:
            return connect_check()
        case Mode.SELECT:
            assert args.select_schema and args.select_table
            return select_check(args.select_schema, args.select_table)
        case Mode.CREATE:
            assert args.create_table
            return create_check(args.create_table)
        case Mode.SEGMENTS_V3:
            return segments_v3_check()
        case Mode.SEGMENTS_V4:
            return segments_v4_check()
        case Mode.LONG_RUNNING:
            assert args.long_running_warn is not None and args.long_running_crit is not None
            return long_running_check(args.long_running_warn, args.long_running_crit)
        case _:
            assert_never(args.mode)


def output_check_result(result: ActiveCheckResult) -> None:
    sys.stdout.write("%s\n" % result.as_text(SUBSYSTEM))


def _bail_out(parser: argparse.ArgumentParser, error: InvalidOptions) -> int:
    output_check_result(ActiveCheckResult(state=State.UNKNOWN, summary=str(error)))
    sys.stdout.write(parser.format_usage())
    return int(State.UNKNOWN)


def main(
    argv: Sequence[str] | None = None,
    connector: ConnectorProto | None = None,
) -> int:
    parser = create_argument_parser()
    try:
        args = parse_arguments(parser, sys.argv[1:] if argv is None else argv)
    except InvalidOptions as e:
        return _bail_out(parser, e)

    if missing := args.missing_options():
        if args.missing_options_ok:
            # the historic behaviour: just the help, and the core sees OK
            parser.print_help(sys.stdout)
            return int(State.OK)
        return _bail_out(parser, MissingOptions(missing))

    setup_logging(2 if args.debug else args.verbose)

    try:
        result = run_check(
            make_check(args),
            connector or PsycopgConnector(),
            args.connection_params(),
            Deadline(args.timeout),
        )
    except Exception as e:
        if args.debug:
            raise
        result = ActiveCheckResult(state=State.UNKNOWN, summary=f"Unhandled exception: {e}")

    output_check_result(result)
    return int(result.state)


if __name__ == "__main__":
    sys.exit(main())
