"""Command line front-end: evaluate expressions in one persistent bc session."""

from __future__ import annotations

import argparse
import logging
import shlex
import sys
from typing import Iterable, Sequence, TextIO

import structlog

from .errors import CoprocessError
from .protocol.messages import CLOSE_COMMAND
from .session.config import SessionConfig
from .session.manager import CoprocessSession

logger = structlog.get_logger()


def configure_logging(level: str = "warning") -> None:
    """Route structured logs to stderr so stdout carries only results."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apexcalc",
        description="Evaluate arbitrary-precision expressions in a persistent bc coprocess.",
    )
    parser.add_argument(
        "expressions",
        nargs="*",
        help="Expressions to evaluate in order (default: read one per line from stdin).",
    )
    parser.add_argument("--bc", default=None, help="Worker program (default: $APEX_BC or bc).")
    parser.add_argument("--bc-args", default=None, help="Worker arguments (default: $APEX_BC_ARGS or -lLq).")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for each answer.")
    parser.add_argument(
        "--log-level",
        default="warning",
        choices=["debug", "info", "warning", "error"],
        help="Log level for stderr diagnostics (default: warning).",
    )
    return parser


def _config_from_args(args: argparse.Namespace) -> SessionConfig:
    overrides: dict[str, object] = {}
    if args.bc is not None:
        overrides["worker_command"] = args.bc
    if args.bc_args is not None:
        overrides["worker_args"] = tuple(shlex.split(args.bc_args))
    if args.timeout is not None:
        overrides["evaluate_timeout"] = args.timeout
    return SessionConfig.from_env(**overrides)


def run_expressions(session: CoprocessSession, expressions: Iterable[str], out: TextIO, err: TextIO) -> int:
    """Evaluate each expression, stopping at the first failure."""
    for expression in expressions:
        try:
            result = session.evaluate(expression)
        except CoprocessError as exc:
            print(f"apexcalc: {exc}".rstrip("\n"), file=err)
            return 1
        if expression != CLOSE_COMMAND:
            print(result, file=out)
    return 0


def run_repl(session: CoprocessSession, lines: Iterable[str], out: TextIO, err: TextIO) -> int:
    """Evaluate one expression per input line; failures are reported and skipped."""
    failures = 0
    for line in lines:
        expression = line.rstrip("\n")
        if not expression.strip():
            continue
        try:
            result = session.evaluate(expression)
        except CoprocessError as exc:
            failures += 1
            print(f"apexcalc: {exc}".rstrip("\n"), file=err)
            continue
        if expression != CLOSE_COMMAND:
            print(result, file=out, flush=True)
    logger.debug("Input exhausted", failures=failures)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level)
    config = _config_from_args(args)

    with CoprocessSession(config=config) as session:
        if args.expressions:
            return run_expressions(session, args.expressions, sys.stdout, sys.stderr)
        return run_repl(session, sys.stdin, sys.stdout, sys.stderr)
