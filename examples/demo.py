#!/usr/bin/env python3
"""apexcalc - arbitrary-precision expressions through a persistent bc coprocess."""

from __future__ import annotations

import asyncio
import sys

import structlog

from apexcalc.errors import CoprocessError
from apexcalc.session.async_session import AsyncCoprocessSession
from apexcalc.session.config import SessionConfig
from apexcalc.session.manager import CoprocessSession

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


def demo_single_session() -> None:
    """Demonstrate single session usage."""
    print("=== Single Session Demo ===\n")

    with CoprocessSession(config=SessionConfig.from_env()) as session:
        for expression in ("2+2", "x=5;x*x", "scale=50; 4*a(1)", "2^200", "2+"):
            try:
                result = session.evaluate(expression)
            except CoprocessError as err:
                print(f"{expression!r:>22} -> error: {str(err).strip()}")
                continue
            print(f"{expression!r:>22} -> {result}")

        info = session.info
        print("-" * 40)
        print(f"  Spawns: {info.spawn_count}")
        print(f"  Evaluations: {info.evaluation_count}")
        print(f"  Errors: {info.error_count}")


async def demo_async_session() -> None:
    """Demonstrate several tasks sharing one worker."""
    print("\n=== Async Session Demo ===\n")

    async with AsyncCoprocessSession(config=SessionConfig.from_env()) as session:
        expressions = [f"sqrt({n})" for n in range(2, 7)]
        results = await asyncio.gather(*(session.evaluate(e) for e in expressions))
        for expression, result in zip(expressions, results):
            print(f"{expression:>10} = {result}")
        print(f"\n  Worker pid: {session.session.pid}")


async def main() -> None:
    """Main entry point."""
    print("apexcalc - bc coprocess demo")
    print("=" * 40)

    try:
        demo_single_session()
        await demo_async_session()
    except CoprocessError as err:
        logger.error("Demo failed", error=str(err))
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
