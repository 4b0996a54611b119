"""Asyncio front-end that serializes access to one coprocess session."""

from __future__ import annotations

import asyncio

import structlog

from .config import SessionConfig
from .manager import CoprocessSession

logger = structlog.get_logger()


class AsyncCoprocessSession:
    """Shares one ``CoprocessSession`` between asyncio tasks.

    Each call holds an ``asyncio.Lock`` and runs the blocking pipe exchange in
    a worker thread, so only one request is ever in flight on the pipes.
    """

    def __init__(
        self,
        session: CoprocessSession | None = None,
        config: SessionConfig | None = None,
    ) -> None:
        self._session = session or CoprocessSession(config=config)
        self._lock = asyncio.Lock()

    @property
    def session(self) -> CoprocessSession:
        return self._session

    async def __aenter__(self) -> AsyncCoprocessSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def evaluate(self, expression: str) -> str:
        async with self._lock:
            return await self._run(self._session.evaluate, expression)

    async def close(self) -> None:
        async with self._lock:
            await self._run(self._session.teardown)

    async def _run(self, fn, *args):  # type: ignore[no-untyped-def]
        task = asyncio.ensure_future(asyncio.to_thread(fn, *args))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # The thread still owns the pipes; hold the lock until it returns.
            logger.debug("Call cancelled, waiting for worker thread", session_id=self._session.session_id)
            await asyncio.wait({task})
            raise
