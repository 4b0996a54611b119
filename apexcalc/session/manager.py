from __future__ import annotations

import contextlib
import subprocess
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NoReturn

import psutil
import structlog

from ..errors import CoprocessError, EvaluationError, NoDiagnostics, SpawnError
from ..protocol.framing import SentinelScanner, build_response
from ..protocol.messages import Request, Response
from ..protocol.transport import PipeChannel, PipeTriple
from .config import SessionConfig

logger = structlog.get_logger()


class SessionState(str, Enum):
    """Session lifecycle states."""

    INACTIVE = "inactive"
    ACTIVE = "active"


@dataclass
class SessionInfo:
    """Information about a session."""

    session_id: str
    state: SessionState
    created_at: float
    last_used_at: float
    pid: int | None = None
    spawn_count: int = 0
    evaluation_count: int = 0
    error_count: int = 0
    memory_usage: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


class CoprocessSession:
    """A single long-lived worker process driven over three pipes.

    The worker is spawned lazily on the first evaluation and kept running
    between calls. Any failure tears it down, and the next call starts a
    fresh one. Calls must be serialized by the caller; see
    ``AsyncCoprocessSession`` for a locked wrapper.
    """

    def __init__(
        self,
        session_id: str | None = None,
        config: SessionConfig | None = None,
    ) -> None:
        self.session_id = session_id or str(uuid.uuid4())
        self._config = config or SessionConfig()
        self._process: subprocess.Popen[bytes] | None = None
        self._channel: PipeChannel | None = None
        self._state = SessionState.INACTIVE
        self._info = SessionInfo(
            session_id=self.session_id,
            state=self._state,
            created_at=time.time(),
            last_used_at=time.time(),
        )

    def __enter__(self) -> CoprocessSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.teardown()

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def state(self) -> SessionState:
        """Get current session state."""
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def pid(self) -> int | None:
        """Worker process id while active, otherwise None."""
        return self._process.pid if self._process is not None else None

    @property
    def info(self) -> SessionInfo:
        """Get session information."""
        self._info.state = self._state
        self._info.pid = self.pid
        self._info.memory_usage = 0
        if self._process is not None:
            with contextlib.suppress(psutil.Error):
                self._info.memory_usage = psutil.Process(self._process.pid).memory_info().rss
        return self._info

    def ensure_active(self) -> None:
        """Spawn the worker unless one is already running.

        Raises:
            PipeAllocationError: If the pipes cannot be created
            SpawnError: If the worker cannot be started or its pipes cannot
                be made non-blocking
        """
        if self._state is SessionState.ACTIVE:
            return

        argv = self._config.argv
        pipes = PipeTriple.allocate()
        stdin, stdout, stderr = pipes.child_fds
        try:
            process = subprocess.Popen(
                argv,
                stdin=stdin,
                stdout=stdout,
                stderr=stderr,
                close_fds=True,
            )
        except (OSError, subprocess.SubprocessError) as err:
            pipes.close_all()
            logger.error("Failed to spawn worker", session_id=self.session_id, argv=argv, error=str(err))
            raise SpawnError(f"fork fail: cannot run {argv[0]!r}: {err}") from err

        pipes.close_child_side()
        channel = PipeChannel(*pipes.host_fds)
        try:
            channel.set_nonblocking()
        except OSError as err:
            channel.close()
            self._reap(process)
            logger.error("Failed to configure worker pipes", session_id=self.session_id, error=str(err))
            raise SpawnError(f"fcntl set fail: {err}") from err

        self._process = process
        self._channel = channel
        self._state = SessionState.ACTIVE
        self._info.spawn_count += 1
        logger.info("Worker spawned", session_id=self.session_id, pid=process.pid, argv=argv)

    def teardown(self) -> None:
        """Close the pipes and reap the worker. Safe to call repeatedly."""
        if self._state is SessionState.INACTIVE:
            return

        channel, process = self._channel, self._process
        self._channel = None
        self._process = None
        self._state = SessionState.INACTIVE

        if channel is not None:
            channel.close()
        if process is not None:
            returncode = self._reap(process)
            logger.info("Worker reaped", session_id=self.session_id, pid=process.pid, returncode=returncode)

    close = teardown

    def restart(self) -> None:
        """Replace the running worker with a fresh one."""
        logger.info("Restarting session", session_id=self.session_id)
        self.teardown()
        self.ensure_active()

    def _reap(self, process: subprocess.Popen[bytes]) -> int:
        # Closing the request pipe hands the worker EOF, which normally ends it.
        try:
            return process.wait(timeout=self._config.shutdown_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Worker did not exit, killing", session_id=self.session_id, pid=process.pid)
            process.kill()
            return process.wait()

    def evaluate(self, expression: str) -> str:
        """Evaluate one expression in the worker and return its output.

        The literal ``"close"`` tears the session down instead and returns
        an empty string.

        Args:
            expression: Text sent verbatim to the worker

        Returns:
            Worker output with the sentinel and its preceding newline removed

        Raises:
            CoprocessError: On any failure; the session is torn down first
        """
        request = Request(expression=expression, sentinel=self._config.sentinel)
        if request.is_close:
            logger.debug("Close requested", session_id=self.session_id)
            self.teardown()
            return ""

        self._info.last_used_at = time.time()
        self._info.evaluation_count += 1
        completed = False
        try:
            self.ensure_active()
            response = self._exchange(request)
            completed = True
        except CoprocessError as err:
            self._info.error_count += 1
            logger.warning(
                "Evaluation failed",
                session_id=self.session_id,
                error_type=type(err).__name__,
                error=str(err),
            )
            raise
        finally:
            if not completed:
                self.teardown()
        return response.text

    def _exchange(self, request: Request) -> Response:
        channel = self._channel
        assert channel is not None
        deadline = None
        if self._config.evaluate_timeout is not None:
            deadline = time.monotonic() + self._config.evaluate_timeout

        payload = request.payload()
        channel.write_all(payload, deadline)
        logger.debug("Request sent", session_id=self.session_id, bytes=len(payload))

        scanner = SentinelScanner(request.sentinel)
        if not channel.read_response(scanner, self._config.read_chunk_size, deadline):
            self._fail_from_diagnostics(channel)

        # Parse and runtime errors go to stderr while the worker keeps running,
        # so the sentinel still arrives after them.
        diagnostics = channel.read_diagnostics(self._config.diagnostics_buffer_size)
        response = build_response(scanner, diagnostics)
        logger.debug("Response received", session_id=self.session_id, bytes=len(scanner))
        if not response.ok:
            raise EvaluationError(response.diagnostics)
        return response

    def _fail_from_diagnostics(self, channel: PipeChannel) -> NoReturn:
        text = channel.read_diagnostics(self._config.diagnostics_buffer_size)
        if text:
            raise EvaluationError(text)
        raise NoDiagnostics("worker closed its output without answering")
