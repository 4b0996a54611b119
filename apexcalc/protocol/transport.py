from __future__ import annotations

import contextlib
import os
import selectors
import time
from dataclasses import dataclass

import structlog

from ..errors import DiagnosticsReadFailure, EvaluationTimeout, PipeAllocationError, ReadFailure, WriteFailure
from .framing import SentinelScanner

logger = structlog.get_logger()


def _close_fd(fd: int) -> None:
    with contextlib.suppress(OSError):
        os.close(fd)


@dataclass
class PipeTriple:
    """The three pipes that connect a worker's standard streams to the host.

    Each pipe is a ``(read_fd, write_fd)`` pair as returned by ``os.pipe``.
    """

    request: tuple[int, int]
    response: tuple[int, int]
    diagnostics: tuple[int, int]

    @classmethod
    def allocate(cls) -> PipeTriple:
        """Create all three pipes, or none of them.

        Raises:
            PipeAllocationError: If any pipe cannot be created. Pipes created
                before the failure are closed first.
        """
        created: list[tuple[int, int]] = []
        try:
            for _ in range(3):
                created.append(os.pipe())
        except OSError as err:
            for read_fd, write_fd in created:
                _close_fd(read_fd)
                _close_fd(write_fd)
            raise PipeAllocationError(f"pipe fail: {err}") from err
        return cls(*created)

    @property
    def child_fds(self) -> tuple[int, int, int]:
        """Ends the worker uses as stdin, stdout and stderr."""
        return self.request[0], self.response[1], self.diagnostics[1]

    @property
    def host_fds(self) -> tuple[int, int, int]:
        """Ends the host keeps: request write, response read, diagnostics read."""
        return self.request[1], self.response[0], self.diagnostics[0]

    def close_child_side(self) -> None:
        for fd in self.child_fds:
            _close_fd(fd)

    def close_all(self) -> None:
        for fd in (*self.child_fds, *self.host_fds):
            _close_fd(fd)


class PipeChannel:
    """Non-blocking framed I/O over the host ends of a pipe triple.

    Reads and writes never block in the kernel. A would-block condition is
    retried once a selector reports the descriptor ready, so an optional
    deadline can bound the whole exchange.
    """

    def __init__(self, request_fd: int, response_fd: int, diagnostics_fd: int) -> None:
        self.request_fd = request_fd
        self.response_fd = response_fd
        self.diagnostics_fd = diagnostics_fd
        self._writable = selectors.DefaultSelector()
        self._writable.register(request_fd, selectors.EVENT_WRITE)
        self._readable = selectors.DefaultSelector()
        self._readable.register(response_fd, selectors.EVENT_READ)
        self._closed = False

    @property
    def fds(self) -> tuple[int, int, int]:
        return self.request_fd, self.response_fd, self.diagnostics_fd

    @property
    def closed(self) -> bool:
        return self._closed

    def set_nonblocking(self) -> None:
        """Put all three host ends into non-blocking mode.

        Raises:
            OSError: If the descriptor flags cannot be changed.
        """
        for fd in self.fds:
            os.set_blocking(fd, False)

    def _wait(self, selector: selectors.BaseSelector, deadline: float | None) -> None:
        timeout = None
        if deadline is not None:
            timeout = deadline - time.monotonic()
            if timeout <= 0:
                raise EvaluationTimeout("timed out waiting for the worker")
        selector.select(timeout)

    def write_all(self, data: bytes, deadline: float | None = None) -> int:
        """Write every byte of ``data`` to the request pipe.

        Raises:
            WriteFailure: On any write error other than would-block
            EvaluationTimeout: If ``deadline`` passes first
        """
        view = memoryview(data)
        written = 0
        while written < len(data):
            try:
                written += os.write(self.request_fd, view[written:])
            except BlockingIOError:
                self._wait(self._writable, deadline)
            except OSError as err:
                raise WriteFailure(f"write fail: {err}") from err
        return written

    def read_response(
        self,
        scanner: SentinelScanner,
        chunk_size: int,
        deadline: float | None = None,
    ) -> bool:
        """Read the response pipe into ``scanner`` until the sentinel shows up.

        Returns:
            True once the sentinel was seen, False if the stream ended first

        Raises:
            ReadFailure: On any read error other than would-block
            EvaluationTimeout: If ``deadline`` passes first
        """
        while not scanner.complete:
            try:
                chunk = os.read(self.response_fd, chunk_size)
            except BlockingIOError:
                self._wait(self._readable, deadline)
                continue
            except OSError as err:
                raise ReadFailure(f"read fail: {err}") from err
            if not chunk:
                logger.debug("Response stream closed before sentinel", bytes=len(scanner))
                return False
            scanner.feed(chunk)
        return True

    def read_diagnostics(self, max_bytes: int) -> str:
        """Read whatever the worker left on stderr, without waiting.

        Returns an empty string when nothing is pending or the pipe is at
        end-of-stream.

        Raises:
            DiagnosticsReadFailure: On any read error other than would-block
        """
        try:
            data = os.read(self.diagnostics_fd, max_bytes)
        except BlockingIOError:
            return ""
        except OSError as err:
            raise DiagnosticsReadFailure(f"error read error: {err}") from err
        return data.decode("utf-8", errors="replace")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writable.close()
        self._readable.close()
        for fd in self.fds:
            _close_fd(fd)
