from __future__ import annotations

import structlog

from .messages import SENTINEL, Response

logger = structlog.get_logger()


class SentinelScanner:
    """Accumulates response bytes until the sentinel byte appears.

    There is no length header: the frame ends at the first sentinel, and
    anything after it in the same chunk is discarded.
    """

    def __init__(self, sentinel: str = SENTINEL) -> None:
        encoded = sentinel.encode("utf-8")
        if len(encoded) != 1:
            raise ValueError(f"Sentinel must encode to a single byte: {sentinel!r}")
        self._sentinel = encoded
        self._buffer = bytearray()
        self._complete = False

    @property
    def complete(self) -> bool:
        return self._complete

    def __len__(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> bool:
        """Append a chunk and return True once the sentinel has been seen."""
        if self._complete:
            return True
        index = chunk.find(self._sentinel)
        if index == -1:
            self._buffer.extend(chunk)
        else:
            self._buffer.extend(chunk[:index])
            self._complete = True
            if index + 1 < len(chunk):
                logger.debug("Discarding bytes after sentinel", bytes=len(chunk) - index - 1)
        return self._complete

    def text(self) -> str:
        return self._buffer.decode("utf-8", errors="replace")


def trim_response(raw: str) -> str:
    """Strip the single newline the worker prints before the sentinel."""
    if raw.endswith("\n"):
        return raw[:-1]
    return raw


def build_response(scanner: SentinelScanner, diagnostics: str = "") -> Response:
    raw = scanner.text()
    return Response(raw=raw, text=trim_response(raw), diagnostics=diagnostics)
