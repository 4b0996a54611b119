"""Error types raised by the coprocess session."""


class CoprocessError(Exception):
    """Base class for every failure surfaced by a session call."""


class PipeAllocationError(CoprocessError):
    """Raised when the request/response/diagnostics pipes cannot be created."""


class SpawnError(CoprocessError):
    """Raised when the worker process cannot be started or its pipes configured."""


class WriteFailure(CoprocessError):
    """Raised when writing a request to the worker fails."""


class ReadFailure(CoprocessError):
    """Raised when reading the worker's response fails."""


class EvaluationTimeout(CoprocessError):
    """Raised when a call exceeds the configured evaluate timeout."""


class EvaluationError(CoprocessError):
    """Raised with the worker's own diagnostics as the message."""


class NoDiagnostics(EvaluationError):
    """The response stream ended and the worker left nothing on stderr."""


class DiagnosticsReadFailure(EvaluationError):
    """The diagnostics pipe could not be read after a failed evaluation."""
