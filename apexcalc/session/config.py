"""Configuration for session behavior."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass


@dataclass
class SessionConfig:
    """Configuration for session behavior.

    Selects the worker program and tunes the pipe I/O. The defaults spawn
    ``bc -lLq`` and wait without a bound, as a plain session always has.
    """

    # Worker process
    worker_command: str = "bc"
    worker_args: tuple[str, ...] = ("-lLq",)

    # Framing
    sentinel: str = "@"
    read_chunk_size: int = 127
    diagnostics_buffer_size: int = 511

    # Timeout settings
    evaluate_timeout: float | None = None
    shutdown_timeout: float = 5.0

    @classmethod
    def from_env(cls, **overrides: object) -> SessionConfig:
        """Build a config from ``APEX_*`` environment variables.

        Keyword overrides win over the environment.
        """
        values: dict[str, object] = {}
        if "APEX_BC" in os.environ:
            values["worker_command"] = os.environ["APEX_BC"]
        if "APEX_BC_ARGS" in os.environ:
            values["worker_args"] = tuple(shlex.split(os.environ["APEX_BC_ARGS"]))
        if "APEX_TIMEOUT" in os.environ:
            values["evaluate_timeout"] = float(os.environ["APEX_TIMEOUT"])
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    @property
    def argv(self) -> list[str]:
        """Full command line used to spawn the worker."""
        return [self.worker_command, *self.worker_args]
