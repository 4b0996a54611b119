from __future__ import annotations

from pydantic import BaseModel, Field

SENTINEL = "@"
CLOSE_COMMAND = "close"


def request_trailer(sentinel: str = SENTINEL) -> str:
    """Instruction appended to every request so the worker prints the sentinel."""
    return f'\nprint "{sentinel}"\n'


class Request(BaseModel):
    expression: str = Field(description="Expression text sent verbatim to the worker")
    sentinel: str = Field(default=SENTINEL, min_length=1, max_length=1)

    @property
    def is_close(self) -> bool:
        return self.expression == CLOSE_COMMAND

    def payload(self) -> bytes:
        return (self.expression + request_trailer(self.sentinel)).encode("utf-8")


class Response(BaseModel):
    raw: str = Field(description="Worker output accumulated before the sentinel")
    text: str = Field(description="Output with the sentinel's priming newline removed")
    diagnostics: str = Field(default="", description="Worker stderr text seen during the call")

    @property
    def ok(self) -> bool:
        return not self.diagnostics
