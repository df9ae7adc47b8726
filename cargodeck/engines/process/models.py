"""Events emitted by a streaming command."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Union

Source = Literal["stdout", "stderr"]


@dataclass(frozen=True)
class OutputLine:
    """One line of child output, without its trailing newline."""

    line: str
    source: Source


@dataclass(frozen=True)
class Completion:
    """Terminal event of a stream; emitted exactly once."""

    success: bool
    exit_code: int | None
    output: list[str] = field(default_factory=list)
    duration_ms: int = 0
    cancelled: bool = False
    timed_out: bool = False
    error: str | None = None


StreamEvent = Union[OutputLine, Completion]
