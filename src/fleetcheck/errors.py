# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class SuiteError(Exception):
    """
    Structured suite-definition error with enough context for:
      - clean CLI output
      - debugging without full tracebacks
    """
    kind: str
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class HostUnreachable(ConnectionError):
    """The host could not be reached or refused authentication."""

    def __init__(self, host: str, reason: str):
        super().__init__(f"host {host} unreachable: {reason}")
        self.host = host
        self.reason = reason


class CommandTimeout(TimeoutError):
    """A command exceeded the configured ceiling and was terminated."""

    def __init__(self, host: str, command: str, timeout: float):
        super().__init__(f"[{host}] command timed out after {timeout:g}s: {command}")
        self.host = host
        self.command = command
        self.timeout = timeout


class RunCancelled(Exception):
    """The caller cancelled the run."""


class RetryExhausted(TimeoutError):
    """
    Raised when retry_until gives up. The last error (if any) is chained as
    __cause__ and kept on `last_error`.
    """

    def __init__(
        self,
        attempts: int,
        elapsed: float,
        last_result: Any = None,
        last_error: BaseException | None = None,
    ):
        reason = f": {last_error}" if last_error else ""
        super().__init__(f"gave up after {attempts} attempt(s) in {elapsed:.1f}s{reason}")
        self.attempts = attempts
        self.elapsed = elapsed
        self.last_result = last_result
        self.last_error = last_error
