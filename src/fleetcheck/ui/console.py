"""Console output formatting utilities for fleetcheck."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Iterable, Optional, TextIO

if TYPE_CHECKING:
    from ..model import Host, StepResult
    from ..report import Failure, Summary


def _tail(text: str, limit: int) -> str:
    if limit and len(text) > limit:
        return "..." + text[-limit:]
    return text


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, stream: Optional[TextIO] = None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            stream: Where normal output goes (defaults to sys.stdout at write time)
        """
        self.debug = debug
        self._stream = stream

    def _out(self, text: str = "") -> None:
        print(text, file=self._stream or sys.stdout)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._out(f"\n{title}")
        self._out("-" * len(title))

    def print_run_started(self, suite: str, host_count: int, scenario_count: int, parallel: bool) -> None:
        """Print run start information."""
        self._out("\nRUN STARTED")
        self._out(f"Suite: {suite}")
        self._out(f"Hosts: {host_count}")
        self._out(f"Scenarios: {scenario_count}")
        self._out(f"Parallel: {'yes' if parallel else 'no'}")
        self._out()

    def print_hosts(self, hosts: Iterable["Host"]) -> None:
        self.print_header("HOSTS")
        for h in hosts:
            user = f"{h.user}@" if h.user else ""
            roles = f"  roles={','.join(h.roles)}" if h.roles else ""
            self._out(f"  {h.name}: {user}{h.address}:{h.port} ({h.transport}){roles}")

    def print_scenario_start(self, name: str) -> None:
        self._out(f"\nSCENARIO: {name}")

    def print_step_skipped(self, name: str, reason: str) -> None:
        self._out(f"  STEP: {name} (skipped: {reason})")

    def print_step_result(self, r: "StepResult") -> None:
        self._out(f"  STEP: {r.step} [{r.host}] {r.status.value.upper()} ({r.duration:.1f}s)")
        if r.message and not r.ok:
            self._out(f"    {r.message.splitlines()[0]}")
        if self.debug and r.result is not None and r.result.output:
            for line in r.result.output.rstrip().splitlines():
                self._out(f"    | {line}")

    def print_scenario_done(self, name: str, status: str, duration: float) -> None:
        self._out(f"STATUS: {status} ({duration:.1f}s)")

    def print_summary(self, summary: "Summary", output_tail: int = 4000) -> None:
        """Print final results summary."""
        self._out("\n" + "=" * 40)
        self._out("RESULTS")
        self._out("=" * 40)
        self._out(
            f"Scenarios: {summary.scenarios_passed} passed, {summary.scenarios_failed} failed"
        )
        self._out(
            f"Steps: {summary.passed} passed, {summary.failed} failed, {summary.errored} errored"
        )
        if not summary.failures:
            return
        self._out("\nFAILURES")
        for f in summary.failures:
            self.print_failure(f, output_tail)

    def print_failure(self, f: "Failure", output_tail: int = 4000) -> None:
        self._out(f"\n- {f.scenario} / {f.step} on {f.host}: {f.status}")
        if f.message:
            self._out(f"  Reason: {f.message}")
        if f.command:
            self._out(f"  Command: {f.command}")
        if f.exit_code is not None:
            self._out(f"  Exit code: {f.exit_code}")
        for label, text in (("stdout", f.stdout), ("stderr", f.stderr)):
            if text:
                self._out(f"  {label}:")
                for line in _tail(text, output_tail).rstrip().splitlines():
                    self._out(f"    {line}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
