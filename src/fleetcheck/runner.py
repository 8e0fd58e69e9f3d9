# runner.py
from __future__ import annotations

import runpy
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from . import dsl
from .config import Settings
from .errors import CommandTimeout, HostUnreachable, RetryExhausted, RunCancelled, SuiteError
from .executor import CommandExecutor, fan_out
from .hosts import HostRegistry
from .log import get_logger
from .model import (
    Action,
    ChangePolicy,
    CommandResult,
    Host,
    Scenario,
    ScenarioResult,
    Step,
    StepResult,
    StepStatus,
)
from .retry import retry_until
from .ui.console import Console, get_console

log = get_logger(__name__)


# ----------------------------------------------------------------------
# Suite loading (local python file)
# ----------------------------------------------------------------------

@dataclass
class Suite:
    path: Path
    scenarios: List[Scenario]
    registry: HostRegistry


def load_suite(path: str | Path) -> Suite:
    """
    Load a suite from a python file path.

    The file must define either:
      - suite() -> List[Scenario]
      - SCENARIOS = [Scenario, ...]
    and may define HOSTS = [Host | "host-spec", ...].
    """
    suite_path = Path(path).expanduser().resolve()
    if not suite_path.exists():
        raise FileNotFoundError(f"Suite file not found: {suite_path}")
    if suite_path.suffix != ".py":
        raise SuiteError("invalid_suite", f"Suite must be a .py file, got: {suite_path.name}")

    module_name = f"fleetcheck_suite_{suite_path.stem}"
    globals_dict = runpy.run_path(str(suite_path), run_name=module_name)

    try:
        registry = HostRegistry(globals_dict.get("HOSTS") or [])
    except (TypeError, ValueError) as e:
        raise SuiteError("invalid_hosts", str(e), {"suite": suite_path.name}) from e

    scenarios = None
    suite_fn = globals_dict.get("suite")
    # `from fleetcheck import suite` puts the helper itself in the namespace
    if callable(suite_fn) and suite_fn is not dsl.suite:
        try:
            scenarios = suite_fn()
        except TypeError as e:
            if "positional argument" in str(e):
                raise SuiteError(
                    "invalid_suite",
                    "suite() must take no arguments",
                    {"suite": suite_path.name},
                ) from e
            raise
    elif "SCENARIOS" in globals_dict:
        scenarios = globals_dict["SCENARIOS"]

    if not isinstance(scenarios, list) or not all(isinstance(s, Scenario) for s in scenarios):
        raise SuiteError(
            "invalid_suite",
            "Suite must return/define a List[Scenario]. "
            "Define suite() -> List[Scenario] or SCENARIOS = [Scenario, ...].",
            {"suite": suite_path.name},
        )
    if not scenarios:
        raise SuiteError("invalid_suite", "Suite defines no scenarios", {"suite": suite_path.name})

    validate_suite(scenarios, registry)
    return Suite(path=suite_path, scenarios=scenarios, registry=registry)


def validate_suite(scenarios: List[Scenario], registry: HostRegistry) -> None:
    """
    Reject duplicate scenario names and steps naming unknown hosts or roles,
    so no step selects an empty host set. An empty registry skips the host
    checks; the hosts then come from the command line.
    """
    names = [s.name for s in scenarios]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise SuiteError("invalid_suite", f"Duplicate scenario names found: {dupes}")

    if len(registry) == 0:
        return

    known_roles = {r for h in registry for r in h.roles}
    for sc in scenarios:
        for step in sc.steps:
            where = f"Step '{step.name}' in scenario '{sc.name}'"
            for h in step.hosts:
                if h not in registry:
                    raise SuiteError(
                        "unknown_host",
                        f"{where} targets unknown host '{h}'",
                        {"known_hosts": registry.names},
                    )
            for role in step.roles:
                if role not in known_roles:
                    raise SuiteError(
                        "unknown_role",
                        f"{where} targets role '{role}' that no host carries",
                        {"known_roles": sorted(known_roles)},
                    )


# ----------------------------------------------------------------------
# Run context
# ----------------------------------------------------------------------

@dataclass
class RunContext:
    """Everything a scenario run needs, passed explicitly."""
    registry: HostRegistry
    executor: CommandExecutor
    settings: Settings
    console: Console = field(default_factory=get_console)
    cancel: threading.Event = field(default_factory=threading.Event)
    fail_fast: bool = False

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()


# ----------------------------------------------------------------------
# Exit criteria
# ----------------------------------------------------------------------

def check_result(step: Step, res: CommandResult) -> None:
    """Raise AssertionError when `res` doesn't meet the step's exit criteria."""
    if step.action == Action.APPLY_MANIFEST:
        if res.apply_failed:
            raise AssertionError(f"manifest application failed (exit {res.exit_code})")
        if step.policy == ChangePolicy.EXPECT_NO_CHANGES and res.changed:
            raise AssertionError(
                f"changes reported where none were expected (exit {res.exit_code}); "
                "the manifest is not idempotent"
            )
        if step.policy == ChangePolicy.EXPECT_CHANGES and not res.changed:
            raise AssertionError(f"no changes reported (exit {res.exit_code})")
    elif res.exit_code not in step.acceptable_exit_codes:
        allowed = ", ".join(str(c) for c in step.acceptable_exit_codes)
        raise AssertionError(f"exit code {res.exit_code} not in [{allowed}]")

    if step.predicate is not None and step.predicate(res) is False:
        raise AssertionError("output check rejected the result")


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _perform(ctx: RunContext, step: Step, host: Host) -> CommandResult:
    payload = step.render(host)
    if step.action == Action.RUN_COMMAND:
        return ctx.executor.execute(host, payload)
    if step.action == Action.APPLY_MANIFEST:
        return ctx.executor.apply_manifest(host, payload)
    if step.action == Action.WRITE_FILE:
        if not step.path:
            raise SuiteError("invalid_step", f"write-file step '{step.name}' has no path")
        return ctx.executor.write_file(host, step.path, payload)
    raise SuiteError("invalid_step", f"Unknown action for step '{step.name}': {step.action!r}")


def _attempt(ctx: RunContext, step: Step, host: Host) -> CommandResult:
    if step.retry is None:
        res = _perform(ctx, step, host)
        try:
            check_result(step, res)
        except AssertionError as e:
            e.result = res  # type: ignore[attr-defined]
            raise
        return res

    max_wait = step.retry.max_wait
    if max_wait is None:
        max_wait = ctx.settings.retry_max_wait
    poll = step.retry.poll_interval or ctx.settings.retry_poll_interval

    return retry_until(
        lambda: _perform(ctx, step, host),
        lambda res: check_result(step, res),
        max_wait,
        poll,
        cancel=ctx.cancel,
    )


def _run_on_host(ctx: RunContext, step: Step, host: Host) -> StepResult:
    """Pending -> Running -> Passed | Failed | Errored for one host."""
    sr = StepResult(step=step.name, host=host.name, status=StepStatus.RUNNING)
    started = time.monotonic()
    try:
        sr.result = _attempt(ctx, step, host)
        sr.status = StepStatus.PASSED
    except AssertionError as e:
        sr.status = StepStatus.FAILED
        sr.message = str(e) or "assertion failed"
        sr.result = getattr(e, "result", None)
    except RetryExhausted as e:
        # deadline exceeded: an infrastructure fault whatever the last attempt saw
        sr.status = StepStatus.ERRORED
        sr.result = e.last_result
        sr.message = str(e)
        sr.error_kind = "unreachable" if isinstance(e.last_error, ConnectionError) else "timeout"
    except HostUnreachable as e:
        sr.status, sr.error_kind, sr.message = StepStatus.ERRORED, "unreachable", str(e)
    except CommandTimeout as e:
        sr.status, sr.error_kind, sr.message = StepStatus.ERRORED, "timeout", str(e)
    except RunCancelled as e:
        sr.status, sr.error_kind, sr.message = StepStatus.ERRORED, "cancelled", str(e) or "cancelled"
    except SuiteError:
        raise
    except Exception as e:
        log.error("step.crashed", step=step.name, host=host.name, error=repr(e))
        sr.status, sr.error_kind, sr.message = StepStatus.ERRORED, "error", f"{type(e).__name__}: {e}"
    sr.duration = time.monotonic() - started
    return sr


def _targets(ctx: RunContext, step: Step) -> List[Host]:
    # hosts left out by --hosts simply aren't targeted
    names = [n for n in step.hosts if n in ctx.registry]
    if step.hosts and not names and not step.roles:
        return []
    return ctx.registry.select(names=names, roles=step.roles)


def _not_run(step: Step, host: Host, kind: str, message: str) -> StepResult:
    return StepResult(
        step=step.name,
        host=host.name,
        status=StepStatus.ERRORED,
        message=message,
        error_kind=kind,
    )


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_scenario(ctx: RunContext, scenario: Scenario) -> ScenarioResult:
    """
    Run steps in declared order. A parallel step fans out to all its hosts
    and the scenario waits for every branch before the next step (barrier).
    A host that turns out unreachable gets its remaining steps marked errored
    without dispatching them.
    """
    console = ctx.console
    out = ScenarioResult(name=scenario.name)
    dead: set[str] = set()
    started = time.monotonic()

    console.print_scenario_start(scenario.name)

    for step in scenario.steps:
        targets = _targets(ctx, step)
        if not targets:
            console.print_step_skipped(step.name, "no matching hosts")
            continue

        if ctx.cancelled:
            results = [_not_run(step, h, "cancelled", "run cancelled before dispatch") for h in targets]
        else:
            live = [h for h in targets if h.name not in dead]
            parallel = ctx.settings.parallel if step.parallel is None else step.parallel
            ran = fan_out(live, lambda h: _run_on_host(ctx, step, h), parallel=parallel)
            by_host = {r.host: r for r in ran}
            results = [
                by_host.get(h.name) or _not_run(step, h, "unreachable", "host unreachable earlier in scenario")
                for h in targets
            ]

        for r in results:
            if r.error_kind == "unreachable":
                dead.add(r.host)
            console.print_step_result(r)
        out.steps.extend(results)

    if not out.steps:
        # every step was filtered out; an empty scenario never passes
        none_ran = StepResult(
            step="(no steps ran)",
            host="-",
            status=StepStatus.ERRORED,
            message="no step matched any selected host",
            error_kind="no-hosts",
        )
        console.print_step_result(none_ran)
        out.steps.append(none_ran)

    out.duration = time.monotonic() - started
    console.print_scenario_done(scenario.name, out.status.value, out.duration)
    return out


def run_suite(ctx: RunContext, scenarios: List[Scenario]) -> List[ScenarioResult]:
    """
    Run scenarios one after another. A failing scenario never stops its
    siblings unless ctx.fail_fast is set. Connections are closed at the end.
    """
    results: List[ScenarioResult] = []
    try:
        for sc in scenarios:
            res = run_scenario(ctx, sc)
            results.append(res)
            if ctx.fail_fast and res.status != StepStatus.PASSED:
                ctx.console.print_info("Fail-fast: not running remaining scenarios")
                break
    finally:
        ctx.executor.close()
    return results


def make_context(
    registry: HostRegistry,
    settings: Settings,
    *,
    console: Optional[Console] = None,
    executor: Optional[CommandExecutor] = None,
    fail_fast: bool = False,
) -> RunContext:
    return RunContext(
        registry=registry,
        executor=executor or CommandExecutor(settings),
        settings=settings,
        console=console or get_console(),
        fail_fast=fail_fast,
    )
