# cli.py
from __future__ import annotations

import atexit
import sys
import threading
from pathlib import Path

import click

from fleetcheck.config import load_settings
from fleetcheck.errors import SuiteError
from fleetcheck.hosts import HostRegistry
from fleetcheck.log import configure_logging
from fleetcheck.report import report, write_json
from fleetcheck.runner import RunContext, Suite, load_suite, make_context, run_suite
from fleetcheck.ui.console import Console, get_console, set_console


DEFAULT_SUITE = "fleetcheck_suite.py"
SUITE_DIRS = (Path("."), Path("suites"))


def find_suite_files(root: Path | None = None) -> list[Path]:
    """Every *_suite.py in `root` and its suites/ directory, sorted."""
    base = root or Path(".")
    found: set[Path] = set()
    for sub in SUITE_DIRS:
        folder = base / sub
        if folder.is_dir():
            found.update(p for p in folder.glob("*_suite.py") if p.is_file())
    return sorted(found)


def _pick_suite(candidates: list[Path], where: Path) -> Path:
    console = get_console()
    # an explicit default suite wins over siblings
    for p in candidates:
        if p.name == DEFAULT_SUITE and p.parent == where:
            return p
    if len(candidates) == 1:
        return candidates[0]

    if not candidates:
        console.print_error(
            "No suite file found",
            f"Could not find any suite files in {where.resolve()}.",
            details=[f"Looked for *_suite.py in: {', '.join(str(where / d) for d in SUITE_DIRS)}"],
            suggestion=f"Create {DEFAULT_SUITE} or pass one explicitly:\n  fleetcheck run my_suite.py",
        )
    else:
        console.print_error(
            "Multiple suite files found",
            "Found several suites; pick one:",
            details=[str(p) for p in candidates],
            suggestion=f"Run one explicitly:\n  fleetcheck run {candidates[0]}",
        )
    sys.exit(1)


def discover_suite(suite_arg: str | None) -> Path:
    """
    Resolve the suite to run: a file, a file name without .py, a directory
    to search, or (no argument) the working directory.

    Raises:
        SystemExit: If no single suite can be chosen
    """
    if not suite_arg:
        return _pick_suite(find_suite_files(), Path("."))

    path = Path(suite_arg)
    if path.is_dir():
        return _pick_suite(find_suite_files(path), path)
    if not path.exists() and path.suffix != ".py":
        path = path.with_name(path.name + ".py")
    if not path.exists():
        get_console().print_error(
            "Suite file not found",
            f"Could not find suite file: {suite_arg}",
            suggestion="Create a suite file or specify a different path:\n  fleetcheck run my_suite.py",
        )
        sys.exit(1)
    return path


def _load(ctx: click.Context, suite_arg: str | None, hosts: str | None) -> tuple[Suite, HostRegistry]:
    console = get_console()
    suite_path = discover_suite(suite_arg)
    try:
        suite = load_suite(suite_path)
    except Exception as e:
        console.print_error(
            "Failed to load suite",
            f"Could not load suite from {suite_path}",
            details=[f"{type(e).__name__}: {e}"],
        )
        if console.debug:
            console.print_exception(e)
        sys.exit(1)

    registry = suite.registry
    if hosts:
        try:
            registry = registry.restrict(hosts.split(","))
        except ValueError as e:
            console.print_error("Invalid --hosts", str(e))
            sys.exit(1)

    if len(registry) == 0:
        console.print_error(
            "No hosts",
            "The suite declares no HOSTS and none were given.",
            suggestion="Declare HOSTS in the suite or pass them:\n  fleetcheck run --hosts=localhost,root@10.0.0.5",
        )
        sys.exit(1)
    return suite, registry


def _run_interruptible(run_ctx: RunContext, suite: Suite) -> tuple[list, bool]:
    """
    Run the suite on a worker thread so Ctrl-C can cancel it: no new steps are
    dispatched, in-flight commands finish or hit the command timeout.
    """
    console = get_console()
    holder: dict = {}

    def _work() -> None:
        try:
            holder["results"] = run_suite(run_ctx, suite.scenarios)
        except BaseException as e:  # handed back to the main thread
            holder["error"] = e

    worker = threading.Thread(target=_work, name="suite", daemon=True)
    worker.start()
    interrupted = False
    while worker.is_alive():
        try:
            worker.join(0.2)
        except KeyboardInterrupt:
            if interrupted:
                raise
            interrupted = True
            console.print_info("\nInterrupted: cancelling run (press Ctrl-C again to abort)")
            run_ctx.cancel.set()

    if "error" in holder:
        raise holder["error"]
    return holder["results"], interrupted


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and command output)",
)
@click.pass_context
def cli(ctx, debug):
    """fleetcheck: multi-host acceptance test runner."""
    console = Console(debug=debug)
    set_console(console)
    configure_logging(debug)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("suite", required=False)
@click.option("--hosts", default=None, help="Comma-separated host names or [user@]address[:port] specs")
@click.option("--parallel/--sequential", default=None, help="Run each step on all its hosts at once")
@click.option("--timeout", default=None, type=float, help="Per-command timeout in seconds")
@click.option("--retry-wait", default=None, type=float, help="Default max wait for retried steps")
@click.option("--apply-command", default=None, help="Command used to apply manifests")
@click.option("--report-json", default=None, type=click.Path(dir_okay=False), help="Write a JSON report here")
@click.option("--fail-fast/--no-fail-fast", default=False, help="Stop after the first failing scenario")
@click.pass_context
def run(ctx, suite, hosts, parallel, timeout, retry_wait, apply_command, report_json, fail_fast):
    """Run an acceptance suite against its hosts."""
    console = get_console()
    loaded, registry = _load(ctx, suite, hosts)

    try:
        settings = load_settings(
            command_timeout=timeout,
            parallel=parallel,
            retry_max_wait=retry_wait,
            apply_command=apply_command,
        )
        run_ctx = make_context(registry, settings, console=console, fail_fast=fail_fast)
        # an aborted run leaves the worker holding sessions; close them on exit
        atexit.register(run_ctx.executor.close)

        console.print_run_started(
            suite=loaded.path.name,
            host_count=len(registry),
            scenario_count=len(loaded.scenarios),
            parallel=settings.parallel,
        )

        results, interrupted = _run_interruptible(run_ctx, loaded)

        summary = report(results, console=console, output_tail=settings.output_tail)
        if report_json:
            out = write_json(summary, results, report_json, settings.output_tail)
            console.print_info(f"\nReport written to {out}")

        if interrupted:
            sys.exit(130)
        sys.exit(summary.exit_code)

    except KeyboardInterrupt:
        console.print_info("\nAborted by user")
        sys.exit(130)
    except SuiteError as e:
        console.print_error("Invalid suite", str(e))
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.argument("suite", required=False)
@click.option("--hosts", default=None, help="Comma-separated host names or [user@]address[:port] specs")
@click.pass_context
def hosts(ctx, suite, hosts):
    """Show the hosts a suite would run against."""
    _suite, registry = _load(ctx, suite, hosts)
    get_console().print_hosts(registry)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
