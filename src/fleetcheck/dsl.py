# src/fleetcheck/dsl.py
from __future__ import annotations

import re
from typing import Any, Callable, Iterable, List, Optional, Sequence

from .hosts import HostRegistry
from .model import Action, CommandResult, Host, Payload, Predicate, RetryPolicy, Scenario, Step


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: Payload,
    *,
    hosts: Optional[Sequence[str]] = None,
    roles: Optional[Sequence[str]] = None,
    acceptable_exit_codes: Sequence[int] = (0,),
    expect: Optional[Predicate] = None,
    retry: Optional[RetryPolicy] = None,
    parallel: Optional[bool] = None,
) -> Step:
    """Create a shell step. `cmd` may be a string or a callable(host) -> str."""
    return Step(
        name=name,
        action=Action.RUN_COMMAND,
        payload=cmd,
        hosts=tuple(hosts or ()),
        roles=tuple(roles or ()),
        acceptable_exit_codes=tuple(acceptable_exit_codes),
        predicate=expect,
        retry=retry,
        parallel=parallel,
    )


def write_file(
    name: str,
    path: str,
    content: Payload,
    *,
    hosts: Optional[Sequence[str]] = None,
    roles: Optional[Sequence[str]] = None,
    parallel: Optional[bool] = None,
) -> Step:
    """Create a step that writes `content` to `path` on each target host."""
    return Step(
        name=name,
        action=Action.WRITE_FILE,
        payload=content,
        path=path,
        hosts=tuple(hosts or ()),
        roles=tuple(roles or ()),
        parallel=parallel,
    )


def retry(max_wait: float | None = None, poll_interval: float | None = None) -> RetryPolicy:
    """
    Retry a step at a fixed interval until it passes or `max_wait` elapses.
    Omitted values come from the run settings (retry_max_wait / retry_poll_interval).
    """
    if max_wait is not None and max_wait < 0:
        raise ValueError("retry() needs max_wait >= 0")
    if poll_interval is not None and poll_interval <= 0:
        raise ValueError("retry() needs poll_interval > 0")
    return RetryPolicy(max_wait=max_wait, poll_interval=poll_interval)


def expect_output(*patterns: str, stream: str = "stdout") -> Callable[[CommandResult], bool]:
    """
    Predicate: every regex in `patterns` must match the captured stream.

    Raises AssertionError naming the first pattern that didn't match, so the
    report shows what was missing.
    """
    compiled = [re.compile(p) for p in patterns]

    def _check(result: CommandResult) -> bool:
        text = getattr(result, stream)
        for rx in compiled:
            if not rx.search(text):
                raise AssertionError(f"{stream} does not match /{rx.pattern}/")
        return True

    return _check


def for_each_pair(
    name: str,
    build: Callable[[Host, Host], str],
    registry: HostRegistry,
    *,
    check: Optional[Callable[[Host, Host], Predicate]] = None,
    **step_kwargs: Any,
) -> List[Step]:
    """
    One step per ordered pair of distinct hosts (e.g. "A can reach B").

    Each generated step targets the source host; `build(src, dst)` yields its
    command and `check(src, dst)`, if given, its output predicate. Pairs are
    independent steps with independent results.
    """
    expect = step_kwargs.pop("expect", None)
    return [
        sh(
            f"{name} ({src} -> {dst})",
            build(src, dst),
            hosts=[src.name],
            expect=check(src, dst) if check else expect,
            **step_kwargs,
        )
        for src, dst in registry.pairs()
    ]


# ---------------------------------------------------------------------
# Scenario helpers
# ---------------------------------------------------------------------

def _flatten(items: Iterable[Any]) -> List[Step]:
    out: List[Step] = []
    for item in items:
        if isinstance(item, Step):
            out.append(item)
        elif isinstance(item, (list, tuple)):
            out.extend(_flatten(item))
        else:
            raise TypeError(f"Expected Step (or list of Steps), got {type(item).__name__}")
    return out


def scenario(name: str, *steps: Any) -> Scenario:
    """
    Functional scenario helper. Accepts steps and lists of steps, so
    converge(...) and for_each_pair(...) can be passed directly.
    """
    steps_final = _flatten(steps)
    if not steps_final:
        raise ValueError(f"scenario({name!r}) must have at least one step")
    return Scenario(name=name, steps=steps_final)


class ScenarioBuilder:
    def __init__(self, name: str):
        self.name = name
        self._steps: list[Step] = []

    def step(self, *steps: Any):
        self._steps.extend(_flatten(steps))
        return self

    def run(self, name: str, cmd: Payload, **kwargs: Any):
        self._steps.append(sh(name, cmd, **kwargs))
        return self

    def build(self) -> Scenario:
        if not self._steps:
            raise ValueError(f"Scenario '{self.name}' has no steps")
        return Scenario(name=self.name, steps=list(self._steps))


def build(name: str) -> ScenarioBuilder:
    """Convenience: build('smoke').run('uptime', 'uptime').build()"""
    return ScenarioBuilder(name)


class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix("image", ["alpine", "busybox"]).scenarios(
            lambda v: scenario(f"run-{v}", sh("run", f"docker run --rm {v} true"))
        )
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)

    def scenarios(self, builder: Callable[[Any], Scenario]) -> List[Scenario]:
        return [builder(v) for v in self.values]


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)


def suite(*scenarios: Any) -> List[Scenario]:
    """
    Suite definition helper. Users can write:

        def suite():
            return fc.suite(scenario(...), scenario(...))

    or define SCENARIOS = fc.suite(...) directly.
    """
    out: List[Scenario] = []
    for s in scenarios:
        if isinstance(s, Scenario):
            out.append(s)
        elif isinstance(s, (list, tuple)):
            out.extend(suite(*s))
        else:
            raise TypeError(f"Expected Scenario, got {type(s).__name__}")
    return out
