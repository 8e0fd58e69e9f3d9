# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Union


class Action(str, Enum):
    RUN_COMMAND = "run-command"
    APPLY_MANIFEST = "apply-manifest"
    WRITE_FILE = "write-file"


class ChangePolicy(str, Enum):
    """What a manifest application is allowed to report."""
    ANY = "any"                              # catch_failures
    EXPECT_CHANGES = "expect-changes"
    EXPECT_NO_CHANGES = "expect-no-changes"  # catch_changes


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    ERRORED = "errored"


@dataclass(frozen=True)
class Host:
    """A test target. Connections are owned by the executor, not the host."""
    name: str
    address: str
    port: int = 22
    user: str | None = None
    password: str | None = None
    key_path: str | None = None
    roles: tuple[str, ...] = ()
    transport: str = "ssh"   # "ssh" | "local"

    def __str__(self) -> str:
        return self.name


@dataclass
class CommandResult:
    """Captured outcome of one command on one host."""
    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    # Only meaningful for manifest applications
    changed: bool = False
    apply_failed: bool = False

    @property
    def output(self) -> str:
        if self.stderr:
            return f"{self.stdout}{self.stderr}"
        return self.stdout


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval retry; None falls back to the run settings."""
    max_wait: float | None = None
    poll_interval: float | None = None


# A step payload may be fixed text or templated per host.
Payload = Union[str, Callable[[Host], str]]
Predicate = Callable[[CommandResult], Optional[bool]]


@dataclass(frozen=True)
class Step:
    """
    A single action inside a scenario.

    Targets: `hosts` (names) and `roles` are unioned; both empty means every
    host in the registry.
    """
    name: str
    action: Action
    payload: Payload
    path: str | None = None  # write-file destination

    hosts: tuple[str, ...] = ()
    roles: tuple[str, ...] = ()

    policy: ChangePolicy = ChangePolicy.ANY
    acceptable_exit_codes: tuple[int, ...] = (0,)
    predicate: Predicate | None = None
    retry: RetryPolicy | None = None
    parallel: bool | None = None  # None -> run default

    def render(self, host: Host) -> str:
        if callable(self.payload):
            return self.payload(host)
        return self.payload


@dataclass
class Scenario:
    """One test case: steps executed in declared order."""
    name: str
    steps: list[Step] = field(default_factory=list)


@dataclass
class StepResult:
    step: str
    host: str
    status: StepStatus = StepStatus.PENDING
    duration: float = 0.0
    result: CommandResult | None = None
    message: str = ""
    # set for errored results: unreachable | timeout | cancelled | error
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == StepStatus.PASSED


@dataclass
class ScenarioResult:
    name: str
    steps: List[StepResult] = field(default_factory=list)
    duration: float = 0.0

    @property
    def status(self) -> StepStatus:
        if not self.steps:
            return StepStatus.FAILED
        if any(r.status in (StepStatus.FAILED, StepStatus.ERRORED) for r in self.steps):
            return StepStatus.FAILED
        return StepStatus.PASSED

    def counts(self) -> Dict[StepStatus, int]:
        out: Dict[StepStatus, int] = {s: 0 for s in StepStatus}
        for r in self.steps:
            out[r.status] += 1
        return out
