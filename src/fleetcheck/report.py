# report.py
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from .model import ScenarioResult, StepResult, StepStatus
from .ui.console import Console, get_console

# -------------------- Schemas --------------------


class Failure(BaseModel):
    scenario: str
    step: str
    host: str
    status: str
    message: str = ""
    error_kind: Optional[str] = None
    command: Optional[str] = None
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""


class Summary(BaseModel):
    passed: int = 0
    failed: int = 0
    errored: int = 0
    scenarios_passed: int = 0
    scenarios_failed: int = 0
    first_failure: Optional[Failure] = None
    failures: List[Failure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.errored == 0

    @property
    def exit_code(self) -> int:
        """0 on all-pass, else the failure count capped so it never wraps to 0."""
        return min(self.failed + self.errored, 255)


class StepRecord(BaseModel):
    step: str
    host: str
    status: str
    duration: float
    message: str = ""
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""


class ScenarioRecord(BaseModel):
    name: str
    status: str
    duration: float
    steps: List[StepRecord]


class ReportDocument(BaseModel):
    generated_at: datetime
    summary: Summary
    scenarios: List[ScenarioRecord]


# -------------------- Aggregation --------------------


def _tail(text: str, limit: int) -> str:
    return text[-limit:] if limit and len(text) > limit else text


def _failure(scenario: str, r: StepResult, output_tail: int) -> Failure:
    res = r.result
    return Failure(
        scenario=scenario,
        step=r.step,
        host=r.host,
        status=r.status.value,
        message=r.message,
        error_kind=r.error_kind,
        command=res.command if res else None,
        exit_code=res.exit_code if res else None,
        stdout=_tail(res.stdout, output_tail) if res else "",
        stderr=_tail(res.stderr, output_tail) if res else "",
    )


def summarize(results: Sequence[ScenarioResult], output_tail: int = 4000) -> Summary:
    """Counts plus every failure (in run order); the inputs are not modified."""
    summary = Summary()
    for sc in results:
        if sc.status == StepStatus.PASSED:
            summary.scenarios_passed += 1
        else:
            summary.scenarios_failed += 1
        for r in sc.steps:
            if r.status == StepStatus.PASSED:
                summary.passed += 1
            elif r.status == StepStatus.FAILED:
                summary.failed += 1
                summary.failures.append(_failure(sc.name, r, output_tail))
            elif r.status == StepStatus.ERRORED:
                summary.errored += 1
                summary.failures.append(_failure(sc.name, r, output_tail))
    if summary.failures:
        summary.first_failure = summary.failures[0]
    return summary


def report(
    results: Sequence[ScenarioResult],
    *,
    console: Console | None = None,
    output_tail: int = 4000,
) -> Summary:
    """Aggregate results and write the human-readable summary."""
    summary = summarize(results, output_tail)
    (console or get_console()).print_summary(summary, output_tail)
    return summary


def write_json(
    summary: Summary,
    results: Sequence[ScenarioResult],
    path: str | Path,
    output_tail: int = 4000,
) -> Path:
    """Machine-readable report for CI systems."""
    doc = ReportDocument(
        generated_at=datetime.now(timezone.utc),
        summary=summary,
        scenarios=[
            ScenarioRecord(
                name=sc.name,
                status=sc.status.value,
                duration=round(sc.duration, 3),
                steps=[
                    StepRecord(
                        step=r.step,
                        host=r.host,
                        status=r.status.value,
                        duration=round(r.duration, 3),
                        message=r.message,
                        exit_code=r.result.exit_code if r.result else None,
                        stdout=_tail(r.result.stdout, output_tail) if r.result else "",
                        stderr=_tail(r.result.stderr, output_tail) if r.result else "",
                    )
                    for r in sc.steps
                ],
            )
            for sc in results
        ],
    )
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(doc.model_dump_json(indent=2), encoding="utf-8")
    return out
