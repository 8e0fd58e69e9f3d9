from .step_workflows.manifest import apply_manifest, converge
from .hosts import HostRegistry, parse_host_spec
from .model import Host, Step, Scenario, ChangePolicy, StepStatus
from .runner import run_scenario, run_suite, load_suite, make_context
from .dsl import sh, write_file, retry, expect_output, for_each_pair, scenario, suite, matrix, build, ScenarioBuilder

__all__ = [
    "sh", "write_file", "retry", "expect_output", "for_each_pair", "scenario", "suite", "matrix",
    "build", "ScenarioBuilder", "apply_manifest", "converge", "HostRegistry", "parse_host_spec",
    "Host", "Step", "Scenario", "ChangePolicy", "StepStatus",
    "run_scenario", "run_suite", "load_suite", "make_context",
]
