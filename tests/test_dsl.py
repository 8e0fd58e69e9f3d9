"""Tests for the suite-definition helpers."""

from __future__ import annotations

import pytest

import fleetcheck as fc
from fleetcheck.dsl import ScenarioBuilder
from fleetcheck.model import Action, ChangePolicy, CommandResult, Host, Scenario


def result(stdout="", stderr="", exit_code=0):
    return CommandResult(command="x", exit_code=exit_code, stdout=stdout, stderr=stderr)


def test_sh_defaults():
    step = fc.sh("uptime", "uptime")
    assert step.action == Action.RUN_COMMAND
    assert step.payload == "uptime"
    assert step.hosts == () and step.roles == ()
    assert step.acceptable_exit_codes == (0,)
    assert step.retry is None
    assert step.parallel is None


def test_sh_targets_and_codes():
    step = fc.sh("grep", "grep x", hosts=["a"], roles=["web"], acceptable_exit_codes=[0, 1], parallel=True)
    assert step.hosts == ("a",)
    assert step.roles == ("web",)
    assert step.acceptable_exit_codes == (0, 1)
    assert step.parallel is True


def test_render_templated_payload():
    step = fc.sh("t", lambda h: f"curl {h.address}")
    assert step.render(Host(name="a", address="10.0.0.1")) == "curl 10.0.0.1"
    assert fc.sh("plain", "true").render(Host(name="a", address="x")) == "true"


def test_write_file():
    step = fc.write_file("hiera", "/etc/puppetlabs/code/hieradata/default.yaml", "---\n", hosts=["a"])
    assert step.action == Action.WRITE_FILE
    assert step.path.endswith("default.yaml")
    assert step.hosts == ("a",)


def test_retry_validation():
    assert fc.retry().max_wait is None
    assert fc.retry(30, 2).poll_interval == 2
    with pytest.raises(ValueError):
        fc.retry(max_wait=-1)
    with pytest.raises(ValueError):
        fc.retry(poll_interval=0)


class TestExpectOutput:
    def test_all_patterns_must_match(self):
        check = fc.expect_output("Hello from Docker", r"built on node\d")
        assert check(result("Hello from Docker on SIMP\nI was built on node1"))
        with pytest.raises(AssertionError, match="built on"):
            check(result("Hello from Docker on SIMP"))

    def test_stderr_stream(self):
        check = fc.expect_output("warning", stream="stderr")
        assert check(result(stderr="warning: deprecated"))
        with pytest.raises(AssertionError, match="stderr"):
            check(result(stdout="warning"))


def test_converge_is_apply_then_idempotence_check():
    apply, again = fc.converge("docker", "include docker", hosts=["a"])
    assert (apply.name, again.name) == ("docker (apply)", "docker (idempotent)")
    assert apply.policy == ChangePolicy.ANY
    assert again.policy == ChangePolicy.EXPECT_NO_CHANGES
    assert apply.payload == again.payload == "include docker"
    assert apply.hosts == again.hosts == ("a",)


def test_apply_manifest_rejects_unknown_policy():
    with pytest.raises(ValueError):
        fc.apply_manifest("x", "include docker", policy="sometimes")


class TestForEachPair:
    def test_one_step_per_ordered_pair(self, registry):
        steps = fc.for_each_pair("reach", lambda s, d: f"ping -c1 {d.address}", registry)
        assert [(s.name, s.hosts, s.payload) for s in steps] == [
            ("reach (a -> b)", ("a",), "ping -c1 10.0.0.2"),
            ("reach (b -> a)", ("b",), "ping -c1 10.0.0.1"),
        ]

    def test_single_host_has_no_pairs(self):
        assert fc.for_each_pair("reach", lambda s, d: "true", fc.HostRegistry(["localhost"])) == []

    def test_shared_expect_and_retry_reach_every_pair(self, registry):
        expect = fc.expect_output("ok")
        policy = fc.retry(10, 1)
        steps = fc.for_each_pair("reach", lambda s, d: "true", registry, expect=expect, retry=policy)
        assert all(s.predicate is expect and s.retry is policy for s in steps)

    def test_check_builds_per_pair_predicate(self, registry):
        steps = fc.for_each_pair(
            "reach",
            lambda s, d: "curl",
            registry,
            check=lambda s, d: fc.expect_output(f"built on {d.name}"),
        )
        a_to_b, b_to_a = steps
        assert a_to_b.predicate(result("I was built on b"))
        with pytest.raises(AssertionError):
            b_to_a.predicate(result("I was built on b"))


class TestScenario:
    def test_flattens_lists(self, registry):
        sc = fc.scenario(
            "docker",
            fc.converge("docker", "include docker"),
            fc.sh("hello", "docker run hello-world"),
            fc.for_each_pair("reach", lambda s, d: "true", registry),
        )
        assert [s.name for s in sc.steps] == [
            "docker (apply)",
            "docker (idempotent)",
            "hello",
            "reach (a -> b)",
            "reach (b -> a)",
        ]

    def test_empty_scenario_rejected(self):
        with pytest.raises(ValueError):
            fc.scenario("empty")

    def test_non_step_rejected(self):
        with pytest.raises(TypeError):
            fc.scenario("bad", "uptime")

    def test_builder(self):
        sc = fc.build("smoke").run("up", "uptime").step(fc.sh("df", "df -h")).build()
        assert isinstance(sc, Scenario)
        assert [s.name for s in sc.steps] == ["up", "df"]

    def test_empty_builder_rejected(self):
        with pytest.raises(ValueError):
            ScenarioBuilder("nothing").build()


def test_matrix_expands_scenarios():
    scenarios = fc.matrix("image", ["alpine", "busybox"]).scenarios(
        lambda v: fc.scenario(f"run-{v}", fc.sh("run", f"docker run --rm {v} true"))
    )
    assert [s.name for s in scenarios] == ["run-alpine", "run-busybox"]


def test_suite_flattens_and_validates():
    one = fc.scenario("one", fc.sh("x", "true"))
    two = fc.scenario("two", fc.sh("y", "true"))
    assert fc.suite(one, [two]) == [one, two]
    with pytest.raises(TypeError):
        fc.suite(one, "two")
