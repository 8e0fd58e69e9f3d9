# localhost_suite.py
# Smoke suite that needs nothing but a shell: fleetcheck run localhost_suite.py
from __future__ import annotations

from fleetcheck import expect_output, retry, scenario, sh, write_file
from fleetcheck import suite as make_suite

HOSTS = ["localhost"]


def suite():
    return make_suite(
        scenario(
            "shell basics",
            sh("echo", "echo hello", expect=expect_output(r"^hello$")),
            sh("false is allowed to fail", "false", acceptable_exit_codes=[1]),
        ),
        scenario(
            "files",
            write_file("drop marker", "/tmp/fleetcheck-smoke/marker", "ready\n"),
            sh(
                "marker readable",
                "cat /tmp/fleetcheck-smoke/marker",
                expect=expect_output("ready"),
                retry=retry(max_wait=5, poll_interval=0.5),
            ),
        ),
    )
