"""Shared pytest fixtures."""

from __future__ import annotations

import io
import os

# Keep a developer's FLEETCHECK_* environment out of the tests
for _key in [k for k in os.environ if k.startswith("FLEETCHECK_")]:
    del os.environ[_key]

import pytest

from fleetcheck.config import Settings
from fleetcheck.executor import CommandExecutor, ConnectionPool
from fleetcheck.hosts import HostRegistry
from fleetcheck.model import Host
from fleetcheck.runner import RunContext
from fleetcheck.ui.console import Console

from tests.fake_hosts import FakeWorld


@pytest.fixture
def world():
    """Provide a fresh FakeWorld."""
    return FakeWorld()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        command_timeout=5.0,
        retry_max_wait=1.0,
        retry_poll_interval=0.05,
    )


@pytest.fixture
def registry():
    return HostRegistry(
        [
            Host(name="a", address="10.0.0.1", roles=("web",)),
            Host(name="b", address="10.0.0.2", roles=("web", "db")),
        ]
    )


@pytest.fixture
def executor(world, settings):
    return CommandExecutor(settings, pool=ConnectionPool(settings, factory=world.connect))


@pytest.fixture
def console_buf():
    return io.StringIO()


@pytest.fixture
def run_ctx(registry, executor, settings, console_buf):
    """RunContext wired to fake hosts, printing into a buffer."""
    return RunContext(
        registry=registry,
        executor=executor,
        settings=settings,
        console=Console(stream=console_buf),
    )
