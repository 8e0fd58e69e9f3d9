"""Tests for settings loading."""

from __future__ import annotations

from fleetcheck.config import Settings, load_settings


def test_defaults():
    s = Settings(_env_file=None)
    assert s.command_timeout == 600.0
    assert s.parallel is False
    assert s.apply_success_codes == [0, 2]
    assert s.apply_change_codes == [2]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("FLEETCHECK_COMMAND_TIMEOUT", "30")
    monkeypatch.setenv("FLEETCHECK_APPLY_COMMAND", "/opt/puppetlabs/bin/puppet apply --detailed-exitcodes")
    monkeypatch.setenv("FLEETCHECK_APPLY_SUCCESS_CODES", "[0, 2, 6]")
    s = Settings(_env_file=None)
    assert s.command_timeout == 30.0
    assert s.apply_command.startswith("/opt/puppetlabs")
    assert s.apply_success_codes == [0, 2, 6]


def test_env_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("FLEETCHECK_SSH_USER=vagrant\n", encoding="utf-8")
    assert Settings().ssh_user == "vagrant"


def test_load_settings_ignores_unset_options(monkeypatch):
    monkeypatch.setenv("FLEETCHECK_RETRY_MAX_WAIT", "120")
    s = load_settings(retry_max_wait=None, command_timeout=5, parallel=None)
    assert s.retry_max_wait == 120.0
    assert s.command_timeout == 5.0
    assert s.parallel is False
