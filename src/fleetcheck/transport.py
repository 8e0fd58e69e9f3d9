"""Host connections: SSH via paramiko, and local subprocess execution.

A connection only knows how to run a command and drop a file on its host;
exit-criteria and retries live above it.
"""

from __future__ import annotations

import math
import os
import shlex
import signal
import socket
import subprocess
import time
from pathlib import Path
from typing import Optional, Protocol, Tuple

import paramiko

from .config import Settings
from .errors import CommandTimeout, HostUnreachable
from .log import get_logger
from .model import Host

log = get_logger(__name__)

RawResult = Tuple[int, str, str]


class Connection(Protocol):
    def run(self, command: str, timeout: float) -> RawResult:
        """Run *command*, returning (exit_code, stdout, stderr)."""
        ...

    def put_text(self, path: str, content: str) -> None:
        ...

    def close(self) -> None:
        ...


# ── local ────────────────────────────────────────────────────────────────

class LocalConnection:
    """Runs commands on the controller itself."""

    def __init__(self, host: Host):
        self.host = host

    def run(self, command: str, timeout: float) -> RawResult:
        # own process group so a timeout takes the whole pipeline down
        proc = subprocess.Popen(
            command,
            shell=True,
            env=os.environ.copy(),
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            os.killpg(proc.pid, signal.SIGKILL)
            proc.communicate()
            log.warning("local.command_timeout", host=self.host.name, timeout=timeout)
            raise CommandTimeout(self.host.name, command, timeout)
        return proc.returncode, stdout, stderr

    def put_text(self, path: str, content: str) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")

    def close(self) -> None:
        pass


# ── ssh ──────────────────────────────────────────────────────────────────

class SSHConnection:
    """One paramiko SSH session per host, opened on construction."""

    def __init__(self, host: Host, cfg: Settings):
        self.host = host
        self._cfg = cfg
        self._client: Optional[paramiko.SSHClient] = None
        self._open()

    def _connect_kwargs(self) -> dict:
        kwargs: dict = dict(
            hostname=self.host.address,
            port=self.host.port,
            username=self.host.user or self._cfg.ssh_user,
            timeout=self._cfg.connect_timeout,
            banner_timeout=self._cfg.connect_timeout,
            auth_timeout=self._cfg.connect_timeout,
        )
        password = self.host.password or self._cfg.ssh_password
        key_path = self.host.key_path or self._cfg.ssh_key_path
        if password:
            kwargs["password"] = password
        if key_path:
            kwargs["key_filename"] = os.path.expanduser(key_path)
        return kwargs

    def _open(self) -> None:
        log.info("ssh.connecting", host=self.host.name, address=self.host.address, port=self.host.port)
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        if self._cfg.ssh_strict_host_keys:
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(**self._connect_kwargs())
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            log.warning("ssh.connect_failed", host=self.host.name, error=str(exc))
            raise HostUnreachable(self.host.name, str(exc) or type(exc).__name__) from exc
        self._client = client
        log.info("ssh.connected", host=self.host.name)

    def _transport(self) -> paramiko.Transport:
        transport = self._client.get_transport() if self._client else None
        if transport is None or not transport.is_active():
            raise HostUnreachable(self.host.name, "ssh session is not active")
        return transport

    def _guarded(self, command: str, timeout: float) -> str:
        # closing a channel without a pty does not signal the remote command,
        # so the host enforces the ceiling itself
        wrapper = self._cfg.ssh_timeout_wrapper
        if not wrapper:
            return command
        seconds = math.ceil(timeout + self._cfg.ssh_kill_grace)
        return f"{wrapper.format(seconds=seconds)} sh -c {shlex.quote(command)}"

    def run(self, command: str, timeout: float) -> RawResult:
        try:
            chan = self._transport().open_session(timeout=self._cfg.connect_timeout)
            chan.exec_command(self._guarded(command, timeout))
            chan.shutdown_write()
        except (paramiko.SSHException, OSError) as exc:
            raise HostUnreachable(self.host.name, str(exc)) from exc

        out: list[bytes] = []
        err: list[bytes] = []
        deadline = time.monotonic() + timeout
        try:
            while True:
                busy = False
                if chan.recv_ready():
                    out.append(chan.recv(65535))
                    busy = True
                if chan.recv_stderr_ready():
                    err.append(chan.recv_stderr(65535))
                    busy = True
                if not busy and chan.exit_status_ready():
                    break
                if time.monotonic() > deadline:
                    log.warning("ssh.command_timeout", host=self.host.name, timeout=timeout)
                    raise CommandTimeout(self.host.name, command, timeout)
                if not busy:
                    time.sleep(0.05)
            exit_code = chan.recv_exit_status()
        except CommandTimeout:
            raise
        except (socket.timeout, paramiko.SSHException) as exc:
            raise HostUnreachable(self.host.name, str(exc)) from exc
        finally:
            chan.close()

        return (
            exit_code,
            b"".join(out).decode("utf-8", errors="replace"),
            b"".join(err).decode("utf-8", errors="replace"),
        )

    def put_text(self, path: str, content: str) -> None:
        try:
            sftp = self._transport().open_sftp_client()
        except (paramiko.SSHException, OSError) as exc:
            raise HostUnreachable(self.host.name, str(exc)) from exc
        try:
            with sftp.open(path, "w") as fh:
                fh.write(content.encode("utf-8"))
        finally:
            sftp.close()

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception:
                log.debug("ssh.close_failed", host=self.host.name)
            self._client = None
            log.info("ssh.closed", host=self.host.name)


def connect(host: Host, cfg: Settings) -> Connection:
    """Open a connection for *host* using its declared transport."""
    if host.transport == "local":
        return LocalConnection(host)
    if host.transport == "ssh":
        return SSHConnection(host, cfg)
    raise ValueError(f"Unknown transport for host {host.name!r}: {host.transport!r}")
