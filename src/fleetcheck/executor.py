# executor.py
from __future__ import annotations

import shlex
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Sequence, TypeVar

from .config import Settings
from .log import get_logger
from .model import CommandResult, Host
from .transport import Connection, connect

log = get_logger(__name__)

T = TypeVar("T")


def fan_out(hosts: Sequence[Host], fn: Callable[[Host], T], *, parallel: bool) -> List[T]:
    """
    Call fn(host) for every host and return results in host order.

    parallel=True runs one worker per host; the call returns only after every
    branch has finished (barrier). The first branch exception, if any, is
    re-raised after the join.
    """
    if not parallel or len(hosts) < 2:
        return [fn(h) for h in hosts]

    with ThreadPoolExecutor(max_workers=len(hosts), thread_name_prefix="host") as pool:
        futures = [pool.submit(fn, h) for h in hosts]
    # leaving the with-block joined every worker
    return [f.result() for f in futures]


class ConnectionPool:
    """One lazily opened connection per host, owned for the whole run."""

    def __init__(self, settings: Settings, factory: Callable[[Host, Settings], Connection] = connect):
        self._settings = settings
        self._factory = factory
        self._conns: Dict[str, Connection] = {}

    def get(self, host: Host) -> Connection:
        conn = self._conns.get(host.name)
        if conn is None:
            conn = self._factory(host, self._settings)
            self._conns[host.name] = conn
        return conn

    def drop(self, host: Host) -> None:
        conn = self._conns.pop(host.name, None)
        if conn is not None:
            conn.close()

    def close_all(self) -> None:
        for name in list(self._conns):
            conn = self._conns.pop(name, None)
            if conn is None:
                continue
            try:
                conn.close()
            except Exception as e:
                log.warning("pool.close_failed", host=name, error=str(e))


class CommandExecutor:
    """
    Runs commands, manifest applications and file writes on hosts.

    Raises HostUnreachable (ConnectionError) and CommandTimeout (TimeoutError)
    straight to the caller; nothing is retried here.
    """

    def __init__(self, settings: Settings, pool: ConnectionPool | None = None):
        self.settings = settings
        self.pool = pool or ConnectionPool(settings)

    def execute(self, host: Host, command: str, timeout: float | None = None) -> CommandResult:
        timeout = timeout or self.settings.command_timeout
        conn = self.pool.get(host)

        log.debug("exec.start", host=host.name, command=command)
        started = time.monotonic()
        try:
            exit_code, stdout, stderr = conn.run(command, timeout)
        except ConnectionError:
            # a broken session is never reused
            self.pool.drop(host)
            raise
        duration = time.monotonic() - started
        log.debug("exec.done", host=host.name, exit_code=exit_code, duration=round(duration, 3))

        return CommandResult(
            command=command,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration=duration,
        )

    def execute_many(
        self,
        hosts: Sequence[Host],
        command: str,
        *,
        parallel: bool = False,
        timeout: float | None = None,
    ) -> Dict[str, CommandResult]:
        results = fan_out(hosts, lambda h: self.execute(h, command, timeout), parallel=parallel)
        return {h.name: r for h, r in zip(hosts, results)}

    def apply_manifest(self, host: Host, manifest: str, timeout: float | None = None) -> CommandResult:
        """
        Hand `manifest` to the external apply command, unmodified.

        The manifest is uploaded to a temporary file first; `changed` and
        `apply_failed` are derived from the configured exit-code sets.
        """
        path = f"{self.settings.manifest_dir.rstrip('/')}/fleetcheck-{uuid.uuid4().hex[:12]}.pp"
        self.write_file(host, path, manifest)

        res = self.execute(host, f"{self.settings.apply_command} {shlex.quote(path)}", timeout)
        res.changed = res.exit_code in self.settings.apply_change_codes
        res.apply_failed = res.exit_code not in self.settings.apply_success_codes
        log.info(
            "apply.done",
            host=host.name,
            exit_code=res.exit_code,
            changed=res.changed,
            failed=res.apply_failed,
        )
        return res

    def write_file(self, host: Host, path: str, content: str) -> CommandResult:
        conn = self.pool.get(host)
        started = time.monotonic()
        try:
            conn.put_text(path, content)
        except ConnectionError:
            self.pool.drop(host)
            raise
        return CommandResult(
            command=f"write {path}",
            exit_code=0,
            duration=time.monotonic() - started,
        )

    def close(self) -> None:
        self.pool.close_all()
