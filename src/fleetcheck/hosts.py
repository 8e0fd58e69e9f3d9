# hosts.py
from __future__ import annotations

import itertools
import re
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple, Union

from .model import Host

LOCAL_ADDRESSES = {"localhost", "127.0.0.1"}

_SPEC_RE = re.compile(
    r"^(?:(?P<name>[\w.-]+)=)?(?:(?P<user>[^@\s]+)@)?(?P<address>[^:\s@]+)(?::(?P<port>\d+))?$"
)


def parse_host_spec(spec: str, *, roles: Sequence[str] = ()) -> Host:
    """
    Parse "[name=][user@]address[:port]" into a Host.

    Examples:
        parse_host_spec("web1=root@10.0.0.5:2222")
        parse_host_spec("localhost")   # local transport
    """
    m = _SPEC_RE.match(spec.strip())
    if not m:
        raise ValueError(f"Invalid host spec: {spec!r} (expected [name=][user@]address[:port])")

    address = m.group("address")
    return Host(
        name=m.group("name") or address,
        address=address,
        port=int(m.group("port") or 22),
        user=m.group("user"),
        roles=tuple(roles),
        transport="local" if address in LOCAL_ADDRESSES else "ssh",
    )


def _coerce(entry: Union[Host, str]) -> Host:
    if isinstance(entry, Host):
        return entry
    if isinstance(entry, str):
        return parse_host_spec(entry)
    raise TypeError(f"Hosts must be Host objects or host-spec strings, got {type(entry).__name__}")


class HostRegistry:
    """Static, ordered description of the test targets."""

    def __init__(self, hosts: Iterable[Union[Host, str]] = ()):
        self._hosts: Dict[str, Host] = {}
        for entry in hosts:
            self.add(_coerce(entry))

    def add(self, host: Host) -> None:
        if host.name in self._hosts:
            raise ValueError(f"Duplicate host name: {host.name}")
        self._hosts[host.name] = host

    def __iter__(self) -> Iterator[Host]:
        return iter(self._hosts.values())

    def __len__(self) -> int:
        return len(self._hosts)

    def __contains__(self, name: object) -> bool:
        return name in self._hosts

    def get(self, name: str) -> Host:
        try:
            return self._hosts[name]
        except KeyError:
            raise ValueError(f"Unknown host '{name}'. Known hosts: {sorted(self._hosts)}") from None

    @property
    def names(self) -> List[str]:
        return list(self._hosts)

    def select(
        self,
        names: Sequence[str] | None = None,
        roles: Sequence[str] | None = None,
    ) -> List[Host]:
        """
        Hosts matching any of `names` or carrying any of `roles`, in registry
        order. No filters selects everything.
        """
        if not names and not roles:
            return list(self._hosts.values())

        wanted = set(names or ())
        for n in wanted:
            self.get(n)  # validate
        role_set = set(roles or ())

        return [
            h for h in self._hosts.values()
            if h.name in wanted or role_set.intersection(h.roles)
        ]

    def restrict(self, entries: Sequence[str]) -> "HostRegistry":
        """
        Registry limited to `entries` (as given on the command line). Known
        names pick registered hosts; anything else is parsed as a host spec.
        """
        out = HostRegistry()
        for entry in entries:
            entry = entry.strip()
            if not entry:
                continue
            out.add(self._hosts[entry] if entry in self._hosts else parse_host_spec(entry))
        return out

    def pairs(self) -> List[Tuple[Host, Host]]:
        """Every ordered pair of distinct hosts."""
        return list(itertools.permutations(self._hosts.values(), 2))
