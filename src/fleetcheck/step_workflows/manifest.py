# step_workflows/manifest.py
from __future__ import annotations

from typing import List, Optional, Sequence

from ..model import Action, ChangePolicy, Payload, RetryPolicy, Step


# ---------------------------------------------------------------------
# Manifest step helpers
# ---------------------------------------------------------------------

def apply_manifest(
    name: str,
    manifest: Payload,
    *,
    policy: ChangePolicy | str = ChangePolicy.ANY,
    hosts: Optional[Sequence[str]] = None,
    roles: Optional[Sequence[str]] = None,
    retry: Optional[RetryPolicy] = None,
    parallel: Optional[bool] = None,
) -> Step:
    """
    Create a step that hands `manifest` to the configured apply command.

    The manifest text is opaque here; it may be a callable(host) -> str when
    each host needs its own resources.
    """
    return Step(
        name=name,
        action=Action.APPLY_MANIFEST,
        payload=manifest,
        policy=ChangePolicy(policy),
        hosts=tuple(hosts or ()),
        roles=tuple(roles or ()),
        retry=retry,
        parallel=parallel,
    )


def converge(
    name: str,
    manifest: Payload,
    *,
    hosts: Optional[Sequence[str]] = None,
    roles: Optional[Sequence[str]] = None,
    parallel: Optional[bool] = None,
) -> List[Step]:
    """
    Idempotence check: apply once (failures fail the step), then apply the
    same manifest again and require that nothing changes.
    """
    common = dict(hosts=hosts, roles=roles, parallel=parallel)
    return [
        apply_manifest(f"{name} (apply)", manifest, policy=ChangePolicy.ANY, **common),
        apply_manifest(f"{name} (idempotent)", manifest, policy=ChangePolicy.EXPECT_NO_CHANGES, **common),
    ]
