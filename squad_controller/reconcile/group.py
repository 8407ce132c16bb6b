"""
Per-group reconciliation: bring the number of live workers labelled for one
group of a squad to the group's replica target.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

from .. import crd
from ..errors import ValidationError
from ..k8s.workloads import (
    WorkloadClient,
    build_worker,
    is_terminating,
    membership_labels,
    worker_name,
    worker_ordinal,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupSpec:
    base_name: str
    replicas: Optional[int] = None

    def desired_replicas(self, group_name: str) -> int:
        desired = crd.DEFAULT_REPLICAS if self.replicas is None else self.replicas
        if desired < 0:
            raise ValidationError(f"Group {group_name}: replicas must be >= 0, got {desired}")
        return desired


def parse_group_spec(group_name: str, raw: Optional[Dict[str, Any]]) -> Optional[GroupSpec]:
    """
    Turn the raw spec entry of a group into a GroupSpec.

    A missing entry, a null entry or an entry without a base name all mean the
    group should have no workers and yield None. ``name`` is accepted as an
    alias of ``baseName``.

    Raises:
        ValidationError: if replicas is present but not an integer
    """
    if not raw:
        return None
    base_name = raw.get('baseName') or raw.get('name')
    if not base_name:
        return None
    replicas = raw.get('replicas')
    if replicas is not None and (isinstance(replicas, bool) or not isinstance(replicas, int)):
        raise ValidationError(f"Group {group_name}: replicas must be an integer, got {replicas!r}")
    return GroupSpec(base_name=base_name, replicas=replicas)


def _name_key(name):
    # Numbered workers first in ordinal order, anything else after them by name
    ordinal = worker_ordinal(name)
    return (ordinal is None, ordinal if ordinal is not None else 0, name)


def reconcile_group(workloads: WorkloadClient, owner: Dict[str, Any], group_name: str,
                    group_spec: Optional[GroupSpec]) -> List[str]:
    """
    Scale one group of a squad to its desired replica count.

    Args:
        workloads: worker pod client
        owner: squad custom object body
        group_name: name of the group being reconciled
        group_spec: parsed group spec, None if the group is not requested

    Returns:
        List[str]: worker names of the group after this pass, ordered by ordinal

    Raises:
        ValidationError: if the replica count is negative
        ApiException: if any list, create or delete call fails
    """
    if group_spec is None:
        return teardown_group(workloads, owner, group_name)

    desired = group_spec.desired_replicas(group_name)
    namespace = owner['metadata']['namespace']
    owner_name = owner['metadata']['name']

    pods = workloads.list_workers(namespace, membership_labels(owner_name, group_name))
    live = sorted((p for p in pods if not is_terminating(p)), key=lambda p: _name_key(p.metadata.name))
    members = [p.metadata.name for p in live]
    current = len(live)

    if current < desired:
        logger.info(f"Scaling up group {group_name} of {namespace}/{owner_name} from {current} to {desired}")
        taken = {p.metadata.name for p in pods}
        ordinal = 0
        for _ in range(desired - current):
            while worker_name(group_spec.base_name, ordinal) in taken:
                ordinal += 1
            pod = build_worker(owner, group_name, group_spec.base_name, ordinal)
            workloads.create_worker(pod)
            taken.add(pod.metadata.name)
            members.append(pod.metadata.name)
        members.sort(key=_name_key)

    elif current > desired:
        logger.info(f"Scaling down group {group_name} of {namespace}/{owner_name} from {current} to {desired}")
        for pod in reversed(live[desired:]):
            workloads.delete_worker(namespace, pod.metadata.name)
        members = members[:desired]

    return members


def teardown_group(workloads: WorkloadClient, owner: Dict[str, Any], group_name: str) -> List[str]:
    """Delete every worker of a group that is no longer requested."""
    namespace = owner['metadata']['namespace']
    owner_name = owner['metadata']['name']

    pods = workloads.list_workers(namespace, membership_labels(owner_name, group_name))
    for pod in pods:
        if is_terminating(pod):
            continue
        workloads.delete_worker(namespace, pod.metadata.name)
    if pods:
        logger.info(f"Removed group {group_name} from {namespace}/{owner_name}")
    return []
