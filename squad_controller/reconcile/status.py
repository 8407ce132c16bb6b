from typing import Dict, Any, List

from ..k8s.workloads import WorkloadClient, is_terminating, is_worker_ready, membership_labels


def count_ready_workers(workloads: WorkloadClient, owner: Dict[str, Any]) -> int:
    """Count live workers of a squad, across all groups, whose Ready condition is True."""
    pods = workloads.list_workers(
        owner['metadata']['namespace'],
        membership_labels(owner['metadata']['name']),
    )
    return sum(1 for pod in pods if not is_terminating(pod) and is_worker_ready(pod))


def build_status(groups: Dict[str, List[str]], ready: int,
                 previous_groups: Dict[str, Any] = None) -> Dict[str, Any]:
    """
    Assemble the status subresource from the member lists of this pass.

    The total comes from the member lists while the ready count comes from a
    separate listing, so the two can briefly disagree. The ready count is
    clamped to keep readyWorkers <= totalWorkers.

    Groups present in ``previous_groups`` but not reconciled this pass are set
    to None, which removes them when the status is written as a merge patch.
    """
    total = sum(len(members) for members in groups.values())
    status_groups = {name: None for name in (previous_groups or {}) if name not in groups}
    status_groups.update({name: list(members) for name, members in groups.items()})
    return {
        'groups': status_groups,
        'totalWorkers': total,
        'readyWorkers': min(ready, total),
    }
