import logging
from typing import Dict, Any

from ..errors import FinalizationIncomplete
from ..k8s.workloads import WorkloadClient, is_terminating, membership_labels

logger = logging.getLogger(__name__)


def finalize(workloads: WorkloadClient, owner: Dict[str, Any]) -> int:
    """
    Delete every worker owned by a squad that is being deleted.

    Workers of all groups are removed, including groups that are no longer in
    the spec. A worker that is already gone counts as deleted. The caller may
    drop the finalizer only when this returns.

    Returns:
        int: number of workers deleted by this call

    Raises:
        FinalizationIncomplete: if a live worker is still listed after the sweep
        ApiException: if listing or deleting fails
    """
    namespace = owner['metadata']['namespace']
    owner_name = owner['metadata']['name']
    labels = membership_labels(owner_name)

    deleted = 0
    for pod in workloads.list_workers(namespace, labels):
        if is_terminating(pod):
            continue
        if workloads.delete_worker(namespace, pod.metadata.name):
            deleted += 1

    remaining = [p.metadata.name for p in workloads.list_workers(namespace, labels) if not is_terminating(p)]
    if remaining:
        raise FinalizationIncomplete(remaining)

    logger.info(f"Successfully finalized squad {namespace}/{owner_name}, deleted {deleted} workers")
    return deleted
