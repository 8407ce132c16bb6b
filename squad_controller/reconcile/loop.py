"""
Top-level reconciliation of one squad.

A pass is stateless: everything it needs is fetched or listed again, so a
pass that crashed halfway is repaired by the next one.
"""

import enum
import logging
from typing import Dict, Any, Iterable, List, Optional

from .. import crd
from ..k8s.squads import SquadClient, has_finalizer, is_deleting
from ..k8s.workloads import WorkloadClient
from .finalizer import finalize
from .group import GroupSpec, parse_group_spec, reconcile_group
from .status import build_status, count_ready_workers

logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    NOT_FOUND = "not-found"
    DELETING = "deleting"
    FINALIZED = "finalized"
    FINALIZER_ADDED = "finalizer-added"
    RECONCILED = "reconciled"


def group_names(squad: Dict[str, Any], known_groups: Iterable[str] = None) -> List[str]:
    """
    Groups to reconcile for a squad, in order: the configured known groups,
    groups named in the spec, then retired groups whose previous status still
    lists workers so those workers get removed. A retired group whose status
    list is already empty is dropped.
    """
    if known_groups is None:
        known_groups = crd.KNOWN_GROUPS
    names = list(known_groups)
    spec = squad.get('spec') or {}
    previous = (squad.get('status') or {}).get('groups') or {}
    retired = [name for name, members in previous.items() if members]
    for name in list(spec) + retired:
        if name not in names:
            names.append(name)
    return names


def parse_group_specs(squad: Dict[str, Any], names: Iterable[str]) -> Dict[str, Optional[GroupSpec]]:
    """
    Parse and validate the spec of every group before any of them is scaled,
    so an invalid group leaves the whole squad untouched.

    Raises:
        ValidationError: if any group has a malformed or negative replica count
    """
    spec = squad.get('spec') or {}
    parsed = {}
    for group_name in names:
        group_spec = parse_group_spec(group_name, spec.get(group_name))
        if group_spec is not None:
            group_spec.desired_replicas(group_name)
        parsed[group_name] = group_spec
    return parsed


def reconcile(squads: SquadClient, workloads: WorkloadClient, namespace: str, name: str,
              known_groups: Iterable[str] = None) -> Outcome:
    """
    Run one reconciliation pass for the squad ``namespace/name``.

    Errors are not caught here: an invalid group fails the pass before any
    worker is touched, and the first failing API call aborts the pass without
    writing status. The caller is expected to retry later. Mutations already
    made are kept and re-observed by the next pass.
    """
    squad = squads.get_squad(namespace, name)
    if squad is None:
        logger.info(f"Squad {namespace}/{name} not found. Ignoring since object must be deleted")
        return Outcome.NOT_FOUND

    if is_deleting(squad):
        if not has_finalizer(squad):
            return Outcome.DELETING
        finalize(workloads, squad)
        squads.remove_finalizer(squad)
        return Outcome.FINALIZED

    if not has_finalizer(squad):
        squads.add_finalizer(squad)
        return Outcome.FINALIZER_ADDED

    group_specs = parse_group_specs(squad, group_names(squad, known_groups))
    groups = {}
    for group_name, group_spec in group_specs.items():
        groups[group_name] = reconcile_group(workloads, squad, group_name, group_spec)

    ready = count_ready_workers(workloads, squad)
    previous = (squad.get('status') or {}).get('groups') or {}
    status = build_status(groups, ready, previous_groups=previous)
    squads.update_status(squad, status)
    logger.info(
        f"Reconciled squad {namespace}/{name}: "
        f"{status['readyWorkers']}/{status['totalWorkers']} workers ready"
    )
    return Outcome.RECONCILED
