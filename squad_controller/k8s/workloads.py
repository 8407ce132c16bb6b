"""
Worker Pod access: listing by membership labels, creation from the worker
template, deletion and readiness inspection.
"""

import logging
import re
from typing import Dict, Any, List, Optional

import kubernetes
from kubernetes.client import (
    V1Container,
    V1ContainerPort,
    V1ObjectMeta,
    V1OwnerReference,
    V1Pod,
    V1PodSpec,
)
from kubernetes.client.rest import ApiException

from .. import crd
from .client import get_core_api, is_not_found

logger = logging.getLogger(__name__)

_ORDINAL_SUFFIX = re.compile(r'-(\d+)$')


def membership_labels(owner_name: str, group_name: Optional[str] = None) -> Dict[str, str]:
    """Labels identifying the workers of a squad, optionally narrowed to one group."""
    labels = {
        crd.LABEL_APP: crd.APP_NAME,
        crd.LABEL_OWNER: owner_name,
    }
    if group_name is not None:
        labels[crd.LABEL_GROUP] = group_name
    return labels


def label_selector(labels: Dict[str, str]) -> str:
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


def worker_name(base_name: str, ordinal: int) -> str:
    return f"{base_name}-{ordinal}"


def worker_ordinal(name: str) -> Optional[int]:
    """Ordinal parsed from a ``<baseName>-<ordinal>`` worker name, None if absent."""
    match = _ORDINAL_SUFFIX.search(name)
    return int(match.group(1)) if match else None


def is_terminating(pod: V1Pod) -> bool:
    return pod.metadata.deletion_timestamp is not None


def is_worker_ready(pod: V1Pod) -> bool:
    """Check whether the pod reports the Ready condition as True."""
    if pod.status is None or not pod.status.conditions:
        return False
    for condition in pod.status.conditions:
        if condition.type == "Ready" and condition.status == "True":
            return True
    return False


def build_worker(owner: Dict[str, Any], group_name: str, base_name: str, ordinal: int) -> V1Pod:
    """
    Build the Pod manifest for one worker of a group.

    Args:
        owner: squad custom object body
        group_name: group the worker belongs to, also used as the container name
        base_name: name prefix taken from the group spec
        ordinal: replica index appended to the base name

    Returns:
        V1Pod: the worker, labelled with the membership key and owned by the squad
    """
    meta = owner['metadata']
    return V1Pod(
        api_version="v1",
        kind="Pod",
        metadata=V1ObjectMeta(
            name=worker_name(base_name, ordinal),
            namespace=meta['namespace'],
            labels=membership_labels(meta['name'], group_name),
            owner_references=[
                V1OwnerReference(
                    api_version=crd.API_VERSION,
                    kind=crd.KIND,
                    name=meta['name'],
                    uid=meta['uid'],
                    controller=True,
                    block_owner_deletion=True,
                )
            ],
        ),
        spec=V1PodSpec(
            containers=[
                V1Container(
                    name=group_name,
                    image=crd.WORKER_IMAGE,
                    ports=[V1ContainerPort(container_port=crd.WORKER_PORT, name=crd.WORKER_PORT_NAME)],
                )
            ]
        ),
    )


class WorkloadClient:
    """Thin wrapper over CoreV1Api scoped to worker Pods."""

    def __init__(self, core_api: Optional[kubernetes.client.CoreV1Api] = None):
        self.api = core_api or get_core_api()

    def list_workers(self, namespace: str, labels: Dict[str, str]) -> List[V1Pod]:
        pods = self.api.list_namespaced_pod(
            namespace,
            label_selector=label_selector(labels),
            _request_timeout=crd.API_REQUEST_TIMEOUT,
        )
        return list(pods.items)

    def create_worker(self, pod: V1Pod) -> V1Pod:
        logger.info(f"Creating worker {pod.metadata.name} in namespace {pod.metadata.namespace}")
        try:
            return self.api.create_namespaced_pod(
                pod.metadata.namespace,
                body=pod,
                _request_timeout=crd.API_REQUEST_TIMEOUT,
            )
        except ApiException as e:
            if e.status == 409:
                logger.error(f"Worker name {pod.metadata.name} is already taken in namespace {pod.metadata.namespace}")
            raise

    def delete_worker(self, namespace: str, name: str) -> bool:
        """
        Delete a worker Pod.

        Returns:
            bool: True if the pod was deleted, False if it was already gone
        """
        try:
            self.api.delete_namespaced_pod(name, namespace, _request_timeout=crd.API_REQUEST_TIMEOUT)
        except ApiException as e:
            if is_not_found(e):
                logger.info(f"Worker {name} already deleted")
                return False
            logger.error(f"Failed to delete worker {name}: {str(e)}")
            raise
        logger.info(f"Deleted worker {name} in namespace {namespace}")
        return True
