"""
Access to the squad custom resource: fetch, finalizer bookkeeping and the
status subresource. Every write carries the resourceVersion it was computed
from, so a concurrent change surfaces as a 409 Conflict instead of being
overwritten.
"""

import logging
from typing import Dict, Any, Optional

import kubernetes
from kubernetes.client.rest import ApiException

from .. import crd
from .client import get_custom_objects_api, is_not_found, retry_on_conflict

logger = logging.getLogger(__name__)


def has_finalizer(squad: Dict[str, Any]) -> bool:
    return crd.FINALIZER_NAME in (squad['metadata'].get('finalizers') or [])


def is_deleting(squad: Dict[str, Any]) -> bool:
    return bool(squad['metadata'].get('deletionTimestamp'))


class SquadClient:
    """Thin wrapper over CustomObjectsApi scoped to squad resources."""

    def __init__(self, custom_api: Optional[kubernetes.client.CustomObjectsApi] = None):
        self.api = custom_api or get_custom_objects_api()

    def get_squad(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        """Fetch a squad, returning None if it no longer exists."""
        try:
            return self.api.get_namespaced_custom_object(
                group=crd.GROUP,
                version=crd.VERSION,
                namespace=namespace,
                plural=crd.PLURAL,
                name=name,
                _request_timeout=crd.API_REQUEST_TIMEOUT,
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise

    def add_finalizer(self, squad: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._set_finalizer(squad, present=True)

    def remove_finalizer(self, squad: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._set_finalizer(squad, present=False)

    def update_status(self, squad: Dict[str, Any], status: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Write the status subresource.

        Returns:
            The updated squad, or None if it was deleted in the meantime.
        """
        namespace = squad['metadata']['namespace']
        name = squad['metadata']['name']

        def apply(current):
            return self.api.patch_namespaced_custom_object_status(
                group=crd.GROUP,
                version=crd.VERSION,
                namespace=namespace,
                plural=crd.PLURAL,
                name=name,
                body={
                    'metadata': {'resourceVersion': current['metadata'].get('resourceVersion')},
                    'status': status,
                },
                _request_timeout=crd.API_REQUEST_TIMEOUT,
            )

        return self._write(apply, squad)

    def _set_finalizer(self, squad, present):
        namespace = squad['metadata']['namespace']
        name = squad['metadata']['name']

        def apply(current):
            if has_finalizer(current) == present:
                return current
            finalizers = [f for f in (current['metadata'].get('finalizers') or []) if f != crd.FINALIZER_NAME]
            if present:
                finalizers.append(crd.FINALIZER_NAME)
            return self.api.patch_namespaced_custom_object(
                group=crd.GROUP,
                version=crd.VERSION,
                namespace=namespace,
                plural=crd.PLURAL,
                name=name,
                body={
                    'metadata': {
                        'finalizers': finalizers,
                        'resourceVersion': current['metadata'].get('resourceVersion'),
                    }
                },
                _request_timeout=crd.API_REQUEST_TIMEOUT,
            )

        updated = self._write(apply, squad)
        if updated is not None:
            action = "Added" if present else "Removed"
            logger.info(f"{action} finalizer on squad {namespace}/{name}")
        return updated

    def _write(self, apply, squad):
        namespace = squad['metadata']['namespace']
        name = squad['metadata']['name']

        def apply_or_gone(current):
            try:
                return apply(current)
            except ApiException as e:
                if is_not_found(e):
                    logger.info(f"Squad {namespace}/{name} disappeared before the update")
                    return None
                raise

        return retry_on_conflict(apply_or_gone, lambda: self.get_squad(namespace, name), squad)
