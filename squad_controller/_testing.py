"""
In-memory stand-ins for CoreV1Api and CustomObjectsApi, used by the tests to
exercise whole reconciliation passes against a consistent fake cluster.
"""

import copy
import itertools

from kubernetes.client import V1PodCondition, V1PodStatus
from kubernetes.client.rest import ApiException

from . import crd


def _matches(labels, selector):
    for term in filter(None, selector.split(',')):
        key, value = term.split('=', 1)
        if (labels or {}).get(key) != value:
            return False
    return True


def _merge(target, patch):
    for key, value in patch.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


class _PodList:
    def __init__(self, items):
        self.items = items


class FakeCoreApi:
    """Pods keyed by (namespace, name), listed in creation order."""

    def __init__(self):
        self.pods = {}
        self.created = []
        self.deleted = []
        self.create_errors = {}
        self.delete_errors = {}
        self.list_errors = []
        self.graceful_delete = False

    def add_pod(self, pod):
        self.pods[(pod.metadata.namespace, pod.metadata.name)] = pod

    def set_ready(self, namespace, name, ready=True):
        self.pods[(namespace, name)].status = V1PodStatus(
            conditions=[V1PodCondition(type="Ready", status="True" if ready else "False")]
        )

    def names(self, namespace, **labels):
        selector = ",".join(f"{k}={v}" for k, v in labels.items())
        return [p.metadata.name for (ns, _), p in self.pods.items() if ns == namespace and _matches(p.metadata.labels, selector)]

    def list_namespaced_pod(self, namespace, label_selector='', **kwargs):
        if self.list_errors:
            raise self.list_errors.pop(0)
        return _PodList([
            copy.deepcopy(p) for (ns, _), p in self.pods.items()
            if ns == namespace and _matches(p.metadata.labels, label_selector)
        ])

    def create_namespaced_pod(self, namespace, body, **kwargs):
        name = body.metadata.name
        if name in self.create_errors:
            raise self.create_errors.pop(name)
        if (namespace, name) in self.pods:
            raise ApiException(status=409, reason="AlreadyExists")
        self.pods[(namespace, name)] = copy.deepcopy(body)
        self.created.append(name)
        return body

    def delete_namespaced_pod(self, name, namespace, **kwargs):
        if name in self.delete_errors:
            raise self.delete_errors.pop(name)
        if (namespace, name) not in self.pods:
            raise ApiException(status=404, reason="Not Found")
        self.deleted.append(name)
        if self.graceful_delete:
            self.pods[(namespace, name)].metadata.deletion_timestamp = "2024-01-01T00:00:00Z"
        else:
            del self.pods[(namespace, name)]


class FakeCustomObjectsApi:
    """Squads keyed by (namespace, name) with resourceVersion checks on every patch."""

    def __init__(self):
        self.objects = {}
        self.status_writes = []
        self.conflicts = []
        self._versions = itertools.count(1)

    def add_squad(self, namespace, name, spec=None, finalizers=None, status=None):
        obj = {
            'apiVersion': crd.API_VERSION,
            'kind': crd.KIND,
            'metadata': {
                'name': name,
                'namespace': namespace,
                'uid': f"uid-{name}",
                'finalizers': list(finalizers or []),
                'resourceVersion': str(next(self._versions)),
            },
            'spec': copy.deepcopy(spec or {}),
        }
        if status is not None:
            obj['status'] = copy.deepcopy(status)
        self.objects[(namespace, name)] = obj
        return obj

    def mark_deleted(self, namespace, name):
        obj = self.objects[(namespace, name)]
        obj['metadata']['deletionTimestamp'] = "2024-01-01T00:00:00Z"
        self._bump(obj)

    def get_namespaced_custom_object(self, group, version, namespace, plural, name, **kwargs):
        if (namespace, name) not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        return copy.deepcopy(self.objects[(namespace, name)])

    def patch_namespaced_custom_object(self, group, version, namespace, plural, name, body, **kwargs):
        obj = self._check(namespace, name, body)
        _merge(obj['metadata'], {k: v for k, v in body['metadata'].items() if k != 'resourceVersion'})
        self._bump(obj)
        if obj['metadata'].get('deletionTimestamp') and not obj['metadata'].get('finalizers'):
            del self.objects[(namespace, name)]
        return copy.deepcopy(obj)

    def patch_namespaced_custom_object_status(self, group, version, namespace, plural, name, body, **kwargs):
        obj = self._check(namespace, name, body)
        obj.setdefault('status', {})
        _merge(obj['status'], body['status'])
        self._bump(obj)
        self.status_writes.append(copy.deepcopy(body['status']))
        return copy.deepcopy(obj)

    def _check(self, namespace, name, body):
        if (namespace, name) not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        if self.conflicts:
            raise self.conflicts.pop(0)
        obj = self.objects[(namespace, name)]
        expected = body.get('metadata', {}).get('resourceVersion')
        if expected is not None and expected != obj['metadata']['resourceVersion']:
            raise ApiException(status=409, reason="Conflict")
        return obj

    def _bump(self, obj):
        obj['metadata']['resourceVersion'] = str(next(self._versions))
