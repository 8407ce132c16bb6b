import unittest
from unittest.mock import MagicMock
from kubernetes.client import V1ObjectMeta, V1Pod, V1PodCondition, V1PodStatus
from kubernetes.client.rest import ApiException
from .workloads import (
    WorkloadClient,
    build_worker,
    is_terminating,
    is_worker_ready,
    label_selector,
    membership_labels,
    worker_ordinal,
)

OWNER = {
    'metadata': {'name': 'squad-a', 'namespace': 'default', 'uid': 'uid-123'},
    'spec': {},
}

class TestWorkerTemplate(unittest.TestCase):
    def test_membership_labels(self):
        """Test the membership key with and without a group"""
        self.assertEqual(membership_labels('squad-a'), {
            'app': 'virtsquad',
            'virtsquad.mshort55.io/squad': 'squad-a',
        })
        self.assertEqual(membership_labels('squad-a', 'alpha'), {
            'app': 'virtsquad',
            'virtsquad.mshort55.io/squad': 'squad-a',
            'virtsquad.mshort55.io/member': 'alpha',
        })

    def test_label_selector_is_sorted(self):
        self.assertEqual(label_selector({'b': '2', 'a': '1'}), 'a=1,b=2')

    def test_worker_ordinal(self):
        self.assertEqual(worker_ordinal('a-0'), 0)
        self.assertEqual(worker_ordinal('web-server-12'), 12)
        self.assertIsNone(worker_ordinal('stray'))

    def test_build_worker(self):
        """Test the worker pod carries labels, owner reference and the container"""
        pod = build_worker(OWNER, 'alpha', 'a', 3)

        self.assertEqual(pod.metadata.name, 'a-3')
        self.assertEqual(pod.metadata.namespace, 'default')
        self.assertEqual(pod.metadata.labels, membership_labels('squad-a', 'alpha'))

        owner_ref = pod.metadata.owner_references[0]
        self.assertEqual(owner_ref.api_version, 'apps.mshort55.io/v1')
        self.assertEqual(owner_ref.kind, 'VirtSquad')
        self.assertEqual(owner_ref.name, 'squad-a')
        self.assertEqual(owner_ref.uid, 'uid-123')
        self.assertTrue(owner_ref.controller)
        self.assertTrue(owner_ref.block_owner_deletion)

        container = pod.spec.containers[0]
        self.assertEqual(container.name, 'alpha')
        self.assertEqual(container.image, 'nginx:latest')
        self.assertEqual(container.ports[0].container_port, 80)
        self.assertEqual(container.ports[0].name, 'http')

    def test_is_worker_ready(self):
        pod = V1Pod(metadata=V1ObjectMeta(name='a-0'))
        self.assertFalse(is_worker_ready(pod))

        pod.status = V1PodStatus(conditions=[
            V1PodCondition(type='PodScheduled', status='True'),
            V1PodCondition(type='Ready', status='False'),
        ])
        self.assertFalse(is_worker_ready(pod))

        pod.status.conditions[1].status = 'True'
        self.assertTrue(is_worker_ready(pod))

    def test_is_terminating(self):
        pod = V1Pod(metadata=V1ObjectMeta(name='a-0'))
        self.assertFalse(is_terminating(pod))
        pod.metadata.deletion_timestamp = '2024-01-01T00:00:00Z'
        self.assertTrue(is_terminating(pod))

class TestWorkloadClient(unittest.TestCase):
    def setUp(self):
        self.api = MagicMock()
        self.client = WorkloadClient(self.api)

    def test_list_workers_uses_selector(self):
        """Test that listing filters by the membership labels"""
        self.api.list_namespaced_pod.return_value.items = ['pod']

        result = self.client.list_workers('default', membership_labels('squad-a', 'alpha'))

        self.assertEqual(result, ['pod'])
        args, kwargs = self.api.list_namespaced_pod.call_args
        self.assertEqual(args[0], 'default')
        self.assertEqual(
            kwargs['label_selector'],
            'app=virtsquad,virtsquad.mshort55.io/member=alpha,virtsquad.mshort55.io/squad=squad-a'
        )

    def test_create_worker(self):
        pod = build_worker(OWNER, 'alpha', 'a', 0)
        self.client.create_worker(pod)
        args, kwargs = self.api.create_namespaced_pod.call_args
        self.assertEqual(args[0], 'default')
        self.assertIs(kwargs['body'], pod)

    def test_create_worker_already_exists(self):
        """Test that a name collision is surfaced to the caller"""
        self.api.create_namespaced_pod.side_effect = ApiException(status=409)
        with self.assertRaises(ApiException):
            self.client.create_worker(build_worker(OWNER, 'alpha', 'a', 0))

    def test_delete_worker(self):
        self.assertTrue(self.client.delete_worker('default', 'a-0'))
        args, _ = self.api.delete_namespaced_pod.call_args
        self.assertEqual(args, ('a-0', 'default'))

    def test_delete_worker_already_gone(self):
        """Test that deleting a missing pod is treated as done"""
        self.api.delete_namespaced_pod.side_effect = ApiException(status=404)
        self.assertFalse(self.client.delete_worker('default', 'a-0'))

    def test_delete_worker_error(self):
        self.api.delete_namespaced_pod.side_effect = ApiException(status=500)
        with self.assertRaises(ApiException):
            self.client.delete_worker('default', 'a-0')

if __name__ == '__main__':
    unittest.main()
