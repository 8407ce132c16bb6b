import unittest
from unittest.mock import MagicMock, patch
import kopf
from kubernetes.client.rest import ApiException
from .errors import ValidationError
from .handlers import KeyedLocks, delete_fn, reconcile_fn, run_reconcile, startup_fn, worker_event_fn
from .reconcile import Outcome

class TestHandlers(unittest.TestCase):
    def setUp(self):
        self.logger = MagicMock()
        self.meta = {'name': 'squad-a', 'namespace': 'default'}
        self.squads = MagicMock()
        self.workloads = MagicMock()
        clients_patcher = patch('squad_controller.handlers.get_clients', return_value=(self.squads, self.workloads))
        clients_patcher.start()
        self.addCleanup(clients_patcher.stop)

    def test_run_reconcile(self):
        with patch('squad_controller.handlers.reconcile', return_value=Outcome.RECONCILED) as mock_reconcile:
            outcome = run_reconcile('default', 'squad-a', self.logger)

        self.assertIs(outcome, Outcome.RECONCILED)
        mock_reconcile.assert_called_once_with(self.squads, self.workloads, 'default', 'squad-a')

    def test_run_reconcile_after_finalizer_added(self):
        """Test that a second pass follows the finalizer bootstrap"""
        with patch('squad_controller.handlers.reconcile',
                   side_effect=[Outcome.FINALIZER_ADDED, Outcome.RECONCILED]) as mock_reconcile:
            outcome = run_reconcile('default', 'squad-a', self.logger)

        self.assertIs(outcome, Outcome.RECONCILED)
        self.assertEqual(mock_reconcile.call_count, 2)

    def test_validation_error_is_permanent(self):
        """Test that invalid squads are not retried blindly"""
        with patch('squad_controller.handlers.reconcile', side_effect=ValidationError('replicas must be >= 0')):
            with self.assertRaises(kopf.PermanentError) as context:
                run_reconcile('default', 'squad-a', self.logger)

        self.assertIn('replicas must be >= 0', str(context.exception))

    def test_api_error_is_temporary(self):
        """Test that API failures are handed to kopf's backoff-retry"""
        with patch('squad_controller.handlers.reconcile', side_effect=ApiException(status=500)):
            with self.assertRaises(kopf.TemporaryError):
                run_reconcile('default', 'squad-a', self.logger)

    def test_reconcile_fn(self):
        with patch('squad_controller.handlers.run_reconcile') as mock_run:
            reconcile_fn(meta=self.meta, logger=self.logger)
        mock_run.assert_called_once_with('default', 'squad-a', self.logger)

    def test_delete_fn(self):
        with patch('squad_controller.handlers.run_reconcile') as mock_run:
            delete_fn(meta=self.meta, logger=self.logger)
        mock_run.assert_called_once_with('default', 'squad-a', self.logger)

    def test_worker_event_reconciles_owner(self):
        """Test that a worker change re-runs its squad"""
        meta = {
            'name': 'a-0',
            'namespace': 'default',
            'labels': {'app': 'virtsquad', 'virtsquad.mshort55.io/squad': 'squad-a'},
        }
        with patch('squad_controller.handlers.run_reconcile') as mock_run:
            worker_event_fn(meta=meta, logger=self.logger)
        mock_run.assert_called_once_with('default', 'squad-a', self.logger)

    def test_worker_event_without_owner(self):
        meta = {'name': 'stray', 'namespace': 'default', 'labels': {'app': 'virtsquad'}}
        with patch('squad_controller.handlers.run_reconcile') as mock_run:
            worker_event_fn(meta=meta, logger=self.logger)
        mock_run.assert_not_called()

    def test_worker_event_failure_is_logged(self):
        meta = {
            'name': 'a-0',
            'namespace': 'default',
            'labels': {'virtsquad.mshort55.io/squad': 'squad-a'},
        }
        with patch('squad_controller.handlers.run_reconcile', side_effect=kopf.TemporaryError('boom')):
            worker_event_fn(meta=meta, logger=self.logger)
        self.logger.warning.assert_called_once()

    def test_startup_fn(self):
        """Test that startup loads credentials and leaves the webhook off by default"""
        settings = kopf.OperatorSettings()
        with patch('squad_controller.handlers.load_kube_config') as mock_load, \
             patch('squad_controller.handlers.threading.Thread') as mock_thread:
            startup_fn(settings=settings, logger=self.logger)

        mock_load.assert_called_once()
        mock_thread.assert_not_called()
        self.assertEqual(settings.execution.max_workers, 10)

    def test_startup_fn_with_webhook(self):
        settings = kopf.OperatorSettings()
        with patch('squad_controller.handlers.load_kube_config'), \
             patch('squad_controller.handlers.WEBHOOK_ENABLED', True), \
             patch('squad_controller.handlers.threading.Thread') as mock_thread:
            startup_fn(settings=settings, logger=self.logger)

        mock_thread.return_value.start.assert_called_once()

class TestKeyedLocks(unittest.TestCase):
    def test_same_key_same_lock(self):
        locks = KeyedLocks()
        self.assertIs(locks.get(('default', 'a')), locks.get(('default', 'a')))
        self.assertIsNot(locks.get(('default', 'a')), locks.get(('default', 'b')))

    def test_unused_locks_are_released(self):
        """Test that a lock nobody holds is forgotten"""
        locks = KeyedLocks()
        lock = locks.get(('default', 'a'))
        self.assertEqual(len(locks), 1)
        self.assertIs(locks.get(('default', 'a')), lock)

        del lock

        self.assertEqual(len(locks), 0)

    def test_run_reconcile_does_not_keep_locks(self):
        """Test that identities seen once do not accumulate after their pass"""
        logger = MagicMock()
        with patch('squad_controller.handlers.get_clients', return_value=(MagicMock(), MagicMock())), \
             patch('squad_controller.handlers.reconcile', return_value=Outcome.NOT_FOUND), \
             patch('squad_controller.handlers._locks', KeyedLocks()) as locks:
            for name in ['squad-a', 'squad-b', 'stray-owner']:
                run_reconcile('default', name, logger)

            self.assertEqual(len(locks), 0)

if __name__ == '__main__':
    unittest.main()
