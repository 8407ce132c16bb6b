import kopf
import kubernetes
import logging
import os
import threading
import weakref
from typing import Dict, Any

from . import crd
from .errors import ValidationError
from .k8s.client import load_kube_config
from .k8s.squads import SquadClient
from .k8s.workloads import WorkloadClient
from .reconcile import Outcome, reconcile
from .webhook.server import start_webhook_server

logger = logging.getLogger(__name__)

# Namespaces to watch; empty means the whole cluster
WATCH_NAMESPACES = [ns.strip() for ns in os.getenv('WATCH_NAMESPACES', '').split(',') if ns.strip()]
CLUSTERWIDE = not WATCH_NAMESPACES
WEBHOOK_ENABLED = os.getenv('WEBHOOK_ENABLED', 'false').lower() == 'true'
MAX_WORKERS = int(os.getenv('MAX_WORKERS', 10))


class KeyedLocks:
    """
    One lock per squad identity, so passes for the same squad never interleave.

    Locks are held weakly: an entry disappears once no pass holds or waits on
    it, so identities of deleted squads are not kept around.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = weakref.WeakValueDictionary()

    def __len__(self):
        return len(self._locks)

    def get(self, key):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock


_locks = KeyedLocks()
_clients = {}


def get_clients():
    """Lazily build the API wrappers once the kube config is loaded."""
    if not _clients:
        _clients['squads'] = SquadClient(kubernetes.client.CustomObjectsApi())
        _clients['workloads'] = WorkloadClient(kubernetes.client.CoreV1Api())
    return _clients['squads'], _clients['workloads']


def run_reconcile(namespace: str, name: str, logger: Any) -> Outcome:
    """
    Run reconciliation passes for one squad and translate failures into kopf's
    retry semantics.

    Adding the finalizer ends a pass; kopf does not report finalizer changes
    as updates, so the follow-up pass is started right away.
    """
    squads, workloads = get_clients()
    with _locks.get((namespace, name)):
        try:
            outcome = reconcile(squads, workloads, namespace, name)
            if outcome is Outcome.FINALIZER_ADDED:
                outcome = reconcile(squads, workloads, namespace, name)
        except ValidationError as e:
            logger.error(f"Invalid squad {namespace}/{name}: {str(e)}")
            raise kopf.PermanentError(str(e))
        except Exception as e:
            logger.error(f"Reconciliation of squad {namespace}/{name} failed: {str(e)}", exc_info=True)
            raise kopf.TemporaryError(f"Reconciliation failed: {str(e)}", delay=crd.RETRY_DELAY)
    logger.info(f"Squad {namespace}/{name} pass finished: {outcome.value}")
    return outcome


@kopf.on.startup()
def startup_fn(settings: kopf.OperatorSettings, logger, **kwargs):
    """Load cluster credentials and optionally start the admission webhook server."""
    load_kube_config()
    settings.execution.max_workers = MAX_WORKERS
    settings.posting.level = logging.WARNING

    if WEBHOOK_ENABLED:
        webhook_thread = threading.Thread(target=start_webhook_server, daemon=True)
        webhook_thread.start()
        logger.info("Started webhook server in background thread")


@kopf.on.resume(crd.GROUP, crd.VERSION, crd.PLURAL)
@kopf.on.create(crd.GROUP, crd.VERSION, crd.PLURAL)
@kopf.on.update(crd.GROUP, crd.VERSION, crd.PLURAL)
def reconcile_fn(meta: Dict[str, Any], logger: Any, **kwargs):
    """
    Handle creation, spec changes and operator restarts for squads.
    """
    run_reconcile(meta['namespace'], meta['name'], logger)


@kopf.on.delete(crd.GROUP, crd.VERSION, crd.PLURAL, optional=True)
def delete_fn(meta: Dict[str, Any], logger: Any, **kwargs):
    """
    Handle squads marked for deletion.

    The handler is optional so kopf adds no finalizer of its own; it runs
    while our finalizer keeps the object alive.
    """
    logger.info(f"Squad {meta['namespace']}/{meta['name']} marked for deletion")
    run_reconcile(meta['namespace'], meta['name'], logger)


@kopf.on.event('', 'v1', 'pods', labels={crd.LABEL_APP: crd.APP_NAME})
def worker_event_fn(meta: Dict[str, Any], logger: Any, **kwargs):
    """
    Re-run the owning squad's reconciliation whenever one of its workers changes.

    Event handlers are not retried by kopf; a failure here is logged and left to
    the next event or to the squad's own handlers.
    """
    owner_name = (meta.get('labels') or {}).get(crd.LABEL_OWNER)
    if not owner_name:
        return
    try:
        run_reconcile(meta['namespace'], owner_name, logger)
    except kopf.PermanentError as e:
        logger.warning(f"Squad {meta['namespace']}/{owner_name} is invalid: {str(e)}")
    except kopf.TemporaryError as e:
        logger.warning(f"Squad {meta['namespace']}/{owner_name} will be retried: {str(e)}")
