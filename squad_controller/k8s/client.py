import logging

import kubernetes
from kubernetes.client.rest import ApiException

from .. import crd

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


def load_kube_config():
    """Load cluster credentials.

    Tries the in-cluster service account first and falls back to the local
    kubeconfig for development.
    """
    try:
        kubernetes.config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except kubernetes.config.ConfigException:
        kubernetes.config.load_kube_config()
        logger.info("Loaded local Kubernetes config")


def get_core_api():
    return kubernetes.client.CoreV1Api()


def get_custom_objects_api():
    return kubernetes.client.CustomObjectsApi()


def is_not_found(error):
    return isinstance(error, ApiException) and error.status == HTTP_NOT_FOUND


def is_conflict(error):
    return isinstance(error, ApiException) and error.status == HTTP_CONFLICT


def retry_on_conflict(apply_func, fetch_func, obj, attempts=None):
    """
    Apply an optimistic-concurrency write, re-fetching the object after a
    409 Conflict so the next attempt carries the latest resourceVersion.

    Args:
        apply_func: callable writing ``obj``; returns the write result
        fetch_func: callable returning a fresh copy of the object, None if gone
        obj: object to write on the first attempt
        attempts: maximum number of writes, defaults to CONFLICT_RETRY_ATTEMPTS

    Returns:
        The result of ``apply_func``, or None if the object disappeared.

    Raises:
        ApiException: any non-conflict error, or the last conflict once
        attempts are exhausted
    """
    attempts = attempts or crd.CONFLICT_RETRY_ATTEMPTS
    for attempt in range(attempts):
        if obj is None:
            return None
        try:
            return apply_func(obj)
        except ApiException as e:
            if not is_conflict(e) or attempt == attempts - 1:
                raise
            logger.warning(f"Conflict on update, re-fetching and retrying ({attempt + 1}/{attempts})")
            obj = fetch_func()
