"""Squad resource constants and controller configuration.

Everything here can be overridden through environment variables so the
controller can be pointed at a differently named CRD without code changes.
"""

import os

# CRD Group, Version, Plural and Kind
GROUP = os.getenv('SQUAD_GROUP', 'apps.mshort55.io')
VERSION = os.getenv('SQUAD_VERSION', 'v1')
PLURAL = os.getenv('SQUAD_PLURAL', 'virtsquads')
KIND = os.getenv('SQUAD_KIND', 'VirtSquad')

API_VERSION = f"{GROUP}/{VERSION}"

FINALIZER_NAME = "virtsquad.mshort55.io/finalizer"

# Membership key. Deployed workers already carry these exact keys.
LABEL_APP = "app"
APP_NAME = "virtsquad"
LABEL_GROUP = "virtsquad.mshort55.io/member"
LABEL_OWNER = "virtsquad.mshort55.io/squad"

DEFAULT_KNOWN_GROUPS = "oksana,kurtis,matt,kike"
KNOWN_GROUPS = tuple(
    g.strip() for g in os.getenv('SQUAD_KNOWN_GROUPS', DEFAULT_KNOWN_GROUPS).split(',') if g.strip()
)

# Worker template
WORKER_IMAGE = os.getenv('WORKER_IMAGE', 'nginx:latest')
WORKER_PORT = 80
WORKER_PORT_NAME = "http"

DEFAULT_REPLICAS = 1

# API call tuning
API_REQUEST_TIMEOUT = float(os.getenv('API_REQUEST_TIMEOUT', 30))
CONFLICT_RETRY_ATTEMPTS = int(os.getenv('CONFLICT_RETRY_ATTEMPTS', 3))
RETRY_DELAY = int(os.getenv('RETRY_DELAY', 10))  # seconds kopf waits before retrying a failed pass
