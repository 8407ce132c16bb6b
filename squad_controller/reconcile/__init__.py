from .finalizer import finalize
from .group import GroupSpec, parse_group_spec, reconcile_group, teardown_group
from .loop import Outcome, reconcile
from .status import build_status, count_ready_workers
