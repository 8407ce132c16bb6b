"""
Main controller module that initializes and runs the squad operator.

Run with ``kopf run -m squad_controller.controller`` or the ``squad-controller``
console script.
"""

import kopf

from . import handlers  # This will import and register all kopf handlers


def main():
    """Run the operator until interrupted."""
    kopf.run(clusterwide=handlers.CLUSTERWIDE, namespaces=handlers.WATCH_NAMESPACES)
