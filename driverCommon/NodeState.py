"""
NodeState.py

Readiness of the driver node process.

The node becomes ready exactly once, after its HTTP endpoint is up and all
initialization listeners (hub registration included) have run. Readers only
get the read-only is_ready view.
"""

import threading
import time
from typing import Optional


class NodeState:
    """Process-wide readiness flag owned by the node server."""

    def __init__(self):
        self._lock = threading.Lock()
        self._ready = False
        self._ready_since: Optional[float] = None
        self.launch_time = time.time()

    @property
    def is_ready(self) -> bool:
        with self._lock:
            return self._ready

    @property
    def ready_since(self) -> Optional[float]:
        """Epoch seconds of the ready transition, None while starting."""
        with self._lock:
            return self._ready_since

    def mark_ready(self):
        """
        Transition to ready.

        Raises:
            RuntimeError: If the node was already marked ready
        """
        with self._lock:
            if self._ready:
                raise RuntimeError("Node state is already ready")
            self._ready_since = time.time()
            self._ready = True
