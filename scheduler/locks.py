"""
Per-key advisory locks.

At most one generate/freeze operation may run per subscription. A second
request is rejected immediately instead of queueing. Engines and freeze
coordinators built without an explicit registry share `default_registry`,
so the two operations exclude each other.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Set

from .errors import OperationInProgressError

logger = logging.getLogger(__name__)


class KeyedLockRegistry:

    def __init__(self):
        self._guard = threading.Lock()
        self._held: Set[str] = set()

    def is_held(self, key: str) -> bool:
        with self._guard:
            return key in self._held

    def held_keys(self) -> List[str]:
        with self._guard:
            return sorted(self._held)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Non-blocking acquire; raises OperationInProgressError when busy."""
        with self._guard:
            if key in self._held:
                busy = True
            else:
                busy = False
                self._held.add(key)
        if busy:
            logger.warning(f"Rejected concurrent operation for {key}")
            raise OperationInProgressError(key)
        try:
            yield
        finally:
            # Released keys leave no entry behind
            with self._guard:
                self._held.discard(key)


default_registry = KeyedLockRegistry()
