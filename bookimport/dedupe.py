"""Run-scoped deduplication of authors and genres."""
import logging
import threading
from typing import Any, Callable, Dict, Hashable, Optional, Set

logger = logging.getLogger(__name__)


class DedupeFilter:
    """
    Admit each identity key at most once per step.

    A candidate is rejected when the store already holds an entity with the
    same key, or when the key was admitted earlier in the same step. The
    seen-set only lives between open() and close().
    """

    def __init__(
        self,
        lookup: Callable[[Any], Optional[Any]],
        key: Callable[[Any], Hashable] = lambda candidate: candidate.key,
        name: str = "dedupe"
    ):
        """
        Initialize filter.

        Args:
            lookup: Returns the stored entity matching a candidate, or None
            key: Extracts the identity key of a candidate
            name: Label used in log messages
        """
        self.lookup = lookup
        self.key = key
        self.name = name
        self._seen: Optional[Set[Hashable]] = None
        self._guard = threading.Lock()
        self._key_locks: Dict[Hashable, threading.Lock] = {}

    def open(self):
        """Start a new step scope with an empty seen-set."""
        with self._guard:
            self._seen = set()
            self._key_locks = {}

    def close(self):
        """Discard the seen-set at step end."""
        with self._guard:
            if self._seen is not None:
                logger.debug(f"{self.name}: admitted {len(self._seen)} keys this step")
            self._seen = None
            self._key_locks = {}

    @property
    def seen(self) -> Set[Hashable]:
        """Snapshot of keys admitted in the current step."""
        with self._guard:
            self._require_open()
            return set(self._seen)

    def admit(self, candidate) -> bool:
        """
        Decide whether a candidate should be persisted.

        Atomic per identity key: concurrent callers with the same key are
        serialized, callers with different keys are not.

        Returns:
            True if the candidate is new in both the store and this step
        """
        key = self.key(candidate)

        with self._guard:
            self._require_open()
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            if self.lookup(candidate) is not None:
                logger.debug(f"{self.name}: {key!r} already stored")
                return False

            with self._guard:
                self._require_open()
                if key in self._seen:
                    logger.debug(f"{self.name}: {key!r} already seen this step")
                    return False
                self._seen.add(key)
                return True

    def _require_open(self):
        if self._seen is None:
            raise RuntimeError(f"{self.name} filter used outside of a step")
