import logging
import threading
from typing import Callable, Dict, Optional, Tuple

from column_packer.alignment import AlignmentClass

logger = logging.getLogger(__name__)

TypeKey = Tuple[Optional[str], str]


class TypeClassificationCache:
    """Unbounded read-through cache of catalog-resolved alignment classes.

    Keys are ``(schema_qualifier, bare_type_with_modifier)``. The lock is held
    across check, resolve and store so that a key is resolved at most once for
    the lifetime of the cache, even when the cache is shared between threads.
    Failed resolutions are not stored.
    """

    def __init__(self) -> None:
        """Initialize an empty cache."""
        self._entries: Dict[TypeKey, AlignmentClass] = {}
        self._lock = threading.Lock()

    def get_or_resolve(
        self, key: TypeKey, resolver: Callable[[], AlignmentClass]
    ) -> AlignmentClass:
        """Return the cached class for key, calling resolver once on a miss."""
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                logger.debug("type_cache_hit schema=%s type=%s", key[0], key[1])
                return cached
            alignment = resolver()
            self._entries[key] = alignment
            logger.debug(
                "type_cache_store schema=%s type=%s alignment=%d", key[0], key[1], alignment
            )
            return alignment

    def reset(self) -> int:
        """Drop every entry and return how many were removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("type_cache_reset entries_cleared=%d", count)
        return count

    def __len__(self) -> int:
        """Return number of entries."""
        with self._lock:
            return len(self._entries)
