"""
In-memory cache index

The live, authoritative mapping of unit name to CacheEntry.
"""

import threading
from typing import Dict, List, Optional

from ..core.models import CacheEntry
from ..utils.logging_config import get_logger


class CacheIndex:
    """Thread-safe mapping of unit name -> CacheEntry"""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self.logger = get_logger('cache')

    def get(self, unit_name: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(unit_name)

    def set(self, entry: CacheEntry) -> bool:
        """
        Insert or replace an entry

        Returns:
            False (and logs) if the entry has no unit name
        """
        if entry is None or not getattr(entry, 'unit_name', None):
            self.logger.error(f"Rejected malformed cache entry without a unit name: {entry!r}")
            return False

        with self._lock:
            self._entries[entry.unit_name] = entry
        return True

    def remove(self, unit_name: str) -> bool:
        with self._lock:
            return self._entries.pop(unit_name, None) is not None

    def clear(self):
        with self._lock:
            self._entries.clear()

    def names(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def snapshot(self) -> Dict[str, CacheEntry]:
        """Shallow copy of the current mapping"""
        with self._lock:
            return dict(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, unit_name: str) -> bool:
        with self._lock:
            return unit_name in self._entries
