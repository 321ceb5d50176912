"""
Age-based sweep of expired cache records, run at initialization
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..core.models import MetadataRecord, DISK_MAX_AGE, utc_now
from ..utils.logging_config import get_logger
from .cache_index import CacheIndex


class Reaper:
    """Purges records older than the disk retention threshold"""

    def __init__(self, max_age: timedelta = DISK_MAX_AGE):
        self.max_age = max_age
        self.logger = get_logger('reaper')

    def expired_names(self, records: Dict[str, MetadataRecord], now: Optional[datetime] = None) -> List[str]:
        now = now or utc_now()
        return [name for name, record in records.items() if record.age(now) > self.max_age]

    def sweep(self, records: Dict[str, MetadataRecord], index: Optional[CacheIndex] = None,
              now: Optional[datetime] = None) -> int:
        """
        Remove expired records in place from the disk mapping and the memory index

        Hashes are not consulted. Returns the number of records purged.
        """
        expired = self.expired_names(records, now)
        for name in expired:
            del records[name]
            if index is not None:
                index.remove(name)

        if expired:
            self.logger.info(f"Reaped {len(expired)} expired cache records (older than {self.max_age})")
        return len(expired)
