"""Cache Validation Service for entry freshness checks"""

import os
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Union

from ..core.exceptions import HashComputeError
from ..core.models import CacheEntry, MetadataRecord, ValidationResult, MEMORY_MAX_AGE, utc_now
from ..utils.logging_config import get_logger
from .hash_probe import HashProbe


class CacheValidator:
    """Decides whether a cache entry or disk record is still usable"""

    def __init__(self, hash_probe: Optional[HashProbe] = None):
        self.hash_probe = hash_probe or HashProbe()
        self.logger = get_logger('validator')
        self.validation_stats = {
            'total_checked': 0, 'passed': 0, 'failed_path': 0,
            'failed_hash': 0, 'failed_age': 0, 'hash_inconclusive': 0
        }
        self._stats_lock = threading.Lock()

    def evaluate(self, entry: Union[CacheEntry, MetadataRecord], source_path: Optional[str] = None,
                 max_age: timedelta = MEMORY_MAX_AGE, now: Optional[datetime] = None) -> ValidationResult:
        self._count('total_checked')
        source_path = source_path or entry.source_path

        if not os.path.exists(source_path):
            self._count('failed_path')
            return ValidationResult.PATH_MISSING

        inconclusive = False
        if entry.content_hash:
            try:
                if not self.hash_probe.matches(source_path, entry.content_hash):
                    self._count('failed_hash')
                    return ValidationResult.HASH_MISMATCH
            except HashComputeError as e:
                # Unreadable right now; fall through to the age check
                self.logger.warning(f"Hash check inconclusive for {entry.unit_name}: {e}")
                self._count('hash_inconclusive')
                inconclusive = True

        if entry.age(now or utc_now()) > max_age:
            self._count('failed_age')
            return ValidationResult.EXPIRED

        self._count('passed')
        if inconclusive:
            return ValidationResult.VALID_HASH_INCONCLUSIVE
        return ValidationResult.VALID

    def is_valid(self, entry: Union[CacheEntry, MetadataRecord], source_path: Optional[str] = None,
                 max_age: timedelta = MEMORY_MAX_AGE, now: Optional[datetime] = None) -> bool:
        return self.evaluate(entry, source_path, max_age, now).is_valid

    def get_validation_stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return self.validation_stats.copy()

    def _count(self, key: str):
        with self._stats_lock:
            self.validation_stats[key] += 1
