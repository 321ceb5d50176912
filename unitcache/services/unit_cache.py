"""
Unit Cache Service

Owns both cache tiers:
1. Memory tier (CacheIndex) holding live handles, 24h lifetime
2. Disk tier (MetadataStore) holding metadata only, 7 day lifetime
3. Hit/miss analytics, LRU size budget and cache optimization
"""

import json
import os
import re
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Pattern, Union

from ..core.exceptions import CacheError, PathNotFoundError
from ..core.models import (
    CacheConfiguration, CacheEntry, CacheLookup, LookupStatus, MetadataRecord,
    ValidationResult, utc_now
)
from ..utils.filesystem import directory_size, ensure_directory, normalize_path, remove_directory
from ..utils.logging_config import get_logger, log_cache_operation
from .cache_index import CacheIndex
from .hash_probe import HashProbe
from .metadata_store import MetadataStore
from .reaper import Reaper
from .validator import CacheValidator


Rematerializer = Callable[[str, str], Any]
MatchPattern = Union[str, Pattern, Callable[[str, MetadataRecord], bool]]

# Evict down to this share of the budget once it is exceeded
SIZE_TARGET_RATIO = 0.7


class UnitCacheService:
    """
    Two-tier unit cache with analytics

    Features:
    - Memory index for live handles
    - JSON metadata index for cross-run persistence
    - Content-hash, path and age validation
    - Disk records re-materialized through a callback
    - LRU eviction under a directory size budget
    - Thread-safe compound operations
    """

    def __init__(self, config: Optional[CacheConfiguration] = None,
                 rematerializer: Optional[Rematerializer] = None):
        """Initialize the unit cache service (no I/O until initialize())"""
        self.config = config or CacheConfiguration()
        self.rematerializer = rematerializer

        self.hash_probe = HashProbe(self.config.hash_chunk_size)
        self.validator = CacheValidator(self.hash_probe)
        self.index = CacheIndex()
        self.reaper = Reaper(self.config.disk_max_age)

        self.cache_dir: Optional[str] = None
        self.store: Optional[MetadataStore] = None
        self._records: Dict[str, MetadataRecord] = {}
        self._initialized = False

        # Thread safety
        self._lock = threading.RLock()
        self.logger = get_logger('cache')

        # Performance tracking
        self.stats = self._fresh_stats()

    @staticmethod
    def _fresh_stats() -> Dict[str, int]:
        return {
            'hits': 0,
            'misses': 0,
            'memory_hits': 0,
            'disk_hits': 0,
            'stale_evictions': 0,
            'writes': 0,
            'evictions': 0,
            'save_failures': 0,
            'total_requests': 0
        }

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self, cache_directory: Optional[str] = None,
                   max_cache_size_mb: Optional[float] = None) -> bool:
        """
        Prepare the cache directory and load persisted metadata

        Repeating the call with the same directory is a no-op; a different
        directory drops the current tiers and starts over there.

        Returns:
            True if the service was (re)initialized, False for a no-op
        """
        cache_dir = normalize_path(cache_directory or self.config.cache_dir)

        with self._lock:
            if max_cache_size_mb is not None:
                self.config.max_cache_size_mb = max_cache_size_mb

            if self._initialized and cache_dir == self.cache_dir:
                return False

            ensure_directory(cache_dir)
            self.cache_dir = cache_dir
            self.config.cache_dir = cache_dir
            self.store = MetadataStore(cache_dir, self.config.index_filename)

            self.index.clear()
            self._records = self.store.load()

            reaped = self.reaper.sweep(self._records, self.index)
            if reaped:
                self._save()

            self._initialized = True
            self.enforce_size_limit()

            self.logger.info(f"Cache initialized at {cache_dir} ({len(self._records)} records)")
            return True

    def _ensure_initialized(self):
        if not self._initialized:
            self.initialize()

    def lookup(self, unit_name: str, source_path: Optional[str] = None,
               rematerializer: Optional[Rematerializer] = None,
               now: Optional[datetime] = None) -> CacheLookup:
        """
        Resolve a unit through the memory tier, then the disk tier

        Invalid memory entries are evicted; an entry that merely outlived
        the memory tier keeps its disk record. Disk records are only
        promoted when a re-materializer is available.

        Args:
            unit_name: Unit to look up
            source_path: Expected backing path (defaults to the cached one)
            rematerializer: Overrides the service's re-materializer
            now: Reference time for age checks

        Returns:
            CacheLookup with MEMORY_HIT, DISK_HIT, MISS or STALE
        """
        self._ensure_initialized()
        start_time = time.time()
        now = now or utc_now()
        expected_path = normalize_path(source_path) if source_path else None

        with self._lock:
            self.stats['total_requests'] += 1
            entry = self.index.get(unit_name)
            record = self._records.get(unit_name)

        stale = False

        if entry is not None:
            result = self._validate(entry, expected_path, self.config.memory_max_age, now)
            if result.is_valid and entry.record_age(now) > self.config.disk_max_age:
                # Promoted entries never outlive their disk record
                result = ValidationResult.EXPIRED
            if result.is_valid:
                with self._lock:
                    entry.touch(now)
                    if unit_name in self._records:
                        self._records[unit_name].last_accessed_at = entry.last_accessed_at
                    self.stats['hits'] += 1
                    self.stats['memory_hits'] += 1
                log_cache_operation('get', unit_name, True, time.time() - start_time)
                return CacheLookup(LookupStatus.MEMORY_HIT, entry.handle, entry)

            stale = True
            if result == ValidationResult.EXPIRED:
                # Handle is too old, but the disk record may still be usable
                with self._lock:
                    if self.index.get(unit_name) is entry:
                        self.index.remove(unit_name)
            else:
                self._evict_stale(unit_name, result, entry=entry)
                record = None

        if record is not None:
            handle_source = rematerializer or self.rematerializer
            result = self._validate(record, expected_path, self.config.disk_max_age, now)

            if not result.is_valid:
                stale = True
                self._evict_stale(unit_name, result, record=record)
            elif handle_source is not None:
                promoted = self._promote(record, handle_source, now)
                if promoted is not None:
                    log_cache_operation('get', unit_name, True, time.time() - start_time)
                    return CacheLookup(LookupStatus.DISK_HIT, promoted.handle, promoted)

        with self._lock:
            self.stats['misses'] += 1
        log_cache_operation('get', unit_name, False, time.time() - start_time)
        return CacheLookup(LookupStatus.STALE if stale else LookupStatus.MISS)

    def get_cached(self, unit_name: str, source_path: Optional[str] = None) -> Any:
        """Return the cached handle for a unit, or None"""
        return self.lookup(unit_name, source_path).handle

    def set_cached(self, unit_name: str, handle: Any, source_path: str,
                   cached_at: Optional[datetime] = None) -> CacheEntry:
        """
        Store a freshly loaded unit in both tiers

        Raises:
            PathNotFoundError: If the source path does not exist
            CacheError: If the unit name is empty
        """
        self._ensure_initialized()
        start_time = time.time()

        if not unit_name:
            raise CacheError("Cannot cache a unit without a name", source_path=source_path)

        source_path = normalize_path(source_path)
        if not os.path.exists(source_path):
            raise PathNotFoundError(
                "Source path does not exist",
                unit_name=unit_name,
                source_path=source_path
            )

        content_hash = self.hash_probe.try_compute(source_path)
        cached_at = cached_at or utc_now()
        entry = CacheEntry(
            unit_name=unit_name,
            handle=handle,
            source_path=source_path,
            content_hash=content_hash,
            cached_at=cached_at,
            last_accessed_at=cached_at
        )
        self.store_entry(entry)

        log_cache_operation('set', unit_name, False, time.time() - start_time)
        return entry

    def store_entry(self, entry: CacheEntry):
        """Insert a fully built entry into both tiers and persist"""
        self._ensure_initialized()
        with self._lock:
            if not self.index.set(entry):
                raise CacheError("Rejected malformed cache entry", source_path=entry.source_path)
            self._records[entry.unit_name] = entry.to_record()
            self.stats['writes'] += 1
            self._save()
            self.enforce_size_limit(protect=entry.unit_name)

    def invalidate(self, unit_name: str) -> bool:
        """Remove one unit from both tiers"""
        self._ensure_initialized()
        with self._lock:
            removed = self._remove(unit_name)
            if removed:
                self._save()

        if removed:
            log_cache_operation('evict', unit_name, False)
        return removed

    def invalidate_matching(self, pattern: MatchPattern) -> List[str]:
        """
        Remove every unit whose name matches

        Args:
            pattern: Regex (string or compiled), or a predicate called with
                (unit_name, record)

        Returns:
            Names of the removed units
        """
        self._ensure_initialized()
        matcher = self._build_matcher(pattern)

        with self._lock:
            candidates = self._known_records()
            removed = [name for name, record in candidates.items() if matcher(name, record)]
            for name in removed:
                self._remove(name)
            if removed:
                self._save()

        if removed:
            self.logger.info(f"Invalidated {len(removed)} units matching {pattern!r}")
        return removed

    def prune(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Drop expired records and records whose source path is gone

        Returns:
            Counts of removed records by reason
        """
        self._ensure_initialized()
        results = {'expired_removed': 0, 'orphaned_removed': 0}

        with self._lock:
            results['expired_removed'] = self.reaper.sweep(self._records, self.index, now)

            orphaned = [
                name for name, record in self._known_records().items()
                if not os.path.exists(record.source_path)
            ]
            for name in orphaned:
                self._remove(name)
            results['orphaned_removed'] = len(orphaned)

            if results['expired_removed'] or orphaned:
                self._save()

        if orphaned:
            log_cache_operation('cleanup', f"{len(orphaned)} orphaned records", False)
        return results

    def enforce_size_limit(self, protect: Optional[str] = None) -> int:
        """
        Evict least-recently-accessed records while over the size budget

        Once the cache directory exceeds max_cache_size_mb, records are
        evicted oldest access first until the directory would be at or
        below 70% of the budget. The protected unit is never evicted.

        Returns:
            Number of records evicted
        """
        with self._lock:
            if not self._initialized or not self.cache_dir:
                return 0

            limit = self.config.max_cache_size_mb * 1024 * 1024
            current_size = directory_size(self.cache_dir)
            if current_size <= limit:
                return 0

            target = limit * SIZE_TARGET_RATIO
            candidates = sorted(
                (record for name, record in self._records.items() if name != protect),
                key=lambda record: record.last_accessed_at
            )

            evicted = []
            for record in candidates:
                if current_size <= target:
                    break
                current_size -= self._record_footprint(record)
                self._remove(record.unit_name)
                evicted.append(record.unit_name)

            if evicted:
                self.stats['evictions'] += len(evicted)
                self._save()
                for name in evicted:
                    log_cache_operation('evict', name, False)
                self.logger.info(
                    f"Size budget exceeded: evicted {len(evicted)} records "
                    f"(now {directory_size(self.cache_dir) / (1024 * 1024):.2f} MB)"
                )
            return len(evicted)

    def get_statistics(self) -> Dict[str, Any]:
        """Get cache statistics and performance metrics"""
        with self._lock:
            total_size = directory_size(self.cache_dir) if self.cache_dir else 0
            total_requests = self.stats['total_requests']
            hit_rate = (self.stats['hits'] / total_requests * 100) if total_requests > 0 else 0

            return {
                'cache_directory': self.cache_dir,
                'memory_entries': len(self.index),
                'disk_entries': len(self._records),
                'total_cache_size_mb': round(total_size / (1024 * 1024), 4),
                'max_cache_size_mb': self.config.max_cache_size_mb,
                'initialized': self._initialized,
                'performance': {
                    **self.stats,
                    'hit_rate': round(hit_rate, 2)
                },
                'validation': self.validator.get_validation_stats()
            }

    def clear_cache(self):
        """
        Empty both tiers and delete the cache directory

        The directory stays absent until the next save recreates it.
        """
        with self._lock:
            self.index.clear()
            self._records = {}
            self.stats = self._fresh_stats()
            if self.cache_dir:
                remove_directory(self.cache_dir)

        self.logger.info(f"Cache cleared: {self.cache_dir}")

    def optimize_cache(self) -> Dict[str, Any]:
        """
        Prune, enforce the size budget and suggest configuration changes

        Returns:
            Counts of removed records plus a list of recommendations
        """
        self._ensure_initialized()
        results: Dict[str, Any] = dict(self.prune())
        results['size_evictions'] = self.enforce_size_limit()

        stats = self.get_statistics()
        results['recommendations'] = self._recommendations(stats)
        results['total_cache_size_mb'] = stats['total_cache_size_mb']
        return results

    # Private helper methods

    def _validate(self, entry, expected_path: Optional[str], max_age, now) -> ValidationResult:
        if expected_path and normalize_path(entry.source_path) != expected_path:
            # Unit now points somewhere else; treat like a vanished source
            return ValidationResult.PATH_MISSING
        return self.validator.evaluate(entry, entry.source_path, max_age, now)

    def _promote(self, record: MetadataRecord, rematerializer: Rematerializer,
                 now: datetime) -> Optional[CacheEntry]:
        """Re-materialize a disk record into the memory tier"""
        try:
            handle = rematerializer(record.unit_name, record.source_path)
        except Exception as e:
            self.logger.warning(f"Could not re-materialize {record.unit_name} from disk record: {e}")
            return None

        entry = CacheEntry.from_record(record, handle, promoted_at=now)
        entry.touch(now)

        with self._lock:
            self.index.set(entry)
            self._records[record.unit_name] = entry.to_record()
            self.stats['hits'] += 1
            self.stats['disk_hits'] += 1
            self._save()
        return entry

    def _evict_stale(self, unit_name: str, reason: ValidationResult,
                     entry: Optional[CacheEntry] = None, record: Optional[MetadataRecord] = None):
        """Evict a unit unless a newer entry replaced the one that was validated"""
        with self._lock:
            if entry is not None and self.index.get(unit_name) is not entry:
                return
            if record is not None and self._records.get(unit_name) is not record:
                return
            if self._remove(unit_name):
                self.stats['stale_evictions'] += 1
                self._save()
        self.logger.debug(f"Evicted stale unit {unit_name}: {reason.value}")

    def _remove(self, unit_name: str) -> bool:
        """Drop a unit from both tiers without saving (caller holds the lock)"""
        in_memory = self.index.remove(unit_name)
        on_disk = self._records.pop(unit_name, None) is not None
        return in_memory or on_disk

    def _known_records(self) -> Dict[str, MetadataRecord]:
        """Disk records plus projections of memory-only entries"""
        known = dict(self._records)
        for name, entry in self.index.snapshot().items():
            known.setdefault(name, entry.to_record())
        return known

    def _save(self):
        if self.store is None:
            return
        if not self.store.save(self._records):
            self.stats['save_failures'] += 1

    @staticmethod
    def _record_footprint(record: MetadataRecord) -> int:
        """Approximate bytes a record occupies in the index file"""
        return len(json.dumps({record.unit_name: record.to_dict()}, indent=2).encode('utf-8'))

    @staticmethod
    def _build_matcher(pattern: MatchPattern) -> Callable[[str, MetadataRecord], bool]:
        if callable(pattern) and not isinstance(pattern, (str, re.Pattern)):
            return pattern
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        return lambda name, record: regex.search(name) is not None

    def _recommendations(self, stats: Dict[str, Any]) -> List[str]:
        recommendations = []
        performance = stats['performance']

        if performance['total_requests'] >= 10 and performance['hit_rate'] < 50:
            recommendations.append(
                f"Low hit rate ({performance['hit_rate']:.1f}%); consider longer retention or preloading hot units"
            )
        if stats['total_cache_size_mb'] > self.config.max_cache_size_mb * 0.8:
            recommendations.append("Cache directory is above 80% of its size budget; consider raising max_cache_size_mb")
        if performance['evictions'] > performance['writes'] * 0.5 and performance['writes'] > 0:
            recommendations.append("Frequent size evictions; the size budget is too small for the working set")
        if performance['save_failures']:
            recommendations.append(
                f"{performance['save_failures']} metadata saves failed; check permissions on {stats['cache_directory']}"
            )
        if stats['memory_entries'] == 0 and stats['disk_entries'] > 0:
            recommendations.append("No units in memory; a batch preload would warm the memory tier")
        return recommendations
