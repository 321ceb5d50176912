"""
Data models for Unit Cache

This module defines all data structures used throughout the package
for configuration, cache entries, persisted metadata and load results.
"""

import os
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .exceptions import LoadCancelled


MEMORY_MAX_AGE = timedelta(hours=24)
DISK_MAX_AGE = timedelta(days=7)
INDEX_FILENAME = "cache-index.json"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ISO-8601 (UTC)"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC"""
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {type(value).__name__}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class LoadSource(str, Enum):
    """Where a handle came from"""
    ACTIVE = "active"
    MEMORY = "memory"
    DISK = "disk"
    COLD = "cold"


class LookupStatus(str, Enum):
    """Outcome of a cache lookup"""
    MEMORY_HIT = "memory_hit"
    DISK_HIT = "disk_hit"
    MISS = "miss"
    STALE = "stale"


class ValidationResult(str, Enum):
    """Outcome of validating a cache entry against its source"""
    VALID = "valid"
    VALID_HASH_INCONCLUSIVE = "valid_hash_inconclusive"
    PATH_MISSING = "path_missing"
    HASH_MISMATCH = "hash_mismatch"
    EXPIRED = "expired"

    @property
    def is_valid(self) -> bool:
        return self in (ValidationResult.VALID, ValidationResult.VALID_HASH_INCONCLUSIVE)


@dataclass
class MetadataRecord:
    """Persisted projection of a cache entry (no handle)"""

    unit_name: str
    source_path: str
    content_hash: Optional[str] = None
    cached_at: datetime = field(default_factory=utc_now)
    last_accessed_at: datetime = field(default_factory=utc_now)

    def age(self, now: Optional[datetime] = None) -> timedelta:
        return (now or utc_now()) - self.cached_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the index-file representation"""
        return {
            "SourcePath": self.source_path,
            "ContentHash": self.content_hash,
            "CachedAt": format_timestamp(self.cached_at),
            "LastAccessedAt": format_timestamp(self.last_accessed_at),
        }

    @classmethod
    def from_dict(cls, unit_name: str, data: Dict[str, Any]) -> 'MetadataRecord':
        """Create from the index-file representation"""
        if not isinstance(data, dict):
            raise ValueError(f"Record for {unit_name!r} is not an object")
        source_path = data.get("SourcePath")
        if not source_path or not isinstance(source_path, str):
            raise ValueError(f"Record for {unit_name!r} has no SourcePath")
        content_hash = data.get("ContentHash")
        if content_hash is not None and not isinstance(content_hash, str):
            raise ValueError(f"Record for {unit_name!r} has a non-string ContentHash")

        cached_at = parse_timestamp(data.get("CachedAt"))
        last_accessed_raw = data.get("LastAccessedAt")
        last_accessed_at = parse_timestamp(last_accessed_raw) if last_accessed_raw else cached_at
        return cls(
            unit_name=unit_name,
            source_path=source_path,
            content_hash=content_hash,
            cached_at=cached_at,
            last_accessed_at=max(cached_at, last_accessed_at),
        )


@dataclass
class CacheEntry:
    """Live cache entry holding a loaded unit"""

    unit_name: str
    handle: Any
    source_path: str
    content_hash: Optional[str] = None
    cached_at: datetime = field(default_factory=utc_now)
    last_accessed_at: datetime = field(default_factory=utc_now)
    promoted_at: Optional[datetime] = None

    def age(self, now: Optional[datetime] = None) -> timedelta:
        """Memory-tier age, counted from promotion for entries rebuilt from disk"""
        return (now or utc_now()) - (self.promoted_at or self.cached_at)

    def record_age(self, now: Optional[datetime] = None) -> timedelta:
        return (now or utc_now()) - self.cached_at

    def touch(self, now: Optional[datetime] = None):
        """Record an access; never moves before cached_at"""
        self.last_accessed_at = max(self.cached_at, now or utc_now())

    def to_record(self) -> MetadataRecord:
        return MetadataRecord(
            unit_name=self.unit_name,
            source_path=self.source_path,
            content_hash=self.content_hash,
            cached_at=self.cached_at,
            last_accessed_at=self.last_accessed_at,
        )

    @classmethod
    def from_record(cls, record: MetadataRecord, handle: Any,
                    promoted_at: Optional[datetime] = None) -> 'CacheEntry':
        """
        Promote a disk record to a memory entry with a fresh handle

        cached_at is kept from the record; the memory tier ages the entry
        from promoted_at instead.
        """
        return cls(
            unit_name=record.unit_name,
            handle=handle,
            source_path=record.source_path,
            content_hash=record.content_hash,
            cached_at=record.cached_at,
            last_accessed_at=record.last_accessed_at,
            promoted_at=promoted_at or utc_now(),
        )


@dataclass
class CacheLookup:
    """Typed result of a cache lookup"""

    status: LookupStatus
    handle: Any = None
    entry: Optional[CacheEntry] = None

    @property
    def hit(self) -> bool:
        return self.status in (LookupStatus.MEMORY_HIT, LookupStatus.DISK_HIT)


@dataclass
class LoadRequest:
    """A single unit to load"""

    unit_name: str
    source_path: str

    @classmethod
    def coerce(cls, value: Union['LoadRequest', Tuple[str, str]]) -> 'LoadRequest':
        if isinstance(value, LoadRequest):
            return value
        unit_name, source_path = value
        return cls(unit_name=unit_name, source_path=source_path)


@dataclass
class LoadResult:
    """Result of loading a single unit"""

    unit_name: str = ""
    source_path: str = ""
    success: bool = False
    handle: Any = None
    error: Optional[BaseException] = None
    source: Optional[LoadSource] = None
    load_time: float = 0.0
    timestamp: float = field(default_factory=time.time)

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, LoadCancelled)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization (handle omitted)"""
        return {
            'unit_name': self.unit_name,
            'source_path': self.source_path,
            'success': self.success,
            'source': self.source.value if self.source else None,
            'error': str(self.error) if self.error else None,
            'error_type': type(self.error).__name__ if self.error else None,
            'load_time': self.load_time,
            'timestamp': self.timestamp,
        }


@dataclass
class BatchLoadResult:
    """Result of a batch load operation"""

    # Overall stats
    total_requests: int = 0
    successful: int = 0
    failed: int = 0
    cancelled: int = 0

    # Timing
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    total_time: float = 0.0
    avg_load_time: float = 0.0

    workers: int = 0
    results: List[LoadResult] = field(default_factory=list)
    source_counts: Dict[str, int] = field(default_factory=dict)

    def add_result(self, result: LoadResult):
        """Add a load result to the batch"""
        self.results.append(result)

        if result.success:
            self.successful += 1
            if result.source:
                key = result.source.value
                self.source_counts[key] = self.source_counts.get(key, 0) + 1
        else:
            self.failed += 1
            if result.cancelled:
                self.cancelled += 1

    def get_result(self, unit_name: str) -> Optional[LoadResult]:
        for result in self.results:
            if result.unit_name == unit_name:
                return result
        return None

    @property
    def failures(self) -> List[LoadResult]:
        return [r for r in self.results if not r.success]

    @property
    def handles(self) -> Dict[str, Any]:
        return {r.unit_name: r.handle for r in self.results if r.success}

    def finalize(self):
        """Finalize batch and calculate summary stats"""
        self.end_time = time.time()
        self.total_time = self.end_time - self.start_time
        self.total_requests = len(self.results)

        if self.successful > 0:
            total_load_time = sum(r.load_time for r in self.results if r.success)
            self.avg_load_time = total_load_time / self.successful

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'total_requests': self.total_requests,
            'successful': self.successful,
            'failed': self.failed,
            'cancelled': self.cancelled,
            'workers': self.workers,
            'total_time': self.total_time,
            'avg_load_time': self.avg_load_time,
            'source_counts': dict(self.source_counts),
            'results': [r.to_dict() for r in self.results],
        }


@dataclass
class CacheConfiguration:
    """Settings for the cache and loader services"""

    cache_dir: str = field(default_factory=lambda: os.path.join(tempfile.gettempdir(), "unitcache"))
    index_filename: str = INDEX_FILENAME
    max_cache_size_mb: float = 100.0
    memory_max_age_hours: float = 24.0
    disk_max_age_days: float = 7.0
    hash_chunk_size: int = 65536

    default_workers: int = field(default_factory=lambda: os.cpu_count() or 1)
    batch_timeout_seconds: Optional[float] = None
    progress_bars: bool = False

    @property
    def memory_max_age(self) -> timedelta:
        return timedelta(hours=self.memory_max_age_hours)

    @property
    def disk_max_age(self) -> timedelta:
        return timedelta(days=self.disk_max_age_days)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            field.name: getattr(self, field.name)
            for field in self.__dataclass_fields__.values()
        }

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'CacheConfiguration':
        """Build from a merged CLIConfig-style dictionary"""
        cache = config.get('cache', {})
        loader = config.get('loader', {})
        ui = config.get('ui', {})

        settings = cls()
        if cache.get('cache_dir'):
            settings.cache_dir = cache['cache_dir']
        settings.index_filename = cache.get('index_filename', settings.index_filename)
        settings.max_cache_size_mb = cache.get('max_cache_size_mb', settings.max_cache_size_mb)
        settings.memory_max_age_hours = cache.get('memory_max_age_hours', settings.memory_max_age_hours)
        settings.disk_max_age_days = cache.get('disk_max_age_days', settings.disk_max_age_days)
        settings.hash_chunk_size = cache.get('hash_chunk_size', settings.hash_chunk_size)
        if loader.get('default_workers'):
            settings.default_workers = loader['default_workers']
        settings.batch_timeout_seconds = loader.get('batch_timeout_seconds', settings.batch_timeout_seconds)
        settings.progress_bars = ui.get('progress_bars', settings.progress_bars)
        return settings
