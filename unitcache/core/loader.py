"""
Unit Cache - Single Unit Loader

Resolves one unit through the active-instance hook, the memory tier, the
disk tier and finally the external load callback, in that order.
"""

import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from ..utils.filesystem import normalize_path
from ..utils.logging_config import get_logger, log_error
from .exceptions import CacheError, LoadCancelled, LoadFailure, PathNotFoundError
from .models import CacheLookup, LoadRequest, LoadResult, LoadSource, LookupStatus


LoadCallback = Callable[[str, str], Any]
ActiveLookup = Callable[[str, str], Any]


class UnitLoader:
    """
    Loads a single unit, consulting the cache before the external loader

    Features:
    - Zero-cost reuse of already active instances
    - Memory and disk tier resolution through the cache service
    - Callback failures wrapped in LoadFailure, nothing cached on failure
    - Cooperative cancellation before the cold load
    """

    def __init__(self, cache_service, load_callback: Optional[LoadCallback] = None,
                 active_lookup: Optional[ActiveLookup] = None):
        """
        Initialize the unit loader

        Args:
            cache_service: UnitCacheService shared by all loads
            load_callback: Default external loader (unit_name, source_path) -> handle
            active_lookup: Optional hook (unit_name, source_path) returning an
                already live instance for that source
        """
        self.cache_service = cache_service
        self.load_callback = load_callback
        self.active_lookup = active_lookup
        self.logger = get_logger('loader')

        self._lock = threading.Lock()
        self.loader_stats = self._fresh_stats()

    @staticmethod
    def _fresh_stats() -> Dict[str, Any]:
        return {
            'loads_requested': 0,
            'active_hits': 0,
            'memory_hits': 0,
            'disk_hits': 0,
            'cold_loads': 0,
            'failed_loads': 0,
            'cancelled_loads': 0,
            'total_load_time': 0.0
        }

    def load(self, source_path: str, force: bool = False,
             load_callback: Optional[LoadCallback] = None,
             unit_name: Optional[str] = None,
             cancel_event: Optional[threading.Event] = None) -> Any:
        """
        Load a unit and return its handle

        Args:
            source_path: Path backing the unit
            force: Skip every cache tier and always cold load
            load_callback: Overrides the default external loader
            unit_name: Defaults to the file stem of source_path
            cancel_event: Checked before the external loader runs

        Returns:
            The loaded handle

        Raises:
            LoadFailure: PathNotFoundError, LoadCancelled or a wrapped callback error
        """
        handle, _ = self.load_unit(source_path, force, load_callback, unit_name, cancel_event)
        return handle

    def load_unit(self, source_path: str, force: bool = False,
                  load_callback: Optional[LoadCallback] = None,
                  unit_name: Optional[str] = None,
                  cancel_event: Optional[threading.Event] = None) -> Tuple[Any, LoadSource]:
        """Same as load() but also reports which tier served the handle"""
        start_time = time.time()
        source_path = normalize_path(source_path)
        unit_name = unit_name or Path(source_path).stem
        callback = load_callback or self.load_callback

        with self._lock:
            self.loader_stats['loads_requested'] += 1

        try:
            self._check_cancelled(unit_name, source_path, cancel_event)

            # Phase 1: Active instance
            if not force:
                handle = self._find_active(unit_name, source_path)
                if handle is not None:
                    return self._finish(handle, LoadSource.ACTIVE, start_time)

            # Phase 2: Source validation
            self._validate_source(unit_name, source_path)

            # Phase 3: Memory and disk tiers
            if not force:
                lookup = self._lookup(unit_name, source_path, callback)
                if lookup.hit:
                    source = LoadSource.DISK if lookup.status == LookupStatus.DISK_HIT else LoadSource.MEMORY
                    return self._finish(lookup.handle, source, start_time)

            # Phase 4: Cold load
            self._check_cancelled(unit_name, source_path, cancel_event)
            handle = self._cold_load(unit_name, source_path, callback)

            # Phase 5: Cache storage
            self._store(unit_name, handle, source_path)
            return self._finish(handle, LoadSource.COLD, start_time)

        except LoadFailure as e:
            with self._lock:
                self.loader_stats['failed_loads'] += 1
                if isinstance(e, LoadCancelled):
                    self.loader_stats['cancelled_loads'] += 1
            raise

    def load_request(self, request: LoadRequest, force: bool = False,
                     load_callback: Optional[LoadCallback] = None,
                     cancel_event: Optional[threading.Event] = None) -> LoadResult:
        """
        Load one request and capture the outcome instead of raising

        Returns:
            LoadResult; failures carry the exception in .error
        """
        start_time = time.time()
        result = LoadResult(unit_name=request.unit_name, source_path=request.source_path)

        try:
            handle, source = self.load_unit(
                request.source_path, force, load_callback, request.unit_name, cancel_event
            )
            result.success = True
            result.handle = handle
            result.source = source
        except LoadFailure as e:
            result.error = e
            if isinstance(e, LoadCancelled):
                self.logger.debug(f"Load cancelled: {request.unit_name}")
            else:
                self.logger.warning(f"Load failed: {e}")
        except Exception as e:
            result.error = LoadFailure(
                f"Unexpected error loading unit: {e}",
                unit_name=request.unit_name,
                details=type(e).__name__,
                source_path=request.source_path
            )
            result.error.__cause__ = e
            log_error('loader', e, {'unit_name': request.unit_name, 'source_path': request.source_path})

        result.load_time = time.time() - start_time
        return result

    def _find_active(self, unit_name: str, source_path: str) -> Any:
        if self.active_lookup is None:
            return None
        try:
            return self.active_lookup(unit_name, source_path)
        except Exception as e:
            self.logger.warning(f"Active instance lookup failed for {unit_name}: {e}")
            return None

    def _lookup(self, unit_name: str, source_path: str, callback: Optional[LoadCallback]) -> CacheLookup:
        try:
            return self.cache_service.lookup(unit_name, source_path, rematerializer=callback)
        except CacheError as e:
            # Unusable cache directory: behave like a cold cache
            self.logger.warning(f"Cache lookup failed for {unit_name}, loading from source: {e}")
            return CacheLookup(LookupStatus.MISS)

    def _validate_source(self, unit_name: str, source_path: str):
        if not os.path.exists(source_path):
            # A unit whose source is gone is never served from cache
            try:
                self.cache_service.invalidate(unit_name)
            except CacheError as e:
                self.logger.warning(f"Could not invalidate {unit_name}: {e}")
            raise PathNotFoundError(
                "Source path does not exist",
                unit_name=unit_name,
                source_path=source_path
            )

    def _check_cancelled(self, unit_name: str, source_path: str,
                         cancel_event: Optional[threading.Event]):
        if cancel_event is not None and cancel_event.is_set():
            raise LoadCancelled("Load cancelled before start", unit_name=unit_name, source_path=source_path)

    def _cold_load(self, unit_name: str, source_path: str, callback: Optional[LoadCallback]) -> Any:
        if callback is None:
            raise LoadFailure("No load callback configured", unit_name=unit_name, source_path=source_path)

        try:
            return callback(unit_name, source_path)
        except LoadFailure:
            raise
        except Exception as e:
            raise LoadFailure(
                f"Load callback failed: {e}",
                unit_name=unit_name,
                details=type(e).__name__,
                source_path=source_path
            ) from e

    def _store(self, unit_name: str, handle: Any, source_path: str):
        try:
            self.cache_service.set_cached(unit_name, handle, source_path)
        except CacheError as e:
            # Loaded fine; caching is best-effort
            self.logger.warning(f"Loaded {unit_name} but could not cache it: {e}")

    def _finish(self, handle: Any, source: LoadSource, start_time: float) -> Tuple[Any, LoadSource]:
        elapsed = time.time() - start_time
        key = {
            LoadSource.ACTIVE: 'active_hits',
            LoadSource.MEMORY: 'memory_hits',
            LoadSource.DISK: 'disk_hits',
            LoadSource.COLD: 'cold_loads'
        }[source]

        with self._lock:
            self.loader_stats[key] += 1
            self.loader_stats['total_load_time'] += elapsed
        return handle, source

    def get_loader_stats(self) -> Dict[str, Any]:
        """Get loader statistics"""
        with self._lock:
            stats = self.loader_stats.copy()

        served = stats['active_hits'] + stats['memory_hits'] + stats['disk_hits'] + stats['cold_loads']
        stats['average_load_time'] = stats['total_load_time'] / served if served > 0 else 0.0
        stats['cache_hit_rate'] = (
            (stats['active_hits'] + stats['memory_hits'] + stats['disk_hits']) / served * 100
            if served > 0 else 0.0
        )
        return stats

    def reset_stats(self):
        """Reset loader statistics"""
        with self._lock:
            self.loader_stats = self._fresh_stats()


__all__ = ['UnitLoader', 'LoadCallback', 'ActiveLookup']
