"""
Unit Cache - Application Facade

Wires the cache service, the single-unit loader and the batch loader
together and exposes the programmatic surface used by the CLI and by
embedding applications.
"""

import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Union

from .core.loader import ActiveLookup, LoadCallback, UnitLoader
from .core.models import BatchLoadResult, CacheConfiguration, CacheEntry, CacheLookup
from .services.batch_loader import BatchLoader, ProgressCallback, RequestLike
from .services.unit_cache import MatchPattern, Rematerializer, UnitCacheService
from .utils.logging_config import get_logger, log_performance_summary
from .utils.module_loader import find_loaded_module, load_python_module


class UnitCacheManager:
    """
    Unit Cache Application

    Provides:
    - Two-tier caching of loaded units (memory handles, disk metadata)
    - Single and parallel batch loading with cache resolution
    - Invalidation, pruning and size-budget enforcement
    - Session statistics and optimization recommendations
    """

    def __init__(self, config: Optional[Union[CacheConfiguration, Dict[str, Any]]] = None,
                 load_callback: Optional[LoadCallback] = None,
                 rematerializer: Optional[Rematerializer] = None,
                 active_lookup: Optional[ActiveLookup] = None):
        """
        Initialize the manager

        Args:
            config: CacheConfiguration or a CLIConfig-style dictionary
            load_callback: Default loader (unit_name, source_path) -> handle
            rematerializer: Rebuilds a handle for a disk-tier hit; defaults to load_callback
            active_lookup: Optional hook (unit_name, source_path) returning an already live instance
        """
        if isinstance(config, CacheConfiguration):
            self.settings = config
        else:
            self.settings = CacheConfiguration.from_config(config or {})

        self.logger = get_logger('main')
        self._stats_lock = threading.Lock()

        self.cache_service = UnitCacheService(self.settings, rematerializer=rematerializer or load_callback)
        self.unit_loader = UnitLoader(self.cache_service, load_callback, active_lookup)
        self.batch_loader = BatchLoader(
            self.unit_loader,
            default_workers=self.settings.default_workers,
            batch_timeout=self.settings.batch_timeout_seconds,
            show_progress=self.settings.progress_bars
        )

        self.session_stats = {
            'batches_run': 0,
            'units_requested': 0,
            'session_start_time': time.time()
        }

        self.logger.debug(f"Unit cache manager created (cache dir: {self.settings.cache_dir})")

    @classmethod
    def for_python_modules(cls, config: Optional[Union[CacheConfiguration, Dict[str, Any]]] = None
                           ) -> 'UnitCacheManager':
        """Manager whose units are Python source files imported as modules"""
        return cls(config, load_callback=load_python_module, active_lookup=find_loaded_module)

    def initialize(self, cache_directory: Optional[str] = None,
                   max_cache_size_mb: Optional[float] = None) -> bool:
        return self.cache_service.initialize(cache_directory, max_cache_size_mb)

    def get_cached(self, unit_name: str, source_path: Optional[str] = None) -> Any:
        return self.cache_service.get_cached(unit_name, source_path)

    def lookup(self, unit_name: str, source_path: Optional[str] = None) -> CacheLookup:
        return self.cache_service.lookup(unit_name, source_path)

    def set_cached(self, unit_name: str, handle: Any, source_path: str) -> CacheEntry:
        return self.cache_service.set_cached(unit_name, handle, source_path)

    def load_optimized(self, source_path: str, force: bool = False,
                       load_callback: Optional[LoadCallback] = None,
                       unit_name: Optional[str] = None,
                       cancel_event: Optional[threading.Event] = None) -> Any:
        """
        Load one unit through the cache

        Raises:
            LoadFailure: If the unit cannot be loaded
        """
        with self._stats_lock:
            self.session_stats['units_requested'] += 1
        return self.unit_loader.load(source_path, force, load_callback, unit_name, cancel_event)

    def load_batch(self, requests: Iterable[RequestLike], throttle_limit: Optional[int] = None,
                   force: bool = False, load_callback: Optional[LoadCallback] = None,
                   cancel_event: Optional[threading.Event] = None, timeout: Optional[float] = None,
                   progress_callback: Optional[ProgressCallback] = None,
                   show_progress: Optional[bool] = None) -> BatchLoadResult:
        """Load many units in parallel; never raises for individual failures"""
        requests = list(requests)
        with self._stats_lock:
            self.session_stats['batches_run'] += 1
            self.session_stats['units_requested'] += len(requests)

        return self.batch_loader.load_batch(
            requests, throttle_limit=throttle_limit, force=force, load_callback=load_callback,
            cancel_event=cancel_event, timeout=timeout, progress_callback=progress_callback,
            show_progress=show_progress
        )

    def get_statistics(self) -> Dict[str, Any]:
        """Cache statistics plus loader and session counters"""
        stats = self.cache_service.get_statistics()
        stats['loader'] = self.unit_loader.get_loader_stats()

        with self._stats_lock:
            stats['session'] = {
                'duration_seconds': round(time.time() - self.session_stats['session_start_time'], 1),
                'batches_run': self.session_stats['batches_run'],
                'units_requested': self.session_stats['units_requested']
            }
        return stats

    def clear_cache(self):
        self.cache_service.clear_cache()
        self.unit_loader.reset_stats()

    def invalidate(self, unit_name: str) -> bool:
        return self.cache_service.invalidate(unit_name)

    def invalidate_matching(self, pattern: MatchPattern) -> List[str]:
        return self.cache_service.invalidate_matching(pattern)

    def prune(self) -> Dict[str, int]:
        return self.cache_service.prune()

    def optimize_cache(self) -> Dict[str, Any]:
        """Prune, enforce the size budget and collect recommendations"""
        results = self.cache_service.optimize_cache()

        loader_stats = self.unit_loader.get_loader_stats()
        if loader_stats['average_load_time'] > 5.0:
            results['recommendations'].append(
                "Slow loads - consider increasing the worker count for batch loads"
            )
        return results

    def log_summary(self):
        """Write the current statistics to the performance log"""
        log_performance_summary(self.get_statistics())

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.log_summary()


__all__ = ['UnitCacheManager']
