"""Unit Cache package for loading and caching units of work.

This package provides a two-tier cache (live handles in memory, metadata on
disk) and a parallel loader that consults it before calling an external loader.
"""

from .unit_cache_manager import UnitCacheManager
from .core.models import CacheConfiguration, LoadRequest, LoadResult, BatchLoadResult, LoadSource
from .core.exceptions import UnitCacheError, LoadFailure, PathNotFoundError, LoadCancelled

__all__ = [
    "UnitCacheManager",
    "CacheConfiguration",
    "LoadRequest",
    "LoadResult",
    "BatchLoadResult",
    "LoadSource",
    "UnitCacheError",
    "LoadFailure",
    "PathNotFoundError",
    "LoadCancelled",
]
__version__ = "1.0.0"
__author__ = "RamC Venkatasamy"
