"""
Service Layer for Unit Cache

Leaf services (hashing, validation, persistence) and the two services that
compose them: the two-tier cache and the parallel batch loader.
"""

from .hash_probe import HashProbe
from .cache_index import CacheIndex
from .validator import CacheValidator
from .metadata_store import MetadataStore
from .reaper import Reaper
from .unit_cache import UnitCacheService
from .batch_loader import BatchLoader

__all__ = [
    'HashProbe',
    'CacheIndex',
    'CacheValidator',
    'MetadataStore',
    'Reaper',
    'UnitCacheService',
    'BatchLoader'
]
