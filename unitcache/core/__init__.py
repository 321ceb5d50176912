"""
Unit Cache Core Package

This package contains the data models, exceptions and the single-unit
loader used by the cache services.
"""

from .models import (
    CacheEntry, MetadataRecord, CacheLookup, LoadRequest, LoadResult,
    BatchLoadResult, CacheConfiguration, LoadSource, LookupStatus, ValidationResult
)
from .exceptions import (
    UnitCacheError, ServiceError, CacheError, HashComputeError,
    MetadataCorruptError, LoadFailure, PathNotFoundError, LoadCancelled,
    ConfigurationError
)

__all__ = [
    'CacheEntry',
    'MetadataRecord',
    'CacheLookup',
    'LoadRequest',
    'LoadResult',
    'BatchLoadResult',
    'CacheConfiguration',
    'LoadSource',
    'LookupStatus',
    'ValidationResult',
    'UnitCacheError',
    'ServiceError',
    'CacheError',
    'HashComputeError',
    'MetadataCorruptError',
    'LoadFailure',
    'PathNotFoundError',
    'LoadCancelled',
    'ConfigurationError'
]
