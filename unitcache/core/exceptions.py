"""
Custom exceptions for Unit Cache

This module defines all custom exceptions used throughout the package
to provide clear error handling and debugging information.
"""

from typing import Optional


class UnitCacheError(Exception):
    """Base exception for all Unit Cache errors"""

    def __init__(self, message: str, details: str = None, source_path: str = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.source_path = source_path

    def __str__(self):
        parts = [self.message]
        if self.source_path:
            parts.append(f"Path: {self.source_path}")
        if self.details:
            parts.append(f"Details: {self.details}")
        return " | ".join(parts)


class ConfigurationError(UnitCacheError):
    """Raised when a configuration value cannot be used"""
    pass


class ServiceError(UnitCacheError):
    """Raised when a service operation fails"""

    def __init__(self, service_name: str, message: str, details: str = None, source_path: str = None):
        super().__init__(message, details, source_path)
        self.service_name = service_name

    def __str__(self):
        return f"[{self.service_name}] {super().__str__()}"


class CacheError(ServiceError):
    """Raised when cache operations fail"""

    def __init__(self, message: str, details: str = None, source_path: str = None):
        super().__init__("Cache", message, details, source_path)


class HashComputeError(ServiceError):
    """Raised when a content hash cannot be computed (treated as inconclusive)"""

    def __init__(self, message: str, details: str = None, source_path: str = None):
        super().__init__("HashProbe", message, details, source_path)


class MetadataCorruptError(ServiceError):
    """Raised when the metadata index file cannot be parsed"""

    def __init__(self, message: str, details: str = None, source_path: str = None):
        super().__init__("MetadataStore", message, details, source_path)


class LoadFailure(ServiceError):
    """Raised when a unit could not be loaded"""

    def __init__(self, message: str, unit_name: Optional[str] = None,
                 details: str = None, source_path: str = None):
        super().__init__("Loader", message, details, source_path)
        self.unit_name = unit_name

    def __str__(self):
        base = super().__str__()
        if self.unit_name:
            return f"{base} | Unit: {self.unit_name}"
        return base


class PathNotFoundError(LoadFailure):
    """Raised when a unit's source path does not exist"""
    pass


class LoadCancelled(LoadFailure):
    """Raised when a load is cancelled before the loader callback runs"""
    pass
