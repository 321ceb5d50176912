"""
Unit Cache Utilities Package

This package contains utility functions used throughout the package.
"""

from .filesystem import ensure_directory, atomic_write_text, directory_size, remove_directory, normalize_path
from .module_loader import load_python_module, find_loaded_module, unload_python_module, module_key

__all__ = [
    'ensure_directory',
    'atomic_write_text',
    'directory_size',
    'remove_directory',
    'normalize_path',
    'load_python_module',
    'find_loaded_module',
    'unload_python_module',
    'module_key'
]
