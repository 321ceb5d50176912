"""
Python module loader callbacks

Default loader for the cache: treats a ``.py`` file as a loadable unit and
imports it as a module. Units are registered in ``sys.modules`` under
``unitcache.units.<unit_name>`` so they never shadow regular imports.
``find_loaded_module`` is the matching active-instance lookup.
"""

import hashlib
import importlib.util
import os
import sys
from types import ModuleType
from typing import Optional

from .filesystem import normalize_path
from .logging_config import get_logger

logger = get_logger('loader')

UNIT_MODULE_PREFIX = 'unitcache.units.'

# (normalized source path, sha256 of the executed source)
SOURCE_STAMP_ATTR = '__unitcache_source__'


def module_key(unit_name: str) -> str:
    """sys.modules key for a unit"""
    return f'{UNIT_MODULE_PREFIX}{unit_name}'


def _source_digest(source_path: str) -> str:
    with open(source_path, 'rb') as f:
        return hashlib.sha256(f.read()).hexdigest()


def load_python_module(unit_name: str, source_path: str) -> ModuleType:
    """
    Import a Python source file as the module for ``unit_name``

    Args:
        unit_name: Unit name; the module is registered under module_key(unit_name)
        source_path: Path to the ``.py`` file

    Returns:
        The executed module object

    Raises:
        FileNotFoundError: If the source file does not exist
        ImportError: If no import spec can be built for the file
        Exception: Whatever the module body raises while executing
    """
    if not os.path.isfile(source_path):
        raise FileNotFoundError(source_path)

    key = module_key(unit_name)
    spec = importlib.util.spec_from_file_location(key, source_path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot build import spec for {source_path}")

    digest = _source_digest(source_path)
    module = importlib.util.module_from_spec(spec)
    previous = sys.modules.get(key)
    sys.modules[key] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        if previous is not None:
            sys.modules[key] = previous
        else:
            sys.modules.pop(key, None)
        raise

    setattr(module, SOURCE_STAMP_ATTR, (normalize_path(source_path), digest))
    logger.debug(f"Imported module {key} from {source_path}")
    return module


def find_loaded_module(unit_name: str, source_path: Optional[str] = None) -> Optional[ModuleType]:
    """
    Return the already-imported module for ``unit_name``, if it is current

    With a source_path, the module is only returned when it was imported
    from that file and the file content has not changed since.
    """
    module = sys.modules.get(module_key(unit_name))
    if module is None or source_path is None:
        return module

    stamp = getattr(module, SOURCE_STAMP_ATTR, None)
    if not stamp:
        return None
    loaded_path, loaded_digest = stamp
    if loaded_path != normalize_path(source_path):
        return None

    try:
        current_digest = _source_digest(source_path)
    except OSError:
        return None
    if current_digest != loaded_digest:
        logger.debug(f"Source of {unit_name} changed since import")
        return None
    return module


def unload_python_module(unit_name: str) -> bool:
    """Drop a unit module from sys.modules; True if it was present"""
    return sys.modules.pop(module_key(unit_name), None) is not None


__all__ = ['load_python_module', 'find_loaded_module', 'unload_python_module', 'module_key']
