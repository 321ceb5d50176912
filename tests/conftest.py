import threading
import time

import pytest

from unitcache.core.models import CacheConfiguration
from unitcache.services.unit_cache import UnitCacheService


class CountingLoader:
    """Load callback that records calls and returns a fresh handle each time"""

    def __init__(self, fail_on=(), delay=0.0):
        self.calls = []
        self.fail_on = set(fail_on)
        self.delay = delay
        self.active = 0
        self.peak_active = 0
        self._lock = threading.Lock()

    def __call__(self, unit_name, source_path):
        with self._lock:
            self.calls.append(unit_name)
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if unit_name in self.fail_on:
                raise RuntimeError(f"cannot load {unit_name}")
            with open(source_path, 'r', encoding='utf-8') as f:
                return {'name': unit_name, 'content': f.read()}
        finally:
            with self._lock:
                self.active -= 1

    def count(self, unit_name=None):
        with self._lock:
            if unit_name is None:
                return len(self.calls)
            return self.calls.count(unit_name)


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache"


@pytest.fixture
def make_unit(tmp_path):
    units_dir = tmp_path / "units"
    units_dir.mkdir()

    def _make(name, content=None):
        path = units_dir / f"{name}.txt"
        path.write_text(content if content is not None else f"unit {name}\n", encoding='utf-8')
        return str(path)

    return _make


@pytest.fixture
def config(cache_dir):
    return CacheConfiguration(cache_dir=str(cache_dir))


@pytest.fixture
def loader():
    return CountingLoader()


@pytest.fixture
def service(config, loader):
    cache = UnitCacheService(config, rematerializer=loader)
    cache.initialize()
    return cache
