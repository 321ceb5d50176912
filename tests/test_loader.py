import json
import os
import sys
import threading
import uuid

import pytest

from conftest import CountingLoader
from unitcache.core.exceptions import LoadCancelled, LoadFailure, PathNotFoundError
from unitcache.core.loader import UnitLoader
from unitcache.core.models import CacheConfiguration, LoadRequest, LoadSource
from unitcache.services.hash_probe import HashProbe
from unitcache.services.unit_cache import UnitCacheService
from unitcache.utils.module_loader import find_loaded_module, load_python_module, unload_python_module


@pytest.fixture
def unit_loader(service, loader):
    return UnitLoader(service, loader)


def test_cold_then_memory_hit(unit_loader, loader, make_unit):
    path = make_unit("alpha")

    first, source = unit_loader.load_unit(path)
    second, second_source = unit_loader.load_unit(path)

    assert source == LoadSource.COLD
    assert second_source == LoadSource.MEMORY
    assert second is first
    assert loader.count() == 1


def test_unit_name_defaults_to_file_stem(unit_loader, service, make_unit):
    unit_loader.load(make_unit("alpha"))
    assert "alpha" in service.index


def test_explicit_unit_name(unit_loader, service, make_unit):
    unit_loader.load(make_unit("alpha"), unit_name="custom")
    assert "custom" in service.index
    assert "alpha" not in service.index


def test_force_reloads_and_replaces_entry(unit_loader, service, loader, make_unit):
    path = make_unit("alpha")
    first = unit_loader.load(path)
    forced = unit_loader.load(path, force=True)

    assert forced is not first
    assert loader.count() == 2
    assert service.get_cached("alpha", path) is forced


def test_modified_source_is_reloaded_with_new_hash(unit_loader, service, loader, make_unit):
    path = make_unit("alpha", "v1")
    unit_loader.load(path)

    with open(path, "w", encoding="utf-8") as f:
        f.write("v2")

    handle = unit_loader.load(path)

    assert handle["content"] == "v2"
    assert loader.count() == 2
    assert service.index.get("alpha").content_hash == HashProbe().compute(path)


def test_active_instance_wins(service, loader, make_unit):
    live = object()
    unit_loader = UnitLoader(service, loader, active_lookup=lambda name, path: live if name == "alpha" else None)
    path = make_unit("alpha")

    handle, source = unit_loader.load_unit(path)

    assert handle is live
    assert source == LoadSource.ACTIVE
    assert loader.count() == 0


def test_force_skips_active_instance(service, loader, make_unit):
    unit_loader = UnitLoader(service, loader, active_lookup=lambda name, path: object())

    handle, source = unit_loader.load_unit(make_unit("alpha"), force=True)

    assert source == LoadSource.COLD
    assert loader.count() == 1


def test_missing_path_raises_path_not_found(unit_loader, loader, tmp_path):
    with pytest.raises(PathNotFoundError) as exc_info:
        unit_loader.load(str(tmp_path / "missing.txt"))

    assert isinstance(exc_info.value, LoadFailure)
    assert exc_info.value.unit_name == "missing"
    assert loader.count() == 0


def test_missing_path_evicts_cached_unit(unit_loader, service, make_unit):
    path = make_unit("alpha")
    unit_loader.load(path)

    os.remove(path)

    with pytest.raises(PathNotFoundError):
        unit_loader.load(path)
    assert service.get_statistics()["disk_entries"] == 0


def test_callback_error_is_wrapped_and_nothing_cached(service, make_unit):
    failing = CountingLoader(fail_on={"alpha"})
    unit_loader = UnitLoader(service, failing)

    with pytest.raises(LoadFailure) as exc_info:
        unit_loader.load(make_unit("alpha"))

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert "cannot load alpha" in str(exc_info.value)
    stats = service.get_statistics()
    assert stats["memory_entries"] == 0
    assert stats["disk_entries"] == 0


def test_per_call_callback_overrides_default(unit_loader, loader, make_unit):
    other = CountingLoader()
    unit_loader.load(make_unit("alpha"), load_callback=other)

    assert other.count() == 1
    assert loader.count() == 0


def test_missing_callback_is_a_load_failure(service, make_unit):
    with pytest.raises(LoadFailure, match="No load callback configured"):
        UnitLoader(service).load(make_unit("alpha"))


def test_cancel_event_prevents_callback(unit_loader, loader, make_unit):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(LoadCancelled):
        unit_loader.load(make_unit("alpha"), cancel_event=cancel)
    assert loader.count() == 0


def test_disk_tier_after_restart(config, make_unit):
    path = make_unit("alpha")
    UnitLoader(UnitCacheService(config), CountingLoader()).load(path)

    restarted_loader = CountingLoader()
    restarted = UnitLoader(UnitCacheService(CacheConfiguration(cache_dir=config.cache_dir)), restarted_loader)

    handle, source = restarted.load_unit(path)

    assert source == LoadSource.DISK
    assert handle["name"] == "alpha"
    assert restarted_loader.count() == 1


def test_load_request_captures_failure(unit_loader, tmp_path):
    result = unit_loader.load_request(LoadRequest("ghost", str(tmp_path / "ghost.txt")))

    assert result.success is False
    assert isinstance(result.error, PathNotFoundError)
    assert result.handle is None
    assert result.to_dict()["error_type"] == "PathNotFoundError"


def test_load_request_success(unit_loader, make_unit):
    result = unit_loader.load_request(LoadRequest("alpha", make_unit("alpha")))

    assert result.success is True
    assert result.source == LoadSource.COLD
    assert result.load_time >= 0


def test_loader_stats(unit_loader, make_unit, tmp_path):
    path = make_unit("alpha")
    unit_loader.load(path)
    unit_loader.load(path)
    with pytest.raises(LoadFailure):
        unit_loader.load(str(tmp_path / "nope.txt"))

    stats = unit_loader.get_loader_stats()
    assert stats["loads_requested"] == 3
    assert stats["cold_loads"] == 1
    assert stats["memory_hits"] == 1
    assert stats["failed_loads"] == 1
    assert stats["cache_hit_rate"] == 50.0


class TestPythonModuleUnits:

    @pytest.fixture
    def module_name(self):
        name = f"unitcache_test_{uuid.uuid4().hex}"
        yield name
        unload_python_module(name)

    def test_loads_module_and_reuses_active_instance(self, service, module_name, tmp_path):
        source = tmp_path / f"{module_name}.py"
        source.write_text("VALUE = 42\n", encoding="utf-8")
        unit_loader = UnitLoader(service, load_python_module, find_loaded_module)

        module, source_kind = unit_loader.load_unit(str(source))
        again, again_kind = unit_loader.load_unit(str(source))

        assert module.VALUE == 42
        assert source_kind == LoadSource.COLD
        assert again is module
        assert again_kind == LoadSource.ACTIVE

    def test_import_error_is_wrapped(self, service, module_name, tmp_path):
        source = tmp_path / f"{module_name}.py"
        source.write_text("raise ValueError('broken module')\n", encoding="utf-8")
        unit_loader = UnitLoader(service, load_python_module, find_loaded_module)

        with pytest.raises(LoadFailure) as exc_info:
            unit_loader.load(str(source))

        assert isinstance(exc_info.value.__cause__, ValueError)
        assert find_loaded_module(module_name) is None
        assert service.get_statistics()["disk_entries"] == 0

    def test_unit_named_like_stdlib_module(self, service, tmp_path):
        source = tmp_path / "json.py"
        source.write_text("PLUGIN = True\n", encoding="utf-8")
        unit_loader = UnitLoader(service, load_python_module, find_loaded_module)

        try:
            module = unit_loader.load(str(source))
            forced = unit_loader.load(str(source), force=True)

            assert module.PLUGIN is True
            assert forced.PLUGIN is True
            assert sys.modules["json"] is json
        finally:
            unload_python_module("json")

    def test_modified_source_is_reimported(self, service, module_name, tmp_path):
        source = tmp_path / f"{module_name}.py"
        source.write_text("V = 1\n", encoding="utf-8")
        unit_loader = UnitLoader(service, load_python_module, find_loaded_module)

        first = unit_loader.load(str(source))
        source.write_text("V = 2\n", encoding="utf-8")
        second, kind = unit_loader.load_unit(str(source))

        assert first.V == 1
        assert second.V == 2
        assert kind == LoadSource.COLD


def test_unusable_cache_directory_falls_back_to_cold_load(tmp_path, loader, make_unit, caplog):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("occupied", encoding="utf-8")
    unit_loader = UnitLoader(UnitCacheService(CacheConfiguration(cache_dir=str(blocker))), loader)

    handle, source = unit_loader.load_unit(make_unit("alpha"))

    assert source == LoadSource.COLD
    assert handle["name"] == "alpha"
    assert loader.count() == 1
    assert "loading from source" in caplog.text

    with pytest.raises(PathNotFoundError):
        unit_loader.load(str(tmp_path / "missing.txt"))
