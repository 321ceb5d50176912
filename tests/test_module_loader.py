import json
import sys
import uuid

import pytest

from unitcache.utils.module_loader import (
    find_loaded_module, load_python_module, module_key, unload_python_module
)


@pytest.fixture
def module_name():
    name = f"unitcache_mod_{uuid.uuid4().hex}"
    yield name
    unload_python_module(name)


def test_load_registers_module(module_name, tmp_path):
    source = tmp_path / "plugin.py"
    source.write_text("def greet():\n    return 'hi'\n", encoding="utf-8")

    module = load_python_module(module_name, str(source))

    assert module.greet() == "hi"
    assert module.__name__ == module_key(module_name)
    assert sys.modules[module_key(module_name)] is module
    assert find_loaded_module(module_name) is module
    assert find_loaded_module(module_name, str(source)) is module


def test_units_never_shadow_regular_modules(tmp_path):
    source = tmp_path / "json.py"
    source.write_text("PLUGIN = True\n", encoding="utf-8")

    try:
        module = load_python_module("json", str(source))
        assert module.PLUGIN is True
        assert sys.modules["json"] is json
    finally:
        unload_python_module("json")


def test_lookup_rejects_other_source(module_name, tmp_path):
    source = tmp_path / "plugin.py"
    source.write_text("X = 1\n", encoding="utf-8")
    other = tmp_path / "other.py"
    other.write_text("X = 1\n", encoding="utf-8")
    load_python_module(module_name, str(source))

    assert find_loaded_module(module_name, str(other)) is None
    assert find_loaded_module(module_name, str(tmp_path / "missing.py")) is None


def test_lookup_rejects_modified_source(module_name, tmp_path):
    source = tmp_path / "plugin.py"
    source.write_text("X = 1\n", encoding="utf-8")
    load_python_module(module_name, str(source))

    source.write_text("X = 2\n", encoding="utf-8")

    assert find_loaded_module(module_name, str(source)) is None


def test_failed_import_is_not_registered(module_name, tmp_path):
    source = tmp_path / "broken.py"
    source.write_text("import definitely_not_a_real_module_xyz\n", encoding="utf-8")

    with pytest.raises(ImportError):
        load_python_module(module_name, str(source))
    assert module_key(module_name) not in sys.modules


def test_failed_reload_keeps_previous_module(module_name, tmp_path):
    source = tmp_path / "plugin.py"
    source.write_text("X = 1\n", encoding="utf-8")
    previous = load_python_module(module_name, str(source))

    source.write_text("raise RuntimeError('bad edit')\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_python_module(module_name, str(source))

    assert find_loaded_module(module_name) is previous


def test_missing_file(module_name, tmp_path):
    with pytest.raises(FileNotFoundError):
        load_python_module(module_name, str(tmp_path / "nope.py"))


def test_unload(module_name, tmp_path):
    source = tmp_path / "plugin.py"
    source.write_text("X = 1\n", encoding="utf-8")
    load_python_module(module_name, str(source))

    assert unload_python_module(module_name) is True
    assert unload_python_module(module_name) is False
    assert find_loaded_module(module_name) is None
