import logging
from datetime import timedelta

from unitcache.core.models import CacheEntry, MetadataRecord, utc_now
from unitcache.services.cache_index import CacheIndex
from unitcache.services.reaper import Reaper


def record(name, age):
    cached_at = utc_now() - age
    return MetadataRecord(unit_name=name, source_path=f"/units/{name}.py",
                          cached_at=cached_at, last_accessed_at=cached_at)


def test_sweep_removes_records_older_than_seven_days(caplog):
    records = {
        "fresh": record("fresh", timedelta(days=1)),
        "old": record("old", timedelta(days=8)),
        "ancient": record("ancient", timedelta(days=90)),
    }
    index = CacheIndex()
    for name in records:
        index.set(CacheEntry(unit_name=name, handle=object(), source_path=f"/units/{name}.py"))

    with caplog.at_level(logging.INFO, logger="unitcache.reaper"):
        removed = Reaper().sweep(records, index)

    assert removed == 2
    assert list(records) == ["fresh"]
    assert index.names() == ["fresh"]
    assert "Reaped 2 expired cache records" in caplog.text


def test_sweep_with_nothing_expired_is_silent(caplog):
    records = {"fresh": record("fresh", timedelta(hours=1))}

    with caplog.at_level(logging.INFO, logger="unitcache.reaper"):
        assert Reaper().sweep(records) == 0

    assert "fresh" in records
    assert caplog.records == []


def test_custom_max_age_and_reference_time():
    records = {"unit": record("unit", timedelta(days=2))}
    reaper = Reaper(max_age=timedelta(days=3))

    assert reaper.expired_names(records) == []
    assert reaper.expired_names(records, now=utc_now() + timedelta(days=2)) == ["unit"]
