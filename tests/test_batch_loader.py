import json
import threading

import pytest

from conftest import CountingLoader
from unitcache.core.exceptions import LoadCancelled, LoadFailure, PathNotFoundError
from unitcache.core.loader import UnitLoader
from unitcache.core.models import LoadRequest, LoadSource
from unitcache.services.batch_loader import BatchLoader


@pytest.fixture
def batch_loader(service, loader):
    return BatchLoader(UnitLoader(service, loader), default_workers=4)


def test_partial_failure_reports_every_request(batch_loader, make_unit, tmp_path):
    requests = [LoadRequest(f"unit{i}", make_unit(f"unit{i}")) for i in range(4)]
    requests.append(LoadRequest("missing", str(tmp_path / "missing.txt")))

    result = batch_loader.load_batch(requests)

    assert result.total_requests == 5
    assert result.successful == 4
    assert result.failed == 1
    for i in range(4):
        unit_result = result.get_result(f"unit{i}")
        assert unit_result.success
        assert unit_result.handle is not None

    failure = result.get_result("missing")
    assert isinstance(failure.error, PathNotFoundError)
    assert isinstance(failure.error, LoadFailure)
    assert failure.handle is None


def test_accepts_tuples(batch_loader, make_unit):
    result = batch_loader.load_batch([("alpha", make_unit("alpha")), ("beta", make_unit("beta"))])

    assert result.successful == 2
    assert set(result.handles) == {"alpha", "beta"}


def test_empty_batch(batch_loader, loader):
    result = batch_loader.load_batch([])

    assert result.total_requests == 0
    assert result.results == []
    assert result.end_time is not None
    assert loader.count() == 0


def test_failing_callback_is_isolated(service, make_unit):
    failing = CountingLoader(fail_on={"bad"})
    batch_loader = BatchLoader(UnitLoader(service, failing), default_workers=3)

    result = batch_loader.load_batch([
        ("good1", make_unit("good1")),
        ("bad", make_unit("bad")),
        ("good2", make_unit("good2")),
    ])

    assert result.successful == 2
    bad = result.get_result("bad")
    assert isinstance(bad.error, LoadFailure)
    assert isinstance(bad.error.__cause__, RuntimeError)
    assert service.get_cached("bad") is None


def test_duplicate_requests_each_get_a_result(batch_loader, make_unit):
    path = make_unit("alpha")

    result = batch_loader.load_batch([("alpha", path), ("alpha", path), ("alpha", path)])

    assert result.total_requests == 3
    assert result.successful == 3


def test_second_batch_is_served_from_memory(batch_loader, loader, make_unit):
    requests = [(f"unit{i}", make_unit(f"unit{i}")) for i in range(3)]
    batch_loader.load_batch(requests)

    result = batch_loader.load_batch(requests)

    assert result.source_counts == {LoadSource.MEMORY.value: 3}
    assert loader.count() == 3


def test_preset_cancel_event_cancels_everything(batch_loader, loader, make_unit):
    cancel = threading.Event()
    cancel.set()

    result = batch_loader.load_batch(
        [(f"unit{i}", make_unit(f"unit{i}")) for i in range(4)],
        cancel_event=cancel
    )

    assert result.total_requests == 4
    assert result.cancelled == 4
    assert result.successful == 0
    assert all(isinstance(r.error, LoadCancelled) for r in result.results)
    assert loader.count() == 0


def test_timeout_cancels_requests_not_yet_started(service, make_unit):
    slow = CountingLoader(delay=0.3)
    batch_loader = BatchLoader(UnitLoader(service, slow), default_workers=1)

    result = batch_loader.load_batch(
        [(f"unit{i}", make_unit(f"unit{i}")) for i in range(5)],
        timeout=0.1
    )

    assert result.total_requests == 5
    assert result.successful >= 1
    assert result.cancelled >= 1
    assert result.successful + result.failed == 5


def test_throttle_limit_bounds_concurrency(service, make_unit):
    slow = CountingLoader(delay=0.05)
    batch_loader = BatchLoader(UnitLoader(service, slow))

    result = batch_loader.load_batch(
        [(f"unit{i}", make_unit(f"unit{i}")) for i in range(6)],
        throttle_limit=2
    )

    assert result.successful == 6
    assert result.workers == 2
    assert slow.peak_active <= 2


@pytest.mark.parametrize(
    "request_count,throttle,expected",
    [
        (3, 10, 3),
        (10, 4, 4),
        (5, 0, 1),
        (5, -2, 1),
        (1, None, 1),
    ],
)
def test_resolve_workers(batch_loader, request_count, throttle, expected):
    assert batch_loader.resolve_workers(request_count, throttle) == expected


def test_progress_callback(batch_loader, make_unit):
    calls = []
    requests = [(f"unit{i}", make_unit(f"unit{i}")) for i in range(3)]

    batch_loader.load_batch(requests, progress_callback=lambda done, total, name: calls.append((done, total, name)))

    assert [done for done, _, _ in calls] == [1, 2, 3]
    assert all(total == 3 for _, total, _ in calls)
    assert {name for _, _, name in calls} == {"unit0", "unit1", "unit2"}


def test_progress_bar_enabled(batch_loader, make_unit, capsys):
    result = batch_loader.load_batch([("alpha", make_unit("alpha"))], show_progress=True)

    assert result.successful == 1
    assert "Loading units" in capsys.readouterr().err


def test_force_bypasses_cache(batch_loader, loader, make_unit):
    requests = [("alpha", make_unit("alpha"))]
    batch_loader.load_batch(requests)

    result = batch_loader.load_batch(requests, force=True)

    assert result.source_counts == {LoadSource.COLD.value: 1}
    assert loader.count() == 2


def test_to_dict_is_json_friendly(batch_loader, make_unit, tmp_path):
    result = batch_loader.load_batch([("alpha", make_unit("alpha")), ("ghost", str(tmp_path / "ghost.txt"))])
    payload = json.loads(json.dumps(result.to_dict()))

    assert payload["successful"] == 1
    assert {r["unit_name"] for r in payload["results"]} == {"alpha", "ghost"}


def test_failing_progress_callback_keeps_results(batch_loader, make_unit, caplog):
    def broken_display(done, total, name):
        raise RuntimeError("display closed")

    requests = [(f"unit{i}", make_unit(f"unit{i}")) for i in range(3)]

    result = batch_loader.load_batch(requests, progress_callback=broken_display)

    assert result.total_requests == 3
    assert result.successful == 3
    assert "Progress callback failed" in caplog.text
