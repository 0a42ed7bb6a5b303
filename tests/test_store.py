"""Tests for the concurrent metric store."""
import logging
import threading

import pytest

from sql_exporter.series import Invalid, Scalar, Series, SeriesKey
from sql_exporter.store import MetricStore


def _series(family, value, **labels):
    return Series.build(family, labels, Scalar(value))


def test_replace_family_replaces_whole_family():
    """A new poll drops series that are no longer reported."""
    store = MetricStore()
    store.replace_family("users", [_series("users", 1, status="a"), _series("users", 2, status="b")])
    store.replace_family("users", [_series("users", 3, status="c")])

    series = store.snapshot().series("users")
    assert [s.label_dict() for s in series] == [{"status": "c"}]
    assert series[0].value == Scalar(3)


def test_zero_rows_clear_family():
    """An empty poll leaves no series for the family."""
    store = MetricStore()
    store.replace_family("users", [_series("users", 1, status="a")])
    store.replace_family("users", [])

    snapshot = store.snapshot()
    assert snapshot.series("users") == ()
    assert len(store) == 0


def test_other_families_untouched():
    store = MetricStore()
    store.replace_family("a", [_series("a", 1)])
    store.replace_family("b", [_series("b", 2)])
    store.replace_family("a", [])

    assert store.snapshot().series("b")[0].value == Scalar(2)
    assert store.families() == ["a", "b"]


def test_snapshot_is_immutable_view():
    """A snapshot taken before a write does not change afterwards."""
    store = MetricStore()
    store.replace_family("users", [_series("users", 1)])
    before = store.snapshot()

    store.replace_family("users", [_series("users", 2)])

    assert before.series("users")[0].value == Scalar(1)
    assert store.snapshot().series("users")[0].value == Scalar(2)


def test_series_ordered_by_labels():
    store = MetricStore()
    store.replace_family("m", [
        _series("m", 1, status="z"),
        _series("m", 2, status="a"),
        _series("m", 3, status="m"),
    ])

    assert [s.label_dict()["status"] for s in store.snapshot().series("m")] == ["a", "m", "z"]


def test_collision_last_write_wins_and_is_logged(caplog):
    store = MetricStore()
    with caplog.at_level(logging.WARNING, logger="sql_exporter.store"):
        count = store.replace_family("m", [_series("m", 1, k="x"), _series("m", 2, k="x")])

    assert count == 1
    assert store.snapshot().series("m")[0].value == Scalar(2)
    assert "collided" in caplog.text


def test_keys_are_structural():
    """Separator characters in names or values cannot merge distinct series."""
    store = MetricStore()
    store.replace_family("m", [
        _series("m", 1, a="x_b", b="y"),
        _series("m", 2, a="x", b="b_y"),
        _series("m", 3, **{"a_b": "x"}),
    ])

    series = store.snapshot().series("m")
    assert len(series) == 3
    assert len({s.key for s in series}) == 3
    assert SeriesKey("m", (("a", "x"), ("b", "b_y"))) in {s.key for s in series}


def test_rejects_foreign_family():
    store = MetricStore()
    with pytest.raises(ValueError):
        store.replace_family("a", [_series("b", 1)])
    assert "a" not in store.snapshot()


def test_invalid_values_are_stored():
    store = MetricStore()
    store.replace_family("m", [Series.build("m", {}, Invalid("value is NULL"))])

    assert isinstance(store.snapshot().series("m")[0].value, Invalid)


def test_concurrent_readers_never_see_partial_replacement():
    """Readers observe either all old or all new series of a family."""
    store = MetricStore()
    size = 50
    generations = [
        [_series("m", gen, idx=str(i)) for i in range(size)]
        for gen in (1, 2)
    ]
    store.replace_family("m", generations[0])

    stop = threading.Event()
    errors = []

    def reader():
        while not stop.is_set():
            series = store.snapshot().series("m")
            values = {s.value.value for s in series}
            if len(series) != size or len(values) != 1:
                errors.append((len(series), values))

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for t in readers:
        t.start()

    for i in range(500):
        store.replace_family("m", generations[i % 2])

    stop.set()
    for t in readers:
        t.join()

    assert errors == []
