from datetime import UTC, datetime, timedelta

import pytest

from sleep_optimizer.errors import HistoryStoreError
from sleep_optimizer.history_store import SqliteHistoryStore
from sleep_optimizer.models import (
    AudioKind,
    AudioNudge,
    BedMotorKind,
    BedMotorNudge,
    SleepQuickAction,
)


def _record(minutes: int, reason: str = "elevated heart rate") -> SleepQuickAction:
    ts = datetime(2025, 1, 1, 23, 0, tzinfo=UTC) + timedelta(minutes=minutes, microseconds=minutes * 7)
    return SleepQuickAction.from_action(AudioNudge(kind=AudioKind.PINK_NOISE, reason=reason), timestamp=ts)


def test_save_then_load_returns_equal_record(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = SqliteHistoryStore(str(tmp_path / "history.db"))
    action = BedMotorNudge(kind=BedMotorKind.ADJUST_HEAD, target=12.5, reason="snoring detected")
    record = SleepQuickAction.from_action(action)

    store.save(record)
    loaded = store.load_all()

    assert loaded == [record]
    assert loaded[0].to_action() == action


def test_load_is_oldest_first_and_survives_reopen(tmp_path) -> None:  # type: ignore[no-untyped-def]
    db_path = str(tmp_path / "history.db")
    store = SqliteHistoryStore(db_path)
    records = [_record(30), _record(0), _record(90)]
    for r in records:
        store.save(r)
    store.close()

    reopened = SqliteHistoryStore(db_path)
    loaded = reopened.load_all()

    assert [r.id for r in loaded] == [records[1].id, records[0].id, records[2].id]


def test_retried_save_does_not_duplicate(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = SqliteHistoryStore(str(tmp_path / "history.db"))
    record = _record(0)

    store.save(record)
    store.save(record)

    assert store.count() == 1


def test_empty_store_loads_nothing(tmp_path) -> None:  # type: ignore[no-untyped-def]
    assert SqliteHistoryStore(str(tmp_path / "history.db")).load_all() == []


def test_sqlite_errors_are_wrapped(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = SqliteHistoryStore(str(tmp_path / "history.db"))
    store.close()

    with pytest.raises(HistoryStoreError):
        store.save(_record(0))
    with pytest.raises(HistoryStoreError):
        store.load_all()


def test_unopenable_path_raises_store_error(tmp_path) -> None:  # type: ignore[no-untyped-def]
    with pytest.raises(HistoryStoreError):
        SqliteHistoryStore(str(tmp_path / "missing" / "history.db"))
