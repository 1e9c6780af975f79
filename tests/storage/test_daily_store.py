# tests/storage/test_daily_store.py
import json
from datetime import date, datetime, timezone

import pytest

from flow_monitor.storage.daily_store import DailyStore, utc_date
from flow_monitor.storage.models import FlowRecord, FlowSample

DAY_MS = 24 * 3600 * 1000


def _ts(year: int, month: int, day: int, hour: int = 0) -> int:
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp() * 1000)


def _record(ts: int, buy: float = 100.0, sell: float = 40.0) -> FlowRecord:
    return FlowRecord(
        timestamp_ms=ts,
        iso_time=datetime.fromtimestamp(ts / 1000, tz=timezone.utc).isoformat(),
        spot={"Binance": FlowSample(buy_usd=buy, sell_usd=sell)},
        perp={},
    )


@pytest.fixture
def store(tmp_path):
    return DailyStore(tmp_path / "data")


def test_creates_data_dir(tmp_path):
    DailyStore(tmp_path / "nested" / "dir")
    assert (tmp_path / "nested" / "dir").is_dir()


def test_partition_file_name(store: DailyStore):
    path = store.partition_path("flow", date(2025, 2, 6))
    assert path.name == "flow-2025-02-06.json"


def test_append_and_read_back_preserves_order(store: DailyStore):
    base = _ts(2025, 2, 6, 1)
    records = [_record(base + i * 300_000, buy=float(i)) for i in range(5)]
    for r in records:
        store.append(r)

    loaded = store.load_day("flow", date(2025, 2, 6))

    assert loaded == records


def test_partition_uses_utc_date(store: DailyStore):
    late = _ts(2025, 2, 6, 23)
    early_next = _ts(2025, 2, 7, 0)
    store.append(_record(late))
    store.append(_record(early_next))

    assert len(store.load_day("flow", date(2025, 2, 6))) == 1
    assert len(store.load_day("flow", date(2025, 2, 7))) == 1
    assert utc_date(early_next) == date(2025, 2, 7)


def test_record_types_are_separate(store: DailyStore):
    ts = _ts(2025, 2, 6, 12)
    store.append(_record(ts), "flow")
    store.append(_record(ts), "other")

    assert len(store.load_day("flow", date(2025, 2, 6))) == 1
    assert len(store.load_day("other", date(2025, 2, 6))) == 1


def test_load_range_bounds_are_inclusive(store: DailyStore):
    base = _ts(2025, 2, 6, 12)
    for offset in (-1, 0, 1000, 2000, 2001):
        store.append(_record(base + offset))

    loaded = store.load_range("flow", base, base + 2000)

    assert [r.timestamp_ms for r in loaded] == [base, base + 1000, base + 2000]


def test_load_range_spans_days_and_skips_missing(store: DailyStore):
    d1 = _ts(2025, 2, 1, 12)
    d3 = _ts(2025, 2, 3, 12)
    store.append(_record(d1))
    store.append(_record(d3))

    loaded = store.load_range("flow", d1 - DAY_MS, d3 + DAY_MS)

    assert [r.timestamp_ms for r in loaded] == [d1, d3]


def test_load_range_empty_when_inverted(store: DailyStore):
    ts = _ts(2025, 2, 1, 12)
    store.append(_record(ts))
    assert store.load_range("flow", ts + 1, ts - 1) == []


def test_corrupt_partition_is_empty(store: DailyStore):
    path = store.partition_path("flow", date(2025, 2, 6))
    path.write_text("{not json")

    assert store.load_day("flow", date(2025, 2, 6)) == []


def test_wrong_shape_partition_is_empty(store: DailyStore):
    path = store.partition_path("flow", date(2025, 2, 6))
    path.write_text(json.dumps({"timestamp": 1}))
    assert store.load_day("flow", date(2025, 2, 6)) == []

    path.write_text(json.dumps([{"spot": {}}]))  # 缺少 timestamp
    assert store.load_day("flow", date(2025, 2, 6)) == []

    path.write_text(json.dumps([{"timestamp": 1, "spot": {"A": 5}}]))
    assert store.load_day("flow", date(2025, 2, 6)) == []

    path.write_text(json.dumps([{"timestamp": 1, "spot": [], "perp": {}}]))
    assert store.load_day("flow", date(2025, 2, 6)) == []

    path.write_text(json.dumps([3]))
    assert store.load_day("flow", date(2025, 2, 6)) == []


def test_structurally_corrupt_day_is_skipped_in_range(store: DailyStore):
    bad_day = _ts(2025, 2, 1, 12)
    good = _ts(2025, 2, 2, 12)
    store.partition_path("flow", date(2025, 2, 1)).write_text(
        json.dumps([{"timestamp": bad_day, "spot": {"A": 5}, "perp": {}}])
    )
    store.append(_record(good))

    loaded = store.load_range("flow", bad_day, good)

    assert [r.timestamp_ms for r in loaded] == [good]


def test_corrupt_day_does_not_break_range(store: DailyStore):
    good = _ts(2025, 2, 1, 12)
    store.append(_record(good))
    store.partition_path("flow", date(2025, 2, 2)).write_text("garbage")

    loaded = store.load_range("flow", good, good + DAY_MS)

    assert [r.timestamp_ms for r in loaded] == [good]


def test_append_refuses_to_overwrite_corrupt_partition(store: DailyStore):
    ts = _ts(2025, 2, 6, 12)
    path = store.partition_path("flow", date(2025, 2, 6))
    path.write_text("garbage")

    with pytest.raises(ValueError):
        store.append(_record(ts))

    assert path.read_text() == "garbage"


def test_append_keeps_day_with_one_bad_field(store: DailyStore):
    base = _ts(2025, 2, 6, 1)
    for i in range(3):
        store.append(_record(base + i * 300_000))
    path = store.partition_path("flow", date(2025, 2, 6))
    raw = json.loads(path.read_text())
    raw[1]["spot"]["Binance"]["price"] = "n/a"
    path.write_text(json.dumps(raw))
    before = path.read_text()

    with pytest.raises(ValueError):
        store.append(_record(base + 3 * 300_000))

    assert path.read_text() == before
    assert len(json.loads(path.read_text())) == 3


def test_file_content_is_json_list(store: DailyStore):
    ts = _ts(2025, 2, 6, 12)
    store.append(_record(ts))

    raw = json.loads(store.partition_path("flow", date(2025, 2, 6)).read_text())

    assert raw[0]["timestamp"] == ts
    assert raw[0]["spot"]["Binance"] == {"buy": 100.0, "sell": 40.0, "net": 60.0}


def test_latest(store: DailyStore):
    day = date(2025, 2, 6)
    assert store.latest(day=day) is None

    store.append(_record(_ts(2025, 2, 6, 1)))
    store.append(_record(_ts(2025, 2, 6, 2), buy=7.0))

    latest = store.latest(day=day)
    assert latest is not None
    assert latest.spot["Binance"].buy_usd == 7.0


def test_latest_defaults_to_today(store: DailyStore):
    now_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    store.append(_record(now_ms))

    latest = store.latest()

    assert latest is not None
    assert latest.timestamp_ms == now_ms
