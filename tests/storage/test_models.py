# tests/storage/test_models.py
import dataclasses

import pytest

from flow_monitor.storage.models import FlowRecord, FlowSample


def test_net_is_buy_minus_sell():
    sample = FlowSample(buy_usd=150.0, sell_usd=200.0)
    assert sample.net_usd == -50.0


def test_empty_sample_is_zero():
    sample = FlowSample()
    assert sample.buy_usd == 0
    assert sample.sell_usd == 0
    assert sample.net_usd == 0
    assert sample.price is None
    assert sample.funding_rate_pct is None
    assert sample.open_interest_usd is None


def test_sample_is_immutable():
    sample = FlowSample(buy_usd=1.0)
    with pytest.raises(dataclasses.FrozenInstanceError):
        sample.buy_usd = 2.0  # type: ignore[misc]


def test_sample_to_dict_omits_nulls():
    sample = FlowSample(buy_usd=10.0, sell_usd=4.0)
    assert sample.to_dict() == {"buy": 10.0, "sell": 4.0, "net": 6.0}

    perp = FlowSample(buy_usd=1.0, sell_usd=2.0, funding_rate_pct=0.01, open_interest_usd=5e6)
    assert perp.to_dict() == {"buy": 1.0, "sell": 2.0, "net": -1.0, "funding": 0.01, "oi": 5e6}


def test_sample_from_dict_ignores_stored_net():
    # 磁盘上的 net 被篡改也不影响: net 始终由 buy - sell 推导
    sample = FlowSample.from_dict({"buy": 100, "sell": 40, "net": 999, "price": "0.5"})
    assert sample.net_usd == 60
    assert sample.price == 0.5


def test_sample_from_dict_missing_volumes_default_to_zero():
    sample = FlowSample.from_dict({"buy": None})
    assert sample.buy_usd == 0
    assert sample.sell_usd == 0


def test_record_dict_shape():
    record = FlowRecord(
        timestamp_ms=1706600000000,
        iso_time="2024-01-30T07:33:20.000Z",
        spot={"Binance": FlowSample(buy_usd=10.0, sell_usd=5.0, price=0.45)},
        perp={"OKX": FlowSample(buy_usd=3.0, sell_usd=1.0, funding_rate_pct=0.005)},
    )

    data = record.to_dict()

    assert data["timestamp"] == 1706600000000
    assert data["time"] == "2024-01-30T07:33:20.000Z"
    assert data["spot"]["Binance"] == {"buy": 10.0, "sell": 5.0, "net": 5.0, "price": 0.45}
    assert data["perp"]["OKX"]["funding"] == 0.005
    assert FlowRecord.from_dict(data) == record


def test_record_from_dict_tolerates_missing_markets():
    record = FlowRecord.from_dict({"timestamp": 1000, "time": "t"})
    assert record.spot == {}
    assert record.perp == {}


def test_from_dict_rejects_non_object_samples():
    with pytest.raises(ValueError):
        FlowRecord.from_dict({"timestamp": 1, "spot": {"A": 5}})
    with pytest.raises(ValueError):
        FlowRecord.from_dict({"timestamp": 1, "spot": {}, "perp": []})
