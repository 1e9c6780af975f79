# flow_monitor/aggregator/historical.py
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from flow_monitor.storage.daily_store import DailyStore
from flow_monitor.storage.models import FlowRecord, FlowSample


@dataclass
class VenueAggregate:
    buy: float = 0.0
    sell: float = 0.0
    net: float = 0.0
    samples: int = 0
    funding: list[float] = field(default_factory=list)

    def add(self, sample: FlowSample) -> None:
        self.buy += sample.buy_usd
        self.sell += sample.sell_usd
        self.net += sample.net_usd
        self.samples += 1
        if sample.funding_rate_pct is not None:
            self.funding.append(sample.funding_rate_pct)

    @property
    def avg_funding(self) -> float | None:
        if not self.funding:
            return None
        return sum(self.funding) / len(self.funding)

    def to_dict(self, with_funding: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "buy": self.buy,
            "sell": self.sell,
            "net": self.net,
            "samples": self.samples,
        }
        if with_funding:
            data["avgFunding"] = self.avg_funding
        return data


@dataclass
class AggregateWindow:
    spot: dict[str, VenueAggregate] = field(default_factory=dict)
    perp: dict[str, VenueAggregate] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "spot": {venue: agg.to_dict() for venue, agg in self.spot.items()},
            "perp": {venue: agg.to_dict(with_funding=True) for venue, agg in self.perp.items()},
        }


def aggregate_records(records: Iterable[FlowRecord], from_ts: int, to_ts: int) -> AggregateWindow:
    """
    按交易所汇总窗口内的 FlowRecord

    Args:
        records: 按写入顺序排列的记录
        from_ts: 窗口起点 (ms, 含)
        to_ts: 窗口终点 (ms, 含)

    Returns:
        AggregateWindow, 窗口内从未出现的交易所不会出现在结果中
    """
    window = AggregateWindow()
    for record in records:
        if not from_ts <= record.timestamp_ms <= to_ts:
            continue
        for venue, sample in record.spot.items():
            window.spot.setdefault(venue, VenueAggregate()).add(sample)
        for venue, sample in record.perp.items():
            window.perp.setdefault(venue, VenueAggregate()).add(sample)
    return window


class HistoricalAggregator:
    def __init__(self, store: DailyStore, record_type: str = "flow"):
        self.store = store
        self.record_type = record_type

    def aggregate(self, from_ts: int, to_ts: int) -> AggregateWindow:
        records = self.store.load_range(self.record_type, from_ts, to_ts)
        return aggregate_records(records, from_ts, to_ts)

    def query(self, hours: float, now_ms: int | None = None) -> dict[str, Any]:
        to_ts = now_ms if now_ms is not None else int(time.time() * 1000)
        from_ts = to_ts - int(hours * 3600 * 1000)
        window = self.aggregate(from_ts, to_ts)
        return {"fromTs": from_ts, "toTs": to_ts, "hours": hours, **window.to_dict()}
