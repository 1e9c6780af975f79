# flow_monitor/aggregator/alignment.py
from dataclasses import dataclass
from typing import Any

from flow_monitor.collector.base import field_of, parse_float, volume


@dataclass
class FlowPoint:
    exchange: str
    time: int
    buy_vol: float
    sell_vol: float
    ratio: float | None = None

    @property
    def net(self) -> float:
        return self.buy_vol - self.sell_vol

    def to_dict(self) -> dict[str, Any]:
        return {
            "exchange": self.exchange,
            "time": self.time,
            "buyVol": self.buy_vol,
            "sellVol": self.sell_vol,
            "netFlow": self.net,
            "ratio": self.ratio,
        }


def binance_taker_points(payload: Any) -> list[FlowPoint]:
    if not isinstance(payload, list):
        return []
    points = []
    for d in payload:
        ts = parse_float(field_of(d, "timestamp"))
        if ts is None:
            continue
        points.append(
            FlowPoint(
                exchange="Binance",
                time=int(ts),
                buy_vol=volume(d.get("buyVol")),
                sell_vol=volume(d.get("sellVol")),
                ratio=parse_float(d.get("buySellRatio")),
            )
        )
    return points


def okx_taker_points(payload: Any) -> list[FlowPoint]:
    # OKX 行格式: [ts, sellVol, buyVol]
    rows = field_of(payload, "data")
    if not isinstance(rows, list):
        return []
    points = []
    for row in rows:
        if not isinstance(row, list) or len(row) < 3:
            continue
        ts = parse_float(row[0])
        if ts is None:
            continue
        buy = volume(row[2])
        sell = volume(row[1])
        points.append(
            FlowPoint(
                exchange="OKX",
                time=int(ts),
                buy_vol=buy,
                sell_vol=sell,
                ratio=buy / sell if sell else None,
            )
        )
    return points


def time_range(points: list[FlowPoint]) -> tuple[int, int] | None:
    if not points:
        return None
    times = [p.time for p in points]
    return min(times), max(times)


def align_series(*series: list[FlowPoint]) -> list[list[FlowPoint]]:
    """Clip every series to the time range covered by all non-empty series.

    Empty series do not constrain the range.
    """
    ranges = [r for r in (time_range(s) for s in series) if r is not None]
    if not ranges:
        return [list(s) for s in series]

    start = max(r[0] for r in ranges)
    end = min(r[1] for r in ranges)
    return [[p for p in s if start <= p.time <= end] for s in series]
