# flow_monitor/aggregator/flow.py
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from flow_monitor.storage.models import FlowSample

BUY = "buy"
SELL = "sell"


@dataclass
class TakerTrade:
    side: str
    value_usd: float


def side_from_maker_flag(is_buyer_maker: Any) -> str:
    # isBuyerMaker=True 表示买方挂单, taker 为卖方
    return SELL if is_buyer_maker else BUY


def side_from_taker_field(value: Any, buy_value: Any) -> str:
    return BUY if value == buy_value else SELL


def calculate_flow(trades: Iterable[TakerTrade]) -> FlowSample:
    buy = 0.0
    sell = 0.0
    for t in trades:
        if t.side == BUY:
            buy += t.value_usd
        else:
            sell += t.value_usd
    return FlowSample(buy_usd=buy, sell_usd=sell)


@dataclass
class VenueFlow:
    buy: float = 0.0
    sell: float = 0.0
    source: str = ""
    periods: int | None = None

    @property
    def net(self) -> float:
        return self.buy - self.sell

    @classmethod
    def from_sample(cls, sample: FlowSample | None, source: str) -> "VenueFlow":
        if sample is None:
            return cls(source=source)
        return cls(buy=sample.buy_usd, sell=sample.sell_usd, source=source)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"net": self.net, "buy": self.buy, "sell": self.sell}
        if self.periods is not None:
            data["periods"] = self.periods
        data["source"] = self.source
        return data


@dataclass
class FlowTable:
    exchanges: dict[str, VenueFlow] = field(default_factory=dict)
    total: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "exchanges": {name: v.to_dict() for name, v in self.exchanges.items()},
            "total": self.total,
        }


def build_flow_table(exchanges: Mapping[str, VenueFlow]) -> FlowTable:
    """total 在构建时计算一次"""
    return FlowTable(exchanges=dict(exchanges), total=total_net(exchanges))


def total_net(flows: Mapping[str, Any]) -> float:
    total = 0.0
    for flow in flows.values():
        total += flow.net_usd if isinstance(flow, FlowSample) else flow.net
    return total
