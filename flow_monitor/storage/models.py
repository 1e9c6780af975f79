# flow_monitor/storage/models.py
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class FlowSample:
    buy_usd: float = 0.0
    sell_usd: float = 0.0
    price: float | None = None
    funding_rate_pct: float | None = None  # 资金费率 (%)
    open_interest_usd: float | None = None

    @property
    def net_usd(self) -> float:
        return self.buy_usd - self.sell_usd

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"buy": self.buy_usd, "sell": self.sell_usd, "net": self.net_usd}
        if self.price is not None:
            data["price"] = self.price
        if self.funding_rate_pct is not None:
            data["funding"] = self.funding_rate_pct
        if self.open_interest_usd is not None:
            data["oi"] = self.open_interest_usd
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FlowSample":
        if not isinstance(data, dict):
            raise ValueError(f"sample must be an object, got {type(data).__name__}")
        # net 不落盘读取, 始终由 buy - sell 推导
        return cls(
            buy_usd=float(data.get("buy") or 0),
            sell_usd=float(data.get("sell") or 0),
            price=_optional_float(data.get("price")),
            funding_rate_pct=_optional_float(data.get("funding")),
            open_interest_usd=_optional_float(data.get("oi")),
        )


@dataclass(frozen=True)
class FlowRecord:
    timestamp_ms: int
    iso_time: str
    spot: dict[str, FlowSample] = field(default_factory=dict)
    perp: dict[str, FlowSample] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp_ms,
            "time": self.iso_time,
            "spot": {venue: s.to_dict() for venue, s in self.spot.items()},
            "perp": {venue: s.to_dict() for venue, s in self.perp.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FlowRecord":
        return cls(
            timestamp_ms=int(data["timestamp"]),
            iso_time=str(data.get("time", "")),
            spot=_samples(data.get("spot")),
            perp=_samples(data.get("perp")),
        )


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


def _samples(market: Any) -> dict[str, FlowSample]:
    if market is None:
        return {}
    if not isinstance(market, dict):
        raise ValueError(f"market must be an object, got {type(market).__name__}")
    return {venue: FlowSample.from_dict(s) for venue, s in market.items()}
