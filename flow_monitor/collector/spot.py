# flow_monitor/collector/spot.py
from abc import abstractmethod
from dataclasses import replace
from typing import Any

from flow_monitor.aggregator.flow import (
    TakerTrade,
    calculate_flow,
    side_from_maker_flag,
    side_from_taker_field,
)
from flow_monitor.client.http import Request
from flow_monitor.storage.models import FlowSample

from .base import SPOT, ExchangeAdapter, field_of, parse_float, volume


class TradesAdapter(ExchangeAdapter):
    """Adapter whose flow comes from a recent-trades list."""

    def __init__(self, base: str, quote: str = "USDT", limit: int = 200):
        super().__init__(base, quote)
        self.limit = limit

    def trade_list(self, payloads: dict[str, Any]) -> list[Any]:
        trades = payloads.get("trades")
        return trades if isinstance(trades, list) else []

    @abstractmethod
    def taker_trade(self, trade: dict[str, Any]) -> TakerTrade:
        pass

    def price(self, payloads: dict[str, Any]) -> float | None:
        return None

    def parse(self, payloads: dict[str, Any]) -> FlowSample | None:
        trades = [self.taker_trade(t) for t in self.trade_list(payloads) if isinstance(t, dict)]
        sample = calculate_flow(trades)
        price = self.price(payloads)
        if price is not None:
            sample = replace(sample, price=price)
        return sample


class BinanceSpotAdapter(TradesAdapter):
    venue = "Binance"
    market = SPOT
    optional = frozenset({"ticker"})
    base_url = "https://api.binance.com"

    def __init__(self, base: str, quote: str = "USDT", limit: int = 1000):
        super().__init__(base, quote, limit)

    def requests(self) -> dict[str, Request]:
        return {
            "trades": Request(
                f"{self.base_url}/api/v3/trades", {"symbol": self.pair, "limit": self.limit}
            ),
            "ticker": Request(f"{self.base_url}/api/v3/ticker/24hr", {"symbol": self.pair}),
        }

    def taker_trade(self, trade: dict[str, Any]) -> TakerTrade:
        value_usd = volume(trade.get("price")) * volume(trade.get("qty"))
        return TakerTrade(side_from_maker_flag(trade.get("isBuyerMaker")), value_usd)

    def price(self, payloads: dict[str, Any]) -> float | None:
        return parse_float(field_of(payloads.get("ticker"), "lastPrice"))


class OKXSpotAdapter(ExchangeAdapter):
    """OKX rubik taker-volume, rows are [ts, sellVol, buyVol]."""

    venue = "OKX"
    market = SPOT
    inst_type = "SPOT"

    def __init__(self, base: str, quote: str = "USDT", period: str = "5m"):
        super().__init__(base, quote)
        self.period = period

    def requests(self) -> dict[str, Request]:
        return {
            "taker": Request(
                "https://www.okx.com/api/v5/rubik/stat/taker-volume",
                {"ccy": self.base, "instType": self.inst_type, "period": self.period},
            ),
        }

    def parse(self, payloads: dict[str, Any]) -> FlowSample | None:
        row = field_of(payloads.get("taker"), "data", 0)
        if not isinstance(row, list) or len(row) < 3:
            return None
        return FlowSample(buy_usd=volume(row[2]), sell_usd=volume(row[1]))


class UpbitAdapter(TradesAdapter):
    """Upbit KRW market; notional and price are converted with a fixed KRW/USD rate."""

    venue = "Upbit"
    market = SPOT
    optional = frozenset({"ticker"})
    base_url = "https://api.upbit.com/v1"

    def __init__(self, base: str, krw_usd: float, limit: int = 200):
        super().__init__(base, "KRW", limit)
        self.krw_usd = krw_usd

    @property
    def krw_market(self) -> str:
        return f"KRW-{self.base}"

    def requests(self) -> dict[str, Request]:
        return {
            "trades": Request(
                f"{self.base_url}/trades/ticks", {"market": self.krw_market, "count": self.limit}
            ),
            "ticker": Request(f"{self.base_url}/ticker", {"markets": self.krw_market}),
        }

    def taker_trade(self, trade: dict[str, Any]) -> TakerTrade:
        krw = volume(trade.get("trade_price")) * volume(trade.get("trade_volume"))
        return TakerTrade(side_from_taker_field(trade.get("ask_bid"), "BID"), krw / self.krw_usd)

    def price(self, payloads: dict[str, Any]) -> float | None:
        price_krw = parse_float(field_of(payloads.get("ticker"), 0, "trade_price"))
        return price_krw / self.krw_usd if price_krw is not None else None


class BybitSpotAdapter(TradesAdapter):
    venue = "Bybit"
    market = SPOT
    category = "spot"

    def requests(self) -> dict[str, Request]:
        return {
            "trades": Request(
                "https://api.bybit.com/v5/market/recent-trade",
                {"category": self.category, "symbol": self.pair, "limit": self.limit},
            ),
        }

    def trade_list(self, payloads: dict[str, Any]) -> list[Any]:
        trades = field_of(payloads.get("trades"), "result", "list")
        return trades if isinstance(trades, list) else []

    def taker_trade(self, trade: dict[str, Any]) -> TakerTrade:
        value_usd = volume(trade.get("price")) * volume(trade.get("size"))
        return TakerTrade(side_from_taker_field(trade.get("side"), "Buy"), value_usd)


class KuCoinAdapter(TradesAdapter):
    venue = "KuCoin"
    market = SPOT

    def requests(self) -> dict[str, Request]:
        return {
            "trades": Request(
                "https://api.kucoin.com/api/v1/market/histories",
                {"symbol": f"{self.base}-{self.quote}"},
            ),
        }

    def trade_list(self, payloads: dict[str, Any]) -> list[Any]:
        trades = field_of(payloads.get("trades"), "data")
        return trades if isinstance(trades, list) else []

    def taker_trade(self, trade: dict[str, Any]) -> TakerTrade:
        value_usd = volume(trade.get("price")) * volume(trade.get("size"))
        return TakerTrade(side_from_taker_field(trade.get("side"), "buy"), value_usd)


class MEXCSpotAdapter(TradesAdapter):
    venue = "MEXC"
    market = SPOT

    def requests(self) -> dict[str, Request]:
        return {
            "trades": Request(
                "https://api.mexc.com/api/v3/trades", {"symbol": self.pair, "limit": self.limit}
            ),
        }

    def taker_trade(self, trade: dict[str, Any]) -> TakerTrade:
        # quoteQty 已是 USDT 计价
        return TakerTrade(
            side_from_maker_flag(trade.get("isBuyerMaker")), volume(trade.get("quoteQty"))
        )


class BitgetSpotAdapter(TradesAdapter):
    venue = "Bitget"
    market = SPOT

    def requests(self) -> dict[str, Request]:
        return {
            "trades": Request(
                "https://api.bitget.com/api/v2/spot/market/fills",
                {"symbol": self.pair, "limit": self.limit},
            ),
        }

    def trade_list(self, payloads: dict[str, Any]) -> list[Any]:
        trades = field_of(payloads.get("trades"), "data")
        return trades if isinstance(trades, list) else []

    def taker_trade(self, trade: dict[str, Any]) -> TakerTrade:
        value_usd = volume(trade.get("price")) * volume(trade.get("size"))
        return TakerTrade(side_from_taker_field(trade.get("side"), "buy"), value_usd)
