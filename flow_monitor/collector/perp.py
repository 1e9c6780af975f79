# flow_monitor/collector/perp.py
from typing import Any

from flow_monitor.aggregator.flow import TakerTrade, side_from_maker_flag, side_from_taker_field
from flow_monitor.client.http import Request
from flow_monitor.storage.models import FlowSample

from .base import PERP, ExchangeAdapter, field_of, first, parse_float, volume
from .spot import BitgetSpotAdapter, BybitSpotAdapter, OKXSpotAdapter, TradesAdapter


def funding_pct(rate: Any) -> float | None:
    value = parse_float(rate)
    return value * 100 if value is not None else None


class BinancePerpAdapter(ExchangeAdapter):
    """Binance USDⓈ-M taker long/short ratio plus funding and open interest.

    buyVol/sellVol are stored as the venue reports them.
    """

    venue = "Binance"
    market = PERP
    optional = frozenset({"funding", "oi", "ticker"})
    base_url = "https://fapi.binance.com"

    def __init__(self, base: str, quote: str = "USDT", period: str = "5m"):
        super().__init__(base, quote)
        self.period = period

    def requests(self) -> dict[str, Request]:
        return {
            "taker": Request(
                f"{self.base_url}/futures/data/takerlongshortRatio",
                {"symbol": self.pair, "period": self.period, "limit": 1},
            ),
            "funding": Request(
                f"{self.base_url}/fapi/v1/fundingRate", {"symbol": self.pair, "limit": 1}
            ),
            "oi": Request(f"{self.base_url}/fapi/v1/openInterest", {"symbol": self.pair}),
            "ticker": Request(f"{self.base_url}/fapi/v1/ticker/24hr", {"symbol": self.pair}),
        }

    def parse(self, payloads: dict[str, Any]) -> FlowSample | None:
        row = first(payloads.get("taker"))
        if not isinstance(row, dict):
            return None

        price = parse_float(field_of(payloads.get("ticker"), "lastPrice"))
        oi_amount = parse_float(field_of(payloads.get("oi"), "openInterest"))
        oi_usd = oi_amount * price if oi_amount is not None and price is not None else None

        return FlowSample(
            buy_usd=volume(row.get("buyVol")),
            sell_usd=volume(row.get("sellVol")),
            price=price,
            funding_rate_pct=funding_pct(field_of(payloads.get("funding"), 0, "fundingRate")),
            open_interest_usd=oi_usd,
        )


class OKXPerpAdapter(OKXSpotAdapter):
    venue = "OKX"
    market = PERP
    optional = frozenset({"funding"})
    inst_type = "CONTRACTS"

    @property
    def swap_inst_id(self) -> str:
        return f"{self.base}-{self.quote}-SWAP"

    def requests(self) -> dict[str, Request]:
        requests = super().requests()
        requests["funding"] = Request(
            "https://www.okx.com/api/v5/public/funding-rate", {"instId": self.swap_inst_id}
        )
        return requests

    def parse(self, payloads: dict[str, Any]) -> FlowSample | None:
        sample = super().parse(payloads)
        if sample is None:
            return None
        return FlowSample(
            buy_usd=sample.buy_usd,
            sell_usd=sample.sell_usd,
            funding_rate_pct=funding_pct(
                field_of(payloads.get("funding"), "data", 0, "fundingRate")
            ),
        )


class BybitPerpAdapter(BybitSpotAdapter):
    venue = "Bybit"
    market = PERP
    category = "linear"

    def __init__(self, base: str, quote: str = "USDT", limit: int = 500):
        super().__init__(base, quote, limit)


class MEXCPerpAdapter(TradesAdapter):
    """MEXC contract deals: T=1 taker buy, T=2 taker sell."""

    venue = "MEXC"
    market = PERP

    def __init__(self, base: str, quote: str = "USDT", limit: int = 500):
        super().__init__(base, quote, limit)

    def requests(self) -> dict[str, Request]:
        return {
            "trades": Request(
                f"https://contract.mexc.com/api/v1/contract/deals/{self.base}_{self.quote}",
                {"limit": self.limit},
            ),
        }

    def trade_list(self, payloads: dict[str, Any]) -> list[Any]:
        trades = field_of(payloads.get("trades"), "data")
        return trades if isinstance(trades, list) else []

    def taker_trade(self, trade: dict[str, Any]) -> TakerTrade:
        value_usd = volume(trade.get("p")) * volume(trade.get("v"))
        return TakerTrade(side_from_taker_field(trade.get("T"), 1), value_usd)


class BitgetPerpAdapter(BitgetSpotAdapter):
    venue = "Bitget"
    market = PERP

    def __init__(self, base: str, quote: str = "USDT", limit: int = 500):
        super().__init__(base, quote, limit)

    def requests(self) -> dict[str, Request]:
        return {
            "trades": Request(
                "https://api.bitget.com/api/v2/mix/market/fills",
                {"symbol": self.pair, "productType": "USDT-FUTURES", "limit": self.limit},
            ),
        }


class BingXPerpAdapter(TradesAdapter):
    venue = "BingX"
    market = PERP

    def __init__(self, base: str, quote: str = "USDT", limit: int = 500):
        super().__init__(base, quote, limit)

    def requests(self) -> dict[str, Request]:
        return {
            "trades": Request(
                "https://open-api.bingx.com/openApi/swap/v2/quote/trades",
                {"symbol": f"{self.base}-{self.quote}", "limit": self.limit},
            ),
        }

    def trade_list(self, payloads: dict[str, Any]) -> list[Any]:
        trades = field_of(payloads.get("trades"), "data")
        return trades if isinstance(trades, list) else []

    def taker_trade(self, trade: dict[str, Any]) -> TakerTrade:
        return TakerTrade(
            side_from_maker_flag(trade.get("isBuyerMaker")), volume(trade.get("quoteQty"))
        )
