# flow_monitor/aggregator/live.py
import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
from typing import Any

import ccxt.async_support as ccxt

from flow_monitor.client.cache import TTLCache
from flow_monitor.client.http import HttpClient, Request
from flow_monitor.collector.base import ExchangeAdapter, field_of, parse_float, volume
from flow_monitor.collector.perp import (
    BingXPerpAdapter,
    BitgetPerpAdapter,
    BybitPerpAdapter,
    MEXCPerpAdapter,
    funding_pct,
)
from flow_monitor.collector.spot import (
    BitgetSpotAdapter,
    BybitSpotAdapter,
    KuCoinAdapter,
    MEXCSpotAdapter,
    OKXSpotAdapter,
    UpbitAdapter,
)
from flow_monitor.config import INTERVALS, Config
from flow_monitor.storage.models import FlowSample

from .alignment import FlowPoint, align_series, binance_taker_points, okx_taker_points
from .flow import FlowTable, VenueFlow, build_flow_table

logger = logging.getLogger(__name__)

OKX_BARS = {"1h": "1H", "4h": "4H", "1d": "1D"}
DEFAULT_INTERVAL = "1d"
DEFAULT_LIMIT = 7
DEPTH_LEVELS = 5

PriceSource = Callable[[dict[str, Any]], float | None]

PRICE_SOURCES: dict[str, PriceSource] = {
    "binance": lambda p: parse_float(field_of(p.get("binance-spot-ticker"), "lastPrice")),
    "okx": lambda p: parse_float(field_of(p.get("okx-spot-ticker"), "data", 0, "last")),
    "bybit": lambda p: parse_float(
        field_of(p.get("bybit-spot-ticker"), "result", "list", 0, "lastPrice")
    ),
}


def resolve_price(payloads: dict[str, Any], order: list[str], default: float) -> float:
    for source in order:
        price = PRICE_SOURCES[source](payloads)
        if price:
            return price
    return default


def price_change_24h(payloads: dict[str, Any], price: float) -> float:
    change = parse_float(field_of(payloads.get("binance-spot-ticker"), "priceChangePercent"))
    if change is not None:
        return change
    # OKX sodUtc0: UTC 0 点开盘价
    day_open = parse_float(field_of(payloads.get("okx-spot-ticker"), "data", 0, "sodUtc0"))
    if day_open:
        return (price - day_open) / day_open * 100
    return 0.0


@dataclass
class SpotKline:
    time: int
    exchange: str
    open: float
    high: float
    low: float
    close: float
    volume: float
    quote_volume: float
    taker_buy_quote: float | None = None

    @property
    def net_flow(self) -> float:
        # takerBuy - (quoteVolume - takerBuy)
        if self.taker_buy_quote is None:
            return 0.0
        return 2 * self.taker_buy_quote - self.quote_volume

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time,
            "exchange": self.exchange,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "quoteVolume": self.quote_volume,
            "takerBuyQuote": self.taker_buy_quote or 0.0,
            "netFlow": self.net_flow,
        }


def binance_klines(payload: Any) -> list[SpotKline]:
    if not isinstance(payload, list):
        return []
    klines = []
    for k in payload:
        if not isinstance(k, list) or len(k) <= 10:
            continue
        open_time = parse_float(k[0])
        if open_time is None:
            continue
        klines.append(
            SpotKline(
                time=int(open_time),
                exchange="Binance",
                open=volume(k[1]),
                high=volume(k[2]),
                low=volume(k[3]),
                close=volume(k[4]),
                volume=volume(k[5]),
                quote_volume=volume(k[7]),
                taker_buy_quote=volume(k[10]),
            )
        )
    return klines


def okx_klines(payload: Any) -> list[SpotKline]:
    rows = field_of(payload, "data")
    if not isinstance(rows, list):
        return []
    klines = []
    for k in rows:
        if not isinstance(k, list) or len(k) <= 6:
            continue
        open_time = parse_float(k[0])
        if open_time is None:
            continue
        klines.append(
            SpotKline(
                time=int(open_time),
                exchange="OKX",
                open=volume(k[1]),
                high=volume(k[2]),
                low=volume(k[3]),
                close=volume(k[4]),
                volume=volume(k[5]),
                quote_volume=volume(k[6]),
            )
        )
    # OKX 返回新到旧
    klines.reverse()
    return klines


@dataclass
class LiveSnapshot:
    price: float
    price_change_24h: float
    spot_klines: list[SpotKline]
    spot_flow_total: FlowTable
    perp_flow: list[FlowPoint]
    perp_flow_total: FlowTable
    volumes: list[dict[str, Any]] = field(default_factory=list)
    open_interest: dict[str, float | None] = field(default_factory=dict)
    funding: dict[str, float | None] = field(default_factory=dict)
    long_short: dict[str, dict[str, float] | None] = field(default_factory=dict)
    hyperliquid: dict[str, float] | None = None
    upbit: dict[str, Any] = field(default_factory=dict)
    timestamp: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "price": self.price,
            "priceChange24h": self.price_change_24h,
            "spotKlines": [k.to_dict() for k in self.spot_klines],
            "spotFlowTotal": self.spot_flow_total.to_dict(),
            "perpFlow": [p.to_dict() for p in self.perp_flow],
            "perpFlowTotal": self.perp_flow_total.to_dict(),
            "volumes": self.volumes,
            "openInterest": self.open_interest,
            "funding": self.funding,
            "longShort": self.long_short,
            "hyperliquid": self.hyperliquid,
            "upbit": self.upbit,
            "timestamp": self.timestamp,
        }


class LiveAggregator:
    """每次请求重新拉取各交易所数据, 经共享缓存去重"""

    def __init__(self, config: Config, client: HttpClient, cache: TTLCache):
        self.config = config
        self.client = client
        self.cache = cache
        self.exchange: ccxt.binance | None = None

        s = config.symbol
        self.base = s.base
        self.quote = s.quote
        self.upbit = UpbitAdapter(s.base, s.krw_usd, limit=200)
        self.okx_spot_taker = OKXSpotAdapter(s.base, s.quote, period="1D")
        self.spot_trade_adapters: list[ExchangeAdapter] = [
            self.upbit,
            BybitSpotAdapter(s.base, s.quote, limit=200),
            KuCoinAdapter(s.base, s.quote),
            MEXCSpotAdapter(s.base, s.quote, limit=200),
            BitgetSpotAdapter(s.base, s.quote, limit=200),
        ]
        self.perp_trade_adapters: list[ExchangeAdapter] = [
            BybitPerpAdapter(s.base, s.quote),
            MEXCPerpAdapter(s.base, s.quote),
            BitgetPerpAdapter(s.base, s.quote),
            BingXPerpAdapter(s.base, s.quote),
        ]

    @property
    def adapters(self) -> list[ExchangeAdapter]:
        return [self.okx_spot_taker, *self.spot_trade_adapters, *self.perp_trade_adapters]

    async def init(self) -> None:
        self.exchange = ccxt.binance()

    async def close(self) -> None:
        if self.exchange:
            await self.exchange.close()

    def endpoints(self, interval: str, limit: int) -> dict[str, Request]:
        """按缓存 key 索引的固定接口集合"""
        pair = f"{self.base}{self.quote}"
        dashed = f"{self.base}-{self.quote}"
        underscored = f"{self.base}_{self.quote}"
        bar = OKX_BARS[interval]
        binance = "https://api.binance.com"
        fapi = "https://fapi.binance.com"
        okx = "https://www.okx.com/api/v5"
        bybit = "https://api.bybit.com/v5/market"
        mexc_contract = "https://contract.mexc.com/api/v1/contract"
        bingx = "https://open-api.bingx.com/openApi/swap/v2/quote"

        requests = {
            f"binance-klines-{interval}-{limit}": Request(
                f"{binance}/api/v3/klines", {"symbol": pair, "interval": interval, "limit": limit}
            ),
            f"okx-klines-{interval}-{limit}": Request(
                f"{okx}/market/candles", {"instId": dashed, "bar": bar, "limit": limit}
            ),
            "binance-spot-ticker": Request(f"{binance}/api/v3/ticker/24hr", {"symbol": pair}),
            "binance-futures-ticker": Request(f"{fapi}/fapi/v1/ticker/24hr", {"symbol": pair}),
            "binance-futures-oi": Request(f"{fapi}/fapi/v1/openInterest", {"symbol": pair}),
            "binance-futures-funding": Request(
                f"{fapi}/fapi/v1/fundingRate", {"symbol": pair, "limit": 1}
            ),
            f"binance-taker-{interval}-{limit}": Request(
                f"{fapi}/futures/data/takerlongshortRatio",
                {"symbol": pair, "period": interval, "limit": limit},
            ),
            "binance-ls-global": Request(
                f"{fapi}/futures/data/globalLongShortAccountRatio",
                {"symbol": pair, "period": "1d", "limit": 1},
            ),
            "binance-ls-top": Request(
                f"{fapi}/futures/data/topLongShortAccountRatio",
                {"symbol": pair, "period": "1d", "limit": 1},
            ),
            "okx-spot-ticker": Request(f"{okx}/market/ticker", {"instId": dashed}),
            "okx-perp-ticker": Request(f"{okx}/market/ticker", {"instId": f"{dashed}-SWAP"}),
            "okx-funding": Request(f"{okx}/public/funding-rate", {"instId": f"{dashed}-SWAP"}),
            f"okx-taker-{interval}": Request(
                f"{okx}/rubik/stat/taker-volume",
                {"ccy": self.base, "instType": "CONTRACTS", "period": bar},
            ),
            "okx-oi": Request(
                f"{okx}/rubik/stat/contracts/open-interest-volume",
                {"ccy": self.base, "period": "1D"},
            ),
            "bybit-spot-ticker": Request(f"{bybit}/tickers", {"category": "spot", "symbol": pair}),
            "bybit-perp-ticker": Request(
                f"{bybit}/tickers", {"category": "linear", "symbol": pair}
            ),
            "bybit-oi": Request(
                f"{bybit}/open-interest",
                {"category": "linear", "symbol": pair, "intervalTime": "1d", "limit": 1},
            ),
            "bybit-funding": Request(
                f"{bybit}/funding/history", {"category": "linear", "symbol": pair, "limit": 1}
            ),
            "bybit-ls": Request(
                f"{bybit}/account-ratio",
                {"category": "linear", "symbol": pair, "period": "1d", "limit": 1},
            ),
            "kucoin-spot": Request(
                "https://api.kucoin.com/api/v1/market/stats", {"symbol": dashed}
            ),
            "mexc-spot": Request("https://api.mexc.com/api/v3/ticker/24hr", {"symbol": pair}),
            "mexc-perp": Request(f"{mexc_contract}/ticker", {"symbol": underscored}),
            "mexc-funding": Request(f"{mexc_contract}/funding_rate/{underscored}"),
            "bitget-spot": Request(
                "https://api.bitget.com/api/v2/spot/market/tickers", {"symbol": pair}
            ),
            "bitget-oi": Request(
                "https://api.bitget.com/api/v2/mix/market/open-interest",
                {"symbol": pair, "productType": "USDT-FUTURES"},
            ),
            "bingx-perp": Request(f"{bingx}/ticker", {"symbol": dashed}),
            "bingx-oi": Request(f"{bingx}/openInterest", {"symbol": dashed}),
            "hyperliquid-meta": Request(
                "https://api.hyperliquid.xyz/info", method="POST", body={"type": "allMids"}
            ),
            "upbit-orderbook": Request(
                "https://api.upbit.com/v1/orderbook", {"markets": self.upbit.krw_market}
            ),
        }
        for adapter in self.adapters:
            for name, req in adapter.requests().items():
                requests[adapter.cache_key(name)] = req
        return requests

    async def fetch_payloads(self, requests: dict[str, Request]) -> dict[str, Any]:
        keys = list(requests)
        results = await asyncio.gather(
            *(self.cache.get_or_fetch(k, partial(self.client.request, requests[k])) for k in keys)
        )
        return dict(zip(keys, results))

    async def get_all_data(
        self, interval: str = DEFAULT_INTERVAL, limit: int = DEFAULT_LIMIT
    ) -> LiveSnapshot:
        if interval not in INTERVALS:
            logger.warning(f"Unsupported interval {interval!r}, using {DEFAULT_INTERVAL}")
            interval = DEFAULT_INTERVAL
        payloads = await self.fetch_payloads(self.endpoints(interval, limit))
        return self.build_snapshot(payloads, interval, limit)

    def _adapter_sample(
        self, adapter: ExchangeAdapter, payloads: dict[str, Any]
    ) -> FlowSample | None:
        named = {name: payloads.get(adapter.cache_key(name)) for name in adapter.requests()}
        return adapter.parse(named)

    def build_snapshot(
        self,
        payloads: dict[str, Any],
        interval: str,
        limit: int,
        now_ms: int | None = None,
    ) -> LiveSnapshot:
        price = resolve_price(
            payloads, self.config.price.fallback_order, self.config.price.default_price
        )
        krw_usd = self.config.symbol.krw_usd

        # 现货 K 线: Binance 优先, OKX 兜底 (无 taker 数据)
        klines = binance_klines(payloads.get(f"binance-klines-{interval}-{limit}"))
        binance_window = list(klines)
        if not klines:
            klines = okx_klines(payloads.get(f"okx-klines-{interval}-{limit}"))

        spot_exchanges = {
            "Binance": VenueFlow(
                buy=sum(k.taker_buy_quote or 0.0 for k in binance_window),
                sell=sum(k.quote_volume - (k.taker_buy_quote or 0.0) for k in binance_window),
                source=f"{limit}x{interval} klines",
                periods=len(binance_window),
            ),
            "OKX": VenueFlow.from_sample(
                self._adapter_sample(self.okx_spot_taker, payloads), "24h taker API"
            ),
        }
        for adapter in self.spot_trade_adapters:
            spot_exchanges[adapter.venue] = VenueFlow.from_sample(
                self._adapter_sample(adapter, payloads), "recent trades"
            )

        binance_points, okx_points = align_series(
            binance_taker_points(payloads.get(f"binance-taker-{interval}-{limit}")),
            okx_taker_points(payloads.get(f"okx-taker-{interval}")),
        )
        perp_flow = sorted(binance_points + okx_points, key=lambda p: p.time, reverse=True)

        perp_exchanges = {
            "Binance": _series_flow(binance_points),
            "OKX": _series_flow(okx_points),
        }
        for adapter in self.perp_trade_adapters:
            perp_exchanges[adapter.venue] = VenueFlow.from_sample(
                self._adapter_sample(adapter, payloads), "recent trades"
            )

        upbit_sample = self._adapter_sample(self.upbit, payloads)
        upbit_ticker = field_of(payloads.get(self.upbit.cache_key("ticker")), 0)

        return LiveSnapshot(
            price=price,
            price_change_24h=price_change_24h(payloads, price),
            spot_klines=klines,
            spot_flow_total=build_flow_table(spot_exchanges),
            perp_flow=perp_flow,
            perp_flow_total=build_flow_table(perp_exchanges),
            volumes=_volumes(payloads, krw_usd, upbit_ticker),
            open_interest=_open_interest(payloads, price),
            funding=_funding(payloads),
            long_short=_long_short(payloads),
            hyperliquid=_hyperliquid(payloads.get("hyperliquid-meta"), self.base),
            upbit=_upbit_section(
                upbit_sample, upbit_ticker, payloads.get("upbit-orderbook"), krw_usd
            ),
            timestamp=now_ms if now_ms is not None else int(time.time() * 1000),
        )

    async def get_depth(self) -> dict[str, list[dict[str, float]]] | None:
        """Top 5 levels of the reference spot order book with USD notional."""
        assert self.exchange is not None
        symbol = f"{self.base}/{self.quote}"
        book = await self.cache.get_or_fetch(
            "binance-depth", partial(self.exchange.fetch_order_book, symbol, 10)
        )
        return depth_levels(book)


def depth_levels(book: Any) -> dict[str, list[dict[str, float]]] | None:
    if not isinstance(book, dict) or not book.get("bids") or not book.get("asks"):
        return None

    def levels(side: list[Any]) -> list[dict[str, float]]:
        result = []
        for level in side[:DEPTH_LEVELS]:
            price, qty = volume(level[0]), volume(level[1])
            result.append({"price": price, "qty": qty, "usd": price * qty})
        return result

    return {"bids": levels(book["bids"]), "asks": levels(book["asks"])}


def _series_flow(points: list[FlowPoint]) -> VenueFlow:
    return VenueFlow(
        buy=sum(p.buy_vol for p in points),
        sell=sum(p.sell_vol for p in points),
        source="historical (aligned)",
        periods=len(points),
    )


def _volumes(
    payloads: dict[str, Any], krw_usd: float, upbit_ticker: Any
) -> list[dict[str, Any]]:
    upbit_krw = parse_float(field_of(upbit_ticker, "acc_trade_price_24h"))
    rows = [
        ("Binance", "spot", field_of(payloads.get("binance-spot-ticker"), "quoteVolume")),
        ("Binance", "perp", field_of(payloads.get("binance-futures-ticker"), "quoteVolume")),
        ("OKX", "spot", field_of(payloads.get("okx-spot-ticker"), "data", 0, "volCcy24h")),
        ("OKX", "perp", field_of(payloads.get("okx-perp-ticker"), "data", 0, "volCcy24h")),
        (
            "Bybit",
            "spot",
            field_of(payloads.get("bybit-spot-ticker"), "result", "list", 0, "turnover24h"),
        ),
        (
            "Bybit",
            "perp",
            field_of(payloads.get("bybit-perp-ticker"), "result", "list", 0, "turnover24h"),
        ),
        ("KuCoin", "spot", field_of(payloads.get("kucoin-spot"), "data", "volValue")),
        ("MEXC", "spot", field_of(payloads.get("mexc-spot"), "quoteVolume")),
        ("MEXC", "perp", field_of(payloads.get("mexc-perp"), "data", "volume24")),
        ("Bitget", "spot", field_of(payloads.get("bitget-spot"), "data", 0, "quoteVolume")),
        ("BingX", "perp", field_of(payloads.get("bingx-perp"), "data", "quoteVolume")),
        ("Upbit", "spot", upbit_krw / krw_usd if upbit_krw is not None else None),
    ]
    result = []
    for exchange, market, raw in rows:
        value = volume(raw)
        if value > 0:
            result.append({"exchange": exchange, "type": market, "volume": value})
    return result


def _scaled(amount: Any, price: float) -> float | None:
    value = parse_float(amount)
    return value * price if value is not None else None


def _open_interest(payloads: dict[str, Any], price: float) -> dict[str, float | None]:
    # OKX 已以 USD 计价, 其余为币数量 * 当前价格
    return {
        "Binance": _scaled(field_of(payloads.get("binance-futures-oi"), "openInterest"), price),
        "OKX": parse_float(field_of(payloads.get("okx-oi"), "data", 0, 1)),
        "Bybit": _scaled(
            field_of(payloads.get("bybit-oi"), "result", "list", 0, "openInterest"), price
        ),
        "Bitget": _scaled(
            field_of(payloads.get("bitget-oi"), "data", "openInterestList", 0, "size"), price
        ),
        "BingX": _scaled(field_of(payloads.get("bingx-oi"), "data", "openInterest"), price),
    }


def _funding(payloads: dict[str, Any]) -> dict[str, float | None]:
    return {
        "Binance": funding_pct(field_of(payloads.get("binance-futures-funding"), 0, "fundingRate")),
        "OKX": funding_pct(field_of(payloads.get("okx-funding"), "data", 0, "fundingRate")),
        "Bybit": funding_pct(
            field_of(payloads.get("bybit-funding"), "result", "list", 0, "fundingRate")
        ),
        "MEXC": funding_pct(field_of(payloads.get("mexc-funding"), "data", "fundingRate")),
    }


def _ratio(row: Any, long_key: str, short_key: str) -> dict[str, float] | None:
    long_ = parse_float(field_of(row, long_key))
    short = parse_float(field_of(row, short_key))
    if long_ is None or short is None:
        return None
    return {"long": long_ * 100, "short": short * 100}


def _long_short(payloads: dict[str, Any]) -> dict[str, dict[str, float] | None]:
    return {
        "Binance Global": _ratio(
            field_of(payloads.get("binance-ls-global"), 0), "longAccount", "shortAccount"
        ),
        "Binance Top": _ratio(
            field_of(payloads.get("binance-ls-top"), 0), "longAccount", "shortAccount"
        ),
        "Bybit": _ratio(
            field_of(payloads.get("bybit-ls"), "result", "list", 0), "buyRatio", "sellRatio"
        ),
    }


def _hyperliquid(payload: Any, base: str) -> dict[str, float] | None:
    price = parse_float(field_of(payload, base))
    return {"price": price} if price is not None else None


def _upbit_section(
    sample: FlowSample | None, ticker: Any, orderbook: Any, krw_usd: float
) -> dict[str, Any]:
    buy = sample.buy_usd if sample else 0.0
    sell = sample.sell_usd if sample else 0.0
    volume_krw = parse_float(field_of(ticker, "acc_trade_price_24h"))
    price_krw = parse_float(field_of(ticker, "trade_price"))
    change_rate = parse_float(field_of(ticker, "signed_change_rate"))

    book = None
    unit = field_of(orderbook, 0)
    if isinstance(unit, dict):
        total_bid = volume(unit.get("total_bid_size"))
        total_ask = volume(unit.get("total_ask_size"))
        units = unit.get("orderbook_units")
        if not isinstance(units, list):
            units = []
        book = {
            "totalBidSize": total_bid,
            "totalAskSize": total_ask,
            "bidAskRatio": total_bid / total_ask if total_ask else None,
            "top5": [
                {
                    "bidPrice": u.get("bid_price"),
                    "bidSize": u.get("bid_size"),
                    "askPrice": u.get("ask_price"),
                    "askSize": u.get("ask_size"),
                }
                for u in [u for u in units if isinstance(u, dict)][:DEPTH_LEVELS]
            ],
        }

    return {
        "volume24h": volume_krw / krw_usd if volume_krw is not None else 0.0,
        "takerBuyVol": buy,
        "takerSellVol": sell,
        "netFlow": buy - sell,
        "flowRatio": buy / (sell or 1),
        "price": price_krw / krw_usd if price_krw is not None else None,
        "priceKRW": price_krw,
        "change24h": change_rate * 100 if change_rate is not None else 0.0,
        "orderbook": book,
    }
