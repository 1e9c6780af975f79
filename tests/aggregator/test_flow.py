# tests/aggregator/test_flow.py
from flow_monitor.aggregator.flow import (
    BUY,
    SELL,
    TakerTrade,
    VenueFlow,
    build_flow_table,
    calculate_flow,
    side_from_maker_flag,
    side_from_taker_field,
    total_net,
)
from flow_monitor.storage.models import FlowSample


def test_calculate_flow_net_positive():
    trades = [
        TakerTrade(BUY, 100000),
        TakerTrade(SELL, 50000),
        TakerTrade(BUY, 80000),
    ]

    result = calculate_flow(trades)

    assert result.net_usd == 130000  # 180000 - 50000
    assert result.buy_usd == 180000
    assert result.sell_usd == 50000


def test_calculate_flow_empty():
    result = calculate_flow([])
    assert result.net_usd == 0
    assert result.buy_usd == 0
    assert result.sell_usd == 0


def test_maker_flag_is_negated():
    assert side_from_maker_flag(True) == SELL
    assert side_from_maker_flag(False) == BUY


def test_taker_field_is_used_as_is():
    assert side_from_taker_field("Buy", "Buy") == BUY
    assert side_from_taker_field("Sell", "Buy") == SELL
    assert side_from_taker_field(1, 1) == BUY
    assert side_from_taker_field(2, 1) == SELL


def test_venue_flow_from_missing_sample():
    flow = VenueFlow.from_sample(None, "recent trades")
    assert flow.to_dict() == {"net": 0.0, "buy": 0.0, "sell": 0.0, "source": "recent trades"}


def test_venue_flow_with_periods():
    flow = VenueFlow(buy=10, sell=4, source="7x1d klines", periods=7)
    assert flow.to_dict() == {
        "net": 6,
        "buy": 10,
        "sell": 4,
        "periods": 7,
        "source": "7x1d klines",
    }


def test_build_flow_table_total():
    table = build_flow_table(
        {
            "Binance": VenueFlow(buy=100, sell=40),
            "OKX": VenueFlow(buy=10, sell=30),
        }
    )

    assert table.total == 40
    assert table.to_dict()["exchanges"]["OKX"]["net"] == -20


def test_total_net_accepts_samples():
    flows = {"A": FlowSample(buy_usd=5, sell_usd=1), "B": FlowSample(buy_usd=0, sell_usd=2)}
    assert total_net(flows) == 2
    assert total_net({}) == 0
