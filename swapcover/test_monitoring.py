"""
Settlement metrics.
"""
import urllib.request

import pytest

from swapcover.conftest import OWNER, USD, USER, WBTC, open_funded_market, sell_zero
from swapcover.core import AssetPair
from swapcover.errors import OperationPaused
from swapcover.monitoring import Monitor


@pytest.fixture
def monitor(layer):
    monitor = Monitor(port=0)
    layer.monitor = monitor
    return monitor


def sample(monitor, name, labels=None):
    return monitor.registry.get_sample_value(name, labels or {})


def test_swap_metrics(layer, usd_pair, monitor):
    layer.swap(USER, usd_pair, sell_zero(1000))

    assert sample(monitor, 'settlement_swaps_total', {'path': 'direct'}) == 1
    assert sample(monitor, 'settlement_incentive_minted_total') == 1
    assert sample(monitor, 'settlement_latency_seconds_count', {'operation': 'swap'}) == 1


def test_failure_metrics(layer, usd_pair, monitor):
    layer.set_paused(OWNER, True)
    with pytest.raises(OperationPaused):
        layer.swap(USER, usd_pair, sell_zero(1000))

    assert sample(monitor, 'settlement_failures_total', {'operation': 'swap', 'error': 'OperationPaused'}) == 1
    assert sample(monitor, 'settlement_swaps_total', {'path': 'direct'}) is None


def test_liquidity_and_market_metrics(layer, monitor):
    open_funded_market(layer, AssetPair(USD, WBTC, 3000, 60))

    assert sample(monitor, 'settlement_markets_opened_total') == 1
    assert sample(monitor, 'settlement_liquidity_adjustments_total') == 1


def test_registries_are_isolated():
    first, second = Monitor(), Monitor()
    first.record_fee_burned(10)
    assert sample(first, 'settlement_gasless_fees_burned_total') == 10
    assert sample(second, 'settlement_gasless_fees_burned_total') == 0


def test_system_metrics():
    monitor = Monitor()
    monitor.update_system_metrics()
    assert sample(monitor, 'process_memory_rss_bytes') > 0


def test_system_metrics_refreshed_by_settlement(layer, monitor):
    assert sample(monitor, 'process_memory_rss_bytes') == 0

    open_funded_market(layer, AssetPair(USD, WBTC, 3000, 60))

    assert sample(monitor, 'process_memory_rss_bytes') > 0


def test_exposition_server():
    monitor = Monitor(port=0)
    monitor.record_swap('gasless', minted=3)
    monitor.start_server()
    try:
        body = urllib.request.urlopen(f"http://{monitor.host}:{monitor.port}/metrics").read().decode()
        assert 'settlement_swaps_total{path="gasless"} 1.0' in body
    finally:
        monitor.stop_server()
    assert monitor.server is None
