"""
Reference ledger engine: lock discipline, pool initialization, constant
product swaps and position fee accounting.
"""
import pytest

from swapcover.chain import Chain, Contract
from swapcover.core import AssetPair, BalanceDelta, ModifyLiquidityParams, SwapParams
from swapcover.errors import (
    AlreadyUnlocked,
    CurrenciesOutOfOrder,
    InsufficientLiquidity,
    InvalidTickRange,
    LedgerError,
    ManagerLocked,
    PoolAlreadyInitialized,
    PoolNotInitialized,
    PriceLimitExceeded,
    SwapAmountZero,
)
from swapcover.ledger import PoolManager, UnlockCallback
from swapcover.pool_state import MAX_SQRT_PRICE, MIN_SQRT_PRICE, Q96, PoolState, tick_at_sqrt_price

USD = b'\x01' * 20
WETH = b'\x02' * 20
LIQUIDITY = 2**64
FULL_RANGE = ModifyLiquidityParams(-887220, 887220, LIQUIDITY)


class Router(Contract, UnlockCallback):
    """Runs arbitrary ledger actions inside unlock."""

    def __init__(self, chain, ledger):
        super().__init__(chain)
        self.ledger = ledger
        self._action = None

    def run(self, action):
        self._action = action
        return self.ledger.unlock(self.address, b'')

    def unlock_callback(self, sender, data):
        return self._action()


@pytest.fixture
def ledger_setup():
    chain = Chain(timestamp=1_700_000_000)
    ledger = PoolManager(chain)
    router = Router(chain, ledger)
    pair = AssetPair(USD, WETH, 3000, 60)
    ledger.initialize(router.address, pair, Q96)
    return chain, ledger, router, pair


def _add_liquidity(ledger, router, pair, params=FULL_RANGE):
    return router.run(lambda: ledger.modify_liquidity(router.address, pair, params, b''))


class TestLocking:
    def test_swap_requires_unlock(self, ledger_setup):
        _, ledger, router, pair = ledger_setup
        with pytest.raises(ManagerLocked):
            ledger.swap(router.address, pair, SwapParams(True, -10, MIN_SQRT_PRICE + 1), b'')

    def test_nested_unlock_rejected(self, ledger_setup):
        _, ledger, router, _ = ledger_setup
        with pytest.raises(AlreadyUnlocked):
            router.run(lambda: ledger.unlock(router.address, b''))
        assert not ledger.is_unlocked

    def test_unlock_needs_callback_contract(self, ledger_setup):
        _, ledger, _, _ = ledger_setup
        with pytest.raises(LedgerError):
            ledger.unlock(b'\x0b' * 20, b'')


class TestInitialize:
    def test_currency_order(self, ledger_setup):
        _, ledger, router, _ = ledger_setup
        with pytest.raises(CurrenciesOutOfOrder):
            ledger.initialize(router.address, AssetPair(WETH, USD, 3000, 60), Q96)

    def test_double_initialize(self, ledger_setup):
        _, ledger, router, pair = ledger_setup
        with pytest.raises(PoolAlreadyInitialized):
            ledger.initialize(router.address, pair, Q96)

    def test_price_bounds(self, ledger_setup):
        _, ledger, router, _ = ledger_setup
        with pytest.raises(LedgerError):
            ledger.initialize(router.address, AssetPair(USD, WETH, 500, 10), MIN_SQRT_PRICE - 1)

    def test_unknown_pool(self, ledger_setup):
        _, ledger, _, _ = ledger_setup
        with pytest.raises(PoolNotInitialized):
            ledger.get_pool_state(AssetPair(USD, WETH, 100, 1))

    def test_unit_price_stored(self, ledger_setup):
        _, ledger, _, pair = ledger_setup
        pool = ledger.get_pool_state(pair)
        assert pool.sqrt_price_x96 == Q96
        assert pool.tick == 0

    def test_tick_at_price(self):
        assert tick_at_sqrt_price(Q96) == 0
        assert tick_at_sqrt_price(Q96 * 2) == 13863  # price 4


class TestSwaps:
    def test_exact_input(self, ledger_setup):
        chain, ledger, router, pair = ledger_setup
        _add_liquidity(ledger, router, pair)

        delta = router.run(lambda: ledger.swap(router.address, pair, SwapParams(True, -1000, MIN_SQRT_PRICE + 1), b''))

        assert delta == BalanceDelta(-1000, 996)
        pool = ledger.get_pool_state(pair)
        assert pool.reserve0 == LIQUIDITY + 997
        assert pool.reserve1 == LIQUIDITY - 996
        assert chain.events('Swap')[0].args['fee_amount'] == 3

    def test_exact_output(self, ledger_setup):
        _, ledger, router, pair = ledger_setup
        _add_liquidity(ledger, router, pair)

        delta = router.run(lambda: ledger.swap(router.address, pair, SwapParams(False, 1000, MAX_SQRT_PRICE - 1), b''))

        assert delta.amount0 == 1000
        assert delta.amount1 < -1000

    def test_zero_amount(self, ledger_setup):
        _, ledger, router, pair = ledger_setup
        _add_liquidity(ledger, router, pair)
        with pytest.raises(SwapAmountZero):
            router.run(lambda: ledger.swap(router.address, pair, SwapParams(True, 0, MIN_SQRT_PRICE + 1), b''))

    def test_empty_pool(self, ledger_setup):
        _, ledger, router, pair = ledger_setup
        with pytest.raises(InsufficientLiquidity):
            router.run(lambda: ledger.swap(router.address, pair, SwapParams(True, -10, MIN_SQRT_PRICE + 1), b''))

    def test_price_limit(self, ledger_setup):
        _, ledger, router, pair = ledger_setup
        _add_liquidity(ledger, router, pair)
        with pytest.raises(PriceLimitExceeded):
            router.run(lambda: ledger.swap(router.address, pair, SwapParams(True, -1000, Q96), b''))

    def test_exact_output_exceeding_reserve(self, ledger_setup):
        _, ledger, router, pair = ledger_setup
        _add_liquidity(ledger, router, pair)
        with pytest.raises(InsufficientLiquidity):
            router.run(lambda: ledger.swap(
                router.address, pair, SwapParams(True, LIQUIDITY, MIN_SQRT_PRICE + 1), b''
            ))


class TestPositions:
    def test_add_liquidity_at_unit_price(self, ledger_setup):
        _, ledger, router, pair = ledger_setup
        caller_delta, fees = _add_liquidity(ledger, router, pair)

        assert caller_delta == BalanceDelta(-LIQUIDITY, -LIQUIDITY)
        assert fees == BalanceDelta(0, 0)
        assert ledger.get_position(pair, router.address, FULL_RANGE)['liquidity'] == LIQUIDITY

    def test_remove_collects_fees(self, ledger_setup):
        _, ledger, router, pair = ledger_setup
        _add_liquidity(ledger, router, pair)
        router.run(lambda: ledger.swap(router.address, pair, SwapParams(True, -1000, MIN_SQRT_PRICE + 1), b''))

        removal = ModifyLiquidityParams(FULL_RANGE.tick_lower, FULL_RANGE.tick_upper, -LIQUIDITY)
        caller_delta, fees = _add_liquidity(ledger, router, pair, removal)

        assert fees == BalanceDelta(3, 0)
        assert caller_delta == BalanceDelta(LIQUIDITY + 997 + 3, LIQUIDITY - 996)
        assert ledger.get_pool_state(pair).liquidity == 0

    def test_remove_more_than_owned(self, ledger_setup):
        _, ledger, router, pair = ledger_setup
        _add_liquidity(ledger, router, pair)
        removal = ModifyLiquidityParams(FULL_RANGE.tick_lower, FULL_RANGE.tick_upper, -LIQUIDITY - 1)
        with pytest.raises(InsufficientLiquidity):
            _add_liquidity(ledger, router, pair, removal)

    def test_invalid_ticks(self, ledger_setup):
        _, ledger, router, pair = ledger_setup
        for params in (
            ModifyLiquidityParams(60, -60, 1),
            ModifyLiquidityParams(-887280, 887220, 1),
            ModifyLiquidityParams(-61, 60, 1),
        ):
            with pytest.raises(InvalidTickRange):
                _add_liquidity(ledger, router, pair, params)

    def test_salt_separates_positions(self, ledger_setup):
        _, ledger, router, pair = ledger_setup
        salted = ModifyLiquidityParams(FULL_RANGE.tick_lower, FULL_RANGE.tick_upper, 10, salt=b'\x01' * 32)
        _add_liquidity(ledger, router, pair, salted)

        assert ledger.get_position(pair, router.address, salted)['liquidity'] == 10
        assert ledger.get_position(pair, router.address, FULL_RANGE)['liquidity'] == 0


def test_pool_state_round_trip():
    pool = PoolState({'fee': 3000, 'sqrt_price_x96': Q96, 'reserve0': 5, 'reserve1': 7, 'liquidity': 6})
    assert PoolState(pool.to_dict()).to_dict() == pool.to_dict()
    assert pool.current_price == 1
