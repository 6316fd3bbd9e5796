"""
Callback payload codec and balance deltas.
"""
import msgpack
import pytest

from swapcover.codec import WIDE_INT_EXT
from swapcover.core import (
    ActionKind,
    AssetPair,
    BalanceDelta,
    CallbackContext,
    ModifyLiquidityParams,
    SwapParams,
    decode_liquidity_result,
    decode_swap_result,
    encode_liquidity_result,
    encode_swap_result,
)
from swapcover.crypto import ZERO_ADDRESS
from swapcover.errors import MalformedCallback, ValueOutOfRange
from swapcover.numeric import INT128_MAX, INT128_MIN
from swapcover.pool_state import MAX_SQRT_PRICE

CALLER = b'\x0b' * 20
PAIR = AssetPair(b'\x01' * 20, b'\x02' * 20, 3000, 60)


class TestBalanceDelta:
    def test_arithmetic(self):
        assert BalanceDelta(5, -3) + BalanceDelta(1, 1) == BalanceDelta(6, -2)
        assert BalanceDelta(5, -3) - BalanceDelta(1, 1) == BalanceDelta(4, -4)

    def test_int128_bounds(self):
        BalanceDelta(INT128_MIN, INT128_MAX)
        with pytest.raises(ValueOutOfRange):
            BalanceDelta(INT128_MAX + 1, 0)
        with pytest.raises(ValueOutOfRange):
            BalanceDelta(INT128_MAX, 0) + BalanceDelta(1, 0)


class TestAssetPair:
    def test_hook_detection(self):
        assert not PAIR.has_hook
        assert not AssetPair(PAIR.currency0, PAIR.currency1, 3000, 60, hooks=ZERO_ADDRESS).has_hook
        assert AssetPair(PAIR.currency0, PAIR.currency1, 3000, 60, hooks=b'\x09' * 20).has_hook

    def test_pool_id_depends_on_every_field(self):
        assert PAIR.pool_id != AssetPair(PAIR.currency0, PAIR.currency1, 500, 60).pool_id
        assert PAIR.pool_id != AssetPair(PAIR.currency0, PAIR.currency1, 3000, 10).pool_id
        assert len(PAIR.pool_id) == 32


class TestCallbackContext:
    def test_swap_context(self):
        context = CallbackContext(CALLER, ActionKind.SWAP, PAIR, SwapParams(True, -1000, 5), b'\x01')
        decoded = CallbackContext.decode(context.encode())

        assert decoded == context
        assert decoded.action is ActionKind.SWAP

    def test_wide_integer_fields(self):
        params = SwapParams(False, INT128_MIN, MAX_SQRT_PRICE - 1)
        context = CallbackContext(CALLER, ActionKind.SWAP, PAIR, params)
        assert CallbackContext.decode(context.encode()).params == params

    def test_liquidity_context(self):
        params = ModifyLiquidityParams(-60, 60, -5, salt=b'\x02' * 32)
        context = CallbackContext(CALLER, ActionKind.ADJUST_LIQUIDITY, PAIR, params)
        assert CallbackContext.decode(context.encode()).params == params

    def test_unknown_action_kept_raw(self):
        payload = msgpack.packb([CALLER, 9, PAIR.to_list(), [1, 2], b''], use_bin_type=True)
        decoded = CallbackContext.decode(payload)
        assert decoded.action == 9
        assert decoded.params == [1, 2]

    @pytest.mark.parametrize('payload', [
        b'\xc1',
        msgpack.packb([1, 2, 3]),
        msgpack.packb([b'\x0b' * 19, 0, PAIR.to_list(), [True, -1, 5], b''], use_bin_type=True),
        msgpack.packb([CALLER, 0, PAIR.to_list(), [1, -1, 5], b''], use_bin_type=True),
        msgpack.packb([CALLER, 0, PAIR.to_list(), [True, -1], b''], use_bin_type=True),
        msgpack.packb([CALLER, 0, PAIR.to_list(), [True, -1, 5], 'text'], use_bin_type=True),
        msgpack.packb([CALLER, 'swap', PAIR.to_list(), [True, -1, 5], b''], use_bin_type=True),
        msgpack.packb([CALLER, 0, PAIR.to_list(), [True, msgpack.ExtType(WIDE_INT_EXT, b'-1e9'), 5], b''],
                      use_bin_type=True),
        msgpack.packb([CALLER, 0, PAIR.to_list(), [True, msgpack.ExtType(9, b'\x01'), 5], b''],
                      use_bin_type=True),
    ])
    def test_malformed_payloads(self, payload):
        with pytest.raises(MalformedCallback):
            CallbackContext.decode(payload)

    def test_non_bytes_payload(self):
        with pytest.raises(MalformedCallback):
            CallbackContext.decode("payload")


def test_results():
    assert decode_swap_result(msgpack.packb([-1000, 996])) == BalanceDelta(-1000, 996)

    encoded = encode_liquidity_result(BalanceDelta(-5, -5), BalanceDelta(1, 0))
    assert decode_liquidity_result(encoded) == (BalanceDelta(-5, -5), BalanceDelta(1, 0))

    with pytest.raises(MalformedCallback):
        decode_liquidity_result(msgpack.packb([[1, 2]]))


def test_results_beyond_64_bits():
    delta = BalanceDelta(INT128_MIN, INT128_MAX)
    assert decode_swap_result(encode_swap_result(delta)) == delta

    fees = BalanceDelta(50 * 10**18, 0)
    assert decode_liquidity_result(encode_liquidity_result(delta, fees)) == (delta, fees)
