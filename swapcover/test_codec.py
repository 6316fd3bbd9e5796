"""
msgpack encoding of integers beyond the 64-bit range.
"""
import msgpack
import pytest

from swapcover import codec
from swapcover.numeric import INT128_MAX, INT128_MIN, UINT256_MAX
from swapcover.pool_state import MAX_SQRT_PRICE, Q96, Q128


@pytest.mark.parametrize('value', [
    0,
    -(1 << 63),
    (1 << 64) - 1,
    1 << 64,
    -(1 << 63) - 1,
    Q96,
    MAX_SQRT_PRICE - 1,
    INT128_MIN,
    INT128_MAX,
    UINT256_MAX,
])
def test_integer_boundaries(value):
    assert codec.unpackb(codec.packb(value)) == value


def test_native_range_stays_plain_msgpack():
    assert codec.packb([1, -5, (1 << 64) - 1]) == msgpack.packb([1, -5, (1 << 64) - 1], use_bin_type=True)


def test_nested_values():
    pool = {'sqrt_price_x96': Q96, 'fee_growth0_x128': 3 * Q128, 'fee': 3000, 'owner': b'\x01' * 20}
    decoded = codec.unpackb(codec.packb([pool, (True, 1 << 70)]))

    assert decoded == [pool, [True, 1 << 70]]
    assert decoded[1][0] is True


def test_foreign_ext_records_kept():
    data = msgpack.packb(msgpack.ExtType(5, b'raw'), use_bin_type=True)
    assert codec.unpackb(data) == msgpack.ExtType(5, b'raw')


def test_garbled_wide_integer():
    data = msgpack.packb(msgpack.ExtType(codec.WIDE_INT_EXT, b'12x'), use_bin_type=True)
    with pytest.raises(ValueError):
        codec.unpackb(data)
