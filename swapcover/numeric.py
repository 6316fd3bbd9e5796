"""
Fixed-width integer helpers.

Amounts crossing the ledger boundary are int128 values; intermediate math is
done in the int256/uint256 ranges so that negation and ceiling division can
never overflow the target width.
"""
from swapcover.errors import ValueOutOfRange, ZeroDivisor

INT128_MIN = -(1 << 127)
INT128_MAX = (1 << 127) - 1
UINT256_MAX = (1 << 256) - 1


def check_int128(value: int) -> int:
    """Return value unchanged, or raise if it does not fit in int128."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueOutOfRange(f"Expected an integer amount, got {value!r}")
    if value < INT128_MIN or value > INT128_MAX:
        raise ValueOutOfRange(f"Amount {value} outside int128 range")
    return value


def check_uint256(value: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueOutOfRange(f"Expected an integer, got {value!r}")
    if value < 0 or value > UINT256_MAX:
        raise ValueOutOfRange(f"Value {value} outside uint256 range")
    return value


def to_int256(value: int) -> int:
    """
    Sign-extend an int128 into the int256 range.

    Every int128 fits in int256, so only the int128 check can fail; the
    widening matters for the unsigned magnitude taken afterwards.
    """
    return check_int128(value)


def magnitude(value: int) -> int:
    """
    Absolute value of an int128 amount as an unsigned integer.

    The amount is widened to int256 first, so -2**127 maps to 2**127 even
    though 2**127 is not representable as int128.
    """
    wide = to_int256(value)
    if wide < 0:
        return -wide
    return wide


def ceil_div(a: int, b: int) -> int:
    """
    Ceiling division for non-negative integers: (a + b - 1) // b.

    Any nonzero numerator yields at least 1.

    Raises:
        ZeroDivisor: if b == 0
        ValueOutOfRange: if either operand is negative or wider than uint256
    """
    check_uint256(a)
    check_uint256(b)
    if b == 0:
        raise ZeroDivisor("Division by zero divisor")
    return (a + b - 1) // b


def to_twos_complement(value: int, bits: int = 256) -> int:
    """Encode a signed integer as its unsigned two's complement."""
    lower = -(1 << (bits - 1))
    upper = (1 << (bits - 1)) - 1
    if value < lower or value > upper:
        raise ValueOutOfRange(f"Value {value} does not fit in int{bits}")
    return value & ((1 << bits) - 1)
