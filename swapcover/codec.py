"""
msgpack encoding shared by state storage and the callback payloads.

msgpack integers stop at the int64/uint64 range. Wider values (Q96 prices,
Q128 fee growth, 18-decimal balances, int128 deltas) are written as an ext
record holding the decimal string and read back with int().
"""
import msgpack

WIDE_INT_EXT = 1

_NATIVE_MIN = -(1 << 63)
_NATIVE_MAX = (1 << 64) - 1


def _widen(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if _NATIVE_MIN <= value <= _NATIVE_MAX:
            return value
        return msgpack.ExtType(WIDE_INT_EXT, str(value).encode('ascii'))
    if isinstance(value, (list, tuple)):
        return [_widen(item) for item in value]
    if isinstance(value, dict):
        return {key: _widen(item) for key, item in value.items()}
    return value


def _ext_hook(code: int, data: bytes):
    if code == WIDE_INT_EXT:
        return int(data.decode('ascii'))
    return msgpack.ExtType(code, data)


def packb(value) -> bytes:
    return msgpack.packb(_widen(value), use_bin_type=True)


def unpackb(data: bytes):
    """
    Decode bytes produced by packb.

    Raises:
        ValueError: if a wide integer record does not hold a decimal string
    """
    return msgpack.unpackb(data, raw=False, ext_hook=_ext_hook)
