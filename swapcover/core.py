"""
Core data structures exchanged between the settlement layer and the ledger engine.
"""
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union
import msgpack

from swapcover import codec
from swapcover.crypto import generate_hash, is_zero_address, ZERO_ADDRESS, ADDRESS_LENGTH
from swapcover.errors import MalformedCallback
from swapcover.numeric import check_int128


class ActionKind(IntEnum):
    SWAP = 0
    ADJUST_LIQUIDITY = 1


def _expect_address(value, field_name: str) -> bytes:
    if not isinstance(value, bytes) or len(value) != ADDRESS_LENGTH:
        raise MalformedCallback(f"{field_name}: expected a {ADDRESS_LENGTH}-byte address")
    return value


def _expect_int(value, field_name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise MalformedCallback(f"{field_name}: expected an integer")
    return value


def _expect_bool(value, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise MalformedCallback(f"{field_name}: expected a boolean")
    return value


def _expect_list(value, length: int, field_name: str) -> list:
    if not isinstance(value, (list, tuple)) or len(value) != length:
        raise MalformedCallback(f"{field_name}: expected {length} fields")
    return list(value)


@dataclass(frozen=True)
class AssetPair:
    """
    Identifies a market on the ledger engine.

    Attributes:
        currency0: Lower-sorted asset address
        currency1: Higher-sorted asset address
        fee: Swap fee in pips (1e-6)
        tick_spacing: Tick granularity of the market
        hooks: Optional hook contract; None or the zero address means no hook
    """
    currency0: bytes
    currency1: bytes
    fee: int
    tick_spacing: int
    hooks: Optional[bytes] = None

    @property
    def has_hook(self) -> bool:
        return not is_zero_address(self.hooks)

    @property
    def pool_id(self) -> bytes:
        return generate_hash(codec.packb(self.to_list()))

    def to_list(self) -> list:
        return [
            self.currency0,
            self.currency1,
            self.fee,
            self.tick_spacing,
            self.hooks if self.hooks is not None else ZERO_ADDRESS,
        ]

    @classmethod
    def from_list(cls, items) -> 'AssetPair':
        currency0, currency1, fee, tick_spacing, hooks = _expect_list(items, 5, "pair")
        hooks = _expect_address(hooks, "pair.hooks")
        return cls(
            currency0=_expect_address(currency0, "pair.currency0"),
            currency1=_expect_address(currency1, "pair.currency1"),
            fee=_expect_int(fee, "pair.fee"),
            tick_spacing=_expect_int(tick_spacing, "pair.tick_spacing"),
            hooks=None if is_zero_address(hooks) else hooks,
        )


@dataclass(frozen=True)
class SwapParams:
    zero_for_one: bool
    amount_specified: int  # negative: exact input, positive: exact output
    sqrt_price_limit_x96: int

    def to_list(self) -> list:
        return [self.zero_for_one, self.amount_specified, self.sqrt_price_limit_x96]

    @classmethod
    def from_list(cls, items) -> 'SwapParams':
        zero_for_one, amount_specified, limit = _expect_list(items, 3, "swap params")
        return cls(
            zero_for_one=_expect_bool(zero_for_one, "params.zero_for_one"),
            amount_specified=_expect_int(amount_specified, "params.amount_specified"),
            sqrt_price_limit_x96=_expect_int(limit, "params.sqrt_price_limit_x96"),
        )


@dataclass(frozen=True)
class ModifyLiquidityParams:
    tick_lower: int
    tick_upper: int
    liquidity_delta: int
    salt: bytes = b'\x00' * 32

    def to_list(self) -> list:
        return [self.tick_lower, self.tick_upper, self.liquidity_delta, self.salt]

    @classmethod
    def from_list(cls, items) -> 'ModifyLiquidityParams':
        tick_lower, tick_upper, liquidity_delta, salt = _expect_list(items, 4, "liquidity params")
        if not isinstance(salt, bytes):
            raise MalformedCallback("params.salt: expected bytes")
        return cls(
            tick_lower=_expect_int(tick_lower, "params.tick_lower"),
            tick_upper=_expect_int(tick_upper, "params.tick_upper"),
            liquidity_delta=_expect_int(liquidity_delta, "params.liquidity_delta"),
            salt=salt,
        )


@dataclass(frozen=True)
class BalanceDelta:
    """
    Signed net movement per asset, from the caller's point of view.

    Negative amounts are owed by the caller to the ledger, positive amounts
    are owed to the caller.
    """
    amount0: int = 0
    amount1: int = 0

    def __post_init__(self):
        check_int128(self.amount0)
        check_int128(self.amount1)

    def __add__(self, other: 'BalanceDelta') -> 'BalanceDelta':
        return BalanceDelta(self.amount0 + other.amount0, self.amount1 + other.amount1)

    def __sub__(self, other: 'BalanceDelta') -> 'BalanceDelta':
        return BalanceDelta(self.amount0 - other.amount0, self.amount1 - other.amount1)

    def to_list(self) -> list:
        return [self.amount0, self.amount1]

    @classmethod
    def from_list(cls, items) -> 'BalanceDelta':
        amount0, amount1 = _expect_list(items, 2, "delta")
        return cls(_expect_int(amount0, "delta.amount0"), _expect_int(amount1, "delta.amount1"))


ZERO_DELTA = BalanceDelta(0, 0)

ActionParams = Union[SwapParams, ModifyLiquidityParams]

_PARAM_TYPES = {
    ActionKind.SWAP: SwapParams,
    ActionKind.ADJUST_LIQUIDITY: ModifyLiquidityParams,
}


@dataclass(frozen=True)
class CallbackContext:
    """
    The payload handed to the ledger engine's unlock and decoded once by the
    callback handler.

    `action` is an ActionKind for known tags; an unknown tag is kept as the raw
    integer (with raw params) so the handler can reject it.
    """
    caller: bytes
    action: Union[ActionKind, int]
    pair: AssetPair
    params: Union[ActionParams, list]
    hook_data: bytes = b''

    def encode(self) -> bytes:
        params = self.params.to_list() if hasattr(self.params, 'to_list') else list(self.params)
        return codec.packb([self.caller, int(self.action), self.pair.to_list(), params, self.hook_data])

    @classmethod
    def decode(cls, data: bytes) -> 'CallbackContext':
        if not isinstance(data, bytes):
            raise MalformedCallback("Callback payload must be bytes")
        try:
            fields = codec.unpackb(data)
        except (ValueError, TypeError, msgpack.exceptions.UnpackException) as e:
            raise MalformedCallback(f"Undecodable callback payload: {e}") from e

        caller, action, pair, params, hook_data = _expect_list(fields, 5, "callback context")
        action = _expect_int(action, "action")
        if not isinstance(hook_data, bytes):
            raise MalformedCallback("hook_data: expected bytes")

        try:
            kind = ActionKind(action)
        except ValueError:
            kind = None

        if kind is not None:
            params = _PARAM_TYPES[kind].from_list(params)
            action = kind

        return cls(
            caller=_expect_address(caller, "caller"),
            action=action,
            pair=AssetPair.from_list(pair),
            params=params,
            hook_data=hook_data,
        )


# ==============================================================================
# CALLBACK RESULTS
# ==============================================================================

def _unpack_result(data: bytes):
    try:
        return codec.unpackb(data)
    except (ValueError, TypeError, msgpack.exceptions.UnpackException) as e:
        raise MalformedCallback(f"Undecodable callback result: {e}") from e


def encode_swap_result(delta: BalanceDelta) -> bytes:
    return codec.packb(delta.to_list())


def decode_swap_result(data: bytes) -> BalanceDelta:
    return BalanceDelta.from_list(_unpack_result(data))


def encode_liquidity_result(caller_delta: BalanceDelta, fees_accrued: BalanceDelta) -> bytes:
    return codec.packb([caller_delta.to_list(), fees_accrued.to_list()])


def decode_liquidity_result(data: bytes) -> tuple[BalanceDelta, BalanceDelta]:
    caller_delta, fees_accrued = _expect_list(_unpack_result(data), 2, "liquidity result")
    return BalanceDelta.from_list(caller_delta), BalanceDelta.from_list(fees_accrued)
