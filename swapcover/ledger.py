"""
Ledger engine boundary and a reference pool manager.

The settlement layer only relies on the LedgerEngine interface. PoolManager is
a compact full-range implementation of it, used for simulations and tests.
"""
import logging
from abc import ABC, abstractmethod
import msgpack

from swapcover.chain import Contract
from swapcover.core import AssetPair, SwapParams, ModifyLiquidityParams, BalanceDelta, ZERO_DELTA
from swapcover.crypto import generate_hash
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
from swapcover.pool_state import (
    PoolState,
    FEE_DENOMINATOR,
    MIN_SQRT_PRICE,
    MAX_SQRT_PRICE,
    MIN_TICK,
    MAX_TICK,
    Q128,
    tick_at_sqrt_price,
)

logger = logging.getLogger(__name__)


class UnlockCallback(ABC):
    """Implemented by contracts that call LedgerEngine.unlock."""

    @abstractmethod
    def unlock_callback(self, sender: bytes, data: bytes) -> bytes:
        ...


class LedgerEngine(ABC):
    """The operations the settlement layer needs from a ledger engine."""

    address: bytes

    @abstractmethod
    def initialize(self, sender: bytes, pair: AssetPair, sqrt_price_x96: int) -> int:
        ...

    @abstractmethod
    def swap(self, sender: bytes, pair: AssetPair, params: SwapParams, hook_data: bytes) -> BalanceDelta:
        ...

    @abstractmethod
    def modify_liquidity(self, sender: bytes, pair: AssetPair, params: ModifyLiquidityParams,
                         hook_data: bytes) -> tuple[BalanceDelta, BalanceDelta]:
        ...

    @abstractmethod
    def unlock(self, sender: bytes, data: bytes) -> bytes:
        """Call back unlock_callback on the contract at sender and return its result."""
        ...


class PoolManager(Contract, LedgerEngine):
    def __init__(self, chain):
        super().__init__(chain)
        self._unlocked = False

    @property
    def is_unlocked(self) -> bool:
        return self._unlocked

    # ==========================================================================
    # STATE HELPERS
    # ==========================================================================

    def get_pool_state(self, pair: AssetPair) -> PoolState:
        data = self.chain.state.get(self._key(b"POOL", pair.pool_id))
        if data is None:
            raise PoolNotInitialized(f"Pool {pair.pool_id.hex()[:16]} not initialized")
        return PoolState(data)

    def _set_pool_state(self, pair: AssetPair, pool: PoolState):
        self.chain.state.set(self._key(b"POOL", pair.pool_id), pool.to_dict())

    def _position_key(self, pair: AssetPair, owner: bytes, params: ModifyLiquidityParams) -> bytes:
        position_id = generate_hash(msgpack.packb(
            [owner, params.tick_lower, params.tick_upper, params.salt], use_bin_type=True
        ))
        return self._key(b"POSITION", pair.pool_id, position_id)

    def get_position(self, pair: AssetPair, owner: bytes, params: ModifyLiquidityParams) -> dict:
        return self.chain.state.get(
            self._position_key(pair, owner, params),
            {'liquidity': 0, 'fee_growth0_last': 0, 'fee_growth1_last': 0},
        )

    def _require_unlocked(self):
        if not self._unlocked:
            raise ManagerLocked("Ledger operations are only allowed inside unlock")

    # ==========================================================================
    # LEDGER OPERATIONS
    # ==========================================================================

    def unlock(self, sender: bytes, data: bytes) -> bytes:
        if self._unlocked:
            raise AlreadyUnlocked("Ledger is already unlocked")

        callback = self.chain.code_at(sender)
        if callback is None or not hasattr(callback, 'unlock_callback'):
            raise LedgerError(f"Account {sender.hex()} cannot receive unlock callbacks")

        self._unlocked = True
        try:
            return callback.unlock_callback(self.address, data)
        finally:
            self._unlocked = False

    def initialize(self, sender: bytes, pair: AssetPair, sqrt_price_x96: int) -> int:
        if pair.currency0 >= pair.currency1:
            raise CurrenciesOutOfOrder("currency0 must sort strictly below currency1")
        if not 0 <= pair.fee < FEE_DENOMINATOR:
            raise LedgerError(f"Fee {pair.fee} out of range")
        if pair.tick_spacing <= 0:
            raise LedgerError("Tick spacing must be positive")
        if not MIN_SQRT_PRICE <= sqrt_price_x96 < MAX_SQRT_PRICE:
            raise LedgerError(f"sqrt price {sqrt_price_x96} out of bounds")
        if self.chain.state.get(self._key(b"POOL", pair.pool_id)) is not None:
            raise PoolAlreadyInitialized(f"Pool {pair.pool_id.hex()[:16]} already initialized")

        tick = tick_at_sqrt_price(sqrt_price_x96)
        pool = PoolState({'fee': pair.fee, 'sqrt_price_x96': sqrt_price_x96, 'tick': tick})
        self._set_pool_state(pair, pool)
        self.emit('Initialize', pool_id=pair.pool_id, sqrt_price_x96=sqrt_price_x96, tick=tick)

        logger.info(f"Pool {pair.pool_id.hex()[:16]} initialized at tick {tick}")
        return tick

    def swap(self, sender: bytes, pair: AssetPair, params: SwapParams, hook_data: bytes) -> BalanceDelta:
        self._require_unlocked()
        pool = self.get_pool_state(pair)

        if params.amount_specified == 0:
            raise SwapAmountZero("Swap amount cannot be zero")
        if pool.liquidity == 0:
            raise InsufficientLiquidity("Pool has no liquidity")

        if params.amount_specified < 0:
            amount_in = -params.amount_specified
            amount_out = pool.get_swap_output(amount_in, params.zero_for_one)
        else:
            amount_out = params.amount_specified
            amount_in = pool.get_swap_input(amount_out, params.zero_for_one)

        new_sqrt_price = pool.preview_sqrt_price(amount_in, amount_out, params.zero_for_one)
        if params.zero_for_one and new_sqrt_price < params.sqrt_price_limit_x96:
            raise PriceLimitExceeded(f"Price {new_sqrt_price} below limit {params.sqrt_price_limit_x96}")
        if not params.zero_for_one and new_sqrt_price > params.sqrt_price_limit_x96:
            raise PriceLimitExceeded(f"Price {new_sqrt_price} above limit {params.sqrt_price_limit_x96}")

        fee_amount = pool.apply_swap(amount_in, amount_out, params.zero_for_one)
        self._set_pool_state(pair, pool)

        if params.zero_for_one:
            delta = BalanceDelta(-amount_in, amount_out)
        else:
            delta = BalanceDelta(amount_out, -amount_in)

        self.emit(
            'Swap', pool_id=pair.pool_id, sender=sender,
            amount0=delta.amount0, amount1=delta.amount1,
            sqrt_price_x96=pool.sqrt_price_x96, fee_amount=fee_amount,
        )
        return delta

    def modify_liquidity(self, sender: bytes, pair: AssetPair, params: ModifyLiquidityParams,
                         hook_data: bytes) -> tuple[BalanceDelta, BalanceDelta]:
        """
        Add (positive delta) or remove (negative delta) full-range liquidity.

        Returns:
            (caller_delta, fees_accrued); caller_delta already includes the fees
        """
        self._require_unlocked()
        pool = self.get_pool_state(pair)

        if params.tick_lower >= params.tick_upper:
            raise InvalidTickRange("tick_lower must be below tick_upper")
        if params.tick_lower < MIN_TICK or params.tick_upper > MAX_TICK:
            raise InvalidTickRange("Ticks out of bounds")
        if params.tick_lower % pair.tick_spacing or params.tick_upper % pair.tick_spacing:
            raise InvalidTickRange(f"Ticks must be multiples of {pair.tick_spacing}")

        position_key = self._position_key(pair, sender, params)
        position = self.get_position(pair, sender, params)

        fees0 = ((pool.fee_growth0_x128 - position['fee_growth0_last']) * position['liquidity']) // Q128
        fees1 = ((pool.fee_growth1_x128 - position['fee_growth1_last']) * position['liquidity']) // Q128
        fees_accrued = BalanceDelta(fees0, fees1)

        liquidity_delta = params.liquidity_delta
        if liquidity_delta > 0:
            amount0, amount1 = pool.amounts_for_liquidity(liquidity_delta, round_up=True)
            pool.reserve0 += amount0
            pool.reserve1 += amount1
            principal = BalanceDelta(-amount0, -amount1)
        elif liquidity_delta < 0:
            if position['liquidity'] < -liquidity_delta:
                raise InsufficientLiquidity(
                    f"Position holds {position['liquidity']}, cannot remove {-liquidity_delta}"
                )
            amount0, amount1 = pool.amounts_for_liquidity(-liquidity_delta, round_up=False)
            pool.reserve0 -= amount0
            pool.reserve1 -= amount1
            principal = BalanceDelta(amount0, amount1)
        else:
            principal = ZERO_DELTA

        pool.liquidity += liquidity_delta
        position['liquidity'] += liquidity_delta
        position['fee_growth0_last'] = pool.fee_growth0_x128
        position['fee_growth1_last'] = pool.fee_growth1_x128

        self._set_pool_state(pair, pool)
        self.chain.state.set(position_key, position)

        caller_delta = principal + fees_accrued
        self.emit(
            'ModifyLiquidity', pool_id=pair.pool_id, sender=sender,
            tick_lower=params.tick_lower, tick_upper=params.tick_upper,
            liquidity_delta=liquidity_delta, salt=params.salt,
        )
        return caller_delta, fees_accrued
