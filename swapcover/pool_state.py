"""
Pool state for the reference ledger engine.
Implements a full-range constant product market: reserve0 * reserve1 = k
"""
import math
from decimal import Decimal

from swapcover.errors import InsufficientLiquidity

Q96 = 1 << 96
Q128 = 1 << 128
FEE_DENOMINATOR = 1_000_000  # fees are expressed in pips

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_PRICE = 4295128739
MAX_SQRT_PRICE = 1461446703485210103287273642905826311426851981795
_LOG_TICK_BASE = math.log(1.0001)


def tick_at_sqrt_price(sqrt_price_x96: int) -> int:
    """Largest tick whose price does not exceed the given sqrt price."""
    price = (Decimal(sqrt_price_x96) / Decimal(Q96)) ** 2
    tick = math.floor(math.log(float(price)) / _LOG_TICK_BASE)
    return max(MIN_TICK, min(tick, MAX_TICK))


def _mul_div_up(a: int, b: int, denominator: int) -> int:
    return -((-a * b) // denominator)


class PoolState:
    """
    Represents one market stored by the reference ledger engine.

    Swap fees are kept out of the reserves and accounted as fee growth per
    unit of liquidity (Q128), so positions can collect them pro rata.
    """

    def __init__(self, data: dict = None):
        """
        Initialize pool state.

        Args:
            data: Dict with reserves, liquidity, price and fee growth
        """
        if data is None:
            data = {}

        self.fee = int(data.get('fee', 0))
        self.sqrt_price_x96 = int(data.get('sqrt_price_x96', 0))
        self.tick = int(data.get('tick', 0))
        self.reserve0 = int(data.get('reserve0', 0))
        self.reserve1 = int(data.get('reserve1', 0))
        self.liquidity = int(data.get('liquidity', 0))
        self.fee_growth0_x128 = int(data.get('fee_growth0_x128', 0))
        self.fee_growth1_x128 = int(data.get('fee_growth1_x128', 0))

    def to_dict(self) -> dict:
        """
        Convert to dict for storage.
        """
        return {
            'fee': self.fee,
            'sqrt_price_x96': self.sqrt_price_x96,
            'tick': self.tick,
            'reserve0': self.reserve0,
            'reserve1': self.reserve1,
            'liquidity': self.liquidity,
            'fee_growth0_x128': self.fee_growth0_x128,
            'fee_growth1_x128': self.fee_growth1_x128,
        }

    @property
    def current_price(self) -> Decimal:
        """Price of currency0 in units of currency1."""
        return (Decimal(self.sqrt_price_x96) / Decimal(Q96)) ** 2

    def _reserves(self, zero_for_one: bool) -> tuple[int, int]:
        if zero_for_one:
            return self.reserve0, self.reserve1
        return self.reserve1, self.reserve0

    def _fee_on(self, amount_in: int) -> int:
        return _mul_div_up(amount_in, self.fee, FEE_DENOMINATOR)

    def get_swap_output(self, amount_in: int, zero_for_one: bool) -> int:
        """
        Calculate swap output using constant product formula with fees.

        Formula: (x + dx * (1 - fee)) * (y - dy) = x * y
        Solving for dy: dy = (y * dx') / (x + dx')

        Args:
            amount_in: Amount of input asset (in smallest unit)
            zero_for_one: True if selling currency0 for currency1

        Returns:
            Amount of output asset (in smallest unit)
        """
        if amount_in <= 0:
            return 0

        reserve_in, reserve_out = self._reserves(zero_for_one)
        input_after_fee = amount_in - self._fee_on(amount_in)
        denominator = reserve_in + input_after_fee
        if denominator == 0:
            return 0
        return (input_after_fee * reserve_out) // denominator

    def get_swap_input(self, amount_out: int, zero_for_one: bool) -> int:
        """
        Calculate the gross input needed to receive exactly amount_out.

        Rounds up so the pool never gives away more than k allows.
        """
        reserve_in, reserve_out = self._reserves(zero_for_one)
        if amount_out >= reserve_out:
            raise InsufficientLiquidity(
                f"Requested {amount_out} exceeds available reserve {reserve_out}"
            )
        net_in = _mul_div_up(reserve_in, amount_out, reserve_out - amount_out)
        # gross * (1 - fee) >= net_in
        return _mul_div_up(net_in, FEE_DENOMINATOR, FEE_DENOMINATOR - self.fee)

    def apply_swap(self, amount_in: int, amount_out: int, zero_for_one: bool) -> int:
        """
        Move reserves for an executed swap and book the fee as fee growth.

        Returns:
            The fee charged on the input leg
        """
        if self.liquidity == 0:
            raise InsufficientLiquidity("Pool has no liquidity")

        fee_amount = self._fee_on(amount_in)
        growth = (fee_amount * Q128) // self.liquidity
        if zero_for_one:
            self.reserve0 += amount_in - fee_amount
            self.reserve1 -= amount_out
            self.fee_growth0_x128 += growth
        else:
            self.reserve1 += amount_in - fee_amount
            self.reserve0 -= amount_out
            self.fee_growth1_x128 += growth

        self._sync_price()
        return fee_amount

    def preview_sqrt_price(self, amount_in: int, amount_out: int, zero_for_one: bool) -> int:
        """sqrt price the pool would have after a swap, without applying it."""
        net_in = amount_in - self._fee_on(amount_in)
        if zero_for_one:
            return self._sqrt_price_for(self.reserve0 + net_in, self.reserve1 - amount_out)
        return self._sqrt_price_for(self.reserve0 - amount_out, self.reserve1 + net_in)

    def amounts_for_liquidity(self, liquidity_delta: int, round_up: bool) -> tuple[int, int]:
        """
        Token amounts backing liquidity_delta units of liquidity.

        An empty pool prices liquidity from its initial sqrt price; otherwise
        amounts are proportional to the current reserves.
        """
        if self.liquidity == 0:
            amount0 = _mul_div_up(liquidity_delta, Q96, self.sqrt_price_x96)
            amount1 = _mul_div_up(liquidity_delta, self.sqrt_price_x96, Q96)
            return amount0, amount1

        if round_up:
            return (
                _mul_div_up(self.reserve0, liquidity_delta, self.liquidity),
                _mul_div_up(self.reserve1, liquidity_delta, self.liquidity),
            )
        return (
            (self.reserve0 * liquidity_delta) // self.liquidity,
            (self.reserve1 * liquidity_delta) // self.liquidity,
        )

    def _sqrt_price_for(self, reserve0: int, reserve1: int) -> int:
        if reserve0 <= 0:
            return MAX_SQRT_PRICE
        return max(MIN_SQRT_PRICE, min(math.isqrt((reserve1 << 192) // reserve0), MAX_SQRT_PRICE))

    def _sync_price(self):
        if self.reserve0 > 0 and self.reserve1 > 0:
            self.sqrt_price_x96 = self._sqrt_price_for(self.reserve0, self.reserve1)
            self.tick = tick_at_sqrt_price(self.sqrt_price_x96)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"PoolState("
            f"reserve0={self.reserve0}, "
            f"reserve1={self.reserve1}, "
            f"liquidity={self.liquidity}, "
            f"tick={self.tick})"
        )
