"""
Incentive accounting: reference assets, incentive parameters, USD volume
estimation, reward minting and gasless fee burning.
"""
import logging
from dataclasses import dataclass, asdict, replace
from typing import Optional

from swapcover.core import AssetPair, BalanceDelta
from swapcover.errors import NoReferenceAssetInvolved, TokenNotConfigured, ValueOutOfRange, ZeroDivisor
from swapcover.numeric import ceil_div, magnitude

logger = logging.getLogger(__name__)


# ==============================================================================
# REFERENCE ASSET REGISTRY
# ==============================================================================

class ReferenceAssetRegistry:
    """
    Set of assets flagged as reference (stable) units of account.

    Flags live in chain state and are read at use time, never cached.
    """

    def __init__(self, chain, namespace: bytes):
        self.chain = chain
        self.namespace = namespace

    def _key(self, asset: bytes) -> bytes:
        return self.namespace + b":REFERENCE:" + asset

    def is_reference(self, asset: bytes) -> bool:
        return bool(self.chain.state.get(self._key(asset), False))

    def set_reference(self, asset: bytes, flag: bool):
        if flag:
            self.chain.state.set(self._key(asset), True)
        else:
            self.chain.state.delete(self._key(asset))

    def flags_for(self, pair: AssetPair) -> tuple[bool, bool]:
        return self.is_reference(pair.currency0), self.is_reference(pair.currency1)


# ==============================================================================
# INCENTIVE PARAMETERS
# ==============================================================================

@dataclass(frozen=True)
class IncentiveParameters:
    """
    Owner-mutable configuration read by every settlement operation.

    Instances are snapshots: reload them from state for each operation so a
    call always observes the values in effect at its own execution.
    """
    owner: bytes
    reward_divisor: int
    gasless_fee_divisor: int
    fixed_bonus: int = 0
    incentives_enabled: bool = True
    paused: bool = False
    incentive_token: Optional[bytes] = None

    def __post_init__(self):
        validate_rates(self.reward_divisor, self.gasless_fee_divisor, self.fixed_bonus)

    @property
    def token_configured(self) -> bool:
        return self.incentive_token is not None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'IncentiveParameters':
        return cls(**data)

    def updated(self, **changes) -> 'IncentiveParameters':
        return replace(self, **changes)


def validate_rates(reward_divisor: int, gasless_fee_divisor: int, fixed_bonus: int):
    """Divisors must be positive, the bonus non-negative."""
    for name, value in (('reward_divisor', reward_divisor), ('gasless_fee_divisor', gasless_fee_divisor)):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValueOutOfRange(f"{name} must be a non-negative integer, got {value!r}")
        if value == 0:
            raise ZeroDivisor(f"{name} cannot be zero")
    if not isinstance(fixed_bonus, int) or isinstance(fixed_bonus, bool) or fixed_bonus < 0:
        raise ValueOutOfRange(f"fixed_bonus must be a non-negative integer, got {fixed_bonus!r}")


# ==============================================================================
# USD VOLUME ESTIMATOR
# ==============================================================================

def estimate_usd_volume(is_ref0: bool, is_ref1: bool, delta: BalanceDelta) -> int:
    """
    Reference-asset value of a realized balance movement.

    Both legs reference: the smaller leg. One leg reference: that leg's
    magnitude. Neither: zero.
    """
    amount0 = magnitude(delta.amount0)
    amount1 = magnitude(delta.amount1)

    if is_ref0 and is_ref1:
        return min(amount0, amount1)
    if is_ref0:
        return amount0
    if is_ref1:
        return amount1
    return 0


# ==============================================================================
# INCENTIVE ACCRUAL ENGINE
# ==============================================================================

class IncentiveEngine:
    def __init__(self, chain, minter: bytes, registry: ReferenceAssetRegistry):
        """
        Args:
            chain: Execution environment
            minter: Address the token sees as the privileged caller
            registry: Reference asset flags used for volume estimation
        """
        self.chain = chain
        self.minter = minter
        self.registry = registry

    def usd_volume(self, pair: AssetPair, delta: BalanceDelta) -> int:
        is_ref0, is_ref1 = self.registry.flags_for(pair)
        return estimate_usd_volume(is_ref0, is_ref1, delta)

    @staticmethod
    def reward_for(params: IncentiveParameters, usd_volume: int) -> int:
        return ceil_div(usd_volume, params.reward_divisor) + params.fixed_bonus

    @staticmethod
    def fee_for(params: IncentiveParameters, usd_volume: int) -> int:
        return ceil_div(usd_volume, params.gasless_fee_divisor)

    def token(self, params: IncentiveParameters):
        if not params.token_configured:
            raise TokenNotConfigured("No incentive token configured")
        token = self.chain.code_at(params.incentive_token)
        if token is None:
            raise TokenNotConfigured(f"No token deployed at {params.incentive_token.hex()}")
        return token

    def accrue_swap_reward(self, params: IncentiveParameters, caller: bytes,
                           pair: AssetPair, delta: BalanceDelta) -> int:
        """
        Mint the swap reward for a realized delta.

        Returns:
            Amount minted to caller (0 when incentives are off, no token is
            configured, or no reference asset moved)
        """
        if not params.incentives_enabled or not params.token_configured:
            return 0

        usd_volume = self.usd_volume(pair, delta)
        if usd_volume == 0:
            return 0

        reward = self.reward_for(params, usd_volume)
        self.token(params).mint(self.minter, caller, reward)
        self.chain.emit(
            self.minter, 'IncentiveMinted',
            caller=caller, pool_id=pair.pool_id, usd_volume=usd_volume, amount=reward,
        )
        logger.info(f"Minted {reward} incentive to {caller.hex()} for ${usd_volume} volume")
        return reward

    def charge_gasless_fee(self, params: IncentiveParameters, caller: bytes,
                           pair: AssetPair, delta: BalanceDelta) -> int:
        """
        Burn the gasless execution fee from caller.

        Returns:
            Amount burned

        Raises:
            NoReferenceAssetInvolved: if the swap moved no reference asset
            TokenNotConfigured: if a fee is due but no token is configured
        """
        usd_volume = self.usd_volume(pair, delta)
        if usd_volume == 0:
            raise NoReferenceAssetInvolved(
                f"Pool {pair.pool_id.hex()[:16]} trades no reference asset"
            )

        fee = self.fee_for(params, usd_volume)
        if fee > 0:
            self.token(params).burn_from(self.minter, caller, fee)
            self.chain.emit(self.minter, 'FeeBurned', caller=caller, usd_volume=usd_volume, amount=fee)
            logger.info(f"Burned gasless fee {fee} from {caller.hex()} for ${usd_volume} volume")
        return fee
