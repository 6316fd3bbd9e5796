"""
The SwapCover settlement layer.

Public entry points package a request, hand it to the ledger engine's unlock,
receive the ledger's synchronous callback and return the decoded result.
Swaps accrue incentive rewards valued in reference assets; gasless swaps are
authorized by an off-chain signature and burn a value-proportional fee.

Every public call runs as one atomic unit of work: any failure reverts all
state changes and events of the call, including those made by the ledger
engine and the incentive token.
"""
import logging
import time
from contextlib import contextmanager
from typing import Optional

from swapcover.authorization import (
    build_domain_separator,
    hash_gasless_swap,
    is_valid_signature_now,
    typed_data_digest,
)
from swapcover.callback import SettlementSession
from swapcover.chain import Chain, Contract
from swapcover.core import (
    ActionKind,
    AssetPair,
    BalanceDelta,
    CallbackContext,
    ModifyLiquidityParams,
    SwapParams,
    decode_liquidity_result,
    decode_swap_result,
)
from swapcover.crypto import is_zero_address
from swapcover.errors import (
    DeadlineExceeded,
    HookNotAllowed,
    InvalidSignature,
    NativeTransferFailed,
    OperationPaused,
    ReentrantCall,
    SettlementError,
    TokenNotConfigured,
    Unauthorized,
    UnauthorizedCallback,
    ValueOutOfRange,
    ZeroAddress,
)
from swapcover.incentives import IncentiveEngine, IncentiveParameters, ReferenceAssetRegistry, validate_rates
from swapcover.ledger import UnlockCallback

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_REWARD_DIVISOR = 1000
DEFAULT_GASLESS_FEE_DIVISOR = 100


class SwapCoverLayer(Contract, UnlockCallback):
    def __init__(self, chain: Chain, ledger_address: bytes, owner: bytes,
                 reward_divisor: int = DEFAULT_REWARD_DIVISOR,
                 gasless_fee_divisor: int = DEFAULT_GASLESS_FEE_DIVISOR,
                 fixed_bonus: int = 0,
                 incentives_enabled: bool = True,
                 monitor=None):
        """
        Deploy the layer on a chain.

        Args:
            chain: Execution environment shared with the ledger engine
            ledger_address: Address of the ledger engine; fixed for the layer's lifetime
            owner: Account allowed to change parameters and withdraw funds
            reward_divisor: USD volume per reward unit (ceiling division)
            gasless_fee_divisor: USD volume per gasless fee unit (ceiling division)
            fixed_bonus: Reward units added to every rewarded swap
            incentives_enabled: Whether swaps mint rewards
            monitor: Optional Monitor receiving settlement metrics
        """
        if is_zero_address(ledger_address):
            raise ZeroAddress("Ledger engine address cannot be zero")
        if is_zero_address(owner):
            raise ZeroAddress("Owner cannot be the zero address")

        super().__init__(chain)
        self._ledger_address = ledger_address
        self.monitor = monitor
        self.registry = ReferenceAssetRegistry(chain, self.address)
        self.incentives = IncentiveEngine(chain, self.address, self.registry)

        self._entered = False
        self._session: Optional[SettlementSession] = None

        with chain.atomic():
            self._set_parameters(IncentiveParameters(
                owner=owner,
                reward_divisor=reward_divisor,
                gasless_fee_divisor=gasless_fee_divisor,
                fixed_bonus=fixed_bonus,
                incentives_enabled=incentives_enabled,
            ))
            self.emit('OwnershipTransferred', previous_owner=None, new_owner=owner)

        logger.info(f"SwapCover layer {self.address.hex()} bound to ledger {ledger_address.hex()}")

    # ==========================================================================
    # STATE HELPERS
    # ==========================================================================

    @property
    def ledger_address(self) -> bytes:
        return self._ledger_address

    @property
    def ledger(self):
        return self.chain.code_at(self._ledger_address)

    def parameters(self) -> IncentiveParameters:
        """Current parameters; reload for every read."""
        return IncentiveParameters.from_dict(self.chain.state.get(self._key(b"PARAMS")))

    def _set_parameters(self, params: IncentiveParameters):
        self.chain.state.set(self._key(b"PARAMS"), params.to_dict())

    @property
    def owner(self) -> bytes:
        return self.parameters().owner

    def is_reference_asset(self, asset: bytes) -> bool:
        return self.registry.is_reference(asset)

    def is_incentive_token_configured(self) -> bool:
        return self.parameters().token_configured

    def domain_separator(self) -> bytes:
        return build_domain_separator(self.chain.chain_id, self.address)

    # ==========================================================================
    # GUARDS
    # ==========================================================================

    def _only_owner(self, sender: bytes):
        if sender != self.parameters().owner:
            raise Unauthorized(f"{sender.hex()} is not the owner")

    def _when_not_paused(self):
        if self.parameters().paused:
            raise OperationPaused("Settlement is paused")

    @contextmanager
    def _unit_of_work(self, operation: str):
        """Single-entry, atomic execution of one public call."""
        if self._entered:
            raise ReentrantCall(f"Reentrant call to {operation}")

        self._entered = True
        started = time.perf_counter()
        try:
            with self.chain.atomic():
                yield
        except SettlementError as e:
            logger.warning(f"{operation} aborted: {type(e).__name__}: {e}")
            if self.monitor:
                self.monitor.record_failure(operation, type(e).__name__)
            raise
        finally:
            self._entered = False
            if self.monitor:
                self.monitor.observe_latency(operation, time.perf_counter() - started)
                self.monitor.update_system_metrics()

    # ==========================================================================
    # SETTLEMENT DISPATCHER
    # ==========================================================================

    def open_market(self, sender: bytes, pair: AssetPair, sqrt_price_x96: int) -> int:
        """
        Initialize a hookless market on the ledger engine. Permissionless.

        Returns:
            The market's initial tick
        """
        with self._unit_of_work('open_market'):
            self._when_not_paused()
            if pair.has_hook:
                raise HookNotAllowed(f"Markets with hook {pair.hooks.hex()} are not allowed")

            tick = self.ledger.initialize(self.address, pair, sqrt_price_x96)
            self.emit('MarketOpened', sender=sender, pool_id=pair.pool_id,
                      sqrt_price_x96=sqrt_price_x96, tick=tick)

        logger.info(f"Market {pair.pool_id.hex()[:16]} opened by {sender.hex()} at tick {tick}")
        if self.monitor:
            self.monitor.record_market_opened()
        return tick

    def adjust_liquidity(self, sender: bytes, pair: AssetPair, params: ModifyLiquidityParams,
                         hook_data: bytes = b'') -> tuple[BalanceDelta, BalanceDelta]:
        """
        Add or remove liquidity through the ledger engine. Never accrues incentives.

        Returns:
            (caller_delta, fees_accrued)
        """
        with self._unit_of_work('adjust_liquidity'):
            self._when_not_paused()
            context = CallbackContext(sender, ActionKind.ADJUST_LIQUIDITY, pair, params, hook_data)
            caller_delta, fees_accrued = decode_liquidity_result(self._settle(context).result)

        if self.monitor:
            self.monitor.record_liquidity_adjustment()
        return caller_delta, fees_accrued

    def swap(self, sender: bytes, pair: AssetPair, params: SwapParams,
             hook_data: bytes = b'') -> BalanceDelta:
        """Swap through the ledger engine; sender is the reward beneficiary."""
        with self._unit_of_work('swap'):
            self._when_not_paused()
            session = self._swap(sender, pair, params, hook_data)

        if self.monitor:
            self.monitor.record_swap('direct', session.minted)
        return session.realized_delta

    def _swap(self, caller: bytes, pair: AssetPair, params: SwapParams, hook_data: bytes) -> SettlementSession:
        context = CallbackContext(caller, ActionKind.SWAP, pair, params, hook_data)
        session = self._settle(context)
        session.realized_delta = decode_swap_result(session.result)
        return session

    def _settle(self, context: CallbackContext) -> SettlementSession:
        session = SettlementSession(self, context)
        self._session = session
        try:
            session.result = session.run()
        finally:
            self._session = None
        return session

    def unlock_callback(self, sender: bytes, data: bytes) -> bytes:
        """Re-entry point for the ledger engine while it is unlocked."""
        if sender != self._ledger_address:
            raise UnauthorizedCallback(f"Callback from {sender.hex()} is not the ledger engine")
        if self._session is None:
            raise UnauthorizedCallback("No settlement is awaiting a callback")
        return self._session.handle_callback(data)

    # ==========================================================================
    # GASLESS AUTHORIZATION
    # ==========================================================================

    def _authorization_digest(self, caller: bytes, pair: AssetPair, params: SwapParams,
                              hook_data: bytes, deadline: int) -> bytes:
        # Always bound to the divisor in effect now, not the one at signing time
        struct_hash = hash_gasless_swap(
            caller, pair, params, hook_data, self.parameters().gasless_fee_divisor, deadline
        )
        return typed_data_digest(self.domain_separator(), struct_hash)

    def verify_authorization(self, caller: bytes, pair: AssetPair, params: SwapParams,
                             hook_data: bytes, deadline: int, signature: bytes) -> bool:
        """Read-only check of a gasless authorization against current state."""
        if self.chain.now() > deadline:
            return False
        try:
            digest = self._authorization_digest(caller, pair, params, hook_data, deadline)
        except ValueOutOfRange:
            return False
        return is_valid_signature_now(self.chain, caller, digest, signature)

    def execute_gasless_swap(self, sender: bytes, caller: bytes, pair: AssetPair, params: SwapParams,
                             hook_data: bytes, deadline: int, signature: bytes) -> BalanceDelta:
        """
        Execute a swap on behalf of caller, authorized by caller's signature.

        The swap follows the ordinary path (including any reward mint to
        caller); afterwards a fee of ceil(usd_volume / gasless_fee_divisor) is
        burned from caller's incentive token balance.

        Args:
            sender: The relayer submitting the call
            caller: The signer and beneficiary of the swap
            deadline: Last timestamp at which the authorization is usable
            signature: Key signature envelope or contract-signer payload

        Returns:
            The realized balance delta
        """
        with self._unit_of_work('execute_gasless_swap'):
            self._when_not_paused()

            if self.chain.now() > deadline:
                raise DeadlineExceeded(f"Deadline {deadline} passed at {self.chain.now()}")

            digest = self._authorization_digest(caller, pair, params, hook_data, deadline)
            if not is_valid_signature_now(self.chain, caller, digest, signature):
                raise InvalidSignature(f"Invalid authorization signature for {caller.hex()}")

            session = self._swap(caller, pair, params, hook_data)
            fee = self.incentives.charge_gasless_fee(
                self.parameters(), caller, pair, session.realized_delta
            )

        logger.info(f"Gasless swap for {caller.hex()} relayed by {sender.hex()}, fee {fee}")
        if self.monitor:
            self.monitor.record_swap('gasless', session.minted)
            self.monitor.record_fee_burned(fee)
        return session.realized_delta

    # ==========================================================================
    # ADMINISTRATION
    # ==========================================================================

    def set_reference_asset(self, sender: bytes, asset: bytes, flag: bool):
        with self.chain.atomic():
            self._only_owner(sender)
            self.registry.set_reference(asset, flag)
            self.emit('ReferenceAssetUpdated', asset=asset, is_reference=flag)
        logger.info(f"Reference asset {asset.hex()} set to {flag}")

    def set_paused(self, sender: bytes, flag: bool):
        with self.chain.atomic():
            self._only_owner(sender)
            self._set_parameters(self.parameters().updated(paused=flag))
            self.emit('PausedChanged', paused=flag)
        logger.info(f"Settlement {'paused' if flag else 'unpaused'}")

    def set_incentive_token(self, sender: bytes, token: bytes):
        with self.chain.atomic():
            self._only_owner(sender)
            if is_zero_address(token):
                raise ZeroAddress("Incentive token cannot be the zero address")
            self._set_parameters(self.parameters().updated(incentive_token=token))
            self.emit('IncentiveTokenUpdated', token=token)
        logger.info(f"Incentive token set to {token.hex()}")

    def set_incentives_enabled(self, sender: bytes, flag: bool):
        with self.chain.atomic():
            self._only_owner(sender)
            self._set_parameters(self.parameters().updated(incentives_enabled=flag))
            self.emit('IncentivesEnabledChanged', enabled=flag)
        logger.info(f"Incentives {'enabled' if flag else 'disabled'}")

    def set_rates(self, sender: bytes, reward_divisor: int, gasless_fee_divisor: int, fixed_bonus: int):
        with self.chain.atomic():
            self._only_owner(sender)
            validate_rates(reward_divisor, gasless_fee_divisor, fixed_bonus)
            self._set_parameters(self.parameters().updated(
                reward_divisor=reward_divisor,
                gasless_fee_divisor=gasless_fee_divisor,
                fixed_bonus=fixed_bonus,
            ))
            self.emit('RatesUpdated', reward_divisor=reward_divisor,
                      gasless_fee_divisor=gasless_fee_divisor, fixed_bonus=fixed_bonus)
        logger.info(
            f"Rates updated: reward_divisor={reward_divisor}, "
            f"gasless_fee_divisor={gasless_fee_divisor}, fixed_bonus={fixed_bonus}"
        )

    def transfer_ownership(self, sender: bytes, new_owner: bytes):
        with self.chain.atomic():
            self._only_owner(sender)
            if is_zero_address(new_owner):
                raise ZeroAddress("New owner cannot be the zero address")
            self._set_parameters(self.parameters().updated(owner=new_owner))
            self.emit('OwnershipTransferred', previous_owner=sender, new_owner=new_owner)
        logger.info(f"Ownership transferred from {sender.hex()} to {new_owner.hex()}")

    # ==========================================================================
    # WITHDRAWALS
    # ==========================================================================

    def receive_native(self, sender: bytes, amount: int) -> bool:
        return True

    def withdraw_native(self, sender: bytes, to: bytes, amount: int):
        with self.chain.atomic():
            self._only_owner(sender)
            if is_zero_address(to):
                raise ZeroAddress("Cannot withdraw to the zero address")
            if not self.chain.transfer_native(self.address, to, amount):
                raise NativeTransferFailed(f"Native transfer of {amount} to {to.hex()} failed")
            self.emit('NativeWithdrawn', to=to, amount=amount)
        logger.info(f"Withdrew {amount} native to {to.hex()}")

    def withdraw_token(self, sender: bytes, token: bytes, to: bytes, amount: int):
        with self.chain.atomic():
            self._only_owner(sender)
            if is_zero_address(to) or is_zero_address(token):
                raise ZeroAddress("Token and recipient must be non-zero")
            token_contract = self.chain.code_at(token)
            if token_contract is None:
                raise TokenNotConfigured(f"No token deployed at {token.hex()}")
            token_contract.transfer(self.address, to, amount)
            self.emit('TokenWithdrawn', token=token, to=to, amount=amount)
        logger.info(f"Withdrew {amount} of token {token.hex()} to {to.hex()}")
