"""
Atomic callback handling.

One SettlementSession drives one outer call through the ledger engine:

    IDLE -> AWAITING_CALLBACK -> EXECUTING -> COMPLETED
                  |                  |
                  +-----> ABORTED <--+

The session hands the encoded CallbackContext to LedgerEngine.unlock; the
ledger re-enters the layer synchronously, the layer forwards the payload to
handle_callback, and the action runs while the ledger is unlocked.
"""
import logging
from enum import Enum

from swapcover.core import (
    ActionKind,
    CallbackContext,
    encode_liquidity_result,
    encode_swap_result,
)
from swapcover.errors import CallbackNotInvoked, InvalidAction, UnauthorizedCallback

logger = logging.getLogger(__name__)


class CallbackPhase(Enum):
    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ABORTED = "aborted"


class SettlementSession:
    def __init__(self, layer, context: CallbackContext):
        """
        Args:
            layer: The settlement layer the ledger calls back into
            context: The request to execute inside the ledger's unlock
        """
        self.layer = layer
        self.context = context
        self.phase = CallbackPhase.IDLE
        self.result = None
        self.realized_delta = None
        self.minted = 0
        self._handlers = {
            ActionKind.SWAP: self._execute_swap,
            ActionKind.ADJUST_LIQUIDITY: self._execute_adjust_liquidity,
        }

    def _transition(self, phase: CallbackPhase):
        logger.debug(f"Settlement {self.phase.value} -> {phase.value}")
        self.phase = phase

    def run(self) -> bytes:
        """Hand the context to the ledger and return the encoded callback result."""
        if self.phase is not CallbackPhase.IDLE:
            raise RuntimeError(f"Settlement session already used (phase {self.phase.value})")

        self._transition(CallbackPhase.AWAITING_CALLBACK)
        try:
            result = self.layer.ledger.unlock(self.layer.address, self.context.encode())
            if self.phase is not CallbackPhase.EXECUTING:
                raise CallbackNotInvoked("Ledger returned from unlock without calling back")
        except Exception:
            self._transition(CallbackPhase.ABORTED)
            raise

        self._transition(CallbackPhase.COMPLETED)
        return result

    def handle_callback(self, data: bytes) -> bytes:
        """Entered by the ledger from inside unlock; the caller is already authenticated."""
        if self.phase is not CallbackPhase.AWAITING_CALLBACK:
            raise UnauthorizedCallback(f"No callback expected in phase {self.phase.value}")

        self._transition(CallbackPhase.EXECUTING)
        context = CallbackContext.decode(data)

        handler = self._handlers.get(context.action)
        if handler is None:
            raise InvalidAction(f"Unknown callback action {int(context.action)}")
        return handler(context)

    def _execute_swap(self, context: CallbackContext) -> bytes:
        ledger = self.layer.ledger
        delta = ledger.swap(self.layer.address, context.pair, context.params, context.hook_data)
        self.realized_delta = delta

        # Parameters are read after the ledger resolved the delta
        params = self.layer.parameters()
        self.minted = self.layer.incentives.accrue_swap_reward(params, context.caller, context.pair, delta)

        self.layer.emit(
            'SwapExecuted',
            caller=context.caller,
            pool_id=context.pair.pool_id,
            amount0=delta.amount0,
            amount1=delta.amount1,
        )
        return encode_swap_result(delta)

    def _execute_adjust_liquidity(self, context: CallbackContext) -> bytes:
        ledger = self.layer.ledger
        caller_delta, fees_accrued = ledger.modify_liquidity(
            self.layer.address, context.pair, context.params, context.hook_data
        )
        self.realized_delta = caller_delta

        self.layer.emit(
            'LiquidityModified',
            caller=context.caller,
            pool_id=context.pair.pool_id,
            liquidity_delta=context.params.liquidity_delta,
            amount0=caller_delta.amount0,
            amount1=caller_delta.amount1,
            fees0=fees_accrued.amount0,
            fees1=fees_accrued.amount1,
        )
        return encode_liquidity_result(caller_delta, fees_accrued)
