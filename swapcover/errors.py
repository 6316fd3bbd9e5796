"""
Error taxonomy for the settlement layer.

Every error aborts the whole unit of work it is raised in; the state journal
is rolled back and no event of the unit survives.
"""


class SettlementError(Exception):
    """Base class for every failure raised by the settlement layer."""
    pass


# ==============================================================================
# AUTHORIZATION
# ==============================================================================

class AuthorizationError(SettlementError):
    pass


class Unauthorized(AuthorizationError):
    """Raised when a non-owner calls an owner-only operation."""
    pass


class UnauthorizedCallback(Unauthorized):
    """Raised when the unlock callback is not invoked by the ledger engine."""
    pass


class InvalidSignature(AuthorizationError):
    pass


# ==============================================================================
# STATE
# ==============================================================================

class StateError(SettlementError):
    pass


class OperationPaused(StateError):
    pass


class InvalidAction(StateError):
    """Raised when a callback payload carries an unknown action tag."""
    pass


class MalformedCallback(StateError):
    """Raised when a callback payload does not match the expected schema."""
    pass


class CallbackNotInvoked(StateError):
    """Raised when the ledger engine returned from unlock without calling back."""
    pass


class TokenNotConfigured(StateError):
    pass


# ==============================================================================
# VALUE
# ==============================================================================

class InvalidValue(SettlementError):
    pass


class DeadlineExceeded(InvalidValue):
    pass


class NoReferenceAssetInvolved(InvalidValue):
    pass


class ZeroAddress(InvalidValue):
    pass


class HookNotAllowed(InvalidValue):
    pass


class ReentrantCall(InvalidValue):
    pass


class NativeTransferFailed(InvalidValue):
    pass


class ZeroDivisor(InvalidValue):
    pass


class ValueOutOfRange(InvalidValue):
    pass


# ==============================================================================
# COLLABORATORS
# ==============================================================================

class LedgerError(SettlementError):
    """Raised by the reference ledger engine."""
    pass


class ManagerLocked(LedgerError):
    pass


class AlreadyUnlocked(LedgerError):
    pass


class PoolNotInitialized(LedgerError):
    pass


class PoolAlreadyInitialized(LedgerError):
    pass


class CurrenciesOutOfOrder(LedgerError):
    pass


class InvalidTickRange(LedgerError):
    pass


class InsufficientLiquidity(LedgerError):
    pass


class PriceLimitExceeded(LedgerError):
    pass


class SwapAmountZero(LedgerError):
    pass


class TokenError(SettlementError):
    """Raised by the reference incentive token."""
    pass


class InsufficientBalance(TokenError):
    pass
