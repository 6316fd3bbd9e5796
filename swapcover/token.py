"""
Incentive token boundary and a reference mintable/burnable token.
"""
import logging
from abc import ABC, abstractmethod

from swapcover.chain import Contract
from swapcover.crypto import is_zero_address
from swapcover.errors import InsufficientBalance, Unauthorized, ValueOutOfRange, ZeroAddress

logger = logging.getLogger(__name__)


class IncentiveToken(ABC):
    """Fungible token with privileged mint/burn reserved for the settlement layer."""

    address: bytes

    @abstractmethod
    def balance_of(self, holder: bytes) -> int:
        ...

    @abstractmethod
    def total_supply(self) -> int:
        ...

    @abstractmethod
    def transfer(self, sender: bytes, to: bytes, amount: int) -> bool:
        ...

    @abstractmethod
    def mint(self, sender: bytes, to: bytes, amount: int):
        ...

    @abstractmethod
    def burn_from(self, sender: bytes, holder: bytes, amount: int):
        ...


class SupplyState:
    """
    Tracks token supply.

    total_supply always equals total_minted - total_burned.
    """

    def __init__(self, data: dict = None):
        """
        Initialize supply state.

        Args:
            data: Dict with supply tracking
        """
        if data is None:
            data = {
                'total_minted': 0,
                'total_burned': 0,
            }

        self.total_minted = int(data['total_minted'])
        self.total_burned = int(data['total_burned'])
        self._validate()

    def to_dict(self) -> dict:
        """
        Convert to dict for storage.
        """
        return {
            'total_minted': self.total_minted,
            'total_burned': self.total_burned,
        }

    @property
    def total_supply(self) -> int:
        return self.total_minted - self.total_burned

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"SupplyState("
            f"minted={self.total_minted}, "
            f"burned={self.total_burned}, "
            f"supply={self.total_supply})"
        )

    def _validate(self):
        """Ensure state consistency."""
        if self.total_minted < 0 or self.total_burned < 0:
            raise ValueError("Minted/burned cannot be negative")
        if self.total_burned > self.total_minted:
            raise ValueError("Cannot burn more than was minted")


class MintableToken(Contract, IncentiveToken):
    def __init__(self, chain, owner: bytes, name: str = "SwapCover Incentive", symbol: str = "SCI",
                 decimals: int = 18):
        super().__init__(chain)
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.owner = owner

    # ==========================================================================
    # STATE HELPERS
    # ==========================================================================

    def _get_balance(self, holder: bytes) -> int:
        return self.chain.state.get(self._key(b"BALANCE", holder), 0)

    def _set_balance(self, holder: bytes, amount: int):
        self.chain.state.set(self._key(b"BALANCE", holder), amount)

    def get_supply_state(self) -> SupplyState:
        data = self.chain.state.get(self._key(b"SUPPLY"))
        if data:
            return SupplyState(data)
        return SupplyState()

    def _set_supply_state(self, supply: SupplyState):
        self.chain.state.set(self._key(b"SUPPLY"), supply.to_dict())

    @property
    def minter(self) -> bytes | None:
        return self.chain.state.get(self._key(b"MINTER"))

    def _require_minter(self, sender: bytes):
        minter = self.minter
        if minter is None or sender != minter:
            raise Unauthorized(f"{sender.hex()} is not the minter of {self.symbol}")

    @staticmethod
    def _check_amount(amount: int):
        if not isinstance(amount, int) or amount < 0:
            raise ValueOutOfRange(f"Invalid token amount: {amount!r}")

    # ==========================================================================
    # PUBLIC API
    # ==========================================================================

    def set_minter(self, sender: bytes, minter: bytes):
        if sender != self.owner:
            raise Unauthorized("Only the token owner can set the minter")
        if is_zero_address(minter):
            raise ZeroAddress("Minter cannot be the zero address")
        self.chain.state.set(self._key(b"MINTER"), minter)
        self.emit('MinterSet', minter=minter)

    def balance_of(self, holder: bytes) -> int:
        return self._get_balance(holder)

    def total_supply(self) -> int:
        return self.get_supply_state().total_supply

    def transfer(self, sender: bytes, to: bytes, amount: int) -> bool:
        self._check_amount(amount)
        if is_zero_address(to):
            raise ZeroAddress("Cannot transfer to the zero address")

        balance = self._get_balance(sender)
        if balance < amount:
            raise InsufficientBalance(f"Balance {balance} below transfer amount {amount}")

        self._set_balance(sender, balance - amount)
        self._set_balance(to, self._get_balance(to) + amount)
        self.emit('Transfer', sender=sender, to=to, amount=amount)
        return True

    def mint(self, sender: bytes, to: bytes, amount: int):
        self._require_minter(sender)
        self._check_amount(amount)
        if is_zero_address(to):
            raise ZeroAddress("Cannot mint to the zero address")

        supply = self.get_supply_state()
        supply.total_minted += amount
        self._set_supply_state(supply)
        self._set_balance(to, self._get_balance(to) + amount)
        self.emit('Transfer', sender=None, to=to, amount=amount)

        logger.debug(f"Minted {amount} {self.symbol} to {to.hex()}")

    def burn_from(self, sender: bytes, holder: bytes, amount: int):
        self._require_minter(sender)
        self._check_amount(amount)

        balance = self._get_balance(holder)
        if balance < amount:
            raise InsufficientBalance(
                f"Cannot burn {amount} {self.symbol}: {holder.hex()} holds {balance}"
            )

        supply = self.get_supply_state()
        supply.total_burned += amount
        self._set_supply_state(supply)
        self._set_balance(holder, balance - amount)
        self.emit('Transfer', sender=holder, to=None, amount=amount)

        logger.debug(f"Burned {amount} {self.symbol} from {holder.hex()}")
