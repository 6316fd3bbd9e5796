"""
Execution environment shared by the settlement layer and its collaborators.

The chain owns the journaled state, the clock, the registry of deployed
contract objects and native-asset balances. Every contract-like object is
registered here under a 20-byte address, which is how callers and callees
identify each other.
"""
import logging
import time
from typing import Optional
import msgpack

from swapcover.crypto import generate_hash, is_zero_address, ADDRESS_LENGTH
from swapcover.db import MemoryDB
from swapcover.state import StateStore, Event

logger = logging.getLogger(__name__)

NATIVE_PREFIX = b"NATIVE:"


class Chain:
    def __init__(self, db=None, chain_id: int = 1, timestamp: Optional[int] = None):
        self.db = db if db is not None else MemoryDB()
        self.state = StateStore(self.db)
        self.chain_id = chain_id
        self.timestamp = int(time.time()) if timestamp is None else timestamp
        self._contracts: dict[bytes, object] = {}
        self._deploy_nonce = 0

    # ==========================================================================
    # CONTRACTS
    # ==========================================================================

    def deploy(self, contract) -> bytes:
        """Register a contract object and return its new address."""
        seed = msgpack.packb([self.chain_id, self._deploy_nonce, type(contract).__name__])
        address = generate_hash(seed)[-ADDRESS_LENGTH:]
        self._deploy_nonce += 1
        self._contracts[address] = contract
        logger.info(f"Deployed {type(contract).__name__} at {address.hex()}")
        return address

    def code_at(self, address: bytes):
        """Return the contract deployed at address, or None for plain accounts."""
        return self._contracts.get(address)

    def is_contract(self, address: bytes) -> bool:
        return address in self._contracts

    # ==========================================================================
    # UNIT OF WORK & EVENTS
    # ==========================================================================

    def atomic(self):
        return self.state.atomic()

    def emit(self, address: bytes, name: str, **args):
        self.state.log(Event(address=address, name=name, args=args))

    def events(self, name: Optional[str] = None, address: Optional[bytes] = None) -> list[Event]:
        """Committed events, optionally filtered by name and emitter."""
        return [
            event for event in self.state.committed_logs
            if (name is None or event.name == name)
            and (address is None or event.address == address)
        ]

    # ==========================================================================
    # CLOCK
    # ==========================================================================

    def now(self) -> int:
        return self.timestamp

    def advance_time(self, seconds: int) -> int:
        self.timestamp += seconds
        return self.timestamp

    # ==========================================================================
    # NATIVE BALANCES
    # ==========================================================================

    def native_balance(self, address: bytes) -> int:
        return self.state.get(NATIVE_PREFIX + address, 0)

    def set_native_balance(self, address: bytes, amount: int):
        if amount < 0:
            raise ValueError("Native balance cannot be negative")
        self.state.set(NATIVE_PREFIX + address, amount)

    def transfer_native(self, sender: bytes, to: bytes, amount: int) -> bool:
        """
        Move native value between accounts.

        Returns False instead of raising when the transfer cannot happen:
        insufficient balance, a null recipient, or a recipient contract that
        does not accept native value.
        """
        if amount < 0 or is_zero_address(to):
            return False

        balance = self.native_balance(sender)
        if balance < amount:
            logger.warning(
                f"Native transfer of {amount} from {sender.hex()} refused: balance {balance}"
            )
            return False

        recipient = self.code_at(to)
        if recipient is not None:
            receive = getattr(recipient, 'receive_native', None)
            if receive is None or not receive(sender, amount):
                logger.warning(f"Native transfer refused by contract {to.hex()}")
                return False

        self.set_native_balance(sender, balance - amount)
        self.set_native_balance(to, self.native_balance(to) + amount)
        return True


class Contract:
    """Base class for objects that live at an address on a Chain."""

    def __init__(self, chain: Chain):
        self.chain = chain
        self.address = chain.deploy(self)

    def _key(self, *parts: bytes) -> bytes:
        """Storage key namespaced under this contract's address."""
        return b":".join((self.address,) + parts)

    def emit(self, name: str, **args):
        self.chain.emit(self.address, name, **args)
