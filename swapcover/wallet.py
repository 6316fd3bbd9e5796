"""
Multi-signature wallet contract.

A contract account that can authorize gasless swaps: the layer hands it the
typed-data digest and the wallet checks the signature bundle against its
Ed25519 owners and threshold.
"""
import logging
import msgpack

from swapcover.authorization import MAGIC_VALUE, INVALID_VALUE
from swapcover.chain import Contract
from swapcover.crypto import ed25519_sign, ed25519_verify

logger = logging.getLogger(__name__)


def encode_multisig_signature(signing_keys, digest: bytes) -> bytes:
    """Bundle one Ed25519 signature per signing key."""
    return msgpack.packb(
        [[bytes(key.verify_key), ed25519_sign(key, digest)] for key in signing_keys],
        use_bin_type=True,
    )


class MultiSigWallet(Contract):
    """Validates multi-signature requirements for delegated authorizations."""

    def __init__(self, chain, owners: list, required_sigs: int):
        """
        Args:
            chain: Execution environment
            owners: Ed25519 verify keys (raw 32-byte form) allowed to co-sign
            required_sigs: Number of distinct owner signatures needed
        """
        if required_sigs <= 0 or required_sigs > len(owners):
            raise ValueError(f"Threshold {required_sigs} invalid for {len(owners)} owners")
        super().__init__(chain)
        self.owners = [bytes(owner) for owner in owners]
        self.required_sigs = required_sigs

    def count_valid_signatures(self, digest: bytes, signature: bytes) -> int:
        try:
            bundle = msgpack.unpackb(signature, raw=False)
        except (ValueError, TypeError, msgpack.exceptions.UnpackException):
            return 0
        if not isinstance(bundle, list):
            return 0

        valid_sigs = 0
        used_signers = set()

        for entry in bundle:
            if not isinstance(entry, list) or len(entry) != 2:
                continue
            pubkey, sig = entry
            if not isinstance(pubkey, bytes) or not isinstance(sig, bytes):
                continue
            if pubkey not in self.owners or pubkey in used_signers:
                continue
            if ed25519_verify(pubkey, sig, digest):
                valid_sigs += 1
                used_signers.add(pubkey)

        return valid_sigs

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        valid_sigs = self.count_valid_signatures(digest, signature)
        if valid_sigs < self.required_sigs:
            logger.debug(f"Only {valid_sigs}/{self.required_sigs} valid signatures")
            return INVALID_VALUE
        return MAGIC_VALUE
