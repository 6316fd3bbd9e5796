"""
Gasless authorization protocol.

A gasless swap is authorized by a signature over a typed, domain-separated
message:

    GaslessSwap(caller, key, params, hookDataHash, gaslessFeeDivisor, deadline)

Each struct hash is keccak-256 over the RLP encoding of its type hash followed
by its fields (signed integers as 256-bit two's complement, nested structs by
their own hash). The signed digest is

    keccak(0x19 0x01 || domainSeparator || structHash)

where the domain binds the layer name, version, chain id and the verifying
contract's address. Signatures are checked polymorphically: plain accounts
sign with an ECDSA key, contract accounts validate through their own
is_valid_signature hook.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
import msgpack
import rlp

from swapcover.core import AssetPair, SwapParams
from swapcover.crypto import (
    generate_hash,
    public_key_to_address,
    serialize_public_key,
    sign,
    verify_signature,
    ZERO_ADDRESS,
)
from swapcover.errors import SettlementError
from swapcover.numeric import check_uint256, to_twos_complement

logger = logging.getLogger(__name__)

DOMAIN_NAME = "SwapCoverLayer"
DOMAIN_VERSION = "1"

DOMAIN_TYPE = "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
POOL_KEY_TYPE = "PoolKey(address currency0,address currency1,uint24 fee,int24 tickSpacing,address hooks)"
SWAP_PARAMS_TYPE = "SwapParams(bool zeroForOne,int256 amountSpecified,uint160 sqrtPriceLimitX96)"
GASLESS_SWAP_TYPE = (
    "GaslessSwap(address caller,PoolKey key,SwapParams params,bytes32 hookDataHash,"
    "uint256 gaslessFeeDivisor,uint256 deadline)"
    + POOL_KEY_TYPE
    + SWAP_PARAMS_TYPE
)

DOMAIN_TYPEHASH = generate_hash(DOMAIN_TYPE.encode())
POOL_KEY_TYPEHASH = generate_hash(POOL_KEY_TYPE.encode())
SWAP_PARAMS_TYPEHASH = generate_hash(SWAP_PARAMS_TYPE.encode())
GASLESS_SWAP_TYPEHASH = generate_hash(GASLESS_SWAP_TYPE.encode())

# Returned by a contract signer that accepts a signature
MAGIC_VALUE = generate_hash(b"isValidSignature(bytes32,bytes)")[:4]
INVALID_VALUE = b'\xff\xff\xff\xff'


# ==============================================================================
# HASHING
# ==============================================================================

def _hash_struct(typehash: bytes, fields: list) -> bytes:
    return generate_hash(rlp.encode([typehash] + fields))


def hash_pool_key(pair: AssetPair) -> bytes:
    return _hash_struct(POOL_KEY_TYPEHASH, [
        pair.currency0,
        pair.currency1,
        check_uint256(pair.fee),
        to_twos_complement(pair.tick_spacing),
        pair.hooks if pair.hooks is not None else ZERO_ADDRESS,
    ])


def hash_swap_params(params: SwapParams) -> bytes:
    return _hash_struct(SWAP_PARAMS_TYPEHASH, [
        int(params.zero_for_one),
        to_twos_complement(params.amount_specified),
        check_uint256(params.sqrt_price_limit_x96),
    ])


def build_domain_separator(chain_id: int, verifying_contract: bytes) -> bytes:
    return _hash_struct(DOMAIN_TYPEHASH, [
        generate_hash(DOMAIN_NAME.encode()),
        generate_hash(DOMAIN_VERSION.encode()),
        check_uint256(chain_id),
        verifying_contract,
    ])


def hash_gasless_swap(caller: bytes, pair: AssetPair, params: SwapParams, hook_data: bytes,
                      gasless_fee_divisor: int, deadline: int) -> bytes:
    return _hash_struct(GASLESS_SWAP_TYPEHASH, [
        caller,
        hash_pool_key(pair),
        hash_swap_params(params),
        generate_hash(hook_data),
        check_uint256(gasless_fee_divisor),
        check_uint256(deadline),
    ])


def typed_data_digest(domain_separator: bytes, struct_hash: bytes) -> bytes:
    return generate_hash(b"\x19\x01" + domain_separator + struct_hash)


@dataclass(frozen=True)
class AuthorizationRequest:
    """
    An off-chain request permitting delegated execution of one swap.

    gasless_fee_divisor is the layer's divisor at signing time; the layer
    recomputes the digest with its current divisor, so any change to it
    invalidates outstanding signatures.
    """
    caller: bytes
    pair: AssetPair
    params: SwapParams
    hook_data: bytes
    gasless_fee_divisor: int
    deadline: int

    def struct_hash(self) -> bytes:
        return hash_gasless_swap(
            self.caller, self.pair, self.params, self.hook_data,
            self.gasless_fee_divisor, self.deadline,
        )

    def digest(self, domain_separator: bytes) -> bytes:
        return typed_data_digest(domain_separator, self.struct_hash())


# ==============================================================================
# SIGNING (off-chain side)
# ==============================================================================

def encode_key_signature(public_key_pem: str, signature: bytes) -> bytes:
    """Envelope for an ECDSA signature: the signer's public key travels with it."""
    return msgpack.packb({'public_key': public_key_pem, 'signature': signature}, use_bin_type=True)


def sign_authorization(private_key, request: AuthorizationRequest, domain_separator: bytes) -> bytes:
    """Sign a request with an ECDSA key; returns the signature envelope."""
    digest = request.digest(domain_separator)
    public_key_pem = serialize_public_key(private_key.public_key())
    return encode_key_signature(public_key_pem, sign(private_key, digest))


# ==============================================================================
# VALIDATION (on-chain side)
# ==============================================================================

class SignatureValidator(ABC):
    @abstractmethod
    def is_valid(self, signer: bytes, digest: bytes, signature: bytes) -> bool:
        ...


class KeySignatureValidator(SignatureValidator):
    """Validates ECDSA envelopes whose public key hashes to the signer."""

    def is_valid(self, signer: bytes, digest: bytes, signature: bytes) -> bool:
        try:
            envelope = msgpack.unpackb(signature, raw=False)
        except (ValueError, TypeError, msgpack.exceptions.UnpackException):
            return False

        if not isinstance(envelope, dict):
            return False
        public_key_pem = envelope.get('public_key')
        raw_signature = envelope.get('signature')
        if not isinstance(public_key_pem, str) or not isinstance(raw_signature, bytes):
            return False

        try:
            if public_key_to_address(public_key_pem) != signer:
                return False
        except ValueError:
            return False

        return verify_signature(public_key_pem, raw_signature, digest)


class DelegateSignatureValidator(SignatureValidator):
    """Delegates validation to the signer contract's is_valid_signature."""

    def __init__(self, contract):
        self.contract = contract

    def is_valid(self, signer: bytes, digest: bytes, signature: bytes) -> bool:
        check = getattr(self.contract, 'is_valid_signature', None)
        if check is None:
            return False
        try:
            result = check(digest, signature)
        except (SettlementError, ValueError) as e:
            logger.warning(f"Contract signer {signer.hex()} rejected signature: {e}")
            return False
        return result == MAGIC_VALUE


def validator_for(chain, signer: bytes) -> SignatureValidator:
    """Select the validator variant by signer kind."""
    contract = chain.code_at(signer)
    if contract is not None:
        return DelegateSignatureValidator(contract)
    return KeySignatureValidator()


def is_valid_signature_now(chain, signer: bytes, digest: bytes, signature: bytes) -> bool:
    if not isinstance(signature, bytes) or not signature:
        return False
    return validator_for(chain, signer).is_valid(signer, digest, signature)
