"""
Core cryptographic functions for the settlement layer.
"""
import hashlib
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives import serialization
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from Crypto.Hash import keccak
import nacl.signing
import nacl.exceptions

ADDRESS_LENGTH = 20
ZERO_ADDRESS = b'\x00' * ADDRESS_LENGTH


def generate_hash(data: bytes) -> bytes:
    """Generates a Keccak-256 hash."""
    return keccak.new(digest_bits=256, data=data).digest()


def is_zero_address(address) -> bool:
    return address is None or address == ZERO_ADDRESS


# --- ECDSA keys (externally owned signers) ---

def generate_key_pair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """Generates an ECDSA private/public key pair (SECP256R1)."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_key = private_key.public_key()
    return private_key, public_key


def serialize_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Serializes a public key object into PEM format (string)."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')


def deserialize_public_key(pem_data: str) -> ec.EllipticCurvePublicKey:
    """
    Deserializes an EC public key from a PEM formatted string.

    Raises:
        ValueError: if the PEM is malformed or holds a non-EC key
    """
    try:
        public_key = serialization.load_pem_public_key(pem_data.encode('utf-8'))
    except UnsupportedAlgorithm as e:
        raise ValueError(f"Unsupported public key algorithm: {e}") from e
    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise ValueError(f"Expected an EC public key, got {type(public_key).__name__}")
    return public_key


def public_key_to_address(public_key_pem: str) -> bytes:
    """Derives an account address from a public key PEM string."""
    public_key = deserialize_public_key(public_key_pem)
    der_bytes = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )
    address_hash = hashlib.sha256(der_bytes).digest()
    return address_hash[:ADDRESS_LENGTH]


def sign(private_key: ec.EllipticCurvePrivateKey, data: bytes) -> bytes:
    """Signs byte data using ECDSA with SHA256."""
    return private_key.sign(data, ec.ECDSA(hashes.SHA256()))


def verify_signature(public_key_pem: str, signature: bytes, data: bytes) -> bool:
    """Verifies an ECDSA/SHA256 signature."""
    try:
        public_key = deserialize_public_key(public_key_pem)
        public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
        return True
    except (InvalidSignature, ValueError):
        # ValueError covers malformed PEM and non-EC key material
        return False


# --- Ed25519 keys (multi-signature wallet owners) ---

def generate_ed25519_keypair() -> tuple[nacl.signing.SigningKey, nacl.signing.VerifyKey]:
    signing_key = nacl.signing.SigningKey.generate()
    return signing_key, signing_key.verify_key


def ed25519_sign(signing_key: nacl.signing.SigningKey, data: bytes) -> bytes:
    """Returns the detached 64-byte signature."""
    return signing_key.sign(data).signature


def ed25519_verify(verify_key_bytes: bytes, signature: bytes, data: bytes) -> bool:
    try:
        nacl.signing.VerifyKey(verify_key_bytes).verify(data, signature)
        return True
    except (nacl.exceptions.BadSignatureError, ValueError, TypeError):
        # Catch both cryptographic failures and format/length errors
        return False
