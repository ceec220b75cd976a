"""
Hashing helpers for transaction identifiers.
"""
import nacl.utils
from Crypto.Hash import keccak

TX_HASH_SALT_BYTES = 32


def generate_hash(data: bytes) -> bytes:
    """Generates a Keccak-256 hash."""
    return keccak.new(digest_bits=256, data=data).digest()


def random_salt(size: int = TX_HASH_SALT_BYTES) -> bytes:
    return nacl.utils.random(size)


def transaction_hash(signing_data: bytes, salt: bytes = None) -> str:
    """
    Opaque 64-character transaction hash.

    Without an explicit salt the result is random for every call, so two
    submissions of the same template never share an identifier.
    """
    if salt is None:
        salt = random_salt()
    return generate_hash(signing_data + salt).hex().upper()
