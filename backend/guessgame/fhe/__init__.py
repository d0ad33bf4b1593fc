"""Confidential-value primitives consumed by the game services.

The coprocessor owns ciphertext storage, input proofs and confidential
randomness; the KMS answers public decryption requests with signed
cleartexts. Neither exposes plaintext outside of those two contracts.
"""

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF


def derive_key(seed: str, purpose: bytes) -> bytes:
    """Derive 32 bytes of key material for ``purpose`` from the configured seed."""
    return HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=purpose).derive(seed.encode())


def parse_hex(value) -> bytes:
    """Decode an optionally ``0x``-prefixed hex string. Raises ValueError."""
    if not isinstance(value, str):
        raise ValueError('expected a hex string')
    if value[:2] in ('0x', '0X'):
        value = value[2:]
    return bytes.fromhex(value)
