"""Cryptographic helpers: randomness, hashing, encoding, key derivation and checksums."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
import string
import zlib
from typing import Union

_RANDOM_ALPHABET = string.ascii_letters + string.digits

BytesLike = Union[bytes, bytearray, memoryview]


def _as_bytes(data: Union[str, BytesLike]) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def generate_random_bytes(count: int) -> bytes:
    """Return ``count`` cryptographically secure random bytes."""
    if count < 0:
        raise ValueError("count must not be negative")
    return secrets.token_bytes(count)


def generate_random_string(length: int) -> str:
    """Return a random alphanumeric string of ``length`` characters."""
    if length < 0:
        raise ValueError("length must not be negative")
    return "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(length))


def sha256_hash(data: Union[str, BytesLike]) -> str:
    """Return the lower-case hexadecimal SHA-256 digest of ``data``."""
    return hashlib.sha256(_as_bytes(data)).hexdigest()


def base64_encode(data: BytesLike) -> str:
    """Encode ``data`` as standard padded Base64 text."""
    return base64.b64encode(bytes(data)).decode("ascii")


def base64_decode(encoded: str) -> bytes:
    """Decode standard Base64 text; raise ValueError when it is malformed."""
    try:
        return base64.b64decode(encoded.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError(f"invalid base64 input: {exc}") from exc


def pbkdf2(
    password: Union[str, BytesLike],
    salt: Union[str, BytesLike],
    iterations: int,
    key_length: int,
) -> bytes:
    """Derive ``key_length`` bytes from a password with PBKDF2-HMAC-SHA256."""
    if iterations < 1:
        raise ValueError("iterations must be at least 1")
    if key_length < 1:
        raise ValueError("key_length must be at least 1")
    return hashlib.pbkdf2_hmac(
        "sha256", _as_bytes(password), _as_bytes(salt), iterations, dklen=key_length
    )


def secure_memory_compare(a: BytesLike, b: BytesLike) -> bool:
    """Compare two byte strings in constant time."""
    return hmac.compare_digest(bytes(a), bytes(b))


def calculate_crc32(data: Union[str, BytesLike]) -> int:
    """Return the CRC-32 checksum of ``data`` as an unsigned 32-bit integer."""
    return zlib.crc32(_as_bytes(data)) & 0xFFFFFFFF


def verify_integrity(data: Union[str, BytesLike], expected_crc: int) -> bool:
    """True when the CRC-32 of ``data`` equals ``expected_crc``."""
    return calculate_crc32(data) == (expected_crc & 0xFFFFFFFF)