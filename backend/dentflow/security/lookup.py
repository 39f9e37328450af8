"""Keyed hash for equality lookups over encrypted identifiers."""

import hashlib
import hmac
import re

_NON_DIGITS = re.compile(r"\D")


def normalize_identifier(value: str) -> str:
    """Strip everything but digits."""
    return _NON_DIGITS.sub("", value)


def hash_for_lookup(plaintext: str, key: bytes) -> bytes:
    """
    HMAC-SHA-256 of the normalized identifier.

    Deterministic for a given (plaintext, key), so it can back a database
    index; the stored values are never decrypted to answer a lookup.
    """
    return hmac.new(key, normalize_identifier(plaintext).encode("ascii"), hashlib.sha256).digest()
