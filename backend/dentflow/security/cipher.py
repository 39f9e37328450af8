"""AES-256-GCM authenticated encryption for short secrets.

Stored blob layout: IV (16 bytes) || ciphertext || tag (16 bytes).
"""

import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from dentflow.core.exceptions import DecryptionFailed, IntegrityError

KEY_SIZE = 32
IV_LENGTH = 16
TAG_LENGTH = 16


@dataclass(frozen=True)
class EncryptedPayload:
    """Result of a single encryption."""

    iv: bytes
    ciphertext: bytes
    tag: bytes

    def to_blob(self) -> bytes:
        """Concatenate into the opaque storage form."""
        return self.iv + self.ciphertext + self.tag

    @classmethod
    def from_blob(cls, blob: bytes) -> "EncryptedPayload":
        """Split a stored blob. Raises DecryptionFailed if it is too short."""
        if len(blob) < IV_LENGTH + TAG_LENGTH:
            raise DecryptionFailed()
        return cls(
            iv=blob[:IV_LENGTH],
            ciphertext=blob[IV_LENGTH:-TAG_LENGTH],
            tag=blob[-TAG_LENGTH:],
        )


def _check_key(key: bytes) -> None:
    if not isinstance(key, bytes) or len(key) != KEY_SIZE:
        raise DecryptionFailed("Ongeldige sleutel")


def encrypt(plaintext: str, key: bytes) -> EncryptedPayload:
    """
    Encrypt a UTF-8 string with AES-256-GCM.

    A fresh random 16-byte IV is drawn for every call, so the same plaintext
    never produces the same blob twice.

    Args:
        plaintext: Secret to encrypt
        key: 32-byte data key

    Returns:
        EncryptedPayload with iv, ciphertext and tag
    """
    _check_key(key)
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    # AESGCM appends the tag to the ciphertext
    return EncryptedPayload(iv=iv, ciphertext=sealed[:-TAG_LENGTH], tag=sealed[-TAG_LENGTH:])


def decrypt(blob: bytes, key: bytes) -> str:
    """
    Decrypt a blob produced by :func:`encrypt`.

    Raises:
        IntegrityError: If the tag does not verify (tampering or wrong key)
        DecryptionFailed: If the blob or key is structurally invalid
    """
    _check_key(key)
    payload = EncryptedPayload.from_blob(blob)
    try:
        plaintext = AESGCM(key).decrypt(payload.iv, payload.ciphertext + payload.tag, None)
    except InvalidTag as exc:
        raise IntegrityError() from exc
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionFailed() from exc
