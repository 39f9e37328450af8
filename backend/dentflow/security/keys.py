"""Versioned BSN data keys (envelope encryption).

Data keys are provisioned wrapped (AES key wrap, RFC 3394) under a master
key-encryption key and unwrapped once at startup. The resulting key ring is
read-only for the lifetime of the process. Rotation adds a new version and
bumps the current version; old versions stay available for decryption.
"""

import base64
import binascii
import logging
from functools import lru_cache
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

from cryptography.hazmat.primitives.keywrap import (
    InvalidUnwrap,
    aes_key_unwrap,
    aes_key_wrap,
)

from dentflow.core.exceptions import DecryptionFailed

if TYPE_CHECKING:
    from dentflow.core.config import Settings

logger = logging.getLogger(__name__)

DATA_KEY_SIZE = 32


def wrap_data_key(kek: bytes, data_key: bytes) -> bytes:
    """Wrap a 32-byte data key under the key-encryption key."""
    if len(data_key) != DATA_KEY_SIZE:
        raise ValueError(f"Data key must be {DATA_KEY_SIZE} bytes")
    return aes_key_wrap(kek, data_key)


def unwrap_data_key(kek: bytes, wrapped: bytes) -> bytes:
    """Unwrap a data key. Raises ValueError if the KEK does not match."""
    try:
        data_key = aes_key_unwrap(kek, wrapped)
    except InvalidUnwrap as exc:
        raise ValueError("Data key could not be unwrapped with the configured master key") from exc
    if len(data_key) != DATA_KEY_SIZE:
        raise ValueError(f"Unwrapped data key must be {DATA_KEY_SIZE} bytes")
    return data_key


def _b64decode(value: str, name: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"{name} is not valid base64") from exc


class KeyRing:
    """Immutable mapping of key version to data key, plus the lookup key."""

    def __init__(self, keys: Mapping[int, bytes], current_version: int, lookup_key: bytes) -> None:
        if current_version not in keys:
            raise ValueError(f"No data key for current version {current_version}")
        if any(len(key) != DATA_KEY_SIZE for key in keys.values()):
            raise ValueError(f"All data keys must be {DATA_KEY_SIZE} bytes")
        if not lookup_key:
            raise ValueError("Lookup key must not be empty")
        self._keys = MappingProxyType(dict(keys))
        self._current_version = current_version
        self._lookup_key = lookup_key

    @classmethod
    def from_settings(cls, settings: "Settings") -> "KeyRing":
        """Unwrap configured data keys with the master key."""
        kek = _b64decode(settings.BSN_MASTER_KEY, "BSN_MASTER_KEY")
        keys = {
            version: unwrap_data_key(kek, _b64decode(wrapped, f"BSN_WRAPPED_DATA_KEYS[{version}]"))
            for version, wrapped in settings.BSN_WRAPPED_DATA_KEYS.items()
        }
        logger.info(
            "BSN key ring loaded",
            extra={"key_versions": sorted(keys), "current_key_version": settings.BSN_CURRENT_KEY_VERSION},
        )
        return cls(
            keys=keys,
            current_version=settings.BSN_CURRENT_KEY_VERSION,
            lookup_key=_b64decode(settings.BSN_LOOKUP_KEY, "BSN_LOOKUP_KEY"),
        )

    @property
    def current_version(self) -> int:
        return self._current_version

    @property
    def current_key(self) -> bytes:
        return self._keys[self._current_version]

    @property
    def lookup_key(self) -> bytes:
        return self._lookup_key

    @property
    def versions(self) -> tuple[int, ...]:
        return tuple(sorted(self._keys))

    def key_for(self, version: int) -> bytes:
        """Data key for a stored key version."""
        try:
            return self._keys[version]
        except KeyError:
            raise DecryptionFailed() from None

    def __repr__(self) -> str:
        return f"<KeyRing versions={self.versions} current={self._current_version}>"


@lru_cache(maxsize=1)
def get_key_ring() -> KeyRing:
    """Process-wide key ring, built once from settings."""
    from dentflow.core.config import get_settings

    return KeyRing.from_settings(get_settings())
