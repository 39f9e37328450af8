"""Dutch BSN (burgerservicenummer) validation and masking."""

import re
from typing import Protocol, Union

from dentflow.core.exceptions import InvalidFormat

BSN_WEIGHTS = (9, 8, 7, 6, 5, 4, 3, 2, -1)
MASK_PREFIX = "***.***.**"

_SEPARATORS = re.compile(r"[.\s-]")
_DIGITS_8_9 = re.compile(r"\d{8,9}")


class HasBsnSuffix(Protocol):
    """Anything carrying the stored two-digit BSN suffix."""

    bsn_suffix: str | None


def _clean(value: str) -> str:
    return _SEPARATORS.sub("", value)


def validate_bsn(value: str) -> bool:
    """
    Validate a BSN with the 11-proof.

    Separators are stripped, 8 or 9 digits are required, 8-digit numbers are
    left-padded with a zero. The weighted sum with weights 9..2 and -1 for the
    last digit must be divisible by 11.
    """
    if not isinstance(value, str):
        return False
    cleaned = _clean(value)
    if not _DIGITS_8_9.fullmatch(cleaned):
        return False
    padded = cleaned.zfill(9)
    total = sum(int(digit) * weight for digit, weight in zip(padded, BSN_WEIGHTS))
    return total % 11 == 0


def normalize_bsn(value: str) -> str:
    """Return the canonical 9-digit form, or raise InvalidFormat."""
    if not validate_bsn(value):
        raise InvalidFormat()
    return _clean(value).zfill(9)


def mask_bsn(value: Union[str, HasBsnSuffix, None]) -> str:
    """
    Mask a BSN for display: ``***.***.**NN``.

    Accepts a plaintext string or a stored identifier carrying ``bsn_suffix``.
    """
    if value is None:
        return "***"
    suffix = value if isinstance(value, str) else (value.bsn_suffix or "")
    suffix = _clean(suffix)
    if isinstance(value, str) and len(suffix) < 4:
        return "***"
    if len(suffix) < 2:
        return "***"
    return f"{MASK_PREFIX}{suffix[-2:]}"
