"""Tests for the AES-256-GCM cipher primitive."""

import pytest

from dentflow.core.exceptions import DecryptionFailed, IntegrityError
from dentflow.security.cipher import IV_LENGTH, TAG_LENGTH, EncryptedPayload, decrypt, encrypt

KEY = bytes(range(32))
OTHER_KEY = bytes(range(1, 33))


@pytest.mark.security
@pytest.mark.parametrize("plaintext", ["111222333", "123456782", "", "ünïcode-värde"])
def test_encrypt_decrypt_round_trip(plaintext):
    blob = encrypt(plaintext, KEY).to_blob()
    assert decrypt(blob, KEY) == plaintext


@pytest.mark.security
def test_blob_layout():
    payload = encrypt("111222333", KEY)
    blob = payload.to_blob()

    assert len(payload.iv) == IV_LENGTH
    assert len(payload.tag) == TAG_LENGTH
    assert blob[:IV_LENGTH] == payload.iv
    assert blob[-TAG_LENGTH:] == payload.tag
    assert EncryptedPayload.from_blob(blob) == payload


@pytest.mark.security
def test_fresh_iv_per_call():
    first = encrypt("111222333", KEY)
    second = encrypt("111222333", KEY)

    assert first.iv != second.iv, "IV reused for the same key"
    assert first.to_blob() != second.to_blob()


@pytest.mark.security
def test_every_single_byte_flip_is_detected():
    blob = encrypt("111222333", KEY).to_blob()

    for index in range(len(blob)):
        tampered = bytearray(blob)
        tampered[index] ^= 0x01
        with pytest.raises(IntegrityError):
            decrypt(bytes(tampered), KEY)


@pytest.mark.security
def test_wrong_key_raises_integrity_error():
    blob = encrypt("111222333", KEY).to_blob()
    with pytest.raises(IntegrityError):
        decrypt(blob, OTHER_KEY)


def test_integrity_error_is_decryption_failed():
    assert issubclass(IntegrityError, DecryptionFailed)


@pytest.mark.parametrize("blob", [b"", b"\x00" * (IV_LENGTH + TAG_LENGTH - 1)])
def test_truncated_blob_raises_decryption_failed(blob):
    with pytest.raises(DecryptionFailed):
        decrypt(blob, KEY)


@pytest.mark.parametrize("key", [b"", b"short", bytes(31), bytes(33)])
def test_invalid_key_size_rejected(key):
    with pytest.raises(DecryptionFailed):
        encrypt("111222333", key)
    with pytest.raises(DecryptionFailed):
        decrypt(encrypt("111222333", KEY).to_blob(), key)
