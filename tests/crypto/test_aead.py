"""Tests for e2ee_dm.crypto.aead - AES-256-GCM seal/open."""

from __future__ import annotations

import pytest

from e2ee_dm.core.exceptions import DecryptionFailed
from e2ee_dm.crypto.aead import KEY_SIZE, NONCE_SIZE, TAG_SIZE, open_sealed, random_bytes, seal


@pytest.fixture
def key() -> bytes:
    return random_bytes(KEY_SIZE)


@pytest.fixture
def nonce() -> bytes:
    return random_bytes(NONCE_SIZE)


class TestSealOpen:
    """Seal/open behaviour and tamper detection."""

    def test_round_trip(self, key, nonce):
        ct = seal(key, nonce, b"aad", b"hello")
        assert len(ct) == len(b"hello") + TAG_SIZE
        assert open_sealed(key, nonce, b"aad", ct) == b"hello"

    def test_empty_plaintext(self, key, nonce):
        ct = seal(key, nonce, None, b"")
        assert len(ct) == TAG_SIZE
        assert open_sealed(key, nonce, None, ct) == b""

    def test_wrong_key_fails(self, key, nonce):
        ct = seal(key, nonce, b"aad", b"secret")
        with pytest.raises(DecryptionFailed):
            open_sealed(random_bytes(KEY_SIZE), nonce, b"aad", ct)

    def test_wrong_nonce_fails(self, key, nonce):
        ct = seal(key, nonce, b"aad", b"secret")
        with pytest.raises(DecryptionFailed):
            open_sealed(key, random_bytes(NONCE_SIZE), b"aad", ct)

    def test_wrong_aad_fails(self, key, nonce):
        ct = seal(key, nonce, b"aad", b"secret")
        with pytest.raises(DecryptionFailed):
            open_sealed(key, nonce, b"aae", ct)
        with pytest.raises(DecryptionFailed):
            open_sealed(key, nonce, None, ct)

    @pytest.mark.parametrize("index", [0, 5, -1])
    def test_flipped_bit_fails(self, key, nonce, index):
        ct = bytearray(seal(key, nonce, b"", b"secret"))
        ct[index] ^= 0x01
        with pytest.raises(DecryptionFailed):
            open_sealed(key, nonce, b"", bytes(ct))

    def test_truncated_ciphertext_fails(self, key, nonce):
        with pytest.raises(DecryptionFailed):
            open_sealed(key, nonce, b"", b"short")

    def test_bad_key_length(self, nonce):
        with pytest.raises(ValueError):
            seal(b"\x00" * 16, nonce, None, b"x")

    def test_bad_nonce_length(self, key):
        with pytest.raises(ValueError):
            seal(key, b"\x00" * 8, None, b"x")

    def test_random_bytes_length_and_freshness(self):
        assert len(random_bytes(12)) == 12
        assert random_bytes(32) != random_bytes(32)
