"""
Tests for the vault crypto core.

Tests cover:
- PBKDF2 key derivation determinism
- Envelope encryption/decryption and its failure modes
- Legacy (unversioned) envelopes
- Salt record encoding
"""
import os
import base64

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from stoa_vault.vault.crypto import (
    KEY_LENGTH,
    LEGACY_ITERATIONS,
    NONCE_SIZE,
    SALT_SIZE,
    TAG_SIZE,
    b64decode,
    b64encode,
    decode_salt_record,
    decrypt_envelope,
    derive_key,
    encode_salt_record,
    encrypt_envelope,
    generate_salt,
    is_legacy_envelope,
)
from stoa_vault.vault.exceptions import DecryptionError


SALT = bytes(range(16))


def legacy_envelope(key: bytes, plaintext: str) -> str:
    """Envelope as written before the version prefix existed."""
    nonce = os.urandom(NONCE_SIZE)
    ct = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(nonce + ct).decode("ascii")


@pytest.fixture(scope="module")
def key():
    return derive_key("correct-horse", SALT)


@pytest.fixture(scope="module")
def other_key():
    return derive_key("wrong-passphrase", SALT)


class TestKeyDerivation:
    """Tests for derive_key."""

    def test_key_length(self, key):
        """Derived key is 256 bits."""
        assert len(key) == KEY_LENGTH

    def test_deterministic(self, key):
        """Same passphrase and salt give the same key."""
        assert derive_key("correct-horse", SALT) == key

    def test_passphrase_changes_key(self, key, other_key):
        """A different passphrase yields a different key without error."""
        assert other_key != key

    def test_salt_changes_key(self, key):
        """A different salt yields a different key."""
        assert derive_key("correct-horse", bytes(16)) != key

    def test_iterations_change_key(self, key):
        """The iteration count is part of the derivation."""
        assert derive_key("correct-horse", SALT, 100_001) != key


class TestEnvelope:
    """Tests for encrypt_envelope / decrypt_envelope."""

    def test_round_trip(self, key):
        """Decrypting an envelope returns the original text."""
        envelope = encrypt_envelope(key, "Memento mori, memento vivere")
        assert decrypt_envelope(key, envelope) == "Memento mori, memento vivere"

    def test_round_trip_unicode_and_empty(self, key):
        """Non-ASCII and empty plaintexts survive encryption."""
        for text in ("", "Εὐδαιμονία ✍️", "line\nbreak"):
            assert decrypt_envelope(key, encrypt_envelope(key, text)) == text

    def test_envelope_layout(self, key):
        """Envelope is v1-prefixed base64 of nonce, ciphertext and tag."""
        envelope = encrypt_envelope(key, "abc")
        assert envelope.startswith("v1:")
        raw = b64decode(envelope[3:])
        assert len(raw) == NONCE_SIZE + 3 + TAG_SIZE

    def test_same_plaintext_different_envelopes(self, key):
        """Fresh nonces make every envelope unique."""
        first = encrypt_envelope(key, "same text")
        second = encrypt_envelope(key, "same text")
        assert first != second
        assert b64decode(first[3:])[:NONCE_SIZE] != b64decode(second[3:])[:NONCE_SIZE]

    def test_wrong_key_rejected(self, key, other_key):
        """Decrypting under another key raises DecryptionError."""
        envelope = encrypt_envelope(key, "secret")
        with pytest.raises(DecryptionError, match="Incorrect passphrase"):
            decrypt_envelope(other_key, envelope)

    def test_tampered_envelope_rejected(self, key):
        """Flipping one ciphertext bit fails authentication."""
        envelope = encrypt_envelope(key, "secret")
        raw = bytearray(b64decode(envelope[3:]))
        raw[NONCE_SIZE] ^= 0x01
        with pytest.raises(DecryptionError):
            decrypt_envelope(key, "v1:" + b64encode(bytes(raw)))

    def test_truncated_envelope_rejected(self, key):
        """Payload shorter than nonce + tag raises DecryptionError."""
        with pytest.raises(DecryptionError):
            decrypt_envelope(key, "v1:" + b64encode(os.urandom(NONCE_SIZE + 4)))

    def test_invalid_base64_rejected(self, key):
        """Garbage text raises DecryptionError, not a codec error."""
        with pytest.raises(DecryptionError):
            decrypt_envelope(key, "v1:not*base64!")

    def test_unknown_version_rejected(self, key):
        """An envelope from a future format is reported, not guessed at."""
        envelope = encrypt_envelope(key, "secret")
        with pytest.raises(DecryptionError, match="v9"):
            decrypt_envelope(key, "v9:" + envelope[3:])


class TestLegacyEnvelope:
    """Tests for envelopes without a version prefix."""

    def test_detected_as_legacy(self, key):
        assert is_legacy_envelope(legacy_envelope(key, "old")) is True
        assert is_legacy_envelope(encrypt_envelope(key, "new")) is False

    def test_legacy_decrypts(self, key):
        """Legacy envelopes stay readable."""
        assert decrypt_envelope(key, legacy_envelope(key, "old note")) == "old note"

    def test_legacy_wrong_key_rejected(self, key, other_key):
        with pytest.raises(DecryptionError):
            decrypt_envelope(other_key, legacy_envelope(key, "old note"))


class TestSaltRecord:
    """Tests for salt generation and the salt record format."""

    def test_generate_salt(self):
        """Salts are 128-bit and random."""
        first, second = generate_salt(), generate_salt()
        assert len(first) == SALT_SIZE
        assert first != second

    def test_record_round_trip(self):
        record = encode_salt_record(SALT, 150_000)
        assert record.startswith("pbkdf2-sha256$150000$")
        assert decode_salt_record(record) == (SALT, 150_000)

    def test_legacy_record(self):
        """A bare base64 salt implies the legacy iteration count."""
        assert decode_salt_record(b64encode(SALT)) == (SALT, LEGACY_ITERATIONS)

    @pytest.mark.parametrize("record", [
        "pbkdf2-sha256$100000",
        "scrypt$100000$" + b64encode(SALT),
        "pbkdf2-sha256$1000$" + b64encode(SALT),
        "pbkdf2-sha256$100000$" + b64encode(bytes(8)),
        "pbkdf2-sha256$many$" + b64encode(SALT),
        "%%%",
    ])
    def test_invalid_records(self, record):
        """Malformed records raise ValueError."""
        with pytest.raises(ValueError):
            decode_salt_record(record)
