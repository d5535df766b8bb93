"""
Vault Crypto Core — Key derivation, envelope encryption and the text codec.

Implements the security layer of the note vault:
- Key derivation: PBKDF2-HMAC-SHA256(passphrase, salt, iterations) → 32-byte key
- Envelopes: AES-256-GCM → "v1:" + base64([nonce 12B][ciphertext + tag 16B])
- Salt record: "pbkdf2-sha256$<iterations>$<base64 salt>"

Security Note:
    Never log passphrases, key material, plaintext or ciphertext values.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import base64
import binascii
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import DecryptionError

logger = logging.getLogger("stoa.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # GCM tag
KEY_LENGTH = 32  # AES-256
SALT_SIZE = 16  # 128-bit salt

MIN_ITERATIONS = 100_000
# Iteration count implied by salt records written before the record carried it.
LEGACY_ITERATIONS = 100_000

ENVELOPE_VERSION = "v1"
_ENVELOPE_PREFIX = f"{ENVELOPE_VERSION}:"
_SALT_SCHEME = "pbkdf2-sha256"


# ---------------------------------------------------------------------------
# Text codec
# ---------------------------------------------------------------------------

def b64encode(data: bytes) -> str:
    """Encode bytes as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    """Decode standard base64 text, rejecting characters outside the alphabet.

    Raises:
        ValueError: If the text is not valid base64.
    """
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as err:
        raise ValueError(f"Invalid base64 text: {err}") from err


# ---------------------------------------------------------------------------
# Salt
# ---------------------------------------------------------------------------

def generate_salt() -> bytes:
    """Return a fresh 128-bit salt from the OS CSPRNG."""
    return os.urandom(SALT_SIZE)


def encode_salt_record(salt: bytes, iterations: int) -> str:
    """Serialize a salt together with the KDF parameters that go with it.

    Args:
        salt: Raw 16-byte salt.
        iterations: PBKDF2 iteration count used with this salt.

    Returns:
        Salt record text, e.g. ``pbkdf2-sha256$100000$<base64>``.
    """
    return f"{_SALT_SCHEME}${iterations}${b64encode(salt)}"


def decode_salt_record(record: str) -> tuple[bytes, int]:
    """Parse a persisted salt record.

    A bare base64 value is a legacy record and implies
    ``LEGACY_ITERATIONS`` iterations.

    Returns:
        Tuple of (salt bytes, iterations).

    Raises:
        ValueError: If the record is malformed or names an unknown scheme.
    """
    if "$" not in record:
        salt = b64decode(record.strip())
        iterations = LEGACY_ITERATIONS
    else:
        parts = record.split("$")
        if len(parts) != 3:
            raise ValueError("Malformed salt record")
        scheme, raw_iterations, encoded = parts
        if scheme != _SALT_SCHEME:
            raise ValueError(f"Unsupported key derivation scheme: {scheme}")
        iterations = int(raw_iterations)
        salt = b64decode(encoded)
    if len(salt) != SALT_SIZE:
        raise ValueError(
            f"Salt must be exactly {SALT_SIZE} bytes, got {len(salt)}"
        )
    if iterations < MIN_ITERATIONS:
        raise ValueError(
            f"Iteration count {iterations} is below the minimum {MIN_ITERATIONS}"
        )
    return salt, iterations


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(passphrase: str, salt: bytes, iterations: int = MIN_ITERATIONS) -> bytes:
    """Derive a 32-byte encryption key using PBKDF2-HMAC-SHA256.

    Deterministic: the same passphrase and salt always produce the same key.
    A wrong passphrase is not detected here, it simply yields another key.

    Args:
        passphrase: User passphrase.
        salt: The vault salt.
        iterations: PBKDF2 iteration count.

    Returns:
        32-byte derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------

def is_legacy_envelope(envelope: str) -> bool:
    """True when the envelope carries no format version prefix."""
    return ":" not in envelope


def encrypt_envelope(key: bytes | bytearray, plaintext: str) -> str:
    """Encrypt text into a self-contained, versioned envelope.

    Format: ``v1:`` + base64([nonce 12B][encrypted_payload + GCM_tag 16B])

    Args:
        key: 32-byte AES-256 key.
        plaintext: Text to encrypt.

    Returns:
        Envelope text.
    """
    cipher = AESGCM(key)
    nonce = os.urandom(NONCE_SIZE)
    ct = cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
    return _ENVELOPE_PREFIX + b64encode(nonce + ct)


def decrypt_envelope(key: bytes | bytearray, envelope: str) -> str:
    """Decrypt an envelope produced by ``encrypt_envelope``.

    Legacy envelopes (bare base64 of nonce + ciphertext + tag) are accepted.

    Args:
        key: 32-byte AES-256 key.
        envelope: Envelope text.

    Returns:
        Decrypted plaintext.

    Raises:
        DecryptionError: On authentication failure or a malformed envelope.
    """
    if is_legacy_envelope(envelope):
        payload_text = envelope
    else:
        version, _, payload_text = envelope.partition(":")
        if version != ENVELOPE_VERSION:
            raise DecryptionError(f"Unsupported envelope version: {version}")
    try:
        combined = b64decode(payload_text)
    except ValueError as err:
        raise DecryptionError() from err
    if len(combined) < NONCE_SIZE + TAG_SIZE:
        raise DecryptionError()
    cipher = AESGCM(key)
    nonce = combined[:NONCE_SIZE]
    ct = combined[NONCE_SIZE:]
    try:
        return cipher.decrypt(nonce, ct, None).decode("utf-8")
    except (InvalidTag, UnicodeDecodeError) as err:
        raise DecryptionError() from err
