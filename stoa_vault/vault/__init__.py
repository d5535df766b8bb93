"""Vault — Passphrase-derived encryption of note content at rest.

Security Note (Threat Model):
    The derived key and decrypted note content live in process memory
    while the vault is unlocked. A memory dump of the application process
    taken during that time could expose them. This is an accepted
    limitation; the key is zeroed and the plaintext cache cleared on lock.
    The salt is stored in the clear, so vault strength rests entirely on
    the passphrase.
"""

from .exceptions import (
    VaultError,
    InitializationError,
    DecryptionError,
    NotInitializedError,
    StorageError,
)
from .config import VaultConfig
from .session_vault import VaultSession, SessionKey
from .cache import DecryptedCache
from .migration import upgrade_envelopes

__all__ = [
    "VaultError",
    "InitializationError",
    "DecryptionError",
    "NotInitializedError",
    "StorageError",
    "VaultConfig",
    "VaultSession",
    "SessionKey",
    "DecryptedCache",
    "upgrade_envelopes",
]
