"""Vault error taxonomy.

All errors are recoverable at the session level: the caller re-enters the
passphrase or re-attempts the unlock. None of them require a restart.
"""


class VaultError(Exception):
    """Base class for every vault failure."""


class InitializationError(VaultError):
    """Unlock failed: the salt could not be read, generated or persisted,
    or key derivation raised. The session stays Locked."""


class DecryptionError(VaultError):
    """Envelope failed authentication (wrong key, corruption or tampering)."""

    def __init__(self, message: str = "Incorrect passphrase or corrupted data"):
        super().__init__(message)


class NotInitializedError(VaultError):
    """A cipher operation was requested while the session is Locked."""

    def __init__(self, message: str = "Vault is locked"):
        super().__init__(message)


class StorageError(VaultError):
    """The persistence store could not read or write a record."""
