"""Stoa Vault.

Local, single-user note vault. Note content is encrypted with a key
derived from a passphrase; titles, tags and settings are stored in the clear.
"""
from .version import __version__
from .models import Note, NoteType, UserSettings
from .storage import AbstractStore, MemoryStore, FileStore, export_snapshot
from .notes import NoteVault
from .vault import (
    VaultError,
    InitializationError,
    DecryptionError,
    NotInitializedError,
    StorageError,
    VaultConfig,
    VaultSession,
    DecryptedCache,
)

__all__ = [
    "__version__",
    "Note",
    "NoteType",
    "UserSettings",
    "AbstractStore",
    "MemoryStore",
    "FileStore",
    "export_snapshot",
    "NoteVault",
    "VaultError",
    "InitializationError",
    "DecryptionError",
    "NotInitializedError",
    "StorageError",
    "VaultConfig",
    "VaultSession",
    "DecryptedCache",
]
