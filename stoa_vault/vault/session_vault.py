"""
VaultSession — Lock/unlock state machine guarding the derived vault key.

Provides the public API of the vault security layer:
- ``initialize(passphrase)`` — acquire the salt, derive the key, unlock
- ``logout()`` — wipe the key, lock, notify lock listeners
- ``encrypt(plaintext)`` / ``decrypt(envelope)`` — envelope operations,
  only reachable while Unlocked
- ``key`` — the ``SessionKey`` capability of the current unlocked session

Security Note:
    Never log passphrases, key material, plaintext or ciphertext values.
    The key lives only in process memory and is zeroed on logout.
"""
import asyncio
import logging
import threading
from typing import Any, Callable, Optional

from .crypto import (
    MIN_ITERATIONS,
    decode_salt_record,
    decrypt_envelope,
    derive_key,
    encode_salt_record,
    encrypt_envelope,
    generate_salt,
)
from .config import SALT_KEY
from .exceptions import InitializationError, NotInitializedError

logger = logging.getLogger("stoa.vault")


class SessionKey:
    """Key material of one unlocked session.

    Only ``VaultSession`` creates instances, and only on a successful unlock.
    After ``wipe()`` every operation raises ``NotInitializedError``.
    """

    __slots__ = ("_key", "_epoch", "_lock")

    def __init__(self, key: bytes, epoch: int):
        self._key = bytearray(key)
        self._epoch = epoch
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        state = "active" if self.active else "wiped"
        return f"<SessionKey epoch={self._epoch} {state}>"

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def active(self) -> bool:
        return bool(self._key)

    def _material(self) -> bytes:
        """Snapshot the key for a single cipher call."""
        with self._lock:
            if not self._key:
                raise NotInitializedError()
            return bytes(self._key)

    def encrypt(self, plaintext: str) -> str:
        return encrypt_envelope(self._material(), plaintext)

    def decrypt(self, envelope: str) -> str:
        return decrypt_envelope(self._material(), envelope)

    def wipe(self) -> None:
        """Zero the key bytes and drop them."""
        with self._lock:
            for i in range(len(self._key)):
                self._key[i] = 0
            self._key = bytearray()


class VaultSession:
    """Holds (or does not hold) the key derived from the vault passphrase.

    States are **Locked** (initial) and **Unlocked**. The epoch counter
    advances on every transition so work started in one session can tell
    that the session it belonged to has ended.

    Args:
        store: Persistence store exposing ``get(key)`` and ``set(key, value)``.
        kdf_iterations: PBKDF2 iterations used when a new salt is created.
            An existing salt record carries its own count.
    """

    def __init__(self, store: Any, kdf_iterations: int = MIN_ITERATIONS):
        self._store = store
        self._iterations = kdf_iterations
        self._key: Optional[SessionKey] = None
        self._epoch = 0
        self._listeners: list[Callable[[], None]] = []

    def __repr__(self) -> str:
        state = "locked" if self.is_locked else "unlocked"
        return f"<VaultSession {state} epoch={self._epoch}>"

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_locked(self) -> bool:
        return self._key is None

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def key(self) -> SessionKey:
        """Capability for the current session.

        Raises:
            NotInitializedError: If the session is Locked.
        """
        if self._key is None:
            raise NotInitializedError()
        return self._key

    def add_lock_listener(self, callback: Callable[[], None]) -> None:
        """Register a callable run synchronously on every lock."""
        self._listeners.append(callback)

    # ------------------------------------------------------------------
    # Salt and derivation (worker thread)
    # ------------------------------------------------------------------

    def _load_or_create_salt(self) -> tuple[bytes, int]:
        """Return (salt, iterations), creating and persisting a salt if needed.

        Raises:
            InitializationError: If the salt cannot be read, parsed or persisted.
        """
        try:
            record = self._store.get(SALT_KEY)
        except Exception as err:
            raise InitializationError(f"Unable to read vault salt: {err}") from err
        if record:
            try:
                return decode_salt_record(record)
            except ValueError as err:
                raise InitializationError(f"Invalid vault salt: {err}") from err
        salt = generate_salt()
        try:
            self._store.set(SALT_KEY, encode_salt_record(salt, self._iterations))
        except Exception as err:
            raise InitializationError(
                f"Unable to persist new vault salt: {err}"
            ) from err
        logger.info("Created new vault salt (iterations=%d)", self._iterations)
        return salt, self._iterations

    def _derive(self, passphrase: str) -> bytes:
        salt, iterations = self._load_or_create_salt()
        try:
            return derive_key(passphrase, salt, iterations)
        except Exception as err:
            raise InitializationError(f"Key derivation failed: {err}") from err

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def initialize(self, passphrase: str) -> None:
        """Unlock the vault with a passphrase.

        Derivation runs in a worker thread; cancelling the awaiting task
        leaves the session Locked. A wrong passphrase is not detected here,
        it surfaces as ``DecryptionError`` on the first decrypt.

        Args:
            passphrase: Vault passphrase.

        Raises:
            InitializationError: If the salt or the key could not be obtained.
        """
        if not passphrase:
            raise InitializationError("Passphrase cannot be empty")
        if not self.is_locked:
            self.logout()
        started = self._epoch
        try:
            key = await asyncio.to_thread(self._derive, passphrase)
        except InitializationError as err:
            logger.error("Vault unlock failed: %s", err)
            raise
        if self._epoch != started or not self.is_locked:
            raise InitializationError("Unlock abandoned by a concurrent transition")
        self._epoch += 1
        self._key = SessionKey(key, self._epoch)
        logger.info("Vault unlocked (epoch=%d)", self._epoch)

    def logout(self) -> None:
        """Lock the vault: wipe the key and notify lock listeners.

        Safe to call at any time, including while locked or with
        cipher operations in flight. An unlock still deriving its key
        when this is called is abandoned.
        """
        key, self._key = self._key, None
        self._epoch += 1
        if key is None:
            return
        key.wipe()
        for callback in list(self._listeners):
            callback()
        logger.info("Vault locked (epoch=%d)", self._epoch)

    # ------------------------------------------------------------------
    # Cipher operations
    # ------------------------------------------------------------------

    async def encrypt(self, plaintext: str) -> str:
        """Encrypt text under the session key.

        Raises:
            NotInitializedError: If the session is Locked.
        """
        key = self.key
        return await asyncio.to_thread(key.encrypt, plaintext)

    async def decrypt(self, envelope: str) -> str:
        """Decrypt an envelope under the session key.

        Raises:
            NotInitializedError: If the session is Locked.
            DecryptionError: If the envelope does not authenticate.
        """
        key = self.key
        return await asyncio.to_thread(key.decrypt, envelope)
