"""
NoteVault — Coordinates the session, the decrypted cache and the store.

Provides the operations a host application drives:
- ``unlock(passphrase)`` / ``lock()``
- ``create_note()``, ``read_content()``, ``save_note()``, ``delete_note()``,
  ``toggle_pin()``
- ``save_settings()``, ``toggle_theme()``
- ``export()`` and ``upgrade_envelopes()``

Security Note:
    Never log note titles or content. Only log note ids and counts.
"""
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from .models import Note, NoteType, UserSettings, now_ms
from .storage import (
    AbstractStore,
    create_store,
    load_notes,
    load_settings,
    save_notes,
    save_settings,
    write_export,
)
from .vault.cache import DecryptedCache
from .vault.config import VaultConfig
from .vault.exceptions import NotInitializedError, StorageError
from .vault.migration import upgrade_envelopes
from .vault.session_vault import VaultSession

logger = logging.getLogger("stoa.notes")


class NoteVault:
    """A passphrase-protected note collection.

    Owns exactly one ``VaultSession`` and the ``DecryptedCache`` bound to it.
    Note mutations require the vault to be unlocked; settings and export
    work in either state.

    Args:
        store: Persistence store. Built from ``config`` when omitted.
        config: Vault configuration. Defaults apply when omitted.
    """

    def __init__(
        self,
        store: Optional[AbstractStore] = None,
        config: Optional[VaultConfig] = None,
    ):
        self._config = config or VaultConfig()
        self._store = store if store is not None else create_store(self._config)
        self.session = VaultSession(self._store, self._config.kdf_iterations)
        self.cache = DecryptedCache(self.session)
        self._notes: list[Note] = []
        self._settings = load_settings(self._store)
        self.session.add_lock_listener(self._forget_notes)

    @classmethod
    def from_env(cls) -> "NoteVault":
        """Create a NoteVault configured from environment variables."""
        return cls(config=VaultConfig.from_env())

    def __repr__(self) -> str:
        state = "locked" if self.is_locked else "unlocked"
        return f"<NoteVault {self._config.vault_name} {state} notes={len(self._notes)}>"

    @property
    def is_locked(self) -> bool:
        return self.session.is_locked

    @property
    def notes(self) -> list[Note]:
        """Loaded notes in stored order (empty while locked)."""
        return list(self._notes)

    @property
    def settings(self) -> UserSettings:
        return self._settings

    def _require_unlocked(self) -> None:
        if self.session.is_locked:
            raise NotInitializedError()

    def _index(self, note_id: str) -> int:
        for i, note in enumerate(self._notes):
            if note.id == note_id:
                return i
        raise KeyError(note_id)

    def _forget_notes(self) -> None:
        self._notes = []

    def _persist(self) -> None:
        save_notes(self._store, self._notes)

    # ------------------------------------------------------------------
    # Lock state
    # ------------------------------------------------------------------

    async def unlock(self, passphrase: str) -> None:
        """Unlock the vault and load the note collection.

        Raises:
            InitializationError: If the session could not be unlocked.
            StorageError: If the note collection is unreadable. The vault
                is locked again before this propagates.
            ValidationError: If a note record is malformed; vault re-locked.
        """
        await self.session.initialize(passphrase)
        try:
            self._notes = load_notes(self._store)
        except (StorageError, ValidationError) as err:
            logger.error("Unable to load notes, locking vault: %s", err)
            self.session.logout()
            raise
        logger.info("Vault %s opened: %d note(s)", self._config.vault_name, len(self._notes))

    def lock(self) -> None:
        """Lock the vault. Decrypted content and loaded notes are dropped."""
        self.session.logout()

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def get_note(self, note_id: str) -> Note:
        return self._notes[self._index(note_id)]

    async def create_note(
        self,
        note_type: NoteType = NoteType.thought,
        title: str = "Untitled Reflection",
    ) -> Note:
        """Create an empty note at the top of the collection."""
        self._require_unlocked()
        epoch = self.session.epoch
        content = await self.session.encrypt("")
        if self.session.epoch != epoch:
            raise NotInitializedError("Vault locked while creating note")
        note = Note(title=title, content=content, type=note_type)
        self._notes.insert(0, note)
        self._persist()
        self.cache.put(note.id, "")
        logger.debug("Created note id=%s", note.id)
        return note

    async def read_content(self, note_id: str) -> Optional[str]:
        """Decrypted content of a note, or None while locked.

        Raises:
            KeyError: If the note does not exist.
            DecryptionError: If the stored envelope does not authenticate.
        """
        if self.session.is_locked:
            return None
        note = self.get_note(note_id)
        return await self.cache.get(note.id, note.content)

    async def save_note(
        self,
        note_id: str,
        content: str,
        title: Optional[str] = None,
        tags: Optional[list[str]] = None,
    ) -> Note:
        """Encrypt and store new content for an existing note."""
        self._require_unlocked()
        self._index(note_id)
        epoch = self.session.epoch
        envelope = await self.session.encrypt(content)
        if self.session.epoch != epoch:
            raise NotInitializedError("Vault locked while saving note")
        i = self._index(note_id)
        update: dict = {"content": envelope, "updated_at": now_ms()}
        if title is not None:
            update["title"] = title
        if tags is not None:
            update["tags"] = tags
        note = Note.model_validate(
            {**self._notes[i].model_dump(), **update}
        )
        self._notes[i] = note
        self._persist()
        self.cache.put(note_id, content)
        logger.debug("Saved note id=%s", note_id)
        return note

    def delete_note(self, note_id: str) -> None:
        self._require_unlocked()
        del self._notes[self._index(note_id)]
        self._persist()
        self.cache.discard(note_id)
        logger.debug("Deleted note id=%s", note_id)

    def toggle_pin(self, note_id: str) -> Note:
        self._require_unlocked()
        i = self._index(note_id)
        note = self._notes[i].model_copy(
            update={"is_pinned": not self._notes[i].is_pinned}
        )
        self._notes[i] = note
        self._persist()
        return note

    async def upgrade_envelopes(self, batch_size: int = 100) -> dict:
        """Rewrite unversioned envelopes in the current format.

        Works on a snapshot of the collection. An upgraded envelope is only
        applied when the live note still holds the envelope it was computed
        from; notes saved meanwhile are left alone and counted as skipped.

        Raises:
            NotInitializedError: If the vault is locked, or locks while
                the upgrade runs.
        """
        self._require_unlocked()
        epoch = self.session.epoch
        snapshot = {note.id: note.content for note in self._notes}
        notes, stats = await upgrade_envelopes(
            self.session, list(self._notes), batch_size=batch_size,
        )
        if self.session.epoch != epoch:
            raise NotInitializedError("Vault locked while upgrading envelopes")
        upgraded = {
            note.id: note.content for note in notes
            if note.content != snapshot.get(note.id)
        }
        applied = 0
        for i, live in enumerate(self._notes):
            content = upgraded.get(live.id)
            if content is None or live.content != snapshot.get(live.id):
                continue
            self._notes[i] = live.model_copy(update={"content": content})
            applied += 1
        stale = len(upgraded) - applied
        if stale:
            logger.info("Left %d note(s) changed during upgrade untouched", stale)
            stats["upgraded"] -= stale
            stats["skipped"] += stale
        if applied:
            self._persist()
        return stats

    # ------------------------------------------------------------------
    # Settings and export
    # ------------------------------------------------------------------

    def save_settings(self, settings: UserSettings) -> None:
        save_settings(self._store, settings)
        self._settings = settings

    def toggle_theme(self) -> UserSettings:
        theme = "light" if self._settings.theme == "dark" else "dark"
        settings = self._settings.model_copy(update={"theme": theme})
        self.save_settings(settings)
        return settings

    def export(self, directory: Union[str, Path, None] = None) -> Path:
        """Write ``<vault-name>-export-<date>.json`` and return its path."""
        return write_export(
            self._store,
            directory if directory is not None else self._config.export_dir,
            self._config.vault_name,
        )
