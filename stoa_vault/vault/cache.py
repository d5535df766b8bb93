"""
DecryptedCache — Per-session plaintext of notes already decrypted.

Entries are filled lazily on first access and cleared as part of every
lock, so no plaintext outlives the session that produced it.

Security Note:
    Plaintext lives in process memory while the session is unlocked.
    This is an accepted limitation (see threat model in ``__init__.py``).
"""
import asyncio
import logging
from typing import Optional

from .exceptions import NotInitializedError
from .session_vault import VaultSession

logger = logging.getLogger("stoa.vault")


def _consume_exception(task: asyncio.Task) -> None:
    """Mark a fill's failure as retrieved when every waiter was cancelled."""
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Decrypt fill failed: %s", type(task.exception()).__name__)


class DecryptedCache:
    """Mapping of note id to decrypted content, bound to a ``VaultSession``.

    Registers itself as a lock listener of the session on construction.
    Concurrent ``get`` calls for the same note share one decrypt.
    """

    def __init__(self, session: VaultSession):
        self._session = session
        self._entries: dict[str, str] = {}
        self._pending: dict[str, asyncio.Task] = {}
        session.add_lock_listener(self.invalidate_all)

    def __contains__(self, note_id: object) -> bool:
        return note_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, note_id: str, envelope: str) -> Optional[str]:
        """Return the plaintext of a note, decrypting it on first access.

        Args:
            note_id: Note identifier used as cache key.
            envelope: Stored envelope of the note content.

        Returns:
            Plaintext, or None when the session is Locked.

        Raises:
            DecryptionError: If the envelope does not authenticate.
                Nothing is cached in that case.
        """
        cached = self._entries.get(note_id)
        if cached is not None:
            return cached
        if self._session.is_locked:
            return None
        task = self._pending.get(note_id)
        if task is None:
            task = asyncio.ensure_future(
                self._fill(note_id, envelope, self._session.epoch)
            )
            task.add_done_callback(_consume_exception)
            self._pending[note_id] = task
        # shield: a cancelled caller must not cancel the fill shared with others
        return await asyncio.shield(task)

    async def _fill(self, note_id: str, envelope: str, epoch: int) -> Optional[str]:
        task = asyncio.current_task()
        try:
            plaintext = await self._session.decrypt(envelope)
        except NotInitializedError:
            # locked before the decrypt could run
            return None
        finally:
            owned = self._pending.get(note_id) is task
            if owned:
                del self._pending[note_id]
        if not owned:
            # superseded by put(), discard() or a lock
            return self._entries.get(note_id)
        if self._session.is_locked or self._session.epoch != epoch:
            logger.debug("Discarding decrypt of note=%s finished after lock", note_id)
            return None
        self._entries[note_id] = plaintext
        return plaintext

    def put(self, note_id: str, plaintext: str) -> None:
        """Record just-written content so it is served without a decrypt."""
        if self._session.is_locked:
            return
        self._pending.pop(note_id, None)
        self._entries[note_id] = plaintext

    def discard(self, note_id: str) -> None:
        """Forget a single note, e.g. after it was deleted."""
        self._entries.pop(note_id, None)
        self._pending.pop(note_id, None)

    def invalidate_all(self) -> None:
        """Drop every entry and forget in-flight fills."""
        count = len(self._entries)
        self._entries.clear()
        self._pending.clear()
        logger.debug("Decrypted cache cleared (%d entries)", count)
