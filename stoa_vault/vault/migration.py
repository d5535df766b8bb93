"""
Envelope Migration — Batch re-encryption of unversioned envelopes.

Envelopes written before the format carried a version prefix are bare
base64. This re-encrypts them under the current session key into the
versioned format so a future format change can be detected. The
operation is idempotent: versioned envelopes are skipped.

Security Note:
    Plaintext exists in memory only during re-encryption of each note.
    Never log plaintext or ciphertext values.
"""
import logging

from ..models import Note
from .crypto import is_legacy_envelope
from .exceptions import DecryptionError, NotInitializedError
from .session_vault import VaultSession

logger = logging.getLogger("stoa.vault")


async def upgrade_envelopes(
    session: VaultSession,
    notes: list[Note],
    batch_size: int = 100,
) -> tuple[list[Note], dict]:
    """Re-encrypt legacy envelopes of ``notes`` in batches.

    Args:
        session: Unlocked vault session.
        notes: Notes to inspect; not modified in place.
        batch_size: Number of notes handled per batch.

    Returns:
        Tuple of (new note list in the same order, stats dict with keys
        total, upgraded, skipped, errors).

    Raises:
        NotInitializedError: If the session is Locked.
        ValueError: If batch_size is not positive.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    if session.is_locked:
        raise NotInitializedError()
    stats = {"total": 0, "upgraded": 0, "skipped": 0, "errors": 0}
    upgraded: list[Note] = []

    logger.info(
        "Starting envelope upgrade of %d note(s) (batch_size=%d)",
        len(notes), batch_size,
    )

    for offset in range(0, len(notes), batch_size):
        batch = notes[offset:offset + batch_size]
        logger.debug(
            "Processing batch %d (%d notes)", offset // batch_size + 1, len(batch),
        )
        for note in batch:
            stats["total"] += 1
            if not is_legacy_envelope(note.content):
                stats["skipped"] += 1
                upgraded.append(note)
                continue
            try:
                plaintext = await session.decrypt(note.content)
                content = await session.encrypt(plaintext)
            except DecryptionError as err:
                logger.error("Error upgrading note id=%s: %s", note.id, err)
                stats["errors"] += 1
                upgraded.append(note)
                continue
            upgraded.append(note.model_copy(update={"content": content}))
            stats["upgraded"] += 1

    logger.info("Envelope upgrade complete: %s", stats)
    return upgraded, stats
