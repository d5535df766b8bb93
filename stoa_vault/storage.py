"""
Persistence Store — Key/value records backing the vault.

Records are text values under three keys (see ``vault.config``):
notes (JSON array of note records), settings (JSON object) and the salt
record. Every ``set`` is a whole-record overwrite, last write wins; there
is no transaction spanning several keys.
"""
import os
import logging
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import date
from pathlib import Path
from typing import Any, Optional, Union

import orjson

from .models import Note, UserSettings
from .vault.config import NOTES_KEY, SALT_KEY, SETTINGS_KEY, VaultConfig
from .vault.exceptions import StorageError

logger = logging.getLogger("stoa.storage")


class AbstractStore(ABC):
    """Contract the vault requires from a persistence backend."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored text for ``key``, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Overwrite the record stored under ``key``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are ignored."""

    @abstractmethod
    def keys(self) -> list[str]:
        """Keys currently stored."""


class MemoryStore(AbstractStore):
    """Process-local store, used for tests and throwaway vaults."""

    def __init__(self, data: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data.keys())


class FileStore(AbstractStore):
    """All records in one JSON document on disk.

    Each write rewrites the document to a temporary file and atomically
    replaces the original, so a crash never leaves a half-written vault.

    Args:
        path: Location of the vault document. Parent directories are created.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._lock = threading.Lock()
        self._data: dict[str, str] = self._load()

    def __repr__(self) -> str:
        return f"<FileStore path={self._path}>"

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = orjson.loads(self._path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as err:
            raise StorageError(f"Unable to read vault file {self._path}: {err}") from err
        if not isinstance(raw, dict):
            raise StorageError(f"Vault file {self._path} is not a JSON object")
        for key, value in raw.items():
            if not isinstance(value, str):
                raise StorageError(
                    f"Vault file {self._path}: record {key} is not a text value"
                )
        return raw

    def _flush(self, data: dict[str, str]) -> None:
        """Write ``data`` to a unique temp file and swap it in. Caller holds the lock."""
        tmp_name = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2))
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except OSError as err:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Unable to write vault file {self._path}: {err}") from err

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = {**self._data, key: value}
            self._flush(data)
            self._data = data

    def delete(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            data = {k: v for k, v in self._data.items() if k != key}
            self._flush(data)
            self._data = data

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data.keys())


def create_store(config: VaultConfig) -> AbstractStore:
    """Build the store described by the configuration."""
    if config.storage_path is None:
        logger.debug("Using in-memory vault store")
        return MemoryStore()
    logger.debug("Using vault file %s", config.storage_path)
    return FileStore(config.storage_path)


# ---------------------------------------------------------------------------
# Record helpers
# ---------------------------------------------------------------------------

def _load_json(store: AbstractStore, key: str) -> Any:
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as err:
        raise StorageError(f"Record {key} is not valid JSON") from err


def load_notes(store: AbstractStore) -> list[Note]:
    """Read the ordered note collection; an absent record is empty."""
    records = _load_json(store, NOTES_KEY) or []
    return [Note.model_validate(record) for record in records]


def save_notes(store: AbstractStore, notes: list[Note]) -> None:
    payload = orjson.dumps([note.to_record() for note in notes])
    store.set(NOTES_KEY, payload.decode("utf-8"))


def load_settings(store: AbstractStore) -> UserSettings:
    """Read the settings record, falling back to defaults when absent."""
    record = _load_json(store, SETTINGS_KEY)
    if record is None:
        return UserSettings()
    return UserSettings.model_validate(record)


def save_settings(store: AbstractStore, settings: UserSettings) -> None:
    store.set(SETTINGS_KEY, orjson.dumps(settings.to_record()).decode("utf-8"))


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def export_snapshot(store: AbstractStore) -> dict:
    """Portable snapshot of the vault exactly as stored.

    Note envelopes stay encrypted. The salt travels in the clear, which is
    safe only as long as the passphrase stays secret.
    """
    notes = _load_json(store, NOTES_KEY) or []
    settings = _load_json(store, SETTINGS_KEY)
    if settings is None:
        settings = UserSettings().to_record()
    return {
        "notes": notes,
        "settings": settings,
        "salt": store.get(SALT_KEY),
    }


def export_filename(vault_name: str, day: Optional[date] = None) -> str:
    """``<vault-name>-export-<YYYY-MM-DD>.json``"""
    day = day or date.today()
    return f"{vault_name}-export-{day.isoformat()}.json"


def write_export(store: AbstractStore, directory: Union[str, Path], vault_name: str) -> Path:
    """Write the export snapshot into ``directory`` and return its path."""
    target = Path(directory) / export_filename(vault_name)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(orjson.dumps(export_snapshot(store)))
    except OSError as err:
        raise StorageError(f"Unable to write export {target}: {err}") from err
    logger.info("Exported vault to %s", target)
    return target
