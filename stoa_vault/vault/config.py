"""
Vault Configuration — Validated settings and persisted record names.

Reads settings from environment variables:
    STOA_VAULT_NAME = <name used for export files>
    STOA_VAULT_PATH = <path of the vault JSON file; unset for in-memory>
    STOA_KDF_ITERATIONS = <PBKDF2 iterations for newly created vaults>
    STOA_EXPORT_DIR = <directory where exports are written>

Security Note:
    The passphrase is never part of the configuration.
"""
import os
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .crypto import MIN_ITERATIONS

logger = logging.getLogger("stoa.vault")

# Record names in the persistence store.
NOTES_KEY = "stoa_notes_v1"
SETTINGS_KEY = "stoa_settings_v1"
SALT_KEY = "stoa_crypto_salt"

STORAGE_KEYS = {
    "notes": NOTES_KEY,
    "settings": SETTINGS_KEY,
    "salt": SALT_KEY,
}


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    vault_name: str = Field(default="stoa", min_length=1, max_length=64)
    storage_path: Optional[Path] = None
    kdf_iterations: int = Field(default=MIN_ITERATIONS, ge=MIN_ITERATIONS)
    export_dir: Path = Field(default=Path("."))

    @field_validator("vault_name")
    @classmethod
    def validate_vault_name(cls, v: str) -> str:
        """Vault name ends up in file names: no path separators."""
        if "/" in v or "\\" in v or v.strip() != v:
            raise ValueError(f"Invalid vault name: {v!r}")
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        values: dict = {}
        name = os.environ.get("STOA_VAULT_NAME")
        if name:
            values["vault_name"] = name
        path = os.environ.get("STOA_VAULT_PATH")
        if path:
            values["storage_path"] = Path(path).expanduser()
        iterations = os.environ.get("STOA_KDF_ITERATIONS")
        if iterations:
            values["kdf_iterations"] = iterations
        export_dir = os.environ.get("STOA_EXPORT_DIR")
        if export_dir:
            values["export_dir"] = Path(export_dir).expanduser()
        config = cls(**values)
        logger.debug(
            "Loaded vault config: name=%s storage=%s",
            config.vault_name, config.storage_path or "memory",
        )
        return config
