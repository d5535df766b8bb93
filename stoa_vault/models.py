"""Data models of the note vault.

Field names are persisted in camelCase (``createdAt``, ``isPinned``...),
the format used by existing vault files. Note titles are stored in the
clear; only ``content`` is an encrypted envelope.
"""
import time
import uuid
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


class NoteType(str, Enum):
    journal = "journal"
    reflection = "reflection"
    thought = "thought"
    archive = "archive"


class Note(BaseModel):
    """A note record. ``content`` holds envelope text, never plaintext."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, min_length=1)
    title: str = "Untitled Reflection"
    content: str
    tags: list[str] = Field(default_factory=list)
    type: NoteType = NoteType.thought
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")
    is_pinned: bool = Field(default=False, alias="isPinned")

    model_config = {"populate_by_name": True}

    @field_validator("tags")
    @classmethod
    def unique_tags(cls, v: list[str]) -> list[str]:
        """Tags are a set; keep first occurrence order."""
        return list(dict.fromkeys(tag.strip() for tag in v if tag.strip()))

    def to_record(self) -> dict:
        """Dump with persisted field names."""
        return self.model_dump(by_alias=True, mode="json")


class UserSettings(BaseModel):
    """Vault settings. Not confidentiality-protected."""

    user_name: str = Field(default="Philosopher", alias="userName")
    theme: Literal["light", "dark", "sepia"] = "light"
    birth_date: Optional[str] = Field(default=None, alias="birthDate")

    model_config = {"populate_by_name": True}

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
