"""Folder and File models.

Provides ``FolderBase`` and ``FileBase`` non-table base classes.
Subclass with ``table=True`` and a custom ``__tablename__`` to use a
different table name per backend.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class FolderBase(SQLModel):
    """Base fields for a folder. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(default="")
    owner_id: str = Field(index=True)
    parent_id: str | None = Field(default=None, index=True)
    is_deleted: bool = Field(default=False, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class Folder(FolderBase, table=True):
    """Default folder table: ``stowage_folders``."""

    __tablename__ = "stowage_folders"


class FileBase(SQLModel):
    """Base fields for a stored file. Subclass with ``table=True`` for a concrete table.

    ``storage_key`` names the blob in the external store.  It is unique
    per record so a purge never removes a blob another record still uses.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(default="")
    owner_id: str = Field(index=True)
    folder_id: str | None = Field(default=None, index=True)
    storage_key: str = Field(index=True, unique=True)
    mime_type: str = Field(default="application/octet-stream")
    size_bytes: int = Field(default=0)
    is_starred: bool = Field(default=False)
    is_deleted: bool = Field(default=False, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class File(FileBase, table=True):
    """Default file table: ``stowage_files``."""

    __tablename__ = "stowage_files"
