"""Result types: FolderInfo, FileInfo, ShareInfo, ListResult, PurgeResult, etc."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


class ResourceType(str, Enum):
    """Kind of resource a grant or purge refers to."""

    FILE = "file"
    FOLDER = "folder"


class ListFilter(str, Enum):
    """View selector for ``list_resources``."""

    ALL = "all"
    STARRED = "starred"
    TRASH = "trash"
    RECENT = "recent"
    SHARED = "shared"


@dataclass
class FolderInfo:
    """Folder metadata."""

    id: str
    name: str
    owner_id: str
    parent_id: str | None = None
    is_deleted: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    role: str | None = None


@dataclass
class FileInfo:
    """File metadata.  ``url`` is only ever a mediated, signed URL."""

    id: str
    name: str
    owner_id: str
    folder_id: str | None = None
    mime_type: str | None = None
    size_bytes: int = 0
    is_starred: bool = False
    is_deleted: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    url: str | None = None
    role: str | None = None


@dataclass
class ShareInfo:
    """Share grant metadata."""

    id: str
    resource_id: str
    resource_type: str
    grantee_email: str
    role: str
    owner_id: str
    created_at: datetime | None = None


@dataclass
class Breadcrumb:
    """One step of a folder path, root first."""

    id: str
    name: str


@dataclass
class ListResult:
    """Result of a ``list_resources`` call."""

    folders: list[FolderInfo] = field(default_factory=list)
    files: list[FileInfo] = field(default_factory=list)
    folder_id: str | None = None
    filter: ListFilter = ListFilter.ALL


@dataclass
class PurgeResult:
    """Result of a permanent delete or empty-trash run."""

    message: str
    folders_deleted: int = 0
    files_deleted: int = 0
    blobs_removed: int = 0


@dataclass
class UploadTicket:
    """Where a client should upload bytes before calling ``upload_complete``."""

    storage_key: str
    url: str
