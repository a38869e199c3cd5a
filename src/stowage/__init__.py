"""Stowage: folders, files, trash, and sharing over an external blob store."""

__version__ = "0.1.0"

from stowage._drive import Drive
from stowage._drive_async import DriveAsync
from stowage.drive.blobs import BlobStore, MemoryBlobStore, S3BlobStore
from stowage.drive.config import DriveConfig
from stowage.drive.exceptions import (
    AccessDeniedError,
    ConflictError,
    ConsistencyError,
    NotFoundError,
    StowageError,
    UpstreamStorageError,
    ValidationError,
)
from stowage.drive.permissions import Role, can_mutate
from stowage.drive.types import (
    Breadcrumb,
    FileInfo,
    FolderInfo,
    ListFilter,
    ListResult,
    PurgeResult,
    ResourceType,
    ShareInfo,
    UploadTicket,
)
from stowage.events import EventBus, EventType, ResourceEvent

__all__ = [
    "AccessDeniedError",
    "BlobStore",
    "Breadcrumb",
    "ConflictError",
    "ConsistencyError",
    "Drive",
    "DriveAsync",
    "DriveConfig",
    "EventBus",
    "EventType",
    "FileInfo",
    "FolderInfo",
    "ListFilter",
    "ListResult",
    "MemoryBlobStore",
    "NotFoundError",
    "PurgeResult",
    "ResourceEvent",
    "ResourceType",
    "Role",
    "S3BlobStore",
    "ShareInfo",
    "StowageError",
    "UploadTicket",
    "UpstreamStorageError",
    "ValidationError",
    "__version__",
    "can_mutate",
]
