"""Drive layer: resource store, sharing, permissions, traversal, lifecycle, access."""

from stowage.drive.access import AccessMediator
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
from stowage.drive.lifecycle import LifecycleManager
from stowage.drive.permissions import PermissionResolver, Role, can_mutate
from stowage.drive.resources import ResourceStore
from stowage.drive.sharing import ShareRegistry
from stowage.drive.tree import TreeWalker
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

__all__ = [
    "AccessDeniedError",
    "AccessMediator",
    "BlobStore",
    "Breadcrumb",
    "ConflictError",
    "ConsistencyError",
    "DriveConfig",
    "FileInfo",
    "FolderInfo",
    "LifecycleManager",
    "ListFilter",
    "ListResult",
    "MemoryBlobStore",
    "NotFoundError",
    "PermissionResolver",
    "PurgeResult",
    "ResourceStore",
    "ResourceType",
    "Role",
    "S3BlobStore",
    "ShareInfo",
    "ShareRegistry",
    "StowageError",
    "TreeWalker",
    "UploadTicket",
    "UpstreamStorageError",
    "ValidationError",
    "can_mutate",
]
