"""SQLModel database models for Stowage."""

from stowage.models.resources import File, FileBase, Folder, FolderBase
from stowage.models.shares import ShareGrant, ShareGrantBase

__all__ = [
    "File",
    "FileBase",
    "Folder",
    "FolderBase",
    "ShareGrant",
    "ShareGrantBase",
]
