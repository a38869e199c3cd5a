"""ResourceStore: typed CRUD and queries over folder and file records."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete
from sqlmodel import select

from .exceptions import AccessDeniedError, ConsistencyError, NotFoundError, ValidationError
from .types import FileInfo, FolderInfo, ResourceType
from .utils import validate_name

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from stowage.models.resources import FileBase, FolderBase

_FOLDER_FIELDS = frozenset({"name", "parent_id", "is_deleted"})
_FILE_FIELDS = frozenset({"name", "folder_id", "is_starred", "is_deleted", "mime_type", "size_bytes"})


class ResourceStore:
    """Stateless access to folder and file records.

    Receives the concrete models at construction so callers can use
    custom SQLModel subclasses.  Methods taking ``owner_id`` filter on
    it; passing ``None`` is reserved for callers that have already
    authorised a non-owner through ``PermissionResolver``.
    """

    def __init__(
        self,
        folder_model: type[FolderBase],
        file_model: type[FileBase],
    ) -> None:
        self._folder_model = folder_model
        self._file_model = file_model

    @property
    def folder_model(self) -> type[FolderBase]:
        return self._folder_model

    @property
    def file_model(self) -> type[FileBase]:
        return self._file_model

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_folder(
        self,
        session: AsyncSession,
        name: str,
        owner_id: str,
        parent_id: str | None = None,
    ) -> FolderBase:
        """Create a folder under *parent_id* (``None`` = root)."""
        name = validate_name(name, "Folder name")
        if parent_id is not None:
            parent = await self.get_folder(session, parent_id, owner_id=owner_id)
            if parent is None:
                raise AccessDeniedError("Parent folder not found or access denied")

        folder = self._folder_model(
            id=str(uuid.uuid4()),
            name=name,
            owner_id=owner_id,
            parent_id=parent_id,
        )
        session.add(folder)
        await session.flush()
        return folder

    async def create_file(
        self,
        session: AsyncSession,
        owner_id: str,
        name: str,
        storage_key: str,
        size_bytes: int,
        mime_type: str | None = None,
        folder_id: str | None = None,
    ) -> FileBase:
        """Record a file whose bytes already live at *storage_key*."""
        name = validate_name(name, "File name")
        if not storage_key or not storage_key.strip():
            raise ValidationError("Storage key cannot be empty")
        if size_bytes is None or size_bytes < 0:
            raise ValidationError(f"Invalid file size: {size_bytes!r}")
        # Keys outside the owner's prefix would let a caller claim someone else's blob.
        if not storage_key.startswith(f"{owner_id}/"):
            raise ValidationError(f"Storage key must start with {owner_id}/")
        if await self._storage_key_in_use(session, storage_key):
            raise ValidationError(f"Storage key already in use: {storage_key}")
        if folder_id is not None:
            folder = await self.get_folder(session, folder_id, owner_id=owner_id)
            if folder is None:
                raise ValidationError(f"Folder not found: {folder_id}")

        file = self._file_model(
            id=str(uuid.uuid4()),
            name=name,
            owner_id=owner_id,
            folder_id=folder_id,
            storage_key=storage_key,
            mime_type=mime_type or "application/octet-stream",
            size_bytes=size_bytes,
        )
        session.add(file)
        await session.flush()
        return file

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_folder(
        self,
        session: AsyncSession,
        folder_id: str,
        *,
        owner_id: str | None = None,
    ) -> FolderBase | None:
        """Get a folder by id, optionally scoped to *owner_id*."""
        model = self._folder_model
        query = select(model).where(model.id == folder_id)
        if owner_id is not None:
            query = query.where(model.owner_id == owner_id)
        result = await session.execute(query)
        return result.scalar_one_or_none()

    async def get_file(
        self,
        session: AsyncSession,
        file_id: str,
        *,
        owner_id: str | None = None,
    ) -> FileBase | None:
        """Get a file by id, optionally scoped to *owner_id*."""
        model = self._file_model
        query = select(model).where(model.id == file_id)
        if owner_id is not None:
            query = query.where(model.owner_id == owner_id)
        result = await session.execute(query)
        return result.scalar_one_or_none()

    async def get_resource(
        self,
        session: AsyncSession,
        resource_id: str,
        resource_type: ResourceType | str | None = None,
        *,
        owner_id: str | None = None,
    ) -> FolderBase | FileBase | None:
        """Get a file or folder by id.  Without *resource_type* both tables are tried."""
        kind = ResourceType(resource_type) if resource_type is not None else None
        if kind in (None, ResourceType.FILE):
            file = await self.get_file(session, resource_id, owner_id=owner_id)
            if file is not None or kind is ResourceType.FILE:
                return file
        return await self.get_folder(session, resource_id, owner_id=owner_id)

    async def require_resource(
        self,
        session: AsyncSession,
        resource_id: str,
        resource_type: ResourceType | str | None = None,
        *,
        owner_id: str | None = None,
    ) -> FolderBase | FileBase:
        """Like ``get_resource`` but raises ``NotFoundError`` when absent."""
        resource = await self.get_resource(
            session, resource_id, resource_type, owner_id=owner_id
        )
        if resource is None:
            raise NotFoundError(f"Resource not found: {resource_id}")
        return resource

    def resource_type_of(self, resource: FolderBase | FileBase) -> ResourceType:
        """Return the ``ResourceType`` of a loaded record."""
        return ResourceType.FILE if isinstance(resource, self._file_model) else ResourceType.FOLDER

    async def list_children(
        self,
        session: AsyncSession,
        folder_id: str | None,
        owner_id: str,
        *,
        deleted: bool = False,
    ) -> tuple[list[FolderBase], list[FileBase]]:
        """List direct subfolders and files of *folder_id* (``None`` = root)."""
        fm = self._folder_model
        folder_query = select(fm).where(fm.owner_id == owner_id, fm.is_deleted == deleted)
        if folder_id is None:
            folder_query = folder_query.where(fm.parent_id.is_(None))  # type: ignore[union-attr]
        else:
            folder_query = folder_query.where(fm.parent_id == folder_id)
        folders = await session.execute(folder_query.order_by(fm.name))  # type: ignore[arg-type]

        files = await session.execute(
            self._file_query(owner_id, folder_id, deleted=deleted).order_by(
                self._file_model.name  # type: ignore[arg-type]
            )
        )
        return list(folders.scalars().all()), list(files.scalars().all())

    async def list_starred(
        self,
        session: AsyncSession,
        folder_id: str | None,
        owner_id: str,
    ) -> list[FileBase]:
        """List active starred files directly inside *folder_id*."""
        fm = self._file_model
        query = self._file_query(owner_id, folder_id, deleted=False).where(fm.is_starred.is_(True))  # type: ignore[attr-defined]
        result = await session.execute(query.order_by(fm.name))  # type: ignore[arg-type]
        return list(result.scalars().all())

    async def list_trash(
        self, session: AsyncSession, owner_id: str
    ) -> tuple[list[FolderBase], list[FileBase]]:
        """List every trashed folder and file of *owner_id*, files newest first."""
        fm = self._folder_model
        folders = await session.execute(
            select(fm).where(fm.owner_id == owner_id, fm.is_deleted.is_(True)).order_by(fm.name)  # type: ignore[attr-defined, arg-type]
        )
        model = self._file_model
        files = await session.execute(
            select(model)
            .where(model.owner_id == owner_id, model.is_deleted.is_(True))  # type: ignore[attr-defined]
            .order_by(model.updated_at.desc())  # type: ignore[attr-defined]
        )
        return list(folders.scalars().all()), list(files.scalars().all())

    async def list_recent(
        self, session: AsyncSession, owner_id: str, limit: int
    ) -> list[FileBase]:
        """List the newest active files of *owner_id*."""
        model = self._file_model
        result = await session.execute(
            select(model)
            .where(model.owner_id == owner_id, model.is_deleted.is_(False))  # type: ignore[attr-defined]
            .order_by(model.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_many(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        ids: Iterable[str],
        *,
        active_only: bool = False,
    ) -> list[Any]:
        """Fetch records of one type by id, in name order.  Unknown ids are skipped.

        With *active_only*, trashed records are skipped as well.
        """
        ids = list(ids)
        if not ids:
            return []
        model = self._file_model if resource_type is ResourceType.FILE else self._folder_model
        stmt = select(model).where(model.id.in_(ids))  # type: ignore[attr-defined]
        if active_only:
            stmt = stmt.where(model.is_deleted.is_(False))  # type: ignore[attr-defined]
        result = await session.execute(stmt.order_by(model.name))  # type: ignore[arg-type]
        return list(result.scalars().all())

    async def get_ancestor_path(
        self, session: AsyncSession, folder_id: str
    ) -> list[FolderBase]:
        """Return ancestors of *folder_id* from the root down to its immediate parent.

        One query per level.  Raises ``NotFoundError`` when the folder or
        any ancestor is missing, ``ConsistencyError`` on a parent cycle.
        """
        folder = await self.get_folder(session, folder_id)
        if folder is None:
            raise NotFoundError(f"Folder not found: {folder_id}")

        ancestors: list[FolderBase] = []
        seen = {folder.id}
        parent_id = folder.parent_id
        while parent_id is not None:
            if parent_id in seen:
                raise ConsistencyError(f"Folder parent chain loops at {parent_id}")
            parent = await self.get_folder(session, parent_id)
            if parent is None:
                raise NotFoundError(f"Broken folder chain: parent {parent_id} not found")
            seen.add(parent.id)
            ancestors.append(parent)
            parent_id = parent.parent_id

        ancestors.reverse()
        return ancestors

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update(
        self,
        session: AsyncSession,
        resource: FolderBase | FileBase,
        **fields: Any,
    ) -> FolderBase | FileBase:
        """Set *fields* on *resource*, bump ``updated_at``, and flush."""
        allowed = _FILE_FIELDS if isinstance(resource, self._file_model) else _FOLDER_FIELDS
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        for key, value in fields.items():
            setattr(resource, key, value)
        resource.updated_at = datetime.now(UTC)
        await session.flush()
        return resource

    async def rename(
        self,
        session: AsyncSession,
        resource: FolderBase | FileBase,
        new_name: str,
    ) -> FolderBase | FileBase:
        """Rename a resource after validating the new name."""
        return await self.update(session, resource, name=validate_name(new_name))

    async def move(
        self,
        session: AsyncSession,
        resource: FolderBase | FileBase,
        destination_folder_id: str | None,
    ) -> FolderBase | FileBase:
        """Re-parent *resource* under *destination_folder_id* (``None`` = root).

        The destination must belong to the resource's owner.  A folder
        cannot move into itself or one of its descendants.
        """
        if destination_folder_id is not None:
            destination = await self.get_folder(
                session, destination_folder_id, owner_id=resource.owner_id
            )
            if destination is None:
                raise AccessDeniedError("Destination folder not found or access denied")
            if isinstance(resource, self._folder_model):
                chain = await self.get_ancestor_path(session, destination.id)
                if resource.id == destination.id or any(f.id == resource.id for f in chain):
                    raise ValidationError("Cannot move a folder into itself or its descendant")

        if isinstance(resource, self._file_model):
            return await self.update(session, resource, folder_id=destination_folder_id)
        return await self.update(session, resource, parent_id=destination_folder_id)

    # ------------------------------------------------------------------
    # Delete (idempotent)
    # ------------------------------------------------------------------

    async def delete_files(self, session: AsyncSession, ids: Iterable[str]) -> int:
        """Delete file rows by id.  Already-absent rows are ignored."""
        return await self._delete_ids(session, self._file_model, ids)

    async def delete_folders(self, session: AsyncSession, ids: Iterable[str]) -> int:
        """Delete folder rows by id.  Already-absent rows are ignored."""
        return await self._delete_ids(session, self._folder_model, ids)

    @staticmethod
    async def _delete_ids(session: AsyncSession, model: type, ids: Iterable[str]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        result = await session.execute(delete(model).where(model.id.in_(ids)))  # type: ignore[attr-defined]
        return result.rowcount or 0  # type: ignore[attr-defined]

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    async def _storage_key_in_use(self, session: AsyncSession, storage_key: str) -> bool:
        model = self._file_model
        result = await session.execute(
            select(model.id).where(model.storage_key == storage_key)  # type: ignore[call-overload]
        )
        return result.first() is not None

    def _file_query(self, owner_id: str, folder_id: str | None, *, deleted: bool) -> Any:
        model = self._file_model
        query = select(model).where(model.owner_id == owner_id, model.is_deleted == deleted)
        if folder_id is None:
            return query.where(model.folder_id.is_(None))  # type: ignore[union-attr]
        return query.where(model.folder_id == folder_id)

    @staticmethod
    def folder_to_info(f: FolderBase, role: str | None = None) -> FolderInfo:
        """Convert a folder record to FolderInfo."""
        return FolderInfo(
            id=f.id,
            name=f.name,
            owner_id=f.owner_id,
            parent_id=f.parent_id,
            is_deleted=f.is_deleted,
            created_at=f.created_at,
            updated_at=f.updated_at,
            role=role,
        )

    @staticmethod
    def file_to_info(f: FileBase, url: str | None = None, role: str | None = None) -> FileInfo:
        """Convert a file record to FileInfo.  The storage key is never copied."""
        return FileInfo(
            id=f.id,
            name=f.name,
            owner_id=f.owner_id,
            folder_id=f.folder_id,
            mime_type=f.mime_type,
            size_bytes=f.size_bytes,
            is_starred=f.is_starred,
            is_deleted=f.is_deleted,
            created_at=f.created_at,
            updated_at=f.updated_at,
            url=url,
            role=role,
        )
