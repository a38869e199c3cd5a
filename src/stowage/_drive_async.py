"""DriveAsync: primary async class wiring every drive service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from stowage.drive.access import AccessMediator
from stowage.drive.blobs import MemoryBlobStore
from stowage.drive.config import DriveConfig
from stowage.drive.exceptions import AccessDeniedError, NotFoundError, ValidationError
from stowage.drive.lifecycle import LifecycleManager
from stowage.drive.permissions import PermissionResolver
from stowage.drive.resources import ResourceStore
from stowage.drive.sharing import ShareRegistry, validate_invite, validate_role
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
from stowage.drive.utils import make_storage_key, validate_name
from stowage.events import EventBus, EventType, ResourceEvent
from stowage.models.resources import File, Folder
from stowage.models.shares import ShareGrant

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from sqlalchemy.ext.asyncio import AsyncEngine

    from stowage.drive.blobs import BlobStore
    from stowage.models.resources import FileBase, FolderBase
    from stowage.models.shares import ShareGrantBase

logger = logging.getLogger(__name__)


def _parse_type(resource_type: ResourceType | str | None) -> ResourceType | None:
    if resource_type is None:
        return None
    try:
        return ResourceType(resource_type)
    except ValueError:
        raise ValidationError(f"Invalid resource type: {resource_type!r}") from None


def _share_to_info(grant: ShareGrantBase) -> ShareInfo:
    return ShareInfo(
        id=grant.id,
        resource_id=grant.resource_id,
        resource_type=grant.resource_type,
        grantee_email=grant.grantee_email,
        role=grant.role,
        owner_id=grant.owner_id,
        created_at=grant.created_at,
    )


class DriveAsync:
    """Async facade over the resource store, sharing, lifecycle, and access layers.

    Each public method runs in its own session: committed on success,
    rolled back on any error, which is then re-raised.  Records never
    leave this class; callers receive ``FolderInfo`` / ``FileInfo`` /
    ``ShareInfo`` values, and file URLs only ever come from the
    ``AccessMediator``.

    Usage::

        engine = create_async_engine("postgresql+asyncpg://...")
        async with DriveAsync(S3BlobStore.from_credentials("user-data"), engine=engine) as drive:
            folder = await drive.create_folder("alice", "docs")
    """

    def __init__(
        self,
        blobs: BlobStore | None = None,
        *,
        engine: AsyncEngine | None = None,
        session_factory: Callable[..., AsyncSession] | None = None,
        config: DriveConfig | None = None,
        folder_model: type[FolderBase] | None = None,
        file_model: type[FileBase] | None = None,
        share_model: type[ShareGrantBase] | None = None,
    ) -> None:
        if engine is not None and session_factory is not None:
            raise ValueError("Provide engine or session_factory, not both")

        self._config = config or DriveConfig()
        self._blobs: BlobStore = blobs if blobs is not None else MemoryBlobStore()
        self._owns_engine = False
        if engine is None and session_factory is None:
            engine = create_async_engine(self._config.database_url, echo=self._config.echo)
            self._owns_engine = True
        self._engine = engine
        self._session_factory = session_factory or async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

        self._folder_model: type[FolderBase] = folder_model or Folder
        self._file_model: type[FileBase] = file_model or File
        self._share_model: type[ShareGrantBase] = share_model or ShareGrant

        # Composed services
        self._resources = ResourceStore(self._folder_model, self._file_model)
        self._sharing = ShareRegistry(self._share_model)
        self._resolver = PermissionResolver(self._sharing)
        self._tree = TreeWalker(self._folder_model)
        self._lifecycle = LifecycleManager(
            self._resources,
            self._tree,
            self._sharing,
            self._blobs,
            batch_size=self._config.purge_batch_size,
        )
        self._mediator = AccessMediator(
            self._resolver, self._blobs, ttl_seconds=self._config.signed_url_ttl
        )
        self._events = EventBus()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> DriveConfig:
        return self._config

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def blobs(self) -> BlobStore:
        return self._blobs

    @property
    def resolver(self) -> PermissionResolver:
        return self._resolver

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create the drive tables if they do not exist yet."""
        if self._engine is None:
            return
        async with self._engine.begin() as conn:
            for model in (self._folder_model, self._file_model, self._share_model):
                await conn.run_sync(
                    lambda c, m=model: m.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
                )

    async def close(self) -> None:
        """Dispose of the engine if this instance created it."""
        if self._owns_engine and self._engine is not None:
            await self._engine.dispose()

    async def __aenter__(self) -> DriveAsync:
        await self.open()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Per-operation session: create, commit, close."""
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # ------------------------------------------------------------------
    # Conversion helpers
    # ------------------------------------------------------------------

    def _to_info(
        self, resource: FolderBase | FileBase, role: str | None = None
    ) -> FolderInfo | FileInfo:
        if self._resources.resource_type_of(resource) is ResourceType.FILE:
            return self._resources.file_to_info(resource, role=role)  # type: ignore[arg-type]
        return self._resources.folder_to_info(resource, role=role)  # type: ignore[arg-type]

    async def _build_listing(
        self,
        session: AsyncSession,
        folders: list[FolderBase],
        files: list[FileBase],
        actor_id: str,
        actor_email: str | None,
    ) -> tuple[list[FolderInfo], list[FileInfo]]:
        """Attach roles and mediated URLs, dropping anything the actor cannot view."""
        folder_infos: list[FolderInfo] = []
        for folder in folders:
            role = await self._resolver.explicit_role(session, folder, actor_id, actor_email)
            if role is not None:
                folder_infos.append(self._resources.folder_to_info(folder, role=role.value))

        file_infos: list[FileInfo] = []
        for file in files:
            role = await self._resolver.explicit_role(session, file, actor_id, actor_email)
            if role is None:
                continue
            url = await self._mediator.mediate_for_listing(session, file, actor_id, actor_email)
            file_infos.append(self._resources.file_to_info(file, url=url, role=role.value))
        return folder_infos, file_infos

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_resources(
        self,
        actor_id: str,
        actor_email: str | None = None,
        folder_id: str | None = None,
        filter: ListFilter | str = ListFilter.ALL,
    ) -> ListResult:
        """List the folders and files visible to the actor under one view.

        A folder the actor cannot see yields an empty listing rather
        than an error.
        """
        try:
            view = ListFilter(filter)
        except ValueError:
            raise ValidationError(f"Invalid filter: {filter!r}") from None

        empty = ListResult(folder_id=folder_id, filter=view)
        async with self._session() as session:
            folders: list[Any]
            files: list[Any]
            if view is ListFilter.SHARED:
                if not actor_email:
                    return ListResult(filter=view)
                grants = await self._sharing.list_shared_with(session, actor_email)
                folders = await self._resources.get_many(
                    session,
                    ResourceType.FOLDER,
                    [g.resource_id for g in grants if g.resource_type == ResourceType.FOLDER.value],
                    active_only=True,
                )
                files = await self._resources.get_many(
                    session,
                    ResourceType.FILE,
                    [g.resource_id for g in grants if g.resource_type == ResourceType.FILE.value],
                    active_only=True,
                )
                folder_id = None
            elif view is ListFilter.TRASH:
                folders, files = await self._resources.list_trash(session, actor_id)
                folder_id = None
            elif view is ListFilter.RECENT:
                folders = []
                files = await self._resources.list_recent(
                    session, actor_id, self._config.recent_limit
                )
                folder_id = None
            else:
                owner_id = actor_id
                if folder_id is not None:
                    parent = await self._resources.get_folder(session, folder_id)
                    if parent is None or not await self._resolver.can_view(
                        session, parent, actor_id, actor_email
                    ):
                        logger.debug("Folder %s not visible to %s", folder_id, actor_id)
                        return empty
                    owner_id = parent.owner_id
                if view is ListFilter.STARRED:
                    folders = []
                    files = await self._resources.list_starred(session, folder_id, owner_id)
                else:
                    folders, files = await self._resources.list_children(
                        session, folder_id, owner_id
                    )

            folder_infos, file_infos = await self._build_listing(
                session, folders, files, actor_id, actor_email
            )
        return ListResult(folders=folder_infos, files=file_infos, folder_id=folder_id, filter=view)

    async def get_breadcrumbs(
        self,
        folder_id: str,
        actor_id: str,
        actor_email: str | None = None,
    ) -> list[Breadcrumb]:
        """Path from the root through *folder_id* itself.

        Non-owners only see the folder itself, never the owner's ancestors.
        """
        async with self._session() as session:
            folder = await self._resources.get_folder(session, folder_id)
            if folder is None:
                raise NotFoundError(f"Folder not found: {folder_id}")
            if not await self._resolver.can_view(session, folder, actor_id, actor_email):
                raise AccessDeniedError(f"Access denied: no access to {folder_id}")
            chain: list[FolderBase] = []
            if folder.owner_id == actor_id:
                chain = await self._resources.get_ancestor_path(session, folder_id)
            return [Breadcrumb(id=f.id, name=f.name) for f in [*chain, folder]]

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_folder(
        self,
        actor_id: str,
        name: str,
        parent_id: str | None = None,
    ) -> FolderInfo:
        """Create a folder owned by the actor."""
        async with self._session() as session:
            folder = await self._resources.create_folder(session, name, actor_id, parent_id)
            info = self._resources.folder_to_info(folder, role="owner")
        await self._events.emit(
            ResourceEvent(EventType.RESOURCE_CREATED, info.id, ResourceType.FOLDER.value, actor_id)
        )
        return info

    async def prepare_upload(self, actor_id: str, file_name: str) -> UploadTicket:
        """Reserve a storage key and return a presigned upload URL for it."""
        name = validate_name(file_name, "File name")
        key = make_storage_key(actor_id, name)
        url = await self._blobs.sign_upload(key, self._config.upload_url_ttl)
        return UploadTicket(storage_key=key, url=url)

    async def upload_complete(
        self,
        actor_id: str,
        name: str,
        storage_key: str,
        size_bytes: int,
        mime_type: str | None = None,
        folder_id: str | None = None,
    ) -> FileInfo:
        """Record a finished upload as a new file owned by the actor."""
        async with self._session() as session:
            file = await self._resources.create_file(
                session,
                owner_id=actor_id,
                name=name,
                storage_key=storage_key,
                size_bytes=size_bytes,
                mime_type=mime_type,
                folder_id=folder_id,
            )
            info = self._resources.file_to_info(file, role="owner")
        await self._events.emit(
            ResourceEvent(EventType.RESOURCE_CREATED, info.id, ResourceType.FILE.value, actor_id)
        )
        return info

    async def copy_file(self, resource_id: str, actor_id: str) -> FileInfo:
        """Duplicate one of the actor's files, blob included."""
        async with self._session() as session:
            original = await self._resources.get_file(session, resource_id, owner_id=actor_id)
            if original is None:
                raise NotFoundError(f"File not found: {resource_id}")
            copy = await self._lifecycle.copy_file(session, original, actor_id)
            info = self._resources.file_to_info(copy, role="owner")
        await self._events.emit(
            ResourceEvent(
                EventType.RESOURCE_CREATED,
                info.id,
                ResourceType.FILE.value,
                actor_id,
                {"copied_from": resource_id},
            )
        )
        return info

    # ------------------------------------------------------------------
    # Trash lifecycle
    # ------------------------------------------------------------------

    async def soft_delete(
        self,
        resource_id: str,
        actor_id: str,
        actor_email: str | None = None,
        resource_type: ResourceType | str | None = None,
    ) -> FolderInfo | FileInfo:
        """Move a resource to the trash.  Owners and editors only."""
        kind = _parse_type(resource_type)
        async with self._session() as session:
            resource = await self._resources.require_resource(session, resource_id, kind)
            role = await self._resolver.require_mutate(session, resource, actor_id, actor_email)
            cascaded = await self._lifecycle.soft_delete(session, resource)
            info = self._to_info(resource, role=role.value)
        await self._events.emit(
            ResourceEvent(
                EventType.RESOURCE_TRASHED,
                resource_id,
                self._info_type(info),
                actor_id,
                {"cascaded_file_ids": cascaded},
            )
        )
        return info

    async def restore(
        self,
        resource_id: str,
        actor_id: str,
        resource_type: ResourceType | str | None = None,
    ) -> FolderInfo | FileInfo:
        """Take a resource out of the trash.  Owner only; children stay trashed."""
        kind = _parse_type(resource_type)
        async with self._session() as session:
            resource = await self._resources.require_resource(session, resource_id, kind)
            self._resolver.require_owner(resource, actor_id)
            await self._lifecycle.restore(session, resource)
            info = self._to_info(resource, role="owner")
        await self._events.emit(
            ResourceEvent(EventType.RESOURCE_RESTORED, resource_id, self._info_type(info), actor_id)
        )
        return info

    async def permanent_delete(
        self,
        resource_id: str,
        resource_type: ResourceType | str,
        actor_id: str,
    ) -> PurgeResult:
        """Purge a resource and everything below it.  Owner only."""
        kind = _parse_type(resource_type)
        async with self._session() as session:
            resource = await self._resources.require_resource(session, resource_id, kind)
            self._resolver.require_owner(resource, actor_id)
            result = await self._lifecycle.permanent_delete(session, resource)
        await self._events.emit(
            ResourceEvent(
                EventType.RESOURCE_PURGED,
                resource_id,
                kind.value if kind else None,
                actor_id,
                {"folders": result.folders_deleted, "files": result.files_deleted},
            )
        )
        return result

    async def empty_trash(self, owner_id: str) -> PurgeResult:
        """Purge everything in the owner's trash, subtrees included."""
        async with self._session() as session:
            result = await self._lifecycle.empty_trash(session, owner_id)
        if result.folders_deleted or result.files_deleted:
            await self._events.emit(
                ResourceEvent(
                    EventType.RESOURCE_PURGED,
                    owner_id,
                    None,
                    owner_id,
                    {"folders": result.folders_deleted, "files": result.files_deleted},
                )
            )
        return result

    # ------------------------------------------------------------------
    # Edit
    # ------------------------------------------------------------------

    async def move(
        self,
        resource_id: str,
        destination_folder_id: str | None,
        actor_id: str,
        resource_type: ResourceType | str | None = None,
    ) -> FolderInfo | FileInfo:
        """Move a resource under another of the owner's folders (``None`` = root)."""
        kind = _parse_type(resource_type)
        async with self._session() as session:
            resource = await self._resources.require_resource(session, resource_id, kind)
            self._resolver.require_owner(resource, actor_id)
            await self._resources.move(session, resource, destination_folder_id)
            info = self._to_info(resource, role="owner")
        await self._events.emit(
            ResourceEvent(
                EventType.RESOURCE_MOVED,
                resource_id,
                self._info_type(info),
                actor_id,
                {"destination_folder_id": destination_folder_id},
            )
        )
        return info

    async def rename(
        self,
        resource_id: str,
        new_name: str,
        actor_id: str,
        actor_email: str | None = None,
        resource_type: ResourceType | str | None = None,
    ) -> FolderInfo | FileInfo:
        """Rename a resource.  Owners and editors only."""
        name = validate_name(new_name)
        kind = _parse_type(resource_type)
        async with self._session() as session:
            resource = await self._resources.require_resource(session, resource_id, kind)
            role = await self._resolver.require_mutate(session, resource, actor_id, actor_email)
            await self._resources.rename(session, resource, name)
            info = self._to_info(resource, role=role.value)
        await self._events.emit(
            ResourceEvent(
                EventType.RESOURCE_RENAMED,
                resource_id,
                self._info_type(info),
                actor_id,
                {"name": name},
            )
        )
        return info

    async def toggle_star(self, resource_id: str, value: bool, owner_id: str) -> FileInfo:
        """Set the starred flag on one of the owner's files."""
        async with self._session() as session:
            file = await self._resources.get_file(session, resource_id, owner_id=owner_id)
            if file is None:
                raise NotFoundError(f"File not found: {resource_id}")
            await self._resources.update(session, file, is_starred=bool(value))
            return self._resources.file_to_info(file, role="owner")

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------

    async def invite(
        self,
        resource_id: str,
        resource_type: ResourceType | str,
        email: str,
        role: str,
        owner_id: str,
    ) -> ShareInfo:
        """Grant *email* a role on one of the owner's resources."""
        _, _, kind = validate_invite(email, role, resource_type)
        async with self._session() as session:
            resource = await self._resources.require_resource(session, resource_id, kind)
            self._resolver.require_owner(resource, owner_id)
            grant = await self._sharing.invite(session, resource_id, kind, email, role, owner_id)
            info = _share_to_info(grant)
        await self._events.emit(
            ResourceEvent(
                EventType.SHARE_GRANTED,
                resource_id,
                kind.value,
                owner_id,
                {"grantee_email": info.grantee_email, "role": info.role},
            )
        )
        return info

    async def revoke_share(self, share_id: str, actor_id: str) -> ShareInfo:
        """Delete a grant.  Only the owner who issued it may revoke it."""
        async with self._session() as session:
            grant = await self._sharing.require(session, share_id)
            if grant.owner_id != actor_id:
                raise AccessDeniedError("Access denied: only the owner may revoke this share")
            await self._sharing.revoke(session, share_id)
            info = _share_to_info(grant)
        await self._events.emit(
            ResourceEvent(
                EventType.SHARE_REVOKED,
                info.resource_id,
                info.resource_type,
                actor_id,
                {"grantee_email": info.grantee_email},
            )
        )
        return info

    async def change_role(self, share_id: str, role: str, actor_id: str) -> ShareInfo:
        """Change a grant's role.  Only the owner who issued it may change it."""
        parsed_role = validate_role(role)
        async with self._session() as session:
            grant = await self._sharing.require(session, share_id)
            if grant.owner_id != actor_id:
                raise AccessDeniedError("Access denied: only the owner may change this share")
            grant = await self._sharing.change_role(session, share_id, parsed_role)
            return _share_to_info(grant)

    async def list_shares(self, resource_id: str, actor_id: str) -> list[ShareInfo]:
        """List grants on one of the actor's resources."""
        async with self._session() as session:
            resource = await self._resources.require_resource(session, resource_id)
            self._resolver.require_owner(resource, actor_id)
            grants = await self._sharing.list_by_resource(session, resource_id)
            return [_share_to_info(g) for g in grants]

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    async def mediate_access(
        self,
        resource_id: str,
        actor_id: str,
        actor_email: str | None = None,
    ) -> str:
        """Return a time-limited URL for a file the actor may view."""
        async with self._session() as session:
            resource = await self._resources.require_resource(session, resource_id)
            return await self._mediator.mediate(session, resource, actor_id, actor_email)

    @staticmethod
    def _info_type(info: FolderInfo | FileInfo) -> str:
        return ResourceType.FILE.value if isinstance(info, FileInfo) else ResourceType.FOLDER.value
