"""LifecycleManager: soft delete, restore, permanent purge, empty trash, copy.

State machine per resource::

    active -> trashed -> active   (restore)
                      -> purged   (terminal)

Purges remove blobs before metadata.  A blob-store failure stops the
purge before the affected batch's records are deleted, so re-running
the same purge finds the records (and their keys) again.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlmodel import select

from .exceptions import StowageError, UpstreamStorageError, ValidationError
from .types import PurgeResult, ResourceType
from .utils import copy_name, make_storage_key

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from stowage.models.resources import FileBase, FolderBase

    from .blobs import BlobStore
    from .resources import ResourceStore
    from .sharing import ShareRegistry
    from .tree import TreeWalker

logger = logging.getLogger(__name__)


class LifecycleManager:
    """Orchestrates cascading state transitions over the folder tree.

    Cascades are explicit here rather than delegated to the database,
    since the database cannot clean up the blob store.  Authorisation is
    the caller's job: every method assumes the actor has been checked.
    """

    def __init__(
        self,
        resources: ResourceStore,
        tree: TreeWalker,
        sharing: ShareRegistry,
        blobs: BlobStore,
        *,
        batch_size: int = 500,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._resources = resources
        self._tree = tree
        self._sharing = sharing
        self._blobs = blobs
        self._batch_size = batch_size

    # ------------------------------------------------------------------
    # Trash / restore
    # ------------------------------------------------------------------

    async def soft_delete(
        self,
        session: AsyncSession,
        resource: FolderBase | FileBase,
    ) -> list[str]:
        """Mark *resource* as trashed.

        A folder also trashes its direct files.  Subfolders stay active;
        they are only destroyed by a purge of an ancestor.  Returns the
        ids of the files trashed by the cascade.
        """
        now = datetime.now(UTC)
        resource.is_deleted = True
        resource.updated_at = now
        await session.flush()

        if self._resources.resource_type_of(resource) is ResourceType.FILE:
            return []

        model = self._resources.file_model
        rows = await session.execute(
            select(model.id).where(  # type: ignore[call-overload]
                model.folder_id == resource.id,
                model.owner_id == resource.owner_id,
                model.is_deleted.is_(False),  # type: ignore[attr-defined]
            )
        )
        cascaded = [row[0] for row in rows]
        if cascaded:
            await session.execute(
                update(model)
                .where(model.id.in_(cascaded))  # type: ignore[attr-defined]
                .values(is_deleted=True, updated_at=now)
            )
            await session.flush()
        return cascaded

    async def restore(
        self,
        session: AsyncSession,
        resource: FolderBase | FileBase,
    ) -> FolderBase | FileBase:
        """Clear the trashed flag.  Children are not restored."""
        resource.is_deleted = False
        resource.updated_at = datetime.now(UTC)
        await session.flush()
        return resource

    # ------------------------------------------------------------------
    # Purge
    # ------------------------------------------------------------------

    async def permanent_delete(
        self,
        session: AsyncSession,
        resource: FolderBase | FileBase,
    ) -> PurgeResult:
        """Irreversibly remove *resource*, its descendants, and their blobs."""
        # _purge commits between batches; with expire_on_commit the
        # instance is unreadable afterwards.
        resource_id = resource.id
        owner_id = resource.owner_id
        if self._resources.resource_type_of(resource) is ResourceType.FILE:
            entries = [(resource_id, resource.storage_key)]  # type: ignore[union-attr]
            result = await self._purge(session, entries, [])
            logger.info("Purged file %s for %s", resource_id, owner_id)
            return result

        descendants = await self._tree.descendant_folder_ids(session, owner_id, [resource_id])
        folder_ids = {resource_id} | descendants
        files = await self._files_in_folders(session, owner_id, folder_ids)
        result = await self._purge(session, files, folder_ids)
        logger.info(
            "Purged folder %s for %s: %d folder(s), %d file(s)",
            resource_id,
            owner_id,
            result.folders_deleted,
            result.files_deleted,
        )
        return result

    async def empty_trash(self, session: AsyncSession, owner_id: str) -> PurgeResult:
        """Purge everything in *owner_id*'s trash.

        Trashed folders take their whole subtree with them, including
        subfolders and files that were never individually trashed.
        """
        fm = self._resources.folder_model
        rows = await session.execute(
            select(fm.id).where(fm.owner_id == owner_id, fm.is_deleted.is_(True))  # type: ignore[call-overload, attr-defined]
        )
        trashed_folder_ids = {row[0] for row in rows}
        folder_ids = trashed_folder_ids | await self._tree.descendant_folder_ids(
            session, owner_id, trashed_folder_ids
        )

        model = self._resources.file_model
        explicit = await session.execute(
            select(model.id, model.storage_key).where(  # type: ignore[call-overload]
                model.owner_id == owner_id,
                model.is_deleted.is_(True),  # type: ignore[attr-defined]
            )
        )
        implicit = await self._files_in_folders(session, owner_id, folder_ids)

        # A trashed file inside a trashed folder appears in both lists.
        unique: dict[str, str] = {row[0]: row[1] for row in explicit}
        for file_id, storage_key in implicit:
            unique.setdefault(file_id, storage_key)

        if not unique and not folder_ids:
            return PurgeResult(message="Trash is already empty")

        result = await self._purge(session, list(unique.items()), folder_ids)
        logger.info(
            "Emptied trash for %s: %d folder(s), %d file(s)",
            owner_id,
            result.folders_deleted,
            result.files_deleted,
        )
        return result

    async def _files_in_folders(
        self,
        session: AsyncSession,
        owner_id: str,
        folder_ids: Iterable[str],
    ) -> list[tuple[str, str]]:
        """Return ``(id, storage_key)`` for every file in *folder_ids*."""
        ids = list(folder_ids)
        if not ids:
            return []
        model = self._resources.file_model
        result = await session.execute(
            select(model.id, model.storage_key).where(  # type: ignore[call-overload]
                model.owner_id == owner_id,
                model.folder_id.in_(ids),  # type: ignore[union-attr]
            )
        )
        return [(row[0], row[1]) for row in result]

    async def _purge(
        self,
        session: AsyncSession,
        files: list[tuple[str, str]],
        folder_ids: Iterable[str],
    ) -> PurgeResult:
        """Remove blobs, then file rows, batch by batch; folders last.

        *files* holds plain ``(id, storage_key)`` pairs, never ORM
        instances, since each completed batch is committed.  A storage
        failure in a later batch leaves the earlier ones purged and the
        rest intact.
        """
        folder_ids = sorted(folder_ids)
        files = sorted(files)
        files_deleted = 0
        blobs_removed = 0

        for start in range(0, len(files), self._batch_size):
            batch = files[start : start + self._batch_size]
            keys = list(dict.fromkeys(storage_key for _, storage_key in batch))
            try:
                await self._blobs.remove(keys)
            except Exception as exc:
                logger.error(
                    "Blob removal failed for batch of %d key(s); records kept",
                    len(keys),
                    exc_info=True,
                )
                if isinstance(exc, StowageError):
                    raise
                raise UpstreamStorageError(f"Blob removal failed: {exc}") from exc

            batch_ids = [file_id for file_id, _ in batch]
            await self._sharing.delete_for_resources(session, batch_ids)
            files_deleted += await self._resources.delete_files(session, batch_ids)
            blobs_removed += len(keys)
            await session.commit()
            logger.debug("Purged batch of %d file(s)", len(batch))

        await self._sharing.delete_for_resources(session, folder_ids)
        folders_deleted = await self._resources.delete_folders(session, folder_ids)
        await session.flush()

        return PurgeResult(
            message=(
                f"Permanently deleted {folders_deleted} folder(s) and {files_deleted} file(s)"
            ),
            folders_deleted=folders_deleted,
            files_deleted=files_deleted,
            blobs_removed=blobs_removed,
        )

    # ------------------------------------------------------------------
    # Copy
    # ------------------------------------------------------------------

    async def copy_file(
        self,
        session: AsyncSession,
        original: FileBase,
        owner_id: str,
    ) -> FileBase:
        """Duplicate *original* next to itself with a fresh blob.

        The copy is active and unstarred.  If the new record cannot be
        written, the copied blob is removed again.
        """
        if self._resources.resource_type_of(original) is not ResourceType.FILE:
            raise ValidationError("Only files can be copied")
        name = copy_name(original.name)
        new_key = make_storage_key(owner_id, name)

        await self._blobs.copy(original.storage_key, new_key)
        try:
            return await self._resources.create_file(
                session,
                owner_id=owner_id,
                name=name,
                storage_key=new_key,
                size_bytes=original.size_bytes,
                mime_type=original.mime_type,
                folder_id=original.folder_id,
            )
        except Exception:
            try:
                await self._blobs.remove([new_key])
            except StowageError:
                logger.warning("Failed to clean up copied blob %s", new_key, exc_info=True)
            raise
