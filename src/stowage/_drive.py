"""Drive: synchronous facade over DriveAsync."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
from typing import TYPE_CHECKING, Any

from stowage._drive_async import DriveAsync
from stowage.drive.config import DriveConfig

if TYPE_CHECKING:
    from stowage.drive.blobs import BlobStore
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
    from stowage.events import EventBus

logger = logging.getLogger(__name__)


class Drive:
    """Synchronous drive backed by a private event loop in a background thread.

    All services are async internally; the loop bridges the gap so
    callers can use the drive from plain sync code, scripts, or inside
    an existing async context.

    Usage::

        with Drive("sqlite+aiosqlite:///drive.db") as drive:
            docs = drive.create_folder("alice", "docs")
            drive.soft_delete(docs.id, "alice")
    """

    def __init__(
        self,
        database_url: str | None = None,
        *,
        blobs: BlobStore | None = None,
        config: DriveConfig | None = None,
    ) -> None:
        self._closed = False
        cfg = config or DriveConfig()
        if database_url is not None:
            cfg = dataclasses.replace(cfg, database_url=database_url)

        # Private event loop in a daemon thread
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()

        try:
            self._async = self._run(self._async_init(blobs, cfg))
        except Exception:
            self._stop_loop()
            raise

    async def _async_init(self, blobs: BlobStore | None, config: DriveConfig) -> DriveAsync:
        drive = DriveAsync(blobs, config=config)
        await drive.open()
        return drive

    def _run(self, coro: Any) -> Any:
        """Submit *coro* to the private loop and block for the result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def _stop_loop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Dispose the engine, stop the event loop and join the thread."""
        if self._closed:
            return
        self._closed = True

        try:
            self._run(self._async.close())
        finally:
            self._stop_loop()

    def __enter__(self) -> Drive:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    @property
    def events(self) -> EventBus:
        return self._async.events

    @property
    def blobs(self) -> BlobStore:
        return self._async.blobs

    # ------------------------------------------------------------------
    # Wrappers (sync)
    # ------------------------------------------------------------------

    def list_resources(
        self,
        actor_id: str,
        actor_email: str | None = None,
        folder_id: str | None = None,
        filter: ListFilter | str = "all",
    ) -> ListResult:
        return self._run(self._async.list_resources(actor_id, actor_email, folder_id, filter))

    def get_breadcrumbs(
        self, folder_id: str, actor_id: str, actor_email: str | None = None
    ) -> list[Breadcrumb]:
        return self._run(self._async.get_breadcrumbs(folder_id, actor_id, actor_email))

    def create_folder(self, actor_id: str, name: str, parent_id: str | None = None) -> FolderInfo:
        return self._run(self._async.create_folder(actor_id, name, parent_id))

    def prepare_upload(self, actor_id: str, file_name: str) -> UploadTicket:
        return self._run(self._async.prepare_upload(actor_id, file_name))

    def upload_complete(
        self,
        actor_id: str,
        name: str,
        storage_key: str,
        size_bytes: int,
        mime_type: str | None = None,
        folder_id: str | None = None,
    ) -> FileInfo:
        return self._run(
            self._async.upload_complete(
                actor_id, name, storage_key, size_bytes, mime_type, folder_id
            )
        )

    def copy_file(self, resource_id: str, actor_id: str) -> FileInfo:
        return self._run(self._async.copy_file(resource_id, actor_id))

    def soft_delete(
        self,
        resource_id: str,
        actor_id: str,
        actor_email: str | None = None,
        resource_type: ResourceType | str | None = None,
    ) -> FolderInfo | FileInfo:
        return self._run(
            self._async.soft_delete(resource_id, actor_id, actor_email, resource_type)
        )

    def restore(
        self,
        resource_id: str,
        actor_id: str,
        resource_type: ResourceType | str | None = None,
    ) -> FolderInfo | FileInfo:
        return self._run(self._async.restore(resource_id, actor_id, resource_type))

    def permanent_delete(
        self, resource_id: str, resource_type: ResourceType | str, actor_id: str
    ) -> PurgeResult:
        return self._run(self._async.permanent_delete(resource_id, resource_type, actor_id))

    def empty_trash(self, owner_id: str) -> PurgeResult:
        return self._run(self._async.empty_trash(owner_id))

    def move(
        self,
        resource_id: str,
        destination_folder_id: str | None,
        actor_id: str,
        resource_type: ResourceType | str | None = None,
    ) -> FolderInfo | FileInfo:
        return self._run(
            self._async.move(resource_id, destination_folder_id, actor_id, resource_type)
        )

    def rename(
        self,
        resource_id: str,
        new_name: str,
        actor_id: str,
        actor_email: str | None = None,
        resource_type: ResourceType | str | None = None,
    ) -> FolderInfo | FileInfo:
        return self._run(
            self._async.rename(resource_id, new_name, actor_id, actor_email, resource_type)
        )

    def toggle_star(self, resource_id: str, value: bool, owner_id: str) -> FileInfo:
        return self._run(self._async.toggle_star(resource_id, value, owner_id))

    def invite(
        self,
        resource_id: str,
        resource_type: ResourceType | str,
        email: str,
        role: str,
        owner_id: str,
    ) -> ShareInfo:
        return self._run(self._async.invite(resource_id, resource_type, email, role, owner_id))

    def revoke_share(self, share_id: str, actor_id: str) -> ShareInfo:
        return self._run(self._async.revoke_share(share_id, actor_id))

    def change_role(self, share_id: str, role: str, actor_id: str) -> ShareInfo:
        return self._run(self._async.change_role(share_id, role, actor_id))

    def list_shares(self, resource_id: str, actor_id: str) -> list[ShareInfo]:
        return self._run(self._async.list_shares(resource_id, actor_id))

    def mediate_access(
        self, resource_id: str, actor_id: str, actor_email: str | None = None
    ) -> str:
        return self._run(self._async.mediate_access(resource_id, actor_id, actor_email))
