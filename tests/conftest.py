"""Shared fixtures for Stowage tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from stowage import DriveAsync
from stowage.drive.blobs import MemoryBlobStore
from stowage.drive.exceptions import UpstreamStorageError
from stowage.drive.lifecycle import LifecycleManager
from stowage.drive.permissions import PermissionResolver
from stowage.drive.resources import ResourceStore
from stowage.drive.sharing import ShareRegistry
from stowage.drive.tree import TreeWalker
from stowage.models.resources import File, Folder
from stowage.models.shares import ShareGrant

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine


class RecordingBlobStore(MemoryBlobStore):
    """MemoryBlobStore that records ``remove`` calls; calls numbered in ``fail_on`` raise."""

    def __init__(self) -> None:
        super().__init__(secret=b"test-secret")
        self.remove_calls: list[list[str]] = []
        self.calls = 0
        self.fail_on: set[int] = set()

    async def remove(self, keys):  # type: ignore[override]
        index = self.calls
        self.calls += 1
        if index in self.fail_on:
            raise UpstreamStorageError("simulated blob store outage")
        self.remove_calls.append(list(keys))
        await super().remove(keys)

    @property
    def removed_keys(self) -> list[str]:
        return [k for call in self.remove_calls for k in call]


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async SQLModel session on the in-memory engine."""
    factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session


@pytest.fixture
def blobs() -> RecordingBlobStore:
    return RecordingBlobStore()


@pytest.fixture
def resources() -> ResourceStore:
    return ResourceStore(Folder, File)


@pytest.fixture
def sharing() -> ShareRegistry:
    return ShareRegistry(ShareGrant)


@pytest.fixture
def resolver(sharing: ShareRegistry) -> PermissionResolver:
    return PermissionResolver(sharing)


@pytest.fixture
def tree() -> TreeWalker:
    return TreeWalker(Folder)


@pytest.fixture
def lifecycle(
    resources: ResourceStore,
    tree: TreeWalker,
    sharing: ShareRegistry,
    blobs: RecordingBlobStore,
) -> LifecycleManager:
    return LifecycleManager(resources, tree, sharing, blobs, batch_size=2)


@pytest.fixture
async def drive(
    async_engine: AsyncEngine, blobs: RecordingBlobStore
) -> AsyncIterator[DriveAsync]:
    """DriveAsync on the in-memory engine with a recording blob store."""
    async with DriveAsync(blobs, engine=async_engine) as d:
        yield d
