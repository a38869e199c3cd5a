"""End-to-end tests for DriveAsync over an in-memory database and blob store."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stowage import DriveAsync
from stowage.drive.config import DriveConfig
from stowage.drive.exceptions import (
    AccessDeniedError,
    ConflictError,
    NotFoundError,
    UpstreamStorageError,
    ValidationError,
)
from stowage.drive.types import FileInfo, ListFilter

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from .conftest import RecordingBlobStore

BOB = "bob@example.com"


async def _upload(
    drive: DriveAsync,
    blobs: RecordingBlobStore,
    owner_id: str,
    name: str,
    folder_id: str | None = None,
    data: bytes = b"data",
) -> FileInfo:
    """Upload bytes the way a client would, then record the file."""
    ticket = await drive.prepare_upload(owner_id, name)
    await blobs.put(ticket.storage_key, data)
    return await drive.upload_complete(
        owner_id, name, ticket.storage_key, len(data), "application/octet-stream", folder_id
    )


async def _key_of(
    drive: DriveAsync, blobs: RecordingBlobStore, file_id: str, owner_id: str
) -> str:
    """Recover a file's storage key through a mediated URL."""
    url = await drive.mediate_access(file_id, owner_id)
    key = blobs.verify_url(url)
    assert key is not None
    return key


# =========================================================================
# Construction
# =========================================================================


class TestConstruction:
    async def test_engine_and_factory_exclusive(self, async_engine: AsyncEngine):
        factory = async_sessionmaker(async_engine, class_=AsyncSession)
        with pytest.raises(ValueError, match="not both"):
            DriveAsync(engine=async_engine, session_factory=factory)

    async def test_session_factory(self, async_engine: AsyncEngine, blobs: RecordingBlobStore):
        factory = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
        drive = DriveAsync(blobs, session_factory=factory)
        info = await drive.create_folder("alice", "docs")
        listing = await drive.list_resources("alice")
        assert [f.id for f in listing.folders] == [info.id]

    async def test_config_exposed(self, drive: DriveAsync):
        assert drive.config.signed_url_ttl == 3600


# =========================================================================
# Scenarios
# =========================================================================


class TestDocsScenario:
    async def test_docs_tree(self, drive: DriveAsync, blobs: RecordingBlobStore):
        docs = await drive.create_folder("alice", "docs")
        year = await drive.create_folder("alice", "2024", docs.id)
        report = await _upload(drive, blobs, "alice", "report.pdf", year.id)
        report_key = await _key_of(drive, blobs, report.id, "alice")

        # Nothing is trashed yet.
        result = await drive.empty_trash("alice")
        assert result.message == "Trash is already empty"
        assert blobs.remove_calls == []
        assert report_key in blobs

        # Soft delete marks only the folder; the subfolder stays active.
        await drive.soft_delete(docs.id, "alice")
        trash = await drive.list_resources("alice", filter="trash")
        assert [f.id for f in trash.folders] == [docs.id]
        assert trash.files == []
        inside = await drive.list_resources("alice", folder_id=docs.id)
        assert [f.id for f in inside.folders] == [year.id]
        assert inside.folders[0].is_deleted is False

        result = await drive.permanent_delete(docs.id, "folder", "alice")
        assert result.folders_deleted == 2
        assert result.files_deleted == 1
        assert blobs.removed_keys == [report_key]
        assert report_key not in blobs

        root = await drive.list_resources("alice")
        assert root.folders == [] and root.files == []
        with pytest.raises(NotFoundError):
            await drive.mediate_access(report.id, "alice")


class TestViewerScenario:
    async def test_viewer_reads_but_cannot_rename(
        self, drive: DriveAsync, blobs: RecordingBlobStore
    ):
        photo = await _upload(drive, blobs, "alice", "x.png", data=b"\x89PNG")
        await drive.invite(photo.id, "file", BOB, "viewer", "alice")

        url = await drive.mediate_access(photo.id, "bob", BOB)
        key = blobs.verify_url(url)
        assert key is not None
        assert blobs.get(key) == b"\x89PNG"

        with pytest.raises(AccessDeniedError):
            await drive.rename(photo.id, "y.png", "bob", BOB)
        listing = await drive.list_resources("alice")
        assert [f.name for f in listing.files] == ["x.png"]


class TestCopyScenario:
    async def test_copy(self, drive: DriveAsync, blobs: RecordingBlobStore):
        docs = await drive.create_folder("alice", "docs")
        original = await _upload(drive, blobs, "alice", "a.txt", docs.id, b"hello")
        await drive.toggle_star(original.id, True, "alice")
        await drive.soft_delete(original.id, "alice")
        await drive.restore(original.id, "alice")

        copy = await drive.copy_file(original.id, "alice")

        assert copy.name == "a (Copy).txt"
        assert copy.is_starred is False
        assert copy.is_deleted is False
        assert copy.folder_id == docs.id
        original_key = await _key_of(drive, blobs, original.id, "alice")
        copy_key = await _key_of(drive, blobs, copy.id, "alice")
        assert copy_key != original_key
        assert blobs.get(copy_key) == b"hello"

    async def test_copy_requires_ownership(self, drive: DriveAsync, blobs: RecordingBlobStore):
        original = await _upload(drive, blobs, "alice", "a.txt")
        await drive.invite(original.id, "file", BOB, "editor", "alice")
        with pytest.raises(NotFoundError):
            await drive.copy_file(original.id, "bob")


# =========================================================================
# Properties
# =========================================================================


class TestSharingProperties:
    async def test_duplicate_invite_conflicts(self, drive: DriveAsync, blobs: RecordingBlobStore):
        file = await _upload(drive, blobs, "alice", "a.txt")
        await drive.invite(file.id, "file", BOB, "viewer", "alice")
        with pytest.raises(ConflictError):
            await drive.invite(file.id, "file", "Bob@Example.com", "editor", "alice")
        shares = await drive.list_shares(file.id, "alice")
        assert len(shares) == 1
        assert shares[0].role == "viewer"

    async def test_owner_beats_grant(self, drive: DriveAsync, blobs: RecordingBlobStore):
        file = await _upload(drive, blobs, "alice", "a.txt")
        await drive.invite(file.id, "file", "alice@example.com", "viewer", "alice")
        listing = await drive.list_resources("alice", "alice@example.com")
        assert listing.files[0].role == "owner"
        renamed = await drive.rename(file.id, "b.txt", "alice", "alice@example.com")
        assert renamed.name == "b.txt"


class TestViewerCannotMutate:
    @pytest.fixture
    async def shared(self, drive: DriveAsync, blobs: RecordingBlobStore):
        docs = await drive.create_folder("alice", "docs")
        file = await _upload(drive, blobs, "alice", "a.txt", docs.id)
        await drive.invite(docs.id, "folder", BOB, "viewer", "alice")
        await drive.invite(file.id, "file", BOB, "viewer", "alice")
        return docs, file

    async def test_soft_delete(self, drive: DriveAsync, shared):
        docs, file = shared
        for resource in (docs, file):
            with pytest.raises(AccessDeniedError):
                await drive.soft_delete(resource.id, "bob", BOB)

    async def test_rename(self, drive: DriveAsync, shared):
        docs, _ = shared
        with pytest.raises(AccessDeniedError):
            await drive.rename(docs.id, "mine", "bob", BOB)

    async def test_owner_only_operations(self, drive: DriveAsync, shared):
        docs, file = shared
        with pytest.raises(AccessDeniedError):
            await drive.restore(file.id, "bob")
        with pytest.raises(AccessDeniedError):
            await drive.permanent_delete(file.id, "file", "bob")
        with pytest.raises(AccessDeniedError):
            await drive.move(file.id, None, "bob")
        with pytest.raises(AccessDeniedError):
            await drive.invite(docs.id, "folder", "carol@example.com", "viewer", "bob")
        with pytest.raises(AccessDeniedError):
            await drive.list_shares(docs.id, "bob")

    async def test_nothing_changed(self, drive: DriveAsync, shared):
        docs, _ = shared
        with pytest.raises(AccessDeniedError):
            await drive.soft_delete(docs.id, "bob", BOB)
        listing = await drive.list_resources("alice")
        assert listing.folders[0].is_deleted is False

    async def test_editor_can_mutate(self, drive: DriveAsync, shared):
        docs, _ = shared
        shares = await drive.list_shares(docs.id, "alice")
        await drive.change_role(shares[0].id, "editor", "alice")
        renamed = await drive.rename(docs.id, "papers", "bob", BOB)
        assert renamed.name == "papers"
        assert renamed.role == "editor"
        trashed = await drive.soft_delete(docs.id, "bob", BOB)
        assert trashed.is_deleted is True


class TestSoftDeleteRestore:
    async def test_round_trip(self, drive: DriveAsync, blobs: RecordingBlobStore):
        docs = await drive.create_folder("alice", "docs")
        sub = await drive.create_folder("alice", "sub", docs.id)
        file = await _upload(drive, blobs, "alice", "a.txt", docs.id)

        for info in (sub, file):
            await drive.soft_delete(info.id, "alice")
            restored = await drive.restore(info.id, "alice")
            assert restored.is_deleted is False
            assert restored.name == info.name
            assert restored.owner_id == info.owner_id

        listing = await drive.list_resources("alice", folder_id=docs.id)
        assert listing.folders[0].parent_id == docs.id
        assert listing.files[0].folder_id == docs.id
        assert listing.files[0].size_bytes == file.size_bytes

    async def test_folder_restore_leaves_children_trashed(
        self, drive: DriveAsync, blobs: RecordingBlobStore
    ):
        docs = await drive.create_folder("alice", "docs")
        child = await _upload(drive, blobs, "alice", "a.txt", docs.id)
        await drive.soft_delete(docs.id, "alice")
        await drive.restore(docs.id, "alice")
        trash = await drive.list_resources("alice", filter="trash")
        assert [f.id for f in trash.files] == [child.id]

    async def test_missing(self, drive: DriveAsync):
        with pytest.raises(NotFoundError):
            await drive.soft_delete("missing", "alice")
        with pytest.raises(NotFoundError):
            await drive.restore("missing", "alice")


class TestPurge:
    async def test_one_removal_per_key(self, drive: DriveAsync, blobs: RecordingBlobStore):
        root = await drive.create_folder("alice", "root")
        a = await drive.create_folder("alice", "a", root.id)
        b = await drive.create_folder("alice", "b", a.id)
        for folder_id in (root.id, a.id, a.id, b.id):
            await _upload(drive, blobs, "alice", "f.txt", folder_id)

        result = await drive.permanent_delete(root.id, "folder", "alice")

        assert result.files_deleted == 4
        assert result.folders_deleted == 3
        assert len(blobs.removed_keys) == 4
        assert len(set(blobs.removed_keys)) == 4
        assert len(blobs) == 0

    async def test_wrong_type_not_found(self, drive: DriveAsync):
        docs = await drive.create_folder("alice", "docs")
        with pytest.raises(NotFoundError):
            await drive.permanent_delete(docs.id, "file", "alice")

    async def test_invalid_type(self, drive: DriveAsync):
        with pytest.raises(ValidationError):
            await drive.permanent_delete("x", "drive", "alice")

    async def test_grants_removed(self, drive: DriveAsync, blobs: RecordingBlobStore):
        file = await _upload(drive, blobs, "alice", "a.txt")
        await drive.invite(file.id, "file", BOB, "viewer", "alice")
        await drive.permanent_delete(file.id, "file", "alice")
        shared = await drive.list_resources("bob", BOB, filter="shared")
        assert shared.files == []

    async def test_empty_trash(self, drive: DriveAsync, blobs: RecordingBlobStore):
        docs = await drive.create_folder("alice", "docs")
        deep = await drive.create_folder("alice", "deep", docs.id)
        await _upload(drive, blobs, "alice", "d.txt", deep.id)
        loose = await _upload(drive, blobs, "alice", "loose.txt")
        kept = await _upload(drive, blobs, "alice", "kept.txt")
        await drive.soft_delete(docs.id, "alice")
        await drive.soft_delete(loose.id, "alice")

        result = await drive.empty_trash("alice")

        assert result.folders_deleted == 2
        assert result.files_deleted == 2
        listing = await drive.list_resources("alice")
        assert [f.id for f in listing.files] == [kept.id]
        assert listing.folders == []
        assert len(blobs) == 1

    async def test_partial_purge_resumes(
        self, async_engine: AsyncEngine, blobs: RecordingBlobStore
    ):
        config = DriveConfig(purge_batch_size=2)
        async with DriveAsync(blobs, engine=async_engine, config=config) as drive:
            docs = await drive.create_folder("alice", "docs")
            for i in range(4):
                await _upload(drive, blobs, "alice", f"f{i}.txt", docs.id)
            blobs.fail_on = {1}

            with pytest.raises(UpstreamStorageError):
                await drive.permanent_delete(docs.id, "folder", "alice")

            # The first batch is gone; the failed batch kept both records and blobs.
            listing = await drive.list_resources("alice", folder_id=docs.id)
            assert len(listing.files) == 2
            assert len(blobs) == 2
            assert len(blobs.removed_keys) == 2

            result = await drive.permanent_delete(docs.id, "folder", "alice")

            assert result.files_deleted == 2
            assert result.folders_deleted == 1
            assert len(blobs.removed_keys) == 4
            assert len(set(blobs.removed_keys)) == 4
            assert len(blobs) == 0
            assert (await drive.list_resources("alice")).folders == []

    async def test_expiring_session_factory(
        self, async_engine: AsyncEngine, blobs: RecordingBlobStore
    ):
        factory = async_sessionmaker(async_engine, class_=AsyncSession)
        drive = DriveAsync(blobs, session_factory=factory, config=DriveConfig(purge_batch_size=2))
        docs = await drive.create_folder("alice", "docs")
        sub = await drive.create_folder("alice", "sub", docs.id)
        for i in range(3):
            await _upload(drive, blobs, "alice", f"f{i}.txt", docs.id)
        await _upload(drive, blobs, "alice", "deep.txt", sub.id)

        result = await drive.permanent_delete(docs.id, "folder", "alice")

        assert result.folders_deleted == 2
        assert result.files_deleted == 4
        assert len(blobs.remove_calls) == 2
        assert len(blobs) == 0
        assert (await drive.list_resources("alice")).folders == []

    async def test_expiring_session_factory_file_and_trash(
        self, async_engine: AsyncEngine, blobs: RecordingBlobStore
    ):
        factory = async_sessionmaker(async_engine, class_=AsyncSession)
        drive = DriveAsync(blobs, session_factory=factory, config=DriveConfig(purge_batch_size=2))
        single = await _upload(drive, blobs, "alice", "single.txt")
        result = await drive.permanent_delete(single.id, "file", "alice")
        assert result.files_deleted == 1

        docs = await drive.create_folder("alice", "docs")
        for i in range(3):
            await _upload(drive, blobs, "alice", f"f{i}.txt", docs.id)
        await drive.soft_delete(docs.id, "alice")

        result = await drive.empty_trash("alice")

        assert result.folders_deleted == 1
        assert result.files_deleted == 3
        assert len(blobs) == 0


# =========================================================================
# Listing
# =========================================================================


class TestListing:
    async def test_root_listing(self, drive: DriveAsync, blobs: RecordingBlobStore):
        await drive.create_folder("alice", "docs")
        await _upload(drive, blobs, "alice", "a.txt")
        await drive.create_folder("bob", "bobs")

        listing = await drive.list_resources("alice")
        assert listing.filter is ListFilter.ALL
        assert listing.folder_id is None
        assert [f.name for f in listing.folders] == ["docs"]
        assert listing.folders[0].role == "owner"
        file = listing.files[0]
        assert file.role == "owner"
        assert blobs.verify_url(file.url) is not None

    async def test_starred(self, drive: DriveAsync, blobs: RecordingBlobStore):
        a = await _upload(drive, blobs, "alice", "a.txt")
        await _upload(drive, blobs, "alice", "b.txt")
        starred = await drive.toggle_star(a.id, True, "alice")
        assert starred.is_starred is True

        listing = await drive.list_resources("alice", filter="starred")
        assert [f.id for f in listing.files] == [a.id]
        assert listing.folders == []

        await drive.toggle_star(a.id, False, "alice")
        assert (await drive.list_resources("alice", filter="starred")).files == []

    async def test_recent(self, async_engine: AsyncEngine, blobs: RecordingBlobStore):
        async with DriveAsync(
            blobs, engine=async_engine, config=DriveConfig(recent_limit=2)
        ) as drive:
            docs = await drive.create_folder("alice", "docs")
            await _upload(drive, blobs, "alice", "a.txt")
            await _upload(drive, blobs, "alice", "b.txt", docs.id)
            await _upload(drive, blobs, "alice", "c.txt")
            listing = await drive.list_resources("alice", filter=ListFilter.RECENT)
            assert len(listing.files) == 2
            assert listing.folders == []

    async def test_shared_with_me(self, drive: DriveAsync, blobs: RecordingBlobStore):
        docs = await drive.create_folder("alice", "docs")
        file = await _upload(drive, blobs, "alice", "a.txt")
        await _upload(drive, blobs, "alice", "private.txt")
        await drive.invite(docs.id, "folder", BOB, "editor", "alice")
        await drive.invite(file.id, "file", BOB, "viewer", "alice")

        listing = await drive.list_resources("bob", BOB, filter="shared")
        assert [(f.id, f.role) for f in listing.folders] == [(docs.id, "editor")]
        assert [(f.id, f.role) for f in listing.files] == [(file.id, "viewer")]
        assert blobs.verify_url(listing.files[0].url) is not None

    async def test_shared_hides_trashed(self, drive: DriveAsync, blobs: RecordingBlobStore):
        docs = await drive.create_folder("alice", "docs")
        photo = await _upload(drive, blobs, "alice", "x.png")
        await drive.invite(docs.id, "folder", BOB, "viewer", "alice")
        await drive.invite(photo.id, "file", BOB, "viewer", "alice")
        await drive.soft_delete(photo.id, "alice")
        await drive.soft_delete(docs.id, "alice")

        listing = await drive.list_resources("bob", BOB, filter="shared")
        assert listing.folders == []
        assert listing.files == []

        await drive.restore(photo.id, "alice")
        listing = await drive.list_resources("bob", BOB, filter="shared")
        assert [f.id for f in listing.files] == [photo.id]

    async def test_shared_without_email(self, drive: DriveAsync):
        assert (await drive.list_resources("bob", filter="shared")).folders == []

    async def test_shared_folder_browsing(self, drive: DriveAsync, blobs: RecordingBlobStore):
        docs = await drive.create_folder("alice", "docs")
        visible = await _upload(drive, blobs, "alice", "visible.txt", docs.id)
        await _upload(drive, blobs, "alice", "hidden.txt", docs.id)
        await drive.invite(docs.id, "folder", BOB, "viewer", "alice")
        await drive.invite(visible.id, "file", BOB, "viewer", "alice")

        listing = await drive.list_resources("bob", BOB, folder_id=docs.id)
        assert [f.id for f in listing.files] == [visible.id]

    async def test_invisible_folder_is_empty(self, drive: DriveAsync, blobs: RecordingBlobStore):
        docs = await drive.create_folder("alice", "docs")
        await _upload(drive, blobs, "alice", "a.txt", docs.id)
        listing = await drive.list_resources("eve", "eve@example.com", folder_id=docs.id)
        assert listing.files == [] and listing.folders == []
        missing = await drive.list_resources("alice", folder_id="missing")
        assert missing.files == []

    async def test_invalid_filter(self, drive: DriveAsync):
        with pytest.raises(ValidationError):
            await drive.list_resources("alice", filter="everything")

    async def test_signing_failure_keeps_listing(
        self,
        drive: DriveAsync,
        blobs: RecordingBlobStore,
        monkeypatch: pytest.MonkeyPatch,
    ):
        await _upload(drive, blobs, "alice", "a.txt")

        async def broken(key, ttl):
            raise UpstreamStorageError("signer offline")

        monkeypatch.setattr(blobs, "sign", broken)
        listing = await drive.list_resources("alice")
        assert len(listing.files) == 1
        assert listing.files[0].url is None


class TestBreadcrumbs:
    async def test_owner_sees_full_path(self, drive: DriveAsync):
        a = await drive.create_folder("alice", "a")
        b = await drive.create_folder("alice", "b", a.id)
        c = await drive.create_folder("alice", "c", b.id)
        crumbs = await drive.get_breadcrumbs(c.id, "alice")
        assert [(x.id, x.name) for x in crumbs] == [(a.id, "a"), (b.id, "b"), (c.id, "c")]

    async def test_grantee_sees_folder_only(self, drive: DriveAsync):
        a = await drive.create_folder("alice", "a")
        b = await drive.create_folder("alice", "b", a.id)
        await drive.invite(b.id, "folder", BOB, "viewer", "alice")
        crumbs = await drive.get_breadcrumbs(b.id, "bob", BOB)
        assert [x.id for x in crumbs] == [b.id]

    async def test_stranger_denied(self, drive: DriveAsync):
        a = await drive.create_folder("alice", "a")
        with pytest.raises(AccessDeniedError):
            await drive.get_breadcrumbs(a.id, "eve")

    async def test_missing(self, drive: DriveAsync):
        with pytest.raises(NotFoundError):
            await drive.get_breadcrumbs("missing", "alice")


# =========================================================================
# Create / upload
# =========================================================================


class TestCreate:
    async def test_create_folder_bad_parent(self, drive: DriveAsync):
        bobs = await drive.create_folder("bob", "bobs")
        with pytest.raises(AccessDeniedError):
            await drive.create_folder("alice", "x", bobs.id)

    async def test_create_folder_empty_name(self, drive: DriveAsync):
        with pytest.raises(ValidationError):
            await drive.create_folder("alice", "  ")

    async def test_prepare_upload(self, drive: DriveAsync, blobs: RecordingBlobStore):
        ticket = await drive.prepare_upload("alice", "photo.png")
        assert ticket.storage_key.startswith("alice/")
        assert ticket.storage_key.endswith("_photo.png")
        assert blobs.verify_url(ticket.url) == ticket.storage_key
        assert "method=put" in ticket.url

    async def test_upload_complete_rejects_foreign_key(self, drive: DriveAsync):
        with pytest.raises(ValidationError):
            await drive.upload_complete("alice", "a.txt", "bob/123_a.txt", 4)

    async def test_failed_upload_rolls_back(self, drive: DriveAsync, blobs: RecordingBlobStore):
        with pytest.raises(ValidationError):
            await drive.upload_complete("alice", "a.txt", "alice/k", 1, folder_id="missing")
        assert (await drive.list_resources("alice")).files == []
        # The key is still free after the rollback.
        info = await drive.upload_complete("alice", "a.txt", "alice/k", 1)
        assert info.name == "a.txt"


# =========================================================================
# Edit
# =========================================================================


class TestEdit:
    async def test_move_file(self, drive: DriveAsync, blobs: RecordingBlobStore):
        docs = await drive.create_folder("alice", "docs")
        file = await _upload(drive, blobs, "alice", "a.txt")
        moved = await drive.move(file.id, docs.id, "alice")
        assert moved.folder_id == docs.id
        back = await drive.move(file.id, None, "alice")
        assert back.folder_id is None

    async def test_move_folder_into_descendant(self, drive: DriveAsync):
        a = await drive.create_folder("alice", "a")
        b = await drive.create_folder("alice", "b", a.id)
        with pytest.raises(ValidationError):
            await drive.move(a.id, b.id, "alice")

    async def test_move_into_foreign_folder(self, drive: DriveAsync, blobs: RecordingBlobStore):
        bobs = await drive.create_folder("bob", "bobs")
        file = await _upload(drive, blobs, "alice", "a.txt")
        with pytest.raises(AccessDeniedError):
            await drive.move(file.id, bobs.id, "alice")

    async def test_rename_validates_first(self, drive: DriveAsync):
        with pytest.raises(ValidationError):
            await drive.rename("missing", "   ", "alice")

    async def test_rename_strips(self, drive: DriveAsync):
        docs = await drive.create_folder("alice", "docs")
        renamed = await drive.rename(docs.id, "  papers ", "alice")
        assert renamed.name == "papers"

    async def test_toggle_star_missing(self, drive: DriveAsync, blobs: RecordingBlobStore):
        with pytest.raises(NotFoundError):
            await drive.toggle_star("missing", True, "alice")
        file = await _upload(drive, blobs, "alice", "a.txt")
        with pytest.raises(NotFoundError):
            await drive.toggle_star(file.id, True, "bob")


# =========================================================================
# Share management
# =========================================================================


class TestShareManagement:
    async def test_invite_validates(self, drive: DriveAsync, blobs: RecordingBlobStore):
        file = await _upload(drive, blobs, "alice", "a.txt")
        with pytest.raises(ValidationError):
            await drive.invite(file.id, "file", BOB, "owner", "alice")
        with pytest.raises(ValidationError):
            await drive.invite(file.id, "file", "nobody", "viewer", "alice")

    async def test_invite_missing_resource(self, drive: DriveAsync):
        with pytest.raises(NotFoundError):
            await drive.invite("missing", "file", BOB, "viewer", "alice")

    async def test_revoke(self, drive: DriveAsync, blobs: RecordingBlobStore):
        file = await _upload(drive, blobs, "alice", "a.txt")
        share = await drive.invite(file.id, "file", BOB, "viewer", "alice")
        with pytest.raises(AccessDeniedError):
            await drive.revoke_share(share.id, "bob")
        revoked = await drive.revoke_share(share.id, "alice")
        assert revoked.id == share.id
        with pytest.raises(NotFoundError):
            await drive.revoke_share(share.id, "alice")
        with pytest.raises(AccessDeniedError):
            await drive.mediate_access(file.id, "bob", BOB)

    async def test_change_role(self, drive: DriveAsync, blobs: RecordingBlobStore):
        file = await _upload(drive, blobs, "alice", "a.txt")
        share = await drive.invite(file.id, "file", BOB, "viewer", "alice")
        with pytest.raises(AccessDeniedError):
            await drive.change_role(share.id, "editor", "bob")
        updated = await drive.change_role(share.id, "editor", "alice")
        assert updated.role == "editor"
        with pytest.raises(NotFoundError):
            await drive.change_role("missing", "editor", "alice")

    async def test_change_role_validates_first(self, drive: DriveAsync):
        # The grant does not exist, so a store lookup would raise NotFoundError.
        with pytest.raises(ValidationError):
            await drive.change_role("missing", "owner", "alice")
        with pytest.raises(ValidationError):
            await drive.change_role("missing", "admin", "alice")


# =========================================================================
# Access
# =========================================================================


class TestMediateAccess:
    async def test_stranger_denied(self, drive: DriveAsync, blobs: RecordingBlobStore):
        file = await _upload(drive, blobs, "alice", "a.txt")
        with pytest.raises(AccessDeniedError):
            await drive.mediate_access(file.id, "eve", "eve@example.com")

    async def test_folder_rejected(self, drive: DriveAsync):
        docs = await drive.create_folder("alice", "docs")
        with pytest.raises(ValidationError):
            await drive.mediate_access(docs.id, "alice")

    async def test_missing(self, drive: DriveAsync):
        with pytest.raises(NotFoundError):
            await drive.mediate_access("missing", "alice")
