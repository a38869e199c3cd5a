"""AccessMediator: the only producer of retrievable URLs.

Storage keys never leave the package unsigned; every URL handed to a
caller is issued here after a permission check.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import AccessDeniedError, StowageError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from stowage.models.resources import FileBase, FolderBase

    from .blobs import BlobStore
    from .permissions import PermissionResolver

logger = logging.getLogger(__name__)


class AccessMediator:
    """Turns a file's storage key into a time-limited URL, gated by role."""

    def __init__(
        self,
        resolver: PermissionResolver,
        blobs: BlobStore,
        *,
        ttl_seconds: int = 3600,
    ) -> None:
        self._resolver = resolver
        self._blobs = blobs
        self._ttl = ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    async def mediate(
        self,
        session: AsyncSession,
        resource: FolderBase | FileBase,
        actor_id: str,
        actor_email: str | None,
    ) -> str:
        """Return a signed URL for *resource*.

        Raises ``AccessDeniedError`` when the actor neither owns the
        resource nor holds a grant on it.
        """
        storage_key = getattr(resource, "storage_key", None)
        if not storage_key:
            raise ValidationError(f"Resource has no retrievable content: {resource.id}")
        role = await self._resolver.explicit_role(session, resource, actor_id, actor_email)
        if role is None:
            raise AccessDeniedError(f"Access denied: no access to {resource.id}")
        return await self._blobs.sign(storage_key, self._ttl)

    async def mediate_for_listing(
        self,
        session: AsyncSession,
        resource: FileBase,
        actor_id: str,
        actor_email: str | None,
    ) -> str | None:
        """Like ``mediate`` but a signing failure yields ``None`` instead of failing the listing."""
        try:
            return await self.mediate(session, resource, actor_id, actor_email)
        except AccessDeniedError:
            raise
        except StowageError:
            logger.warning("Could not sign URL for %s", resource.id, exc_info=True)
            return None
