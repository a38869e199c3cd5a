"""Role enum, the ``can_mutate`` gate, and PermissionResolver.

Every capability check routes through ``can_mutate`` or the resolver's
``require_*`` helpers, never through ad hoc role comparisons.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import AccessDeniedError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from stowage.models.resources import FileBase, FolderBase

    from .sharing import ShareRegistry

    Resource = FolderBase | FileBase


class Role(str, Enum):
    """Capability role of an actor on a resource."""

    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"


GRANTABLE_ROLES: frozenset[Role] = frozenset({Role.EDITOR, Role.VIEWER})


def can_mutate(role: Role) -> bool:
    """True when *role* may change a resource (owner or editor)."""
    return role in (Role.OWNER, Role.EDITOR)


class PermissionResolver:
    """Combines ownership with the share registry to produce a ``Role``.

    Read-only: resolving never writes to the session.
    """

    def __init__(self, sharing: ShareRegistry) -> None:
        self._sharing = sharing

    async def explicit_role(
        self,
        session: AsyncSession,
        resource: Resource,
        actor_id: str,
        actor_email: str | None,
    ) -> Role | None:
        """Return the role the actor holds, or ``None`` with no ownership or grant."""
        if resource.owner_id == actor_id:
            return Role.OWNER
        if not actor_email:
            return None
        grant = await self._sharing.find(session, resource.id, actor_email)
        if grant is None:
            return None
        return Role(grant.role)

    async def resolve(
        self,
        session: AsyncSession,
        resource: Resource,
        actor_id: str,
        actor_email: str | None,
    ) -> Role:
        """Resolve the actor's role; defaults to ``VIEWER``, never ``None``."""
        role = await self.explicit_role(session, resource, actor_id, actor_email)
        return role if role is not None else Role.VIEWER

    async def can_view(
        self,
        session: AsyncSession,
        resource: Resource,
        actor_id: str,
        actor_email: str | None,
    ) -> bool:
        """True when the actor owns *resource* or holds a grant on it."""
        role = await self.explicit_role(session, resource, actor_id, actor_email)
        return role is not None

    async def require_mutate(
        self,
        session: AsyncSession,
        resource: Resource,
        actor_id: str,
        actor_email: str | None,
    ) -> Role:
        """Return the resolved role, raising ``AccessDeniedError`` unless it can mutate."""
        role = await self.resolve(session, resource, actor_id, actor_email)
        if not can_mutate(role):
            raise AccessDeniedError(
                f"Access denied: role {role.value!r} cannot modify {resource.id}"
            )
        return role

    @staticmethod
    def require_owner(resource: Resource, actor_id: str) -> Role:
        """Raise ``AccessDeniedError`` unless *actor_id* owns *resource*."""
        if resource.owner_id != actor_id:
            raise AccessDeniedError(f"Access denied: only the owner may do this to {resource.id}")
        return Role.OWNER
