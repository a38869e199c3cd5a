"""ShareRegistry: share grant CRUD keyed by resource and grantee email.

Stateless service that receives the grant model at construction
and a session at call time, following the ResourceStore pattern.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .exceptions import ConflictError, NotFoundError, ValidationError
from .permissions import GRANTABLE_ROLES, Role
from .types import ResourceType
from .utils import normalize_email

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from stowage.models.shares import ShareGrantBase


def validate_role(role: str | Role) -> Role:
    try:
        parsed = Role(role)
    except ValueError:
        parsed = None
    if parsed not in GRANTABLE_ROLES:
        raise ValidationError(f"Invalid role: {role!r}. Must be 'editor' or 'viewer'.")
    return parsed  # type: ignore[return-value]


def validate_invite(
    grantee_email: str,
    role: str | Role,
    resource_type: str | ResourceType,
) -> tuple[str, Role, ResourceType]:
    """Check invite input without touching the store.

    Returns the normalised ``(email, role, resource_type)``.
    """
    email = normalize_email(grantee_email)
    if not email or "@" not in email:
        raise ValidationError(f"Invalid grantee email: {grantee_email!r}")
    parsed_role = validate_role(role)
    try:
        parsed_type = ResourceType(resource_type)
    except ValueError:
        raise ValidationError(f"Invalid resource type: {resource_type!r}") from None
    return email, parsed_role, parsed_type


class ShareRegistry:
    """Manages share grants.

    Constructor receives the concrete grant model so callers can use
    custom SQLModel subclasses with different table names.
    """

    def __init__(self, share_model: type[ShareGrantBase]) -> None:
        self._share_model = share_model

    @property
    def share_model(self) -> type[ShareGrantBase]:
        return self._share_model

    async def invite(
        self,
        session: AsyncSession,
        resource_id: str,
        resource_type: str | ResourceType,
        grantee_email: str,
        role: str | Role,
        owner_id: str,
    ) -> ShareGrantBase:
        """Create a grant. Flushes but does not commit.

        Raises ``ConflictError`` when the grantee already holds a grant
        on the resource; an existing grant is never overwritten.
        """
        email, parsed_role, parsed_type = validate_invite(grantee_email, role, resource_type)

        if await self.find(session, resource_id, email) is not None:
            raise ConflictError(f"{email} already has access to {resource_id}")

        grant = self._share_model(
            id=str(uuid.uuid4()),
            resource_id=resource_id,
            resource_type=parsed_type.value,
            grantee_email=email,
            role=parsed_role.value,
            owner_id=owner_id,
        )
        session.add(grant)
        try:
            await session.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent invite for the same pair.
            raise ConflictError(f"{email} already has access to {resource_id}") from exc
        return grant

    async def get(self, session: AsyncSession, share_id: str) -> ShareGrantBase | None:
        """Get a grant by id."""
        model = self._share_model
        result = await session.execute(select(model).where(model.id == share_id))
        return result.scalar_one_or_none()

    async def require(self, session: AsyncSession, share_id: str) -> ShareGrantBase:
        """Get a grant by id, raising ``NotFoundError`` if absent."""
        grant = await self.get(session, share_id)
        if grant is None:
            raise NotFoundError(f"Share not found: {share_id}")
        return grant

    async def find(
        self,
        session: AsyncSession,
        resource_id: str,
        grantee_email: str,
    ) -> ShareGrantBase | None:
        """Return the grant for ``(resource_id, grantee_email)`` if any."""
        model = self._share_model
        result = await session.execute(
            select(model).where(
                model.resource_id == resource_id,
                model.grantee_email == normalize_email(grantee_email),
            )
        )
        return result.scalar_one_or_none()

    async def revoke(self, session: AsyncSession, share_id: str) -> ShareGrantBase:
        """Delete a grant. Returns the removed grant."""
        grant = await self.require(session, share_id)
        await session.delete(grant)
        await session.flush()
        return grant

    async def change_role(
        self,
        session: AsyncSession,
        share_id: str,
        role: str | Role,
    ) -> ShareGrantBase:
        """Change the role of an existing grant."""
        parsed_role = validate_role(role)
        grant = await self.require(session, share_id)
        grant.role = parsed_role.value
        await session.flush()
        return grant

    async def list_by_resource(
        self,
        session: AsyncSession,
        resource_id: str,
    ) -> list[ShareGrantBase]:
        """List all grants on a resource, oldest first."""
        model = self._share_model
        result = await session.execute(
            select(model).where(model.resource_id == resource_id).order_by(model.created_at)  # type: ignore[arg-type]
        )
        return list(result.scalars().all())

    async def list_shared_with(
        self,
        session: AsyncSession,
        grantee_email: str,
    ) -> list[ShareGrantBase]:
        """List all grants held by *grantee_email*."""
        model = self._share_model
        result = await session.execute(
            select(model).where(model.grantee_email == normalize_email(grantee_email))
        )
        return list(result.scalars().all())

    async def delete_for_resources(
        self,
        session: AsyncSession,
        resource_ids: Iterable[str],
    ) -> int:
        """Delete every grant on the given resources. Missing rows are not an error."""
        ids = list(resource_ids)
        if not ids:
            return 0
        model = self._share_model
        result = await session.execute(
            delete(model).where(model.resource_id.in_(ids))  # type: ignore[union-attr]
        )
        return result.rowcount or 0  # type: ignore[attr-defined]
