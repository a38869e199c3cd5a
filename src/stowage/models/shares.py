"""ShareGrant model: per-resource grants to a grantee email.

Provides ``ShareGrantBase`` (non-table) and ``ShareGrant`` (concrete table).
Subclass ``ShareGrantBase`` with ``table=True`` and a custom ``__tablename__``
to use a different table name per backend.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class ShareGrantBase(SQLModel):
    """Base fields for a share grant. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    resource_id: str = Field(index=True)
    resource_type: str = Field(default="file")
    grantee_email: str = Field(index=True)
    role: str = Field(default="viewer")
    owner_id: str = Field(default="", index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class ShareGrant(ShareGrantBase, table=True):
    """Default share grant table: ``stowage_share_grants``.

    One grant per ``(resource_id, grantee_email)`` pair.
    """

    __tablename__ = "stowage_share_grants"
    __table_args__ = (
        UniqueConstraint("resource_id", "grantee_email", name="uq_share_resource_grantee"),
    )
