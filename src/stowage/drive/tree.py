"""TreeWalker: breadth-first expansion over the folder parent relation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlmodel import select

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from stowage.models.resources import FolderBase

logger = logging.getLogger(__name__)


class TreeWalker:
    """Computes transitive folder descendants, one query per tree level.

    The only traversal primitive in the package.  Terminates because the
    folder graph is acyclic; no depth bound is assumed.
    """

    def __init__(self, folder_model: type[FolderBase]) -> None:
        self._folder_model = folder_model

    async def descendant_folder_ids(
        self,
        session: AsyncSession,
        owner_id: str,
        seed_folder_ids: Iterable[str],
    ) -> set[str]:
        """Return ids of every folder below the seeds (the seeds themselves excluded)."""
        model = self._folder_model
        seeds = set(seed_folder_ids)
        visited = set(seeds)
        result: set[str] = set()
        frontier = seeds
        depth = 0

        while frontier:
            rows = await session.execute(
                select(model.id).where(  # type: ignore[call-overload]
                    model.owner_id == owner_id,
                    model.parent_id.in_(frontier),  # type: ignore[union-attr]
                )
            )
            # Already-visited ids are dropped so corrupt data cannot loop forever.
            frontier = {row[0] for row in rows} - visited
            visited |= frontier
            result |= frontier
            depth += 1
            logger.debug(
                "Tree level %d under %d seed(s): %d new folder(s)", depth, len(seeds), len(frontier)
            )

        return result
