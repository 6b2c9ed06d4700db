"""Read-only complaint listing."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import structlog

from resolvex.models.complaint import PagedComplaints

if TYPE_CHECKING:
    from resolvex.services.store import ComplaintStore

logger = structlog.get_logger(__name__)


class ComplaintListingService:
    """Paginated, newest-first complaint listing.

    ``page`` and ``page_size`` fall back to their defaults when absent or
    non-positive; ``page_size`` is capped at ``max_page_size``.
    """

    __slots__ = ("_default_page_size", "_max_page_size", "_store")

    def __init__(
        self,
        store: ComplaintStore,
        *,
        default_page_size: int = 2,
        max_page_size: int = 100,
    ) -> None:
        self._store = store
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    def normalise(self, page: int | None, page_size: int | None) -> tuple[int, int]:
        page = page if page is not None and page > 0 else 1
        if page_size is None or page_size <= 0:
            page_size = self._default_page_size
        return page, min(page_size, self._max_page_size)

    async def list(
        self,
        owner_id: str | None = None,
        page: int | None = None,
        page_size: int | None = None,
    ) -> PagedComplaints:
        page, page_size = self.normalise(page, page_size)
        total = await self._store.count(owner_id)
        items = await self._store.find(
            owner_id,
            skip=(page - 1) * page_size,
            limit=page_size,
        )

        logger.info(
            "listing.page_served",
            owner_id=owner_id,
            page=page,
            page_size=page_size,
            returned=len(items),
            total=total,
        )
        return PagedComplaints(
            items=items,
            page=page,
            page_size=page_size,
            total=total,
            total_pages=math.ceil(total / page_size),
        )

    async def count_for_owner(self, owner_id: str) -> int:
        return await self._store.count(owner_id)
