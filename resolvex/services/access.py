"""Owner-only access to single complaints: fetch and delete."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from resolvex.services.errors import ComplaintForbiddenError, ComplaintNotFoundError

if TYPE_CHECKING:
    from resolvex.models.complaint import Complaint
    from resolvex.models.user import User
    from resolvex.services.media import MediaExternalizer
    from resolvex.services.store import ComplaintStore

logger = structlog.get_logger(__name__)


class ComplaintAccessService:
    """Fetch and delete complaints on behalf of their owner."""

    __slots__ = ("_media", "_store")

    def __init__(self, store: ComplaintStore, media: MediaExternalizer | None = None) -> None:
        self._store = store
        self._media = media

    async def get(self, complaint_id: str, requester: User) -> Complaint:
        """Return the complaint if *requester* owns it.

        Raises
        ------
        ComplaintNotFoundError
            No complaint with that id.
        ComplaintForbiddenError
            The complaint belongs to someone else.
        """
        complaint = await self._store.get(complaint_id)
        if complaint is None:
            raise ComplaintNotFoundError()
        if complaint.owner_id != requester.id:
            logger.warning(
                "access.forbidden",
                complaint_id=complaint_id,
                requester_id=requester.id,
            )
            raise ComplaintForbiddenError()
        return complaint

    async def delete(self, complaint_id: str, requester: User) -> Complaint:
        """Delete an owned complaint and, best-effort, its proof image.

        The image is removed first; if that fails the failure is logged
        and the record is removed anyway.
        """
        complaint = await self.get(complaint_id, requester)
        log = logger.bind(complaint_id=complaint_id, owner_id=requester.id)

        if self._media is not None and complaint.proof_image_url:
            try:
                await self._media.delete(complaint.proof_image_url)
            except Exception:
                log.warning("access.image_cleanup_failed", exc_info=True)
        else:
            log.info("access.image_cleanup_skipped")

        await self._store.delete(complaint_id)
        log.info("access.deleted")
        return complaint
