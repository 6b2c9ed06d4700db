"""Complaint intake pipeline for ResolveX.

Takes one citizen submission from raw input to a stored complaint and a
queued department e-mail.  Steps, in order:

1. Validate required fields (no external calls on failure).
2. Upload the proof image; failure aborts the submission.
3. Route to a department; classifier failure falls back silently.
4. Allocate the complaint id.
5. Compose the notification, embedding the id.
6. Store the complaint in a single write.
7. Return the stored complaint.
8. Queue the notification; its outcome never reaches the caller.

The id and the notification body are both fixed before step 6, so what
the citizen sees, what is stored, and what the department receives
always agree.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final, Protocol
from uuid import uuid4

import structlog

from resolvex.models.complaint import Complaint, ComplaintInput
from resolvex.models.enums import ComplaintStatus
from resolvex.services.composer import ComplaintFields, compose
from resolvex.services.errors import PersistenceError, UploadError, ValidationError
from resolvex.services.notifications import NotificationJob, NotificationOutcome

if TYPE_CHECKING:
    from resolvex.models.user import User
    from resolvex.services.classifier import DepartmentRouter
    from resolvex.services.media import MediaExternalizer
    from resolvex.services.store import ComplaintStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_REQUIRED_FIELDS: Final[tuple[str, ...]] = ("description", "cause", "impact", "proof_image")


def allocate_complaint_id() -> str:
    """Globally unique complaint id, allocated before persistence."""
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


class NotificationQueue(Protocol):
    def submit(self, job: NotificationJob) -> asyncio.Future[NotificationOutcome]: ...


class IntakeOrchestrator:
    """Sequences one complaint submission end to end."""

    __slots__ = ("_clock", "_dispatcher", "_id_factory", "_media", "_router", "_store")

    def __init__(
        self,
        media: MediaExternalizer,
        router: DepartmentRouter,
        store: ComplaintStore,
        dispatcher: NotificationQueue,
        *,
        id_factory: Callable[[], str] = allocate_complaint_id,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._media = media
        self._router = router
        self._store = store
        self._dispatcher = dispatcher
        self._id_factory = id_factory
        self._clock = clock

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def submit(
        self,
        complaint_input: ComplaintInput,
        submitter: User,
    ) -> tuple[Complaint, asyncio.Future[NotificationOutcome]]:
        """Run the intake pipeline.

        Returns the stored complaint and a future for the notification
        outcome.  The future is informational only; callers answering a
        request should not await it.

        Raises
        ------
        ValidationError
            A required field is missing or blank.
        UploadError
            The proof image could not be externalized.
        PersistenceError
            The complaint could not be stored.
        """
        fields = self.validate(complaint_input)
        log = logger.bind(owner_id=submitter.id)
        log.info("intake.received", has_location=fields.location is not None)

        # -- Step 2: externalize proof image ---------------------------------
        try:
            image_url = await self._media.upload(complaint_input.proof_image or "")
        except UploadError:
            log.warning("intake.upload_failed")
            raise
        except Exception:
            log.error("intake.upload_failed", exc_info=True)
            raise UploadError() from None

        # -- Step 3: route to a department -----------------------------------
        routing = await self._router.route(fields.description)

        # -- Step 4-5: allocate id, compose notification ----------------------
        complaint_id = self._id_factory()
        log = log.bind(complaint_id=complaint_id)
        notification = compose(
            complaint_id=complaint_id,
            submitter=submitter,
            fields=fields,
            routing=routing,
            timestamp=self._clock(),
            image_url=image_url,
        )

        complaint = Complaint(
            id=complaint_id,
            owner_id=submitter.id,
            description=fields.description,
            cause=fields.cause,
            impact=fields.impact,
            location=fields.location,
            proof_image_url=image_url,
            status=ComplaintStatus.PENDING,
            notification_body=notification.body,
            classified_intent=routing.intent,
            department_email=routing.department_email,
            department_name=routing.department_name,
        )

        # -- Step 6: persist -------------------------------------------------
        try:
            stored = await self._store.insert(complaint)
        except Exception as exc:
            log.error("intake.persist_failed", exc_info=True)
            await self._discard_image(image_url, log)
            if isinstance(exc, PersistenceError):
                raise
            raise PersistenceError() from None

        log.info(
            "intake.persisted",
            intent=stored.classified_intent,
            department=stored.department_name,
        )

        # -- Step 8: detached dispatch ---------------------------------------
        outcome = self._dispatcher.submit(
            NotificationJob(
                complaint_id=stored.id,
                to=stored.department_email,
                subject=notification.subject,
                body=stored.notification_body,
            )
        )
        return stored, outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def validate(complaint_input: ComplaintInput) -> ComplaintFields:
        """Check required fields and return the trimmed text fields."""
        missing = [
            name
            for name in _REQUIRED_FIELDS
            if not (getattr(complaint_input, name) or "").strip()
        ]
        if missing:
            raise ValidationError(missing)

        location = (complaint_input.location or "").strip()
        return ComplaintFields(
            description=(complaint_input.description or "").strip(),
            cause=(complaint_input.cause or "").strip(),
            impact=(complaint_input.impact or "").strip(),
            location=location or None,
        )

    async def _discard_image(self, image_url: str, log: structlog.stdlib.BoundLogger) -> None:
        """Best-effort removal of an image whose complaint was never stored."""
        try:
            await self._media.delete(image_url)
        except Exception:
            log.warning("intake.orphaned_image", image_url=image_url, exc_info=True)
        else:
            log.info("intake.image_discarded", image_url=image_url)
