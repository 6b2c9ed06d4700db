"""ResolveX service layer -- intake pipeline and its collaborators."""

from __future__ import annotations

from resolvex.services.access import ComplaintAccessService
from resolvex.services.classifier import (
    DepartmentClassifierClient,
    DepartmentRouter,
    FallbackPolicy,
)
from resolvex.services.composer import ComplaintFields, Notification, compose, reference_code
from resolvex.services.errors import (
    ClassificationError,
    ComplaintForbiddenError,
    ComplaintNotFoundError,
    ComplaintServiceError,
    InvalidImageError,
    NotificationError,
    PersistenceError,
    UploadError,
    ValidationError,
)
from resolvex.services.intake import IntakeOrchestrator, allocate_complaint_id
from resolvex.services.keepalive import KeepaliveScheduler
from resolvex.services.listing import ComplaintListingService
from resolvex.services.media import GCSMediaStore, MediaExternalizer, decode_image_payload
from resolvex.services.notifications import (
    GmailEmailTransport,
    NotificationDispatcher,
    NotificationJob,
    NotificationOutcome,
)
from resolvex.services.store import (
    ComplaintStore,
    InMemoryComplaintStore,
    RedisComplaintStore,
)

__all__ = [
    "ClassificationError",
    "ComplaintAccessService",
    "ComplaintFields",
    "ComplaintForbiddenError",
    "ComplaintListingService",
    "ComplaintNotFoundError",
    "ComplaintServiceError",
    "ComplaintStore",
    "DepartmentClassifierClient",
    "DepartmentRouter",
    "FallbackPolicy",
    "GCSMediaStore",
    "GmailEmailTransport",
    "InMemoryComplaintStore",
    "IntakeOrchestrator",
    "InvalidImageError",
    "KeepaliveScheduler",
    "MediaExternalizer",
    "Notification",
    "NotificationDispatcher",
    "NotificationError",
    "NotificationJob",
    "NotificationOutcome",
    "PersistenceError",
    "RedisComplaintStore",
    "UploadError",
    "ValidationError",
    "allocate_complaint_id",
    "compose",
    "decode_image_payload",
    "reference_code",
]
