"""Error taxonomy for the complaint service.

Only ``ValidationError``, ``UploadError``, ``PersistenceError``,
``ComplaintNotFoundError`` and ``ComplaintForbiddenError`` ever reach a
caller.  ``ClassificationError`` is absorbed by the fallback policy and
``NotificationError`` by the dispatcher.
"""

from __future__ import annotations


class ComplaintServiceError(Exception):
    """Base class.  ``message`` is safe to show to the end user."""

    message = "Complaint service error"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(ComplaintServiceError):
    message = "Please provide description, cause, impact and proof image"

    def __init__(self, missing_fields: list[str] | None = None) -> None:
        self.missing_fields = list(missing_fields or [])
        if self.missing_fields:
            super().__init__(f"Missing required fields: {', '.join(self.missing_fields)}")
        else:
            super().__init__()


class UploadError(ComplaintServiceError):
    message = "Could not upload the proof image"


class InvalidImageError(UploadError):
    """The payload itself is unusable; retrying the same image will not help."""

    message = "Proof image is not a valid image"


class ClassificationError(ComplaintServiceError):
    message = "Department classification unavailable"


class PersistenceError(ComplaintServiceError):
    message = "Could not save the complaint"


class NotificationError(ComplaintServiceError):
    message = "Department notification could not be sent"


class ComplaintNotFoundError(ComplaintServiceError):
    message = "Complaint not found"


class ComplaintForbiddenError(ComplaintServiceError):
    message = "You are not allowed to access this complaint"
