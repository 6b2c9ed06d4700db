"""Department notification composer.

Builds the e-mail a department receives for a new complaint.  The text
is generated exactly once per complaint, before it is stored, and the
stored copy is the one that gets sent, so composition must be a pure
function of its inputs: no clock reads, no randomness, no lookups.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from html import escape
from typing import Final

from resolvex.models.complaint import DepartmentRouting
from resolvex.models.user import User

_REFERENCE_LENGTH: Final[int] = 8
_NOT_PROVIDED: Final[str] = "Not provided"

_SUBJECT_TEMPLATE: Final[str] = "New Grievance [Ref #{reference}]: {intent}"

_BODY_TEMPLATE: Final[str] = """\
<div style="font-family: Arial, sans-serif; line-height: 1.5;">
<h2>New Grievance Registered</h2>
<p>Dear {department_name},</p>
<p>A new grievance has been filed through ResolveX and routed to your department.</p>
<table cellpadding="6" style="border-collapse: collapse;">
<tr><td><b>Reference</b></td><td>#{reference} ({complaint_id})</td></tr>
<tr><td><b>Submitted</b></td><td>{submitted_at}</td></tr>
<tr><td><b>Submitted by</b></td><td>{submitter_name} &lt;{submitter_email}&gt;</td></tr>
<tr><td><b>Category</b></td><td>{intent}</td></tr>
<tr><td><b>Location</b></td><td>{location}</td></tr>
</table>
<h3>Description</h3>
<p>{description}</p>
<h3>Cause</h3>
<p>{cause}</p>
<h3>Impact</h3>
<p>{impact}</p>
<h3>Proof</h3>
<p><a href="{image_url}">{image_url}</a></p>
<p>Please quote reference #{reference} in all correspondence.</p>
<p>-- ResolveX Grievance Desk</p>
</div>"""


@dataclass(slots=True, frozen=True)
class ComplaintFields:
    """The citizen-written parts of a complaint, already trimmed."""

    description: str
    cause: str
    impact: str
    location: str | None = None


@dataclass(slots=True, frozen=True)
class Notification:
    """A composed department notification."""

    subject: str
    body: str


def reference_code(complaint_id: str) -> str:
    """Short, stable display form of a complaint id."""
    return complaint_id[-_REFERENCE_LENGTH:].upper()


def _format_timestamp(timestamp: datetime) -> str:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return timestamp.astimezone(UTC).strftime("%d %b %Y, %H:%M UTC")


def compose(
    complaint_id: str,
    submitter: User,
    fields: ComplaintFields,
    routing: DepartmentRouting,
    timestamp: datetime,
    image_url: str,
) -> Notification:
    """Compose the department notification for one complaint."""
    reference = reference_code(complaint_id)
    location = fields.location.strip() if fields.location else ""

    subject = _SUBJECT_TEMPLATE.format(
        reference=reference,
        intent=routing.intent,
    )
    body = _BODY_TEMPLATE.format(
        department_name=escape(routing.department_name),
        reference=reference,
        complaint_id=escape(complaint_id),
        submitted_at=_format_timestamp(timestamp),
        submitter_name=escape(submitter.display_name),
        submitter_email=escape(submitter.email or _NOT_PROVIDED),
        intent=escape(routing.intent),
        location=escape(location) if location else _NOT_PROVIDED,
        description=escape(fields.description),
        cause=escape(fields.cause),
        impact=escape(fields.impact),
        image_url=escape(image_url, quote=True),
    )
    return Notification(subject=subject, body=body)
