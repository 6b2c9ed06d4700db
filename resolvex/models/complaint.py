"""Complaint models for ResolveX.

A complaint is created once by the intake pipeline and never edited
afterwards; the only other lifecycle event is owner-initiated deletion.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field

from resolvex.models.enums import ComplaintStatus


class ComplaintInput(BaseModel):
    """Raw citizen submission, before any validation.

    Fields are deliberately optional here: the intake orchestrator owns
    the required-field check so that a missing field never reaches an
    external service.
    """

    description: str | None = Field(default=None, max_length=5000)
    cause: str | None = Field(default=None, max_length=5000)
    impact: str | None = Field(default=None, max_length=5000)
    location: str | None = Field(default=None, max_length=500)
    # The mobile client sends ``proofImage``.
    proof_image: str | None = Field(
        default=None,
        validation_alias=AliasChoices("proof_image", "proofImage"),
        description="Embedded image payload (data URI or bare base64), not a URL",
    )


class DepartmentRouting(BaseModel):
    """Where a complaint is sent, and why."""

    model_config = {"frozen": True}

    department_email: str = Field(..., min_length=1)
    department_name: str = Field(..., min_length=1)
    intent: str = Field(..., min_length=1)


class Complaint(BaseModel):
    """A persisted citizen grievance."""

    model_config = {"frozen": True}

    id: str
    owner_id: str
    description: str
    cause: str
    impact: str
    location: str | None = None
    proof_image_url: str = Field(..., min_length=1)
    status: ComplaintStatus = ComplaintStatus.PENDING
    notification_body: str = Field(..., min_length=1)
    classified_intent: str
    department_email: str = Field(..., min_length=1)
    department_name: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PagedComplaints(BaseModel):
    """One page of complaints, newest first."""

    items: list[Complaint]
    page: int
    page_size: int
    total: int
    total_pages: int
