"""Complaint API endpoints for ResolveX.

Create, list, fetch and delete citizen complaints.  Every endpoint
requires the gateway-resolved identity (see ``resolvex.middleware.auth``).
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from resolvex.middleware.auth import require_user
from resolvex.models.complaint import Complaint, ComplaintInput, PagedComplaints
from resolvex.models.user import User
from resolvex.services.errors import (
    ComplaintForbiddenError,
    ComplaintNotFoundError,
    InvalidImageError,
    PersistenceError,
    UploadError,
    ValidationError,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/complaints", tags=["complaints"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_service(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{label} not available")
    return service


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", response_model=Complaint, status_code=201)
async def create_complaint(
    body: ComplaintInput,
    request: Request,
    user: User = Depends(require_user),
) -> Complaint:
    """File a new complaint.

    The proof image is uploaded, the complaint is routed to a department
    and stored, and the department is e-mailed in the background.  The
    response does not wait for that e-mail.
    """
    intake = _get_service(request, "intake", "Complaint intake")

    try:
        complaint, _notification = await intake.submit(body, user)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from None
    except InvalidImageError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from None
    except UploadError as exc:
        raise HTTPException(status_code=502, detail=exc.message) from None
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from None
    except Exception:
        logger.error("api.complaints.create_failed", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from None

    return complaint


@router.get("", response_model=PagedComplaints)
async def list_complaints(
    request: Request,
    page: int | None = Query(default=None, description="Page number (1-based)"),
    page_size: int | None = Query(default=None, description="Results per page"),
    limit: int | None = Query(default=None, description="Alias of page_size"),
    user: User = Depends(require_user),
) -> PagedComplaints:
    """List all complaints, newest first."""
    listing = _get_service(request, "listing", "Complaint listing")
    return await listing.list(page=page, page_size=page_size if page_size is not None else limit)


@router.get("/user", response_model=PagedComplaints)
async def list_my_complaints(
    request: Request,
    page: int | None = Query(default=None),
    page_size: int | None = Query(default=None),
    user: User = Depends(require_user),
) -> PagedComplaints:
    """List the requester's own complaints, newest first."""
    listing = _get_service(request, "listing", "Complaint listing")
    return await listing.list(owner_id=user.id, page=page, page_size=page_size)


@router.get("/owner/{owner_id}", response_model=PagedComplaints)
async def list_complaints_by_owner(
    owner_id: str,
    request: Request,
    page: int | None = Query(default=None),
    page_size: int | None = Query(default=None),
    user: User = Depends(require_user),
) -> PagedComplaints:
    """List the complaints filed by one user, newest first."""
    listing = _get_service(request, "listing", "Complaint listing")
    return await listing.list(owner_id=owner_id, page=page, page_size=page_size)


@router.get("/{complaint_id}", response_model=Complaint)
async def get_complaint(
    complaint_id: str,
    request: Request,
    user: User = Depends(require_user),
) -> Complaint:
    """Fetch one of the requester's complaints."""
    access = _get_service(request, "complaint_access", "Complaint access")
    try:
        return await access.get(complaint_id, user)
    except ComplaintNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from None
    except ComplaintForbiddenError as exc:
        raise HTTPException(status_code=403, detail=exc.message) from None


@router.delete("/{complaint_id}")
async def delete_complaint(
    complaint_id: str,
    request: Request,
    user: User = Depends(require_user),
) -> dict:
    """Delete one of the requester's complaints and its proof image."""
    access = _get_service(request, "complaint_access", "Complaint access")
    try:
        await access.delete(complaint_id, user)
    except ComplaintNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from None
    except ComplaintForbiddenError as exc:
        raise HTTPException(status_code=403, detail=exc.message) from None
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from None

    return {"message": "Complaint deleted successfully", "complaint_id": complaint_id}
