"""User-facing account endpoints."""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from resolvex.middleware.auth import require_user
from resolvex.models.user import User

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


class UserStats(BaseModel):
    user_id: str
    member_since: datetime | None
    total_issues: int


@router.get("/stats", response_model=UserStats)
async def get_user_stats(
    request: Request,
    user: User = Depends(require_user),
) -> UserStats:
    """How long the requester has been a member and how many complaints they filed."""
    listing = getattr(request.app.state, "listing", None)
    if listing is None:
        raise HTTPException(status_code=503, detail="Complaint listing not available")

    total = await listing.count_for_owner(user.id)
    logger.info("api.users.stats", user_id=user.id, total_issues=total)
    return UserStats(
        user_id=user.id,
        member_since=user.created_at,
        total_issues=total,
    )
