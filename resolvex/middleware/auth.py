"""Requester identity for protected endpoints.

Authentication itself (login, tokens) is handled by the gateway in
front of this service.  The gateway forwards the verified identity in
``X-User-*`` headers; this dependency turns them into a :class:`User`
and rejects requests that arrive without one.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from resolvex.models.user import User

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_user_id_header = APIKeyHeader(name="X-User-Id", auto_error=False)


def _parse_created_at(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


async def require_user(
    request: Request,
    user_id: str | None = Security(_user_id_header),
) -> User:
    """FastAPI dependency returning the authenticated requester.

    Usage::

        @router.post("/complaints")
        async def create(user: User = Depends(require_user)): ...
    """
    if not user_id or not user_id.strip():
        logger.warning(
            "auth.missing_identity",
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown",
        )
        raise HTTPException(
            status_code=401,
            detail="Not authenticated.",
        )

    headers = request.headers
    return User(
        id=user_id.strip(),
        username=headers.get("X-User-Name", ""),
        email=headers.get("X-User-Email", ""),
        profile_image=headers.get("X-User-Profile-Image") or None,
        created_at=_parse_created_at(headers.get("X-User-Created-At")),
    )
