"""Submitter / requester identity.

Users are owned by the authentication service; this process only sees
the identity the gateway resolved for the current request.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class User(BaseModel):
    """A citizen account, as forwarded by the authentication gateway."""

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    username: str = ""
    email: str = ""
    profile_image: str | None = None
    created_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.username or self.email or self.id
