from __future__ import annotations

from enum import StrEnum
from typing import Final


class ComplaintStatus(StrEnum):
    __slots__ = ()

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"


# Intent recorded when the classifier could not be reached.
UNCLASSIFIED: Final[str] = "UNCLASSIFIED"
