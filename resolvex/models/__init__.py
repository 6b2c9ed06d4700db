from resolvex.models.complaint import (
    Complaint,
    ComplaintInput,
    DepartmentRouting,
    PagedComplaints,
)
from resolvex.models.enums import UNCLASSIFIED, ComplaintStatus
from resolvex.models.user import User

__all__ = [
    "Complaint",
    "ComplaintInput",
    "ComplaintStatus",
    "DepartmentRouting",
    "PagedComplaints",
    "UNCLASSIFIED",
    "User",
]
