from __future__ import annotations

import enum


class RequestStatus(enum.StrEnum):
    """Lifecycle state of a leave request as seen by the balance engine."""

    DRAFT = "Draft"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


# Status labels written by the request workflow, mapped onto engine states.
REQUEST_STATUS_ALIASES: dict[str, RequestStatus] = {
    "Submitted": RequestStatus.PENDING,
    "Denied": RequestStatus.REJECTED,
    "ChangesRequested": RequestStatus.DRAFT,
}


class LeaveType(enum.StrEnum):
    """Kind of leave being requested."""

    VACATION = "Vacation"
    SICK = "Sick"
    OTHER = "Other"


class EmploymentType(enum.StrEnum):
    """Employment type, which selects the accrual rate."""

    FULL_TIME = "Full Time"
    PART_TIME = "Part Time"


class CacheState(enum.StrEnum):
    """State of a (user, year) balance cache entry."""

    ABSENT = "Absent"
    FRESH = "Fresh"
    STALE = "Stale"
