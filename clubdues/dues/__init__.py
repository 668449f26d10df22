"""Membership dues: leave tracking, the dues engine and the member service."""

from clubdues.dues.engine import compute_member_dues
from clubdues.dues.leaves import LeaveTracker, leave_covers
from clubdues.dues.members import (
    ActivityFilter,
    MemberFilters,
    MemberService,
    MemberSort,
)

__all__ = [
    "ActivityFilter",
    "LeaveTracker",
    "MemberFilters",
    "MemberService",
    "MemberSort",
    "compute_member_dues",
    "leave_covers",
]
