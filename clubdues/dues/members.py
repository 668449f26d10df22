"""
Member Service

Member CRUD plus the derived dues view used by the member list, the
member profile and the overdue report.

Dues are recomputed on every read from the stored member, payment and
leave rows. Nothing derived is persisted except the on_leave cache.
"""

from collections import defaultdict
from datetime import date
from enum import Enum
from typing import Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from clubdues.audit.logger import AuditLogger
from clubdues.dates import utc_today
from clubdues.dues.engine import compute_member_dues
from clubdues.dues.leaves import LeaveTracker
from clubdues.models.audit import EntityType, LogEntryBuilder
from clubdues.models.common import apply_patch
from clubdues.models.member import (
    ActivityStatus,
    Member,
    MemberDues,
    MemberUpdate,
    PaymentStatus,
)
from clubdues.services.storage import MemberRepository, PaymentRepository


logger = structlog.get_logger()

ENTITY_LABEL = "Member"


class ActivityFilter(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    TERMINATED = "terminated"
    ARCHIVED = "archived"
    ON_LEAVE = "on_leave"
    ALL = "all"                  # Everything except archived


class MemberSort(str, Enum):
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"


class MemberFilters(BaseModel):
    """Filters of the member list."""

    activity: ActivityFilter = ActivityFilter.ALL
    payment_status: Optional[PaymentStatus] = None
    search: Optional[str] = Field(
        default=None,
        description="Case-insensitive substring of the member name"
    )
    sort: MemberSort = MemberSort.NAME_ASC

    def matches(self, dues: MemberDues) -> bool:
        if self.search and self.search.strip().lower() not in dues.name.lower():
            return False

        if self.activity == ActivityFilter.ON_LEAVE:
            if dues.payment_status != PaymentStatus.ON_LEAVE:
                return False
        elif self.activity == ActivityFilter.ALL:
            if dues.activity_status == ActivityStatus.ARCHIVED:
                return False
        elif dues.activity_status.value != self.activity.value:
            return False

        if self.payment_status and dues.payment_status != self.payment_status:
            return False
        return True


class MemberService:
    """Member reads with derived dues, and audited member writes."""

    def __init__(
        self,
        members: MemberRepository,
        payments: PaymentRepository,
        leave_tracker: LeaveTracker,
        audit: AuditLogger,
        today: Callable[[], date] = utc_today,
    ):
        self._members = members
        self._payments = payments
        self._leaves = leave_tracker
        self._audit = audit
        self._today = today

    async def _compute(self, member: Member) -> MemberDues:
        payments = await self._payments.find(member_id=member.id)
        leaves = await self._leaves.list_for_member(member.id)
        return compute_member_dues(member, payments, leaves, self._today())

    async def get_members(self, filters: Optional[MemberFilters] = None) -> list[MemberDues]:
        """
        Every member with derived dues, filtered and sorted.

        Payments and leaves are loaded once for the whole list.
        """
        filters = filters or MemberFilters()
        today = self._today()

        members = await self._members.list_all()
        payments_by_member = defaultdict(list)
        for payment in await self._payments.list_all():
            payments_by_member[payment.member_id].append(payment)
        leaves_by_member = defaultdict(list)
        for leave in await self._leaves.list_all():
            leaves_by_member[leave.member_id].append(leave)

        result = [
            compute_member_dues(
                member,
                payments_by_member[member.id],
                leaves_by_member[member.id],
                today,
            )
            for member in members
        ]
        result = [dues for dues in result if filters.matches(dues)]
        result.sort(
            key=lambda d: d.name.lower(),
            reverse=filters.sort == MemberSort.NAME_DESC,
        )
        return result

    async def get_member_by_id(self, member_id: UUID) -> Optional[MemberDues]:
        member = await self._members.get(member_id)
        if member is None:
            return None
        return await self._compute(member)

    async def add_member(self, member: Member) -> MemberDues:
        await self._members.insert(member)
        await self._audit.log(LogEntryBuilder.created(
            EntityType.MEMBER, "member", member.name, member.id
        ))
        logger.info("member_added", member_id=str(member.id))
        return await self._compute(member)

    async def update_member(self, member_id: UUID, patch: MemberUpdate) -> MemberDues:
        before = await self._members.require(member_id)
        after = apply_patch(before, patch)
        await self._members.update(after)
        await self._audit.log(LogEntryBuilder.updated(
            EntityType.MEMBER, ENTITY_LABEL, after.name, before, after
        ))
        return await self._compute(after)

    async def get_overdue_report(self) -> list[MemberDues]:
        """Active members who owe at least one month."""
        members = await self.get_members(MemberFilters(
            activity=ActivityFilter.ACTIVE,
            payment_status=PaymentStatus.OVERDUE,
        ))
        return members
