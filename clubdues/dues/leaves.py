"""
Leave Tracker

Keeps leave-of-absence intervals per member and answers "was this
member on leave on day X".

Two distinct questions are answered from the same rows:
- the cached Member.on_leave flag: does some leave cover today
- the dues walk: does some leave cover the first day of a past month

DESIGN DECISION: Leave tracking is optional.
A deployment without a leave table must still compute dues, so every
read degrades to "no leaves" when the table is missing. Writes still
raise, since silently dropping a leave would be worse.
"""

from datetime import date
from typing import Callable, Iterable, Optional
from uuid import UUID

import structlog

from clubdues.audit.logger import AuditLogger
from clubdues.dates import in_interval, utc_today
from clubdues.models.audit import EntityType, LogEntryBuilder
from clubdues.models.common import apply_patch
from clubdues.models.member import Leave, LeaveUpdate, Member
from clubdues.services.storage import (
    LeaveRepository,
    MemberRepository,
    SchemaUnavailableError,
)


logger = structlog.get_logger()

ENTITY_LABEL = "leave"


def leave_covers(leaves: Iterable[Leave], day: date) -> bool:
    """True if any leave interval contains the day. Open leaves never end."""
    return any(in_interval(day, leave.start_date, leave.end_date) for leave in leaves)


def _leave_name(member: Optional[Member], leave: Leave) -> str:
    who = member.name if member else str(leave.member_id)
    end = leave.end_date.isoformat() if leave.end_date else "open"
    return f"{who} {leave.start_date.isoformat()} - {end}"


class LeaveTracker:
    """Leave CRUD with audit logging and on_leave flag maintenance."""

    def __init__(
        self,
        leaves: LeaveRepository,
        members: MemberRepository,
        audit: AuditLogger,
        today: Callable[[], date] = utc_today,
    ):
        self._leaves = leaves
        self._members = members
        self._audit = audit
        self._today = today

    # =========================================================================
    # READS (soft-fail)
    # =========================================================================

    async def list_all(self) -> list[Leave]:
        try:
            return await self._leaves.list_all()
        except SchemaUnavailableError as e:
            logger.warning("leave_storage_unavailable", error=str(e))
            return []

    async def list_for_member(self, member_id: UUID) -> list[Leave]:
        """A member's leaves, most recent first."""
        try:
            leaves = await self._leaves.find(member_id=member_id)
        except SchemaUnavailableError as e:
            logger.warning(
                "leave_storage_unavailable",
                member_id=str(member_id),
                error=str(e),
            )
            return []
        return sorted(leaves, key=lambda l: l.start_date, reverse=True)

    async def is_on_leave(self, member_id: UUID, day: date) -> bool:
        return leave_covers(await self.list_for_member(member_id), day)

    async def is_currently_on_leave(self, member_id: UUID) -> bool:
        return await self.is_on_leave(member_id, self._today())

    # =========================================================================
    # WRITES
    # =========================================================================

    async def add(self, leave: Leave) -> Leave:
        member = await self._members.require(leave.member_id)
        await self._leaves.insert(leave)
        await self._audit.log(LogEntryBuilder.created(
            EntityType.LEAVE, ENTITY_LABEL, _leave_name(member, leave), leave.id
        ))
        await self.refresh_member_flag(leave.member_id)
        return leave

    async def update(self, leave_id: UUID, patch: LeaveUpdate) -> Leave:
        before = await self._leaves.require(leave_id)
        after = apply_patch(before, patch)
        await self._leaves.update(after)

        member = await self._members.get(after.member_id)
        await self._audit.log(LogEntryBuilder.updated(
            EntityType.LEAVE, ENTITY_LABEL, _leave_name(member, after), before, after
        ))
        await self.refresh_member_flag(after.member_id)
        return after

    async def remove(self, leave_id: UUID) -> None:
        before = await self._leaves.require(leave_id)
        await self._leaves.delete(leave_id)

        member = await self._members.get(before.member_id)
        await self._audit.log(LogEntryBuilder.deleted(
            EntityType.LEAVE, ENTITY_LABEL, _leave_name(member, before), before
        ))
        await self.refresh_member_flag(before.member_id)

    async def refresh_member_flag(self, member_id: UUID) -> bool:
        """
        Recompute the cached on_leave flag and store it if it changed.

        The flag is derived data, so the write is not audit-logged.
        """
        on_leave = await self.is_currently_on_leave(member_id)
        member = await self._members.get(member_id)
        if member is not None and member.on_leave != on_leave:
            await self._members.update(member.model_copy(update={"on_leave": on_leave}))
            logger.info(
                "member_leave_flag_changed",
                member_id=str(member_id),
                on_leave=on_leave,
            )
        return on_leave
