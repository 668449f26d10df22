"""
Dues Engine

Derives a member's payment status, overdue months and total due from
join date, fee, payments, leaves and activity flags.

DESIGN DECISION: The engine is a pure function.
It performs no I/O and reads no clock; "today" is an argument. The same
inputs always produce the same MemberDues, so the result can be
recomputed on every read instead of being stored.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from clubdues.dates import first_of_month_utc, iter_month_starts, month_key
from clubdues.dues.leaves import leave_covers
from clubdues.models.member import (
    ActivityStatus,
    Leave,
    Member,
    MemberDues,
    OverdueMonth,
    Payment,
    PaymentStatus,
)


logger = structlog.get_logger()


TERMINAL_STATUS = {
    ActivityStatus.TERMINATED: PaymentStatus.TERMINATED,
    ActivityStatus.ARCHIVED: PaymentStatus.ARCHIVED,
}


def _dues(
    member: Member,
    status: PaymentStatus,
    overdue: Optional[list[OverdueMonth]] = None,
) -> MemberDues:
    overdue = overdue or []
    total = sum((m.amount for m in overdue), Decimal("0"))
    return MemberDues(
        **member.model_dump(exclude={"payment_status", "overdue_months", "total_due"}),
        payment_status=status,
        overdue_months=overdue,
        total_due=total,
    )


def overdue_months(
    member: Member,
    paid_months: set[str],
    leaves: list[Leave],
    today: date,
) -> list[OverdueMonth]:
    """
    Walk month by month from the join month.

    Active and inactive members are walked through the current month.
    Terminated and archived members stop strictly before it.
    A month is skipped when paid or when its first day is covered by
    a leave.
    """
    if member.join_date is None:
        logger.warning(
            "member_join_date_invalid",
            member_id=str(member.id),
            member_name=member.name,
        )
        return []

    inclusive = not member.activity_status.is_terminal
    overdue = []
    for month_start in iter_month_starts(member.join_date, today, inclusive=inclusive):
        key = month_key(month_start)
        if key in paid_months:
            continue
        if leave_covers(leaves, month_start):
            continue
        overdue.append(OverdueMonth(month=key, amount=member.monthly_fee))
    return overdue


def compute_member_dues(
    member: Member,
    payments: Iterable[Payment],
    leaves: Iterable[Leave],
    today: date,
) -> MemberDues:
    """
    Compute the derived dues view of one member.

    Resolution order:
    1. On leave today: ON_LEAVE, nothing due
    2. Exempt: EXEMPT, nothing due
    3. Month walk, then OVERDUE > ADVANCE > ON_TIME
    4. Terminated/archived force their own status but still report
       the debt left at departure

    Args:
        member: The member, as stored
        payments: That member's payments
        leaves: That member's leaves
        today: UTC calendar day of evaluation
    """
    leaves = list(leaves)

    if leave_covers(leaves, today):
        return _dues(member, PaymentStatus.ON_LEAVE)

    if member.is_exempt:
        return _dues(member, PaymentStatus.EXEMPT)

    paid_months = {p.reference_month for p in payments}
    overdue = overdue_months(member, paid_months, leaves, today)

    terminal = TERMINAL_STATUS.get(member.activity_status)
    if terminal is not None:
        return _dues(member, terminal, overdue)

    current_month = month_key(first_of_month_utc(today))
    if overdue:
        status = PaymentStatus.OVERDUE
    elif paid_months and max(paid_months) > current_month:
        status = PaymentStatus.ADVANCE
    else:
        status = PaymentStatus.ON_TIME

    return _dues(member, status, overdue)
