"""
Member, Leave and Payment Models

These models describe who belongs to the organization, when they were
away, and which months they have paid for.

DESIGN DECISION: Payment status and overdue months are NOT stored.
MemberDues is always recomputed from join date, payments and leaves,
so the numbers can never drift from the underlying records.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from clubdues.dates import is_month_key, parse_date_utc
from clubdues.models.common import Money, blank_to_none, coerce_utc


logger = structlog.get_logger()


# =============================================================================
# ENUMS
# =============================================================================

class ActivityStatus(str, Enum):
    """
    Membership activity status.

    Transitions are driven by the organization, never by the engine.
    TERMINATED and ARCHIVED members stop accruing dues but keep their
    historical debt.
    """
    ACTIVE = "active"
    INACTIVE = "inactive"
    TERMINATED = "terminated"
    ARCHIVED = "archived"

    @property
    def is_terminal(self) -> bool:
        return self in (ActivityStatus.TERMINATED, ActivityStatus.ARCHIVED)


class PaymentStatus(str, Enum):
    """Derived dues status of a member."""
    ON_TIME = "on_time"
    OVERDUE = "overdue"
    ADVANCE = "advance"          # Paid ahead of the current month
    ON_LEAVE = "on_leave"
    EXEMPT = "exempt"
    TERMINATED = "terminated"
    ARCHIVED = "archived"


# =============================================================================
# MEMBER
# =============================================================================

class Member(BaseModel):
    """A member of the organization as stored."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique member ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Full name"
    )
    email: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    join_date: Optional[date] = Field(
        default=None,
        description="Enrollment date. None when the stored value could not be parsed"
    )
    birthday: Optional[date] = None
    monthly_fee: Money = Field(
        ...,
        description="Dues charged for every month of membership"
    )
    activity_status: ActivityStatus = Field(
        default=ActivityStatus.ACTIVE,
        description="Externally driven membership status"
    )
    is_exempt: bool = Field(
        default=False,
        description="Exempt members never owe dues"
    )
    on_leave: bool = Field(
        default=False,
        description="Cached flag: some leave interval covers today"
    )

    @field_validator('join_date', mode='before')
    @classmethod
    def lenient_join_date(cls, v):
        """
        Keep bad join dates from rejecting the whole record.

        The dues walk treats a missing join date as zero overdue, which is
        better than one broken row failing the member list.
        """
        if v is None or isinstance(v, (date, datetime)):
            return v
        parsed = parse_date_utc(v)
        if parsed is None and str(v).strip():
            logger.warning("member_join_date_unparseable", raw_value=str(v))
        return parsed

    @field_validator('email', 'phone', mode='before')
    @classmethod
    def empty_contact_is_none(cls, v):
        return blank_to_none(v)


class MemberUpdate(BaseModel):
    """Partial member update. Only fields explicitly set are applied."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = None
    join_date: Optional[date] = None
    birthday: Optional[date] = None
    monthly_fee: Optional[Money] = None
    activity_status: Optional[ActivityStatus] = None
    is_exempt: Optional[bool] = None


class OverdueMonth(BaseModel):
    """One unpaid month of dues."""

    month: str = Field(
        ...,
        description="Calendar month as YYYY-MM"
    )
    amount: Money


class MemberDues(Member):
    """
    A member with derived dues information.

    This is a read model. It is never written back to storage.
    """

    payment_status: PaymentStatus
    overdue_months: list[OverdueMonth] = Field(default_factory=list)
    total_due: Money = Field(default=Decimal("0"))

    @property
    def overdue_months_count(self) -> int:
        return len(self.overdue_months)

    def to_member(self) -> Member:
        """Strip the derived fields."""
        return Member.model_validate(
            self.model_dump(exclude={"payment_status", "overdue_months", "total_due"})
        )


# =============================================================================
# LEAVE OF ABSENCE
# =============================================================================

class Leave(BaseModel):
    """
    A leave-of-absence interval.

    end_date=None means the leave is still open. Several leaves may
    overlap; coverage is their union.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    member_id: UUID
    start_date: date
    end_date: Optional[date] = None
    reason: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode='after')
    def validate_dates(self) -> 'Leave':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("Leave end date cannot be before start date")
        return self


class LeaveUpdate(BaseModel):
    """Partial leave update."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = None


# =============================================================================
# PAYMENT
# =============================================================================

class Payment(BaseModel):
    """
    Dues credited to one member for one reference month.

    A payment without transaction_id is a historical entry recorded
    before the ledger existed. It counts as paid but moves no money.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    member_id: UUID
    amount: Money
    payment_date: Optional[datetime] = Field(
        default=None,
        description="When the money arrived (UTC)"
    )
    reference_month: str = Field(
        ...,
        description="Month the payment is credited against, YYYY-MM"
    )
    comments: Optional[str] = Field(default=None, max_length=2000)
    attachment_url: Optional[str] = None
    attachment_filename: Optional[str] = None
    transaction_id: Optional[UUID] = None

    @field_validator('reference_month')
    @classmethod
    def validate_reference_month(cls, v: str) -> str:
        if not is_month_key(v):
            raise ValueError(f"Reference month must be YYYY-MM, got {v!r}")
        return v

    @field_validator('payment_date', mode='before')
    @classmethod
    def payment_date_utc(cls, v):
        return coerce_utc(blank_to_none(v))


class PaymentLink(BaseModel):
    """One member-month funded by a lump income transaction."""

    member_id: UUID
    reference_month: str
    amount: Money

    @field_validator('reference_month')
    @classmethod
    def validate_reference_month(cls, v: str) -> str:
        if not is_month_key(v):
            raise ValueError(f"Reference month must be YYYY-MM, got {v!r}")
        return v
