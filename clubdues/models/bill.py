"""
Payable Bill Models

A payable bill is money the organization owes on a due date.

DESIGN DECISION: Status is derived, not trusted.
pending and overdue are recomputed from due_date on every read. Only
paid is a real state, and it is reached only by an explicit payment or
by linking an existing expense.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from clubdues.models.common import Money, blank_to_none, coerce_utc
from clubdues.models.ledger import StagedAttachment


# =============================================================================
# ENUMS
# =============================================================================

class BillStatus(str, Enum):
    """
    Bill status.

    PENDING and OVERDUE are time-derived. PAID is terminal for a bill.
    """
    PENDING = "pending"
    OVERDUE = "overdue"
    PAID = "paid"


class BillPaymentType(str, Enum):
    """How a new payable bill is expanded into rows."""
    SINGLE = "single"
    INSTALLMENTS = "installments"
    MONTHLY = "monthly"


# =============================================================================
# PAYABLE BILL
# =============================================================================

class InstallmentInfo(BaseModel):
    """Position of a bill inside its installment group."""

    current: int = Field(..., ge=1)
    total: int = Field(..., ge=2)

    @model_validator(mode='after')
    def current_within_total(self) -> 'InstallmentInfo':
        if self.current > self.total:
            raise ValueError(
                f"Installment {self.current} exceeds total of {self.total}"
            )
        return self


class PayableBill(BaseModel):
    """A stored payable bill."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    description: str = Field(..., min_length=1, max_length=500)
    payee_id: Optional[UUID] = None
    category_id: UUID
    amount: Money
    due_date: date
    status: BillStatus = BillStatus.PENDING
    paid_date: Optional[datetime] = None
    transaction_id: Optional[UUID] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    installment_info: Optional[InstallmentInfo] = None
    installment_group_id: Optional[UUID] = None
    recurring_id: Optional[UUID] = None
    attachment_url: Optional[str] = None
    attachment_filename: Optional[str] = None
    is_estimate: bool = Field(
        default=False,
        description="The amount is a forecast, to be confirmed when the bill arrives"
    )

    @field_validator('paid_date', mode='before')
    @classmethod
    def paid_date_utc(cls, v):
        return coerce_utc(blank_to_none(v))

    @field_validator(
        'payee_id', 'transaction_id', 'notes', 'installment_group_id',
        'recurring_id', 'attachment_url', 'attachment_filename',
        mode='before',
    )
    @classmethod
    def blank_is_none(cls, v):
        return blank_to_none(v)

    @property
    def is_paid(self) -> bool:
        return self.status == BillStatus.PAID


class BillUpdate(BaseModel):
    """
    Partial bill update.

    Link fields (transaction_id, group and series ids) are owned by the
    lifecycle manager and cannot be patched directly.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    payee_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    amount: Optional[Money] = None
    due_date: Optional[date] = None
    paid_date: Optional[datetime] = None
    notes: Optional[str] = None
    attachment_url: Optional[str] = None
    attachment_filename: Optional[str] = None
    is_estimate: Optional[bool] = None
    staged_attachment: Optional[StagedAttachment] = None

    @field_validator('paid_date', mode='before')
    @classmethod
    def paid_date_utc(cls, v):
        return coerce_utc(v)


class NewPayableBillRequest(BaseModel):
    """
    Request to create one bill, an installment group or a monthly series.

    For installments every row carries the full amount given here.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(..., min_length=1, max_length=500)
    payee_id: Optional[UUID] = None
    category_id: UUID
    amount: Money
    first_due_date: date
    payment_type: BillPaymentType = BillPaymentType.SINGLE
    installments: Optional[int] = Field(
        default=None,
        description="Number of installments, required for the installments type"
    )
    notes: Optional[str] = None
    is_estimate: bool = False
    staged_attachment: Optional[StagedAttachment] = None

    @model_validator(mode='after')
    def validate_installments(self) -> 'NewPayableBillRequest':
        if self.payment_type == BillPaymentType.INSTALLMENTS:
            if self.installments is None or self.installments < 2:
                raise ValueError("Installment bills need at least 2 installments")
        return self


class BillPayment(BaseModel):
    """
    Payment of a bill through a new expense transaction.

    amount defaults to the bill's amount. The transaction takes its
    description, category and payee from the bill.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: UUID
    paid_date: date
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    staged_attachment: Optional[StagedAttachment] = None
