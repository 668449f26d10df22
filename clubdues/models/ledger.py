"""
Ledger Models

Transactions are the single source of truth for money movement.
Payments and payable bills point at them; they never point back at
payments. The one back-link a transaction carries is payable_bill_id,
set when the transaction settles a bill.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clubdues.models.common import Money, blank_to_none, coerce_utc


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class CategoryType(str, Enum):
    """Which side of the ledger a category may be used on."""
    INCOME = "income"
    EXPENSE = "expense"
    BOTH = "both"

    def accepts(self, tx_type: TransactionType) -> bool:
        return self == CategoryType.BOTH or self.value == tx_type.value


class StagedAttachment(BaseModel):
    """
    A file picked locally but not uploaded yet.

    Services upload it to the attachment store before the owning row is
    written and replace it with the returned URL.
    """

    filename: str = Field(..., min_length=1, max_length=255)
    content: bytes
    content_type: str = Field(default="application/octet-stream")

    @property
    def size_bytes(self) -> int:
        return len(self.content)


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """A ledger entry on one account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Always positive. Direction comes from type"
    )
    date: datetime = Field(
        ...,
        description="Instant the money moved (UTC)"
    )
    type: TransactionType
    account_id: UUID
    category_id: UUID
    payee_id: Optional[UUID] = None
    tag_ids: Optional[list[UUID]] = None
    project_id: Optional[UUID] = None
    comments: Optional[str] = Field(default=None, max_length=2000)
    payable_bill_id: Optional[UUID] = Field(
        default=None,
        description="Bill this expense settles"
    )
    attachment_url: Optional[str] = None
    attachment_filename: Optional[str] = None

    @field_validator('date', mode='before')
    @classmethod
    def date_utc(cls, v):
        return coerce_utc(v)

    @field_validator(
        'payee_id', 'project_id', 'payable_bill_id', 'comments',
        'attachment_url', 'attachment_filename',
        mode='before',
    )
    @classmethod
    def blank_is_none(cls, v):
        return blank_to_none(v)

    @field_validator('tag_ids', mode='before')
    @classmethod
    def empty_tags_are_none(cls, v):
        if v is None or (isinstance(v, (list, tuple)) and len(v) == 0):
            return None
        return v

    @property
    def signed_amount(self) -> Decimal:
        if self.type == TransactionType.INCOME:
            return self.amount
        return -self.amount


class TransactionCreate(BaseModel):
    """Fields accepted when a transaction is created."""
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    date: datetime
    type: TransactionType
    account_id: UUID
    category_id: UUID
    payee_id: Optional[UUID] = None
    tag_ids: Optional[list[UUID]] = None
    project_id: Optional[UUID] = None
    comments: Optional[str] = None
    attachment_url: Optional[str] = None
    attachment_filename: Optional[str] = None
    staged_attachment: Optional[StagedAttachment] = None

    @field_validator('date', mode='before')
    @classmethod
    def date_utc(cls, v):
        return coerce_utc(v)


class TransactionUpdate(BaseModel):
    """
    Partial transaction update.

    payable_bill_id is deliberately absent. The bill link is owned by
    the bill lifecycle, not by transaction edits.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    date: Optional[datetime] = None
    type: Optional[TransactionType] = None
    account_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    payee_id: Optional[UUID] = None
    tag_ids: Optional[list[UUID]] = None
    project_id: Optional[UUID] = None
    comments: Optional[str] = None
    attachment_url: Optional[str] = None
    attachment_filename: Optional[str] = None
    staged_attachment: Optional[StagedAttachment] = None

    @field_validator('date', mode='before')
    @classmethod
    def date_utc(cls, v):
        return coerce_utc(v)


# =============================================================================
# LOOKUP TABLES
# =============================================================================

class Account(BaseModel):
    """A bank account or cash box."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    initial_balance: Decimal = Field(default=Decimal("0"), decimal_places=2)


class Category(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType = CategoryType.BOTH


class Payee(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)


class Tag(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)


class Project(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)


class AccountBalance(BaseModel):
    """Current balance of one account."""

    account_id: UUID
    name: str
    initial_balance: Decimal
    current_balance: Decimal


# =============================================================================
# DUES PAYMENT REQUESTS
# =============================================================================

class IncomePaymentRequest(BaseModel):
    """
    A member paying dues for one month.

    Produces one income transaction and one payment pointing at it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    member_id: UUID
    account_id: UUID
    amount: Money = Field(..., gt=0)
    payment_date: date
    reference_month: str
    comments: Optional[str] = None
    staged_attachment: Optional[StagedAttachment] = None


class PaymentEdit(BaseModel):
    """
    Edit of a payment together with its transaction.

    Fields that belong to the transaction only (account) are ignored for
    historical payments that have no transaction.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[Money] = None
    payment_date: Optional[date] = None
    reference_month: Optional[str] = None
    comments: Optional[str] = None
    account_id: Optional[UUID] = None
    staged_attachment: Optional[StagedAttachment] = None
