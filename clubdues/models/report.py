"""
Report Models

Read-only views derived from the ledger, payments and bills.
Nothing here is stored; every report is recomputed from the rows.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from clubdues.models.ledger import Transaction, TransactionType
from clubdues.models.member import Payment


ZERO = Decimal("0")


class ReportFilters(BaseModel):
    """
    Filters of the financial report.

    Dates are inclusive UTC calendar days. A transaction must carry every
    requested tag to match.
    """

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    type: Optional[TransactionType] = None
    category_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    account_ids: list[UUID] = Field(default_factory=list)
    tag_ids: list[UUID] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_period(self) -> 'ReportFilters':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot precede start_date")
        return self


class AccountHistoryLine(BaseModel):
    transaction: Transaction
    running_balance: Decimal


class AccountHistory(BaseModel):
    """Statement of one account over a period, newest line first."""

    account_id: UUID
    opening_balance: Decimal
    closing_balance: Decimal
    lines: list[AccountHistoryLine] = Field(default_factory=list)


class MonthlySummary(BaseModel):
    month: str = Field(..., description="YYYY-MM")
    income: Decimal = ZERO
    expense: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class CategoryTotal(BaseModel):
    category_name: str
    total: Decimal


class StatementSection(BaseModel):
    total: Decimal = ZERO
    details: list[CategoryTotal] = Field(default_factory=list)


class IncomeStatement(BaseModel):
    """
    Result of a period.

    gross_revenue holds the dues category only; every other income
    category lands in other_income.
    """

    start_date: date
    end_date: date
    gross_revenue: StatementSection
    other_income: StatementSection
    operating_expenses: StatementSection
    net_result: Decimal


class RevenueLine(BaseModel):
    payment: Payment
    member_name: str


class RevenueReport(BaseModel):
    """Dues payments received in a period."""

    start_date: date
    end_date: date
    total_revenue: Decimal
    payments: list[RevenueLine] = Field(default_factory=list)


class FutureIncomeSummary(BaseModel):
    count: int = 0
    total_amount: Decimal = ZERO


class DashboardStats(BaseModel):
    """Headline figures for the current month."""

    total_members: int = Field(..., description="Active members")
    on_time: int = Field(..., description="On time or paid in advance")
    overdue: int
    monthly_revenue: Decimal = Field(..., description="Dues received this month")
    monthly_expenses: Decimal
    current_balance: Decimal = Field(..., description="Sum of every account balance")
    projected_income: Decimal = Field(..., description="Income dated after today")
    projected_expenses: Decimal = Field(..., description="Pending and overdue bills")
