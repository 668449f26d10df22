"""
Report Service

DESIGN DECISION: Reports are DETERMINISTIC derivations over stored rows.
No report keeps state or writes anything. Each call reads the tables it
needs and recomputes its figures, so a report always agrees with the
ledger at the moment it is asked.

Money in every report comes from transactions, except the revenue
report, which lists dues payments because a lump deposit can fund
several members at once.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Optional, Union
from uuid import UUID

import structlog

from clubdues.bills.lifecycle import BillLifecycleManager
from clubdues.config import AppSettings, get_settings
from clubdues.dates import add_months_utc, first_of_month_utc, in_interval, month_key, utc_today
from clubdues.dues.members import ActivityFilter, MemberFilters, MemberService
from clubdues.ledger.transactions import TransactionService
from clubdues.models.bill import BillStatus
from clubdues.models.ledger import Account, Category, Transaction, TransactionType
from clubdues.models.member import ActivityStatus, PaymentStatus
from clubdues.models.report import (
    ZERO,
    AccountHistory,
    AccountHistoryLine,
    CategoryTotal,
    DashboardStats,
    FutureIncomeSummary,
    IncomeStatement,
    MonthlySummary,
    ReportFilters,
    RevenueLine,
    RevenueReport,
    StatementSection,
)
from clubdues.services.storage import (
    MemberRepository,
    PaymentRepository,
    Repository,
    TransactionRepository,
)


logger = structlog.get_logger()

UNCATEGORIZED = "Uncategorized"


def in_period(
    value: Union[date, datetime],
    start: Optional[date],
    end: Optional[date],
) -> bool:
    """Inclusive period check where either bound may be open."""
    if start is not None and not in_interval(value, start, None):
        return False
    if end is not None and not in_interval(value, date.min, end):
        return False
    return True


def matches_filters(transaction: Transaction, filters: ReportFilters) -> bool:
    if not in_period(transaction.date, filters.start_date, filters.end_date):
        return False
    if filters.type and transaction.type != filters.type:
        return False
    if filters.category_id and transaction.category_id != filters.category_id:
        return False
    if filters.project_id and transaction.project_id != filters.project_id:
        return False
    if filters.account_ids and transaction.account_id not in filters.account_ids:
        return False
    if filters.tag_ids:
        tags = set(transaction.tag_ids or [])
        if not set(filters.tag_ids) <= tags:
            return False
    return True


def summarize_by_category(
    transactions: Iterable[Transaction],
    category_names: dict[UUID, str],
) -> StatementSection:
    """Totals per category name, largest first."""
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for transaction in transactions:
        name = category_names.get(transaction.category_id, UNCATEGORIZED)
        totals[name] += transaction.amount

    details = [CategoryTotal(category_name=name, total=total) for name, total in totals.items()]
    details.sort(key=lambda d: (-d.total, d.category_name.lower()))
    return StatementSection(total=sum(totals.values(), ZERO), details=details)


class ReportService:
    """Financial reports and dashboard figures."""

    def __init__(
        self,
        transactions: TransactionRepository,
        payments: PaymentRepository,
        members: MemberRepository,
        accounts: Repository[Account],
        categories: Repository[Category],
        transaction_service: TransactionService,
        member_service: MemberService,
        bill_manager: BillLifecycleManager,
        today: Callable[[], date] = utc_today,
        settings: Optional[AppSettings] = None,
    ):
        self._transactions = transactions
        self._payments = payments
        self._members = members
        self._accounts = accounts
        self._categories = categories
        self._transaction_service = transaction_service
        self._member_service = member_service
        self._bill_manager = bill_manager
        self._today = today
        self._settings = settings or get_settings().app

    async def _category_names(self) -> dict[UUID, str]:
        return {c.id: c.name for c in await self._categories.list_all()}

    # =========================================================================
    # LEDGER REPORTS
    # =========================================================================

    async def get_financial_report(
        self,
        filters: Optional[ReportFilters] = None,
    ) -> list[Transaction]:
        """Transactions matching every filter, newest first."""
        filters = filters or ReportFilters()
        transactions = [
            t for t in await self._transactions.list_all()
            if matches_filters(t, filters)
        ]
        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions

    async def get_account_history(
        self,
        account_id: UUID,
        filters: Optional[ReportFilters] = None,
    ) -> AccountHistory:
        """
        Statement of one account.

        The opening balance is the initial balance plus everything dated
        before start_date. Running and closing balances include every
        transaction of the period; type and category filters only choose
        which lines are shown.

        Raises:
            NotFoundError: If the account does not exist
        """
        filters = filters or ReportFilters()
        account = await self._accounts.require(account_id)

        own = [t for t in await self._transactions.list_all() if t.account_id == account_id]
        own.sort(key=lambda t: t.date)

        opening = account.initial_balance
        period = []
        for transaction in own:
            if filters.start_date and transaction.date.date() < filters.start_date:
                opening += transaction.signed_amount
            elif in_period(transaction.date, filters.start_date, filters.end_date):
                period.append(transaction)

        balance = opening
        lines = []
        for transaction in period:
            balance += transaction.signed_amount
            if filters.type and transaction.type != filters.type:
                continue
            if filters.category_id and transaction.category_id != filters.category_id:
                continue
            lines.append(AccountHistoryLine(transaction=transaction, running_balance=balance))

        lines.reverse()
        return AccountHistory(
            account_id=account_id,
            opening_balance=opening,
            closing_balance=balance,
            lines=lines,
        )

    async def get_income_statement(self, start_date: date, end_date: date) -> IncomeStatement:
        """
        Result of a period: dues revenue, other income, expenses by category.

        The dues category is recognized by its configured name.
        """
        transactions = await self.get_financial_report(
            ReportFilters(start_date=start_date, end_date=end_date)
        )
        names = await self._category_names()
        dues_name = self._settings.dues_category_name.strip().lower()

        def is_dues(transaction: Transaction) -> bool:
            return names.get(transaction.category_id, "").lower() == dues_name

        incomes = [t for t in transactions if t.type == TransactionType.INCOME]
        expenses = [t for t in transactions if t.type == TransactionType.EXPENSE]

        gross_revenue = summarize_by_category((t for t in incomes if is_dues(t)), names)
        other_income = summarize_by_category((t for t in incomes if not is_dues(t)), names)
        operating_expenses = summarize_by_category(expenses, names)

        return IncomeStatement(
            start_date=start_date,
            end_date=end_date,
            gross_revenue=gross_revenue,
            other_income=other_income,
            operating_expenses=operating_expenses,
            net_result=gross_revenue.total + other_income.total - operating_expenses.total,
        )

    async def get_historical_monthly_summary(self, months: int = 12) -> list[MonthlySummary]:
        """Income and expense per month, oldest first, ending with the current month."""
        current = first_of_month_utc(self._today())
        keys = [month_key(add_months_utc(current, -i)) for i in reversed(range(months))]
        summary = {key: MonthlySummary(month=key) for key in keys}

        for transaction in await self._transactions.list_all():
            row = summary.get(month_key(transaction.date))
            if row is None:
                continue
            if transaction.type == TransactionType.INCOME:
                row.income += transaction.amount
            else:
                row.expense += transaction.amount

        return [summary[key] for key in keys]

    async def get_future_income_transactions(self) -> list[Transaction]:
        """Income dated after today, soonest first."""
        today = self._today()
        future = [
            t for t in await self._transactions.find(type=TransactionType.INCOME)
            if t.date.date() > today
        ]
        future.sort(key=lambda t: t.date)
        return future

    async def get_future_income_summary(self) -> FutureIncomeSummary:
        future = await self.get_future_income_transactions()
        return FutureIncomeSummary(
            count=len(future),
            total_amount=sum((t.amount for t in future), ZERO),
        )

    # =========================================================================
    # DUES REPORTS
    # =========================================================================

    async def get_revenue_report(self, start_date: date, end_date: date) -> RevenueReport:
        """Dues payments dated inside the period, newest first."""
        names = {m.id: m.name for m in await self._members.list_all()}
        received = [
            p for p in await self._payments.list_all()
            if p.payment_date is not None and in_period(p.payment_date, start_date, end_date)
        ]
        received.sort(key=lambda p: p.payment_date, reverse=True)

        return RevenueReport(
            start_date=start_date,
            end_date=end_date,
            total_revenue=sum((p.amount for p in received), ZERO),
            payments=[
                RevenueLine(payment=p, member_name=names.get(p.member_id, str(p.member_id)))
                for p in received
            ],
        )

    async def get_dashboard_stats(self) -> DashboardStats:
        """Headline figures for the current month."""
        today = self._today()
        month_start = first_of_month_utc(today)
        month_end = add_months_utc(month_start, 1) - timedelta(days=1)

        members = await self._member_service.get_members(MemberFilters(activity=ActivityFilter.ALL))
        revenue = await self.get_revenue_report(month_start, month_end)
        expenses = await self._transactions.find(type=TransactionType.EXPENSE)
        monthly_expenses = sum(
            (t.amount for t in expenses if in_period(t.date, month_start, month_end)),
            ZERO,
        )
        balances = await self._transaction_service.get_account_balances()
        future_income = await self.get_future_income_summary()
        open_bills = [
            b for b in await self._bill_manager.get_all()
            if b.status in (BillStatus.PENDING, BillStatus.OVERDUE)
        ]

        stats = DashboardStats(
            total_members=sum(1 for m in members if m.activity_status == ActivityStatus.ACTIVE),
            on_time=sum(
                1 for m in members
                if m.payment_status in (PaymentStatus.ON_TIME, PaymentStatus.ADVANCE)
            ),
            overdue=sum(1 for m in members if m.payment_status == PaymentStatus.OVERDUE),
            monthly_revenue=revenue.total_revenue,
            monthly_expenses=monthly_expenses,
            current_balance=sum((b.current_balance for b in balances), ZERO),
            projected_income=future_income.total_amount,
            projected_expenses=sum((b.amount for b in open_bills), ZERO),
        )
        logger.debug("dashboard_stats_computed", month=month_key(today))
        return stats
