"""
Main Orchestrator for Club Dues

This module ties together all the components and exposes the
operations the screens call:
1. Members and dues (list, profile, overdue report)
2. Dues payments and their income transactions
3. Payable bills (generation, payment, linking)
4. Ledger transactions and lookup tables
5. Reports and dashboard figures
6. Activity log and undo

DESIGN DECISION: Every collaborator is injected.
Services never reach for a module-level storage handle. The factory
below is the only place that decides between Google Sheets and
in-memory storage, and between Cloudinary and no attachment store.
"""

from datetime import date, datetime
from typing import Callable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from clubdues.audit import AuditLogger, UndoService
from clubdues.bills import BillLifecycleManager
from clubdues.config import get_settings
from clubdues.dates import utc_today
from clubdues.dues import LeaveTracker, MemberFilters, MemberService
from clubdues.ledger import (
    LookupService,
    PaymentService,
    Reference,
    ReportService,
    TransactionService,
)
from clubdues.models.audit import EntityType, LogEntry
from clubdues.models.bill import (
    BillPayment,
    NewPayableBillRequest,
    PayableBill,
)
from clubdues.models.ledger import (
    Account,
    Category,
    IncomePaymentRequest,
    Payee,
    PaymentEdit,
    Project,
    Tag,
    Transaction,
    TransactionCreate,
)
from clubdues.models.member import Member, MemberDues, MemberUpdate, Payment, PaymentLink
from clubdues.models.report import (
    AccountHistory,
    DashboardStats,
    IncomeStatement,
    ReportFilters,
    RevenueReport,
)
from clubdues.services.attachments import AttachmentStore, CloudinaryAttachmentStore
from clubdues.services.storage import (
    GoogleSheetsClient,
    Repositories,
    create_memory_repositories,
    create_sheets_repositories,
)


logger = structlog.get_logger()


class AppComponents:
    """
    Every service, wired over one set of repositories.

    The services are public attributes. The methods below are the
    caller-facing operations, delegating to the owning service.
    """

    def __init__(
        self,
        repositories: Repositories,
        attachments: Optional[AttachmentStore] = None,
        today: Callable[[], date] = utc_today,
        sheets_client: Optional[GoogleSheetsClient] = None,
    ):
        settings = get_settings().app
        repos = repositories
        self.repositories = repos
        self.attachments = attachments
        self.sheets_client = sheets_client
        self.audit = AuditLogger(repos.logs)

        # Lookup tables
        self.accounts = LookupService[Account](
            repos.accounts, EntityType.ACCOUNT, "Account", self.audit,
            [Reference(repos.transactions, "account_id", "transactions")],
        )
        self.categories = LookupService[Category](
            repos.categories, EntityType.CATEGORY, "Category", self.audit,
            [
                Reference(repos.transactions, "category_id", "transactions"),
                Reference(repos.bills, "category_id", "payable bills"),
            ],
        )
        self.payees = LookupService[Payee](
            repos.payees, EntityType.PAYEE, "Payee", self.audit,
            [
                Reference(repos.transactions, "payee_id", "transactions"),
                Reference(repos.bills, "payee_id", "payable bills"),
            ],
        )
        self.tags = LookupService[Tag](
            repos.tags, EntityType.TAG, "Tag", self.audit,
            [Reference(repos.transactions, "tag_ids", "transactions")],
        )
        self.projects = LookupService[Project](
            repos.projects, EntityType.PROJECT, "Project", self.audit,
            [Reference(repos.transactions, "project_id", "transactions")],
        )

        # Ledger
        self.transactions = TransactionService(
            repos.transactions,
            repos.payments,
            repos.bills,
            repos.accounts,
            self.audit,
            attachments=attachments,
            today=today,
            name_sources=[
                repos.accounts, repos.categories, repos.payees, repos.tags, repos.projects,
            ],
            max_attachment_bytes=settings.max_attachment_size_bytes,
        )
        self.payments = PaymentService(
            repos.payments,
            repos.members,
            self.transactions,
            self.categories,
            self.audit,
            attachments=attachments,
            today=today,
            settings=settings,
        )
        self.payable_bills = BillLifecycleManager(
            repos.bills,
            repos.transactions,
            self.transactions,
            self.audit,
            attachments=attachments,
            today=today,
            settings=settings,
        )

        # Dues
        self.leaves = LeaveTracker(repos.leaves, repos.members, self.audit, today=today)
        self.members = MemberService(
            repos.members, repos.payments, self.leaves, self.audit, today=today
        )

        # Reports
        self.reports = ReportService(
            repos.transactions,
            repos.payments,
            repos.members,
            repos.accounts,
            repos.categories,
            self.transactions,
            self.members,
            self.payable_bills,
            today=today,
            settings=settings,
        )

        # Activity log
        self.undo = UndoService(repos.logs, repos.by_entity(), settings.undone_prefix)

    # =========================================================================
    # MEMBERS
    # =========================================================================

    async def get_members(self, filters: Optional[MemberFilters] = None) -> list[MemberDues]:
        return await self.members.get_members(filters)

    async def get_member_by_id(self, member_id: UUID) -> Optional[MemberDues]:
        return await self.members.get_member_by_id(member_id)

    async def add_member(self, member: Member) -> MemberDues:
        return await self.members.add_member(member)

    async def update_member(self, member_id: UUID, patch: MemberUpdate) -> MemberDues:
        return await self.members.update_member(member_id, patch)

    # =========================================================================
    # DUES PAYMENTS
    # =========================================================================

    async def get_payments_by_member(self, member_id: UUID) -> list[Payment]:
        return await self.payments.get_payments_by_member(member_id)

    async def add_income_transaction_and_payment(
        self, request: IncomePaymentRequest
    ) -> tuple[Payment, Optional[str]]:
        return await self.payments.add_income_transaction_and_payment(request)

    async def update_payment_and_transaction(
        self, payment_id: UUID, edit: PaymentEdit
    ) -> tuple[Payment, Optional[str]]:
        return await self.payments.update_payment_and_transaction(payment_id, edit)

    async def delete_payment(self, payment_id: UUID) -> None:
        await self.payments.delete_payment(payment_id)

    # =========================================================================
    # PAYABLE BILLS
    # =========================================================================

    async def add_payable_bill(
        self, request: NewPayableBillRequest
    ) -> tuple[list[PayableBill], Optional[str]]:
        return await self.payable_bills.add_payable_bill(request)

    async def pay_bill(
        self, bill_id: UUID, payment: BillPayment
    ) -> tuple[PayableBill, Optional[str]]:
        return await self.payable_bills.pay_bill(bill_id, payment)

    async def pay_bill_with_transaction_data(
        self, bill_id: UUID, data: TransactionCreate
    ) -> tuple[PayableBill, Optional[str]]:
        return await self.payable_bills.pay_bill_with_transaction_data(bill_id, data)

    async def link_expense_to_bill(self, bill_id: UUID, transaction_id: UUID) -> PayableBill:
        return await self.payable_bills.link_expense_to_bill(bill_id, transaction_id)

    async def get_unlinked_expenses(self) -> list[Transaction]:
        return await self.payable_bills.get_unlinked_expenses()

    # =========================================================================
    # LEDGER
    # =========================================================================

    async def set_multiple_payment_links(
        self,
        transaction_id: UUID,
        links: list[PaymentLink],
        payment_date: Optional[datetime] = None,
    ) -> list[Payment]:
        return await self.transactions.set_multiple_payment_links(
            transaction_id, links, payment_date
        )

    # =========================================================================
    # REPORTS
    # =========================================================================

    async def get_dashboard_stats(self) -> DashboardStats:
        return await self.reports.get_dashboard_stats()

    async def get_financial_report(
        self,
        filters: Optional[ReportFilters] = None,
    ) -> list[Transaction]:
        return await self.reports.get_financial_report(filters)

    async def get_account_history(
        self,
        account_id: UUID,
        filters: Optional[ReportFilters] = None,
    ) -> AccountHistory:
        return await self.reports.get_account_history(account_id, filters)

    async def get_income_statement(self, start_date: date, end_date: date) -> IncomeStatement:
        return await self.reports.get_income_statement(start_date, end_date)

    async def get_revenue_report(self, start_date: date, end_date: date) -> RevenueReport:
        return await self.reports.get_revenue_report(start_date, end_date)

    async def get_overdue_report(self) -> list[MemberDues]:
        return await self.members.get_overdue_report()

    # =========================================================================
    # ACTIVITY LOG
    # =========================================================================

    async def get_logs(self, limit: Optional[int] = None) -> list[LogEntry]:
        return await self.undo.get_logs(limit)

    async def undo_log_action(self, log_id: UUID) -> LogEntry:
        return await self.undo.undo_log_action(log_id)


def create_app_components(
    use_storage: bool = True,
    today: Callable[[], date] = utc_today,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False for testing without storage.
        today: Clock used for every status derivation

    Returns:
        AppComponents over Google Sheets when configured, otherwise over
        in-memory repositories
    """
    sheets_client = None
    repositories = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            repositories = create_sheets_repositories(sheets_client)
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None

    if repositories is None:
        repositories = create_memory_repositories()

    try:
        attachments = CloudinaryAttachmentStore()
    except ValidationError as e:
        logger.warning("attachment_storage_not_configured", error=str(e))
        attachments = None

    return AppComponents(
        repositories,
        attachments=attachments,
        today=today,
        sheets_client=sheets_client,
    )
