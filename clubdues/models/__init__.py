"""
Data Models Package

This package contains all Pydantic models used by the dues engine,
the bill lifecycle, the ledger and the audit log.
All data flowing through the system must conform to these schemas.
"""

from clubdues.models.member import (
    ActivityStatus,
    Leave,
    LeaveUpdate,
    Member,
    MemberDues,
    MemberUpdate,
    OverdueMonth,
    Payment,
    PaymentLink,
    PaymentStatus,
)
from clubdues.models.ledger import (
    Account,
    AccountBalance,
    Category,
    CategoryType,
    IncomePaymentRequest,
    Payee,
    PaymentEdit,
    Project,
    StagedAttachment,
    Tag,
    Transaction,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
)
from clubdues.models.bill import (
    BillPayment,
    BillPaymentType,
    BillStatus,
    BillUpdate,
    InstallmentInfo,
    NewPayableBillRequest,
    PayableBill,
)
from clubdues.models.audit import (
    ActionType,
    CreateUndo,
    DeleteUndo,
    EntityType,
    LogEntry,
    LogEntryBuilder,
    UndoAction,
    UpdateUndo,
)
from clubdues.models.report import (
    AccountHistory,
    DashboardStats,
    FutureIncomeSummary,
    IncomeStatement,
    MonthlySummary,
    ReportFilters,
    RevenueReport,
)

__all__ = [
    # Member models
    "ActivityStatus",
    "Leave",
    "LeaveUpdate",
    "Member",
    "MemberDues",
    "MemberUpdate",
    "OverdueMonth",
    "Payment",
    "PaymentLink",
    "PaymentStatus",
    # Ledger models
    "Account",
    "AccountBalance",
    "Category",
    "CategoryType",
    "IncomePaymentRequest",
    "Payee",
    "PaymentEdit",
    "Project",
    "StagedAttachment",
    "Tag",
    "Transaction",
    "TransactionCreate",
    "TransactionType",
    "TransactionUpdate",
    # Bill models
    "BillPayment",
    "BillPaymentType",
    "BillStatus",
    "BillUpdate",
    "InstallmentInfo",
    "NewPayableBillRequest",
    "PayableBill",
    # Audit models
    "ActionType",
    "CreateUndo",
    "DeleteUndo",
    "EntityType",
    "LogEntry",
    "LogEntryBuilder",
    "UndoAction",
    "UpdateUndo",
    # Report models
    "AccountHistory",
    "DashboardStats",
    "FutureIncomeSummary",
    "IncomeStatement",
    "MonthlySummary",
    "ReportFilters",
    "RevenueReport",
]
