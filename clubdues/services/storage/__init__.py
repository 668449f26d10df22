"""
Storage Services Package

Provides abstract repository interfaces and concrete implementations.
Google Sheets is the production backend; the in-memory backend serves
tests and unconfigured deployments.
"""

from clubdues.services.storage.interface import (
    BillRepository,
    ConnectionError,
    ConstraintViolationError,
    DuplicateError,
    InUseError,
    LeaveRepository,
    LogRepository,
    MemberRepository,
    NotFoundError,
    PaymentRepository,
    Repositories,
    Repository,
    SchemaUnavailableError,
    StorageError,
    TransactionRepository,
)
from clubdues.services.storage.memory import (
    InMemoryLogRepository,
    InMemoryRepository,
    create_memory_repositories,
)
from clubdues.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsLogRepository,
    GoogleSheetsRepository,
    create_sheets_repositories,
)

__all__ = [
    # Interfaces
    "BillRepository",
    "LeaveRepository",
    "LogRepository",
    "MemberRepository",
    "PaymentRepository",
    "Repositories",
    "Repository",
    "TransactionRepository",
    # Exceptions
    "ConnectionError",
    "ConstraintViolationError",
    "DuplicateError",
    "InUseError",
    "NotFoundError",
    "SchemaUnavailableError",
    "StorageError",
    # In-memory implementation
    "InMemoryLogRepository",
    "InMemoryRepository",
    "create_memory_repositories",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsLogRepository",
    "GoogleSheetsRepository",
    "create_sheets_repositories",
]
