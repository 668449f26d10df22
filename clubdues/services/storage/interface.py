"""
Abstract Storage Interface

DESIGN DECISION: Business logic talks to one repository per table.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep every service decoupled from the storage implementation

The interface is intentionally simple - we're not building a full ORM.
The row store gives single-row last-write-wins semantics and nothing
more; there are no cross-table transactions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from clubdues.models.audit import EntityType, LogEntry, Snapshot
from clubdues.models.bill import PayableBill
from clubdues.models.ledger import (
    Account,
    Category,
    Payee,
    Project,
    Tag,
    Transaction,
)
from clubdues.models.member import Leave, Member, Payment


ModelT = TypeVar("ModelT", bound=BaseModel)


class Repository(ABC, Generic[ModelT]):
    """
    Abstract repository for one table.

    Any storage implementation (Google Sheets, in-memory, ...) must
    implement the abstract methods. Rows are pydantic models keyed by
    their ``id`` field.
    """

    def __init__(self, model: type[ModelT]):
        self.model = model

    @property
    def table(self) -> str:
        return self.model.__name__

    @abstractmethod
    async def get(self, record_id: UUID) -> Optional[ModelT]:
        """
        Retrieve a row by its ID.

        Returns:
            The row if found, None otherwise

        Raises:
            SchemaUnavailableError: If the table does not exist
        """
        pass

    @abstractmethod
    async def list_all(self) -> list[ModelT]:
        """Return every row of the table, in storage order."""
        pass

    @abstractmethod
    async def insert(self, record: ModelT) -> ModelT:
        """
        Insert a new row.

        Raises:
            DuplicateError: If a row with the same id exists
        """
        pass

    @abstractmethod
    async def update(self, record: ModelT) -> ModelT:
        """
        Replace an existing row with the given one.

        Raises:
            NotFoundError: If the row doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, record_id: UUID) -> None:
        """
        Delete a row by ID.

        Raises:
            NotFoundError: If the row doesn't exist
        """
        pass

    async def require(self, record_id: UUID) -> ModelT:
        """Like get(), but a missing row is an error."""
        record = await self.get(record_id)
        if record is None:
            raise NotFoundError(f"{self.table} {record_id} not found")
        return record

    async def find(self, **criteria: Any) -> list[ModelT]:
        """
        Rows whose fields equal every given value.

        Implementations with server-side filtering may override this.
        """
        rows = await self.list_all()
        return [
            row for row in rows
            if all(getattr(row, field) == value for field, value in criteria.items())
        ]

    async def restore(self, snapshot: Snapshot) -> ModelT:
        """Re-insert a row from its audit snapshot."""
        return await self.insert(self.model.model_validate(snapshot))

    async def overwrite(self, snapshot: Snapshot) -> ModelT:
        """Overwrite a row with its audit snapshot."""
        return await self.update(self.model.model_validate(snapshot))


MemberRepository = Repository[Member]
LeaveRepository = Repository[Leave]
PaymentRepository = Repository[Payment]
TransactionRepository = Repository[Transaction]
BillRepository = Repository[PayableBill]


class LogRepository(ABC):
    """
    Abstract interface for audit log storage.

    Entries are append-only. The only permitted change is marking an
    entry as undone through update_description.
    """

    @abstractmethod
    async def append(self, entry: LogEntry) -> LogEntry:
        pass

    @abstractmethod
    async def get(self, entry_id: UUID) -> Optional[LogEntry]:
        pass

    @abstractmethod
    async def list_recent(self, limit: int = 100) -> list[LogEntry]:
        """
        Get the most recent entries.

        Returns:
            List of entries (newest first)
        """
        pass

    @abstractmethod
    async def update_description(self, entry_id: UUID, description: str) -> LogEntry:
        """
        Raises:
            NotFoundError: If the entry doesn't exist
        """
        pass


@dataclass
class Repositories:
    """Every repository the services need, bundled for wiring."""

    members: MemberRepository
    leaves: LeaveRepository
    payments: PaymentRepository
    transactions: TransactionRepository
    bills: BillRepository
    accounts: Repository[Account]
    categories: Repository[Category]
    payees: Repository[Payee]
    tags: Repository[Tag]
    projects: Repository[Project]
    logs: LogRepository

    def by_entity(self) -> dict[EntityType, Repository]:
        """Explicit entity type to repository map used by undo."""
        return {
            EntityType.MEMBER: self.members,
            EntityType.LEAVE: self.leaves,
            EntityType.PAYMENT: self.payments,
            EntityType.TRANSACTION: self.transactions,
            EntityType.BILL: self.bills,
            EntityType.ACCOUNT: self.accounts,
            EntityType.CATEGORY: self.categories,
            EntityType.PAYEE: self.payees,
            EntityType.TAG: self.tags,
            EntityType.PROJECT: self.projects,
        }


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class ConstraintViolationError(StorageError):
    """The operation would break a reference between tables."""
    pass


class InUseError(ConstraintViolationError):
    """A lookup item is still referenced and cannot be removed."""

    def __init__(self, entity_label: str, name: str, used_by: str):
        self.entity_label = entity_label
        self.name = name
        self.used_by = used_by
        super().__init__(
            f'{entity_label} "{name}" is in use by {used_by} and cannot be removed'
        )


class SchemaUnavailableError(StorageError):
    """The table backing a repository does not exist."""
    pass
