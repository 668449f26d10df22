"""
In-memory storage.

Used by the test suite and by the app factory when no spreadsheet is
configured. Rows are deep-copied on the way in and out so callers can
never mutate stored state by accident.
"""

from typing import Optional
from uuid import UUID

from clubdues.models.audit import LogEntry
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
from clubdues.services.storage.interface import (
    DuplicateError,
    LogRepository,
    ModelT,
    NotFoundError,
    Repositories,
    Repository,
    SchemaUnavailableError,
)


class InMemoryRepository(Repository[ModelT]):
    """Dict-backed repository, insertion ordered."""

    def __init__(self, model: type[ModelT], available: bool = True):
        super().__init__(model)
        self._rows: dict[UUID, ModelT] = {}
        self.available = available

    def _check(self) -> None:
        if not self.available:
            raise SchemaUnavailableError(f"Table for {self.table} does not exist")

    async def get(self, record_id: UUID) -> Optional[ModelT]:
        self._check()
        row = self._rows.get(record_id)
        return row.model_copy(deep=True) if row is not None else None

    async def list_all(self) -> list[ModelT]:
        self._check()
        return [row.model_copy(deep=True) for row in self._rows.values()]

    async def insert(self, record: ModelT) -> ModelT:
        self._check()
        if record.id in self._rows:
            raise DuplicateError(f"{self.table} {record.id} already exists")
        self._rows[record.id] = record.model_copy(deep=True)
        return record

    async def update(self, record: ModelT) -> ModelT:
        self._check()
        if record.id not in self._rows:
            raise NotFoundError(f"{self.table} {record.id} not found")
        self._rows[record.id] = record.model_copy(deep=True)
        return record

    async def delete(self, record_id: UUID) -> None:
        self._check()
        if record_id not in self._rows:
            raise NotFoundError(f"{self.table} {record_id} not found")
        del self._rows[record_id]


class InMemoryLogRepository(LogRepository):

    def __init__(self):
        self._entries: list[LogEntry] = []

    async def append(self, entry: LogEntry) -> LogEntry:
        self._entries.append(entry.model_copy(deep=True))
        return entry

    async def get(self, entry_id: UUID) -> Optional[LogEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry.model_copy(deep=True)
        return None

    async def list_recent(self, limit: int = 100) -> list[LogEntry]:
        # Newest first; entries sharing a timestamp keep reverse insertion order
        ordered = sorted(reversed(self._entries), key=lambda e: e.timestamp, reverse=True)
        return [e.model_copy(deep=True) for e in ordered[:limit]]

    async def update_description(self, entry_id: UUID, description: str) -> LogEntry:
        for i, entry in enumerate(self._entries):
            if entry.id == entry_id:
                self._entries[i] = entry.model_copy(update={"description": description})
                return self._entries[i].model_copy(deep=True)
        raise NotFoundError(f"Log entry {entry_id} not found")


def create_memory_repositories(leaves_available: bool = True) -> Repositories:
    """
    Build a full set of in-memory repositories.

    leaves_available=False simulates a deployment whose leave table was
    never created.
    """
    return Repositories(
        members=InMemoryRepository(Member),
        leaves=InMemoryRepository(Leave, available=leaves_available),
        payments=InMemoryRepository(Payment),
        transactions=InMemoryRepository(Transaction),
        bills=InMemoryRepository(PayableBill),
        accounts=InMemoryRepository(Account),
        categories=InMemoryRepository(Category),
        payees=InMemoryRepository(Payee),
        tags=InMemoryRepository(Tag),
        projects=InMemoryRepository(Project),
        logs=InMemoryLogRepository(),
    )
