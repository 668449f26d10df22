"""
Lookup Tables

Accounts, categories, payees, tags and projects share one small CRUD
service. Removing an item that a transaction or bill still references
is refused with InUseError instead of leaving dangling ids.
"""

from dataclasses import dataclass
from typing import Any, Generic, Iterable, Optional
from uuid import UUID

import structlog

from clubdues.audit.logger import AuditLogger
from clubdues.models.audit import EntityType, LogEntryBuilder
from clubdues.services.storage import InUseError, Repository
from clubdues.services.storage.interface import ModelT


logger = structlog.get_logger()


async def lookup_names(sources: Iterable[Repository]) -> dict[str, str]:
    """id -> name across lookup tables, used to make log diffs readable."""
    names: dict[str, str] = {}
    for repository in sources:
        for item in await repository.list_all():
            names[str(item.id)] = item.name
    return names


@dataclass
class Reference:
    """A column of another table that points at lookup items."""

    repository: Repository
    field: str
    used_by: str

    async def uses(self, item_id: UUID) -> bool:
        for row in await self.repository.list_all():
            value = getattr(row, self.field)
            if isinstance(value, list):
                if item_id in value:
                    return True
            elif value == item_id:
                return True
        return False


class LookupService(Generic[ModelT]):
    """CRUD for one lookup table, with audit logging and reference checks."""

    def __init__(
        self,
        repository: Repository[ModelT],
        entity_type: EntityType,
        entity_label: str,
        audit: AuditLogger,
        references: Optional[list[Reference]] = None,
    ):
        self._repository = repository
        self._entity_type = entity_type
        self._label = entity_label
        self._audit = audit
        self._references = references or []

    async def get_all(self) -> list[ModelT]:
        """Ordered by name."""
        items = await self._repository.list_all()
        items.sort(key=lambda item: item.name.lower())
        return items

    async def get(self, item_id: UUID) -> Optional[ModelT]:
        return await self._repository.get(item_id)

    async def find_by_name(self, name: str) -> Optional[ModelT]:
        wanted = name.strip().lower()
        for item in await self._repository.list_all():
            if item.name.lower() == wanted:
                return item
        return None

    async def add(self, item: ModelT) -> ModelT:
        await self._repository.insert(item)
        await self._audit.log(LogEntryBuilder.created(
            self._entity_type, self._label.lower(), item.name, item.id
        ))
        return item

    async def update(self, item_id: UUID, **changes: Any) -> ModelT:
        before = await self._repository.require(item_id)
        data = before.model_dump()
        data.update(changes)
        after = type(before).model_validate(data)
        await self._repository.update(after)
        await self._audit.log(LogEntryBuilder.updated(
            self._entity_type, self._label, after.name, before, after
        ))
        return after

    async def remove(self, item_id: UUID) -> None:
        """
        Raises:
            InUseError: If a transaction or bill still references the item
            NotFoundError: If the item does not exist
        """
        before = await self._repository.require(item_id)
        for reference in self._references:
            if await reference.uses(item_id):
                logger.info(
                    "lookup_remove_refused",
                    entity_type=self._entity_type.value,
                    item_id=str(item_id),
                    used_by=reference.used_by,
                )
                raise InUseError(self._label, before.name, reference.used_by)

        await self._repository.delete(item_id)
        await self._audit.log(LogEntryBuilder.deleted(
            self._entity_type, self._label.lower(), before.name, before
        ))
