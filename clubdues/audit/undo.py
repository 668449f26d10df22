"""
Undo Service

Replays the inverse of a logged mutation from its undo data:
- create -> delete the row by id
- delete -> re-insert every snapshot
- update -> overwrite the row with its before-image

Only the row the entry targeted is reverted. Side effects of the
original operation (the transaction created by a bill payment, for
instance) each have their own entry and must be undone separately.
An undo is not logged and cannot itself be undone.
"""

from typing import Optional
from uuid import UUID

import structlog

from clubdues.config import get_settings
from clubdues.models.audit import (
    CreateUndo,
    DeleteUndo,
    EntityType,
    LogEntry,
    UpdateUndo,
)
from clubdues.services.storage import LogRepository, Repository


logger = structlog.get_logger()


class UndoError(Exception):
    """The log entry does not exist or has already been undone."""
    pass


class UndoService:
    """Lists the activity log and reverses individual entries."""

    def __init__(
        self,
        logs: LogRepository,
        repositories: dict[EntityType, Repository],
        undone_prefix: Optional[str] = None,
        page_size: Optional[int] = None,
    ):
        settings = get_settings().app
        self._logs = logs
        self._repositories = repositories
        self._prefix = undone_prefix or settings.undone_prefix
        self._page_size = page_size or settings.log_page_size

    async def get_logs(self, limit: Optional[int] = None) -> list[LogEntry]:
        """Most recent entries first."""
        return await self._logs.list_recent(limit or self._page_size)

    async def undo_log_action(self, log_id: UUID) -> LogEntry:
        """
        Reverse one logged mutation and mark the entry as undone.

        Raises:
            UndoError: If the entry is missing or was already undone
            NotFoundError: If the row to delete or overwrite no longer exists
        """
        entry = await self._logs.get(log_id)
        if entry is None:
            raise UndoError(f"Log entry {log_id} not found")
        if entry.is_undone(self._prefix):
            raise UndoError("This action has already been undone")

        repository = self._repositories.get(entry.entity_type)
        if repository is None:
            raise UndoError(f"No repository registered for {entry.entity_type.value}")

        undo = entry.undo
        if isinstance(undo, CreateUndo):
            await repository.delete(undo.id)
        elif isinstance(undo, DeleteUndo):
            for snapshot in undo.snapshots:
                await repository.restore(snapshot)
        elif isinstance(undo, UpdateUndo):
            await repository.overwrite(undo.snapshot)
        else:
            raise UndoError(f"Unsupported undo data: {type(undo).__name__}")

        updated = await self._logs.update_description(
            entry.id, f"{self._prefix} {entry.description}"
        )
        logger.info(
            "audit_entry_undone",
            log_id=str(entry.id),
            action_type=entry.action_type.value,
            entity_type=entry.entity_type.value,
        )
        return updated
