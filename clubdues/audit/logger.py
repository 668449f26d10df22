"""
Audit Logger

DESIGN DECISION: Every mutation of a stored record is logged.
This provides:
1. Complete traceability of who changed what
2. The before-images that make undo possible
3. A readable activity history for the treasurer

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (a lost log entry never rolls back the
  mutation it describes)
"""

from typing import Optional

import structlog

from clubdues.models.audit import ActionType, EntityType, LogEntry, UndoAction
from clubdues.services.storage import LogRepository


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs entries both to:
    1. Structured local log (for debugging)
    2. The log table (for persistence, the activity page and undo)
    """

    def __init__(self, storage: Optional[LogRepository] = None):
        """
        Initialize audit logger.

        Args:
            storage: Log table. If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, entry: LogEntry) -> bool:
        """
        Append a log entry.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        self._logger.info("audit_entry", **entry.to_log_dict())

        if self._storage:
            try:
                await self._storage.append(entry)
                return True
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    log_id=str(entry.id),
                )
                return False

        return True

    async def record(
        self,
        description: str,
        action_type: ActionType,
        entity_type: EntityType,
        undo: UndoAction,
    ) -> LogEntry:
        """Build and append an entry from its parts."""
        entry = LogEntry(
            description=description,
            action_type=action_type,
            entity_type=entity_type,
            undo=undo,
        )
        await self.log(entry)
        return entry
