"""Audit logging and undo package."""

from clubdues.audit.logger import AuditLogger
from clubdues.audit.undo import UndoError, UndoService

__all__ = ["AuditLogger", "UndoError", "UndoService"]
