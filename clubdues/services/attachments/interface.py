"""
Attachment Store Interface

Receipts and invoices are uploaded to a blob store before the row that
references them is written. The row only keeps the returned URL.

DESIGN DECISION: Attachment failures never block a ledger write.
upload_staged converts every failure into a warning string. The caller
saves the row anyway and shows the warning.
"""

import re
import unicodedata
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import structlog

from clubdues.models.ledger import StagedAttachment


logger = structlog.get_logger()


class AttachmentError(Exception):
    """Base exception for attachment storage errors."""
    pass


class AttachmentStorageNotConfiguredError(AttachmentError):
    """No blob store is configured for this deployment."""
    pass


class AttachmentUploadError(AttachmentError):
    """The blob store rejected or failed the upload."""
    pass


NOT_CONFIGURED_WARNING = (
    "Attachment storage is not configured. The record was saved without the attachment."
)
UPLOAD_FAILED_WARNING = (
    "The attachment could not be uploaded ({reason}). The record was saved without it."
)
TOO_LARGE_WARNING = (
    "The attachment exceeds the {limit_mb} MB limit. The record was saved without it."
)


def sanitize_filename(filename: str) -> str:
    """
    Make a filename safe for object storage keys.

    Accents are removed, whitespace and anything outside [A-Za-z0-9._-]
    become underscores, and runs of underscores collapse to one.
    """
    normalized = unicodedata.normalize("NFD", filename)
    without_accents = "".join(c for c in normalized if not unicodedata.combining(c))
    cleaned = re.sub(r"\s+", "_", without_accents)
    cleaned = re.sub(r"[^A-Za-z0-9._-]", "_", cleaned)
    return re.sub(r"__+", "_", cleaned)


class AttachmentStore(ABC):
    """Abstract blob store."""

    @abstractmethod
    async def upload(self, filename: str, content: bytes, content_type: str) -> str:
        """
        Store a file and return its public URL.

        Raises:
            AttachmentUploadError: If the upload fails
        """
        pass


@dataclass
class AttachmentResult:
    """Outcome of uploading a staged attachment."""

    url: Optional[str] = None
    filename: Optional[str] = None
    warning: Optional[str] = None

    @property
    def uploaded(self) -> bool:
        return self.url is not None


async def upload_staged(
    store: Optional[AttachmentStore],
    staged: StagedAttachment,
    max_size_bytes: Optional[int] = None,
) -> AttachmentResult:
    """
    Upload a staged attachment, degrading every failure to a warning.

    A missing store is reported separately from a failed upload.
    """
    try:
        if store is None:
            raise AttachmentStorageNotConfiguredError("No attachment store configured")
        if max_size_bytes is not None and staged.size_bytes > max_size_bytes:
            logger.warning(
                "attachment_too_large",
                attachment_name=staged.filename,
                size_bytes=staged.size_bytes,
                limit_bytes=max_size_bytes,
            )
            return AttachmentResult(
                warning=TOO_LARGE_WARNING.format(limit_mb=max_size_bytes // (1024 * 1024))
            )
        url = await store.upload(staged.filename, staged.content, staged.content_type)
        return AttachmentResult(url=url, filename=staged.filename)
    except AttachmentStorageNotConfiguredError:
        logger.warning("attachment_storage_not_configured", attachment_name=staged.filename)
        return AttachmentResult(warning=NOT_CONFIGURED_WARNING)
    except AttachmentUploadError as e:
        logger.warning(
            "attachment_upload_failed",
            attachment_name=staged.filename,
            error=str(e),
        )
        return AttachmentResult(warning=UPLOAD_FAILED_WARNING.format(reason=e))
