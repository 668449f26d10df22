"""Services package: row storage and attachment storage."""

from clubdues.services.attachments import (
    AttachmentError,
    AttachmentStorageNotConfiguredError,
    AttachmentStore,
    AttachmentUploadError,
    CloudinaryAttachmentStore,
)
from clubdues.services.storage import (
    ConnectionError,
    ConstraintViolationError,
    DuplicateError,
    InUseError,
    NotFoundError,
    Repositories,
    SchemaUnavailableError,
    StorageError,
)

__all__ = [
    # Attachment services
    "AttachmentError",
    "AttachmentStorageNotConfiguredError",
    "AttachmentStore",
    "AttachmentUploadError",
    "CloudinaryAttachmentStore",
    # Storage services
    "ConnectionError",
    "ConstraintViolationError",
    "DuplicateError",
    "InUseError",
    "NotFoundError",
    "Repositories",
    "SchemaUnavailableError",
    "StorageError",
]
