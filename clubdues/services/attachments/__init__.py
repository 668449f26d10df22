"""Attachment storage services package."""

from clubdues.services.attachments.interface import (
    AttachmentError,
    AttachmentResult,
    AttachmentStorageNotConfiguredError,
    AttachmentStore,
    AttachmentUploadError,
    sanitize_filename,
    upload_staged,
)
from clubdues.services.attachments.cloudinary_service import (
    CloudinaryAttachmentStore,
)

__all__ = [
    "AttachmentError",
    "AttachmentResult",
    "AttachmentStorageNotConfiguredError",
    "AttachmentStore",
    "AttachmentUploadError",
    "CloudinaryAttachmentStore",
    "sanitize_filename",
    "upload_staged",
]
