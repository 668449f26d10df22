"""
Attachment Storage using Cloudinary

DESIGN DECISION: We use Cloudinary because:
1. Reliable cloud infrastructure
2. Simple API
3. Free tier sufficient for a small organization

Receipts are uploaded as raw resources so PDFs and images are stored
byte for byte, with no transformation.
"""

import time
from typing import Optional

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from clubdues.config import CloudinarySettings, get_settings
from clubdues.services.attachments.interface import (
    AttachmentStore,
    AttachmentUploadError,
    sanitize_filename,
)


logger = structlog.get_logger()


class CloudinaryAttachmentStore(AttachmentStore):
    """
    Blob store backed by Cloudinary.

    Public ids are "<folder>/<millis>-<sanitized filename>", so two
    uploads of the same file never overwrite each other.
    """

    def __init__(self, settings: Optional[CloudinarySettings] = None):
        self._settings = settings or get_settings().cloudinary
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def _generate_public_id(self, filename: str) -> str:
        millis = int(time.time() * 1000)
        return f"{self._settings.folder}/{millis}-{sanitize_filename(filename)}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upload(self, filename: str, content: bytes, content_type: str) -> str:
        """
        Upload a file and return its secure URL.

        Raises:
            AttachmentUploadError: If Cloudinary fails or returns no URL
        """
        self._configure()
        public_id = self._generate_public_id(filename)

        try:
            result = cloudinary.uploader.upload(
                content,
                public_id=public_id,
                resource_type="raw",
                overwrite=False,
            )
        except cloudinary.exceptions.Error as e:
            raise AttachmentUploadError(f"Cloudinary error: {e}")
        except Exception as e:
            raise AttachmentUploadError(f"Failed to upload attachment: {e}")

        url = result.get("secure_url", result.get("url", ""))
        if not url:
            raise AttachmentUploadError("No URL returned from Cloudinary")

        logger.info(
            "attachment_uploaded",
            public_id=public_id,
            content_type=content_type,
            size_bytes=len(content),
        )
        return url
