"""Image uploads to Cloudinary for chat pictures and profile photos."""

from __future__ import annotations

import logging
from typing import IO, Any

import cloudinary
import cloudinary.uploader

from internly.workspace import Settings

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024

UPLOAD_FOLDER = "internly"


def validate_image(content_type: str | None, size: int) -> list[str]:
    """Validate an upload. Returns a list of error strings (empty = valid)."""
    errors = []
    if not content_type or not content_type.startswith("image/"):
        errors.append("File must be an image")
    if size > MAX_IMAGE_BYTES:
        errors.append("Image must be under 5MB")
    return errors


def configure_uploads(settings: Settings) -> bool:
    """Apply Cloudinary credentials from settings. False when none are configured."""
    if not settings.cloudinary_url:
        return False
    cloudinary.config(cloudinary_url=settings.cloudinary_url, secure=True)
    return True


def upload_image(file_stream: IO[bytes] | bytes, filename: str, folder: str = UPLOAD_FOLDER) -> str:
    """Upload an image and return its public HTTPS URL."""
    result: dict[str, Any] = cloudinary.uploader.upload(file_stream, public_id=filename, folder=folder)
    url = result["secure_url"]
    logger.info("Uploaded %s to %s", filename, url)
    return url
