"""Upload validation and encoding utilities."""
from __future__ import annotations

import base64
from typing import Iterable

from core.config import settings
from core.errors import ClientInputError
from core.logger import logger


def validate_upload(
    media_type: str | None,
    size: int,
    allowed_types: Iterable[str] | None = None,
    max_bytes: int | None = None,
) -> None:
    """Reject unsupported media types and oversized images."""
    allowed = frozenset(allowed_types) if allowed_types is not None else settings.allowed_media_types
    limit = max_bytes if max_bytes is not None else settings.max_upload_bytes

    if media_type not in allowed:
        logger.info("Rejected upload with media type %s", media_type)
        raise ClientInputError("Unsupported image format, please upload PNG/JPG/JPEG/WEBP")
    if size > limit:
        logger.info("Rejected upload of %d bytes (limit %d)", size, limit)
        raise ClientInputError(
            f"Image too large, please upload an image smaller than {limit // (1024 * 1024)}MB"
        )


def encode_payload(content: bytes) -> str:
    """Base64-encode raw image bytes as ASCII text."""
    if not content:
        raise ClientInputError("Uploaded image is empty")
    encoded = base64.b64encode(content).decode("ascii")
    logger.debug("Encoded %d bytes to %d base64 characters", len(content), len(encoded))
    return encoded
