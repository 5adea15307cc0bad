"""Tests for upload validation and encoding."""
from __future__ import annotations

import pytest

from core.errors import ClientInputError
from utils.file_utils import encode_payload, validate_upload


@pytest.mark.parametrize("media_type", ["image/png", "image/jpeg", "image/jpg", "image/webp"])
def test_allowed_media_types(media_type: str) -> None:
    validate_upload(media_type, 1024)


@pytest.mark.parametrize("media_type", ["image/gif", "application/pdf", "", None])
def test_rejected_media_types(media_type) -> None:
    with pytest.raises(ClientInputError, match="Unsupported image format"):
        validate_upload(media_type, 1024)


def test_size_ceiling() -> None:
    validate_upload("image/png", 3 * 1024 * 1024)

    with pytest.raises(ClientInputError, match="smaller than 3MB"):
        validate_upload("image/png", 3 * 1024 * 1024 + 1)


def test_custom_limits() -> None:
    with pytest.raises(ClientInputError):
        validate_upload("image/png", 10, allowed_types={"image/bmp"})
    with pytest.raises(ClientInputError):
        validate_upload("image/png", 2 * 1024 * 1024, max_bytes=1024 * 1024)


def test_encode_payload() -> None:
    assert encode_payload(b"hello") == "aGVsbG8="


def test_encode_empty_payload() -> None:
    with pytest.raises(ClientInputError, match="empty"):
        encode_payload(b"")
