"""Pytest configuration for tests."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
# This allows imports like "from services.ocr..." to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from services.ocr.request_builder import RecognitionRequest  # noqa: E402


@pytest.fixture
def recognition_request() -> RecognitionRequest:
    return RecognitionRequest(
        credential="sk-test",
        media_type="image/png",
        encoded_payload="aGVsbG8=",
    )
