"""End-to-end recognition of one formula image.

Input and credential checks run before any network attempt, the invocation
engine is bounded by an outer processing deadline, and a successful reply is
handed to the response normalizer.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Dict

from core.config import resolve_api_key, settings
from core.errors import CredentialMissingError, ErrorKind, ProcessingTimeoutError, UpstreamError
from core.logger import logger
from services.ocr.invocation_engine import InvocationEngine, InvocationFailure
from services.ocr.request_builder import RecognitionRequest
from services.ocr.response_normalizer import extract_latex
from utils.file_utils import encode_payload, validate_upload

RAW_PREVIEW_LIMIT = 1000


def prepare_request(content: bytes, media_type: str | None, api_key: str | None = None) -> RecognitionRequest:
    """Validate an upload and build the request; no network involved."""
    validate_upload(media_type, len(content))

    credential = api_key or settings.api_key or resolve_api_key()
    if not credential:
        logger.error("No API key configured")
        raise CredentialMissingError(
            "Server configuration error: missing API key. "
            "Set OPENAI_API_KEY, GEMINI_API_KEY or API_KEY"
        )

    return RecognitionRequest(
        credential=credential,
        media_type=media_type,
        encoded_payload=encode_payload(content),
    )


class FormulaRecognizer:
    """Recognize a formula image and return the LaTeX result envelope."""

    def __init__(
        self,
        engine: InvocationEngine | None = None,
        processing_timeout: float | None = None,
    ) -> None:
        self.engine = engine or InvocationEngine()
        self.processing_timeout = processing_timeout or settings.processing_timeout

    async def recognize(self, request: RecognitionRequest) -> Dict[str, Any]:
        """
        Run the invocation engine under the processing deadline.

        Returns:
            ``{"latex", "raw", "endpoint"}``; ``error_kind`` is added with
            ``content_unresolved`` when the reply held no usable LaTeX.

        Raises:
            ProcessingTimeoutError: the deadline fired first.
            UpstreamError: every endpoint failed, or one answered with a 4xx.
        """
        try:
            result = await asyncio.wait_for(
                self.engine.invoke(request, time_budget=self.processing_timeout),
                timeout=self.processing_timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Processing exceeded %.1fs", self.processing_timeout)
            raise ProcessingTimeoutError("Processing timed out, please try again") from exc

        if isinstance(result, InvocationFailure):
            raise UpstreamError(result.reason, kind=result.kind, raw=result.raw)

        formula = extract_latex(result.data)
        envelope: Dict[str, Any] = {
            "latex": formula.text,
            "raw": json.dumps(result.data, indent=1, ensure_ascii=False)[:RAW_PREVIEW_LIMIT],
            "endpoint": result.endpoint,
        }
        if not formula.confident:
            logger.warning("Reply from %s held no usable LaTeX", result.endpoint)
            envelope["error_kind"] = ErrorKind.CONTENT_UNRESOLVED.value
        else:
            logger.info("Recognized LaTeX: %s", formula.text[:80])
        return envelope

    async def recognize_upload(
        self, content: bytes, media_type: str | None, api_key: str | None = None
    ) -> Dict[str, Any]:
        return await self.recognize(prepare_request(content, media_type, api_key))
