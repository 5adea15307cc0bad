"""Chat-completions request for one formula image."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

RECOGNITION_PROMPT = r"""Carefully read the mathematical formula in the image and convert it to standard LaTeX code.

Requirements:
1. Output only plain LaTeX code, with no explanation and no markdown markup
2. Make sure the LaTeX syntax is correct and can be used directly
3. Use \frac{}{} for fractions and \sqrt{} for roots
4. Use ^{} and _{} for superscripts and subscripts, and the matching LaTeX commands for Greek letters
5. Use \begin{pmatrix}...\end{pmatrix} or \begin{bmatrix}...\end{bmatrix} for matrices
6. Use \int for integrals, \sum for sums and \prod for products
7. For multi-line formulas, break lines with \\ and align with &
8. Keep the structure and layout of the original formula

Example output:
x = \frac{-b \pm \sqrt{b^2 - 4ac}}{2a}

Now recognize the formula in the image:"""

USER_AGENT = "formula-ocr/0.1 (+httpx)"


@dataclass(frozen=True)
class RecognitionRequest:
    """Validated input for one recognition: key, media type and base64 image."""

    credential: str
    media_type: str
    encoded_payload: str

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.encoded_payload}"


def build_payload(
    request: RecognitionRequest,
    model: str,
    max_tokens: int = 500,
    temperature: float = 0,
) -> dict[str, Any]:
    """Single user turn holding the instruction prompt and the inlined image."""
    return {
        "model": model,
        "messages": [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": RECOGNITION_PROMPT},
                    {"type": "image_url", "image_url": {"url": request.data_url}},
                ],
            }
        ],
        "max_tokens": max_tokens,
        "temperature": temperature,
    }


def build_headers(request: RecognitionRequest) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {request.credential}",
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
        "Cache-Control": "no-cache",
    }
