"""Turn free-form model replies into clean, render-ready LaTeX.

The model is asked to answer with LaTeX only, but replies routinely arrive
wrapped in markdown fences, prefixed with a sentence of prose, or enclosed in
math-mode dollars. Cleanup runs as ordered lists of ``(pattern, replacement)``
rules so that each step can be exercised on its own:

    PREAMBLE_RULES     lead-in prose ("这是...", "The LaTeX code is:")
    CANONICAL_RULES    spacing inside \\frac, \\sqrt, ^{...} and _{...}

``normalize`` is pure: the same text always yields the same result.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Iterable, Sequence, Tuple

from core.logger import logger

UNRESOLVED = "No LaTeX recognized"

Rule = Tuple[re.Pattern[str], str]

FENCE_OPEN = re.compile(r"^```(?:latex|math|tex)?\s*\n?", re.IGNORECASE)
FENCE_CLOSE = re.compile(r"\n?```\s*$")

PREAMBLE_RULES: Sequence[Rule] = (
    # "这是...", "答案是...", optionally with a result label ("这是识别结果：")
    (
        re.compile(
            r"^(?:这是|答案是|结果是|公式是|识别到的公式是|LaTeX代码是)"
            r"(?:识别结果|识别到的公式|LaTeX代码|结果|公式)?[：:]?\s*",
            re.IGNORECASE,
        ),
        "",
    ),
    # "The LaTeX code is:", "The formula is"
    (
        re.compile(
            r"^(?:The\s+(?:LaTeX\s+)?(?:code|formula|equation)\s+is)[：:]?\s*",
            re.IGNORECASE,
        ),
        "",
    ),
    # "Here is the LaTeX code:"
    (
        re.compile(
            r"^(?:Here\s+is|Here's)\s+the\s+(?:LaTeX\s+)?(?:code|formula|equation)[：:]?\s*",
            re.IGNORECASE,
        ),
        "",
    ),
    # A label on a line of its own
    (
        re.compile(r"^(?:LaTeX代码|数学公式|识别结果)[：:]?\s*\n", re.IGNORECASE | re.MULTILINE),
        "",
    ),
)

CANONICAL_RULES: Sequence[Rule] = (
    # "\ frac" -> "\frac"; a "\\" line break is left alone
    (re.compile(r"(?<!\\)\\\s+([a-zA-Z]+)"), r"\\\1"),
    (re.compile(r"\\frac\s*\{([^}]*)\}\s*\{([^}]*)\}"), r"\\frac{\1}{\2}"),
    (re.compile(r"\\sqrt\s*\{([^}]*)\}"), r"\\sqrt{\1}"),
    (re.compile(r"\^\s*\{([^}]*)\}"), r"^{\1}"),
    (re.compile(r"_\s*\{([^}]*)\}"), r"_{\1}"),
)

LATEX_COMMAND = re.compile(r"\\[a-zA-Z]+")
LATEX_SYMBOL = re.compile(r"[{}\\^_]")
DISPLAY_SPAN = re.compile(r"\$\$([^$]+)\$\$")
INLINE_SPAN = re.compile(r"\$([^$]+)\$")


@dataclass(frozen=True)
class NormalizedFormula:
    """Cleaned LaTeX plus whether it looked like LaTeX at all."""

    text: str
    confident: bool


def apply_rules(text: str, rules: Iterable[Rule], count: int = 0) -> str:
    """Apply each rule once, in order."""
    for pattern, replacement in rules:
        text = pattern.sub(replacement, text, count=count)
    return text


def strip_fences(text: str) -> str:
    return FENCE_CLOSE.sub("", FENCE_OPEN.sub("", text, count=1), count=1)


def unwrap_math_delimiters(text: str) -> str:
    """Remove one layer of ``$$...$$`` or, failing that, ``$...$``."""
    if text.startswith("$$") and text.endswith("$$"):
        return text[2:-2].strip()
    if text.startswith("$") and text.endswith("$") and "$$" not in text:
        return text[1:-1].strip()
    return text


def looks_like_latex(text: str) -> bool:
    return bool(LATEX_COMMAND.search(text) or LATEX_SYMBOL.search(text))


def outside_math_spans(text: str) -> str:
    """Text with every dollar-delimited span blanked out."""
    return INLINE_SPAN.sub(" ", DISPLAY_SPAN.sub(" ", text))


def recover_math_span(original: str) -> str | None:
    """Best-effort: inner content of the first ``$$...$$`` or ``$...$`` span."""
    for pattern in (DISPLAY_SPAN, INLINE_SPAN):
        match = pattern.search(original)
        if match:
            return match.group(1).strip()
    return None


def canonicalize(text: str) -> str:
    return apply_rules(text, CANONICAL_RULES)


def normalize(raw_text: str) -> NormalizedFormula:
    """Extract canonical LaTeX from a model reply."""
    content = strip_fences(raw_text.strip())
    content = apply_rules(content, PREAMBLE_RULES, count=1).strip()
    content = unwrap_math_delimiters(content)

    # Prose around a math span does not count as LaTeX
    if content and not looks_like_latex(outside_math_spans(content)):
        recovered = recover_math_span(raw_text)
        if recovered is not None:
            logger.debug("Recovered math span from prose reply: %s", recovered[:80])
            content = recovered

    if content:
        return NormalizedFormula(canonicalize(content), True)
    return NormalizedFormula(UNRESOLVED, False)


def extract_latex(data: Any) -> NormalizedFormula:
    """Normalize a parsed chat-completions payload.

    An upstream error object is reported as a diagnostic string and never
    goes through the LaTeX cleanup.
    """
    if not isinstance(data, dict):
        return NormalizedFormula(UNRESOLVED, False)

    content = _message_content(data)
    if content:
        return normalize(content)

    error = data.get("error")
    if error:
        if isinstance(error, dict):
            detail = error.get("message") or json.dumps(error, ensure_ascii=False)
        else:
            detail = str(error)
        logger.warning("Upstream returned an error payload: %s", detail[:200])
        return NormalizedFormula(f"API error: {detail}", False)

    return NormalizedFormula(UNRESOLVED, False)


def _message_content(data: dict) -> str | None:
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) and content.strip() else None
