"""Tests for the model-reply to LaTeX normalizer."""
from __future__ import annotations

import pytest

from services.ocr.response_normalizer import (
    CANONICAL_RULES,
    PREAMBLE_RULES,
    UNRESOLVED,
    NormalizedFormula,
    extract_latex,
    normalize,
    recover_math_span,
    strip_fences,
    unwrap_math_delimiters,
)


def completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


# ----------------------------------------------------------
# END-TO-END SCENARIOS
# ----------------------------------------------------------

def test_fenced_latex_block() -> None:
    result = normalize("```latex\nx = \\frac{1}{2}\n```")

    assert result == NormalizedFormula(r"x = \frac{1}{2}", True)


def test_chinese_preamble_with_display_math() -> None:
    result = normalize("这是识别结果：$$a^2+b^2=c^2$$")

    assert result.text == "a^2+b^2=c^2"
    assert result.confident


def test_display_math_wrapper_is_unwrapped() -> None:
    assert normalize("$$  \\sum_{i=1}^{n} i  $$").text == r"\sum_{i=1}^{n} i"


def test_inline_math_wrapper_is_unwrapped() -> None:
    assert normalize("$x_1 + x_2$").text == "x_1 + x_2"


def test_colon_inside_formula_is_kept() -> None:
    assert normalize(r"这是 \{x : x > 0\}").text == r"\{x : x > 0\}"
    assert normalize(r"答案是 f: \mathbb{R} \to \mathbb{R}").text == r"f: \mathbb{R} \to \mathbb{R}"


def test_english_preamble() -> None:
    assert normalize("The LaTeX code is: \\sqrt{2}").text == r"\sqrt{2}"
    assert normalize("Here is the formula: $E = mc^2$").text == "E = mc^2"


def test_label_line_is_dropped() -> None:
    assert normalize("识别结果：\n\\alpha + \\beta").text == r"\alpha + \beta"


def test_prose_with_single_math_span_recovers_span() -> None:
    raw = "The area of the circle is $\\pi r^2$ square units."

    assert normalize(raw).text == r"\pi r^2"


def test_prose_with_plain_span_recovers_span() -> None:
    assert normalize("I think it reads $x + y = 3$ here").text == "x + y = 3"


def test_plain_text_without_span_is_kept() -> None:
    result = normalize("x + y = 3")

    assert result.text == "x + y = 3"
    assert result.confident


@pytest.mark.parametrize("raw", ["", "   ", "```\n```", "$$ $$"])
def test_nothing_salvageable_returns_sentinel(raw: str) -> None:
    assert normalize(raw) == NormalizedFormula(UNRESOLVED, False)


def test_canonical_spacing_applied() -> None:
    raw = r"\frac {a} {b} + \sqrt {c} + x^ {2} + y_ {k} + \ alpha"

    assert normalize(raw).text == r"\frac{a}{b} + \sqrt{c} + x^{2} + y_{k} + \alpha"


# ----------------------------------------------------------
# PROPERTIES
# ----------------------------------------------------------

SAMPLES = [
    "```latex\nx = \\frac{1}{2}\n```",
    "这是识别结果：$$a^2+b^2=c^2$$",
    "The formula is $\\int_0^1 f(x) \\, dx$",
    "Result: $y = mx + b$ for the line",
    "\\begin{pmatrix} 1 & 0 \\\\ 0 & 1 \\end{pmatrix}",
    "\\frac {1} {n} \\sum _ {t=0} ^ {n-1} x_t",
]


@pytest.mark.parametrize("raw", SAMPLES)
def test_normalize_is_pure(raw: str) -> None:
    assert normalize(raw) == normalize(raw)


@pytest.mark.parametrize("raw", SAMPLES)
def test_normalize_is_idempotent(raw: str) -> None:
    once = normalize(raw).text

    assert normalize(once).text == once


def test_matrix_line_breaks_survive() -> None:
    raw = "\\begin{pmatrix} 1 & 0 \\\\ 0 & 1 \\end{pmatrix}"

    assert normalize(raw).text == raw


# ----------------------------------------------------------
# INDIVIDUAL RULES
# ----------------------------------------------------------

def test_strip_fences_variants() -> None:
    assert strip_fences("```tex\na\n```") == "a"
    assert strip_fences("```MATH\nb\n```  ") == "b"
    assert strip_fences("```\nc\n```") == "c"
    assert strip_fences("d") == "d"


def test_unwrap_only_one_layer() -> None:
    assert unwrap_math_delimiters("$$ $x$ $$") == "$x$"
    assert unwrap_math_delimiters("$a$ and $$b$$") == "$a$ and $$b$$"
    assert unwrap_math_delimiters("a + b") == "a + b"


@pytest.mark.parametrize(
    ("index", "raw", "expected"),
    [
        (0, "这是 x^2", "x^2"),
        (0, "答案是：y", "y"),
        (0, "这是识别结果：z", "z"),
        (0, r"这是 \{x : x > 0\}", r"\{x : x > 0\}"),
        (0, r"答案是 f: \mathbb{R} \to \mathbb{R}", r"f: \mathbb{R} \to \mathbb{R}"),
        (1, "The equation is: z", "z"),
        (1, "the code is x", "x"),
        (2, "Here's the LaTeX code: w", "w"),
        (3, "数学公式\nq", "q"),
    ],
)
def test_each_preamble_rule(index: int, raw: str, expected: str) -> None:
    pattern, replacement = PREAMBLE_RULES[index]

    assert pattern.sub(replacement, raw, count=1) == expected


@pytest.mark.parametrize(
    ("index", "raw", "expected"),
    [
        (0, r"\ sin x", r"\sin x"),
        (0, r"a \\ b", r"a \\ b"),
        (1, r"\frac {1}  {2}", r"\frac{1}{2}"),
        (2, r"\sqrt   {x}", r"\sqrt{x}"),
        (3, r"e^ {i\pi}", r"e^{i\pi}"),
        (4, r"a_  {ij}", r"a_{ij}"),
    ],
)
def test_each_canonical_rule(index: int, raw: str, expected: str) -> None:
    pattern, replacement = CANONICAL_RULES[index]

    assert pattern.sub(replacement, raw) == expected


def test_recover_prefers_display_span() -> None:
    assert recover_math_span("see $a$ or $$ b $$") == "b"
    assert recover_math_span("no math here") is None


# ----------------------------------------------------------
# PAYLOAD EXTRACTION
# ----------------------------------------------------------

def test_extract_from_completion() -> None:
    result = extract_latex(completion("$$\\frac{a}{b}$$"))

    assert result == NormalizedFormula(r"\frac{a}{b}", True)


def test_error_payload_becomes_diagnostic() -> None:
    result = extract_latex({"error": {"message": "Invalid image", "type": "invalid_request_error"}})

    assert result == NormalizedFormula("API error: Invalid image", False)


def test_error_payload_without_message_is_dumped() -> None:
    result = extract_latex({"error": {"code": 42}})

    assert result.text == 'API error: {"code": 42}'
    assert not result.confident


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"choices": []},
        {"choices": [{"message": {"content": "   "}}]},
        {"choices": [{"message": {}}]},
        ["not", "an", "object"],
        None,
    ],
)
def test_payload_without_content_is_unresolved(data) -> None:
    assert extract_latex(data) == NormalizedFormula(UNRESOLVED, False)
