"""
Payslip Field Extractor

Converts raw OCR/PDF text into structured salary fields.

Each field is tried against an ordered list of strategies and the first
plausible candidate wins:
1. inline label-colon-value on the whitespace-normalized text
2. structural colon block (labels, then colons, then values, on separate lines)
3. parenthetical value next to the label
4. line-by-line scan of label, separator and value on one physical line

Missing fields stay None. A parsed net salary that disagrees with income
minus deductions is recomputed, and totals the text did not yield are
derived from the ones it did. Each found field carries the confidence of
the strategy behind it; their average is the extraction's confidence score.
Extraction is pure: the same text and config always give the same result.
"""

import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

import structlog

from payslips.extraction.parsing import (
    parse_identifier,
    parse_name,
    parse_number,
    parse_period,
)
from payslips.extraction.patterns import (
    COLON_LINE,
    FIELD_PATTERNS,
    GROSS_ITEM_CODE,
    NOTE_LINE,
    FieldPattern,
    is_bare_label,
    is_label_line,
)
from payslips.shared.config import ExtractionConfig
from payslips.shared.models.documents import ExtractedFields

log = structlog.get_logger()

# Lines scanned past a label block when looking for its colons and values
STRUCTURAL_WINDOW = 10

# Confidence, 0 to 100, of a value by the strategy that produced it
STRATEGY_CONFIDENCE: dict[str, float] = {
    "inline": 95,
    "structural": 95,
    "item_code": 90,
    "line_scan": 80,
    "parenthetical": 70,
    "derived": 90,
    "derived_percentage": 85,
    "corrected": 85,
}


@dataclass(frozen=True)
class PayslipText:
    """Two views of the same raw text."""

    flat: str
    lines: tuple[str, ...]

    @classmethod
    def from_raw(cls, raw_text: str) -> "PayslipText":
        lines = tuple(
            cleaned
            for cleaned in (re.sub(r"[ \t\f\v]+", " ", line).strip() for line in raw_text.splitlines())
            if cleaned
        )
        return cls(flat=" ".join(lines), lines=lines)


Strategy = Callable[[FieldPattern, PayslipText], Iterator[str]]


def _inline(field: FieldPattern, text: PayslipText) -> Iterator[str]:
    for match in field.inline().finditer(text.flat):
        yield match.group("value")


def _structural(field: FieldPattern, text: PayslipText) -> Iterator[str]:
    lines = text.lines
    label = field.bare_label()
    for index, line in enumerate(lines):
        if not label.fullmatch(line):
            continue

        # The block spans every caption line, not only known field labels
        start = index
        while start > 0 and is_label_line(lines[start - 1]):
            start -= 1
        end = index + 1
        while end < len(lines) and is_label_line(lines[end]):
            end += 1

        colon_run = _colon_run(lines, end)
        if colon_run is None:
            continue
        colons, values_start = colon_run

        # One colon per value, paired with the captions directly above the run
        mapped = min(colons, end - start)
        position = index - (end - mapped)
        if position < 0:
            continue

        values = _block_values(lines, values_start, mapped)
        if position < len(values):
            yield values[position]


def _colon_run(lines: tuple[str, ...], begin: int) -> tuple[int, int] | None:
    """
    Find the colon-only lines that follow a label block.

    Returns (number of colons, index of the first line after the run), or
    None when no colon run appears within the window.
    """
    limit = min(len(lines), begin + STRUCTURAL_WINDOW)
    cursor = begin

    while cursor < limit and NOTE_LINE.search(lines[cursor]):
        cursor += 1

    colons = 0
    while cursor < len(lines) and COLON_LINE.fullmatch(lines[cursor]):
        colons += lines[cursor].count(":")
        cursor += 1
    if colons == 0:
        return None
    return colons, cursor


def _block_values(lines: tuple[str, ...], begin: int, count: int) -> list[str]:
    """Collect up to `count` value lines, skipping notes."""
    limit = min(len(lines), begin + STRUCTURAL_WINDOW + count)
    cursor = begin

    values: list[str] = []
    while cursor < limit and len(values) < count:
        line = lines[cursor]
        cursor += 1
        if NOTE_LINE.search(line) or COLON_LINE.fullmatch(line):
            continue
        if is_bare_label(line):
            break
        values.append(line)
    return values


def _parenthetical(field: FieldPattern, text: PayslipText) -> Iterator[str]:
    if not field.is_numeric:
        return
    for match in field.parenthetical().finditer(text.flat):
        yield match.group("value")


def _item_code(field: FieldPattern, text: PayslipText) -> Iterator[str]:
    for line in text.lines:
        match = GROSS_ITEM_CODE.search(line)
        if match:
            yield match.group("value")


def _line_scan(field: FieldPattern, text: PayslipText) -> Iterator[str]:
    pattern = field.line_scan()
    for line in text.lines:
        match = pattern.search(line)
        if match:
            yield match.group("value")


DEFAULT_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("inline", _inline),
    ("structural", _structural),
    ("parenthetical", _parenthetical),
    ("line_scan", _line_scan),
)

# Basic salary is also printed as item code 0001 in the earnings table
GROSS_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("inline", _inline),
    ("structural", _structural),
    ("parenthetical", _parenthetical),
    ("item_code", _item_code),
    ("line_scan", _line_scan),
)


def _strategies_for(field: FieldPattern) -> tuple[tuple[str, Strategy], ...]:
    if field.name == "gross_salary":
        return GROSS_STRATEGIES
    return DEFAULT_STRATEGIES


def _parse_candidate(field: FieldPattern, raw: str, config: ExtractionConfig) -> Any:
    """Parse and range-check one candidate; None means rejected."""
    if field.kind == "name":
        return parse_name(raw)
    if field.kind == "identifier":
        return parse_identifier(raw)
    if field.kind == "period":
        return parse_period(raw)

    value = parse_number(raw)
    if value is None:
        return None
    if field.kind == "percentage":
        return value if config.percentage_in_range(value) else None
    return value if config.amount_in_range(value) else None


def _extract_field(
    field: FieldPattern,
    text: PayslipText,
    config: ExtractionConfig,
    trace: list[str],
    confidence: dict[str, float],
) -> Any:
    for strategy_name, strategy in _strategies_for(field):
        for raw in strategy(field, text):
            value = _parse_candidate(field, raw, config)
            if value is not None:
                trace.append(f"{field.name}: {strategy_name}")
                confidence[field.name] = STRATEGY_CONFIDENCE[strategy_name]
                return value
            trace.append(f"{field.name}: {strategy_name} rejected {raw.strip()!r}")
    trace.append(f"{field.name}: not found")
    return None


def _correct_net_salary(
    values: dict[str, Any],
    config: ExtractionConfig,
    trace: list[str],
    confidence: dict[str, float],
) -> None:
    """Replace a parsed net salary that disagrees with income minus deductions."""
    income = values.get("total_income")
    deductions = values.get("total_deductions")
    net = values.get("net_salary")
    if income is None or deductions is None or net is None:
        return

    expected = round(income - deductions, 2)
    if abs(net - expected) <= config.net_salary_tolerance or not config.amount_in_range(expected):
        return
    values["net_salary"] = expected
    trace.append("net_salary: corrected")
    confidence["net_salary"] = STRATEGY_CONFIDENCE["corrected"]
    log.debug("net_salary_corrected", parsed=net, expected=expected)


def _derive_missing(
    values: dict[str, Any],
    config: ExtractionConfig,
    trace: list[str],
    confidence: dict[str, float],
) -> None:
    """
    Fill salary totals that the text did not yield from the ones it did.

    Derived values go through the same plausibility ranges as parsed ones.
    """

    def accept(name: str, value: float, in_range: Callable[[float], bool], score: float) -> None:
        value = round(value, 2)
        if in_range(value):
            values[name] = value
            trace.append(f"{name}: derived")
            confidence[name] = score

    income = values.get("total_income")
    deductions = values.get("total_deductions")
    net = values.get("net_salary")
    derived = STRATEGY_CONFIDENCE["derived"]

    if net is None and income is not None and deductions is not None:
        accept("net_salary", income - deductions, config.amount_in_range, derived)
    elif deductions is None and income is not None and net is not None:
        accept("total_deductions", income - net, config.amount_in_range, derived)
    elif income is None and net is not None and deductions is not None:
        accept("total_income", net + deductions, config.amount_in_range, derived)

    net = values.get("net_salary")
    base = values.get("total_income") or values.get("gross_salary")
    if values.get("net_salary_percentage") is None and net is not None and base:
        accept(
            "net_salary_percentage",
            net / base * 100,
            config.percentage_in_range,
            STRATEGY_CONFIDENCE["derived_percentage"],
        )


def _scores(confidence: dict[str, float]) -> dict[str, float]:
    """Average confidence of the found fields and their share of all fields."""
    if not confidence:
        return {"confidence_score": 0.0, "data_completeness": 0.0}
    return {
        "confidence_score": round(sum(confidence.values()) / len(confidence), 2),
        "data_completeness": round(len(confidence) / len(FIELD_PATTERNS) * 100, 2),
    }


def extract_fields(raw_text: str, config: ExtractionConfig | None = None) -> ExtractedFields:
    """
    Extract salary fields from raw payslip text.

    Args:
        raw_text: Text returned by the OCR/PDF collaborator
        config: Plausibility ranges; defaults apply when omitted

    Returns:
        ExtractedFields with the debug trace and quality scores filled in.
        Eligibility results are left empty for the evaluator to fill.
    """
    config = config or ExtractionConfig()
    text = PayslipText.from_raw(raw_text or "")
    trace: list[str] = []
    confidence: dict[str, float] = {}

    values: dict[str, Any] = {
        field.name: _extract_field(field, text, config, trace, confidence)
        for field in FIELD_PATTERNS
    }

    if config.derive_missing_fields:
        _correct_net_salary(values, config, trace, confidence)
        _derive_missing(values, config, trace, confidence)

    fields = ExtractedFields(**values, **_scores(confidence), debug_trace=trace)

    log.debug(
        "payslip_fields_extracted",
        fields_found=len(fields.found_fields),
        total_fields=len(FIELD_PATTERNS),
        text_length=len(text.flat),
        confidence_score=fields.confidence_score,
    )

    return fields
