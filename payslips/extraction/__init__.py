"""
Payslip Field Extraction

Plausibility-bounded heuristics that turn noisy payslip text into
structured salary fields.
"""

from payslips.extraction.extractor import PayslipText, extract_fields
from payslips.extraction.patterns import FIELD_PATTERNS, FieldPattern

__all__ = [
    "FIELD_PATTERNS",
    "FieldPattern",
    "PayslipText",
    "extract_fields",
]
