"""
Payslip Document Processing

Single-document lifecycle: text extraction, field parsing and
eligibility evaluation with state tracking.
"""

from payslips.processing.document_processor import DOCUMENT_ERRORS, DocumentProcessor

__all__ = [
    "DOCUMENT_ERRORS",
    "DocumentProcessor",
]
