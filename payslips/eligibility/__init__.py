"""
Cooperative Eligibility

Evaluates extracted payslip fields against cooperative lender rules.
"""

from payslips.eligibility.evaluator import (
    apply_eligibility,
    evaluate_eligibility,
    explain_eligibility,
)

__all__ = [
    "apply_eligibility",
    "evaluate_eligibility",
    "explain_eligibility",
]
