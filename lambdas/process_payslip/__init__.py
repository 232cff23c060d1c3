"""
ProcessPayslip Lambda

Extracts salary fields from one or more uploaded payslips and evaluates
cooperative eligibility.

Trigger: SQS task queue or direct invocation
Output: EventBridge PayslipProcessed event per document
"""

from lambdas.process_payslip.handler import lambda_handler

__all__ = [
    "lambda_handler",
]
