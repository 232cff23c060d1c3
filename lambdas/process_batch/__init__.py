"""
ProcessBatch Lambda

Runs every queued payslip in a batch and finalizes the batch record.

Trigger: EventBridge BatchSubmitted rule or direct invocation
Output: EventBridge BatchCompleted or BatchFailed event
"""

from lambdas.process_batch.handler import build_coordinator, lambda_handler

__all__ = [
    "build_coordinator",
    "lambda_handler",
]
