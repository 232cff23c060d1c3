# Shared Models
"""
Pydantic models for payslip documents, cooperative rules, batches and events.
"""

from payslips.shared.models.batches import BatchOperation, BatchSettings, new_batch_id
from payslips.shared.models.documents import (
    EligibilityDetail,
    ExtractedFields,
    PayslipDocument,
)
from payslips.shared.models.events import (
    BaseEvent,
    BatchCompletedEvent,
    BatchFailedEvent,
    EVENT_TYPE_MAP,
    PayslipProcessedEvent,
    parse_event,
)
from payslips.shared.models.rules import CooperativeRule, RuleKind, RulePredicate

__all__ = [
    # Documents
    "EligibilityDetail",
    "ExtractedFields",
    "PayslipDocument",
    # Rules
    "CooperativeRule",
    "RuleKind",
    "RulePredicate",
    # Batches
    "BatchOperation",
    "BatchSettings",
    "new_batch_id",
    # Events
    "BaseEvent",
    "BatchCompletedEvent",
    "BatchFailedEvent",
    "PayslipProcessedEvent",
    "EVENT_TYPE_MAP",
    "parse_event",
]
