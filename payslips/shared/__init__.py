# Shared Infrastructure for Payslip Processing
"""
Shared infrastructure components for payslip processing.

This package provides:
- State machine definitions (DocumentStatus, BatchStatus, valid transitions)
- Pydantic models for documents, rules, batches and events
- Tool implementations for DynamoDB, EventBridge, S3 and Textract
- Configuration management
- Custom exceptions
"""

from payslips.shared.config import (
    CoordinatorConfig,
    ExtractionConfig,
    Settings,
    get_settings,
)
from payslips.shared.exceptions import (
    BatchFatalError,
    BatchNotFoundError,
    BatchTimeoutError,
    DocumentNotFoundError,
    EventPublishError,
    ExtractionError,
    InvalidStateTransitionError,
    PayslipError,
    StorageError,
)
from payslips.shared.state_machine import (
    BatchStatus,
    DocumentStatus,
    validate_batch_transition,
    validate_transition,
)

__all__ = [
    # State machine
    "BatchStatus",
    "DocumentStatus",
    "validate_batch_transition",
    "validate_transition",
    # Exceptions
    "BatchFatalError",
    "BatchNotFoundError",
    "BatchTimeoutError",
    "DocumentNotFoundError",
    "EventPublishError",
    "ExtractionError",
    "InvalidStateTransitionError",
    "PayslipError",
    "StorageError",
    # Config
    "CoordinatorConfig",
    "ExtractionConfig",
    "Settings",
    "get_settings",
]
