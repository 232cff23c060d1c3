"""
Custom Exceptions for Payslip Processing

Genuine I/O and tool failures raise one of these errors. A pattern that
does not match is never an exception: extractors return None instead.
"""

from dataclasses import dataclass
from typing import Any


class PayslipError(Exception):
    """Base exception for the payslip processing system."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


@dataclass
class DocumentNotFoundError(PayslipError):
    """Payslip document record not found."""

    document_id: str

    def __init__(self, document_id: str) -> None:
        self.document_id = document_id
        super().__init__(
            f"Payslip document '{document_id}' not found",
            document_id=document_id,
        )


@dataclass
class BatchNotFoundError(PayslipError):
    """Batch operation record not found."""

    batch_id: str

    def __init__(self, batch_id: str) -> None:
        self.batch_id = batch_id
        super().__init__(
            f"Batch '{batch_id}' not found",
            batch_id=batch_id,
        )


@dataclass
class InvalidStateTransitionError(PayslipError):
    """Attempted invalid state transition."""

    current_status: str
    new_status: str
    allowed_transitions: list[str]

    def __init__(
        self,
        current_status: str,
        new_status: str,
        allowed_transitions: list[str],
    ) -> None:
        self.current_status = current_status
        self.new_status = new_status
        self.allowed_transitions = allowed_transitions
        super().__init__(
            f"Cannot transition from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {allowed_transitions}",
            current_status=current_status,
            new_status=new_status,
            allowed_transitions=allowed_transitions,
        )


@dataclass
class ExtractionError(PayslipError):
    """Text extraction tool (OCR/PDF) failed for a document."""

    document_path: str

    def __init__(
        self,
        document_path: str,
        error_message: str | None = None,
    ) -> None:
        self.document_path = document_path
        self.error_message = error_message
        super().__init__(
            f"Text extraction failed for '{document_path}': {error_message or 'Unknown error'}",
            document_path=document_path,
        )


@dataclass
class StorageError(PayslipError):
    """Stored payslip file could not be located or read."""

    document_path: str
    operation: str  # "locate", "download", "upload"

    def __init__(
        self,
        document_path: str,
        operation: str,
        error_message: str | None = None,
    ) -> None:
        self.document_path = document_path
        self.operation = operation
        self.error_message = error_message
        super().__init__(
            f"Storage {operation} failed for '{document_path}': {error_message or 'Unknown error'}",
            document_path=document_path,
            operation=operation,
        )


@dataclass
class EventPublishError(PayslipError):
    """Failed to publish event to EventBridge."""

    event_type: str
    error_code: str | None = None
    error_message: str | None = None

    def __init__(
        self,
        event_type: str,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self.event_type = event_type
        self.error_code = error_code
        self.error_message = error_message
        super().__init__(
            f"Failed to publish event '{event_type}': {error_message or 'Unknown error'}",
            event_type=event_type,
            error_code=error_code,
            error_message=error_message,
        )


@dataclass
class DynamoDBError(PayslipError):
    """DynamoDB operation failed."""

    operation: str  # "get", "put", "update", "query"
    table_name: str

    def __init__(
        self,
        operation: str,
        table_name: str,
        error_message: str | None = None,
    ) -> None:
        self.operation = operation
        self.table_name = table_name
        super().__init__(
            f"DynamoDB {operation} failed on table '{table_name}': {error_message or 'Unknown error'}",
            operation=operation,
            table_name=table_name,
            error_message=error_message,
        )


@dataclass
class ConditionalWriteError(DynamoDBError):
    """Conditional write lost an optimistic lock race."""

    expected_version: int | None = None

    def __init__(
        self,
        table_name: str,
        expected_version: int | None = None,
    ) -> None:
        self.expected_version = expected_version
        super().__init__(
            operation="conditional_write",
            table_name=table_name,
            error_message=f"Version mismatch: expected {expected_version}",
        )


@dataclass
class BatchFatalError(PayslipError):
    """Uncaught failure inside the batch coordinator itself."""

    batch_id: str
    error_message: str

    def __init__(self, batch_id: str, error_message: str) -> None:
        self.batch_id = batch_id
        self.error_message = error_message
        super().__init__(
            f"Batch '{batch_id}' failed: {error_message}",
            batch_id=batch_id,
        )


@dataclass
class BatchTimeoutError(BatchFatalError):
    """Coordinator run exceeded its wall-clock ceiling."""

    timeout_seconds: float

    def __init__(self, batch_id: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            batch_id=batch_id,
            error_message=f"Batch run exceeded {timeout_seconds:.0f}s",
        )
