"""
Document and Batch State Machines

Defines allowed states and valid transitions for payslip documents
and for the batch operations that group them.
"""

from enum import Enum
from typing import Final

import structlog

from payslips.shared.exceptions import InvalidStateTransitionError

log = structlog.get_logger()


class DocumentStatus(str, Enum):
    """
    Payslip document status.

    A document only ever moves forward: pending, then processing, then
    completed or failed. The single exception is the requeue performed by
    the outer attempt policy, which sends a failed document back to pending.
    """

    PENDING = "pending"
    """Queued, waiting for a worker."""

    PROCESSING = "processing"
    """Text extraction and field parsing in progress."""

    COMPLETED = "completed"
    """Fields extracted and eligibility evaluated."""

    FAILED = "failed"
    """Extraction or storage failed; error_message holds the cause."""

    @property
    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further processing)."""
        return self in DOCUMENT_TERMINAL_STATES

    @classmethod
    def from_string(cls, value: str) -> "DocumentStatus":
        """Convert string to DocumentStatus enum."""
        try:
            return cls(value.lower())
        except ValueError as e:
            raise ValueError(
                f"Invalid document status: '{value}'. "
                f"Valid values are: {[s.value for s in cls]}"
            ) from e


class BatchStatus(str, Enum):
    """Batch operation status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in BATCH_TERMINAL_STATES

    @classmethod
    def from_string(cls, value: str) -> "BatchStatus":
        """Convert string to BatchStatus enum."""
        try:
            return cls(value.lower())
        except ValueError as e:
            raise ValueError(
                f"Invalid batch status: '{value}'. "
                f"Valid values are: {[s.value for s in cls]}"
            ) from e


DOCUMENT_TERMINAL_STATES: Final[frozenset[DocumentStatus]] = frozenset({
    DocumentStatus.COMPLETED,
    DocumentStatus.FAILED,
})

# Key: current status, Value: set of allowed next statuses
DOCUMENT_TRANSITIONS: Final[dict[DocumentStatus, frozenset[DocumentStatus]]] = {
    DocumentStatus.PENDING: frozenset({
        DocumentStatus.PROCESSING,
    }),
    DocumentStatus.PROCESSING: frozenset({
        DocumentStatus.COMPLETED,
        DocumentStatus.FAILED,
    }),
    DocumentStatus.COMPLETED: frozenset(),  # Terminal
    DocumentStatus.FAILED: frozenset(),     # Terminal, except for requeue
}

# Only the attempt policy may use this edge
DOCUMENT_REQUEUE_TRANSITIONS: Final[dict[DocumentStatus, frozenset[DocumentStatus]]] = {
    DocumentStatus.FAILED: frozenset({
        DocumentStatus.PENDING,
    }),
}

BATCH_TERMINAL_STATES: Final[frozenset[BatchStatus]] = frozenset({
    BatchStatus.COMPLETED,
    BatchStatus.FAILED,
    BatchStatus.CANCELLED,
})

BATCH_TRANSITIONS: Final[dict[BatchStatus, frozenset[BatchStatus]]] = {
    BatchStatus.PENDING: frozenset({
        BatchStatus.PROCESSING,
        BatchStatus.CANCELLED,
    }),
    BatchStatus.PROCESSING: frozenset({
        BatchStatus.COMPLETED,
        BatchStatus.FAILED,
        BatchStatus.CANCELLED,
    }),
    BatchStatus.COMPLETED: frozenset(),
    # A failed coordinator run may be re-attempted
    BatchStatus.FAILED: frozenset({
        BatchStatus.PROCESSING,
    }),
    BatchStatus.CANCELLED: frozenset(),
}


def validate_transition(
    current_status: DocumentStatus | str,
    new_status: DocumentStatus | str,
    *,
    requeue: bool = False,
    raise_on_invalid: bool = True,
) -> bool:
    """
    Validate that a document state transition is allowed.

    Args:
        current_status: Current document status
        new_status: Desired next status
        requeue: Also allow the failed -> pending requeue edge
        raise_on_invalid: If True, raise exception on invalid transition

    Returns:
        True if transition is valid

    Raises:
        InvalidStateTransitionError: If transition is invalid and raise_on_invalid=True
    """
    if isinstance(current_status, str):
        current_status = DocumentStatus.from_string(current_status)
    if isinstance(new_status, str):
        new_status = DocumentStatus.from_string(new_status)

    allowed = DOCUMENT_TRANSITIONS.get(current_status, frozenset())
    if requeue:
        allowed = allowed | DOCUMENT_REQUEUE_TRANSITIONS.get(current_status, frozenset())

    return _check(current_status, new_status, allowed, raise_on_invalid)


def validate_batch_transition(
    current_status: BatchStatus | str,
    new_status: BatchStatus | str,
    *,
    raise_on_invalid: bool = True,
) -> bool:
    """
    Validate that a batch state transition is allowed.

    Raises:
        InvalidStateTransitionError: If transition is invalid and raise_on_invalid=True
    """
    if isinstance(current_status, str):
        current_status = BatchStatus.from_string(current_status)
    if isinstance(new_status, str):
        new_status = BatchStatus.from_string(new_status)

    allowed = BATCH_TRANSITIONS.get(current_status, frozenset())
    return _check(current_status, new_status, allowed, raise_on_invalid)


def _check(
    current_status: Enum,
    new_status: Enum,
    allowed: frozenset,
    raise_on_invalid: bool,
) -> bool:
    is_valid = new_status in allowed

    if not is_valid and raise_on_invalid:
        allowed_values = sorted(s.value for s in allowed)
        log.warning(
            "invalid_state_transition",
            current_status=current_status.value,
            new_status=new_status.value,
            allowed_transitions=allowed_values,
        )
        raise InvalidStateTransitionError(
            current_status=current_status.value,
            new_status=new_status.value,
            allowed_transitions=allowed_values,
        )

    return is_valid
