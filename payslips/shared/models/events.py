"""
Event Models

Pydantic models for events emitted to the notification collaborator
over EventBridge.
"""

from pydantic import BaseModel, ConfigDict, Field


class BaseEvent(BaseModel):
    """Base class for all events."""

    model_config = ConfigDict(frozen=True)

    batch_id: str | None = Field(default=None, description="Batch identifier")

    @classmethod
    def detail_type(cls) -> str:
        raise NotImplementedError

    def to_eventbridge_detail(self) -> dict:
        """Convert to EventBridge detail payload."""
        return self.model_dump(mode="json", exclude_none=True)


class BatchCompletedEvent(BaseEvent):
    """
    Every document in a batch left the queue.

    Emitted even when some documents failed individually.
    """

    name: str = Field(..., description="Batch display name")
    batch_id: str = Field(..., description="Batch identifier")
    total_files: int = Field(..., ge=0)
    successful_files: int = Field(..., ge=0)
    failed_files: int = Field(..., ge=0)
    processing_time: float = Field(..., ge=0, description="Elapsed seconds")

    @classmethod
    def detail_type(cls) -> str:
        return "BatchCompleted"


class BatchFailedEvent(BaseEvent):
    """The coordinator itself failed and ran out of attempts."""

    name: str = Field(..., description="Batch display name")
    batch_id: str = Field(..., description="Batch identifier")
    error_message: str = Field(..., description="Coordinator failure cause")
    processed_files: int = Field(..., ge=0)
    total_files: int = Field(..., ge=0)

    @classmethod
    def detail_type(cls) -> str:
        return "BatchFailed"


class PayslipProcessedEvent(BaseEvent):
    """A single payslip reached a terminal state."""

    document_id: str = Field(..., description="Document identifier")
    status: str = Field(..., description="completed or failed")
    net_salary_percentage: float | None = Field(default=None)
    eligibility_results: dict[str, bool] = Field(default_factory=dict)
    error_message: str | None = Field(default=None)

    @classmethod
    def detail_type(cls) -> str:
        return "PayslipProcessed"


EVENT_TYPE_MAP: dict[str, type[BaseEvent]] = {
    "BatchCompleted": BatchCompletedEvent,
    "BatchFailed": BatchFailedEvent,
    "PayslipProcessed": PayslipProcessedEvent,
}


def parse_event(detail_type: str, detail: dict) -> BaseEvent:
    """
    Parse an EventBridge event detail into the appropriate model.

    Raises:
        ValueError: If detail_type is unknown
        ValidationError: If detail doesn't match schema
    """
    event_class = EVENT_TYPE_MAP.get(detail_type)
    if event_class is None:
        raise ValueError(f"Unknown event type: {detail_type}")
    return event_class.model_validate(detail)
