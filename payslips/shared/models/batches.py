"""
Batch Operation Models

A batch groups many payslip documents uploaded together and tracks
aggregate progress while the coordinator works through them.
DynamoDB layout:
    PK: BATCH#<batch_id>
    SK: METADATA
"""

import time
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from payslips.shared.models.documents import from_dynamo_number, to_dynamo_number
from payslips.shared.state_machine import BatchStatus


def new_batch_id() -> str:
    return f"batch_{uuid4()}"


class BatchSettings(BaseModel):
    """Execution settings chosen when a batch is created."""

    model_config = ConfigDict(frozen=True)

    parallel: bool = Field(default=True, description="Chunked parallel execution")
    max_concurrent: int = Field(default=5, ge=1, le=50, description="Chunk size")
    priority: Literal["normal", "high"] = Field(
        default="normal",
        description="Informational; execution order comes from document priority",
    )


class BatchOperation(BaseModel):
    """
    Aggregate state of one batch.

    Counters are only ever written by the coordinator that owns the batch.
    processed_files always equals successful_files + failed_files.
    """

    model_config = ConfigDict(frozen=True)

    batch_id: str = Field(default_factory=new_batch_id)
    owner_id: str = Field(..., description="User who started the batch")
    name: str = Field(..., description="Display name")
    status: BatchStatus = Field(default=BatchStatus.PENDING)
    total_files: int = Field(default=0, ge=0)
    successful_files: int = Field(default=0, ge=0)
    failed_files: int = Field(default=0, ge=0)
    settings: BatchSettings = Field(default_factory=BatchSettings)
    error_message: str | None = Field(default=None)
    created_at: float = Field(default_factory=time.time)
    started_at: float | None = Field(default=None)
    completed_at: float | None = Field(default=None)
    version: int = Field(default=1, description="Optimistic locking version")

    @property
    def processed_files(self) -> int:
        return self.successful_files + self.failed_files

    @property
    def pk(self) -> str:
        return f"BATCH#{self.batch_id}"

    @property
    def sk(self) -> str:
        return "METADATA"

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal

    @property
    def progress_percentage(self) -> float:
        """Share of files processed, 0 to 100."""
        if self.total_files == 0:
            return 0.0
        return round(self.processed_files / self.total_files * 100, 2)

    @property
    def success_rate(self) -> float:
        """Share of processed files that completed, 0 to 100."""
        if self.processed_files == 0:
            return 0.0
        return round(self.successful_files / self.processed_files * 100, 2)

    def estimated_completion(self, now: float | None = None) -> float | None:
        """
        Seconds until the batch should finish, extrapolated linearly.

        Returns None until the batch has started and processed something.
        """
        if self.is_finished or self.started_at is None or self.processed_files == 0:
            return None
        now = time.time() if now is None else now
        elapsed = max(now - self.started_at, 0.0)
        per_file = elapsed / self.processed_files
        remaining = max(self.total_files - self.processed_files, 0)
        return round(per_file * remaining, 2)

    def processing_time(self, now: float | None = None) -> float:
        """Seconds between start and completion (or now)."""
        if self.started_at is None:
            return 0.0
        end = self.completed_at if self.completed_at is not None else (
            time.time() if now is None else now
        )
        return round(max(end - self.started_at, 0.0), 3)

    def to_dynamodb(self) -> dict[str, Any]:
        """Convert to DynamoDB item."""
        item: dict[str, Any] = {
            "PK": self.pk,
            "SK": self.sk,
            "batch_id": self.batch_id,
            "owner_id": self.owner_id,
            "name": self.name,
            "status": self.status.value,
            "total_files": self.total_files,
            "processed_files": self.processed_files,
            "successful_files": self.successful_files,
            "failed_files": self.failed_files,
            "settings": self.settings.model_dump(),
            "created_at": to_dynamo_number(self.created_at),
            "version": self.version,
        }
        if self.error_message:
            item["error_message"] = self.error_message
        if self.started_at is not None:
            item["started_at"] = to_dynamo_number(self.started_at)
        if self.completed_at is not None:
            item["completed_at"] = to_dynamo_number(self.completed_at)
        return item

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> "BatchOperation":
        """Parse from DynamoDB item."""
        settings = item.get("settings") or {}
        return cls(
            batch_id=item["batch_id"],
            owner_id=item.get("owner_id", ""),
            name=item.get("name", ""),
            status=BatchStatus.from_string(item.get("status", "pending")),
            total_files=int(item.get("total_files", 0)),
            successful_files=int(item.get("successful_files", 0)),
            failed_files=int(item.get("failed_files", 0)),
            settings=BatchSettings(
                parallel=bool(settings.get("parallel", True)),
                max_concurrent=int(settings.get("max_concurrent", 5)),
                priority=settings.get("priority", "normal"),
            ),
            error_message=item.get("error_message"),
            created_at=from_dynamo_number(item.get("created_at")) or 0.0,
            started_at=from_dynamo_number(item.get("started_at")),
            completed_at=from_dynamo_number(item.get("completed_at")),
            version=int(item.get("version", 1)),
        )
