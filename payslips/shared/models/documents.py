"""
Payslip Document Models

Pydantic models for a single uploaded payslip and the fields parsed from it.
DynamoDB layout:
    PK: PAYSLIP#<document_id>
    SK: METADATA
    GSI1PK: BATCH#<batch_id>  (only when the document belongs to a batch)
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from payslips.shared.state_machine import DocumentStatus


MONETARY_FIELDS: tuple[str, ...] = (
    "gross_salary",
    "total_income",
    "total_deductions",
    "net_salary",
)

# Extraction quality scores, 0 to 100
SCORE_FIELDS: tuple[str, ...] = ("confidence_score", "data_completeness")


def to_dynamo_number(value: float | int | None) -> Decimal | None:
    """DynamoDB rejects Python floats; store them as Decimal."""
    if value is None:
        return None
    return Decimal(str(value))


def from_dynamo_number(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


def _plain(value: Any) -> Any:
    """Recursively turn DynamoDB Decimals back into int/float."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


class EligibilityDetail(BaseModel):
    """Outcome of one cooperative rule with human-readable reasons."""

    model_config = ConfigDict(frozen=True)

    eligible: bool
    reasons: list[str] = Field(default_factory=list)


class ExtractedFields(BaseModel):
    """
    Structured salary fields parsed from raw payslip text.

    Every field is independently nullable. `debug_trace` records, in order,
    which heuristic produced each value and which candidates were rejected.
    """

    model_config = ConfigDict(frozen=True)

    employee_name: str | None = Field(default=None, description="Nama")
    employee_number: str | None = Field(default=None, description="No. Gaji")
    period: str | None = Field(default=None, description="Bulan, MM/YYYY")
    gross_salary: float | None = Field(default=None, description="Gaji Pokok")
    total_income: float | None = Field(default=None, description="Jumlah Pendapatan")
    total_deductions: float | None = Field(default=None, description="Jumlah Potongan")
    net_salary: float | None = Field(default=None, description="Gaji Bersih")
    net_salary_percentage: float | None = Field(default=None, description="Peratus Gaji Bersih")
    eligibility_results: dict[str, bool] = Field(
        default_factory=dict,
        description="Cooperative name -> eligible",
    )
    eligibility_details: dict[str, EligibilityDetail] = Field(
        default_factory=dict,
        description="Cooperative name -> eligibility with reasons",
    )
    debug_trace: list[str] = Field(
        default_factory=list,
        description="Ordered record of matched strategies",
    )
    confidence_score: float = Field(
        default=0.0,
        ge=0,
        le=100,
        description="Average strategy confidence over the found fields",
    )
    data_completeness: float = Field(
        default=0.0,
        ge=0,
        le=100,
        description="Share of extractable fields that were found",
    )

    @property
    def found_fields(self) -> list[str]:
        """Names of salary fields that were extracted."""
        names = [
            "employee_name",
            "employee_number",
            "period",
            *MONETARY_FIELDS,
            "net_salary_percentage",
        ]
        return [name for name in names if getattr(self, name) is not None]

    def to_dynamodb(self) -> dict[str, Any]:
        """Convert to a DynamoDB map attribute."""
        item: dict[str, Any] = {
            "eligibility_results": dict(self.eligibility_results),
            "debug_trace": list(self.debug_trace),
            **{name: to_dynamo_number(getattr(self, name)) for name in SCORE_FIELDS},
        }
        for name in ("employee_name", "employee_number", "period"):
            value = getattr(self, name)
            if value is not None:
                item[name] = value
        for name in (*MONETARY_FIELDS, "net_salary_percentage"):
            value = getattr(self, name)
            if value is not None:
                item[name] = to_dynamo_number(value)
        if self.eligibility_details:
            item["eligibility_details"] = {
                name: detail.model_dump() for name, detail in self.eligibility_details.items()
            }
        return item

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> "ExtractedFields":
        """Parse from a DynamoDB map attribute."""
        data = _plain(item)
        for name in (*MONETARY_FIELDS, "net_salary_percentage", *SCORE_FIELDS):
            if data.get(name) is not None:
                data[name] = float(data[name])
        return cls.model_validate(data)


class PayslipDocument(BaseModel):
    """
    One uploaded payslip file and its processing state.

    Records are immutable; state changes produce a new copy with the
    version bumped for optimistic locking.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(..., description="Document identifier")
    storage_path: str = Field(..., description="Storage reference, e.g. s3://bucket/key")
    mime_type: str = Field(default="application/pdf", description="MIME type of the upload")
    status: DocumentStatus = Field(default=DocumentStatus.PENDING)
    extracted_fields: ExtractedFields | None = Field(default=None)
    error_message: str | None = Field(default=None)
    batch_id: str | None = Field(default=None, description="Owning batch, if any")
    priority: int = Field(default=0, description="Higher values are processed first")
    attempts: int = Field(default=0, description="Processing attempts started")
    created_at: float = Field(..., description="Unix epoch timestamp")
    started_at: float | None = Field(default=None)
    completed_at: float | None = Field(default=None)
    version: int = Field(default=1, description="Optimistic locking version")

    @property
    def pk(self) -> str:
        return f"PAYSLIP#{self.document_id}"

    @property
    def sk(self) -> str:
        return "METADATA"

    @property
    def queue_key(self) -> tuple[int, float, str]:
        """Sort key: priority descending, then oldest first."""
        return (-self.priority, self.created_at, self.document_id)

    def to_dynamodb(self) -> dict[str, Any]:
        """Convert to DynamoDB item."""
        item: dict[str, Any] = {
            "PK": self.pk,
            "SK": self.sk,
            "document_id": self.document_id,
            "storage_path": self.storage_path,
            "mime_type": self.mime_type,
            "status": self.status.value,
            "priority": self.priority,
            "attempts": self.attempts,
            "created_at": to_dynamo_number(self.created_at),
            "version": self.version,
        }
        if self.batch_id:
            item["batch_id"] = self.batch_id
            item["GSI1PK"] = f"BATCH#{self.batch_id}"
            item["GSI1SK"] = f"PAYSLIP#{self.document_id}"
        if self.extracted_fields is not None:
            item["extracted_fields"] = self.extracted_fields.to_dynamodb()
        if self.error_message:
            item["error_message"] = self.error_message
        if self.started_at is not None:
            item["started_at"] = to_dynamo_number(self.started_at)
        if self.completed_at is not None:
            item["completed_at"] = to_dynamo_number(self.completed_at)
        return item

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> "PayslipDocument":
        """Parse from DynamoDB item."""
        fields = item.get("extracted_fields")
        return cls(
            document_id=item["document_id"],
            storage_path=item.get("storage_path", ""),
            mime_type=item.get("mime_type", "application/pdf"),
            status=DocumentStatus.from_string(item.get("status", "pending")),
            extracted_fields=ExtractedFields.from_dynamodb(fields) if fields else None,
            error_message=item.get("error_message"),
            batch_id=item.get("batch_id"),
            priority=int(item.get("priority", 0)),
            attempts=int(item.get("attempts", 0)),
            created_at=from_dynamo_number(item.get("created_at")) or 0.0,
            started_at=from_dynamo_number(item.get("started_at")),
            completed_at=from_dynamo_number(item.get("completed_at")),
            version=int(item.get("version", 1)),
        )
