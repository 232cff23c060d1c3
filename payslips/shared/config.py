"""
Configuration Management

Pydantic-settings based configuration for the payslip processing system.
All settings can be overridden via environment variables.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with PAYSLIP_ and are case-insensitive.
    Example: PAYSLIP_DYNAMODB_TABLE_NAME=MyTable
    """

    model_config = SettingsConfigDict(
        env_prefix="PAYSLIP_",
        env_file=[".env.local", ".env"],  # Try .env.local first
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # DynamoDB Configuration
    dynamodb_table_name: str = Field(
        default="PayslipBatches",
        description="DynamoDB table name for documents, batches and rules",
    )
    dynamodb_endpoint_url: str | None = Field(
        default=None,
        description="DynamoDB endpoint URL (for local development)",
    )

    # EventBridge Configuration
    eventbridge_bus_name: str = Field(
        default="payslips",
        description="EventBridge event bus name",
    )
    eventbridge_source_prefix: str = Field(
        default="payslips",
        description="Prefix for EventBridge event sources",
    )
    eventbridge_endpoint_url: str | None = Field(
        default=None,
        description="EventBridge endpoint URL (use 'mock' for local)",
    )

    # S3 Configuration
    s3_bucket_name: str = Field(
        default="payslip-uploads",
        description="S3 bucket holding uploaded payslips",
    )
    s3_documents_prefix: str = Field(
        default="payslips/",
        description="Prefix for uploaded payslip files",
    )
    s3_endpoint_url: str | None = Field(
        default=None,
        description="S3 endpoint URL (for local development)",
    )

    # Textract Configuration
    textract_endpoint_url: str | None = Field(
        default=None,
        description="Textract endpoint URL (use 'mock' for local)",
    )

    # AWS Configuration
    aws_region: str = Field(
        default="ap-southeast-1",
        description="AWS region",
    )

    # Application Configuration
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Extraction plausibility ranges
    min_percentage: float = Field(default=10.0, description="Lowest accepted net salary percentage")
    max_percentage: float = Field(default=100.0, description="Highest accepted net salary percentage")
    min_salary_amount: float = Field(default=100.0, description="Monetary values must exceed this")
    max_salary_amount: float = Field(default=50000.0, description="Monetary values must stay below this")
    derive_missing_fields: bool = Field(
        default=True,
        description="Fill missing salary totals from the other totals",
    )

    # Batch coordination
    max_concurrent_default: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Default chunk size for parallel batches",
    )
    chunk_timeout_seconds: float = Field(
        default=1800.0,
        description="Ceiling on the wait for one chunk to settle",
    )
    chunk_poll_interval_seconds: float = Field(
        default=10.0,
        description="Poll interval used by repository-polling chunk waiters",
    )
    batch_timeout_seconds: float = Field(
        default=3600.0,
        description="Wall-clock ceiling on a single coordinator run",
    )
    max_attempts: int = Field(
        default=3,
        description="Attempts for document and batch tasks",
    )
    retry_backoff_seconds: tuple[int, ...] = Field(
        default=(60, 300, 900),
        description="Delay before each re-attempt",
    )

    @property
    def is_local(self) -> bool:
        """Detect if running in local mode."""
        return (
            self.environment == "development"
            or self.dynamodb_endpoint_url == "mock"
            or self.eventbridge_endpoint_url == "mock"
        )

    @property
    def dynamodb_config(self) -> dict:
        """DynamoDB client configuration."""
        config = {"region_name": self.aws_region}
        if self.dynamodb_endpoint_url and self.dynamodb_endpoint_url != "mock":
            config["endpoint_url"] = self.dynamodb_endpoint_url
        return config

    @property
    def s3_config(self) -> dict:
        """S3 client configuration."""
        config = {"region_name": self.aws_region}
        if self.s3_endpoint_url and self.s3_endpoint_url != "mock":
            config["endpoint_url"] = self.s3_endpoint_url
        return config

    @property
    def eventbridge_config(self) -> dict:
        """EventBridge client configuration."""
        config = {"region_name": self.aws_region}
        if self.eventbridge_endpoint_url and self.eventbridge_endpoint_url != "mock":
            config["endpoint_url"] = self.eventbridge_endpoint_url
        return config

    @property
    def textract_config(self) -> dict:
        """Textract client configuration."""
        config = {"region_name": self.aws_region}
        if self.textract_endpoint_url and self.textract_endpoint_url != "mock":
            config["endpoint_url"] = self.textract_endpoint_url
        return config

    @property
    def extraction_config(self) -> "ExtractionConfig":
        """Plausibility ranges handed to the field extractor."""
        return ExtractionConfig(
            min_percentage=self.min_percentage,
            max_percentage=self.max_percentage,
            min_amount=self.min_salary_amount,
            max_amount=self.max_salary_amount,
            derive_missing_fields=self.derive_missing_fields,
        )

    @property
    def coordinator_config(self) -> "CoordinatorConfig":
        """Timing and retry settings handed to the batch coordinator."""
        return CoordinatorConfig(
            chunk_timeout_seconds=self.chunk_timeout_seconds,
            poll_interval_seconds=self.chunk_poll_interval_seconds,
            batch_timeout_seconds=self.batch_timeout_seconds,
            max_attempts=self.max_attempts,
            backoff_seconds=tuple(self.retry_backoff_seconds),
        )


@dataclass(frozen=True)
class ExtractionConfig:
    """
    Plausibility bounds for extracted values.

    Percentages are accepted inclusively, monetary amounts exclusively.
    """

    min_percentage: float = 10.0
    max_percentage: float = 100.0
    min_amount: float = 100.0
    max_amount: float = 50000.0
    derive_missing_fields: bool = True
    # Parsed net salary further than this from income - deductions is recomputed
    net_salary_tolerance: float = 100.0

    def percentage_in_range(self, value: float) -> bool:
        return self.min_percentage <= value <= self.max_percentage

    def amount_in_range(self, value: float) -> bool:
        return self.min_amount < value < self.max_amount


@dataclass(frozen=True)
class CoordinatorConfig:
    """Timing and retry settings for batch coordination."""

    chunk_timeout_seconds: float = 1800.0
    poll_interval_seconds: float = 10.0
    batch_timeout_seconds: float = 3600.0
    max_attempts: int = 3
    backoff_seconds: tuple[int, ...] = (60, 300, 900)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are loaded only once.
    Call Settings.model_validate({}) in tests to override.
    """
    return Settings()
