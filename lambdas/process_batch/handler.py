"""
ProcessBatch Lambda Handler

Main entry point for running a payslip batch.

Trigger: EventBridge BatchSubmitted rule or direct invocation
Output: EventBridge BatchCompleted or BatchFailed event

Flow:
1. Parse batch_id from the event
2. Build repository, storage, OCR and notifier clients from settings
3. Run the batch coordinator under the attempt policy
4. Return a summary of the final batch record
"""

import json
import time
from typing import Any

import structlog

from payslips.batching import BatchCoordinator
from payslips.processing import DocumentProcessor
from payslips.shared.config import get_settings
from payslips.shared.exceptions import BatchFatalError, BatchNotFoundError
from payslips.shared.tools.dynamodb import DynamoPayslipRepository
from payslips.shared.tools.eventbridge import EventBridgeNotifier
from payslips.shared.tools.s3 import S3DocumentStore
from payslips.shared.tools.textract import TextractTextExtractor

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger()


def _parse_batch_id(event: dict[str, Any]) -> str:
    """
    Pull the batch id from a direct invocation or an EventBridge envelope.

    Raises:
        ValueError: If no batch_id is present
    """
    batch_id = event.get("batch_id") or event.get("detail", {}).get("batch_id")
    if not batch_id:
        raise ValueError("No batch_id in event")
    return batch_id


def build_coordinator() -> BatchCoordinator:
    """Wire the coordinator against AWS-backed collaborators."""
    settings = get_settings()
    repository = DynamoPayslipRepository()
    store = S3DocumentStore()
    processor = DocumentProcessor(
        repository,
        store,
        TextractTextExtractor(store=store),
        extraction_config=settings.extraction_config,
    )
    return BatchCoordinator(
        repository,
        processor,
        notifier=EventBridgeNotifier(),
        config=settings.coordinator_config,
    )


def lambda_handler(
    event: dict[str, Any],
    context: Any,
    coordinator: BatchCoordinator | None = None,
) -> dict[str, Any]:
    """
    AWS Lambda entry point for batch processing.

    Args:
        event: Lambda event carrying batch_id
        context: Lambda execution context
        coordinator: Pre-built coordinator (tests and local runs)

    Returns:
        Processing result with status and batch summary
    """
    start_time = time.time()

    try:
        batch_id = _parse_batch_id(event)
        log.info("lambda_invoked", batch_id=batch_id)

        coordinator = coordinator or build_coordinator()
        batch = coordinator.run_with_retries(batch_id)

        duration_ms = int((time.time() - start_time) * 1000)
        log.info(
            "batch_run_finished",
            batch_id=batch_id,
            status=batch.status.value,
            duration_ms=duration_ms,
        )

        return {
            "statusCode": 200,
            "body": json.dumps({
                "status": batch.status.value,
                "batch_id": batch_id,
                "priority": batch.settings.priority,
                "total_files": batch.total_files,
                "successful_files": batch.successful_files,
                "failed_files": batch.failed_files,
                "progress_percentage": batch.progress_percentage,
                "success_rate": batch.success_rate,
                "duration_ms": duration_ms,
            }),
        }

    except (ValueError, BatchNotFoundError) as e:
        log.error("validation_error", error=str(e))
        return {
            "statusCode": 400,
            "body": json.dumps({"status": "error", "error": str(e)}),
        }

    except BatchFatalError as e:
        return {
            "statusCode": 500,
            "body": json.dumps({
                "status": "failed",
                "batch_id": e.batch_id,
                "error": e.error_message,
            }),
        }

    except Exception as e:
        log.exception("unexpected_error", error=str(e))
        return {
            "statusCode": 500,
            "body": json.dumps({"status": "error", "error": str(e)}),
        }
