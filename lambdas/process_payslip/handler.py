"""
ProcessPayslip Lambda Handler

Main entry point for processing individual payslip documents outside a
batch run (single uploads and re-processing requests).

Trigger: SQS task queue or direct invocation
Output: EventBridge PayslipProcessed event per document

Flow:
1. Collect document ids from SQS records or the direct payload
2. Process each document under the attempt policy
3. Emit PayslipProcessed with the extracted percentage and eligibility
4. Return per-document outcomes
"""

import json
from typing import Any

import structlog

from payslips.processing import DOCUMENT_ERRORS, DocumentProcessor
from payslips.shared.collaborators import Notifier, PayslipRepository
from payslips.shared.config import CoordinatorConfig, get_settings
from payslips.shared.exceptions import DocumentNotFoundError
from payslips.shared.models.documents import PayslipDocument
from payslips.shared.models.events import PayslipProcessedEvent
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


def _parse_document_ids(event: dict[str, Any]) -> list[str]:
    """
    Collect document ids from the event.

    Handles both:
    - SQS trigger (one JSON body per record)
    - Direct invocation with document_id or document_ids

    Raises:
        ValueError: If no document id can be found
    """
    if "Records" in event:
        document_ids = []
        for record in event["Records"]:
            body = json.loads(record.get("body") or "{}")
            if body.get("document_id"):
                document_ids.append(body["document_id"])
    elif "document_ids" in event:
        document_ids = list(event["document_ids"])
    elif "document_id" in event:
        document_ids = [event["document_id"]]
    else:
        document_ids = []

    if not document_ids:
        raise ValueError("No document_id in event")
    return document_ids


def _build_processed_event(document: PayslipDocument) -> PayslipProcessedEvent:
    fields = document.extracted_fields
    return PayslipProcessedEvent(
        batch_id=document.batch_id,
        document_id=document.document_id,
        status=document.status.value,
        net_salary_percentage=fields.net_salary_percentage if fields else None,
        eligibility_results=fields.eligibility_results if fields else {},
        error_message=document.error_message,
    )


def lambda_handler(
    event: dict[str, Any],
    context: Any,
    processor: DocumentProcessor | None = None,
    notifier: Notifier | None = None,
    repository: PayslipRepository | None = None,
    config: CoordinatorConfig | None = None,
) -> dict[str, Any]:
    """
    AWS Lambda entry point for single payslip processing.

    Args:
        event: SQS event or direct payload with document_id(s)
        context: Lambda execution context
        processor: Pre-built processor (tests and local runs)
        notifier: Pre-built notifier (tests and local runs)
        repository: Repository used to reload failed documents
        config: Attempt policy override

    Returns:
        Per-document status summary
    """
    try:
        document_ids = _parse_document_ids(event)
    except (ValueError, json.JSONDecodeError) as e:
        log.error("validation_error", error=str(e))
        return {
            "statusCode": 400,
            "body": json.dumps({"status": "error", "error": str(e)}),
        }

    settings = get_settings()
    repository = repository or DynamoPayslipRepository()
    if processor is None:
        store = S3DocumentStore()
        processor = DocumentProcessor(
            repository,
            store,
            TextractTextExtractor(store=store),
            extraction_config=settings.extraction_config,
        )
    notifier = notifier or EventBridgeNotifier()
    config = config or settings.coordinator_config

    log.info("lambda_invoked", document_count=len(document_ids))

    results: dict[str, str] = {}
    for document_id in document_ids:
        try:
            document = processor.process_with_attempts(document_id, config)
        except DOCUMENT_ERRORS:
            # Attempts exhausted; the document is stored as failed
            document = repository.get_document(document_id)
        except DocumentNotFoundError as e:
            log.error("payslip_not_found", document_id=document_id, error=str(e))
            results[document_id] = "not_found"
            continue

        results[document_id] = document.status.value
        if document.status.is_terminal:
            notifier.publish(_build_processed_event(document))

    failed = sum(1 for status in results.values() if status != "completed")
    return {
        "statusCode": 200 if failed == 0 else 207,
        "body": json.dumps({
            "status": "success" if failed == 0 else "partial",
            "results": results,
        }),
    }
