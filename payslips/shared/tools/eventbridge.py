"""
EventBridge Tools

Publishes batch and payslip events to the notification collaborator.

Each detail type is routed to its own source under the configured prefix,
so subscribers can filter batch lifecycle events apart from per-document
results:
    BatchCompleted, BatchFailed -> <prefix>.batches
    PayslipProcessed            -> <prefix>.documents
"""

import json
from typing import Any

import boto3
from botocore.exceptions import ClientError
import structlog

from payslips.shared.config import get_settings
from payslips.shared.exceptions import EventPublishError
from payslips.shared.models.events import BaseEvent, PayslipProcessedEvent

log = structlog.get_logger()

SOURCE_SUFFIXES: dict[str, str] = {
    "BatchCompleted": "batches",
    "BatchFailed": "batches",
    "PayslipProcessed": "documents",
}
DEFAULT_SOURCE_SUFFIX = "batches"


def _get_client():
    """Get EventBridge client."""
    settings = get_settings()
    return boto3.client("events", **settings.eventbridge_config)


def source_for(detail_type: str) -> str:
    """Event source for a detail type, under the configured prefix."""
    suffix = SOURCE_SUFFIXES.get(detail_type, DEFAULT_SOURCE_SUFFIX)
    return f"{get_settings().eventbridge_source_prefix}.{suffix}"


def _subject(event: BaseEvent) -> dict[str, Any]:
    """Identifiers worth logging alongside the event."""
    if isinstance(event, PayslipProcessedEvent):
        return {"document_id": event.document_id, "batch_id": event.batch_id}
    return {"batch_id": event.batch_id}


def build_entry(event: BaseEvent, *, source: str | None = None, detail_type: str | None = None) -> dict:
    """PutEvents entry for one event on the configured bus."""
    event_detail_type = detail_type or event.detail_type()
    return {
        "EventBusName": get_settings().eventbridge_bus_name,
        "Source": source or source_for(event_detail_type),
        "DetailType": event_detail_type,
        "Detail": json.dumps(event.to_eventbridge_detail()),
    }


def send_event(
    event: BaseEvent,
    *,
    source: str | None = None,
    detail_type: str | None = None,
    client=None,
) -> str:
    """
    Publish a single event to EventBridge.

    Args:
        event: Event model to publish
        source: Override event source (default: routed by detail-type)
        detail_type: Override detail-type (default: from event class)
        client: EventBridge client (default: built from settings)

    Returns:
        EventBridge event ID

    Raises:
        EventPublishError: If the API call fails or the entry is rejected
    """
    client = client if client is not None else _get_client()
    entry = build_entry(event, source=source, detail_type=detail_type)
    event_detail_type = entry["DetailType"]

    log.info(
        "publishing_event",
        detail_type=event_detail_type,
        source=entry["Source"],
        **_subject(event),
    )

    try:
        response = client.put_events(Entries=[entry])
    except ClientError as e:
        log.error(
            "eventbridge_put_failed",
            detail_type=event_detail_type,
            error=str(e),
        )
        raise EventPublishError(
            event_type=event_detail_type,
            error_code=e.response["Error"]["Code"],
            error_message=str(e),
        ) from e

    result = response["Entries"][0]
    if response.get("FailedEntryCount", 0) > 0 or "EventId" not in result:
        log.error(
            "eventbridge_entry_failed",
            detail_type=event_detail_type,
            error_code=result.get("ErrorCode"),
            error_message=result.get("ErrorMessage"),
            **_subject(event),
        )
        raise EventPublishError(
            event_type=event_detail_type,
            error_code=result.get("ErrorCode"),
            error_message=result.get("ErrorMessage"),
        )

    log.info(
        "event_published",
        detail_type=event_detail_type,
        event_id=result["EventId"],
    )
    return result["EventId"]


class EventBridgeNotifier:
    """Notifier that forwards events to the configured event bus."""

    def __init__(self, client=None, source: str | None = None) -> None:
        self._client = client if client is not None else _get_client()
        self._source = source

    def publish(self, event: BaseEvent) -> str:
        return send_event(event, source=self._source, client=self._client)
