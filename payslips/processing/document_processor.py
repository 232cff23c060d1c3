"""
Document Processor

Drives one payslip through its lifecycle:
pending -> processing -> completed | failed.

Flow:
1. Skip documents that are already terminal or in flight
2. Mark processing and count the attempt
3. Locate the file and extract its text
4. Parse salary fields and evaluate cooperative rules
5. Store results and mark completed, or capture the error and mark failed
"""

import time
from collections.abc import Callable

import structlog

from payslips.eligibility import apply_eligibility
from payslips.extraction import extract_fields
from payslips.shared.collaborators import DocumentStore, PayslipRepository, TextExtractor
from payslips.shared.config import CoordinatorConfig, ExtractionConfig
from payslips.shared.exceptions import ExtractionError, StorageError
from payslips.shared.models.documents import PayslipDocument
from payslips.shared.retry import attempt_policy
from payslips.shared.state_machine import DocumentStatus, validate_transition

log = structlog.get_logger()

# Errors that fail a document without signalling a bug
DOCUMENT_ERRORS: tuple[type[Exception], ...] = (ExtractionError, StorageError)


class DocumentProcessor:
    """Processes single payslip documents against a repository."""

    def __init__(
        self,
        repository: PayslipRepository,
        store: DocumentStore,
        text_extractor: TextExtractor,
        *,
        extraction_config: ExtractionConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repository = repository
        self._store = store
        self._text_extractor = text_extractor
        self._extraction_config = extraction_config or ExtractionConfig()
        self._clock = clock

    def process(self, document_id: str, *, raise_on_error: bool = False) -> PayslipDocument:
        """
        Process one document.

        Re-invoking on a completed or failed document is a no-op, so queue
        re-deliveries never duplicate side effects.

        Args:
            document_id: Document to process
            raise_on_error: Re-raise extraction/storage errors after marking
                the document failed (queue delivery mode)

        Returns:
            The stored document after this call

        Raises:
            ExtractionError, StorageError: Only when raise_on_error=True
        """
        document = self._repository.get_document(document_id)

        if document.status.is_terminal:
            log.info(
                "payslip_already_processed",
                document_id=document_id,
                status=document.status.value,
            )
            return document
        if document.status == DocumentStatus.PROCESSING:
            log.warning("payslip_in_flight", document_id=document_id, attempts=document.attempts)
            return document

        document = self._transition(
            document,
            DocumentStatus.PROCESSING,
            attempts=document.attempts + 1,
            started_at=self._clock(),
            completed_at=None,
            error_message=None,
        )
        log.info(
            "payslip_processing_started",
            document_id=document_id,
            batch_id=document.batch_id,
            attempt=document.attempts,
        )

        try:
            path, mime_type = self._store.locate(document)
            raw_text = self._text_extractor.extract_text(path, mime_type)
            fields = extract_fields(raw_text, self._extraction_config)
            fields = apply_eligibility(fields, self._repository.list_rules(active_only=True))
        except DOCUMENT_ERRORS as e:
            failed = self._mark_failed(document, e)
            if raise_on_error:
                raise
            return failed
        except Exception as e:
            # Unexpected errors still must not leave the document in flight
            self._mark_failed(document, e)
            raise

        completed = self._transition(
            document,
            DocumentStatus.COMPLETED,
            extracted_fields=fields,
            completed_at=self._clock(),
        )
        log.info(
            "payslip_processing_completed",
            document_id=document_id,
            batch_id=document.batch_id,
            fields_found=len(fields.found_fields),
            confidence_score=fields.confidence_score,
            net_salary_percentage=fields.net_salary_percentage,
        )
        return completed

    def process_with_attempts(
        self,
        document_id: str,
        config: CoordinatorConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> PayslipDocument:
        """
        Process a document under the task-queue attempt policy.

        A failed attempt requeues the document (failed -> pending) and
        waits for the scheduled backoff before trying again. After the last
        attempt the document stays failed and the error propagates.
        """
        config = config or CoordinatorConfig()

        def requeue(_retry_state) -> None:
            self.requeue(document_id)

        retrying = attempt_policy(
            max_attempts=config.max_attempts,
            backoff_seconds=config.backoff_seconds,
            retry_on=DOCUMENT_ERRORS,
            sleep=sleep,
            before_retry=requeue,
        )
        return retrying(self.process, document_id, raise_on_error=True)

    def requeue(self, document_id: str) -> PayslipDocument:
        """Send a failed document back to pending for another attempt."""
        document = self._repository.get_document(document_id)
        validate_transition(document.status, DocumentStatus.PENDING, requeue=True)
        requeued = self._repository.update_document(
            document.model_copy(update={"status": DocumentStatus.PENDING})
        )
        log.info("payslip_requeued", document_id=document_id, attempts=requeued.attempts)
        return requeued

    def _transition(
        self,
        document: PayslipDocument,
        new_status: DocumentStatus,
        **changes,
    ) -> PayslipDocument:
        validate_transition(document.status, new_status)
        return self._repository.update_document(
            document.model_copy(update={"status": new_status, **changes})
        )

    def _mark_failed(self, document: PayslipDocument, error: Exception) -> PayslipDocument:
        log.warning(
            "payslip_processing_failed",
            document_id=document.document_id,
            batch_id=document.batch_id,
            attempt=document.attempts,
            error_type=type(error).__name__,
            error=str(error),
        )
        return self._transition(
            document,
            DocumentStatus.FAILED,
            error_message=str(error),
            completed_at=self._clock(),
        )
