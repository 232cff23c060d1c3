"""
In-Memory Repository

Thread-safe PayslipRepository kept in process memory. Used by local runs
and tests; mirrors the conditional-write behaviour of the DynamoDB tools.
"""

import threading

import structlog

from payslips.shared.exceptions import (
    BatchNotFoundError,
    ConditionalWriteError,
    DocumentNotFoundError,
)
from payslips.shared.models.batches import BatchOperation
from payslips.shared.models.documents import PayslipDocument
from payslips.shared.models.rules import CooperativeRule
from payslips.shared.state_machine import DocumentStatus

log = structlog.get_logger()

TABLE_NAME = "memory"


class InMemoryPayslipRepository:
    """Dictionary-backed repository guarded by a single lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._documents: dict[str, PayslipDocument] = {}
        self._batches: dict[str, BatchOperation] = {}
        self._rules: dict[str, CooperativeRule] = {}

    # --- Documents ---

    def create_document(self, document: PayslipDocument) -> PayslipDocument:
        """Idempotent create; an existing record is returned unchanged."""
        with self._lock:
            existing = self._documents.get(document.document_id)
            if existing is not None:
                log.info("payslip_record_already_exists", document_id=document.document_id)
                return existing
            self._documents[document.document_id] = document
            return document

    def get_document(self, document_id: str) -> PayslipDocument:
        with self._lock:
            document = self._documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def update_document(self, document: PayslipDocument) -> PayslipDocument:
        with self._lock:
            stored = self._documents.get(document.document_id)
            if stored is None:
                raise DocumentNotFoundError(document.document_id)
            if stored.version != document.version:
                raise ConditionalWriteError(TABLE_NAME, expected_version=document.version)
            updated = document.model_copy(update={"version": document.version + 1})
            self._documents[document.document_id] = updated
            return updated

    def list_batch_documents(
        self,
        batch_id: str,
        status: DocumentStatus | None = None,
    ) -> list[PayslipDocument]:
        with self._lock:
            documents = [d for d in self._documents.values() if d.batch_id == batch_id]
        if status is not None:
            documents = [d for d in documents if d.status == status]
        return sorted(documents, key=lambda d: d.document_id)

    # --- Batches ---

    def create_batch(self, batch: BatchOperation) -> BatchOperation:
        with self._lock:
            existing = self._batches.get(batch.batch_id)
            if existing is not None:
                log.info("batch_record_already_exists", batch_id=batch.batch_id)
                return existing
            self._batches[batch.batch_id] = batch
            return batch

    def get_batch(self, batch_id: str) -> BatchOperation:
        with self._lock:
            batch = self._batches.get(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def update_batch(self, batch: BatchOperation) -> BatchOperation:
        with self._lock:
            stored = self._batches.get(batch.batch_id)
            if stored is None:
                raise BatchNotFoundError(batch.batch_id)
            if stored.version != batch.version:
                raise ConditionalWriteError(TABLE_NAME, expected_version=batch.version)
            updated = batch.model_copy(update={"version": batch.version + 1})
            self._batches[batch.batch_id] = updated
            return updated

    # --- Rules ---

    def save_rule(self, rule: CooperativeRule) -> CooperativeRule:
        with self._lock:
            self._rules[rule.rule_id] = rule
        return rule

    def list_rules(self, *, active_only: bool = True) -> list[CooperativeRule]:
        with self._lock:
            rules = list(self._rules.values())
        if active_only:
            rules = [r for r in rules if r.is_active]
        return sorted(rules, key=lambda r: r.name)
