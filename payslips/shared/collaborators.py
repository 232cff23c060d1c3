"""
Collaborator Contracts

Protocols for the external systems the processing core calls into:
file storage, text extraction, persistence and notification.
"""

from typing import Protocol

from payslips.shared.models.batches import BatchOperation
from payslips.shared.models.documents import PayslipDocument
from payslips.shared.models.events import BaseEvent
from payslips.shared.models.rules import CooperativeRule
from payslips.shared.state_machine import DocumentStatus


class DocumentStore(Protocol):
    """Resolves where a document's file lives."""

    def locate(self, document: PayslipDocument) -> tuple[str, str]:
        """
        Return (path, mime_type) for the document's file.

        Raises:
            StorageError: If the file cannot be found or read
        """


class TextExtractor(Protocol):
    """OCR/PDF text extraction, treated as a black box."""

    def extract_text(self, path: str, mime_type: str) -> str:
        """
        Return the raw text of the file at `path`.

        Raises:
            ExtractionError: If the extraction tool fails
        """


class Notifier(Protocol):
    """Delivers events to the notification collaborator."""

    def publish(self, event: BaseEvent) -> str:
        """Publish one event and return its identifier."""


class PayslipRepository(Protocol):
    """
    Persistence for documents, batches and cooperative rules.

    update_* methods are optimistic: they succeed only when the stored
    version equals the version carried by the argument, and they return
    the stored copy with the version incremented.
    """

    def create_document(self, document: PayslipDocument) -> PayslipDocument: ...

    def get_document(self, document_id: str) -> PayslipDocument: ...

    def update_document(self, document: PayslipDocument) -> PayslipDocument: ...

    def list_batch_documents(
        self,
        batch_id: str,
        status: DocumentStatus | None = None,
    ) -> list[PayslipDocument]: ...

    def create_batch(self, batch: BatchOperation) -> BatchOperation: ...

    def get_batch(self, batch_id: str) -> BatchOperation: ...

    def update_batch(self, batch: BatchOperation) -> BatchOperation: ...

    def save_rule(self, rule: CooperativeRule) -> CooperativeRule: ...

    def list_rules(self, *, active_only: bool = True) -> list[CooperativeRule]: ...
