"""
Local Filesystem Tools

DocumentStore and TextExtractor for payslips already converted to text
and kept on local disk. Used for local batch runs.
"""

from pathlib import Path

import structlog

from payslips.shared.exceptions import ExtractionError, StorageError
from payslips.shared.models.documents import PayslipDocument

log = structlog.get_logger()


class LocalDocumentStore:
    """Resolves storage paths relative to a root directory."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)

    def locate(self, document: PayslipDocument) -> tuple[str, str]:
        path = self._root / document.storage_path
        if not path.is_file():
            raise StorageError(
                document_path=str(path),
                operation="locate",
                error_message="File does not exist",
            )
        return str(path), document.mime_type


class PlainTextExtractor:
    """Reads text files; any other MIME type is an extraction failure."""

    def extract_text(self, path: str, mime_type: str) -> str:
        if mime_type != "text/plain":
            raise ExtractionError(
                document_path=path,
                error_message=f"No local extractor for {mime_type}",
            )
        try:
            return Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            log.error("local_read_failed", path=path, error=str(e))
            raise ExtractionError(document_path=path, error_message=str(e)) from e
