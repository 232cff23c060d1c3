"""
Textract Tools

TextExtractor backed by Amazon Textract. Plain-text uploads skip OCR
and are read straight from S3.
"""

from typing import Any

import boto3
from botocore.exceptions import ClientError
import structlog

from payslips.shared.config import get_settings
from payslips.shared.exceptions import ExtractionError, StorageError
from payslips.shared.tools.s3 import S3DocumentStore, parse_s3_uri

log = structlog.get_logger()

TEXT_MIME_TYPES = frozenset({"text/plain"})


def _get_client():
    """Get Textract client."""
    settings = get_settings()
    return boto3.client("textract", **settings.textract_config)


def get_text_from_blocks(blocks: list[dict[str, Any]]) -> str:
    """
    Extract plain text from Textract block structure.

    Returns:
        LINE blocks joined by newlines, in reading order
    """
    lines = []
    for block in blocks:
        if block.get("BlockType") == "LINE":
            text = block.get("Text", "")
            if text:
                lines.append(text)
    return "\n".join(lines)


class TextractTextExtractor:
    """Runs synchronous text detection on S3 objects."""

    def __init__(self, client=None, store: S3DocumentStore | None = None) -> None:
        self._client = client if client is not None else _get_client()
        self._store = store

    def extract_text(self, path: str, mime_type: str) -> str:
        """
        Return raw text for the document at `path` (an s3:// URI).

        Raises:
            ExtractionError: If Textract fails or the file cannot be read
        """
        if mime_type in TEXT_MIME_TYPES:
            return self._read_plain_text(path)

        try:
            bucket, key = parse_s3_uri(path)
        except ValueError as e:
            raise ExtractionError(document_path=path, error_message=str(e)) from e

        try:
            response = self._client.detect_document_text(
                Document={"S3Object": {"Bucket": bucket, "Name": key}},
            )
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code")
            error_msg = e.response.get("Error", {}).get("Message")
            log.error(
                "textract_detect_failed",
                document_path=path,
                error_code=error_code,
                error_message=error_msg,
            )
            raise ExtractionError(document_path=path, error_message=error_msg or str(e)) from e

        blocks = response.get("Blocks", [])
        text = get_text_from_blocks(blocks)

        log.info(
            "ocr_text_extracted",
            document_path=path,
            text_length=len(text),
            block_count=len(blocks),
        )
        return text

    def _read_plain_text(self, path: str) -> str:
        store = self._store or S3DocumentStore()
        try:
            content = store.download(path)
        except StorageError as e:
            raise ExtractionError(document_path=path, error_message=e.message) from e
        return content.decode("utf-8", errors="replace")
