"""
S3 Tools

Locates and reads uploaded payslip files in S3.
"""

from urllib.parse import urlparse

import boto3
from botocore.exceptions import ClientError
import structlog

from payslips.shared.config import get_settings
from payslips.shared.exceptions import StorageError
from payslips.shared.models.documents import PayslipDocument

log = structlog.get_logger()


def _get_client():
    """Get S3 client."""
    settings = get_settings()
    return boto3.client("s3", **settings.s3_config)


def parse_s3_uri(s3_uri: str) -> tuple[str, str]:
    """
    Parse an S3 URI into bucket and key.

    Raises:
        ValueError: If URI is invalid
    """
    parsed = urlparse(s3_uri)
    if parsed.scheme != "s3":
        raise ValueError(f"Invalid S3 URI scheme: {parsed.scheme}")
    bucket = parsed.netloc
    key = parsed.path.lstrip("/")
    if not bucket or not key:
        raise ValueError(f"Incomplete S3 URI: {s3_uri}")
    return bucket, key


def build_document_uri(document_id: str, filename: str) -> str:
    """S3 URI for an upload under the configured documents prefix."""
    settings = get_settings()
    return f"s3://{settings.s3_bucket_name}/{settings.s3_documents_prefix}{document_id}/{filename}"


class S3DocumentStore:
    """DocumentStore for payslips uploaded to S3."""

    def __init__(self, client=None) -> None:
        self._client = client if client is not None else _get_client()

    def locate(self, document: PayslipDocument) -> tuple[str, str]:
        """
        Confirm the object exists and return (s3_uri, mime_type).

        The stored ContentType wins over the MIME type on the record when
        the record carries none.

        Raises:
            StorageError: If the URI is malformed or the object is unreadable
        """
        try:
            bucket, key = parse_s3_uri(document.storage_path)
        except ValueError as e:
            raise StorageError(
                document_path=document.storage_path,
                operation="locate",
                error_message=str(e),
            ) from e

        try:
            response = self._client.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            log.error(
                "s3_head_failed",
                document_id=document.document_id,
                bucket=bucket,
                key=key,
                error=str(e),
            )
            raise StorageError(
                document_path=document.storage_path,
                operation="locate",
                error_message=str(e),
            ) from e

        mime_type = document.mime_type or response.get("ContentType", "application/octet-stream")
        return document.storage_path, mime_type

    def download(self, s3_uri: str) -> bytes:
        """
        Download an object's bytes.

        Raises:
            StorageError: If download fails
        """
        try:
            bucket, key = parse_s3_uri(s3_uri)
            response = self._client.get_object(Bucket=bucket, Key=key)
            content = response["Body"].read()
        except (ValueError, ClientError) as e:
            log.error("s3_download_failed", s3_uri=s3_uri, error=str(e))
            raise StorageError(
                document_path=s3_uri,
                operation="download",
                error_message=str(e),
            ) from e

        log.debug("s3_document_downloaded", s3_uri=s3_uri, size_bytes=len(content))
        return content
