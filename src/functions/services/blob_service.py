"""Blob Storage service for generated PDFs.

Uploads PDFs under a configurable prefix and optionally hands out read-only
SAS URLs for them.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from urllib.parse import unquote, urlparse

from azure.core.exceptions import AzureError, ResourceExistsError
from azure.storage.blob import (
    BlobSasPermissions,
    BlobServiceClient,
    ContentSettings,
    generate_blob_sas,
)

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


class BlobServiceError(Exception):
    """Raised when blob operations fail."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


def build_blob_name(prefix: str | None, report_id: str, subfolder: str | None = None) -> str:
    """Blob path for a report: ``<prefix>/<subfolder>/<report_id>.pdf``.

    Duplicate slashes are collapsed and the result never starts with ``/``.
    """
    parts = [prefix or "", subfolder or "", f"{report_id}.pdf"]
    return re.sub(r"/{2,}", "/", "/".join(parts)).lstrip("/")


class BlobService:
    """Service for PDF uploads and SAS URL generation."""

    def __init__(self, connection_string: str) -> None:
        """Initialize Blob Service.

        Args:
            connection_string: Azure Storage connection string.
        """
        self.connection_string = connection_string
        self._client: BlobServiceClient | None = None

    @property
    def client(self) -> BlobServiceClient:
        """Lazy initialization of BlobServiceClient."""
        if self._client is None:
            self._client = BlobServiceClient.from_connection_string(
                self.connection_string
            )
        return self._client

    def upload_pdf(self, container_name: str, blob_name: str, content: bytes) -> str:
        """Upload a PDF, creating the container if needed.

        Existing blobs with the same name are overwritten.

        Args:
            container_name: Container name.
            blob_name: Blob name (path within container).
            content: PDF bytes.

        Returns:
            str: Full blob URL.

        Raises:
            BlobServiceError: If upload fails.
        """
        try:
            container_client = self.client.get_container_client(container_name)
            try:
                container_client.create_container()
                logger.info(f"Created container: {container_name}")
            except ResourceExistsError:
                pass

            logger.info(f"Uploading PDF: {container_name}/{blob_name} ({len(content)} bytes)")
            blob_client = container_client.get_blob_client(blob_name)
            blob_client.upload_blob(
                content,
                overwrite=True,
                content_settings=ContentSettings(content_type=PDF_CONTENT_TYPE),
            )

            blob_url = blob_client.url
            logger.info(f"Uploaded blob: {blob_url}")
            return blob_url

        except AzureError as e:
            logger.exception(f"Failed to upload blob: {e}")
            raise BlobServiceError(f"Blob upload failed: {e}") from e

    def generate_sas_url(self, blob_url: str, expiry_hours: int) -> str:
        """Generate a read-only SAS URL for a blob.

        Takes a URL like:
            https://account.blob.core.windows.net/container/path/file.pdf

        Returns a URL like:
            https://account.blob.core.windows.net/container/path/file.pdf?sv=...&sig=...

        Args:
            blob_url: Plain blob URL without SAS token.
            expiry_hours: Hours until the token expires.

        Returns:
            str: Blob URL with SAS token appended.

        Raises:
            BlobServiceError: If SAS generation fails.
        """
        parsed = urlparse(blob_url)
        path_parts = parsed.path.lstrip("/").split("/", 1)
        if len(path_parts) < 2:
            raise BlobServiceError(f"Invalid blob URL path: {parsed.path}")

        container_name = path_parts[0]
        blob_name = unquote(path_parts[1])
        account_name = self._connection_setting("AccountName") or parsed.netloc.split(".")[0]

        try:
            sas_token = generate_blob_sas(
                account_name=account_name,
                container_name=container_name,
                blob_name=blob_name,
                account_key=self._extract_account_key(),
                permission=BlobSasPermissions(read=True),
                expiry=datetime.now(timezone.utc) + timedelta(hours=expiry_hours),
            )
        except (ValueError, TypeError) as e:
            logger.exception(f"Failed to generate SAS token: {e}")
            raise BlobServiceError(f"SAS token generation failed: {e}") from e

        logger.info(f"Generated SAS URL for blob: {blob_name}")
        return f"{blob_url}?{sas_token}"

    def _connection_setting(self, key: str) -> str | None:
        # DefaultEndpointsProtocol=https;AccountName=xxx;AccountKey=xxx;...
        parts = dict(
            part.split("=", 1) for part in self.connection_string.split(";") if "=" in part
        )
        return parts.get(key)

    def _extract_account_key(self) -> str:
        """Extract account key from connection string.

        Raises:
            BlobServiceError: If account key not found in connection string.
        """
        account_key = self._connection_setting("AccountKey")
        if not account_key:
            raise BlobServiceError(
                "AccountKey not found in connection string. "
                "Ensure AZURE_STORAGE_CONNECTION_STRING contains a valid connection string."
            )
        return account_key
