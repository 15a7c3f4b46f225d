"""Unit tests for the blob service."""

from unittest.mock import MagicMock, patch

import pytest
from azure.core.exceptions import ResourceExistsError, ServiceRequestError

from services.blob_service import BlobService, BlobServiceError, build_blob_name

CONNECTION_STRING = (
    "DefaultEndpointsProtocol=https;AccountName=teststorage;"
    "AccountKey=dGVzdGtleQ==;EndpointSuffix=core.windows.net"
)


class TestBuildBlobName:
    """Tests for build_blob_name."""

    @pytest.mark.parametrize(
        "prefix,subfolder,expected",
        [
            ("relatorios/", None, "relatorios/R1.pdf"),
            ("relatorios", None, "relatorios/R1.pdf"),
            ("relatorios/", "2024/05", "relatorios/2024/05/R1.pdf"),
            ("relatorios/", "/2024/", "relatorios/2024/R1.pdf"),
            ("", None, "R1.pdf"),
            (None, None, "R1.pdf"),
            ("/a//b/", None, "a/b/R1.pdf"),
        ],
    )
    def test_blob_names(self, prefix, subfolder, expected):
        """Test slashes are collapsed and never leading."""
        assert build_blob_name(prefix, "R1", subfolder) == expected


class TestBlobServiceError:
    """Tests for BlobServiceError exception."""

    def test_error_creation(self):
        """Test BlobServiceError creation."""
        error = BlobServiceError("Test error")

        assert error.reason == "Test error"
        assert "Test error" in str(error)


class TestBlobService:
    """Tests for BlobService class."""

    @pytest.fixture
    def blob_service(self):
        """Create a BlobService instance."""
        return BlobService(connection_string=CONNECTION_STRING)

    @pytest.fixture
    def mock_client(self, blob_service):
        """Replace the lazily created BlobServiceClient."""
        client = MagicMock()
        blob_service._client = client
        container_client = client.get_container_client.return_value
        blob_client = container_client.get_blob_client.return_value
        blob_client.url = "https://teststorage.blob.core.windows.net/pdf-reports/relatorios/R1.pdf"
        return client

    def test_client_lazy_init(self, blob_service):
        """Test lazy initialization of client."""
        with patch(
            "services.blob_service.BlobServiceClient.from_connection_string"
        ) as mock_from_conn:
            mock_from_conn.return_value = MagicMock()

            client1 = blob_service.client
            client2 = blob_service.client

            assert client1 is client2
            mock_from_conn.assert_called_once_with(CONNECTION_STRING)

    def test_upload_pdf(self, blob_service, mock_client):
        """Test upload creates the container and sets the content type."""
        url = blob_service.upload_pdf("pdf-reports", "relatorios/R1.pdf", b"%PDF-")

        container_client = mock_client.get_container_client.return_value
        blob_client = container_client.get_blob_client.return_value

        assert url.endswith("/pdf-reports/relatorios/R1.pdf")
        mock_client.get_container_client.assert_called_once_with("pdf-reports")
        container_client.create_container.assert_called_once()
        container_client.get_blob_client.assert_called_once_with("relatorios/R1.pdf")
        args, kwargs = blob_client.upload_blob.call_args
        assert args == (b"%PDF-",)
        assert kwargs["overwrite"] is True
        assert kwargs["content_settings"].content_type == "application/pdf"

    def test_upload_pdf_existing_container(self, blob_service, mock_client):
        """Test an existing container is not an error."""
        container_client = mock_client.get_container_client.return_value
        container_client.create_container.side_effect = ResourceExistsError("exists")

        url = blob_service.upload_pdf("pdf-reports", "relatorios/R1.pdf", b"%PDF-")

        assert url.startswith("https://teststorage")
        container_client.get_blob_client.return_value.upload_blob.assert_called_once()

    def test_upload_pdf_failure(self, blob_service, mock_client):
        """Test storage errors become BlobServiceError."""
        blob_client = mock_client.get_container_client.return_value.get_blob_client.return_value
        blob_client.upload_blob.side_effect = ServiceRequestError("network down")

        with pytest.raises(BlobServiceError) as exc_info:
            blob_service.upload_pdf("pdf-reports", "relatorios/R1.pdf", b"%PDF-")

        assert "Blob upload failed" in exc_info.value.reason

    def test_extract_account_key(self, blob_service):
        """Test extracting account key from connection string."""
        assert blob_service._extract_account_key() == "dGVzdGtleQ=="

    def test_extract_account_key_missing(self):
        """Test error when account key is missing."""
        service = BlobService(connection_string="DefaultEndpointsProtocol=https")

        with pytest.raises(BlobServiceError) as exc_info:
            service._extract_account_key()

        assert "AccountKey not found" in str(exc_info.value)

    def test_generate_sas_url(self, blob_service):
        """Test SAS generation appends a read token."""
        blob_url = "https://teststorage.blob.core.windows.net/pdf-reports/relatorios/R%201.pdf"

        with patch("services.blob_service.generate_blob_sas") as mock_sas:
            mock_sas.return_value = "sv=2023&sig=abc"

            sas_url = blob_service.generate_sas_url(blob_url, expiry_hours=24)

        assert sas_url == f"{blob_url}?sv=2023&sig=abc"
        kwargs = mock_sas.call_args.kwargs
        assert kwargs["account_name"] == "teststorage"
        assert kwargs["container_name"] == "pdf-reports"
        assert kwargs["blob_name"] == "relatorios/R 1.pdf"
        assert kwargs["permission"].read is True

    def test_generate_sas_url_invalid_path(self, blob_service):
        """Test URLs without a blob path are rejected."""
        with pytest.raises(BlobServiceError):
            blob_service.generate_sas_url("https://teststorage.blob.core.windows.net/only", 1)
