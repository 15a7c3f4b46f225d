"""End-to-end integration tests.

Runs the full pipeline against a real Gotenberg instance and Blob Storage:
payload -> view-model -> HTML -> PDF -> blob.

Requires GOTENBERG_URL and AZURE_STORAGE_CONNECTION_STRING environment
variables. Set PDF_RESULTS_CONNECTION_STRING to also exercise the result queue.
"""

import io

import pytest
from pypdf import PdfReader

pytestmark = [pytest.mark.integration, pytest.mark.slow]


@pytest.fixture
def pipeline(env_vars, template_dir, monkeypatch):
    """Pipeline wired from the real environment and shipped templates."""
    from config import reset_config
    from services import get_pipeline, reset_services

    monkeypatch.setenv("TEMPLATE_DIR", str(template_dir))
    monkeypatch.setenv("PDF_BLOB_PREFIX", "integration/")
    reset_config()
    reset_services()
    return get_pipeline()


def download(pipeline, result) -> bytes:
    """Fetch the generated PDF back from storage."""
    blob_client = pipeline.blob_service.client.get_blob_client(
        result.pdf.container_name, result.pdf.blob_name
    )
    content = blob_client.download_blob().readall()
    blob_client.delete_blob()
    return content


class TestEndToEnd:
    """Full pipeline against real services."""

    @pytest.mark.asyncio
    async def test_preventiva_report(self, pipeline, unique_report_id):
        """Test a maintenance report renders to a stored PDF."""
        payload = {
            "reportId": unique_report_id,
            "templateName": "Preventiva",
            "data": {
                "cliente": {"nome": "Cliente Teste"},
                "relatorio": {"descricao": "Manutenção preventiva"},
                "maoObra": "Troca de filtro;Limpeza",
                "material": ["Filtro", "Vedante"],
                "fotos": [],
            },
        }

        result = await pipeline.run(payload)

        assert result.succeeded, result.error
        assert result.pdf.blob_name == f"integration/{unique_report_id}.pdf"

        content = download(pipeline, result)
        assert content.startswith(b"%PDF-")
        assert len(PdfReader(io.BytesIO(content)).pages) == result.pdf.page_count

    @pytest.mark.asyncio
    async def test_orcamento_quote(self, pipeline, unique_report_id):
        """Test a quote with derived totals renders to a stored PDF."""
        payload = {
            "reportId": unique_report_id,
            "templateName": "Orcamento",
            "data": {
                "header": {"taxaIva": 23, "descontoFinanceiroPercent": 10},
                "cliente": {"nome": "Cliente Teste"},
                "produtos": [
                    {
                        "nome": "Equipamentos",
                        "itens": [{"descricao": "Bomba", "qty": 2, "preco": 150, "total": 300}],
                    }
                ],
            },
        }

        result = await pipeline.run(payload)

        assert result.succeeded, result.error
        assert download(pipeline, result).startswith(b"%PDF-")

    @pytest.mark.asyncio
    async def test_broken_photo_is_skipped(self, pipeline, unique_report_id):
        """Test unreachable photos do not fail the job."""
        payload = {
            "reportId": unique_report_id,
            "templateName": "Preventiva",
            "data": {"fotos": ["https://invalid.invalid/missing.jpg"]},
        }

        result = await pipeline.run(payload)

        assert result.succeeded, result.error
        assert result.images.count == 0
        assert result.images.skipped == 1
        download(pipeline, result)
