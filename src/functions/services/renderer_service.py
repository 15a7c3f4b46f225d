"""HTML to PDF renderer client.

Posts the rendered HTML and its image assets to a Gotenberg-style
conversion endpoint as multipart form data and returns the PDF bytes.
"""

import logging

import httpx

from .image_service import PhotoAsset

logger = logging.getLogger(__name__)

# Default timeout for conversion requests (seconds)
DEFAULT_TIMEOUT = 120

# Maximum characters of renderer response kept in error messages
MAX_ERROR_DETAIL = 2000

INDEX_FILENAME = "index.html"


class RendererError(Exception):
    """Raised when the renderer fails or cannot be reached."""

    def __init__(self, reason: str, status_code: int | None = None) -> None:
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"PDF rendering failed: {reason}")


def _truncate(text: str, limit: int = MAX_ERROR_DETAIL) -> str:
    return text if len(text) <= limit else text[:limit]


class RendererService:
    """Client for the external HTML to PDF conversion service."""

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        pdf_format: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Renderer Service.

        Args:
            url: Full conversion endpoint URL.
            timeout: Request timeout in seconds.
            pdf_format: Optional archival format (e.g. ``PDF/A-1b``).
            transport: Optional httpx transport (tests inject a mock transport).
        """
        self.url = url
        self.timeout = timeout
        self.pdf_format = pdf_format
        self._transport = transport

    def _build_files(
        self, html: str, assets: list[PhotoAsset]
    ) -> list[tuple[str, tuple[str, bytes, str]]]:
        files = [("files", (INDEX_FILENAME, html.encode("utf-8"), "text/html"))]
        for asset in assets:
            files.append(("files", (asset.filename, asset.content, asset.content_type)))
        return files

    async def convert(self, html: str, assets: list[PhotoAsset] | None = None) -> bytes:
        """Convert an HTML document and its assets into a PDF.

        Assets are referenced from the HTML by filename, so they are sent as
        sibling files of ``index.html``.

        Args:
            html: Rendered HTML document.
            assets: Images referenced by the document.

        Returns:
            bytes: PDF document.

        Raises:
            RendererError: On non-success status, timeout or connection failure.
        """
        assets = assets or []
        data = {"pdfFormat": self.pdf_format} if self.pdf_format else None

        logger.info(
            f"Sending HTML to renderer at {self.url} "
            f"({len(html)} chars, {len(assets)} assets)"
        )

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.url,
                    files=self._build_files(html, assets),
                    data=data,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Renderer timed out after {self.timeout}s: {e}")
            raise RendererError(
                "Timed out calling the renderer. Increase RENDER_TIMEOUT or reduce "
                "the HTML/image size."
            ) from e
        except httpx.ConnectError as e:
            logger.error(f"Could not connect to renderer at {self.url}: {e}")
            raise RendererError(
                "Unable to connect to the renderer. Check network access and GOTENBERG_URL."
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Renderer request failed: {e}")
            raise RendererError(str(e) or e.__class__.__name__) from e

        if not response.is_success:
            detail = _truncate(response.text or "")
            logger.error(f"Renderer returned status {response.status_code}: {detail}")
            raise RendererError(
                f"status {response.status_code}. Details: {detail}",
                status_code=response.status_code,
            )

        logger.info(f"Renderer returned {len(response.content)} bytes")
        return response.content
