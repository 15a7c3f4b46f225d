"""Image asset resolver.

Downloads report photos and product images, normalizes orientation, shrinks
them to a printable width and re-encodes them as compressed JPEG so they can
be shipped to the renderer next to the HTML. Failures are per image: a photo
that cannot be fetched or decoded is skipped and the job goes on.
"""

import asyncio
import io
import logging
from dataclasses import dataclass, field
from enum import Enum

import httpx
from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Defaults for A4 output: wide enough to print sharp, small enough to upload fast
DEFAULT_MAX_WIDTH = 1280
DEFAULT_JPEG_QUALITY = 65
DEFAULT_FETCH_TIMEOUT = 60
DEFAULT_CONCURRENCY = 4

JPEG_CONTENT_TYPE = "image/jpeg"


class ImageProcessingError(Exception):
    """Raised when an image cannot be decoded or re-encoded."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Image processing failed: {reason}")


class OutcomeStatus(str, Enum):
    """Per-image resolution result."""

    RESOLVED = "resolved"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class PhotoAsset:
    """An image ready to be embedded next to the rendered HTML."""

    source_url: str
    filename: str
    content: bytes
    content_type: str = JPEG_CONTENT_TYPE


@dataclass(frozen=True)
class ImageOutcome:
    """What happened to one requested URL."""

    source_url: str
    status: OutcomeStatus
    asset: PhotoAsset | None = None
    reason: str | None = None

    @property
    def filename(self) -> str | None:
        """Local filename when resolved."""
        return self.asset.filename if self.asset else None


@dataclass
class ImageResolution:
    """Outcomes for every requested URL, in request order."""

    outcomes: list[ImageOutcome] = field(default_factory=list)

    @property
    def assets(self) -> list[PhotoAsset]:
        """Resolved assets in request order."""
        return [o.asset for o in self.outcomes if o.asset is not None]

    @property
    def has_images(self) -> bool:
        """True when at least one image was resolved."""
        return any(o.status == OutcomeStatus.RESOLVED for o in self.outcomes)

    @property
    def skipped_count(self) -> int:
        """Number of images that could not be embedded."""
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.SKIPPED)

    def filename_for(self, url: str) -> str | None:
        """Filename of the first resolved asset fetched from ``url``."""
        for outcome in self.outcomes:
            if outcome.source_url == url and outcome.asset is not None:
                return outcome.asset.filename
        return None


def asset_filename(index: int) -> str:
    """Deterministic local name for the n-th embedded image (1-based)."""
    return f"img_{index:02d}.jpg"


def optimize_to_jpeg(
    content: bytes,
    max_width: int = DEFAULT_MAX_WIDTH,
    quality: int = DEFAULT_JPEG_QUALITY,
) -> bytes:
    """Decode, honour EXIF orientation, shrink to ``max_width`` and encode as JPEG.

    Images narrower than ``max_width`` keep their size.

    Args:
        content: Encoded image bytes (any format Pillow can read).
        max_width: Maximum output width in pixels.
        quality: JPEG quality (1-95).

    Returns:
        bytes: JPEG-encoded image.

    Raises:
        ImageProcessingError: If the bytes are not a decodable image.
    """
    try:
        with Image.open(io.BytesIO(content)) as img:
            img = ImageOps.exif_transpose(img)

            if img.mode != "RGB":
                img = img.convert("RGB")

            if img.width > max_width:
                height = max(1, round(img.height * max_width / img.width))
                img = img.resize((max_width, height), Image.Resampling.LANCZOS)

            output = io.BytesIO()
            img.save(output, format="JPEG", quality=quality, optimize=True, progressive=True)
            return output.getvalue()

    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageProcessingError(str(e)) from e


class ImageService:
    """Fetches and transcodes images for embedding in PDFs."""

    def __init__(
        self,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        max_width: int = DEFAULT_MAX_WIDTH,
        quality: int = DEFAULT_JPEG_QUALITY,
        max_concurrent: int = DEFAULT_CONCURRENCY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Image Service.

        Args:
            timeout: Per-image download timeout in seconds.
            max_width: Maximum output width in pixels.
            quality: JPEG quality.
            max_concurrent: Maximum simultaneous downloads.
            transport: Optional httpx transport (tests inject a mock transport).
        """
        self.timeout = timeout
        self.max_width = max_width
        self.quality = quality
        self.max_concurrent = max(1, max_concurrent)
        self._transport = transport

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> bytes:
        response = await client.get(url)
        response.raise_for_status()
        return response.content

    async def _resolve_one(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        index: int,
        url: str,
    ) -> bytes | str:
        """Return JPEG bytes, or the reason the image was skipped."""
        label = f"image_{index + 1}"

        if not url.lower().startswith(("http://", "https://")):
            logger.warning(f"[FETCH] Skipping {label}: unsupported URL {url!r}")
            return "unsupported URL"

        try:
            httpx.URL(url)
        except httpx.InvalidURL as e:
            logger.warning(f"[FETCH] Skipping {label}: malformed URL {url!r}: {e}")
            return "malformed URL"

        async with semaphore:
            try:
                raw = await self._fetch(client, url)
                logger.info(f"[FETCH] {label} bytes={len(raw)}")
            except httpx.HTTPStatusError as e:
                logger.warning(
                    f"[FETCH] Download failed for {label} url={url}: "
                    f"HTTP {e.response.status_code}"
                )
                return f"HTTP {e.response.status_code}"
            except httpx.TimeoutException:
                logger.warning(f"[FETCH] Download timed out for {label} url={url}")
                return "timeout"
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                logger.warning(f"[FETCH] Download failed for {label} url={url}: {e}")
                return str(e) or e.__class__.__name__

        try:
            optimized = await asyncio.to_thread(
                optimize_to_jpeg, raw, self.max_width, self.quality
            )
        except ImageProcessingError as e:
            logger.warning(f"[OPT] Could not optimize {label}: {e.reason}")
            return e.reason

        logger.info(f"[OPT] {label} in={len(raw)} out={len(optimized)}")
        return optimized

    async def resolve(self, urls: list[str]) -> ImageResolution:
        """Fetch and transcode every URL, keeping request order.

        Downloads run concurrently; filenames are handed out afterwards, in
        request order, to successful images only (``img_01.jpg``,
        ``img_02.jpg``...), so naming never depends on which download
        finished first.

        Args:
            urls: Image URLs in the order the template expects them.

        Returns:
            ImageResolution: One outcome per URL.
        """
        if not urls:
            return ImageResolution()

        semaphore = asyncio.Semaphore(self.max_concurrent)
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            results = await asyncio.gather(
                *(
                    self._resolve_one(client, semaphore, index, url)
                    for index, url in enumerate(urls)
                )
            )

        outcomes: list[ImageOutcome] = []
        next_index = 1
        for url, result in zip(urls, results):
            if isinstance(result, bytes):
                asset = PhotoAsset(source_url=url, filename=asset_filename(next_index), content=result)
                next_index += 1
                outcomes.append(ImageOutcome(url, OutcomeStatus.RESOLVED, asset=asset))
            else:
                outcomes.append(ImageOutcome(url, OutcomeStatus.SKIPPED, reason=result))

        resolution = ImageResolution(outcomes)
        logger.info(
            f"Resolved {len(resolution.assets)}/{len(urls)} images "
            f"({resolution.skipped_count} skipped)"
        )
        return resolution
