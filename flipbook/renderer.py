"""PDF page rasterization with PyMuPDF (fitz) and Pillow.

Renders single pages to PNG/JPEG/WebP at a named quality, and batches of
pages with bounded concurrency where a failing page is replaced by a
placeholder instead of failing the whole batch.
"""

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from io import BytesIO
from typing import NamedTuple

import fitz  # PyMuPDF
from PIL import Image, ImageDraw

from flipbook.config import (
    MAX_DIMENSION,
    RENDER_BATCH_DELAY,
    RENDER_BATCH_SIZE,
    RENDER_TIMEOUT_SECONDS,
)
from flipbook.errors import PDFErrorCode, PDFProcessingError
from flipbook.fonts import get_font

logger = logging.getLogger(__name__)

FORMATS = ("png", "jpeg", "webp")
MIN_DIMENSION = 50

# Letter size in points, used for placeholders of pages that failed to render
PLACEHOLDER_SIZE = (612, 792)

# MuPDF keeps global state; only one thread may drive it at a time
_MUPDF_LOCK = threading.Lock()


class QualitySetting(NamedTuple):
    dpi: int
    quality: int


QUALITY_SETTINGS: dict[str, QualitySetting] = {
    "low": QualitySetting(dpi=72, quality=60),
    "medium": QualitySetting(dpi=150, quality=80),
    "high": QualitySetting(dpi=300, quality=95),
}


@dataclass(frozen=True)
class RasterImage:
    """Encoded image bytes plus their pixel size and format."""

    buffer: bytes
    width: int
    height: int
    format: str

    @property
    def size(self) -> int:
        return len(self.buffer)

    @property
    def mime_type(self) -> str:
        return f"image/{self.format}"


@dataclass
class RenderOptions:
    """How to rasterize a page.

    ``width``/``height`` bound the output box; the page is shrunk to fit
    inside it, never enlarged.
    """

    quality: str = "medium"
    format: str = "webp"
    width: int | None = None
    height: int | None = None


@dataclass
class ProcessedPage:
    """One page of a batch render. ``error`` is set for placeholders."""

    page_number: int
    image: RasterImage
    width: int
    height: int
    error: str | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.error is not None


class RenderProgress(NamedTuple):
    current: int
    total: int
    percentage: int


class PDFValidation(NamedTuple):
    is_valid: bool
    page_count: int
    error: str | None = None


ProgressCallback = Callable[[RenderProgress], None]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def encode_image(img: Image.Image, fmt: str, quality: int | None = None) -> bytes:
    """Encode a Pillow image as png, jpeg or webp."""
    buf = BytesIO()
    if fmt == "png":
        img.save(buf, format="PNG", compress_level=6)
    elif fmt == "jpeg":
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        img.save(buf, format="JPEG", quality=quality or 85, progressive=True, optimize=True)
    elif fmt == "webp":
        img.save(buf, format="WEBP", quality=quality or 80, method=4)
    else:
        raise ValueError(f"Unsupported image format: {fmt}")
    return buf.getvalue()


def fit_inside(width: int, height: int, box_width: int, box_height: int) -> tuple[int, int]:
    """Scale (width, height) to fit inside the box, keeping the aspect ratio."""
    scale = min(box_width / width, box_height / height)
    return max(round(width * scale), 1), max(round(height * scale), 1)


def placeholder_image(
    page_number: int,
    width: int,
    height: int,
    label: str = "Render Error",
    fmt: str = "png",
) -> RasterImage:
    """Grey card showing the page number, used where a page failed."""
    img = Image.new("RGB", (width, height), (240, 240, 240))
    draw = ImageDraw.Draw(img)
    draw.rectangle((0, 0, width - 1, height - 1), outline=(204, 204, 204), width=2)
    draw.text((width / 2, height * 0.5), f"Page {page_number}", font=get_font(16), fill=(102, 102, 102), anchor="mm")
    draw.text((width / 2, height * 0.65), label, font=get_font(12), fill=(153, 153, 153), anchor="mm")

    return RasterImage(buffer=encode_image(img, fmt), width=width, height=height, format=fmt)


def _open_pdf(pdf_bytes: bytes) -> fitz.Document:
    try:
        return fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        raise PDFProcessingError(f"Invalid or corrupted PDF data: {e}", PDFErrorCode.INVALID_PDF) from e


def _validate_render_options(options: RenderOptions) -> None:
    if options.quality not in QUALITY_SETTINGS:
        raise PDFProcessingError(f"Invalid quality setting: {options.quality}", PDFErrorCode.INVALID_PDF)

    if options.format not in FORMATS:
        raise PDFProcessingError(f"Invalid format: {options.format}", PDFErrorCode.INVALID_PDF)

    for name, value in (("width", options.width), ("height", options.height)):
        if value is None:
            continue
        if value < MIN_DIMENSION:
            raise PDFProcessingError(
                f"Invalid {name}: {value} (must be between {MIN_DIMENSION} and {MAX_DIMENSION})",
                PDFErrorCode.INVALID_PDF,
            )
        if value > MAX_DIMENSION:
            raise PDFProcessingError(
                f"Requested {name} too large: {value} (max: {MAX_DIMENSION})",
                PDFErrorCode.TOO_LARGE,
            )


def _rasterize(pdf_bytes: bytes, page_number: int, options: RenderOptions, dpi: int) -> Image.Image:
    """Rasterize one page to an RGB Pillow image."""
    with _MUPDF_LOCK:
        doc = _open_pdf(pdf_bytes)
        try:
            if not 1 <= page_number <= doc.page_count:
                raise PDFProcessingError(
                    f"Invalid page number: {page_number} (total pages: {doc.page_count})",
                    PDFErrorCode.INVALID_PDF,
                    page_number,
                )

            page = doc[page_number - 1]
            rect = page.rect
            natural_w = rect.width * dpi / 72
            natural_h = rect.height * dpi / 72

            if natural_w > MAX_DIMENSION or natural_h > MAX_DIMENSION:
                if not (options.width or options.height):
                    raise PDFProcessingError(
                        f"Rendered image dimensions too large: {natural_w:.0f}x{natural_h:.0f} "
                        f"(max: {MAX_DIMENSION}x{MAX_DIMENSION})",
                        PDFErrorCode.TOO_LARGE,
                        page_number,
                    )
                # Only the requested box is kept, so rasterize no larger than it
                box_w = options.width or MAX_DIMENSION
                box_h = options.height or MAX_DIMENSION
                dpi = max(int(dpi * min(box_w / natural_w, box_h / natural_h)), 1)

            pix = page.get_pixmap(dpi=dpi, alpha=False)
            return Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
        finally:
            doc.close()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def render_page(pdf_bytes: bytes, page_number: int, options: RenderOptions) -> RasterImage:
    """Render one page of a PDF to an encoded image.

    Args:
        pdf_bytes: The whole PDF file.
        page_number: 1-based page index.
        options: Quality, format and optional bounding box.

    Returns:
        The encoded page image.

    Raises:
        PDFProcessingError: ``INVALID_PDF`` for bad options, unreadable data
            or an out-of-range page; ``TOO_LARGE`` when the image would
            exceed ``MAX_DIMENSION``; ``RENDERING_FAILED`` otherwise.
    """
    _validate_render_options(options)
    setting = QUALITY_SETTINGS[options.quality]

    try:
        img = _rasterize(pdf_bytes, page_number, options, setting.dpi)

        if options.width or options.height:
            img.thumbnail((options.width or img.width, options.height or img.height), Image.LANCZOS)

        if img.width > MAX_DIMENSION or img.height > MAX_DIMENSION:
            raise PDFProcessingError(
                f"Rendered image dimensions too large: {img.width}x{img.height} "
                f"(max: {MAX_DIMENSION}x{MAX_DIMENSION})",
                PDFErrorCode.TOO_LARGE,
                page_number,
            )

        buffer = encode_image(img, options.format, setting.quality)
    except PDFProcessingError:
        raise
    except MemoryError as e:
        raise PDFProcessingError(
            f"Insufficient memory to render page {page_number}", PDFErrorCode.TOO_LARGE, page_number
        ) from e
    except Exception as e:
        raise PDFProcessingError(
            f"Failed to render page {page_number}: {e}", PDFErrorCode.RENDERING_FAILED, page_number
        ) from e

    logger.debug("Rendered page %d at %s quality: %dx%d %s", page_number, options.quality, img.width, img.height, options.format)
    return RasterImage(buffer=buffer, width=img.width, height=img.height, format=options.format)


async def render_page_async(
    pdf_bytes: bytes,
    page_number: int,
    options: RenderOptions,
    timeout: float | None = None,
    gate: asyncio.Lock | None = None,
) -> RasterImage:
    """Render a page on a worker thread, giving up after ``timeout`` seconds.

    With a ``gate``, the page waits for its turn before the clock starts, so
    only the render itself counts against the timeout. The worker is not
    interrupted on timeout; its result is discarded.
    """
    timeout = RENDER_TIMEOUT_SECONDS if timeout is None else timeout
    async with gate or contextlib.nullcontext():
        worker = asyncio.ensure_future(asyncio.to_thread(render_page, pdf_bytes, page_number, options))
        try:
            return await asyncio.wait_for(asyncio.shield(worker), timeout=timeout)
        except asyncio.TimeoutError:
            if gate is not None:
                # The abandoned worker still owns MuPDF; keep the turn until it lets go
                await asyncio.wait({worker})
            raise PDFProcessingError(
                f"Page rendering timed out for page {page_number}",
                PDFErrorCode.PROCESSING_TIMEOUT,
                page_number,
            ) from None


def _placeholder_page(page_number: int, options: RenderOptions, error: str) -> ProcessedPage:
    width, height = PLACEHOLDER_SIZE
    if options.width or options.height:
        width, height = fit_inside(width, height, options.width or width, options.height or height)
    image = placeholder_image(page_number, width, height, fmt=options.format)
    return ProcessedPage(page_number=page_number, image=image, width=width, height=height, error=error)


def resolve_page_range(total_pages: int, start_page: int | None, end_page: int | None) -> tuple[int, int]:
    start = 1 if start_page is None else start_page
    end = total_pages if end_page is None else end_page
    if start < 1 or end > total_pages or start > end:
        raise PDFProcessingError(
            f"Invalid page range: {start}-{end} (total pages: {total_pages})",
            PDFErrorCode.INVALID_PDF,
        )
    return start, end


async def render_pages(
    pdf_bytes: bytes,
    options: RenderOptions,
    start_page: int | None = None,
    end_page: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> list[ProcessedPage]:
    """Render a page range in fixed-size concurrent groups.

    Each group is awaited as a whole; a page that fails is replaced by a
    placeholder and the batch carries on. ``on_progress`` is called after
    every page.
    """
    _validate_render_options(options)
    start, end = resolve_page_range(get_page_count(pdf_bytes), start_page, end_page)
    total = end - start + 1
    pages: list[ProcessedPage] = []
    # MuPDF renders one page at a time; queue here so waiting is not timed
    gate = asyncio.Lock()

    for batch_start in range(start, end + 1, RENDER_BATCH_SIZE):
        batch = range(batch_start, min(batch_start + RENDER_BATCH_SIZE - 1, end) + 1)
        results = await asyncio.gather(
            *(render_page_async(pdf_bytes, n, options, gate=gate) for n in batch),
            return_exceptions=True,
        )

        for page_number, result in zip(batch, results):
            if isinstance(result, Exception):
                logger.error("Failed to render page %d: %s", page_number, result)
                pages.append(_placeholder_page(page_number, options, str(result)))
            elif isinstance(result, BaseException):
                raise result
            else:
                pages.append(ProcessedPage(page_number, result, result.width, result.height))

            if on_progress:
                current = len(pages)
                on_progress(RenderProgress(current, total, round(current / total * 100)))

        # Let the system breathe between groups
        if batch[-1] < end:
            await asyncio.sleep(RENDER_BATCH_DELAY)

    logger.info("Rendered pages %d-%d (%d placeholders)", start, end, sum(p.is_placeholder for p in pages))
    return sorted(pages, key=lambda p: p.page_number)


def get_page_count(pdf_bytes: bytes) -> int:
    with _MUPDF_LOCK:
        doc = _open_pdf(pdf_bytes)
        try:
            return doc.page_count
        finally:
            doc.close()


def get_page_dimensions(pdf_bytes: bytes, page_number: int) -> tuple[float, float]:
    """Return the (width, height) of a page in PDF points."""
    with _MUPDF_LOCK:
        doc = _open_pdf(pdf_bytes)
        try:
            if not 1 <= page_number <= doc.page_count:
                raise PDFProcessingError(
                    f"Invalid page number: {page_number} (total pages: {doc.page_count})",
                    PDFErrorCode.INVALID_PDF,
                    page_number,
                )
            rect = doc[page_number - 1].rect
            return rect.width, rect.height
        finally:
            doc.close()


def validate_pdf_for_rendering(pdf_bytes: bytes) -> PDFValidation:
    """Check that a PDF opens and its first page renders."""
    try:
        page_count = get_page_count(pdf_bytes)
        render_page(pdf_bytes, 1, RenderOptions(quality="low", format="jpeg"))
    except Exception as e:
        logger.warning("PDF failed render validation: %s", e)
        return PDFValidation(is_valid=False, page_count=0, error=str(e))
    return PDFValidation(is_valid=True, page_count=page_count)


_USE_CASE_OPTIONS: dict[str, RenderOptions] = {
    "thumbnail": RenderOptions(quality="low", format="jpeg", width=200, height=280),
    "preview": RenderOptions(quality="medium", format="webp", width=800, height=1120),
    "print": RenderOptions(quality="high", format="png"),
    "web": RenderOptions(quality="medium", format="webp", width=1024, height=1440),
}


def get_optimal_render_options(use_case: str = "web", **overrides) -> RenderOptions:
    """Render options for a use case (thumbnail, preview, print, web)."""
    base = _USE_CASE_OPTIONS.get(use_case, _USE_CASE_OPTIONS["web"])
    return replace(base, **overrides)
