"""Page thumbnails and contact-sheet grids built on the page renderer."""

import asyncio
import logging
import math
from dataclasses import dataclass, replace
from io import BytesIO

from PIL import Image

from flipbook.config import THUMBNAIL_BATCH_DELAY, THUMBNAIL_BATCH_SIZE
from flipbook.errors import PDFErrorCode, PDFProcessingError
from flipbook.renderer import (
    FORMATS,
    ProgressCallback,
    RasterImage,
    RenderOptions,
    RenderProgress,
    encode_image,
    get_page_count,
    placeholder_image,
    render_page,
    resolve_page_range,
)

logger = logging.getLogger(__name__)

# Portrait page ratio used for grid cells
PAGE_RATIO = 1.4

# Rough seconds per thumbnail, by render quality
_SECONDS_PER_THUMBNAIL = {"low": 0.5, "medium": 1.0, "high": 2.0}


@dataclass
class ThumbnailOptions:
    width: int = 200
    height: int = 280
    quality: int = 80
    format: str = "jpeg"


def _validate_thumbnail_options(options: ThumbnailOptions) -> None:
    if not 50 <= options.width <= 1000:
        raise PDFProcessingError(
            f"Invalid thumbnail width: {options.width} (must be between 50 and 1000)", PDFErrorCode.INVALID_PDF
        )
    if not 50 <= options.height <= 1400:
        raise PDFProcessingError(
            f"Invalid thumbnail height: {options.height} (must be between 50 and 1400)", PDFErrorCode.INVALID_PDF
        )
    if not 10 <= options.quality <= 100:
        raise PDFProcessingError(
            f"Invalid thumbnail quality: {options.quality} (must be between 10 and 100)", PDFErrorCode.INVALID_PDF
        )
    if options.format not in FORMATS:
        raise PDFProcessingError(f"Invalid thumbnail format: {options.format}", PDFErrorCode.INVALID_PDF)


def generate_thumbnail(
    pdf_bytes: bytes,
    page_number: int,
    options: ThumbnailOptions | None = None,
) -> RasterImage:
    """Render a page thumbnail that fits inside ``options.width x options.height``.

    The page is rendered at twice the box size and scaled down for a
    sharper result.
    """
    options = options or ThumbnailOptions()
    _validate_thumbnail_options(options)

    rendered = render_page(
        pdf_bytes,
        page_number,
        RenderOptions(quality="low", format="png", width=options.width * 2, height=options.height * 2),
    )

    try:
        with Image.open(BytesIO(rendered.buffer)) as img:
            thumb = img.convert("RGB")
        scale = min(options.width / thumb.width, options.height / thumb.height)
        size = (max(round(thumb.width * scale), 1), max(round(thumb.height * scale), 1))
        thumb = thumb.resize(size, Image.LANCZOS)
        buffer = encode_image(thumb, options.format, options.quality)
    except Exception as e:
        raise PDFProcessingError(
            f"Failed to generate thumbnail for page {page_number}: {e}",
            PDFErrorCode.RENDERING_FAILED,
            page_number,
        ) from e

    return RasterImage(buffer=buffer, width=thumb.width, height=thumb.height, format=options.format)


async def generate_thumbnails(
    pdf_bytes: bytes,
    options: ThumbnailOptions | None = None,
    start_page: int | None = None,
    end_page: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> list[tuple[int, RasterImage]]:
    """Generate thumbnails for a page range, a few pages at a time.

    Failed pages get a placeholder thumbnail; the rest of the range is
    still processed.
    """
    options = options or ThumbnailOptions()
    _validate_thumbnail_options(options)
    start, end = resolve_page_range(get_page_count(pdf_bytes), start_page, end_page)
    total = end - start + 1
    results: list[tuple[int, RasterImage]] = []

    for batch_start in range(start, end + 1, THUMBNAIL_BATCH_SIZE):
        batch = range(batch_start, min(batch_start + THUMBNAIL_BATCH_SIZE - 1, end) + 1)
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(generate_thumbnail, pdf_bytes, n, options) for n in batch),
            return_exceptions=True,
        )

        for page_number, outcome in zip(batch, outcomes):
            if isinstance(outcome, Exception):
                logger.error("Failed to generate thumbnail for page %d: %s", page_number, outcome)
                outcome = placeholder_image(page_number, options.width, options.height, "Thumbnail Error")
            elif isinstance(outcome, BaseException):
                raise outcome
            results.append((page_number, outcome))

            if on_progress:
                current = len(results)
                on_progress(RenderProgress(current, total, round(current / total * 100)))

        if batch[-1] < end:
            await asyncio.sleep(THUMBNAIL_BATCH_DELAY)

    return sorted(results, key=lambda item: item[0])


async def generate_thumbnail_grid(
    pdf_bytes: bytes,
    columns: int,
    rows: int,
    thumbnail_size: int,
    spacing: int = 10,
    start_page: int = 1,
    format: str = "png",
    quality: int = 85,
) -> RasterImage:
    """Lay out page thumbnails on a white contact sheet, row by row.

    Stops early when the document runs out of pages.
    """
    if columns < 1 or rows < 1:
        raise PDFProcessingError(f"Invalid grid: {columns}x{rows}", PDFErrorCode.INVALID_PDF)

    cell_w = thumbnail_size
    cell_h = round(thumbnail_size * PAGE_RATIO)
    end_page = min(start_page + columns * rows - 1, get_page_count(pdf_bytes))

    thumbnails = await generate_thumbnails(
        pdf_bytes,
        ThumbnailOptions(width=cell_w, height=cell_h, quality=80, format="png"),
        start_page=start_page,
        end_page=end_page,
    )

    grid_w = cell_w * columns + spacing * (columns - 1)
    grid_h = cell_h * rows + spacing * (rows - 1)

    try:
        sheet = Image.new("RGB", (grid_w, grid_h), (255, 255, 255))
        for index, (_, thumb) in enumerate(thumbnails):
            row, col = divmod(index, columns)
            with Image.open(BytesIO(thumb.buffer)) as img:
                sheet.paste(img.convert("RGB"), (col * (cell_w + spacing), row * (cell_h + spacing)))
        buffer = encode_image(sheet, format, quality)
    except Exception as e:
        raise PDFProcessingError(f"Failed to generate thumbnail grid: {e}", PDFErrorCode.RENDERING_FAILED) from e

    return RasterImage(buffer=buffer, width=grid_w, height=grid_h, format=format)


_USE_CASE_OPTIONS: dict[str, ThumbnailOptions] = {
    "list": ThumbnailOptions(width=120, height=168, quality=70, format="jpeg"),
    "grid": ThumbnailOptions(width=150, height=210, quality=75, format="webp"),
    "preview": ThumbnailOptions(width=200, height=280, quality=85, format="webp"),
    "navigation": ThumbnailOptions(width=100, height=140, quality=65, format="jpeg"),
}


def get_optimal_thumbnail_options(use_case: str = "navigation", **overrides) -> ThumbnailOptions:
    """Thumbnail options for a use case (list, grid, preview, navigation)."""
    base = _USE_CASE_OPTIONS.get(use_case, _USE_CASE_OPTIONS["navigation"])
    return replace(base, **overrides)


def estimate_processing_time(page_count: int, quality: str = "medium") -> tuple[int, int]:
    """Rough (seconds, minutes) needed to thumbnail ``page_count`` pages."""
    seconds = math.ceil(page_count * _SECONDS_PER_THUMBNAIL.get(quality, 1.0))
    return seconds, math.ceil(seconds / 60)
