"""Exception hierarchy for watermarking and page rasterization."""

from enum import Enum


class FlipbookError(Exception):
    """Base exception for all engine errors."""


class WatermarkError(FlipbookError):
    """Base exception for watermark layout and rendering."""


class InvalidDimensions(WatermarkError, ValueError):
    """Raised for non-positive width, height, spacing, density or point counts."""


class UnsupportedPattern(WatermarkError, ValueError):
    """Raised when a layout pattern tag is not recognised."""


class RasterizationFailure(WatermarkError):
    """Raised when the image library fails while compositing a watermark."""


class PDFErrorCode(str, Enum):
    INVALID_PDF = "INVALID_PDF"
    TOO_LARGE = "TOO_LARGE"
    PROCESSING_TIMEOUT = "PROCESSING_TIMEOUT"
    RENDERING_FAILED = "RENDERING_FAILED"


class PDFProcessingError(FlipbookError):
    """Raised when a PDF page cannot be rasterized.

    Carries a machine-readable ``code`` so callers can decide whether to
    retry with a lower quality (``TOO_LARGE``, ``PROCESSING_TIMEOUT``).
    """

    def __init__(self, message: str, code: PDFErrorCode, page_number: int | None = None):
        super().__init__(message)
        self.code = code
        self.page_number = page_number
