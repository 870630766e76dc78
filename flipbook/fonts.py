"""TrueType font lookup for watermark and placeholder text."""

import logging
from functools import lru_cache
from pathlib import Path

from PIL import ImageFont

from flipbook.config import WATERMARK_FONT_PATH

logger = logging.getLogger(__name__)

_FONT_CANDIDATES = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
    "/usr/share/fonts/TTF/DejaVuSans.ttf",
    "/usr/share/fonts/noto/NotoSans-Regular.ttf",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
    "C:/Windows/Fonts/arial.ttf",
]


@lru_cache(maxsize=1)
def find_system_font() -> str | None:
    """Find the first available TrueType font on the system."""
    for path in _FONT_CANDIDATES:
        if Path(path).exists():
            return path
    return None


@lru_cache(maxsize=128)
def _load(path: str | None, size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    if path:
        try:
            return ImageFont.truetype(path, size)
        except OSError as e:
            logger.warning("Could not load font '%s': %s", path, e)
    return ImageFont.load_default(size)


def get_font(size: int, font_path: str | None = None) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Get a font at the given pixel size.

    Tries ``font_path``, then ``WATERMARK_FONT_PATH``, then common system
    fonts, and finally Pillow's bundled default font.
    """
    size = max(int(round(size)), 1)
    path = font_path or WATERMARK_FONT_PATH or find_system_font()
    return _load(path, size)
