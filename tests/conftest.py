"""Shared fixtures: small PDFs built with PyMuPDF and page images built with Pillow."""

import random
from io import BytesIO

import fitz  # PyMuPDF
import pytest
from PIL import Image

from flipbook.renderer import RasterImage, encode_image


def make_pdf(page_count: int = 3, width: float = 612, height: float = 792) -> bytes:
    doc = fitz.open()
    try:
        for n in range(1, page_count + 1):
            page = doc.new_page(width=width, height=height)
            page.insert_text((72, 72), f"Quarterly report, page {n}", fontsize=18)
            page.draw_rect(fitz.Rect(72, 120, 300, 300), color=(0, 0, 1), fill=(0.8, 0.8, 1))
        return doc.tobytes()
    finally:
        doc.close()


def make_image(width: int = 400, height: int = 300, fmt: str = "png", mode: str = "RGB") -> RasterImage:
    color = (255, 255, 255, 255) if mode == "RGBA" else (255, 255, 255)
    img = Image.new(mode, (width, height), color)
    return RasterImage(buffer=encode_image(img, fmt, 90), width=width, height=height, format=fmt)


def decode(image: RasterImage) -> Image.Image:
    with Image.open(BytesIO(image.buffer)) as img:
        img.load()
        copy = img.copy()
        copy.format = img.format
        return copy


@pytest.fixture
def pdf_bytes() -> bytes:
    return make_pdf()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def no_batch_delay(monkeypatch):
    """Skip the pause between render groups."""
    monkeypatch.setattr("flipbook.renderer.RENDER_BATCH_DELAY", 0)
    monkeypatch.setattr("flipbook.thumbnails.THUMBNAIL_BATCH_DELAY", 0)
