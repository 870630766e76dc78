"""Identity watermarks for rendered page images.

Builds the watermark string for a viewer, draws it at every placement of a
layout onto a transparent layer and multiplies that layer into the page
image. Compositing is best-effort: on any imaging error the original image
is served unchanged.
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO

from PIL import Image, ImageChops, ImageColor, ImageDraw, ImageFont

from flipbook.config import TIMESTAMP_FORMAT
from flipbook.errors import RasterizationFailure
from flipbook.fonts import get_font
from flipbook.positioning import (
    LayoutConfig,
    LayoutPattern,
    PlacementTransform,
    WatermarkLayout,
    generate_layout,
)
from flipbook.renderer import RasterImage, encode_image

logger = logging.getLogger(__name__)

DEFAULT_TEXT = "Protected Content"
SEPARATOR = " • "

# Encoder quality for re-encoding lossy formats after compositing
OUTPUT_QUALITY = 90

_STAMP_PADDING = 2


@dataclass
class WatermarkIdentity:
    """Who is viewing what. Every field is optional."""

    user_id: str | None = None
    user_email: str | None = None
    user_name: str | None = None
    document_id: str | None = None
    page_number: int | None = None
    timestamp: datetime | None = None
    access_level: str | None = None

    def __post_init__(self):
        if self.page_number is not None and self.page_number < 1:
            raise ValueError(f"page_number must be >= 1, got {self.page_number}")


@dataclass(frozen=True)
class WatermarkStyle:
    """Text appearance shared by every placement of one watermark layer."""

    text: str | None = DEFAULT_TEXT
    opacity: float = 0.1
    font_size: int = 14
    color: str = "#000000"
    font_path: str | None = None


def compose_watermark_text(identity: WatermarkIdentity, base_text: str | None = None) -> str:
    """Join the present identity fields in a fixed order.

    Order: base text, email (or name), timestamp, first 8 characters of the
    document id, page number, access level.
    """
    parts: list[str] = []

    if base_text:
        parts.append(base_text)

    if identity.user_email:
        parts.append(identity.user_email)
    elif identity.user_name:
        parts.append(identity.user_name)

    if identity.timestamp:
        parts.append(identity.timestamp.strftime(TIMESTAMP_FORMAT))

    if identity.document_id:
        parts.append(f"Doc: {identity.document_id[:8]}")

    if identity.page_number is not None:
        parts.append(f"Page: {identity.page_number}")

    if identity.access_level:
        parts.append(f"Access: {identity.access_level}")

    return SEPARATOR.join(parts) or DEFAULT_TEXT


# ---------------------------------------------------------------------------
# Layer rasterization
# ---------------------------------------------------------------------------

def _text_stamp(
    text: str,
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
    fill: tuple[int, int, int, int],
) -> Image.Image:
    """Render ``text`` tightly onto its own transparent image."""
    left, top, right, bottom = font.getbbox(text)
    width = max(int(right - left), 1) + 2 * _STAMP_PADDING
    height = max(int(bottom - top), 1) + 2 * _STAMP_PADDING

    stamp = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(stamp)
    draw.text((_STAMP_PADDING - left, _STAMP_PADDING - top), text, font=font, fill=fill)
    return stamp


def _paste_clipped(layer: Image.Image, stamp: Image.Image, left: int, top: int) -> None:
    """Alpha-composite ``stamp`` at (left, top), dropping what falls off the layer."""
    x0 = max(left, 0)
    y0 = max(top, 0)
    x1 = min(left + stamp.width, layer.width)
    y1 = min(top + stamp.height, layer.height)
    if x0 >= x1 or y0 >= y1:
        return

    visible = stamp.crop((x0 - left, y0 - top, x1 - left, y1 - top))
    layer.alpha_composite(visible, dest=(x0, y0))


def draw_watermark_layer(
    size: tuple[int, int],
    text: str,
    placements: list[PlacementTransform],
    style: WatermarkStyle,
) -> Image.Image:
    """Draw ``text`` at every placement onto a transparent RGBA layer.

    Each stamp is centred on its placement, rotated clockwise by
    ``rotation`` degrees, sized ``font_size * scale`` and given alpha
    ``opacity * style.opacity``.
    """
    layer = Image.new("RGBA", size, (0, 0, 0, 0))
    red, green, blue = ImageColor.getrgb(style.color)[:3]
    stamps: dict[tuple[int, int], Image.Image] = {}

    for placement in placements:
        alpha = round(255 * min(max(placement.opacity * style.opacity, 0.0), 1.0))
        font_size = max(round(style.font_size * placement.scale), 1)
        if alpha == 0:
            continue

        key = (font_size, alpha)
        if key not in stamps:
            font = get_font(font_size, style.font_path)
            stamps[key] = _text_stamp(text, font, (red, green, blue, alpha))

        # PIL rotates counter-clockwise
        rotated = stamps[key].rotate(-placement.rotation, resample=Image.BICUBIC, expand=True)
        left = round(placement.x - rotated.width / 2)
        top = round(placement.y - rotated.height / 2)
        _paste_clipped(layer, rotated, left, top)

    return layer


def multiply_layer(base: Image.Image, layer: Image.Image) -> Image.Image:
    """Multiply-blend an RGBA layer into ``base`` so text darkens the page."""
    white = Image.new("RGBA", layer.size, (255, 255, 255, 255))
    tint = Image.alpha_composite(white, layer).convert("RGB")

    has_alpha = "A" in base.getbands() or "transparency" in base.info
    result = ImageChops.multiply(base.convert("RGB"), tint)
    if has_alpha:
        result.putalpha(base.convert("RGBA").getchannel("A"))
    return result


def _composite(
    image: RasterImage,
    text: str,
    placements: list[PlacementTransform],
    style: WatermarkStyle,
) -> RasterImage:
    try:
        with Image.open(BytesIO(image.buffer)) as source:
            source.load()
            base = source.copy()

        layer = draw_watermark_layer(base.size, text, placements, style)
        blended = multiply_layer(base, layer)
        buffer = encode_image(blended, image.format, OUTPUT_QUALITY)
    except Exception as e:
        raise RasterizationFailure(f"Watermark compositing failed: {e}") from e

    return RasterImage(buffer=buffer, width=blended.width, height=blended.height, format=image.format)


def render_watermark(
    image: RasterImage,
    text: str,
    placements: list[PlacementTransform],
    style: WatermarkStyle | None = None,
) -> RasterImage:
    """Composite ``text`` at each placement onto ``image``.

    Returns a new image with the same dimensions and format. If compositing
    fails for any reason the original ``image`` is returned untouched.
    """
    style = style or WatermarkStyle()
    try:
        return _composite(image, text, placements, style)
    except RasterizationFailure as e:
        logger.error("Failed to apply watermark, serving original image: %s", e)
        return image


# ---------------------------------------------------------------------------
# Pipelines
# ---------------------------------------------------------------------------

def apply_watermark(
    image: RasterImage,
    identity: WatermarkIdentity,
    style: WatermarkStyle | None = None,
    layout: LayoutConfig | None = None,
    rng: random.Random | None = None,
) -> tuple[RasterImage, WatermarkLayout]:
    """Watermark a rendered page for ``identity``.

    Layout validation errors propagate; compositing errors fall back to the
    original image.
    """
    style = style or WatermarkStyle()
    text = compose_watermark_text(identity, style.text)
    placement = generate_layout(image.width, image.height, config=layout or LayoutConfig(), rng=rng)

    logger.debug(
        "Applying %s watermark (%d placements) to %dx%d %s",
        placement.pattern.value, len(placement.positions), image.width, image.height, image.format,
    )
    return render_watermark(image, text, placement.positions, style), placement


def default_layers() -> list[tuple[WatermarkStyle, LayoutConfig]]:
    return [
        (WatermarkStyle(opacity=0.05, font_size=12), LayoutConfig(pattern=LayoutPattern.DIAGONAL)),
        (WatermarkStyle(opacity=0.03, font_size=10), LayoutConfig(pattern=LayoutPattern.RANDOM, base_rotation=45)),
        (WatermarkStyle(opacity=0.1, font_size=8), LayoutConfig(pattern=LayoutPattern.CORNERS)),
    ]


def apply_multi_layer_watermark(
    image: RasterImage,
    identity: WatermarkIdentity,
    layers: list[tuple[WatermarkStyle, LayoutConfig]] | None = None,
    rng: random.Random | None = None,
) -> RasterImage:
    """Apply several watermark layers one after the other."""
    rng = rng or random.Random()
    processed = image
    for style, layout in layers or default_layers():
        processed, _ = apply_watermark(processed, identity, style, layout, rng=rng)
    return processed


@dataclass(frozen=True)
class WatermarkPreset:
    style: WatermarkStyle
    layout: LayoutConfig = field(default_factory=LayoutConfig)


WATERMARK_PRESETS: dict[str, WatermarkPreset] = {
    "LIGHT": WatermarkPreset(
        WatermarkStyle(opacity=0.05, font_size=12), LayoutConfig(pattern=LayoutPattern.DIAGONAL)
    ),
    "MEDIUM": WatermarkPreset(
        WatermarkStyle(opacity=0.1, font_size=14), LayoutConfig(pattern=LayoutPattern.GRID)
    ),
    "HEAVY": WatermarkPreset(
        WatermarkStyle(opacity=0.15, font_size=16), LayoutConfig(pattern=LayoutPattern.RANDOM)
    ),
    "SECURE": WatermarkPreset(
        WatermarkStyle(opacity=0.08, font_size=10), LayoutConfig(pattern=LayoutPattern.DIAGONAL)
    ),
}


def get_preset(name: str | None) -> WatermarkPreset:
    """Look up a preset by name, case-insensitively, defaulting to MEDIUM."""
    return WATERMARK_PRESETS.get((name or "").upper(), WATERMARK_PRESETS["MEDIUM"])
