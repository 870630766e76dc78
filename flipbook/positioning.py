"""Watermark placement generation.

Computes where each watermark instance goes on a page for a named tiling
pattern. Every generator is a pure function of its inputs plus an explicit
random source, so a seeded ``random.Random`` gives repeatable layouts.
"""

import logging
import math
import random
from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import Enum

from flipbook.errors import InvalidDimensions, UnsupportedPattern
from flipbook.poisson import poisson_disk_sample

logger = logging.getLogger(__name__)

MIN_SPACING = 100
MAX_DENSITY = 0.3  # 30% coverage
ROTATION_VARIANCE = 15  # degrees, spread around the base rotation

GRID_ROTATIONS = (0, 45, -45, 90)
CORNER_LAYERS = 3
SPIRAL_TURNS = 3
ADAPTIVE_CELL_SIZE = 100
ADAPTIVE_ROTATION = -45
ADAPTIVE_CONTENT_PROBABILITY = 0.3

# Rough footprint of one watermark, used for the coverage estimate
_WATERMARK_AREA = 100 * 20


class LayoutPattern(str, Enum):
    """Tiling strategies for watermark placement."""

    DIAGONAL = "diagonal"
    GRID = "grid"
    CORNERS = "corners"
    RANDOM = "random"
    SPIRAL = "spiral"
    ADAPTIVE = "adaptive"


@dataclass(frozen=True)
class PlacementTransform:
    """Position, rotation (degrees), scale and opacity of one watermark."""

    x: float
    y: float
    rotation: float = 0.0
    scale: float = 1.0
    opacity: float = 1.0


@dataclass(frozen=True)
class ContentArea:
    """Axis-aligned rectangle marking meaningful page content."""

    x: float
    y: float
    width: float
    height: float

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.x + self.width and self.y <= py <= self.y + self.height


@dataclass(frozen=True)
class LayoutConfig:
    """Per-render layout settings."""

    pattern: LayoutPattern = LayoutPattern.DIAGONAL
    density: float = 0.15
    spacing: float = 200
    base_rotation: float = -45
    content_areas: tuple[ContentArea, ...] = ()
    jitter: bool = True

    def __post_init__(self):
        object.__setattr__(self, "content_areas", tuple(self.content_areas))


@dataclass
class WatermarkLayout:
    """Generated placements plus diagnostic density and coverage figures."""

    positions: list[PlacementTransform]
    pattern: LayoutPattern
    density: float
    coverage: float


def _spread(rng: random.Random, amount: float) -> float:
    """Uniform offset in ``[-amount/2, amount/2)``."""
    return (rng.random() - 0.5) * amount


def _uniform(rng: random.Random, low: float, high: float) -> float:
    return low + rng.random() * (high - low)


def parse_pattern(pattern: "LayoutPattern | str") -> LayoutPattern:
    """Convert a pattern tag to :class:`LayoutPattern`."""
    if isinstance(pattern, LayoutPattern):
        return pattern
    try:
        return LayoutPattern(str(pattern).lower())
    except ValueError:
        raise UnsupportedPattern(f"Unknown watermark pattern: {pattern!r}") from None


# ---------------------------------------------------------------------------
# Pattern generators
# ---------------------------------------------------------------------------

def generate_diagonal(
    width: int,
    height: int,
    spacing: float = 200,
    base_rotation: float = -45,
    rng: random.Random | None = None,
    jitter: bool = True,
) -> list[PlacementTransform]:
    """Tile ``[-width, 2*width) x [-height, 2*height)`` on a square lattice.

    The lattice overflows the canvas on every side so the page stays covered
    after the whole layer is rotated.
    """
    rng = rng or random.Random()
    positions: list[PlacementTransform] = []
    position_jitter = spacing * 0.2

    x = -width
    while x < width * 2:
        y = -height
        while y < height * 2:
            if jitter:
                positions.append(PlacementTransform(
                    x=x + _spread(rng, position_jitter),
                    y=y + _spread(rng, position_jitter),
                    rotation=base_rotation + _spread(rng, ROTATION_VARIANCE),
                    scale=_uniform(rng, 0.9, 1.1),
                    opacity=_uniform(rng, 0.9, 1.0),
                ))
            else:
                positions.append(PlacementTransform(x=x, y=y, rotation=base_rotation))
            y += spacing
        x += spacing

    return positions


def generate_grid(
    width: int,
    height: int,
    spacing: float = 150,
    base_rotation: float = 0,
    rng: random.Random | None = None,
) -> list[PlacementTransform]:
    """Regular grid with a rotation picked per cell from a fixed set."""
    rng = rng or random.Random()
    positions: list[PlacementTransform] = []

    x = spacing
    while x < width:
        y = spacing
        while y < height:
            positions.append(PlacementTransform(
                x=x,
                y=y,
                rotation=base_rotation + rng.choice(GRID_ROTATIONS),
                scale=_uniform(rng, 0.8, 1.2),
                opacity=_uniform(rng, 0.7, 1.0),
            ))
            y += spacing
        x += spacing

    return positions


def generate_corners(
    width: int,
    height: int,
    margin: float = 50,
    rng: random.Random | None = None,
) -> list[PlacementTransform]:
    """Three fading layers stacked on each page corner."""
    rng = rng or random.Random()
    corners = (
        (margin, margin, 0),
        (width - margin, margin, 90),
        (margin, height - margin, -90),
        (width - margin, height - margin, 180),
    )

    positions: list[PlacementTransform] = []
    for cx, cy, rotation in corners:
        for layer in range(CORNER_LAYERS):
            offset = layer * 20
            positions.append(PlacementTransform(
                x=cx + _spread(rng, offset),
                y=cy + _spread(rng, offset),
                rotation=rotation + _spread(rng, 30),
                scale=1 - layer * 0.2,
                opacity=1 - layer * 0.3,
            ))
    return positions


def generate_random(
    width: int,
    height: int,
    density: float = 0.15,
    base_rotation: float = -45,
    rng: random.Random | None = None,
) -> list[PlacementTransform]:
    """Evenly spread random placements backed by Poisson-disk sampling."""
    rng = rng or random.Random()
    target_count = math.floor(width * height * density / 10000)
    if target_count < 1:
        logger.debug("Canvas %dx%d too small for random pattern at density %.2f", width, height, density)
        return []

    points = poisson_disk_sample(width, height, MIN_SPACING, target_count, rng=rng)
    return [
        PlacementTransform(
            x=x,
            y=y,
            rotation=base_rotation + _spread(rng, ROTATION_VARIANCE),
            scale=_uniform(rng, 0.8, 1.2),
            opacity=_uniform(rng, 0.8, 1.0),
        )
        for x, y in points
    ]


def generate_spiral(
    width: int,
    height: int,
    density: float = 0.1,
    rng: random.Random | None = None,
    turns: int = SPIRAL_TURNS,
) -> list[PlacementTransform]:
    """Archimedean spiral from the page centre, text tangent to the curve.

    Points that land outside the page are dropped, not clamped.
    """
    rng = rng or random.Random()
    center_x = width / 2
    center_y = height / 2
    max_radius = min(width, height) / 2
    points_per_turn = math.floor(50 * density)

    positions: list[PlacementTransform] = []
    for turn in range(turns):
        for point in range(points_per_turn):
            progress = turn + point / points_per_turn
            angle = progress * 2 * math.pi
            radius = progress * max_radius / turns

            x = center_x + math.cos(angle) * radius
            y = center_y + math.sin(angle) * radius
            if not (0 <= x <= width and 0 <= y <= height):
                continue

            positions.append(PlacementTransform(
                x=x,
                y=y,
                rotation=math.degrees(angle) + 90,
                scale=_uniform(rng, 0.8, 1.2),
                opacity=_uniform(rng, 0.8, 1.0),
            ))
    return positions


def generate_adaptive(
    width: int,
    height: int,
    content_areas: Sequence[ContentArea] | None = None,
    rng: random.Random | None = None,
) -> list[PlacementTransform]:
    """Strong watermarks in empty cells, sparse faint ones over content."""
    rng = rng or random.Random()
    content_areas = content_areas or ()
    cell = ADAPTIVE_CELL_SIZE
    positions: list[PlacementTransform] = []

    for x in range(0, width, cell):
        for y in range(0, height, cell):
            center_x = x + cell / 2
            center_y = y + cell / 2
            over_content = any(area.contains(center_x, center_y) for area in content_areas)

            if not over_content:
                positions.append(PlacementTransform(
                    x=center_x + _spread(rng, cell * 0.5),
                    y=center_y + _spread(rng, cell * 0.5),
                    rotation=ADAPTIVE_ROTATION + _spread(rng, 30),
                    scale=_uniform(rng, 0.7, 1.0),
                    opacity=_uniform(rng, 0.6, 0.8),
                ))
            elif rng.random() < ADAPTIVE_CONTENT_PROBABILITY:
                positions.append(PlacementTransform(
                    x=center_x,
                    y=center_y,
                    rotation=ADAPTIVE_ROTATION + _spread(rng, 20),
                    scale=_uniform(rng, 0.5, 0.7),
                    opacity=_uniform(rng, 0.3, 0.5),
                ))
    return positions


# ---------------------------------------------------------------------------
# Layout entry point
# ---------------------------------------------------------------------------

def _validated(config: LayoutConfig) -> LayoutConfig:
    if config.spacing <= 0:
        raise InvalidDimensions(f"spacing must be positive, got {config.spacing}")
    if config.density <= 0:
        raise InvalidDimensions(f"density must be positive, got {config.density}")
    if config.density > 1:
        return replace(config, density=1.0)
    return config


def generate_layout(
    width: int,
    height: int,
    pattern: "LayoutPattern | str | None" = None,
    config: LayoutConfig | None = None,
    rng: random.Random | None = None,
    **options,
) -> WatermarkLayout:
    """Build the complete placement list for one page.

    Args:
        width: Canvas width in pixels.
        height: Canvas height in pixels.
        pattern: Pattern tag; overrides ``config.pattern`` when given.
        config: Base settings. Defaults to :class:`LayoutConfig`.
        rng: Random source shared by every draw in this layout.
        **options: Field overrides for ``config`` (``density``, ``spacing``,
            ``base_rotation``, ``content_areas``, ``jitter``).

    Returns:
        A fresh :class:`WatermarkLayout`.

    Raises:
        InvalidDimensions: For non-positive width, height, spacing or density.
        UnsupportedPattern: For an unknown pattern tag.
    """
    if width <= 0 or height <= 0:
        raise InvalidDimensions(f"Canvas must be positive, got {width}x{height}")

    config = config or LayoutConfig()
    if options:
        config = replace(config, **options)
    if pattern is not None:
        config = replace(config, pattern=pattern)
    config = _validated(replace(config, pattern=parse_pattern(config.pattern)))
    rng = rng or random.Random()

    kind = config.pattern
    if kind is LayoutPattern.DIAGONAL:
        positions = generate_diagonal(width, height, config.spacing, config.base_rotation, rng, config.jitter)
    elif kind is LayoutPattern.GRID:
        positions = generate_grid(width, height, config.spacing, config.base_rotation, rng)
    elif kind is LayoutPattern.CORNERS:
        positions = generate_corners(width, height, config.spacing / 4, rng)
    elif kind is LayoutPattern.RANDOM:
        positions = generate_random(width, height, config.density, config.base_rotation, rng)
    elif kind is LayoutPattern.SPIRAL:
        positions = generate_spiral(width, height, config.density, rng)
    else:
        positions = generate_adaptive(width, height, config.content_areas, rng)

    total_area = width * height
    coverage = min(len(positions) * _WATERMARK_AREA / total_area, 1.0)
    logger.debug("Generated %d %s placements for %dx%d", len(positions), kind.value, width, height)

    return WatermarkLayout(
        positions=positions,
        pattern=kind,
        density=len(positions) / (total_area / 10000),
        coverage=coverage,
    )


# Predefined layout configurations
WATERMARK_LAYOUTS: dict[str, LayoutConfig] = {
    "LIGHT_DIAGONAL": LayoutConfig(pattern=LayoutPattern.DIAGONAL, density=0.1, spacing=300, base_rotation=-45),
    "MEDIUM_GRID": LayoutConfig(pattern=LayoutPattern.GRID, density=0.15, spacing=200, base_rotation=0),
    "HEAVY_RANDOM": LayoutConfig(pattern=LayoutPattern.RANDOM, density=0.25, base_rotation=-45),
    "CORNER_STAMPS": LayoutConfig(pattern=LayoutPattern.CORNERS, spacing=80),
    "SPIRAL_ARTISTIC": LayoutConfig(pattern=LayoutPattern.SPIRAL, density=0.12),
    "ADAPTIVE_SMART": LayoutConfig(pattern=LayoutPattern.ADAPTIVE, density=0.18),
}
