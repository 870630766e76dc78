"""
Tests for watermark placement generation.

Run with: pytest tests/test_positioning.py -v
"""
import itertools
import math
import random

import pytest

from flipbook.errors import InvalidDimensions, UnsupportedPattern
from flipbook.positioning import (
    MIN_SPACING,
    WATERMARK_LAYOUTS,
    ContentArea,
    LayoutConfig,
    LayoutPattern,
    PlacementTransform,
    generate_adaptive,
    generate_corners,
    generate_diagonal,
    generate_layout,
    generate_spiral,
)


class TestDiagonalPattern:
    """Diagonal lattice overflowing the canvas on every side."""

    def test_unjittered_anchor_lattice(self):
        layout = generate_layout(800, 600, "diagonal", spacing=200, base_rotation=-45, jitter=False)

        xs = range(-800, 1600, 200)
        ys = range(-600, 1200, 200)
        expected = {(x, y) for x in xs for y in ys}

        assert {(p.x, p.y) for p in layout.positions} == expected
        assert len(layout.positions) == len(xs) * len(ys) == 108
        assert all(p.rotation == -45 for p in layout.positions)

    def test_jitter_stays_near_anchor(self, rng):
        positions = generate_diagonal(800, 600, spacing=200, base_rotation=-45, rng=rng)
        anchors = [(x, y) for x in range(-800, 1600, 200) for y in range(-600, 1200, 200)]

        assert len(positions) == len(anchors)
        for p, (ax, ay) in zip(positions, anchors):
            assert abs(p.x - ax) <= 20
            assert abs(p.y - ay) <= 20
            assert -52.5 <= p.rotation <= -37.5
            assert 0.9 <= p.scale <= 1.1
            assert 0.9 <= p.opacity <= 1.0

    def test_positions_overflow_canvas(self, rng):
        layout = generate_layout(800, 600, "diagonal", rng=rng)
        assert any(p.x < 0 for p in layout.positions)
        assert any(p.y > 600 for p in layout.positions)


class TestGridPattern:
    """Regular grid with a rotation picked per cell."""

    def test_grid_count_600(self, rng):
        layout = generate_layout(600, 600, "grid", spacing=150, rng=rng)
        assert len(layout.positions) == 9
        assert {(p.x, p.y) for p in layout.positions} == {
            (x, y) for x in (150, 300, 450) for y in (150, 300, 450)
        }

    def test_rotation_from_fixed_set(self, rng):
        layout = generate_layout(1200, 1200, "grid", spacing=150, base_rotation=10, rng=rng)
        allowed = {10, 55, -35, 100}
        assert {p.rotation for p in layout.positions} <= allowed

    def test_scale_and_opacity_ranges(self, rng):
        layout = generate_layout(1200, 900, "grid", spacing=100, rng=rng)
        for p in layout.positions:
            assert 0.8 <= p.scale <= 1.2
            assert 0.7 <= p.opacity <= 1.0


class TestCornersPattern:
    """Three fading layers on each corner."""

    @pytest.mark.parametrize("width,height", [(612, 792), (800, 600), (120, 90)])
    def test_twelve_placements(self, width, height, rng):
        layout = generate_layout(width, height, "corners", rng=rng)
        assert len(layout.positions) == 12

    def test_layers_fade(self, rng):
        positions = generate_corners(800, 600, margin=50, rng=rng)
        for corner in range(4):
            layers = positions[corner * 3:corner * 3 + 3]
            assert layers[0].scale > layers[1].scale > layers[2].scale
            assert layers[0].opacity > layers[1].opacity > layers[2].opacity

    def test_first_layer_is_exact(self, rng):
        positions = generate_corners(800, 600, margin=50, rng=rng)
        first_layers = [positions[i] for i in (0, 3, 6, 9)]
        assert [(p.x, p.y) for p in first_layers] == [(50, 50), (750, 50), (50, 550), (750, 550)]
        for p, base in zip(first_layers, (0, 90, -90, 180)):
            assert base - 15 <= p.rotation <= base + 15

    def test_margin_is_quarter_spacing(self, rng):
        layout = generate_layout(800, 600, "corners", spacing=80, rng=rng)
        assert (layout.positions[0].x, layout.positions[0].y) == (20, 20)


class TestRandomPattern:
    """Poisson-backed random placements."""

    def test_target_count_and_spacing(self, rng):
        layout = generate_layout(1000, 1000, "random", density=0.3, rng=rng)
        assert 0 < len(layout.positions) <= math.floor(1000 * 1000 * 0.3 / 10000)
        for a, b in itertools.combinations(layout.positions, 2):
            assert math.dist((a.x, a.y), (b.x, b.y)) >= MIN_SPACING

    def test_ranges(self, rng):
        layout = generate_layout(800, 600, "random", density=0.2, base_rotation=-45, rng=rng)
        for p in layout.positions:
            assert 0 <= p.x < 800 and 0 <= p.y < 600
            assert -52.5 <= p.rotation <= -37.5
            assert 0.8 <= p.scale <= 1.2
            assert 0.8 <= p.opacity <= 1.0

    def test_tiny_canvas_is_empty(self, rng):
        layout = generate_layout(50, 50, "random", rng=rng)
        assert layout.positions == []
        assert layout.coverage == 0


class TestSpiralPattern:
    """Spiral from the centre with tangent rotation."""

    def test_points_inside_canvas(self, rng):
        positions = generate_spiral(800, 600, density=0.5, rng=rng)
        assert positions
        for p in positions:
            assert 0 <= p.x <= 800 and 0 <= p.y <= 600

    def test_first_point_is_centre(self, rng):
        positions = generate_spiral(800, 600, density=0.2, rng=rng)
        assert positions[0].x == pytest.approx(400)
        assert positions[0].y == pytest.approx(300)
        assert positions[0].rotation == pytest.approx(90)

    def test_point_count(self, rng):
        # floor(50 * 0.2) = 10 points per turn, 3 turns, all inside for a square page
        positions = generate_spiral(600, 600, density=0.2, rng=rng)
        assert len(positions) == 30

    def test_out_of_bounds_points_dropped(self, rng):
        """On a very wide page the outer turns leave the short side."""
        wide = generate_spiral(2000, 100, density=1.0, rng=rng)
        assert len(wide) <= 150
        for p in wide:
            assert 0 <= p.y <= 100

    def test_zero_points_per_turn(self, rng):
        assert generate_spiral(600, 600, density=0.01, rng=rng) == []


class TestAdaptivePattern:
    """Strong watermarks in empty cells, faint sparse ones over content."""

    def test_no_content_fills_every_cell(self, rng):
        positions = generate_adaptive(500, 300, [], rng=rng)
        centres = [(x + 50, y + 50) for x in range(0, 500, 100) for y in range(0, 300, 100)]
        assert len(positions) == len(centres) == 15
        for p, (cx, cy) in zip(positions, centres):
            # Jitter keeps each watermark inside its own cell
            assert abs(p.x - cx) <= 25
            assert abs(p.y - cy) <= 25
            assert 0.6 <= p.opacity <= 0.8
            assert 0.7 <= p.scale <= 1.0

    def test_full_content_is_sparse_and_faint(self):
        area = ContentArea(0, 0, 2000, 2000)
        positions = generate_adaptive(2000, 2000, [area], rng=random.Random(8))
        assert 0 < len(positions) < 400
        # About 30% of the 400 cells
        assert 60 < len(positions) < 180
        for p in positions:
            assert 0.3 <= p.opacity <= 0.5
            assert 0.5 <= p.scale <= 0.7
            assert (p.x - 50) % 100 == 0 and (p.y - 50) % 100 == 0

    def test_content_area_edges_inclusive(self):
        area = ContentArea(10, 10, 40, 40)
        assert area.contains(50, 50)
        assert area.contains(10, 10)
        assert not area.contains(50.5, 50)


class TestGenerateLayout:
    """Validation, dispatch and diagnostics."""

    @pytest.mark.parametrize("width,height", [(0, 100), (100, 0), (-1, -1)])
    def test_invalid_dimensions(self, width, height):
        with pytest.raises(InvalidDimensions):
            generate_layout(width, height, "diagonal")

    def test_invalid_spacing(self):
        with pytest.raises(InvalidDimensions):
            generate_layout(100, 100, "grid", spacing=0)

    def test_invalid_density(self):
        with pytest.raises(InvalidDimensions):
            generate_layout(100, 100, "random", density=-0.1)

    def test_density_clamped(self, rng):
        layout = generate_layout(500, 500, "spiral", density=5, rng=rng)
        assert len(layout.positions) <= 150

    def test_unsupported_pattern(self):
        with pytest.raises(UnsupportedPattern):
            generate_layout(100, 100, "zigzag")

    def test_pattern_accepts_enum_and_string(self, rng):
        assert generate_layout(600, 600, LayoutPattern.GRID, rng=rng).pattern is LayoutPattern.GRID
        assert generate_layout(600, 600, "GRID", rng=rng).pattern is LayoutPattern.GRID

    def test_pattern_argument_overrides_config(self, rng):
        config = LayoutConfig(pattern=LayoutPattern.GRID)
        layout = generate_layout(600, 600, "corners", config=config, rng=rng)
        assert layout.pattern is LayoutPattern.CORNERS

    def test_coverage_and_density(self, rng):
        layout = generate_layout(600, 600, "grid", spacing=150, rng=rng)
        assert layout.coverage == pytest.approx(9 * 2000 / 360000)
        assert layout.density == pytest.approx(9 / 36)

    def test_coverage_capped(self, rng):
        layout = generate_layout(200, 200, "diagonal", spacing=20, rng=rng)
        assert layout.coverage == 1.0

    def test_seeded_layouts_repeat(self):
        first = generate_layout(800, 600, "random", rng=random.Random(5))
        second = generate_layout(800, 600, "random", rng=random.Random(5))
        assert first.positions == second.positions

    def test_placements_are_immutable(self, rng):
        layout = generate_layout(600, 600, "grid", rng=rng)
        with pytest.raises(AttributeError):
            layout.positions[0].x = 1

    def test_presets_generate(self, rng):
        for name, config in WATERMARK_LAYOUTS.items():
            layout = generate_layout(612, 792, config=config, rng=rng)
            assert isinstance(layout.positions, list), name
            assert all(isinstance(p, PlacementTransform) for p in layout.positions)

    def test_config_is_frozen(self):
        config = LayoutConfig(content_areas=[ContentArea(0, 0, 10, 10)])
        assert isinstance(config.content_areas, tuple)
        with pytest.raises(AttributeError):
            config.spacing = 50

    def test_preset_configs_unchanged_by_overrides(self, rng):
        preset = WATERMARK_LAYOUTS["MEDIUM_GRID"]
        generate_layout(600, 600, "corners", config=preset, rng=rng, spacing=80)
        assert preset.pattern is LayoutPattern.GRID
        assert preset.spacing == 200
