"""Command-line entry point: render and watermark PDF pages."""

import argparse
import asyncio
import logging
import random
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from flipbook.config import LOG_LEVEL
from flipbook.errors import FlipbookError
from flipbook.positioning import LayoutPattern
from flipbook.renderer import FORMATS, QUALITY_SETTINGS, RenderOptions, render_page
from flipbook.thumbnails import generate_thumbnail_grid
from flipbook.watermark import WATERMARK_PRESETS, WatermarkIdentity, apply_watermark, get_preset

logger = logging.getLogger(__name__)


def _cmd_render(args: argparse.Namespace) -> None:
    pdf_bytes = Path(args.input).read_bytes()
    options = RenderOptions(quality=args.quality, format=args.format, width=args.width, height=args.height)
    page = render_page(pdf_bytes, args.page, options)

    identity = WatermarkIdentity(
        user_id=args.user_id,
        user_email=args.email,
        user_name=args.name,
        document_id=args.document_id or Path(args.input).stem,
        page_number=args.page,
        timestamp=None if args.no_timestamp else datetime.now(),
        access_level=args.access_level,
    )

    preset = get_preset(args.preset)
    style = preset.style if args.text is None else replace(preset.style, text=args.text)
    layout = preset.layout
    overrides = {
        "pattern": args.pattern,
        "spacing": args.spacing,
        "density": args.density,
        "base_rotation": args.rotation,
    }
    layout = replace(layout, **{k: v for k, v in overrides.items() if v is not None})

    rng = random.Random(args.seed) if args.seed is not None else None
    result, placement = apply_watermark(page, identity, style, layout, rng=rng)

    Path(args.output).write_bytes(result.buffer)
    logger.info(
        "Wrote %s (%dx%d, %d %s placements, coverage %.2f)",
        args.output, result.width, result.height, len(placement.positions), placement.pattern.value, placement.coverage,
    )


def _cmd_grid(args: argparse.Namespace) -> None:
    pdf_bytes = Path(args.input).read_bytes()
    sheet = asyncio.run(generate_thumbnail_grid(
        pdf_bytes,
        columns=args.columns,
        rows=args.rows,
        thumbnail_size=args.size,
        spacing=args.spacing,
        start_page=args.start_page,
        format=args.format,
    ))
    Path(args.output).write_bytes(sheet.buffer)
    logger.info("Wrote %s (%dx%d)", args.output, sheet.width, sheet.height)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flipbook-render",
        description="Render PDF pages with identity watermarks",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    render = sub.add_parser("render", help="Render and watermark a single page")
    render.add_argument("-i", "--input", required=True, help="Path to source PDF")
    render.add_argument("-o", "--output", required=True, help="Path to save the page image")
    render.add_argument("-p", "--page", type=int, default=1, help="1-based page number")
    render.add_argument("--quality", default="medium", choices=list(QUALITY_SETTINGS))
    render.add_argument("--format", default="webp", choices=FORMATS)
    render.add_argument("--width", type=int, help="Max output width in pixels")
    render.add_argument("--height", type=int, help="Max output height in pixels")

    render.add_argument("--email", help="Viewer email")
    render.add_argument("--name", help="Viewer name, used when no email is given")
    render.add_argument("--user-id", help="Viewer id")
    render.add_argument("--document-id", help="Document id (defaults to the file name)")
    render.add_argument("--access-level", default="view")
    render.add_argument("--no-timestamp", action="store_true", help="Leave the timestamp out of the text")
    render.add_argument("--text", help="Base watermark text")

    render.add_argument("--preset", default="medium", choices=[name.lower() for name in WATERMARK_PRESETS])
    render.add_argument("--pattern", choices=[p.value for p in LayoutPattern], help="Override the preset pattern")
    render.add_argument("--spacing", type=float)
    render.add_argument("--density", type=float)
    render.add_argument("--rotation", type=float, help="Base rotation in degrees")
    render.add_argument("--seed", type=int, help="Seed for repeatable layouts")
    render.set_defaults(func=_cmd_render)

    grid = sub.add_parser("grid", help="Build a thumbnail contact sheet")
    grid.add_argument("-i", "--input", required=True, help="Path to source PDF")
    grid.add_argument("-o", "--output", required=True, help="Path to save the sheet")
    grid.add_argument("--columns", type=int, default=4)
    grid.add_argument("--rows", type=int, default=3)
    grid.add_argument("--size", type=int, default=150, help="Thumbnail width in pixels")
    grid.add_argument("--spacing", type=int, default=10)
    grid.add_argument("--start-page", type=int, default=1)
    grid.add_argument("--format", default="png", choices=FORMATS)
    grid.set_defaults(func=_cmd_grid)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        args.func(args)
    except (FlipbookError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
