#!/usr/bin/env python3
"""
Script to derive thumbnails, watermarks, text overlays and merges from the command line.

Usage:
    python scripts/derive_image.py resize <input> <output> --width W --height H [--no-lock-ratio] [--quality Q] [--mime-type TYPE]
    python scripts/derive_image.py crop <input> <output> --size S [--quality Q]
    python scripts/derive_image.py watermark <input> <output> --watermark FILE [--anchor POS] [--margin-h N] [--margin-v N]
    python scripts/derive_image.py text <input> <output> --text TEXT [--font FILE] [--font-size N] [--rect X,Y,W,H] [--color #rrggbb]
    python scripts/derive_image.py merge <back> <fore> <output> --rect X,Y,W,H

Examples:
    # 150px square thumbnail
    python scripts/derive_image.py crop photo.jpg thumb.jpg --size 150

    # Fit into 800x600 keeping the aspect ratio, as PNG
    python scripts/derive_image.py resize photo.jpg small.png --width 800 --height 600 --mime-type image/png

    # Logo 10px from the bottom edge and 20px from the right edge
    python scripts/derive_image.py watermark photo.jpg marked.jpg --watermark logo.png --anchor bottom_right --margin-h 10 --margin-v 20
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path to import thumbforge modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from thumbforge.config import settings
from thumbforge.services.geometry import AnchorPosition, Color, ImagingError, Rectangle, TextAlignment
from thumbforge.services.pipeline import ImagePipeline, OutputOptions, save_image


def parse_rect(value: str) -> Rectangle:
    """Parse 'X,Y,W,H'."""
    try:
        x, y, width, height = (int(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected X,Y,W,H, got '{value}'")
    return Rectangle(x=x, y=y, width=width, height=height)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Derive thumbnails, watermarks, text overlays and merges",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_output_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--quality", type=int, default=settings.default_jpeg_quality,
                         help="JPEG quality 1-100 (default: %(default)s)")
        sub.add_argument("--mime-type", default=settings.default_mime_type,
                         help="Output MIME type (default: %(default)s)")

    resize = subparsers.add_parser("resize", help="Scale to fit a size")
    resize.add_argument("input", type=Path)
    resize.add_argument("output", type=Path)
    resize.add_argument("--width", type=int, required=True)
    resize.add_argument("--height", type=int, required=True)
    resize.add_argument("--no-lock-ratio", action="store_true", help="Stretch to exactly WxH")
    add_output_args(resize)

    crop = subparsers.add_parser("crop", help="Center-crop to a square")
    crop.add_argument("input", type=Path)
    crop.add_argument("output", type=Path)
    crop.add_argument("--size", type=int, required=True)
    add_output_args(crop)

    watermark = subparsers.add_parser("watermark", help="Composite a watermark")
    watermark.add_argument("input", type=Path)
    watermark.add_argument("output", type=Path)
    watermark.add_argument("--watermark", type=Path, required=True)
    watermark.add_argument("--anchor", type=AnchorPosition, default=AnchorPosition.BOTTOM_RIGHT,
                           choices=list(AnchorPosition))
    watermark.add_argument("--margin-h", type=int, default=0, help="Pixels to the top/bottom edge")
    watermark.add_argument("--margin-v", type=int, default=0, help="Pixels to the left/right edge")
    add_output_args(watermark)

    text = subparsers.add_parser("text", help="Draw text onto the image")
    text.add_argument("input", type=Path)
    text.add_argument("output", type=Path)
    text.add_argument("--text", required=True)
    text.add_argument("--font", default=settings.default_font_name)
    text.add_argument("--font-size", type=float, default=settings.default_font_size)
    text.add_argument("--rect", type=parse_rect, default=None, help="X,Y,W,H (default: whole image)")
    text.add_argument("--color", default=settings.default_text_color)
    text.add_argument("--alignment", type=TextAlignment, default=TextAlignment.NEAR,
                      choices=list(TextAlignment))
    add_output_args(text)

    merge = subparsers.add_parser("merge", help="Merge a back image behind a fore image")
    merge.add_argument("back", type=Path)
    merge.add_argument("fore", type=Path)
    merge.add_argument("output", type=Path)
    merge.add_argument("--rect", type=parse_rect, required=True, help="X,Y,W,H of the back image")
    add_output_args(merge)

    return parser


def run(args: argparse.Namespace) -> Path:
    """Execute one command and return the written path."""
    options = OutputOptions(jpeg_quality=args.quality, encoder_mime_type=args.mime_type)

    if args.command == "merge":
        result = ImagePipeline.merge(args.back, args.fore, args.rect)
        return save_image(result.image, args.output, options)

    with ImagePipeline.open(args.input) as pipeline:
        if args.command == "resize":
            result = pipeline.resize_to(args.width, args.height, lock_ratio=not args.no_lock_ratio)
        elif args.command == "crop":
            result = pipeline.crop_to_square(args.size)
        elif args.command == "watermark":
            result = pipeline.apply_watermark(args.watermark, args.anchor, args.margin_h, args.margin_v)
        else:
            result = pipeline.overlay_text(
                args.text,
                font_name=args.font,
                font_size=args.font_size,
                rect=args.rect,
                brush=Color.from_hex(args.color),
                alignment=args.alignment,
            )
        return pipeline.save(result.image, args.output, options)


def main() -> None:
    args = build_parser().parse_args()
    try:
        path = run(args)
    except ImagingError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        sys.exit(1)
    print(f"✓ Wrote {path}")


if __name__ == "__main__":
    main()
