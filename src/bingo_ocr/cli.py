"""
Command-line interface for the bingo ticket OCR pipeline.

This module provides the main entry point for processing ticket photos
through the complete pipeline: validation -> composite sheet -> recognition.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import cv2
import pytesseract

from .config import MAX_IMAGE_WIDTH, RECOGNITION_TIMEOUT_S
from .errors import DecodeFailure, RecognitionTimeout, RenderSurfaceFailure
from .pipeline import analyze_ticket_image, load_image, validate_ticket_image


def print_ticket(result) -> None:
    """
    Pretty-print one ticket to stdout.

    Args:
        result: TicketResult
    """
    print(f"Ticket {result.ticket_id}")
    print("+" + "-" * 25 + "+")
    for row in result.grid:
        line = "|"
        for cell in row:
            line += "    " if cell == 0 else f" {cell:>2} "
        print(line + " |")
    print("+" + "-" * 25 + "+")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Read bingo tickets from a photo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m bingo_ocr.cli --image data/raw/tickets.jpg --out out
  python -m bingo_ocr.cli --image data/raw/tickets.jpg --out out --validate-only
  python -m bingo_ocr.cli --image data/raw/tickets.jpg --out out --debug --timeout 30
        """
    )

    parser.add_argument(
        "--image",
        required=True,
        help="Path to input ticket photo"
    )

    parser.add_argument(
        "--out",
        default="out",
        help="Output directory for processed images (default: out)"
    )

    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Only run the fast ticket detection and save the preview overlay"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Verbose logging and extra intermediate images"
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=RECOGNITION_TIMEOUT_S,
        help=f"Maximum wait for text recognition in seconds (default: {RECOGNITION_TIMEOUT_S:g})"
    )

    parser.add_argument(
        "--tesseract-cmd",
        default=None,
        help="Path to the tesseract executable if it is not on PATH"
    )

    parser.add_argument(
        "--max-width",
        type=int,
        default=MAX_IMAGE_WIDTH,
        help=f"Downscale wider photos to this width (default: {MAX_IMAGE_WIDTH})"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.tesseract_cmd:
        pytesseract.pytesseract.tesseract_cmd = args.tesseract_cmd

    # Validate input file
    input_path = Path(args.image)
    if not input_path.exists():
        print(f"Error: Input file '{input_path}' not found", file=sys.stderr)
        sys.exit(1)

    input_filename = input_path.stem

    output_dir = Path(args.out)
    output_dir.mkdir(parents=True, exist_ok=True)

    try:
        print(f"Loading image: {input_path}")
        raster = load_image(input_path, max_width=args.max_width)
    except DecodeFailure as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    # Stage 1: Fast validation
    print("Stage 1: Detecting tickets...")
    try:
        validation = validate_ticket_image(raster)
    except RenderSurfaceFailure as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    overlay_path = output_dir / f"{input_filename}_overlay.png"
    cv2.imwrite(str(overlay_path), validation.overlay_image)
    print(f"  Saved: {overlay_path}")

    if validation.dropped_rows:
        print(f"Warning: {validation.dropped_rows} row(s) did not form a complete ticket and were ignored")

    if not validation.is_valid:
        print(f"Error: {validation.message}", file=sys.stderr)
        sys.exit(2)

    print(f"[OK] {validation.message}")

    if args.validate_only:
        sys.exit(0)

    # Stage 2: Composite sheet and recognition
    print("Stage 2: Recognizing numbers...")
    try:
        from .ocr import get_tesseract_version, test_tesseract_installation

        if not test_tesseract_installation():
            print("Error: Tesseract is not installed or not on PATH", file=sys.stderr)
            sys.exit(3)
        print(f"[INFO] {get_tesseract_version()}")

        analysis = analyze_ticket_image(raster, timeout=args.timeout)
    except RecognitionTimeout as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Please try again, possibly with a new photo", file=sys.stderr)
        sys.exit(3)
    except (RenderSurfaceFailure, pytesseract.TesseractError) as e:
        print(f"Error during recognition: {e}", file=sys.stderr)
        sys.exit(3)

    debug_path = output_dir / f"{input_filename}_debug.png"
    cv2.imwrite(str(debug_path), analysis.debug_raster)
    print(f"  Saved: {debug_path}")

    print(f"[OK] Read {len(analysis.results)} ticket(s)\n")
    for result in analysis.results:
        print_ticket(result)

    tickets_json = output_dir / f"{input_filename}_tickets.json"
    with open(tickets_json, "w") as f:
        json.dump(
            [{"ticket_id": r.ticket_id, "grid": r.grid} for r in analysis.results],
            f,
            indent=2,
        )
    print(f"  Saved: {tickets_json}")

    if args.debug:
        from .preprocess import binarize

        _, binary = binarize(raster)
        binary_path = output_dir / f"{input_filename}_binary.png"
        cv2.imwrite(str(binary_path), binary)
        print(f"  Saved: {binary_path}")

    print(f"\n[OK] Processing complete! Check output directory: {output_dir}")
    sys.exit(0)


if __name__ == "__main__":
    main()
