"""
Bingo OCR - A tool for reading printed bingo tickets from photos.

This package provides functionality for:
- Image preprocessing (global threshold, morphological cleanup)
- Target square detection and 3x6 grid reconstruction
- Composite sheet assembly and number/identifier recognition
"""

__version__ = "0.1.0"

from .preprocess import binarize, clean_binary
from .detect import find_target_squares
from .grid import cluster_rows, chunk_tickets, interpolate_grid, segment_tickets, draw_ticket_overlay
from .cells import has_ink, build_composite
from .ocr import get_engine, recognize_with_timeout, get_tesseract_version, test_tesseract_installation
from .postprocess import parse_cell_text, parse_ticket_id, build_results
from .pipeline import load_image, validate_ticket_image, analyze_ticket_image
from .errors import TicketScanError, DecodeFailure, RenderSurfaceFailure, RecognitionTimeout
from .models import (
    PixelClass,
    Rect,
    Component,
    Row,
    TicketCandidate,
    InterpolatedGrid,
    SpriteMapping,
    RecognizedWord,
    TicketResult,
    ValidationResult,
    AnalysisResult,
)

__all__ = [
    # Pipeline stages
    "binarize",
    "clean_binary",
    "find_target_squares",
    "cluster_rows",
    "chunk_tickets",
    "interpolate_grid",
    "segment_tickets",
    "draw_ticket_overlay",
    "has_ink",
    "build_composite",
    # Recognition
    "get_engine",
    "recognize_with_timeout",
    "get_tesseract_version",
    "test_tesseract_installation",
    "parse_cell_text",
    "parse_ticket_id",
    "build_results",
    # Entry points
    "load_image",
    "validate_ticket_image",
    "analyze_ticket_image",
    # Exceptions
    "TicketScanError",
    "DecodeFailure",
    "RenderSurfaceFailure",
    "RecognitionTimeout",
    # Data model
    "PixelClass",
    "Rect",
    "Component",
    "Row",
    "TicketCandidate",
    "InterpolatedGrid",
    "SpriteMapping",
    "RecognizedWord",
    "TicketResult",
    "ValidationResult",
    "AnalysisResult",
]
