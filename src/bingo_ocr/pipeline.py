"""
End-to-end ticket pipeline.

Two entry points share the detection stages:
- validate_ticket_image: binarize → detect → segment → preview overlay
- analyze_ticket_image: binarize → detect → segment → composite sheet →
  recognizer → post-processing
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from .cells import build_composite
from .config import MAX_IMAGE_WIDTH, RECOGNITION_TIMEOUT_S
from .detect import find_target_squares
from .errors import DecodeFailure, RenderSurfaceFailure
from .grid import draw_ticket_overlay, segment_tickets
from .models import AnalysisResult, Segmentation, ValidationResult
from .ocr import recognize_with_timeout
from .postprocess import build_results
from .preprocess import binarize

logger = logging.getLogger(__name__)

NO_TICKET_MESSAGE = "No ticket detected. Move closer or improve the lighting."


def load_image(path: Union[str, Path], max_width: int = MAX_IMAGE_WIDTH) -> np.ndarray:
    """
    Read an image file into an RGBA raster for the pipeline.

    Transparent pixels are flattened onto white and images wider than
    `max_width` are scaled down, keeping the aspect ratio.

    Args:
        path: Image file path
        max_width: Maximum raster width (default: 2000)

    Returns:
        RGBA raster (uint8, H x W x 4)

    Raises:
        DecodeFailure: If the file cannot be read or decoded
    """
    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if image is None or image.size == 0:
        raise DecodeFailure(f"Could not load image '{path}'")

    if image.ndim == 2:
        bgr = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    elif image.shape[2] == 4:
        # Flatten alpha onto a white background
        alpha = image[:, :, 3:4].astype(np.float32) / 255.0
        white = np.full_like(image[:, :, :3], 255, dtype=np.float32)
        bgr = (image[:, :, :3].astype(np.float32) * alpha + white * (1 - alpha)).astype(np.uint8)
    else:
        bgr = image

    h, w = bgr.shape[:2]
    if w > max_width:
        new_h = max(int(h * max_width / w), 1)
        bgr = cv2.resize(bgr, (max_width, new_h), interpolation=cv2.INTER_AREA)

    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA)


def _check_raster(raster: np.ndarray) -> None:
    if raster is None or not isinstance(raster, np.ndarray) or raster.size == 0:
        raise DecodeFailure("Input raster is empty or invalid")
    if raster.ndim != 3 or raster.shape[2] not in (3, 4):
        raise DecodeFailure(f"Input raster must be RGB or RGBA, got shape {raster.shape}")


def detect_tickets(raster: np.ndarray) -> Tuple[np.ndarray, Segmentation]:
    """
    Shared detection stages of both entry points.

    Args:
        raster: Decoded RGBA raster

    Returns:
        Tuple of (binary, segmentation)

    Raises:
        DecodeFailure: If the raster is not a usable image
    """
    _check_raster(raster)

    classes, binary = binarize(raster)
    components = find_target_squares(classes)
    segmentation = segment_tickets(components)

    logger.info("Detected %d target squares and %d tickets",
                len(components), len(segmentation.tickets))
    return binary, segmentation


def _render_overlay(binary: np.ndarray, segmentation: Segmentation) -> np.ndarray:
    try:
        return draw_ticket_overlay(binary, segmentation.tickets)
    except cv2.error as e:
        raise RenderSurfaceFailure(f"Could not render overlay: {e}") from e


def validate_ticket_image(raster: np.ndarray) -> ValidationResult:
    """
    Fast pre-check for the live preview.

    Runs only the binarizer, the detector and the segmenter; neither the
    cleaner nor the recognizer is involved.

    Args:
        raster: Decoded RGBA raster

    Returns:
        ValidationResult with an annotated copy of the binary image
    """
    binary, segmentation = detect_tickets(raster)
    ticket_count = len(segmentation.tickets)
    overlay = _render_overlay(binary, segmentation)

    if ticket_count == 0:
        return ValidationResult(
            is_valid=False,
            message=NO_TICKET_MESSAGE,
            ticket_count=0,
            overlay_image=overlay,
            dropped_rows=segmentation.dropped_rows,
        )

    return ValidationResult(
        is_valid=True,
        message=f"{ticket_count} ticket(s) detected.",
        ticket_count=ticket_count,
        overlay_image=overlay,
        dropped_rows=segmentation.dropped_rows,
    )


def draw_word_boxes(sheet: np.ndarray, words) -> np.ndarray:
    """Composite sheet in BGR with a blue box around every recognized word."""
    try:
        debug = cv2.cvtColor(sheet, cv2.COLOR_GRAY2BGR)
    except cv2.error as e:
        raise RenderSurfaceFailure(f"Could not render debug sheet: {e}") from e

    for word in words:
        box = word.bbox
        cv2.rectangle(debug, (box.x, box.y), (box.right, box.bottom), (255, 0, 0), 2)
    return debug


def analyze_ticket_image(
    raster: np.ndarray,
    engine: Optional[object] = None,
    timeout: float = RECOGNITION_TIMEOUT_S,
    rng=None,
) -> AnalysisResult:
    """
    Full analysis: read every ticket's numbers and identifier.

    Args:
        raster: Decoded RGBA raster
        engine: Recognizer with a recognize(image) method (if None, uses default)
        timeout: Maximum wait for the recognizer in seconds (default: 60)
        rng: Random source for placeholder identifiers

    Returns:
        AnalysisResult with one TicketResult per ticket and the debug sheet.
        Without tickets the results are empty, the recognizer is not called
        and the debug raster is the red-tinted preview overlay.

    Raises:
        DecodeFailure: If the raster is not a usable image
        RenderSurfaceFailure: If the composite sheet cannot be created
        RecognitionTimeout: If the recognizer does not answer in time
    """
    binary, segmentation = detect_tickets(raster)
    tickets = segmentation.tickets

    if not tickets:
        logger.warning("No tickets detected; skipping recognition")
        return AnalysisResult(
            results=[],
            debug_raster=_render_overlay(binary, segmentation),
            dropped_rows=segmentation.dropped_rows,
        )

    sheet, mappings = build_composite(binary, tickets)
    words = recognize_with_timeout(sheet, engine=engine, timeout=timeout)
    results = build_results(len(tickets), mappings, words, rng=rng)

    return AnalysisResult(
        results=results,
        debug_raster=draw_word_boxes(sheet, words),
        dropped_rows=segmentation.dropped_rows,
    )
