"""
Image preprocessing functions for ticket OCR.

This module handles the initial image processing steps including:
- Global adaptive thresholding on the red channel
- Morphological noise cleanup (erosion, then despeckle)
"""

import logging
from typing import Iterable, Tuple

import numpy as np

from .config import (
    CLEAN_ITERATIONS,
    DEFAULT_LUMINANCE,
    DESPECKLE_MIN_NEIGHBORS,
    LUMINANCE_FACTOR,
    SAMPLE_STRIDE,
)
from .models import PixelClass, Rect

logger = logging.getLogger(__name__)

INK_VALUE = 0
PAPER_VALUE = 255


def binarize(
    raster: np.ndarray,
    stride: int = SAMPLE_STRIDE,
    factor: float = LUMINANCE_FACTOR,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Classify every pixel of an RGBA raster as ink or paper.

    Process: sample the red channel every `stride` pixels → mean → threshold
    at mean * factor → ink iff red is strictly below the threshold.

    Args:
        raster: Decoded image, shape (H, W, 4) RGBA or (H, W, 3) RGB
        stride: Sampling step on both axes (default: 20)
        factor: Fraction of the mean used as threshold (default: 0.85)

    Returns:
        Tuple of (classes, binary):
        - classes: uint8 PixelClass buffer (0 = ink, 1 = paper)
        - binary: uint8 image, black ink (0) on white paper (255)

    Raises:
        ValueError: If the raster is empty or not a colour image
    """
    if raster is None or raster.size == 0:
        raise ValueError("Input raster is empty or invalid")

    if raster.ndim != 3 or raster.shape[2] not in (3, 4):
        raise ValueError(f"Input raster must be RGB or RGBA, got shape {raster.shape}")

    red = raster[:, :, 0]

    sample = red[::stride, ::stride]
    avg_r = float(sample.mean()) if sample.size > 0 else float(DEFAULT_LUMINANCE)
    threshold = avg_r * factor

    ink = red < threshold
    classes = np.where(ink, PixelClass.INK, PixelClass.PAPER).astype(np.uint8)
    binary = np.where(ink, INK_VALUE, PAPER_VALUE).astype(np.uint8)

    logger.debug("Binarized %dx%d raster: avgR=%.1f threshold=%.1f ink=%.1f%%",
                 red.shape[1], red.shape[0], avg_r, threshold, 100.0 * ink.mean())
    return classes, binary


def _ink_neighbors(ink: np.ndarray, diagonal: bool) -> np.ndarray:
    """Count ink neighbours for every interior pixel of a boolean ink mask."""
    counts = (
        ink[:-2, 1:-1].astype(np.uint8)
        + ink[2:, 1:-1]
        + ink[1:-1, :-2]
        + ink[1:-1, 2:]
    )
    if diagonal:
        counts = counts + ink[:-2, :-2] + ink[:-2, 2:] + ink[2:, :-2] + ink[2:, 2:]
    return counts


def dense_ink_mask(binary: np.ndarray, min_neighbors: int) -> np.ndarray:
    """
    Mark interior ink pixels with at least `min_neighbors` ink 8-neighbours.

    The result has the same shape as `binary`; the outermost ring is False.
    """
    mask = np.zeros(binary.shape, dtype=bool)
    if binary.shape[0] < 3 or binary.shape[1] < 3:
        return mask

    ink = binary == INK_VALUE
    counts = _ink_neighbors(ink, diagonal=True)
    mask[1:-1, 1:-1] = ink[1:-1, 1:-1] & (counts >= min_neighbors)
    return mask


def clean_binary(
    binary: np.ndarray,
    protected: Iterable[Rect] = (),
    iterations: int = CLEAN_ITERATIONS,
) -> np.ndarray:
    """
    Remove ink noise from a binary image.

    Pass 0 is an erosion: an ink pixel survives only if all four
    4-connected neighbours are ink. Every later pass is a despeckle: an ink
    pixel survives if at least 3 of its 8 neighbours are ink. Pixels inside
    a protected rectangle are copied from the pass input unchanged. The
    outermost ring is never evaluated and always ends up as paper.

    Args:
        binary: Binary image (uint8, 0 = ink, 255 = paper)
        protected: Rectangles that must not be modified
        iterations: Number of passes (default: 2)

    Returns:
        Cleaned binary image (new array)
    """
    h, w = binary.shape[:2]
    protected = list(protected)
    current = binary.copy()

    for iteration in range(iterations):
        output = np.full_like(current, PAPER_VALUE)
        if h < 3 or w < 3:
            current = output
            continue

        ink = current == INK_VALUE
        centre = ink[1:-1, 1:-1]

        if iteration == 0:
            survives = centre & (_ink_neighbors(ink, diagonal=False) == 4)
        else:
            survives = centre & (_ink_neighbors(ink, diagonal=True) >= DESPECKLE_MIN_NEIGHBORS)

        output[1:-1, 1:-1][survives] = INK_VALUE

        for rect in protected:
            # Protection only covers evaluated pixels, the border stays paper
            x1 = max(rect.x, 1)
            y1 = max(rect.y, 1)
            x2 = min(rect.right, w - 1)
            y2 = min(rect.bottom, h - 1)
            if x2 > x1 and y2 > y1:
                output[y1:y2, x1:x2] = current[y1:y2, x1:x2]

        current = output

    return current
