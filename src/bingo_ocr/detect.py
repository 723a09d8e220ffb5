"""
Target square detection.

The empty boxes printed on a ticket read as paper-coloured islands inside
the ink pattern. They are found with a connected-component pass over a
downsampled copy of the classification buffer.
"""

import logging
import math
from typing import List

import cv2
import numpy as np

from .config import (
    DETECT_TARGET_WIDTH,
    MAX_ASPECT,
    MAX_WIDTH_RATIO,
    MIN_ASPECT,
    MIN_SIZE_RATIO,
)
from .models import Component, PixelClass

logger = logging.getLogger(__name__)


def downsample_paper_mask(classes: np.ndarray, target_width: int = DETECT_TARGET_WIDTH):
    """
    Nearest-neighbour downsample of the paper pixels to a fixed width.

    Each downsampled cell (dx, dy) reads source pixel
    (floor(dx / scale), floor(dy / scale)).

    Args:
        classes: PixelClass buffer (uint8, H x W)
        target_width: Width of the downsampled mask (default: 300)

    Returns:
        Tuple of (mask, scale) where mask is uint8 with 1 for paper
    """
    height, width = classes.shape[:2]
    scale = target_width / width
    scaled_w = math.floor(width * scale)
    scaled_h = math.floor(height * scale)

    xs = np.minimum(np.floor(np.arange(scaled_w) / scale).astype(np.intp), width - 1)
    ys = np.minimum(np.floor(np.arange(scaled_h) / scale).astype(np.intp), height - 1)

    mask = (classes[np.ix_(ys, xs)] == PixelClass.PAPER).astype(np.uint8)
    return mask, scale


def is_target_square(w: int, h: int, scaled_w: int, scaled_h: int) -> bool:
    """Shape filter for a region measured in downsampled pixels."""
    if h <= 0:
        return False
    ratio = w / h
    squarish = MIN_ASPECT < ratio < MAX_ASPECT
    big_enough = w > scaled_w * MIN_SIZE_RATIO and h > scaled_h * MIN_SIZE_RATIO
    not_too_big = w < scaled_w * MAX_WIDTH_RATIO
    return squarish and big_enough and not_too_big


def find_target_squares(
    classes: np.ndarray,
    target_width: int = DETECT_TARGET_WIDTH,
) -> List[Component]:
    """
    Find squarish paper regions that look like printed target squares.

    Process: downsample to `target_width` → label 4-connected paper regions
    → keep regions that pass the shape filter → map their bounding boxes
    back to source coordinates.

    Args:
        classes: PixelClass buffer at full resolution
        target_width: Width used for the connected-component pass

    Returns:
        Unsorted list of components in source pixel coordinates
    """
    if classes is None or classes.size == 0:
        return []

    mask, scale = downsample_paper_mask(classes, target_width)
    scaled_h, scaled_w = mask.shape
    if scaled_w == 0 or scaled_h == 0:
        return []

    num_labels, _, stats, _ = cv2.connectedComponentsWithStats(mask, connectivity=4)

    components = []
    # Label 0 is the ink background
    for i in range(1, num_labels):
        x = int(stats[i, cv2.CC_STAT_LEFT])
        y = int(stats[i, cv2.CC_STAT_TOP])
        w = int(stats[i, cv2.CC_STAT_WIDTH])
        h = int(stats[i, cv2.CC_STAT_HEIGHT])

        if not is_target_square(w, h, scaled_w, scaled_h):
            continue

        components.append(Component(
            x=math.floor(x / scale),
            y=math.floor(y / scale),
            w=math.floor(w / scale),
            h=math.floor(h / scale),
        ))

    logger.debug("Found %d target squares among %d paper regions", len(components), num_labels - 1)
    return components
