"""
Synthetic ticket photos for the tests.

Tickets are drawn as white 40x40 target squares on a black (ink)
background. All coordinates are even so that the 600px wide images map
exactly onto the 300px detection grid.
"""

import numpy as np

SQUARE = 40
COL_STRIDE = 50
ROW_STRIDE = 46          # 6px gap between rows, below 0.2 * 40
BLOCK_GAP = 60
MARGIN_X = 40
MARGIN_Y = 40
WIDTH = 600


def square_origin(ticket: int, row: int, col: int, block_gap: int = BLOCK_GAP):
    """Top-left corner of a target square."""
    block_height = 2 * ROW_STRIDE + SQUARE
    y = MARGIN_Y + ticket * (block_height + block_gap) + row * ROW_STRIDE
    x = MARGIN_X + col * COL_STRIDE
    return x, y


def make_ticket_raster(
    tickets: int = 3,
    cols: int = 6,
    inked=(),
    missing=(),
    block_gap: int = BLOCK_GAP,
) -> np.ndarray:
    """
    Create an RGBA raster with `tickets` stacked 3 x `cols` blocks.

    Args:
        tickets: Number of ticket blocks
        cols: Squares per row
        inked: (ticket, row, col) squares that get a printed "digit" blob
        missing: (ticket, row, col) squares that are not drawn at all
        block_gap: Vertical gap between ticket blocks

    Returns:
        RGBA uint8 image
    """
    block_height = 2 * ROW_STRIDE + SQUARE
    height = MARGIN_Y * 2 + tickets * block_height + max(tickets - 1, 0) * block_gap
    raster = np.zeros((height, WIDTH, 4), dtype=np.uint8)
    raster[:, :, 3] = 255

    for t in range(tickets):
        for r in range(3):
            for c in range(cols):
                if (t, r, c) in missing:
                    continue
                x, y = square_origin(t, r, c, block_gap)
                raster[y:y + SQUARE, x:x + SQUARE, :3] = 255
                if (t, r, c) in inked:
                    raster[y + 14:y + 26, x + 14:x + 26, :3] = 0

    return raster
