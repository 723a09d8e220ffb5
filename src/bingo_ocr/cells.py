"""
Cell extraction and composite sheet assembly.

This module handles:
- Cropping the centre of every ticket cell to avoid grid lines
- Skipping blank cells with a dense-ink test
- Locating the identifier field next to the last cell
- Packing everything into one padded sprite sheet for the recognizer
"""

import logging
import math
from typing import List, Sequence, Tuple

import cv2
import numpy as np

from .config import (
    CELL_CROP_MARGIN,
    CELL_TILE,
    CLEAN_ITERATIONS,
    COLS_PER_TICKET,
    DENSE_INK_NEIGHBORS,
    ID_CROP_MARGIN,
    ID_DEFAULT_ASPECT,
    ID_MARKER,
    ID_MIN_SIZE,
    ID_OFFSET_RATIO,
    ID_WIDTH_RATIO,
    INK_FRACTION,
    ROWS_PER_TICKET,
    TILE_PADDING,
)
from .errors import RenderSurfaceFailure
from .models import Rect, SpriteMapping, TicketCandidate
from .preprocess import PAPER_VALUE, clean_binary, dense_ink_mask

logger = logging.getLogger(__name__)

KIND_NUMBER = "number"
KIND_IDENTIFIER = "identifier"

TICKET_BLOCK_HEIGHT = ROWS_PER_TICKET * (CELL_TILE + TILE_PADDING) + TILE_PADDING
DEFAULT_SHEET_WIDTH = COLS_PER_TICKET * (CELL_TILE + TILE_PADDING) + TILE_PADDING * 2


def has_ink(crop: np.ndarray, threshold: float = INK_FRACTION) -> bool:
    """
    Check whether a binary crop contains real strokes.

    A dense-ink pixel is an ink pixel with at least 6 of its 8 neighbours
    also ink. The crop has content when dense-ink pixels make up more than
    `threshold` of its area.

    Args:
        crop: Binary crop (uint8, 0 = ink, 255 = paper)
        threshold: Minimum dense-ink fraction (default: 0.01)

    Returns:
        True if the crop holds content
    """
    if crop is None or crop.size == 0:
        return False

    dense = int(np.count_nonzero(dense_ink_mask(crop, DENSE_INK_NEIGHBORS)))
    return dense / crop.size > threshold


def cell_crop_rect(cell: Rect, margin: float = CELL_CROP_MARGIN) -> Rect:
    """Central part of a cell with `margin` of its size trimmed on each side."""
    margin_x = cell.w * margin
    margin_y = cell.h * margin
    return Rect(
        x=math.floor(cell.x + margin_x),
        y=math.floor(cell.y + margin_y),
        w=math.floor(cell.w - margin_x * 2),
        h=math.floor(cell.h - margin_y * 2),
    )


def cell_sprite_rect(ticket_index: int, row_index: int, col_index: int) -> Rect:
    """Position of a numeric cell tile in the composite sheet."""
    return Rect(
        x=TILE_PADDING + col_index * (CELL_TILE + TILE_PADDING),
        y=ticket_index * TICKET_BLOCK_HEIGHT + TILE_PADDING + row_index * (CELL_TILE + TILE_PADDING),
        w=CELL_TILE,
        h=CELL_TILE,
    )


def identifier_sprite_rect(ticket_index: int, width: int) -> Rect:
    """Position of the identifier tile, right of the last row."""
    return Rect(
        x=TILE_PADDING + COLS_PER_TICKET * (CELL_TILE + TILE_PADDING),
        y=ticket_index * TICKET_BLOCK_HEIGHT + TILE_PADDING
        + (ROWS_PER_TICKET - 1) * (CELL_TILE + TILE_PADDING),
        w=width,
        h=CELL_TILE,
    )


def identifier_search_rect(last_cell: Rect, width: int, height: int) -> Rect:
    """
    Region right of the last cell where the ticket identifier is printed.

    Starts 30% of a cell width past the cell to skip the grid line, spans
    1.8 cell widths and one cell height, clamped to the image.
    """
    search_x = last_cell.x + last_cell.w + last_cell.w * ID_OFFSET_RATIO
    search_y = last_cell.y
    search_w = last_cell.w * ID_WIDTH_RATIO
    search_h = last_cell.h

    safe_x = min(search_x, width - 1)
    safe_y = min(search_y, height - 1)
    safe_w = min(search_w, width - safe_x)
    safe_h = min(search_h, height - safe_y)

    return Rect(
        x=math.floor(safe_x),
        y=math.floor(safe_y),
        w=math.floor(safe_w),
        h=math.floor(safe_h),
    )


def identifier_tile_width(search: Rect) -> int:
    """Tile width that keeps the search region's aspect ratio at tile height."""
    ratio = search.w / search.h if search.h > 0 else ID_DEFAULT_ASPECT
    return max(math.floor(CELL_TILE * ratio), 1)


def _paste(sheet: np.ndarray, binary: np.ndarray, source: Rect, target: Rect) -> bool:
    """Scale a source region of `binary` into `target` on the sheet."""
    height, width = binary.shape[:2]
    src = source.clip(width, height)
    if src.w <= 0 or src.h <= 0:
        return False

    crop = binary[src.y:src.bottom, src.x:src.right]
    # Nearest neighbour keeps the tile strictly black and white
    tile = cv2.resize(crop, (target.w, target.h), interpolation=cv2.INTER_NEAREST)
    sheet[target.y:target.bottom, target.x:target.right] = tile
    return True


def _allocate_sheet(width: int, height: int) -> np.ndarray:
    try:
        return np.full((max(height, 1), max(width, 1)), PAPER_VALUE, dtype=np.uint8)
    except (MemoryError, ValueError) as e:
        raise RenderSurfaceFailure(f"Could not allocate {width}x{height} composite sheet: {e}") from e


def build_composite(
    binary: np.ndarray,
    tickets: Sequence[TicketCandidate],
) -> Tuple[np.ndarray, List[SpriteMapping]]:
    """
    Pack every non-blank cell and every identifier field into one sheet.

    Tickets are stacked vertically, one 3-row block per ticket. Each tile is
    160px with 400px of padding so the recognizer never merges neighbours.
    Blank cells are left out of the sheet and read as 0 later on. After
    drawing, the sheet is cleaned (erosion + despeckle) with the identifier
    tiles protected.

    Args:
        binary: Binary source image (uint8, 0/255)
        tickets: Segmented tickets with their interpolated grids

    Returns:
        Tuple of (sheet, mappings)

    Raises:
        RenderSurfaceFailure: If the sheet cannot be allocated
    """
    height, width = binary.shape[:2]
    last_row = ROWS_PER_TICKET - 1
    last_col = COLS_PER_TICKET - 1

    # Pass 1: measure the widest identifier field
    searches = []
    sheet_width = DEFAULT_SHEET_WIDTH
    for ticket in tickets:
        search = identifier_search_rect(ticket.grid.rows[last_row][last_col], width, height)
        searches.append(search)
        row_width = (COLS_PER_TICKET * (CELL_TILE + TILE_PADDING)
                     + identifier_tile_width(search) + TILE_PADDING * 3)
        sheet_width = max(sheet_width, row_width)

    sheet = _allocate_sheet(sheet_width, len(tickets) * TICKET_BLOCK_HEIGHT)

    mappings: List[SpriteMapping] = []
    protected: List[Rect] = []

    # Pass 2: draw
    for t_idx, ticket in enumerate(tickets):
        for r_idx, row in enumerate(ticket.grid.rows):
            for c_idx, cell in enumerate(row):
                source = cell_crop_rect(cell).clip(width, height)
                if source.w <= 0 or source.h <= 0:
                    continue
                if not has_ink(binary[source.y:source.bottom, source.x:source.right]):
                    continue

                sprite = cell_sprite_rect(t_idx, r_idx, c_idx)
                if _paste(sheet, binary, source, sprite):
                    mappings.append(SpriteMapping(
                        ticket_index=t_idx,
                        row_index=r_idx,
                        col_index=c_idx,
                        kind=KIND_NUMBER,
                        sprite_rect=sprite,
                        source_rect=cell,
                    ))

        search = searches[t_idx]
        if search.w > ID_MIN_SIZE and search.h > ID_MIN_SIZE:
            trim = search.h * ID_CROP_MARGIN
            source = Rect(
                x=search.x,
                y=math.floor(search.y + trim),
                w=search.w,
                h=math.floor(search.h - trim * 2),
            )
            sprite = identifier_sprite_rect(t_idx, identifier_tile_width(search))
            if _paste(sheet, binary, source, sprite):
                mappings.append(SpriteMapping(
                    ticket_index=t_idx,
                    row_index=last_row,
                    col_index=ID_MARKER,
                    kind=KIND_IDENTIFIER,
                    sprite_rect=sprite,
                    source_rect=search,
                ))
                protected.append(sprite)

    sheet = clean_binary(sheet, protected, iterations=CLEAN_ITERATIONS)

    logger.debug("Composite sheet %dx%d with %d sprites for %d tickets",
                 sheet.shape[1], sheet.shape[0], len(mappings), len(tickets))
    return sheet, mappings
