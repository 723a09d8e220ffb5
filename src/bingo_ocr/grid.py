"""
Grid segmentation functions.

This module handles:
- Clustering detected target squares into rows
- Grouping rows into 3-row tickets, including touching tickets
- Interpolating a complete 3x6 cell layout per ticket
- Rendering the validation overlay
"""

import logging
import math
from typing import List, Sequence

import cv2
import numpy as np

from .config import (
    CELL_MATCH_RATIO,
    COLS_PER_TICKET,
    COLUMN_MERGE_RATIO,
    COLUMN_STEP_RATIO,
    DEFAULT_CELL_SIZE,
    ROW_MATCH_RATIO,
    ROWS_PER_TICKET,
    TICKET_GAP_RATIO,
)
from .models import InterpolatedGrid, Rect, Row, Segmentation, TicketCandidate

logger = logging.getLogger(__name__)


def cluster_rows(components: Sequence[Rect]) -> List[Row]:
    """
    Cluster components into horizontal rows.

    A component joins the first row whose vertical centre lies within half a
    row height of its own centre, otherwise it opens a new row.

    Args:
        components: Detected target squares, in any order

    Returns:
        Rows in order of creation, each with its cells sorted by x
    """
    rows: List[Row] = []

    for comp in sorted(components, key=lambda c: c.y):
        match = None
        for row in rows:
            row_center = row.y + row.h / 2
            if abs(comp.center_y - row_center) < row.h * ROW_MATCH_RATIO:
                match = row
                break

        if match is not None:
            match.cells.append(comp)
        else:
            rows.append(Row(y=comp.y, h=comp.h, cells=[comp]))

    for row in rows:
        row.cells.sort(key=lambda c: c.x)

    return rows


def chunk_tickets(rows: Sequence[Row]):
    """
    Split a vertical sequence of rows into groups of three.

    Rows closer than 0.2 row heights are treated as one run. A run is cut
    into consecutive groups of exactly three rows, which recovers several
    tickets photographed touching each other. Leftover rows are dropped.

    Args:
        rows: Rows from cluster_rows

    Returns:
        Tuple of (groups, dropped_rows)
    """
    groups: List[List[Row]] = []
    dropped = 0
    run: List[Row] = []

    def flush():
        nonlocal dropped
        chunks = len(run) // ROWS_PER_TICKET
        for k in range(chunks):
            groups.append(run[k * ROWS_PER_TICKET:(k + 1) * ROWS_PER_TICKET])
        dropped += len(run) - chunks * ROWS_PER_TICKET

    for row in sorted(rows, key=lambda r: r.y):
        if run:
            prev = run[-1]
            gap = row.y - (prev.y + prev.h)
            if gap >= row.h * TICKET_GAP_RATIO:
                flush()
                run = []
        run.append(row)

    flush()
    return groups, dropped


def _cluster_columns(cells: Sequence[Rect], avg_w: float) -> List[float]:
    """Greedy 1-D clustering of cell x positions with running-mean centres."""
    columns: List[float] = []
    ordered = sorted(cells, key=lambda c: c.x)
    if not ordered:
        return columns

    center = float(ordered[0].x)
    count = 1
    for cell in ordered[1:]:
        if cell.x - center < avg_w * COLUMN_MERGE_RATIO:
            center = (center * count + cell.x) / (count + 1)
            count += 1
        else:
            columns.append(center)
            center = float(cell.x)
            count = 1
    columns.append(center)
    return columns


def interpolate_grid(rows: Sequence[Row]) -> InterpolatedGrid:
    """
    Build a complete 3x6 layout from possibly incomplete rows.

    Process: pool cell sizes → cluster x positions into column centres →
    extend to six columns with evenly spaced synthetic ones → per row and
    column reuse a detected cell near the centre or synthesise one.

    Args:
        rows: The three rows of one ticket

    Returns:
        InterpolatedGrid with exactly len(rows) x 6 cells
    """
    all_cells = [c for row in rows for c in row.cells]
    if all_cells:
        avg_w = sum(c.w for c in all_cells) / len(all_cells)
        avg_h = sum(c.h for c in all_cells) / len(all_cells)
    else:
        avg_w = avg_h = float(DEFAULT_CELL_SIZE)

    columns = _cluster_columns(all_cells, avg_w)
    if not columns:
        columns = [0.0]
    while len(columns) < COLS_PER_TICKET:
        columns.append(columns[-1] + avg_w * COLUMN_STEP_RATIO)
    columns = sorted(columns)[:COLS_PER_TICKET]

    grid_rows = []
    for row in rows:
        cells = []
        for col_x in columns:
            existing = next(
                (c for c in row.cells if abs(c.x - col_x) < avg_w * CELL_MATCH_RATIO),
                None,
            )
            if existing is not None:
                cells.append(existing)
            else:
                cells.append(Rect(
                    x=math.floor(col_x),
                    y=math.floor(row.y),
                    w=math.floor(avg_w),
                    h=math.floor(avg_h),
                ))
        grid_rows.append(cells)

    return InterpolatedGrid(
        rows=grid_rows,
        column_centers=columns,
        avg_width=avg_w,
        avg_height=avg_h,
    )


def segment_tickets(components: Sequence[Rect]) -> Segmentation:
    """
    Complete segmentation: rows → tickets → interpolated grids.

    Args:
        components: Output of find_target_squares

    Returns:
        Segmentation with one TicketCandidate per detected ticket
    """
    rows = cluster_rows(components)
    groups, dropped = chunk_tickets(rows)

    tickets = [TicketCandidate(rows=group, grid=interpolate_grid(group)) for group in groups]

    if dropped:
        logger.warning("Dropped %d row(s) that did not form a complete ticket", dropped)
    logger.debug("Segmented %d components into %d rows and %d tickets",
                 len(components), len(rows), len(tickets))

    return Segmentation(tickets=tickets, dropped_rows=dropped)


def _blend_rect(image: np.ndarray, pt1, pt2, color, alpha: float) -> None:
    """Fill a rectangle with a translucent colour, in place."""
    layer = image.copy()
    cv2.rectangle(layer, pt1, pt2, color, -1)
    cv2.addWeighted(layer, alpha, image, 1 - alpha, 0, dst=image)


def draw_ticket_overlay(binary: np.ndarray, tickets: Sequence[TicketCandidate]) -> np.ndarray:
    """
    Create the preview overlay for the fast validation path.

    Each ticket gets a translucent green box, a green border and a
    "Ticket #n" label. Without tickets the whole frame is tinted red.

    Args:
        binary: Binary image (uint8, 0/255)
        tickets: Detected tickets

    Returns:
        BGR image with the overlay drawn
    """
    overlay = cv2.cvtColor(binary, cv2.COLOR_GRAY2BGR)
    height, width = binary.shape[:2]

    if not tickets:
        _blend_rect(overlay, (0, 0), (width, height), (0, 0, 255), 0.2)
        return overlay

    font = cv2.FONT_HERSHEY_SIMPLEX
    for idx, ticket in enumerate(tickets):
        x1, y1, x2, y2 = ticket.bounds()
        pt1 = (x1 - 10, y1 - 10)
        pt2 = (x2 + 10, y2 + 10)

        _blend_rect(overlay, pt1, pt2, (0, 255, 0), 0.2)
        cv2.rectangle(overlay, pt1, pt2, (0, 255, 0), 4)

        label = f"Ticket #{idx + 1}"
        (text_w, text_h), _ = cv2.getTextSize(label, font, 1.0, 2)
        _blend_rect(overlay, (x1 - 10, y1 - 45), (x1 + text_w + 10, y1 - 10), (0, 0, 0), 0.7)
        cv2.putText(overlay, label, (x1, y1 - 18), font, 1.0, (0, 255, 0), 2)

    return overlay
