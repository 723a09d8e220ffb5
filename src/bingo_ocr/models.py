"""
Data structures shared by the pipeline stages.

Everything here is created per image and discarded once the ticket results
have been produced.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Tuple

import numpy as np


class PixelClass(IntEnum):
    """Per-pixel label produced by the binarizer."""
    INK = 0
    PAPER = 1


@dataclass(frozen=True)
class Rect:
    """Integer rectangle in pixel coordinates."""
    x: int
    y: int
    w: int
    h: int

    @property
    def right(self) -> int:
        return self.x + self.w

    @property
    def bottom(self) -> int:
        return self.y + self.h

    @property
    def center_x(self) -> float:
        return self.x + self.w / 2

    @property
    def center_y(self) -> float:
        return self.y + self.h / 2

    def contains_point(self, px: float, py: float) -> bool:
        """Strict interior test; points on the edge are outside."""
        return self.x < px < self.right and self.y < py < self.bottom

    def clip(self, width: int, height: int) -> "Rect":
        """Intersect with an image of the given size (may come back empty)."""
        x1 = min(max(self.x, 0), width)
        y1 = min(max(self.y, 0), height)
        x2 = min(max(self.right, 0), width)
        y2 = min(max(self.bottom, 0), height)
        return Rect(x1, y1, x2 - x1, y2 - y1)


@dataclass(frozen=True)
class Component(Rect):
    """Connected region believed to be a printed target square."""
    origin: PixelClass = PixelClass.PAPER


@dataclass
class Row:
    """Cells sharing a vertical band; y/h come from the first member."""
    y: int
    h: int
    cells: List[Rect] = field(default_factory=list)


@dataclass
class InterpolatedGrid:
    """Complete 3x6 layout of one ticket."""
    rows: List[List[Rect]]        # [row][col]
    column_centers: List[float]   # Strictly increasing, one per column
    avg_width: float
    avg_height: float


@dataclass
class TicketCandidate:
    """Three contiguous rows assigned to one physical ticket."""
    rows: List[Row]
    grid: InterpolatedGrid

    def bounds(self) -> Tuple[int, int, int, int]:
        """(x1, y1, x2, y2) covering every detected cell of the ticket."""
        xs = [c.x for r in self.rows for c in r.cells]
        rights = [c.right for r in self.rows for c in r.cells]
        return (min(xs), self.rows[0].y, max(rights), self.rows[-1].y + self.rows[-1].h)


@dataclass
class Segmentation:
    """Segmenter output, including how many rows were dropped."""
    tickets: List[TicketCandidate]
    dropped_rows: int = 0


@dataclass(frozen=True)
class SpriteMapping:
    """Links a location in the composite sheet to its ticket cell."""
    ticket_index: int
    row_index: int
    col_index: int               # ID_MARKER for the identifier field
    kind: str                    # "number" or "identifier"
    sprite_rect: Rect
    source_rect: Rect


@dataclass(frozen=True)
class RecognizedWord:
    """One word reported by the recognizer, in composite-sheet coordinates."""
    text: str
    bbox: Rect
    confidence: float


@dataclass
class TicketResult:
    """Final reading of one ticket; 0 marks a blank cell."""
    ticket_id: str
    grid: List[List[int]]


@dataclass
class ValidationResult:
    """Fast pre-check result used for the live preview."""
    is_valid: bool
    message: str
    ticket_count: int
    overlay_image: np.ndarray
    dropped_rows: int = 0


@dataclass
class AnalysisResult:
    """Full analysis result with the annotated composite sheet."""
    results: List[TicketResult]
    debug_raster: Optional[np.ndarray]
    dropped_rows: int = 0
