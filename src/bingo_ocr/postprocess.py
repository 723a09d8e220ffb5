"""
Recognition post-processing.

Turns the recognizer's words back into ticket grids and identifiers using
the sprite map built by the composite assembler. Unreadable cells become 0
and unreadable identifiers become a generated placeholder, so one bad cell
never fails a ticket.
"""

import logging
import random
import re
from typing import List, Optional, Sequence

from .cells import KIND_IDENTIFIER, KIND_NUMBER
from .config import (
    CELL_TILE,
    COLS_PER_TICKET,
    CONFUSABLE_LETTERS,
    DIGIT_SUBSTITUTIONS,
    MAX_CELL_VALUE,
    MIN_CELL_VALUE,
    MIN_TEXT_HEIGHT_RATIO,
    PLACEHOLDER_ID_MAX,
    ROWS_PER_TICKET,
)
from .models import Rect, RecognizedWord, SpriteMapping, TicketResult

logger = logging.getLogger(__name__)

_LETTER_RUN = re.compile(r"[A-Za-zäöüÄÖÜß]{2,}")
_SLASH_LIKE = re.compile(r"[|\\I:.]")
_ID_PATTERN = re.compile(r"(\d{1,5})\s*/\s*(\d{1,5})")


def words_in(rect: Rect, words: Sequence[RecognizedWord]) -> List[RecognizedWord]:
    """Words whose bounding-box centre lies strictly inside `rect`."""
    return [w for w in words if rect.contains_point(w.bbox.center_x, w.bbox.center_y)]


def looks_like_text(text: str) -> bool:
    """
    True when a word is clearly stray text rather than a number.

    Letters that are commonly misread digits (I, L, O, S, B, Z, A, G, T) do
    not count against the word.
    """
    letters = sum(1 for ch in text if ch.isascii() and ch.isalpha())
    digits = sum(1 for ch in text if ch.isascii() and ch.isdigit())
    confusable = sum(1 for ch in text if ch.upper() in CONFUSABLE_LETTERS)
    return letters - confusable > digits and len(text) > 1


def parse_cell_text(text: str) -> int:
    """
    Reconstruct a cell value from raw recognized text.

    Args:
        text: Recognized word, e.g. "l6" or "2O"

    Returns:
        Value in 1..99, or 0 if the text is not a valid cell number
    """
    raw = text.strip()
    if not raw or looks_like_text(raw):
        return 0

    normalized = raw.replace("l", "1").upper()
    normalized = "".join(DIGIT_SUBSTITUTIONS.get(ch, ch) for ch in normalized)
    digits = re.sub(r"[^0-9]", "", normalized)
    if not digits:
        return 0

    value = int(digits)
    if MIN_CELL_VALUE <= value <= MAX_CELL_VALUE:
        return value
    return 0


def resolve_cell(mapping: SpriteMapping, words: Sequence[RecognizedWord]) -> int:
    """
    Pick the best word for one numeric sprite and parse it.

    The highest-confidence word inside the sprite wins. Words shorter than a
    third of the tile are stray marks and leave the cell blank.
    """
    candidates = words_in(mapping.sprite_rect, words)
    if not candidates:
        return 0

    best = max(candidates, key=lambda w: w.confidence)
    tile_h = mapping.sprite_rect.h or CELL_TILE
    if best.bbox.h / tile_h < MIN_TEXT_HEIGHT_RATIO:
        return 0

    return parse_cell_text(best.text)


def parse_ticket_id(text: str) -> Optional[str]:
    """
    Reconstruct a ticket identifier such as "160/400" from raw text.

    Process: strip printed words (runs of 2+ letters) → map slash look-alikes
    (| \\ I : .) to "/" → look for "<digits>/<digits>" → otherwise use the
    last two numeric tokens.

    Args:
        text: Space-joined words found in the identifier field

    Returns:
        Identifier string, or None if no numeric content was found
    """
    processed = _LETTER_RUN.sub("", text)
    processed = _SLASH_LIKE.sub("/", processed)

    match = _ID_PATTERN.search(processed)
    if match:
        return f"{match.group(1)}/{match.group(2)}"

    parts = re.sub(r"[^0-9\s]", " ", processed).split()
    if len(parts) >= 2:
        return f"{parts[-2]}/{parts[-1]}"

    return None


def placeholder_ticket_id(rng: Optional[random.Random] = None) -> str:
    """Generated identifier signalling that the real one could not be read."""
    rng = rng or random
    return f"ID-{rng.randint(0, PLACEHOLDER_ID_MAX)}"


def build_results(
    ticket_count: int,
    mappings: Sequence[SpriteMapping],
    words: Sequence[RecognizedWord],
    rng: Optional[random.Random] = None,
) -> List[TicketResult]:
    """
    Build one TicketResult per ticket from the sprite map and the words.

    Args:
        ticket_count: Number of tickets on the composite sheet
        mappings: Sprite map from build_composite
        words: Recognizer output in sheet coordinates
        rng: Random source for placeholder identifiers

    Returns:
        List of TicketResult, in ticket order
    """
    results = [
        TicketResult(
            ticket_id=placeholder_ticket_id(rng),
            grid=[[0] * COLS_PER_TICKET for _ in range(ROWS_PER_TICKET)],
        )
        for _ in range(ticket_count)
    ]

    for mapping in mappings:
        result = results[mapping.ticket_index]

        if mapping.kind == KIND_NUMBER:
            result.grid[mapping.row_index][mapping.col_index] = resolve_cell(mapping, words)

        elif mapping.kind == KIND_IDENTIFIER:
            id_words = words_in(mapping.sprite_rect, words)
            if not id_words:
                continue
            full_text = " ".join(w.text for w in id_words)
            ticket_id = parse_ticket_id(full_text)
            if ticket_id is not None:
                result.ticket_id = ticket_id
            else:
                logger.warning("Could not read identifier of ticket %d from %r",
                               mapping.ticket_index + 1, full_text)

    return results
