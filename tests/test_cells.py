"""
Tests for the ink test and composite sheet assembly.
"""

import pytest
import numpy as np
from pathlib import Path

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from bingo_ocr import cells
from bingo_ocr.cells import (
    DEFAULT_SHEET_WIDTH,
    KIND_IDENTIFIER,
    KIND_NUMBER,
    TICKET_BLOCK_HEIGHT,
    build_composite,
    cell_crop_rect,
    cell_sprite_rect,
    has_ink,
    identifier_search_rect,
    identifier_sprite_rect,
    identifier_tile_width,
)
from bingo_ocr.config import ID_MARKER
from bingo_ocr.detect import find_target_squares
from bingo_ocr.errors import RenderSurfaceFailure
from bingo_ocr.grid import segment_tickets
from bingo_ocr.models import Rect
from bingo_ocr.preprocess import binarize
from ticket_images import make_ticket_raster


def crop_with_block(block_h, block_w, size=100):
    crop = np.full((size, size), 255, dtype=np.uint8)
    crop[40:40 + block_h, 40:40 + block_w] = 0
    return crop


def segmented(tickets=1, inked=()):
    classes, binary = binarize(make_ticket_raster(tickets=tickets, inked=inked))
    return binary, segment_tickets(find_target_squares(classes)).tickets


class TestHasInk:

    def test_above_threshold(self):
        # A solid 12x17 block has 10x15 = 150 dense pixels = 1.5%
        assert has_ink(crop_with_block(12, 17))

    def test_below_threshold(self):
        # A solid 7x12 block has 5x10 = 50 dense pixels = 0.5%
        assert not has_ink(crop_with_block(7, 12))

    def test_scattered_noise_is_not_content(self):
        crop = np.full((100, 100), 255, dtype=np.uint8)
        crop[::4, ::4] = 0
        assert not has_ink(crop)

    def test_blank_and_empty(self):
        assert not has_ink(np.full((30, 30), 255, dtype=np.uint8))
        assert not has_ink(np.zeros((0, 0), dtype=np.uint8))


class TestLayout:

    def test_cell_crop_rect(self):
        crop = cell_crop_rect(Rect(100, 200, 50, 50))
        assert crop == Rect(116, 216, 18, 18)

    def test_sprite_positions(self):
        assert cell_sprite_rect(0, 0, 0) == Rect(400, 400, 160, 160)
        assert cell_sprite_rect(1, 2, 5) == Rect(400 + 5 * 560, TICKET_BLOCK_HEIGHT + 400 + 2 * 560, 160, 160)
        assert identifier_sprite_rect(0, 288) == Rect(400 + 6 * 560, 400 + 2 * 560, 288, 160)

    def test_identifier_search_rect(self):
        search = identifier_search_rect(Rect(290, 132, 40, 40), 600, 400)
        assert search == Rect(342, 132, 72, 40)
        assert identifier_tile_width(search) == 288

    def test_identifier_search_rect_is_clamped(self):
        search = identifier_search_rect(Rect(500, 380, 40, 40), 600, 400)
        assert search.right <= 600
        assert search.bottom <= 400
        assert search == Rect(552, 380, 48, 20)


class TestBuildComposite:

    def test_only_inked_cells_are_mapped(self):
        inked = {(0, 0, 0), (0, 1, 3), (0, 2, 5)}
        binary, tickets = segmented(inked=inked)

        sheet, mappings = build_composite(binary, tickets)

        numbers = [m for m in mappings if m.kind == KIND_NUMBER]
        assert {(m.ticket_index, m.row_index, m.col_index) for m in numbers} == inked
        for m in numbers:
            assert m.sprite_rect == cell_sprite_rect(m.ticket_index, m.row_index, m.col_index)

    def test_identifier_is_mapped(self):
        binary, tickets = segmented()

        sheet, mappings = build_composite(binary, tickets)

        ids = [m for m in mappings if m.kind == KIND_IDENTIFIER]
        assert len(ids) == 1
        assert ids[0].col_index == ID_MARKER
        assert ids[0].row_index == 2
        assert ids[0].sprite_rect == identifier_sprite_rect(0, 288)

    def test_sheet_size(self):
        binary, tickets = segmented(inked={(0, 0, 0)})

        sheet, _ = build_composite(binary, tickets)

        assert sheet.dtype == np.uint8
        assert sheet.shape == (TICKET_BLOCK_HEIGHT, 6 * 560 + 288 + 3 * 400)
        assert sheet.shape[1] > DEFAULT_SHEET_WIDTH

    def test_sheet_is_binary_and_holds_the_digit(self):
        binary, tickets = segmented(inked={(0, 0, 0)})

        sheet, _ = build_composite(binary, tickets)

        assert set(np.unique(sheet)) <= {0, 255}
        tile = sheet[400:560, 400:560]
        assert np.count_nonzero(tile == 0) > 0
        # Padding between tiles stays blank
        assert np.all(sheet[:400, :] == 255)

    def test_no_tickets(self):
        binary = np.full((50, 50), 255, dtype=np.uint8)
        sheet, mappings = build_composite(binary, [])
        assert mappings == []
        assert sheet.shape[0] >= 1

    def test_allocation_failure(self, monkeypatch):
        binary, tickets = segmented()

        def fail(*args, **kwargs):
            raise MemoryError("out of memory")

        monkeypatch.setattr(cells.np, "full", fail)
        with pytest.raises(RenderSurfaceFailure):
            build_composite(binary, tickets)

    @pytest.mark.slow
    def test_three_tickets_stack_vertically(self):
        inked = {(t, 1, 1) for t in range(3)}
        binary, tickets = segmented(tickets=3, inked=inked)

        sheet, mappings = build_composite(binary, tickets)

        assert sheet.shape[0] == 3 * TICKET_BLOCK_HEIGHT
        numbers = sorted(m.sprite_rect.y for m in mappings if m.kind == KIND_NUMBER)
        assert numbers == [cell_sprite_rect(t, 1, 1).y for t in range(3)]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
