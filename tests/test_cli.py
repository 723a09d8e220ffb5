"""
Tests for the command line entry point (validation stage only).
"""

import json
import threading

import pytest
import cv2
import numpy as np
from pathlib import Path

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from bingo_ocr import cli, ocr
from bingo_ocr.cells import cell_sprite_rect, identifier_sprite_rect
from bingo_ocr.models import Rect, RecognizedWord
from ticket_images import make_ticket_raster


def write_raster(path, raster):
    cv2.imwrite(str(path), cv2.cvtColor(raster, cv2.COLOR_RGBA2BGR))
    return path


def run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["bingo-ocr", *args])
    with pytest.raises(SystemExit) as exc:
        cli.main()
    return exc.value.code


class TestValidateOnly:

    def test_tickets_found(self, tmp_path, monkeypatch, capsys):
        image = write_raster(tmp_path / "tickets.png", make_ticket_raster(tickets=2))
        out = tmp_path / "out"

        code = run_cli(monkeypatch, "--image", str(image), "--out", str(out), "--validate-only")

        assert code == 0
        assert (out / "tickets_overlay.png").exists()
        assert "2 ticket(s) detected." in capsys.readouterr().out

    def test_no_tickets(self, tmp_path, monkeypatch):
        blank = np.full((100, 100, 4), 255, dtype=np.uint8)
        image = write_raster(tmp_path / "blank.png", blank)

        code = run_cli(monkeypatch, "--image", str(image), "--out", str(tmp_path / "out"))

        assert code == 2
        assert (tmp_path / "out" / "blank_overlay.png").exists()

    def test_missing_file(self, tmp_path, monkeypatch):
        code = run_cli(monkeypatch, "--image", str(tmp_path / "nope.jpg"), "--out", str(tmp_path))
        assert code == 1

    def test_unreadable_file(self, tmp_path, monkeypatch):
        image = tmp_path / "broken.jpg"
        image.write_bytes(b"not a jpeg")

        code = run_cli(monkeypatch, "--image", str(image), "--out", str(tmp_path / "out"))

        assert code == 1


class FakeEngine:

    def __init__(self, words=()):
        self.words = list(words)

    def recognize(self, image):
        return self.words


class StuckEngine:

    def __init__(self):
        self.release = threading.Event()

    def recognize(self, image):
        self.release.wait(5)
        return []


def word_at(rect, text, width=60, height=120, dx=0):
    x = int(rect.center_x - width / 2) + dx
    y = int(rect.center_y - height / 2)
    return RecognizedWord(text, Rect(x, y, width, height), 90.0)


@pytest.fixture
def tesseract_ok(monkeypatch):
    monkeypatch.setattr(ocr, "test_tesseract_installation", lambda: True)
    monkeypatch.setattr(ocr, "get_tesseract_version", lambda: "Tesseract 5.3.0")


class TestFullAnalysis:

    def test_tickets_json_and_images(self, tmp_path, monkeypatch, tesseract_ok):
        image = write_raster(tmp_path / "tickets.png", make_ticket_raster(tickets=1, inked={(0, 0, 0)}))
        id_sprite = identifier_sprite_rect(0, 288)
        engine = FakeEngine([
            word_at(cell_sprite_rect(0, 0, 0), "16"),
            word_at(id_sprite, "160/400", width=100),
        ])
        monkeypatch.setattr(ocr, "get_engine", lambda: engine)
        out = tmp_path / "out"

        code = run_cli(monkeypatch, "--image", str(image), "--out", str(out), "--debug")

        assert code == 0
        assert (out / "tickets_overlay.png").exists()
        assert (out / "tickets_debug.png").exists()
        assert (out / "tickets_binary.png").exists()

        tickets = json.loads((out / "tickets_tickets.json").read_text())
        expected_grid = [[0] * 6 for _ in range(3)]
        expected_grid[0][0] = 16
        assert tickets == [{"ticket_id": "160/400", "grid": expected_grid}]

    def test_binary_image_only_with_debug(self, tmp_path, monkeypatch, tesseract_ok):
        image = write_raster(tmp_path / "tickets.png", make_ticket_raster(tickets=1))
        monkeypatch.setattr(ocr, "get_engine", lambda: FakeEngine())
        out = tmp_path / "out"

        code = run_cli(monkeypatch, "--image", str(image), "--out", str(out))

        assert code == 0
        assert (out / "tickets_debug.png").exists()
        assert not (out / "tickets_binary.png").exists()

    def test_recognition_timeout(self, tmp_path, monkeypatch, tesseract_ok):
        image = write_raster(tmp_path / "tickets.png", make_ticket_raster(tickets=1))
        engine = StuckEngine()
        monkeypatch.setattr(ocr, "get_engine", lambda: engine)
        out = tmp_path / "out"

        try:
            code = run_cli(monkeypatch, "--image", str(image), "--out", str(out), "--timeout", "0.2")
        finally:
            engine.release.set()

        assert code == 3
        assert not (out / "tickets_tickets.json").exists()

    def test_missing_tesseract(self, tmp_path, monkeypatch):
        image = write_raster(tmp_path / "tickets.png", make_ticket_raster(tickets=1))
        monkeypatch.setattr(ocr, "test_tesseract_installation", lambda: False)
        out = tmp_path / "out"

        code = run_cli(monkeypatch, "--image", str(image), "--out", str(out))

        assert code == 3
        assert (out / "tickets_overlay.png").exists()
        assert not (out / "tickets_tickets.json").exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
