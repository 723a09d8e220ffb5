"""
OCR module wrapping the Tesseract text-recognition engine.

The engine is created lazily once per process and reused. Its
configuration (character whitelist, single-block page segmentation) is
fixed at construction. Recognition runs on a worker thread so the caller
can give up after a bounded wait.
"""

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from functools import partial
from typing import List, Optional

import numpy as np
import pytesseract

from .config import RECOGNITION_TIMEOUT_S, TESSERACT_PSM, TESSERACT_WHITELIST
from .errors import RecognitionTimeout
from .models import Rect, RecognizedWord

logger = logging.getLogger(__name__)

# Global cache for the recognition engine
_engine_cache = {}
_engine_lock = threading.Lock()


def get_engine() -> "TesseractEngine":
    """
    Get the process-wide recognition engine.

    Returns:
        TesseractEngine instance

    Note:
        The engine is created on first use under a lock and then reused,
        so concurrent callers never initialise it twice.
    """
    with _engine_lock:
        if "tesseract" not in _engine_cache:
            _engine_cache["tesseract"] = TesseractEngine()
        return _engine_cache["tesseract"]


def build_tesseract_config(psm: int = TESSERACT_PSM, whitelist: str = TESSERACT_WHITELIST) -> str:
    """Command-line config string for pytesseract."""
    # pytesseract splits the config with shlex, so quote the whitelist
    escaped = whitelist.replace("\\", "\\\\").replace('"', '\\"')
    return f'--psm {psm} -c "tessedit_char_whitelist={escaped}"'


class TesseractEngine:
    """
    Word-level recognizer backed by pytesseract.

    Access is serialised: Tesseract jobs of one engine never overlap.
    """

    def __init__(self, psm: int = TESSERACT_PSM, whitelist: str = TESSERACT_WHITELIST):
        self.config = build_tesseract_config(psm, whitelist)
        self._lock = threading.Lock()
        logger.debug("Tesseract engine initialised with config %s", self.config)

    def recognize(self, image: np.ndarray, timeout: float = 0) -> List[RecognizedWord]:
        """
        Recognize words in an image.

        Args:
            image: Grayscale or BGR image
            timeout: Seconds before the Tesseract process is killed (0 = none)

        Returns:
            List of RecognizedWord in image coordinates

        Raises:
            RecognitionTimeout: If Tesseract is killed by the timeout
        """
        with self._lock:
            try:
                data = pytesseract.image_to_data(
                    image,
                    config=self.config,
                    output_type=pytesseract.Output.DICT,
                    timeout=timeout,
                )
            except RuntimeError as e:
                # pytesseract reports a killed process as a RuntimeError
                if "timeout" in str(e).lower():
                    raise RecognitionTimeout(f"Tesseract timed out after {timeout}s") from e
                raise

        return words_from_data(data)


def words_from_data(data: dict) -> List[RecognizedWord]:
    """
    Convert pytesseract image_to_data output into RecognizedWord objects.

    Entries without text or with a negative confidence (layout rows) are
    skipped.
    """
    words = []
    for text, conf, left, top, width, height in zip(
        data.get("text", []),
        data.get("conf", []),
        data.get("left", []),
        data.get("top", []),
        data.get("width", []),
        data.get("height", []),
    ):
        text = str(text).strip()
        if not text:
            continue
        try:
            confidence = float(conf)
        except (TypeError, ValueError):
            continue
        if confidence < 0:
            continue

        words.append(RecognizedWord(
            text=text,
            bbox=Rect(int(left), int(top), int(width), int(height)),
            confidence=confidence,
        ))
    return words


def recognize_with_timeout(
    image: np.ndarray,
    engine: Optional[object] = None,
    timeout: float = RECOGNITION_TIMEOUT_S,
) -> List[RecognizedWord]:
    """
    Run the recognizer and wait at most `timeout` seconds for it.

    Args:
        image: Composite sheet to recognize
        engine: Object with a recognize(image) method (if None, uses default)
        timeout: Maximum wait in seconds (default: 60)

    Returns:
        Recognized words

    Raises:
        RecognitionTimeout: If the engine does not answer in time
    """
    if engine is None:
        engine = get_engine()

    if isinstance(engine, TesseractEngine):
        task = partial(engine.recognize, image, timeout=timeout)
    else:
        task = partial(engine.recognize, image)

    future = Future()

    def run():
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(task())
        except Exception as e:
            future.set_exception(e)

    # A stuck job is abandoned on timeout
    worker = threading.Thread(target=run, name="bingo-ocr-recognizer", daemon=True)
    worker.start()

    try:
        words = future.result(timeout=timeout)
    except FuturesTimeoutError as e:
        raise RecognitionTimeout(f"Text recognition did not finish within {timeout}s") from e

    logger.debug("Recognizer returned %d words", len(words))
    return words


def get_tesseract_version() -> str:
    """Human-readable Tesseract version for diagnostics."""
    return f"Tesseract {pytesseract.get_tesseract_version()}"


def test_tesseract_installation() -> bool:
    """Check that the Tesseract binary can be found and executed."""
    try:
        pytesseract.get_tesseract_version()
    except (pytesseract.TesseractNotFoundError, OSError) as e:
        logger.warning("Tesseract installation check failed: %s", e)
        return False
    return True
