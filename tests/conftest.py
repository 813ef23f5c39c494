"""Shared test fixtures for the donation form OCR test suite."""

import io
from collections.abc import Callable
from pathlib import Path

import cv2
import numpy as np
import pytest
from PIL import Image

from src.ocr.tesseract_engine import OCRResult, OCRWord
from src.pipeline.models import BoundingBox


class FakeOCREngine:
    """OCR engine returning scripted results in call order.

    Once the script runs out, the last entry is repeated. Entries may be an
    ``OCRResult``, a plain string (confidence 90, no words), or an exception
    instance to raise.
    """

    def __init__(self, script: list | None = None, available: bool = True) -> None:
        self.script = list(script or [""])
        self.available = available
        self.calls = 0

    def recognize(self, image: np.ndarray) -> OCRResult:
        entry = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, OCRResult):
            return entry
        return OCRResult(text=entry, confidence=90.0, words=())

    def is_available(self) -> bool:
        return self.available


def fake_engine_factory(
    script: list | None = None, available: bool = True
) -> Callable[[], FakeOCREngine]:
    """Build a factory that always hands out the same fake engine."""
    engine = FakeOCREngine(script, available)
    return lambda: engine


def png_bytes(image: np.ndarray) -> bytes:
    """Encode an array as PNG bytes."""
    buffer = io.BytesIO()
    Image.fromarray(image).save(buffer, format="PNG")
    return buffer.getvalue()


def draw_ruled_form(
    page_height: int = 1200, page_width: int = 1000
) -> np.ndarray:
    """Draw a white page holding one bordered, ruled form."""
    page = np.full((page_height, page_width, 3), 255, dtype=np.uint8)
    cv2.rectangle(page, (100, 100), (900, 800), (0, 0, 0), 3)
    for y in range(125, 800, 25):
        cv2.line(page, (100, y), (900, y), (0, 0, 0), 2)
    return page


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic RGB test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def blank_page() -> np.ndarray:
    """A white page with nothing on it."""
    return np.full((600, 400, 3), 255, dtype=np.uint8)


@pytest.fixture
def ruled_form_page() -> np.ndarray:
    return draw_ruled_form()


@pytest.fixture
def ocr_word() -> Callable[..., OCRWord]:
    """Factory for OCR words positioned by their top-left corner."""

    def _make(text: str, x: int, y: int, width: int = 40, height: int = 20) -> OCRWord:
        return OCRWord(
            text=text,
            bbox=BoundingBox(x=x, y=y, width=width, height=height),
            confidence=90.0,
        )

    return _make


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
