"""Bounded pool of OCR engines.

An OCR engine is an expensive, non-reentrant resource. Stages check one out
for the duration of a recognition and the pool takes it back afterwards,
including when recognition raises.
"""

import queue
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Protocol

import numpy as np

from src.ocr.tesseract_engine import OCRResult
from src.pipeline.exceptions import EngineInitError
from src.utils.logger import get_logger

logger = get_logger(__name__)


class OCREngine(Protocol):
    """What the pipeline needs from an OCR engine."""

    def recognize(self, image: np.ndarray) -> OCRResult: ...

    def is_available(self) -> bool: ...


class EnginePool:
    """Fixed-size pool of OCR engines.

    Args:
        factory: Zero-argument callable building one engine.
        size: Number of engines to create.

    Raises:
        EngineInitError: If an engine cannot be built or reports that its
            backend is unavailable.
    """

    def __init__(self, factory: Callable[[], OCREngine], size: int = 1) -> None:
        if size < 1:
            raise ValueError(f"Pool size must be at least 1, got {size}")
        self._engines: queue.Queue[OCREngine] = queue.Queue(maxsize=size)
        self._closed = False
        for _ in range(size):
            try:
                engine = factory()
            except Exception as exc:
                raise EngineInitError(f"Could not create OCR engine: {exc}") from exc
            if not engine.is_available():
                raise EngineInitError("OCR engine backend is not available")
            self._engines.put(engine)
        logger.info("Initialized OCR engine pool with %d engine(s)", size)

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def checkout(self) -> Generator[OCREngine, None, None]:
        """Borrow an engine, blocking until one is free.

        Yields:
            An OCR engine, returned to the pool on exit.

        Raises:
            RuntimeError: If the pool has been closed.
        """
        if self._closed:
            raise RuntimeError("Engine pool is closed")
        engine = self._engines.get()
        try:
            yield engine
        finally:
            self._engines.put(engine)

    def available(self) -> int:
        """Number of engines currently idle in the pool."""
        return self._engines.qsize()

    def close(self) -> None:
        """Drop every idle engine and refuse further checkouts."""
        if self._closed:
            return
        self._closed = True
        while True:
            try:
                self._engines.get_nowait()
            except queue.Empty:
                break
        logger.info("Closed OCR engine pool")
