"""Form detection stage.

Finds form regions on each enhanced page, locates the elements inside every
region, and refines them with a sparse OCR pass over the form crop.
"""

from collections.abc import Callable
from types import TracebackType

import cv2
import numpy as np

from src.ocr.engine_pool import EnginePool, OCREngine
from src.ocr.tesseract_engine import OCRWord, TesseractEngine
from src.pipeline.exceptions import EngineInitError
from src.pipeline.models import DetectedElement, DetectedForm, PageImage
from src.utils.config import DetectionConfig, OCRConfig
from src.utils.logger import StageTimer, get_logger
from src.utils.metrics import MetricsSnapshot, StageMetrics

from .context import calculate_form_confidence, refine_element
from .elements import detect_elements
from .regions import find_form_regions

logger = get_logger(__name__)


class FormDetector:
    """Detects donation forms and their elements on page images.

    Args:
        config: Region and element thresholds.
        ocr_config: Settings for the sparse-text OCR engines.
        engine_factory: Builds one OCR engine. Defaults to a Tesseract
            engine in sparse-text mode with the detection whitelist.
    """

    def __init__(
        self,
        config: DetectionConfig | None = None,
        ocr_config: OCRConfig | None = None,
        engine_factory: Callable[[], OCREngine] | None = None,
    ) -> None:
        self.config = config or DetectionConfig()
        self.ocr_config = ocr_config or OCRConfig()
        self.engine_factory = engine_factory or self._default_engine
        self.pool: EnginePool | None = None
        self.metrics = StageMetrics()

    def _default_engine(self) -> TesseractEngine:
        return TesseractEngine(
            tesseract_cmd=self.ocr_config.tesseract_cmd,
            lang=self.ocr_config.default_lang,
            psm=self.ocr_config.detection_psm,
            whitelist=self.ocr_config.detection_whitelist,
        )

    @property
    def is_initialized(self) -> bool:
        return self.pool is not None and not self.pool.closed

    def initialize(self) -> None:
        """Check the CV backend and start the OCR engine pool.

        Calling this again after a successful initialization does nothing.

        Raises:
            EngineInitError: If OpenCV or the OCR engine is unusable.
        """
        if self.is_initialized:
            return
        try:
            cv2.getVersionString()
        except Exception as exc:
            raise EngineInitError(f"OpenCV is not usable: {exc}") from exc
        self.pool = EnginePool(self.engine_factory, size=self.ocr_config.pool_size)
        logger.info("Form detector initialized")

    def detect_forms(self, pages: list[PageImage]) -> list[DetectedForm]:
        """Detect forms on every page, in page order.

        A page that fails is logged and contributes no forms.

        Args:
            pages: Enhanced page images.

        Returns:
            Detected forms, ordered by page and then by region.

        Raises:
            EngineInitError: If the detector cannot be initialized.
        """
        self.initialize()

        forms: list[DetectedForm] = []
        with StageTimer(logger, "form detection") as timer:
            for page in pages:
                try:
                    forms.extend(self._detect_page(page))
                except Exception as exc:
                    logger.error(
                        "Form detection failed on page %d: %s", page.page_number, exc
                    )
                    self.metrics.record_error()

        self.metrics.record(
            len(forms),
            timer.elapsed_ms,
            confidences=[form.confidence for form in forms],
            items=sum(len(form.elements) for form in forms),
        )
        logger.info("Detected %d form(s) on %d page(s)", len(forms), len(pages))
        return forms

    def _detect_page(self, page: PageImage) -> list[DetectedForm]:
        forms = []
        regions = find_form_regions(page.image, self.config)
        for ordinal, region in enumerate(regions, start=1):
            form_image = region.crop(page.image)
            elements = detect_elements(form_image, self.config)
            elements = self._refine_with_ocr(form_image, elements)
            forms.append(
                DetectedForm(
                    form_id=f"form_{page.page_number}_{ordinal}",
                    page_number=page.page_number,
                    bounding_box=region,
                    confidence=calculate_form_confidence(elements),
                    image=form_image,
                    elements=tuple(elements),
                )
            )
        return forms

    def _refine_with_ocr(
        self, form_image: np.ndarray, elements: list[DetectedElement]
    ) -> list[DetectedElement]:
        if not elements:
            return elements

        words: tuple[OCRWord, ...] = ()
        try:
            with self.pool.checkout() as engine:
                words = engine.recognize(form_image).words
        except Exception as exc:
            logger.warning("OCR context pass failed, keeping unrefined elements: %s", exc)
            return elements

        return [
            refine_element(element, words, self.config.word_proximity)
            for element in elements
        ]

    def validate(self) -> bool:
        """Report whether the detector initialized successfully."""
        try:
            self.initialize()
        except EngineInitError as exc:
            logger.error("Detector validation failed: %s", exc)
            return False
        return True

    def get_metrics(self) -> MetricsSnapshot:
        """Snapshot of forms, elements, detection time, and errors."""
        return self.metrics.snapshot()

    def close(self) -> None:
        """Release the OCR engine pool."""
        if self.pool is not None:
            self.pool.close()
            self.pool = None

    def __enter__(self) -> "FormDetector":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
