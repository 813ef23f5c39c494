"""End-to-end donation form OCR pipeline.

Runs a document through Preprocess -> Detect -> Segment -> Extract and
returns one validated record per detected form.
"""

from collections.abc import Callable
from types import TracebackType

import numpy as np

from src.detection.detector import FormDetector
from src.extraction.extractor import Extractor
from src.ocr.engine_pool import OCREngine
from src.pipeline.models import ExtractedFormData, PageImage, RawDocument
from src.preprocessing.pipeline import Preprocessor
from src.segmentation.segmenter import Segmenter
from src.utils.config import AppConfig
from src.utils.logger import StageTimer, get_logger
from src.utils.metrics import MetricsSnapshot, StageMetrics

logger = get_logger(__name__)


class OCRPipeline:
    """Orchestrates the four pipeline stages.

    Stages can be injected for testing; by default each one is built from
    ``config``. Engine factories, when given, are passed to the default
    detector and extractor.

    Args:
        config: Application configuration.
        preprocessor: Page preprocessing stage.
        detector: Form detection stage.
        segmenter: Field segmentation stage.
        extractor: Field extraction stage.
        detection_engine_factory: OCR engine factory for the detector.
        extraction_engine_factory: OCR engine factory for the extractor.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        preprocessor: Preprocessor | None = None,
        detector: FormDetector | None = None,
        segmenter: Segmenter | None = None,
        extractor: Extractor | None = None,
        detection_engine_factory: Callable[[], OCREngine] | None = None,
        extraction_engine_factory: Callable[[], OCREngine] | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.preprocessor = preprocessor or Preprocessor(
            self.config.preprocessing, self.config.ocr
        )
        self.detector = detector or FormDetector(
            self.config.detection, self.config.ocr, detection_engine_factory
        )
        self.segmenter = segmenter or Segmenter(self.config.segmentation)
        self.extractor = extractor or Extractor(
            self.config.extraction, self.config.ocr, extraction_engine_factory
        )
        self.metrics = StageMetrics()

    def process_document(self, document: RawDocument) -> list[ExtractedFormData]:
        """Process an uploaded document.

        Args:
            document: Uploaded PDF or image.

        Returns:
            One record per detected form, ordered by page and position.
            A document with no detectable forms yields an empty list.

        Raises:
            UnsupportedFormatError: If the MIME type is neither PDF nor image.
            PreprocessingError: If the image cannot be decoded.
            EngineInitError: If the detector's OCR engine cannot start.
        """
        logger.info("Processing document %s (%s)", document.file_name, document.mime_type)
        with StageTimer(logger, f"document {document.file_name}") as timer:
            try:
                pages = self.preprocessor.process_document(document)
                results = self._run_stages(pages)
            except Exception:
                self.metrics.record_error()
                raise

        self.metrics.record(1, timer.elapsed_ms, items=len(results))
        logger.info(
            "Extracted %d form(s) from %s in %.1f ms",
            len(results),
            document.file_name,
            timer.elapsed_ms,
        )
        return results

    def process_page(self, image: np.ndarray, page_number: int = 1) -> list[ExtractedFormData]:
        """Enhance one page image and run the remaining stages on it.

        Args:
            image: Raw page pixels.
            page_number: 1-based page number used in form ids.

        Returns:
            One record per form detected on the page.
        """
        page = self.preprocessor.enhance_image(PageImage.from_array(image, page_number))
        return self._run_stages([page])

    def extract_whole_pages(self, document: RawDocument) -> list[ExtractedFormData]:
        """Parse every page as a single form, skipping detection and segmentation.

        Args:
            document: Uploaded PDF or image.

        Returns:
            One record per page, numbered by page.
        """
        pages = self.preprocessor.process_document(document)
        results = []
        for page in pages:
            record = self.extractor.extract_from_real_image(page.image)
            results.append(
                ExtractedFormData(
                    form_number=page.page_number,
                    confidence=record.confidence,
                    fields=record.fields,
                    issues=record.issues,
                )
            )
        return results

    def _run_stages(self, pages: list[PageImage]) -> list[ExtractedFormData]:
        forms = self.detector.detect_forms(pages)
        segmented = self.segmenter.segment_form_fields(forms)
        return self.extractor.extract_form_data(segmented)

    def validate(self) -> bool:
        """Check every stage. Any stage failing, or raising, fails the pipeline."""
        checks = {
            "preprocessor": self.preprocessor.validate,
            "detector": self.detector.validate,
            "segmenter": self.segmenter.validate,
            "extractor": self.extractor.validate,
        }
        results = {}
        for name, check in checks.items():
            try:
                results[name] = bool(check())
            except Exception as exc:
                logger.error("Validation of %s raised: %s", name, exc)
                results[name] = False

        logger.info("Pipeline validation: %s", results)
        return all(results.values())

    def get_performance_metrics(self) -> dict[str, MetricsSnapshot]:
        """Metrics snapshots of the pipeline and each stage."""
        return {
            "pipeline": self.metrics.snapshot(),
            "preprocessor": self.preprocessor.get_metrics(),
            "detector": self.detector.get_metrics(),
            "segmenter": self.segmenter.get_metrics(),
            "extractor": self.extractor.get_metrics(),
        }

    def close(self) -> None:
        """Release the OCR engines held by the detector and extractor."""
        self.detector.close()
        self.extractor.close()

    def __enter__(self) -> "OCRPipeline":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
