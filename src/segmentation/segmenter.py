"""Field segmentation stage.

Cuts every detected element out of its form image with a small margin and
conditions the crop for OCR.
"""

import cv2

from src.pipeline.models import DetectedElement, DetectedForm, FieldSegment, SegmentedForm
from src.utils.config import SegmentationConfig
from src.utils.logger import StageTimer, get_logger
from src.utils.metrics import MetricsSnapshot, StageMetrics

from .conditioning import condition_field

logger = get_logger(__name__)


class Segmenter:
    """Splits detected forms into conditioned field segments.

    Args:
        config: Padding and conditioning settings.
    """

    def __init__(self, config: SegmentationConfig | None = None) -> None:
        self.config = config or SegmentationConfig()
        self.metrics = StageMetrics()

    def segment_form_fields(self, forms: list[DetectedForm]) -> list[SegmentedForm]:
        """Segment every form, one output per input in the same order.

        Args:
            forms: Forms from the detector.

        Returns:
            Segmented forms. A form that fails entirely is returned with no
            segments, zero confidence and ``error`` set.
        """
        results = []
        for form in forms:
            with StageTimer(logger, f"segment {form.form_id}") as timer:
                try:
                    segmented = self._segment_form(form)
                except Exception as exc:
                    logger.error("Segmentation failed for %s: %s", form.form_id, exc)
                    self.metrics.record_error()
                    segmented = SegmentedForm(
                        form_id=form.form_id,
                        page_number=form.page_number,
                        confidence=0.0,
                        error=f"Segmentation failed: {exc}",
                    )
            self.metrics.record(1, timer.elapsed_ms, items=len(segmented.segments))
            results.append(segmented)

        logger.info("Segmented %d form(s)", len(results))
        return results

    def _segment_form(self, form: DetectedForm) -> SegmentedForm:
        segments = []
        for element in form.elements:
            try:
                segments.append(self._segment_element(form, element))
            except Exception as exc:
                logger.warning(
                    "Dropping %s element in %s: %s",
                    element.element_type,
                    form.form_id,
                    exc,
                )
                self.metrics.record_error()

        return SegmentedForm(
            form_id=form.form_id,
            page_number=form.page_number,
            confidence=form.confidence,
            segments=tuple(segments),
            form_image=form.image,
        )

    def _segment_element(self, form: DetectedForm, element: DetectedElement) -> FieldSegment:
        box = element.bounding_box.padded(self.config.padding)
        crop = box.crop(form.image)
        image = condition_field(
            crop, element.element_type, amount_scale=self.config.amount_upscale
        )
        return FieldSegment(
            field_id=f"{form.form_id}_{element.label or element.element_type}",
            field_type=element.element_type,
            label=element.label,
            bounding_box=box,
            image=image,
            confidence=element.confidence,
            preprocessed=True,
        )

    def validate(self) -> bool:
        """Check that the OpenCV primitives used for conditioning exist."""
        required = ("cvtColor", "threshold", "adaptiveThreshold", "morphologyEx", "resize")
        missing = [name for name in required if not hasattr(cv2, name)]
        if missing:
            logger.error("OpenCV is missing %s", ", ".join(missing))
            return False
        return True

    def get_metrics(self) -> MetricsSnapshot:
        """Snapshot of forms and fields segmented, timing, and errors."""
        return self.metrics.snapshot()
