"""Field extraction stage.

Runs OCR over every field segment of a form and routes the text into the
donation record by field type, falling back to parsing the whole form image
when no segments survived. Every record is checked by the donation rules
engine before it is returned.
"""

from collections.abc import Callable
from dataclasses import fields as dataclass_fields
from dataclasses import replace
from types import TracebackType

import numpy as np

from src.ocr.engine_pool import EnginePool, OCREngine
from src.ocr.tesseract_engine import OCRResult, TesseractEngine
from src.payments.detection import detect_payment
from src.pipeline.models import (
    DonationFields,
    ElementType,
    ExtractedFormData,
    FieldSegment,
    SegmentedForm,
)
from src.preprocessing.pipeline import decode_image
from src.utils.config import ExtractionConfig, OCRConfig
from src.utils.logger import StageTimer, get_logger
from src.utils.metrics import MetricsSnapshot, StageMetrics
from src.validation.rules_engine import EMAIL_ISSUE, DonationRulesEngine

from .rule_extractor import RuleExtractor

logger = get_logger(__name__)

NO_FORM_CONTENT = "No field segments available and no form image"


def _count_fields(fields: DonationFields) -> int:
    """Number of top-level fields holding a non-default value."""
    default = DonationFields()
    return sum(
        getattr(fields, f.name) != getattr(default, f.name)
        for f in dataclass_fields(DonationFields)
    )


class Extractor:
    """Turns segmented forms into validated donation records.

    Args:
        config: Amount band and confidence threshold.
        ocr_config: Settings for the single-block OCR engines.
        engine_factory: Builds one OCR engine. Defaults to a Tesseract
            engine in single-block mode with the extraction whitelist.
    """

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        ocr_config: OCRConfig | None = None,
        engine_factory: Callable[[], OCREngine] | None = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self.ocr_config = ocr_config or OCRConfig()
        self.engine_factory = engine_factory or self._default_engine
        self.rules = RuleExtractor(self.config.min_amount, self.config.max_amount)
        self.validator = DonationRulesEngine(self.config.confidence_threshold)
        self.pool: EnginePool | None = None
        self.metrics = StageMetrics()

    def _default_engine(self) -> TesseractEngine:
        return TesseractEngine(
            tesseract_cmd=self.ocr_config.tesseract_cmd,
            lang=self.ocr_config.default_lang,
            psm=self.ocr_config.extraction_psm,
            whitelist=self.ocr_config.extraction_whitelist,
            preserve_interword_spaces=True,
        )

    def _ensure_pool(self) -> EnginePool:
        if self.pool is None or self.pool.closed:
            self.pool = EnginePool(self.engine_factory, size=self.ocr_config.pool_size)
        return self.pool

    def _recognize(self, image: np.ndarray) -> OCRResult:
        with self._ensure_pool().checkout() as engine:
            return engine.recognize(image)

    def extract_form_data(self, forms: list[SegmentedForm]) -> list[ExtractedFormData]:
        """Extract one record per form, numbered by position from 1.

        Args:
            forms: Segmented forms in output order.

        Returns:
            Validated records. A form that fails yields an empty,
            zero-confidence record describing the failure.
        """
        results = []
        with StageTimer(logger, "field extraction") as timer:
            for index, form in enumerate(forms):
                results.append(self._extract_form(form, index + 1))

        self._record(results, timer.elapsed_ms)
        logger.info("Extracted %d form record(s)", len(results))
        return results

    def extract_from_real_image(self, image: np.ndarray | bytes) -> ExtractedFormData:
        """Extract a record from one whole form or page image.

        Args:
            image: Pixel array, or encoded image bytes.

        Returns:
            Record number 1. OCR failure yields a zero-confidence record
            with the failure as an issue.

        Raises:
            PreprocessingError: If ``image`` is bytes that cannot be decoded.
        """
        if isinstance(image, bytes):
            image = decode_image(image)

        with StageTimer(logger, "whole image extraction") as timer:
            try:
                result = self._extract_whole_form(image, 1)
            except Exception as exc:
                logger.error("Whole image extraction failed: %s", exc)
                self.metrics.record_error()
                result = self._failed_record(1, str(exc))

        self._record([result], timer.elapsed_ms)
        return result

    def _extract_form(self, form: SegmentedForm, form_number: int) -> ExtractedFormData:
        try:
            if form.error:
                logger.warning("Skipping %s: %s", form.form_id, form.error)
                return self._failed_record(form_number, form.error)
            self._ensure_pool()
            if form.segments:
                return self._extract_from_segments(form, form_number)
            if form.form_image is not None:
                logger.info("No segments in %s, parsing whole form", form.form_id)
                return self._extract_whole_form(form.form_image, form_number)
            raise ValueError(NO_FORM_CONTENT)
        except Exception as exc:
            logger.error("Extraction failed for %s: %s", form.form_id, exc)
            self.metrics.record_error()
            return self._failed_record(form_number, str(exc))

    def _failed_record(self, form_number: int, message: str) -> ExtractedFormData:
        issues = self.validator.validate(
            DonationFields(), 0.0, [f"Failed to process form: {message}"]
        )
        return ExtractedFormData(form_number=form_number, confidence=0.0, issues=issues)

    def _extract_whole_form(self, image: np.ndarray, form_number: int) -> ExtractedFormData:
        ocr = self._recognize(image)
        fields = self.rules.parse_form_text(ocr.text)
        confidence = ocr.confidence / 100
        return ExtractedFormData(
            form_number=form_number,
            confidence=confidence,
            fields=fields,
            issues=self.validator.validate(fields, confidence),
        )

    def _extract_from_segments(
        self, form: SegmentedForm, form_number: int
    ) -> ExtractedFormData:
        fields = DonationFields()
        issues: list[str] = []
        texts: list[str] = []
        total_confidence = 0.0
        processed = 0

        for segment in form.segments:
            try:
                ocr = self._recognize(segment.image)
            except Exception as exc:
                logger.warning("OCR failed for segment %s: %s", segment.field_id, exc)
                issues.append(
                    f"Failed to process {segment.field_type} field: {segment.field_id}"
                )
                continue

            text = ocr.text.strip()
            total_confidence += ocr.confidence
            processed += 1
            if text:
                texts.append(text)
            fields = self._apply_segment(segment, text, fields, issues)

        payment = detect_payment(" ".join(texts))
        details = payment.details
        if not details.cardholder_name and fields.payment_details.cardholder_name:
            details = replace(
                details, cardholder_name=fields.payment_details.cardholder_name
            )
        fields = replace(
            fields, payment_method=payment.payment_method, payment_details=details
        )

        confidence = total_confidence / processed / 100 if processed else 0.0
        return ExtractedFormData(
            form_number=form_number,
            confidence=confidence,
            fields=fields,
            issues=self.validator.validate(fields, confidence, issues),
        )

    def _apply_segment(
        self,
        segment: FieldSegment,
        text: str,
        fields: DonationFields,
        issues: list[str],
    ) -> DonationFields:
        """Route one segment's text into the record by field type."""
        field_id = segment.field_id.lower()

        if segment.field_type == ElementType.TEXT_FIELD:
            if "name" in field_id:
                return replace(fields, donor_name=text)
            if "email" in field_id:
                if not self.rules.is_valid_email(text):
                    issues.append(EMAIL_ISSUE)
                return replace(fields, email=text)
            if "phone" in field_id:
                return replace(fields, phone=text)
            if "address" in field_id:
                return replace(fields, address=text)
        elif segment.field_type == ElementType.AMOUNT_FIELD:
            amount = self.rules.extract_amount(text)
            if amount > 0:
                return replace(fields, amount=float(amount))
        elif segment.field_type == ElementType.DATE_FIELD:
            date = self.rules.extract_segment_date(text)
            if date:
                return replace(fields, date=date)
        elif segment.field_type == ElementType.CHECKBOX:
            lowered = text.lower()
            if "monthly" in lowered or "recurring" in lowered:
                return replace(fields, recurring=True)
        elif segment.field_type == ElementType.SIGNATURE_AREA and text:
            return replace(
                fields,
                payment_details=replace(fields.payment_details, cardholder_name=text),
            )
        return fields

    def _record(self, results: list[ExtractedFormData], elapsed_ms: float) -> None:
        self.metrics.record(
            len(results),
            elapsed_ms,
            confidences=[result.confidence for result in results],
            items=sum(_count_fields(result.fields) for result in results),
        )

    def validate(self) -> bool:
        """Report whether the OCR engine pool can be started."""
        try:
            self._ensure_pool()
        except Exception as exc:
            logger.error("Extractor validation failed: %s", exc)
            return False
        return True

    def get_metrics(self) -> MetricsSnapshot:
        """Snapshot of forms and fields extracted, timing, errors, confidence."""
        return self.metrics.snapshot()

    def close(self) -> None:
        """Release the OCR engine pool."""
        if self.pool is not None:
            self.pool.close()
            self.pool = None

    def __enter__(self) -> "Extractor":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
