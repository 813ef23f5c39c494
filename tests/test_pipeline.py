"""Tests for the end-to-end OCR pipeline."""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest
from conftest import fake_engine_factory, png_bytes
from PIL import Image

from src.extraction.extractor import Extractor
from src.ocr.tesseract_engine import OCRResult
from src.pipeline.exceptions import UnsupportedFormatError
from src.pipeline.models import (
    BoundingBox,
    DetectedElement,
    DetectedForm,
    ElementType,
    RawDocument,
)
from src.pipeline.ocr_pipeline import OCRPipeline
from src.utils.config import AppConfig, PreprocessingConfig
from src.utils.metrics import MetricsSnapshot
from src.validation.rules_engine import AMOUNT_ISSUE, DONOR_NAME_ISSUE


def _config(width: int, height: int) -> AppConfig:
    return AppConfig(
        preprocessing=PreprocessingConfig(
            deskew_enabled=False, target_width=width, target_height=height
        )
    )


def _pipeline(
    config: AppConfig,
    detection_script: list | None = None,
    extraction_script: list | None = None,
    **stages: object,
) -> OCRPipeline:
    return OCRPipeline(
        config,
        detection_engine_factory=fake_engine_factory(detection_script),
        extraction_engine_factory=fake_engine_factory(extraction_script),
        **stages,
    )


def _labelled_form() -> DetectedForm:
    def element(element_type: ElementType, y: int, label: str) -> DetectedElement:
        return DetectedElement(
            element_type=element_type,
            bounding_box=BoundingBox(10, y, 200, 20),
            confidence=0.8,
            label=label,
            refined=True,
        )

    return DetectedForm(
        form_id="form_1_1",
        page_number=1,
        bounding_box=BoundingBox(0, 0, 300, 200),
        confidence=0.85,
        image=np.full((200, 300, 3), 255, dtype=np.uint8),
        elements=(
            element(ElementType.TEXT_FIELD, 10, "donor_name"),
            element(ElementType.AMOUNT_FIELD, 60, "amount"),
            element(ElementType.TEXT_FIELD, 110, "payment_credit_card"),
        ),
    )


def _stage_mocks() -> dict[str, MagicMock]:
    stages = {}
    for name in ("preprocessor", "detector", "segmenter", "extractor"):
        stage = MagicMock()
        stage.validate.return_value = True
        stage.get_metrics.return_value = MetricsSnapshot()
        stages[name] = stage
    return stages


class TestOCRPipelineEndToEnd:
    """Documents run through every stage."""

    def test_name_amount_and_card(self, blank_page: np.ndarray) -> None:
        detector = MagicMock()
        detector.detect_forms.return_value = [_labelled_form()]
        pipeline = _pipeline(
            _config(400, 600),
            extraction_script=["Jane Doe", "$100.00", "4111111111111111"],
            detector=detector,
        )
        document = RawDocument("gift.png", png_bytes(blank_page), "image/png")

        [record] = pipeline.process_document(document)

        assert record.form_number == 1
        assert record.fields.donor_name == "Jane Doe"
        assert record.fields.amount == 100
        assert record.fields.payment_details.card_type == "Visa"
        assert record.confidence > 0
        assert AMOUNT_ISSUE not in record.issues

    def test_small_amount_only(self, blank_page: np.ndarray) -> None:
        detector = MagicMock()
        detector.detect_forms.return_value = [_labelled_form()]
        pipeline = _pipeline(
            _config(400, 600),
            extraction_script=["Jane Doe", "$5", ""],
            detector=detector,
        )
        document = RawDocument("gift.png", png_bytes(blank_page), "image/png")

        [record] = pipeline.process_document(document)

        assert record.fields.amount == 0
        assert AMOUNT_ISSUE in record.issues

    def test_page_without_forms(self, blank_page: np.ndarray) -> None:
        pipeline = _pipeline(_config(400, 600))
        document = RawDocument("blank.png", png_bytes(blank_page), "image/png")

        assert pipeline.process_document(document) == []
        assert pipeline.get_performance_metrics()["pipeline"].processed == 1

    def test_ruled_form_page(self, ruled_form_page: np.ndarray) -> None:
        pipeline = _pipeline(_config(1000, 1200), extraction_script=["Jane Doe"])
        document = RawDocument("form.png", png_bytes(ruled_form_page), "image/png")

        records = pipeline.process_document(document)

        assert len(records) == 1
        assert records[0].form_number == 1
        assert DONOR_NAME_ISSUE in records[0].issues
        metrics = pipeline.get_performance_metrics()
        assert metrics["detector"].processed == 1
        assert metrics["segmenter"].items > 0

    @patch("src.ocr.pdf_handler.convert_from_bytes")
    def test_pdf_with_failing_fourth_page(self, mock_convert: MagicMock) -> None:
        page = Image.fromarray(np.full((600, 400, 3), 255, dtype=np.uint8))
        mock_convert.side_effect = [[page], [page], [page], RuntimeError("bad page")]
        pipeline = _pipeline(_config(400, 600))

        records = pipeline.process_document(
            RawDocument("batch.pdf", b"%PDF-1.4", "application/pdf")
        )

        assert records == []
        assert pipeline.get_performance_metrics()["preprocessor"].processed == 3

    def test_unsupported_type_raises(self) -> None:
        pipeline = _pipeline(_config(400, 600))

        with pytest.raises(UnsupportedFormatError):
            pipeline.process_document(RawDocument("notes.txt", b"hi", "text/plain"))
        assert pipeline.get_performance_metrics()["pipeline"].errors == 1

    def test_failed_segmentation_yields_failure_record(self, blank_page: np.ndarray) -> None:
        detector = MagicMock()
        detector.detect_forms.return_value = [_labelled_form()]
        text = OCRResult("First Name: Jane\nLast Name: Doe\nDonation $100\n", 90.0, ())
        pipeline = _pipeline(
            _config(400, 600), extraction_script=[text], detector=detector
        )
        document = RawDocument("gift.png", png_bytes(blank_page), "image/png")

        with patch.object(
            pipeline.segmenter, "_segment_form", side_effect=RuntimeError("crop failed")
        ):
            [record] = pipeline.process_document(document)

        assert record.confidence == 0.0
        assert record.fields.donor_name == ""
        assert record.issues[0] == (
            "Failed to process form: Segmentation failed: crop failed"
        )
        assert pipeline.get_performance_metrics()["segmenter"].errors == 1

    def test_process_page(self, ruled_form_page: np.ndarray) -> None:
        pipeline = _pipeline(_config(1000, 1200))
        records = pipeline.process_page(ruled_form_page, page_number=3)
        assert len(records) == 1

    @patch("src.ocr.pdf_handler.convert_from_bytes")
    def test_extract_whole_pages(self, mock_convert: MagicMock) -> None:
        page = Image.fromarray(np.full((600, 400, 3), 255, dtype=np.uint8))
        mock_convert.side_effect = [[page], [page], []]
        text = "First Name: Jane\nLast Name: Doe\nDonation $250\n"
        pipeline = _pipeline(
            _config(400, 600), extraction_script=[OCRResult(text, 88.0, ())]
        )

        records = pipeline.extract_whole_pages(
            RawDocument("batch.pdf", b"%PDF-1.4", "application/pdf")
        )

        assert [r.form_number for r in records] == [1, 2]
        assert all(r.fields.donor_name == "Jane Doe" for r in records)
        assert all(r.fields.amount == 250 for r in records)


class TestOCRPipelineWiring:
    """Tests for stage injection, validation and lifecycle."""

    def test_stages_called_in_order(self) -> None:
        stages = _stage_mocks()
        stages["preprocessor"].process_document.return_value = ["page"]
        stages["detector"].detect_forms.return_value = ["form"]
        stages["segmenter"].segment_form_fields.return_value = ["segmented"]
        stages["extractor"].extract_form_data.return_value = ["record"]
        pipeline = OCRPipeline(AppConfig(), **stages)

        result = pipeline.process_document(RawDocument("a.png", b"", "image/png"))

        assert result == ["record"]
        stages["detector"].detect_forms.assert_called_once_with(["page"])
        stages["segmenter"].segment_form_fields.assert_called_once_with(["form"])
        stages["extractor"].extract_form_data.assert_called_once_with(["segmented"])

    def test_default_stages_use_config(self) -> None:
        config = AppConfig()
        pipeline = OCRPipeline(config)
        assert pipeline.preprocessor.config is config.preprocessing
        assert pipeline.detector.config is config.detection
        assert pipeline.segmenter.config is config.segmentation
        assert isinstance(pipeline.extractor, Extractor)

    def test_validate_all_ready(self) -> None:
        assert OCRPipeline(AppConfig(), **_stage_mocks()).validate() is True

    def test_validate_stage_not_ready(self) -> None:
        stages = _stage_mocks()
        stages["segmenter"].validate.return_value = False
        assert OCRPipeline(AppConfig(), **stages).validate() is False

    def test_validate_stage_raising(self) -> None:
        stages = _stage_mocks()
        stages["detector"].validate.side_effect = RuntimeError("no tesseract")
        assert OCRPipeline(AppConfig(), **stages).validate() is False

    def test_performance_metrics_keys(self) -> None:
        metrics = OCRPipeline(AppConfig(), **_stage_mocks()).get_performance_metrics()
        assert set(metrics) == {
            "pipeline",
            "preprocessor",
            "detector",
            "segmenter",
            "extractor",
        }

    def test_close_releases_engines(self) -> None:
        stages = _stage_mocks()
        with OCRPipeline(AppConfig(), **stages):
            pass
        stages["detector"].close.assert_called_once()
        stages["extractor"].close.assert_called_once()
