"""Tests for the image preprocessing stage."""

import math
from unittest.mock import MagicMock, patch

import cv2
import numpy as np
import pytest
from conftest import png_bytes
from PIL import Image

from src.pipeline.exceptions import PreprocessingError, UnsupportedFormatError
from src.pipeline.models import PageImage, RawDocument
from src.preprocessing.binarize import binarize_adaptive, binarize_otsu, to_gray
from src.preprocessing.contrast import adjust_linear, apply_clahe, normalize_contrast
from src.preprocessing.denoise import denoise, denoise_bilateral, denoise_gaussian
from src.preprocessing.deskew import deskew, detect_skew_angle, rotate
from src.preprocessing.pipeline import Preprocessor, decode_image
from src.preprocessing.resize import standardize_resolution
from src.utils.config import PreprocessingConfig


def _make_noisy_image(height: int = 200, width: int = 300) -> np.ndarray:
    """Create a synthetic noisy grayscale image for testing."""
    rng = np.random.default_rng(42)
    base = np.zeros((height, width), dtype=np.uint8)
    base[50:150, 50:250] = 200
    noise = rng.integers(0, 50, size=(height, width), dtype=np.uint8)
    return np.clip(base.astype(np.int16) + noise.astype(np.int16), 0, 255).astype(
        np.uint8
    )


def _make_skewed_lines(angle_deg: float = 5.0) -> np.ndarray:
    """Draw long parallel lines tilted by ``angle_deg`` on a white page."""
    image = np.full((600, 600), 255, dtype=np.uint8)
    rise = int(round(500 * math.tan(math.radians(angle_deg))))
    for y in range(100, 500, 60):
        cv2.line(image, (50, y), (550, y + rise), 0, 2)
    return image


def _small_config(**overrides: object) -> PreprocessingConfig:
    return PreprocessingConfig(target_width=300, target_height=200, **overrides)


class TestBinarize:
    """Tests for binarization helpers."""

    def test_to_gray_converts_rgb(self, sample_color_image: np.ndarray) -> None:
        assert to_gray(sample_color_image).ndim == 2

    def test_to_gray_passes_gray_through(self, sample_image: np.ndarray) -> None:
        assert to_gray(sample_image) is sample_image

    def test_otsu_produces_binary(self) -> None:
        result = binarize_otsu(_make_noisy_image())
        assert set(np.unique(result)) <= {0, 255}

    def test_otsu_invert(self, sample_image: np.ndarray) -> None:
        result = binarize_otsu(sample_image, invert=True)
        assert result[100, 100] == 0
        assert result[0, 0] == 255

    def test_adaptive_produces_binary(self) -> None:
        result = binarize_adaptive(_make_noisy_image())
        assert set(np.unique(result)) <= {0, 255}


class TestDeskew:
    """Tests for skew detection and correction."""

    def test_detect_skew_angle_no_lines(self) -> None:
        blank = np.zeros((100, 100), dtype=np.uint8)
        assert detect_skew_angle(blank) == 0.0

    def test_detects_tilted_lines(self) -> None:
        angle = detect_skew_angle(_make_skewed_lines(5.0))
        assert angle == pytest.approx(5.0, abs=1.5)

    def test_skips_when_below_threshold(self) -> None:
        blank = np.full((100, 100), 255, dtype=np.uint8)
        assert deskew(blank) is blank

    def test_rotate_keeps_shape(self, sample_color_image: np.ndarray) -> None:
        assert rotate(sample_color_image, 10.0).shape == sample_color_image.shape

    def test_corrects_skew(self) -> None:
        image = _make_skewed_lines(5.0)
        result = deskew(image)
        assert result.shape == image.shape
        assert abs(detect_skew_angle(result)) < abs(detect_skew_angle(image))


class TestContrast:
    """Tests for contrast normalization."""

    def test_linear_scales_and_shifts(self) -> None:
        image = np.full((10, 10), 100, dtype=np.uint8)
        assert adjust_linear(image, alpha=1.5, beta=10.0)[0, 0] == 160

    def test_linear_saturates(self) -> None:
        image = np.full((10, 10), 200, dtype=np.uint8)
        assert adjust_linear(image)[0, 0] == 255

    def test_linear_keeps_channels(self, sample_color_image: np.ndarray) -> None:
        assert adjust_linear(sample_color_image).shape == sample_color_image.shape

    def test_clahe_returns_gray(self, sample_color_image: np.ndarray) -> None:
        result = apply_clahe(sample_color_image)
        assert result.shape == sample_color_image.shape[:2]

    def test_normalize_dispatch(self, sample_image: np.ndarray) -> None:
        assert normalize_contrast(sample_image, method="clahe").shape == sample_image.shape

    def test_unsupported_method(self, sample_image: np.ndarray) -> None:
        with pytest.raises(ValueError, match="Unsupported contrast method"):
            normalize_contrast(sample_image, method="gamma")


class TestDenoise:
    """Tests for noise reduction."""

    def test_gaussian_preserves_shape(self) -> None:
        image = _make_noisy_image()
        assert denoise_gaussian(image).shape == image.shape

    def test_bilateral_preserves_shape(self) -> None:
        image = _make_noisy_image()
        assert denoise_bilateral(image).shape == image.shape

    def test_gaussian_reduces_variance(self) -> None:
        image = _make_noisy_image()
        result = denoise(image, method="gaussian", kernel_size=5)
        assert result[60:140, 60:240].std() < image[60:140, 60:240].std()

    def test_median_removes_specks(self) -> None:
        image = np.full((50, 50), 255, dtype=np.uint8)
        image[25, 25] = 0
        assert denoise(image, method="median")[25, 25] == 255

    def test_even_kernel_rejected(self) -> None:
        with pytest.raises(ValueError, match="odd"):
            denoise(_make_noisy_image(), kernel_size=4)

    def test_unsupported_method(self) -> None:
        with pytest.raises(ValueError, match="Unsupported denoise method"):
            denoise(_make_noisy_image(), method="wavelet")


class TestResize:
    """Tests for resolution standardization."""

    def test_resizes_to_target(self, sample_color_image: np.ndarray) -> None:
        result = standardize_resolution(sample_color_image, 150, 100)
        assert result.shape == (100, 150, 3)

    def test_target_size_is_unchanged(self, sample_image: np.ndarray) -> None:
        assert standardize_resolution(sample_image, 300, 200) is sample_image

    def test_idempotent(self, sample_image: np.ndarray) -> None:
        once = standardize_resolution(sample_image, 500, 400)
        twice = standardize_resolution(once, 500, 400)
        assert twice is once


class TestDecodeImage:
    """Tests for image payload decoding."""

    def test_decodes_png(self, sample_color_image: np.ndarray) -> None:
        result = decode_image(png_bytes(sample_color_image))
        assert np.array_equal(result, sample_color_image)

    def test_grayscale_png_becomes_rgb(self, sample_image: np.ndarray) -> None:
        assert decode_image(png_bytes(sample_image)).shape == (200, 300, 3)

    def test_garbage_raises(self) -> None:
        with pytest.raises(PreprocessingError):
            decode_image(b"definitely not an image")


class TestPreprocessor:
    """Tests for the Preprocessor stage."""

    def test_image_document(self, sample_color_image: np.ndarray) -> None:
        preprocessor = Preprocessor(_small_config())
        document = RawDocument("form.png", png_bytes(sample_color_image), "image/png")

        pages = preprocessor.process_document(document)

        assert len(pages) == 1
        assert pages[0].page_number == 1
        assert (pages[0].width, pages[0].height) == (300, 200)

    def test_mime_type_is_case_insensitive(self, sample_color_image: np.ndarray) -> None:
        preprocessor = Preprocessor(_small_config())
        document = RawDocument("form.PNG", png_bytes(sample_color_image), "IMAGE/PNG")
        assert len(preprocessor.process_document(document)) == 1

    def test_unsupported_mime_type(self) -> None:
        preprocessor = Preprocessor(_small_config())
        document = RawDocument("notes.txt", b"hello", "text/plain")

        with pytest.raises(UnsupportedFormatError, match="text/plain"):
            preprocessor.process_document(document)
        assert preprocessor.get_metrics().errors == 1

    def test_undecodable_image(self) -> None:
        preprocessor = Preprocessor(_small_config())
        document = RawDocument("broken.png", b"\x89PNG broken", "image/png")
        with pytest.raises(PreprocessingError):
            preprocessor.process_document(document)

    @patch("src.ocr.pdf_handler.convert_from_bytes")
    def test_pdf_pages_until_first_failure(self, mock_convert: MagicMock) -> None:
        page = Image.fromarray(np.full((200, 300, 3), 255, dtype=np.uint8))
        mock_convert.side_effect = [[page], [page], [page], RuntimeError("no page 4")]
        preprocessor = Preprocessor(_small_config())
        document = RawDocument("batch.pdf", b"%PDF-1.4", "application/pdf")

        pages = preprocessor.process_document(document)

        assert [p.page_number for p in pages] == [1, 2, 3]
        assert preprocessor.get_metrics().processed == 3
        assert preprocessor.get_metrics().errors == 0

    @patch("src.ocr.pdf_handler.convert_from_bytes")
    def test_unreadable_pdf_gives_no_pages(self, mock_convert: MagicMock) -> None:
        mock_convert.side_effect = RuntimeError("Unable to get page count")
        preprocessor = Preprocessor(_small_config())
        document = RawDocument("empty.pdf", b"junk", "application/pdf")
        assert preprocessor.process_document(document) == []

    def test_enhance_keeps_page_number(self, sample_color_image: np.ndarray) -> None:
        preprocessor = Preprocessor(_small_config(deskew_enabled=False))
        page = PageImage.from_array(sample_color_image, 4)

        result = preprocessor.enhance_image(page)

        assert result.page_number == 4
        assert result is not page
        assert preprocessor.get_metrics().operations == 3

    def test_all_steps_counted(self, sample_color_image: np.ndarray) -> None:
        preprocessor = Preprocessor(_small_config())
        preprocessor.enhance_image(PageImage.from_array(sample_color_image, 1))
        assert preprocessor.get_metrics().operations == 4

    @patch("src.preprocessing.pipeline.denoise")
    def test_failed_step_is_skipped(
        self, mock_denoise: MagicMock, sample_color_image: np.ndarray
    ) -> None:
        mock_denoise.side_effect = RuntimeError("filter exploded")
        preprocessor = Preprocessor(_small_config(deskew_enabled=False))
        page = PageImage.from_array(np.full((100, 150, 3), 100, dtype=np.uint8), 1)

        result = preprocessor.enhance_image(page)

        assert (result.width, result.height) == (300, 200)
        assert result.image[50, 50, 0] == 160
        snap = preprocessor.get_metrics()
        assert snap.errors == 1
        assert snap.operations == 2
        assert snap.processed == 1

    def test_bad_contrast_method_does_not_abort(self, sample_color_image: np.ndarray) -> None:
        preprocessor = Preprocessor(_small_config(contrast_method="unknown"))
        result = preprocessor.enhance_image(PageImage.from_array(sample_color_image, 1))
        assert (result.width, result.height) == (300, 200)
        assert preprocessor.get_metrics().errors == 1

    @patch("src.preprocessing.pipeline.shutil.which")
    def test_validate_with_poppler(self, mock_which: MagicMock) -> None:
        mock_which.return_value = "/usr/bin/pdftoppm"
        assert Preprocessor().validate() is True

    @patch("src.preprocessing.pipeline.shutil.which")
    def test_validate_without_poppler(self, mock_which: MagicMock) -> None:
        mock_which.return_value = None
        assert Preprocessor().validate() is False

    def test_metrics_average_latency(self, sample_color_image: np.ndarray) -> None:
        preprocessor = Preprocessor(_small_config(deskew_enabled=False))
        for number in (1, 2):
            preprocessor.enhance_image(PageImage.from_array(sample_color_image, number))
        snap = preprocessor.get_metrics()
        assert snap.processed == 2
        assert snap.average_latency_ms > 0
