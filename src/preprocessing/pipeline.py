"""Page preprocessing stage for donation form OCR.

Turns an uploaded document into enhanced page images: PDFs are rasterized
page by page, images are decoded directly, and every page goes through
deskew, contrast normalization, denoising, and resolution standardization.
"""

import io
import shutil
from collections.abc import Callable

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from src.ocr.pdf_handler import PDFHandler
from src.pipeline.exceptions import PreprocessingError, UnsupportedFormatError
from src.pipeline.models import PageImage, RawDocument
from src.utils.config import OCRConfig, PreprocessingConfig
from src.utils.logger import StageTimer, get_logger
from src.utils.metrics import MetricsSnapshot, StageMetrics

from .contrast import normalize_contrast
from .denoise import denoise
from .deskew import deskew
from .resize import standardize_resolution

logger = get_logger(__name__)

PDF_MIME_TYPE = "application/pdf"


def decode_image(content: bytes) -> np.ndarray:
    """Decode encoded image bytes into an RGB array.

    Args:
        content: PNG, JPEG or any other format Pillow can read.

    Returns:
        RGB image as a numpy array.

    Raises:
        PreprocessingError: If the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(content)) as img:
            return np.array(img.convert("RGB"))
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise PreprocessingError(f"Could not decode image: {exc}") from exc


class Preprocessor:
    """Converts documents into enhanced page images.

    Args:
        config: Enhancement settings.
        ocr_config: Supplies the PDF rendering resolution and page limit.
        pdf_handler: Optional PDF rasterizer, built from ``ocr_config``
            when omitted.
    """

    def __init__(
        self,
        config: PreprocessingConfig | None = None,
        ocr_config: OCRConfig | None = None,
        pdf_handler: PDFHandler | None = None,
    ) -> None:
        self.config = config or PreprocessingConfig()
        ocr_config = ocr_config or OCRConfig()
        self.pdf_handler = pdf_handler or PDFHandler(
            dpi=ocr_config.pdf_dpi, max_pages=ocr_config.pdf_max_pages
        )
        self.metrics = StageMetrics()

    def process_document(self, document: RawDocument) -> list[PageImage]:
        """Split a document into pages and enhance each one.

        Args:
            document: Uploaded document.

        Returns:
            Enhanced pages in document order, numbered from 1.

        Raises:
            UnsupportedFormatError: If the MIME type is neither PDF nor image.
            PreprocessingError: If an image payload cannot be decoded.
        """
        mime_type = document.mime_type.lower()
        if mime_type == PDF_MIME_TYPE:
            raw_pages = self.pdf_handler.iter_pages(document.content)
        elif mime_type.startswith("image/"):
            raw_pages = iter([decode_image(document.content)])
        else:
            self.metrics.record_error()
            raise UnsupportedFormatError(document.mime_type)

        pages = []
        for page_number, image in enumerate(raw_pages, start=1):
            pages.append(self.enhance_image(PageImage.from_array(image, page_number)))

        logger.info("Preprocessed %s into %d page(s)", document.file_name, len(pages))
        return pages

    def enhance_image(self, page: PageImage) -> PageImage:
        """Run the enhancement steps on one page.

        A step that raises is logged and skipped; the next step receives
        the image as it was before the failed step.

        Args:
            page: Page to enhance.

        Returns:
            A new page with the enhanced image and the same page number.
        """
        cfg = self.config
        steps: list[tuple[str, Callable[[np.ndarray], np.ndarray]]] = []
        if cfg.deskew_enabled:
            steps.append(
                ("deskew", lambda img: deskew(img, angle_threshold=cfg.deskew_angle_threshold))
            )
        steps.extend(
            [
                (
                    "contrast",
                    lambda img: normalize_contrast(
                        img,
                        method=cfg.contrast_method,
                        alpha=cfg.contrast_alpha,
                        beta=cfg.brightness_beta,
                        clip_limit=cfg.clahe_clip_limit,
                        tile_size=cfg.clahe_tile_size,
                    ),
                ),
                (
                    "denoise",
                    lambda img: denoise(
                        img, method=cfg.denoise_method, kernel_size=cfg.denoise_kernel_size
                    ),
                ),
                (
                    "resize",
                    lambda img: standardize_resolution(
                        img, cfg.target_width, cfg.target_height
                    ),
                ),
            ]
        )

        image = page.image
        operations = 0
        with StageTimer(logger, f"enhance page {page.page_number}") as timer:
            for name, step in steps:
                try:
                    image = step(image)
                    operations += 1
                except Exception as exc:
                    logger.warning(
                        "Enhancement step %s failed on page %d: %s",
                        name,
                        page.page_number,
                        exc,
                    )
                    self.metrics.record_error()

        self.metrics.record(1, timer.elapsed_ms, operations=operations)
        return PageImage.from_array(image, page.page_number)

    def validate(self) -> bool:
        """Check that OpenCV and the PDF rasterizer are usable.

        Returns:
            True when both backends are present.
        """
        try:
            cv2.getVersionString()
        except Exception as exc:
            logger.error("OpenCV is not usable: %s", exc)
            return False

        if shutil.which("pdftoppm") is None:
            logger.error("pdftoppm (poppler) not found on PATH")
            return False
        return True

    def get_metrics(self) -> MetricsSnapshot:
        """Snapshot of pages processed, timing, operations, and errors."""
        return self.metrics.snapshot()
