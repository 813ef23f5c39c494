"""Tesseract OCR engine wrapper with word-level extraction.

Provides OCR text extraction with word boxes and confidence scores, with the
page segmentation mode and character whitelist fixed per engine instance.
"""

from dataclasses import dataclass

import numpy as np
import pytesseract
from PIL import Image

from src.pipeline.models import BoundingBox
from src.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class OCRWord:
    """A single word extracted by OCR with position and confidence."""

    text: str
    bbox: BoundingBox
    confidence: float


@dataclass(frozen=True)
class OCRResult:
    """OCR output for one image.

    Attributes:
        text: Full recognized text.
        confidence: Mean word confidence on a 0-100 scale.
        words: Recognized words with their boxes.
    """

    text: str
    confidence: float
    words: tuple[OCRWord, ...] = ()


class TesseractEngine:
    """Wrapper around Tesseract OCR for form and field images.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        lang: OCR language code.
        psm: Tesseract page segmentation mode.
        whitelist: Characters Tesseract may output. Empty allows all.
        preserve_interword_spaces: Keep runs of spaces between words.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        lang: str = "eng",
        psm: int = 6,
        whitelist: str = "",
        preserve_interword_spaces: bool = False,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.lang = lang
        self.psm = psm
        self.whitelist = whitelist
        self.preserve_interword_spaces = preserve_interword_spaces

    @property
    def config(self) -> str:
        """Tesseract command-line options for this engine."""
        options = [f"--psm {self.psm}"]
        if self.whitelist:
            options.append(f"-c tessedit_char_whitelist={self.whitelist}")
        if self.preserve_interword_spaces:
            options.append("-c preserve_interword_spaces=1")
        return " ".join(options)

    def is_available(self) -> bool:
        """Check that the Tesseract binary can be run.

        Returns:
            True when Tesseract reports a version.
        """
        try:
            version = pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError) as exc:
            logger.error("Tesseract is not available: %s", exc)
            return False
        logger.debug("Tesseract version %s", version)
        return True

    def recognize(self, image: np.ndarray) -> OCRResult:
        """Extract text from an image with word-level bounding boxes.

        Args:
            image: Input image as a numpy array.

        Returns:
            OCRResult containing full text, confidence, and word details.
        """
        pil_image = Image.fromarray(image)
        text = pytesseract.image_to_string(pil_image, lang=self.lang, config=self.config)

        data = pytesseract.image_to_data(
            pil_image,
            lang=self.lang,
            config=self.config,
            output_type=pytesseract.Output.DICT,
        )

        words: list[OCRWord] = []
        total_conf = 0.0

        for i in range(len(data["text"])):
            conf = float(data["conf"][i])
            word_text = str(data["text"][i]).strip()

            if conf > 0 and word_text and data["width"][i] > 0 and data["height"][i] > 0:
                words.append(
                    OCRWord(
                        text=word_text,
                        bbox=BoundingBox(
                            x=max(0, int(data["left"][i])),
                            y=max(0, int(data["top"][i])),
                            width=int(data["width"][i]),
                            height=int(data["height"][i]),
                        ),
                        confidence=conf,
                    )
                )
                total_conf += conf

        avg_conf = total_conf / len(words) if words else 0.0

        logger.debug(
            "OCR extracted %d words with average confidence %.1f",
            len(words),
            avg_conf,
        )
        return OCRResult(text=text, confidence=avg_conf, words=tuple(words))
