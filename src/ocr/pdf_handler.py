"""PDF to image conversion for multi-page donation batches.

Rasterizes PDF pages one at a time so that a long scan batch never has to
sit in memory all at once.
"""

from collections.abc import Iterator

import numpy as np
from pdf2image import convert_from_bytes

from src.utils.logger import get_logger

logger = get_logger(__name__)


class PDFHandler:
    """Handles PDF to image conversion for OCR processing.

    Args:
        dpi: Resolution for PDF rendering. Higher values produce
            better OCR results but use more memory.
        max_pages: Upper bound on pages rasterized from one document.
    """

    def __init__(self, dpi: int = 300, max_pages: int = 500) -> None:
        self.dpi = dpi
        self.max_pages = max_pages

    def iter_pages(self, pdf_bytes: bytes) -> Iterator[np.ndarray]:
        """Yield page images in order, starting at page 1.

        Page ``n`` is rendered on its own. The first page that fails to
        render or renders to nothing marks the end of the document; that is
        not reported as an error.

        Args:
            pdf_bytes: Raw PDF content.

        Yields:
            Individual page images as RGB numpy arrays.
        """
        for page_number in range(1, self.max_pages + 1):
            try:
                pil_images = convert_from_bytes(
                    pdf_bytes,
                    dpi=self.dpi,
                    first_page=page_number,
                    last_page=page_number,
                )
            except Exception as exc:
                logger.info(
                    "Stopping PDF rasterization at page %d: %s", page_number, exc
                )
                return

            if not pil_images:
                logger.debug("No page %d in PDF, stopping", page_number)
                return

            yield np.array(pil_images[0].convert("RGB"))
        logger.warning("PDF page limit of %d reached", self.max_pages)
