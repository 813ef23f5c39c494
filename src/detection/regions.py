"""Form region finding on enhanced pages.

A form is a large, roughly rectangular area dense in ruled lines. Candidate
regions come from external contours of an adaptive threshold; each one is
then scored by how many of its pixels belong to long horizontal or vertical
strokes.
"""

import cv2
import numpy as np

from src.pipeline.models import BoundingBox
from src.preprocessing.binarize import binarize_adaptive, binarize_otsu, to_gray
from src.utils.config import DetectionConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)


def assess_form_likelihood(
    region: np.ndarray, line_kernel_length: int = 40, scale: float = 10.0
) -> float:
    """Score how form-like a region looks from its ruled-line density.

    Args:
        region: Region crop (RGB or grayscale).
        line_kernel_length: Minimum stroke length counted as a ruled line.
        scale: Multiplier turning the line pixel ratio into a score.

    Returns:
        Score in [0, 1].
    """
    height, width = region.shape[:2]
    if height == 0 or width == 0:
        return 0.0

    ink = binarize_otsu(region, invert=True)
    horizontal_kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (line_kernel_length, 1))
    vertical_kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (1, line_kernel_length))
    horizontal = cv2.morphologyEx(ink, cv2.MORPH_OPEN, horizontal_kernel)
    vertical = cv2.morphologyEx(ink, cv2.MORPH_OPEN, vertical_kernel)

    line_pixels = cv2.countNonZero(horizontal) + cv2.countNonZero(vertical)
    return min(line_pixels / (width * height) * scale, 1.0)


def find_form_regions(
    image: np.ndarray, config: DetectionConfig | None = None
) -> list[BoundingBox]:
    """Locate form-shaped regions on a page.

    Args:
        image: Enhanced page image.
        config: Area, aspect and likelihood thresholds.

    Returns:
        Accepted regions in contour order.
    """
    config = config or DetectionConfig()
    gray = to_gray(image)
    blurred = cv2.GaussianBlur(gray, (5, 5), 0)
    thresh = binarize_adaptive(blurred, block_size=11, c=2, invert=True)
    contours, _ = cv2.findContours(thresh, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    page_area = gray.shape[0] * gray.shape[1]
    max_area = page_area * config.max_form_area_ratio

    regions = []
    for contour in contours:
        area = cv2.contourArea(contour)
        if area < config.min_form_area or area > max_area:
            continue

        x, y, w, h = cv2.boundingRect(contour)
        aspect = w / h
        if aspect < config.min_aspect_ratio or aspect > config.max_aspect_ratio:
            continue

        likelihood = assess_form_likelihood(
            image[y : y + h, x : x + w],
            line_kernel_length=config.line_kernel_length,
            scale=config.likelihood_scale,
        )
        if likelihood <= config.likelihood_threshold:
            logger.debug("Rejected region at (%d, %d): likelihood %.2f", x, y, likelihood)
            continue

        regions.append(BoundingBox(x=x, y=y, width=w, height=h))

    logger.debug("Found %d form region(s) among %d contours", len(regions), len(contours))
    return regions
