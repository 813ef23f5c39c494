"""Resolution standardization for page images."""

import cv2
import numpy as np

from src.utils.logger import get_logger

logger = get_logger(__name__)


def standardize_resolution(
    image: np.ndarray, target_width: int = 2480, target_height: int = 3508
) -> np.ndarray:
    """Resize a page to the standard A4-at-300-DPI canvas.

    Args:
        image: Input image.
        target_width: Output width in pixels.
        target_height: Output height in pixels.

    Returns:
        The input unchanged when it already has the target size, otherwise
        a resized copy.
    """
    height, width = image.shape[:2]
    if (width, height) == (target_width, target_height):
        return image

    interpolation = (
        cv2.INTER_AREA if width * height > target_width * target_height else cv2.INTER_CUBIC
    )
    result = cv2.resize(image, (target_width, target_height), interpolation=interpolation)
    logger.debug(
        "Resized page from %dx%d to %dx%d", width, height, target_width, target_height
    )
    return result
