"""Skew correction for scanned pages.

Donation forms are full of long ruled lines, which makes the Hough transform
a reliable skew estimator: the median angle of the near-horizontal segments
is the page's rotation.
"""

import cv2
import numpy as np

from src.utils.logger import get_logger

from .binarize import to_gray

logger = get_logger(__name__)

# Segments steeper than this are vertical rules, not tilted horizontals.
MAX_SKEW_ANGLE = 45.0


def _segment_angles(gray: np.ndarray) -> list[float]:
    edges = cv2.Canny(gray, 50, 150, apertureSize=3)
    segments = cv2.HoughLinesP(
        edges, 1, np.pi / 180, threshold=100, minLineLength=100, maxLineGap=10
    )
    if segments is None:
        return []
    angles = np.degrees(
        np.arctan2(segments[:, 0, 3] - segments[:, 0, 1], segments[:, 0, 2] - segments[:, 0, 0])
    )
    return [float(a) for a in angles if abs(a) <= MAX_SKEW_ANGLE]


def detect_skew_angle(image: np.ndarray) -> float:
    """Estimate how far a page is rotated.

    Args:
        image: Page image (RGB or grayscale).

    Returns:
        Skew in degrees, positive when lines fall to the right. 0.0 when
        the page has no long straight segments.
    """
    angles = _segment_angles(to_gray(image))
    if not angles:
        return 0.0
    angle = float(np.median(angles))
    logger.debug("Estimated skew %.2f degrees from %d segments", angle, len(angles))
    return angle


def rotate(image: np.ndarray, angle: float) -> np.ndarray:
    """Rotate about the centre, keeping the size and replicating the border."""
    height, width = image.shape[:2]
    matrix = cv2.getRotationMatrix2D((width // 2, height // 2), angle, 1.0)
    return cv2.warpAffine(
        image,
        matrix,
        (width, height),
        flags=cv2.INTER_CUBIC,
        borderMode=cv2.BORDER_REPLICATE,
    )


def deskew(image: np.ndarray, angle_threshold: float = 0.5) -> np.ndarray:
    """Straighten a page when its skew is above ``angle_threshold`` degrees.

    Returns:
        The input object itself when no rotation is needed, otherwise a
        rotated copy of the same shape.
    """
    angle = detect_skew_angle(image)
    if abs(angle) <= angle_threshold:
        return image
    logger.info("Correcting skew of %.2f degrees", angle)
    return rotate(image, angle)
