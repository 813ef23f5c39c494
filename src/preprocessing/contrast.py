"""Contrast and brightness normalization for scanned pages."""

import cv2
import numpy as np

from src.utils.logger import get_logger

from .binarize import to_gray

logger = get_logger(__name__)


def adjust_linear(image: np.ndarray, alpha: float = 1.5, beta: float = 10.0) -> np.ndarray:
    """Scale and shift pixel intensities, saturating at 0 and 255.

    Args:
        image: Input image (any channel count).
        alpha: Contrast gain.
        beta: Brightness offset added after scaling.

    Returns:
        Adjusted image with the same shape as the input.
    """
    result = cv2.convertScaleAbs(image, alpha=alpha, beta=beta)
    logger.debug("Applied linear contrast (alpha=%.2f, beta=%.1f)", alpha, beta)
    return result


def apply_clahe(
    image: np.ndarray,
    clip_limit: float = 2.0,
    tile_size: int = 8,
) -> np.ndarray:
    """Enhance contrast using CLAHE (Contrast Limited Adaptive Histogram Equalization).

    Args:
        image: Input image (RGB or grayscale).
        clip_limit: Threshold for contrast limiting.
        tile_size: Size of the grid for histogram equalization.

    Returns:
        Contrast-enhanced grayscale image.
    """
    gray = to_gray(image)
    clahe = cv2.createCLAHE(clipLimit=clip_limit, tileGridSize=(tile_size, tile_size))
    result = clahe.apply(gray)
    logger.debug("Applied CLAHE (clip=%.1f, tile=%d)", clip_limit, tile_size)
    return result


def normalize_contrast(
    image: np.ndarray,
    method: str = "linear",
    alpha: float = 1.5,
    beta: float = 10.0,
    clip_limit: float = 2.0,
    tile_size: int = 8,
) -> np.ndarray:
    """Apply contrast normalization using the specified method.

    Args:
        image: Input image.
        method: Either ``"linear"`` or ``"clahe"``.
        alpha: Linear contrast gain.
        beta: Linear brightness offset.
        clip_limit: CLAHE contrast limit.
        tile_size: CLAHE grid size.

    Returns:
        Contrast-normalized image.

    Raises:
        ValueError: If an unsupported method is specified.
    """
    if method == "linear":
        return adjust_linear(image, alpha=alpha, beta=beta)
    if method == "clahe":
        return apply_clahe(image, clip_limit=clip_limit, tile_size=tile_size)
    raise ValueError(f"Unsupported contrast method: {method}")
