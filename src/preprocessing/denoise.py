"""Light noise reduction for scanned pages and field crops.

Scanner speckle and paper grain confuse both contour finding and Tesseract.
Filters here stay mild; a heavy blur merges the thin pen strokes of a
donation form into the background.
"""

from collections.abc import Callable

import cv2
import numpy as np

from src.utils.logger import get_logger

logger = get_logger(__name__)


def _check_kernel(kernel_size: int) -> None:
    if kernel_size < 1 or kernel_size % 2 == 0:
        raise ValueError(f"Kernel size must be a positive odd number, got {kernel_size}")


def denoise_gaussian(image: np.ndarray, kernel_size: int = 3) -> np.ndarray:
    """Blur with a square Gaussian kernel.

    Args:
        image: Page or field image.
        kernel_size: Odd kernel side length.

    Returns:
        Smoothed image of the same shape.
    """
    _check_kernel(kernel_size)
    return cv2.GaussianBlur(image, (kernel_size, kernel_size), 0)


def denoise_median(image: np.ndarray, kernel_size: int = 3) -> np.ndarray:
    """Remove salt-and-pepper specks with a median filter."""
    _check_kernel(kernel_size)
    return cv2.medianBlur(image, kernel_size)


def denoise_bilateral(
    image: np.ndarray,
    d: int = 9,
    sigma_color: int = 75,
    sigma_space: int = 75,
) -> np.ndarray:
    """Smooth flat paper areas while keeping ink edges sharp.

    Args:
        image: Page or field image.
        d: Pixel neighborhood diameter.
        sigma_color: How different two intensities may be and still mix.
        sigma_space: How far apart two pixels may be and still mix.

    Returns:
        Filtered image of the same shape.
    """
    return cv2.bilateralFilter(image, d, sigma_color, sigma_space)


_METHODS: dict[str, Callable[[np.ndarray, int], np.ndarray]] = {
    "gaussian": denoise_gaussian,
    "median": denoise_median,
    "bilateral": lambda image, kernel_size: denoise_bilateral(image),
}


def denoise(
    image: np.ndarray, method: str = "gaussian", kernel_size: int = 3
) -> np.ndarray:
    """Apply the named noise filter.

    Args:
        image: Page or field image.
        method: ``"gaussian"``, ``"median"`` or ``"bilateral"``.
        kernel_size: Kernel size for the Gaussian and median filters.

    Returns:
        Denoised image.

    Raises:
        ValueError: If the method is unknown or the kernel size is invalid.
    """
    try:
        apply = _METHODS[method]
    except KeyError:
        raise ValueError(f"Unsupported denoise method: {method}") from None
    result = apply(image, kernel_size)
    logger.debug("Applied %s denoise (kernel=%d)", method, kernel_size)
    return result
