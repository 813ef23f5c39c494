"""Per-type image conditioning for field crops.

Each element type gets the treatment that suits what is written in it:
handwriting is binarized, amounts are upscaled first so small digits
survive, checkbox outlines are closed so a tick reads as one blob.
"""

from collections.abc import Callable

import cv2
import numpy as np

from src.pipeline.models import ElementType
from src.preprocessing.binarize import binarize_adaptive, binarize_otsu, to_gray
from src.preprocessing.denoise import denoise_gaussian


def condition_text(image: np.ndarray) -> np.ndarray:
    return binarize_otsu(image)


def condition_amount(image: np.ndarray, scale: float = 2.0) -> np.ndarray:
    gray = to_gray(image)
    upscaled = cv2.resize(gray, None, fx=scale, fy=scale, interpolation=cv2.INTER_CUBIC)
    return binarize_otsu(upscaled)


def condition_date(image: np.ndarray) -> np.ndarray:
    return binarize_adaptive(image)


def condition_checkbox(image: np.ndarray) -> np.ndarray:
    binary = binarize_otsu(image)
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))
    return cv2.morphologyEx(binary, cv2.MORPH_CLOSE, kernel)


def condition_signature(image: np.ndarray) -> np.ndarray:
    return denoise_gaussian(to_gray(image), kernel_size=3)


CONDITIONERS: dict[ElementType, Callable[[np.ndarray], np.ndarray]] = {
    ElementType.TEXT_FIELD: condition_text,
    ElementType.AMOUNT_FIELD: condition_amount,
    ElementType.DATE_FIELD: condition_date,
    ElementType.CHECKBOX: condition_checkbox,
    ElementType.SIGNATURE_AREA: condition_signature,
}


def condition_field(
    image: np.ndarray, element_type: ElementType, amount_scale: float = 2.0
) -> np.ndarray:
    """Apply the conditioning hook for an element type.

    Args:
        image: Field crop.
        element_type: Type of the element the crop came from.
        amount_scale: Upscale factor for amount fields.

    Returns:
        Conditioned single-channel image. Types without a dedicated hook
        are only converted to grayscale.
    """
    if element_type == ElementType.AMOUNT_FIELD:
        return condition_amount(image, scale=amount_scale)
    conditioner = CONDITIONERS.get(element_type, to_gray)
    return conditioner(image)
