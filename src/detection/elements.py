"""Element finding inside a detected form region.

Checkboxes and signature boxes are found from contours of the inked form;
text fields are found from the underlines they are written on.
"""

import cv2
import numpy as np

from src.pipeline.models import BoundingBox, DetectedElement, ElementType
from src.preprocessing.binarize import binarize_otsu
from src.utils.config import DetectionConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

CHECKBOX_CONFIDENCE = 0.8
TEXT_FIELD_CONFIDENCE = 0.7
SIGNATURE_CONFIDENCE = 0.6


def _external_contours(binary: np.ndarray) -> list[np.ndarray]:
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    return list(contours)


def detect_checkboxes(
    form_image: np.ndarray, config: DetectionConfig
) -> list[DetectedElement]:
    """Find small square outlines.

    Args:
        form_image: Form crop (RGB or grayscale).
        config: Checkbox area and aspect bounds.

    Returns:
        Checkbox elements.
    """
    checkboxes = []
    for contour in _external_contours(binarize_otsu(form_image, invert=True)):
        area = cv2.contourArea(contour)
        if not config.checkbox_min_area <= area <= config.checkbox_max_area:
            continue
        x, y, w, h = cv2.boundingRect(contour)
        aspect = w / h
        if config.checkbox_min_aspect <= aspect <= config.checkbox_max_aspect:
            checkboxes.append(
                DetectedElement(
                    element_type=ElementType.CHECKBOX,
                    bounding_box=BoundingBox(x=x, y=y, width=w, height=h),
                    confidence=CHECKBOX_CONFIDENCE,
                )
            )
    return checkboxes


def detect_text_fields(
    form_image: np.ndarray, config: DetectionConfig
) -> list[DetectedElement]:
    """Find writing lines and return the band above each one.

    Args:
        form_image: Form crop (RGB or grayscale).
        config: Underline length and field band geometry.

    Returns:
        Text field elements covering the handwriting above each line.
    """
    ink = binarize_otsu(form_image, invert=True)
    kernel = cv2.getStructuringElement(
        cv2.MORPH_RECT, (config.text_line_kernel_length, 1)
    )
    lines = cv2.morphologyEx(ink, cv2.MORPH_OPEN, kernel)

    fields = []
    for contour in _external_contours(lines):
        x, y, w, h = cv2.boundingRect(contour)
        if w > config.text_field_min_width and h < config.text_field_max_height:
            fields.append(
                DetectedElement(
                    element_type=ElementType.TEXT_FIELD,
                    bounding_box=BoundingBox(
                        x=x,
                        y=max(0, y - config.text_field_label_offset),
                        width=w,
                        height=config.text_field_height,
                    ),
                    confidence=TEXT_FIELD_CONFIDENCE,
                )
            )
    return fields


def detect_signature_areas(
    form_image: np.ndarray, config: DetectionConfig
) -> list[DetectedElement]:
    """Find large, wide rectangles that look like signature boxes.

    Args:
        form_image: Form crop (RGB or grayscale).
        config: Signature area and aspect bounds.

    Returns:
        Signature area elements.
    """
    areas = []
    for contour in _external_contours(binarize_otsu(form_image, invert=True)):
        area = cv2.contourArea(contour)
        x, y, w, h = cv2.boundingRect(contour)
        aspect = w / h
        if (
            area > config.signature_min_area
            and config.signature_min_aspect <= aspect <= config.signature_max_aspect
        ):
            areas.append(
                DetectedElement(
                    element_type=ElementType.SIGNATURE_AREA,
                    bounding_box=BoundingBox(x=x, y=y, width=w, height=h),
                    confidence=SIGNATURE_CONFIDENCE,
                )
            )
    return areas


def detect_elements(
    form_image: np.ndarray, config: DetectionConfig | None = None
) -> list[DetectedElement]:
    """Run every element finder over a form crop.

    Args:
        form_image: Form crop.
        config: Element thresholds.

    Returns:
        Checkboxes, then text fields, then signature areas.
    """
    config = config or DetectionConfig()
    elements = [
        *detect_checkboxes(form_image, config),
        *detect_text_fields(form_image, config),
        *detect_signature_areas(form_image, config),
    ]
    logger.debug("Detected %d element(s) in form", len(elements))
    return elements
