"""OCR-context refinement of detected elements.

Words recognized near an element tell us what the element is for: the label
("donor_name", "amount", ...) comes from keyword rules, and currency, date
or signature wording can change the element's type.
"""

import math
import re
from collections.abc import Sequence
from dataclasses import replace

from src.ocr.tesseract_engine import OCRWord
from src.payments.cards import UNKNOWN_CARD, detect_card_type
from src.pipeline.models import BoundingBox, DetectedElement, ElementType

CONTEXT_BOOST = 0.1
RETYPE_PENALTY = 0.9

_LABEL_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("donor_name", ("name", "donor")),
    ("email", ("email", "e-mail")),
    ("phone", ("phone", "tel")),
    ("address", ("address", "street")),
    ("amount", ("amount", "$", "donation")),
    ("date", ("date", "when")),
    ("signature", ("signature", "sign")),
    ("recurring", ("recurring", "monthly")),
    ("anonymous", ("anonymous", "private")),
    ("payment_credit_card", ("credit", "card")),
    ("payment_check", ("check", "cheque")),
)

_CARD_TOKEN = re.compile(r"\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{1,7}|\d{13,19}")
_AMOUNT_TEXT = re.compile(r"\$\d+|\d+\.\d{2}")
_DATE_TEXT = re.compile(r"\d{1,2}/\d{1,2}/\d{2,4}|\d{1,2}-\d{1,2}-\d{2,4}")


def is_word_near_element(
    word_box: BoundingBox, element_box: BoundingBox, threshold: float = 50.0
) -> bool:
    """Check whether two boxes' centres lie closer than ``threshold`` pixels."""
    wx, wy = word_box.center
    ex, ey = element_box.center
    return math.hypot(wx - ex, wy - ey) < threshold


def classify_label(text: str, element_type: ElementType) -> str:
    """Derive a semantic label from nearby text.

    Keyword rules are checked in order and the first match wins. A
    card-number-shaped token of a known brand also marks a card field.

    Args:
        text: Words found near the element.
        element_type: Current element type, used for the fallback label.

    Returns:
        Label such as ``donor_name`` or ``unknown_checkbox``.
    """
    lowered = text.lower()
    for label, keywords in _LABEL_RULES:
        if any(keyword in lowered for keyword in keywords):
            return label

    for token in _CARD_TOKEN.findall(text):
        if detect_card_type(token) != UNKNOWN_CARD:
            return "payment_credit_card"

    return f"unknown_{element_type}"


def refine_element_type(text: str, element_type: ElementType) -> ElementType:
    """Reclassify an element from what is written in or around it."""
    if _AMOUNT_TEXT.search(text):
        return ElementType.AMOUNT_FIELD
    if _DATE_TEXT.search(text):
        return ElementType.DATE_FIELD
    lowered = text.lower()
    if "signature" in lowered or "sign here" in lowered:
        return ElementType.SIGNATURE_AREA
    return element_type


def refine_element(
    element: DetectedElement, words: Sequence[OCRWord], proximity: float = 50.0
) -> DetectedElement:
    """Attach nearby text to an element and adjust its type and confidence.

    Elements that were already refined, or that have no words nearby, are
    returned unchanged.

    Args:
        element: Element to refine.
        words: Words recognized over the whole form crop.
        proximity: Maximum centre distance for a word to count as nearby.

    Returns:
        The refined element.
    """
    if element.refined:
        return element

    nearby = [
        word.text
        for word in words
        if is_word_near_element(word.bbox, element.bounding_box, proximity)
    ]
    if not nearby:
        return element

    text = " ".join(nearby).strip()
    element_type = refine_element_type(text, element.element_type)
    confidence = element.confidence
    if element_type != element.element_type:
        confidence *= RETYPE_PENALTY
    confidence = min(confidence + CONTEXT_BOOST, 1.0)

    return replace(
        element,
        element_type=element_type,
        label=classify_label(text, element_type),
        text=text,
        confidence=confidence,
        refined=True,
    )


def calculate_form_confidence(elements: Sequence[DetectedElement]) -> float:
    """Score a form from its elements.

    The mean element confidence is boosted when both a name and an amount
    field were recognized, and again when three or more element types are
    present. The score is capped at 1.0 after each boost.

    Args:
        elements: Elements detected in the form.

    Returns:
        Confidence in [0, 1], 0 for a form without elements.
    """
    if not elements:
        return 0.0

    confidence = sum(element.confidence for element in elements) / len(elements)

    labels = [element.label or "" for element in elements]
    if any("name" in label for label in labels) and any(
        "amount" in label for label in labels
    ):
        confidence = min(confidence + 0.15, 1.0)

    if len({element.element_type for element in elements}) >= 3:
        confidence = min(confidence + 0.1, 1.0)

    return confidence
