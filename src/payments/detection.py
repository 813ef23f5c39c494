"""Payment method detection from OCR text.

Decides between cash, check, and card payments and pulls card details out
of labelled form text. Brand decisions by number prefix go through the
shared rule table in ``src.payments.cards``.
"""

import re
from dataclasses import dataclass

from src.payments.cards import PREFIX_CARD_TYPES, detect_card_type, get_card_type
from src.pipeline.models import PaymentDetails
from src.utils.logger import get_logger

logger = get_logger(__name__)

KEYWORD_CONFIDENCE = 0.9
NUMBER_PREFIX_CONFIDENCE = 0.8

_CARD_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Mastercard", ("master", "m/c")),
    ("American Express", ("american express", "amex", "am exp", "am/exp")),
    ("Discover", ("discover", "disc")),
)

_CARD_NUMBER_CANDIDATE = re.compile(r"\d{4}\s*\d{4}\s*\d{4}\s*\d{4}|\d{16}")
_LABELLED_CARD_NUMBER = re.compile(
    r"(?:Account No|Credit Card number)[:\s]*(\d{4}\s*\d{4}\s*\d{4}\s*\d{4}|\d{16})",
    re.IGNORECASE,
)
_LABELLED_EXPIRY = re.compile(
    r"(?:Expires on|Exp date)[:\s]*(\d{1,2})[/\-](\d{2,4})", re.IGNORECASE
)
_LABELLED_CVV = re.compile(
    r"(?:Card Verification|CVN|CVV|Verification code)[:\s#]*(\d{3,4})",
    re.IGNORECASE,
)
_SIGNATURE_NAME = re.compile(r"Signature[:\s]*([A-Za-z \t]+)", re.IGNORECASE)

_FREE_CARD_NUMBER = re.compile(
    r"\b(?:\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}|\d{15,16})\b"
)
_FREE_EXPIRY = re.compile(r"\b(0[1-9]|1[0-2])[/-](20\d{2}|\d{2})\b")
_FREE_CVV = re.compile(
    r"(?:cvv|cvc|cid|security\s*code)\s*:?\s*(\d{3,4})", re.IGNORECASE
)
_FREE_CARDHOLDER = re.compile(
    r"(?:cardholder|name\s*on\s*card|card\s*name)\s*:?\s*([A-Za-z \t]{2,40})",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class CardTypeMatch:
    """A brand decision and how sure it is."""

    card_type: str
    confidence: float


@dataclass(frozen=True)
class PaymentResult:
    """Payment method label plus any card details found."""

    payment_method: str
    details: PaymentDetails


def detect_card_type_from_text(text: str) -> CardTypeMatch | None:
    """Find the card brand named or implied by form text.

    Brand keywords win over number prefixes. ``visa`` only counts when
    ``discover`` is absent, since Discover forms often list accepted brands.

    Args:
        text: Raw OCR text.

    Returns:
        The matched brand, or ``None`` when nothing points to a card.
    """
    lowered = text.lower()

    if "visa" in lowered and "discover" not in lowered:
        return CardTypeMatch("Visa", KEYWORD_CONFIDENCE)
    for card_type, keywords in _CARD_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return CardTypeMatch(card_type, KEYWORD_CONFIDENCE)

    for candidate in _CARD_NUMBER_CANDIDATE.findall(text):
        card_type = get_card_type(candidate, PREFIX_CARD_TYPES)
        if card_type is not None:
            return CardTypeMatch(card_type.name, NUMBER_PREFIX_CONFIDENCE)
    return None


def detect_payment(text: str) -> PaymentResult:
    """Classify the payment method of a form and extract card details.

    Args:
        text: Raw OCR text of the whole form or its joined segments.

    Returns:
        ``Cash``, ``Check``, ``Credit Card (<brand>)`` or ``Unknown``, with
        card details filled in only for card payments.
    """
    lowered = text.lower()
    if "cash" in lowered and ("X" in text or "✓" in text):
        return PaymentResult("Cash", PaymentDetails())
    if "check" in lowered:
        return PaymentResult("Check", PaymentDetails())

    match = detect_card_type_from_text(text)
    if match is None:
        return PaymentResult("Unknown", PaymentDetails())

    logger.debug(
        "Detected card type %s (confidence %.1f)", match.card_type, match.confidence
    )

    card_number = ""
    number_match = _LABELLED_CARD_NUMBER.search(text)
    if number_match:
        card_number = re.sub(r"\s", "", number_match.group(1))

    expiry = ""
    expiry_match = _LABELLED_EXPIRY.search(text)
    if expiry_match:
        month = expiry_match.group(1).zfill(2)
        expiry = f"{month}/{expiry_match.group(2)[-2:]}"

    cvv_match = _LABELLED_CVV.search(text)
    name_match = _SIGNATURE_NAME.search(text)

    details = PaymentDetails(
        card_type=match.card_type,
        card_number=card_number,
        expiry_date=expiry,
        cvv=cvv_match.group(1) if cvv_match else "",
        cardholder_name=name_match.group(1).strip() if name_match else "",
    )
    return PaymentResult(f"Credit Card ({match.card_type})", details)


def extract_payment_info(text: str) -> PaymentDetails:
    """Pull card fields out of unlabelled free text.

    Unlike ``detect_payment`` this does not require form labels: the first
    card-shaped number, ``MM/YY`` expiry, security code and cardholder name
    found anywhere in the text are returned.

    Args:
        text: Free text such as a typed card block.

    Returns:
        Card details; fields not found stay empty.
    """
    card_number = ""
    card_type = ""
    number_match = _FREE_CARD_NUMBER.search(text)
    if number_match:
        card_number = re.sub(r"[\s-]", "", number_match.group(0))
        card_type = detect_card_type(card_number)
        logger.debug("Detected card type: %s", card_type)

    expiry_match = _FREE_EXPIRY.search(text)
    cvv_match = _FREE_CVV.search(text)
    name_match = _FREE_CARDHOLDER.search(text)

    return PaymentDetails(
        card_type=card_type,
        card_number=card_number,
        expiry_date=expiry_match.group(0) if expiry_match else "",
        cvv=cvv_match.group(1) if cvv_match else "",
        cardholder_name=name_match.group(1).strip() if name_match else "",
    )
