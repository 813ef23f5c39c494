"""Card brand rules shared by every stage that looks at card numbers.

One ordered table maps issuer prefixes to brands. Precise ranges come first;
the broad ``5`` and ``6`` prefixes sit at the end so they only catch numbers
no precise rule claimed.
"""

import re
from dataclasses import dataclass

UNKNOWN_CARD = "Unknown"

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class CardType:
    """Formatting and validation rules for one card brand."""

    name: str
    pattern: re.Pattern[str]
    gaps: tuple[int, ...]
    lengths: tuple[int, ...]
    code_name: str
    code_size: int


CARD_TYPES: tuple[CardType, ...] = (
    CardType("Visa", re.compile(r"^4"), (4, 8, 12), (13, 16, 19), "CVV", 3),
    CardType(
        "Mastercard",
        re.compile(r"^(5[1-5]|222[1-9]|22[3-9]\d|2[3-6]\d\d|27[01]\d|2720)"),
        (4, 8, 12),
        (16,),
        "CVC",
        3,
    ),
    CardType("American Express", re.compile(r"^3[47]"), (4, 10), (15,), "CID", 4),
    CardType(
        "Discover",
        re.compile(r"^(6011|65|64[4-9]|622)"),
        (4, 8, 12),
        (16,),
        "CID",
        3,
    ),
    CardType(
        "Diners Club", re.compile(r"^(30[0-5]|36|38)"), (4, 10), (14,), "CVV", 3
    ),
    CardType("JCB", re.compile(r"^35"), (4, 8, 12), (16,), "CVV", 3),
    CardType("UnionPay", re.compile(r"^62"), (4, 8, 12), (16, 17, 18, 19), "CVN", 3),
    CardType("Mastercard", re.compile(r"^5"), (4, 8, 12), (16,), "CVC", 3),
    CardType("Discover", re.compile(r"^6"), (4, 8, 12), (16,), "CID", 3),
)


def _digits(number: str) -> str:
    return _NON_DIGITS.sub("", number)


# Brands a bare number prefix on a form may name; other issuers read as unknown.
PREFIX_BRANDS = frozenset({"Visa", "Mastercard", "American Express", "Discover"})

PREFIX_CARD_TYPES: tuple[CardType, ...] = tuple(
    card_type for card_type in CARD_TYPES if card_type.name in PREFIX_BRANDS
)


def get_card_type(
    number: str, card_types: tuple[CardType, ...] = CARD_TYPES
) -> CardType | None:
    """Return the first rule whose prefix matches the number's digits."""
    digits = _digits(number)
    if not digits:
        return None
    for card_type in card_types:
        if card_type.pattern.match(digits):
            return card_type
    return None


def detect_card_type(number: str) -> str:
    """Return the brand name for a card number, or ``"Unknown"``.

    Args:
        number: Card number, possibly with spaces or dashes.

    Returns:
        Brand name from the shared rule table.
    """
    card_type = get_card_type(number)
    return card_type.name if card_type else UNKNOWN_CARD


def validate_card_number(number: str) -> bool:
    """Check a card number with the Luhn checksum.

    Numbers outside 13-19 digits are rejected before the checksum runs.

    Args:
        number: Card number, possibly with spaces or dashes.

    Returns:
        True when the length is plausible and the checksum holds.
    """
    digits = _digits(number)
    if not 13 <= len(digits) <= 19:
        return False

    total = 0
    for position, char in enumerate(reversed(digits)):
        value = int(char)
        if position % 2 == 1:
            value *= 2
            if value > 9:
                value -= 9
        total += value
    return total % 10 == 0


def format_card_number(number: str, card_type: str | None = None) -> str:
    """Insert spaces at the brand's digit-group gaps.

    Args:
        number: Card number digits (non-digits are ignored). Masking
            asterisks are kept.
        card_type: Brand name to format for. Detected from the number
            when omitted.

    Returns:
        Grouped number, using groups of four when the brand is unknown.
    """
    cleaned = re.sub(r"[^\d*]", "", number)
    rule = None
    if card_type:
        rule = next((c for c in CARD_TYPES if c.name == card_type), None)
    else:
        rule = get_card_type(cleaned)

    if rule is None:
        return " ".join(cleaned[i : i + 4] for i in range(0, len(cleaned), 4))

    parts = []
    start = 0
    for gap in rule.gaps:
        if gap >= len(cleaned):
            break
        parts.append(cleaned[start:gap])
        start = gap
    parts.append(cleaned[start:])
    return " ".join(part for part in parts if part)


def mask_card_number(number: str, visible_digits: int = 4) -> str:
    """Replace all but the last digits with asterisks, then format.

    Args:
        number: Card number, possibly with spaces or dashes.
        visible_digits: How many trailing digits stay readable.

    Returns:
        Masked number grouped like the brand would print it. Numbers not
        longer than ``visible_digits`` are masked completely.
    """
    digits = _digits(number)
    if len(digits) <= visible_digits:
        return "*" * len(digits)

    card_type = detect_card_type(digits)
    masked = "*" * (len(digits) - visible_digits) + digits[-visible_digits:]
    return format_card_number(
        masked, None if card_type == UNKNOWN_CARD else card_type
    )
