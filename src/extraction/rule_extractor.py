"""Rule-based field extraction using regex patterns.

Extracts donor name, email, phone, address, amount, date and recurrence
from the OCR text of a donation form, either from a single field crop or
from the text of a whole form.
"""

import re

from src.payments.detection import detect_payment
from src.pipeline.models import DonationFields
from src.utils.logger import get_logger

logger = get_logger(__name__)

_AMOUNT = re.compile(r"\$(\d{1,3}(?:,\d{3})*)")
_EMAIL_FORMAT = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Segment crops hold only the written value: month first, no label.
_SEGMENT_DATE = re.compile(r"\b(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})\b")
# Whole-form text carries a "Date:" label and is written day first.
_LABELED_DATE = re.compile(r"Date[:\s]*(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})", re.IGNORECASE)

# Names stay on one line; ``\s`` would run into the next label.
_FIRST_NAME = re.compile(r"First Name[:\s]*([A-Za-z \t]+)", re.IGNORECASE)
_LAST_NAME = re.compile(r"Last Name[:\s]*([A-Za-z \t]+)", re.IGNORECASE)
_TITLED_NAME = re.compile(r"(?:Mr\.|Ms\.)[:\s]*([A-Za-z \t]+)", re.IGNORECASE)
_LABELED_EMAIL = re.compile(
    r"E[-\s]?[Mm]ail[:\s]*([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})",
    re.IGNORECASE,
)
_LABELED_PHONE = re.compile(
    r"(?:Phone|Telephone)[:\s]*\(?(\d{3})\)?[-.\s]*(\d{3})[-.\s]*(\d{4})",
    re.IGNORECASE,
)
_ADDRESS = re.compile(r"Address[:\s]*([^\n]+)", re.IGNORECASE)
_CITY_STATE_ZIP = re.compile(
    r"City[:\s]*([^,\n]+)[\s,]*State[:\s]*([A-Z]{2})[\s,]*Zip(?:\s*Code)?[:\s]*(\d{5})",
    re.IGNORECASE,
)


class RuleExtractor:
    """Regex-based extractor for donation form fields.

    Args:
        min_amount: Smallest amount accepted as a donation.
        max_amount: Largest amount accepted as a donation.
    """

    def __init__(self, min_amount: int = 25, max_amount: int = 25000) -> None:
        self.min_amount = min_amount
        self.max_amount = max_amount

    def extract_amount(self, text: str) -> int:
        """Return the first dollar amount inside the donation band.

        Only ``$``-prefixed, comma-grouped whole dollars are considered;
        cents are ignored.

        Args:
            text: OCR text.

        Returns:
            The amount, or 0 when no candidate falls inside the band.
        """
        for match in _AMOUNT.finditer(text):
            amount = int(match.group(1).replace(",", ""))
            if self.min_amount <= amount <= self.max_amount:
                return amount
        return 0

    def extract_segment_date(self, text: str) -> str | None:
        """Parse ``MM/DD/YYYY`` or ``MM-DD-YYYY`` into ``YYYY-MM-DD``."""
        match = _SEGMENT_DATE.search(text)
        if not match:
            return None
        month, day, year = match.groups()
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"

    def extract_labeled_date(self, text: str) -> str | None:
        """Parse ``Date: DD/MM/YYYY`` (or ``-``) into ``YYYY-MM-DD``."""
        match = _LABELED_DATE.search(text)
        if not match:
            return None
        day, month, year = match.groups()
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"

    @staticmethod
    def is_valid_email(email: str) -> bool:
        return bool(_EMAIL_FORMAT.match(email))

    def extract_donor_name(self, text: str) -> str:
        first = _FIRST_NAME.search(text)
        last = _LAST_NAME.search(text)
        if first and last:
            return f"{first.group(1).strip()} {last.group(1).strip()}"
        titled = _TITLED_NAME.search(text)
        if titled:
            return titled.group(1).strip()
        return ""

    def extract_address(self, text: str) -> str:
        match = _ADDRESS.search(text)
        if not match:
            return ""
        address = match.group(1).strip()
        city = _CITY_STATE_ZIP.search(text)
        if city:
            address += f", {city.group(1).strip()}, {city.group(2)} {city.group(3)}"
        return address

    def parse_form_text(self, text: str) -> DonationFields:
        """Extract every donation field from the text of a whole form.

        Args:
            text: OCR text of a form or page.

        Returns:
            Extracted fields; anything not found keeps its empty default.
        """
        email = _LABELED_EMAIL.search(text)
        phone = _LABELED_PHONE.search(text)
        payment = detect_payment(text)
        lowered = text.lower()

        fields = DonationFields(
            donor_name=self.extract_donor_name(text),
            email=email.group(1).strip() if email else "",
            phone=f"({phone.group(1)}) {phone.group(2)}-{phone.group(3)}" if phone else "",
            address=self.extract_address(text),
            amount=float(self.extract_amount(text)),
            payment_method=payment.payment_method,
            payment_details=payment.details,
            date=self.extract_labeled_date(text) or "",
            recurring="monthly" in lowered and "one time" not in lowered,
        )
        logger.debug("Parsed form text into fields for %r", fields.donor_name)
        return fields
