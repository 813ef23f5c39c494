"""Data-quality rules for extracted donation records.

Each rule inspects the extracted fields and, when it fails, contributes a
human-readable issue. Issues flag records for review; they never stop a
record from being emitted.
"""

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from src.pipeline.models import DonationFields
from src.utils.logger import get_logger

logger = get_logger(__name__)

DONOR_NAME_ISSUE = "Donor name could not be extracted clearly"
EMAIL_ISSUE = "Email format appears incorrect"
PHONE_ISSUE = "Phone number could not be extracted"
AMOUNT_ISSUE = "Donation amount could not be determined"
CONFIDENCE_ISSUE = "OCR confidence is below optimal threshold"

_EMAIL_FORMAT = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a single rule."""

    rule_name: str
    is_valid: bool
    message: str


class DonationRulesEngine:
    """Applies the donation record quality rules.

    Args:
        confidence_threshold: Records below this confidence (0-1) are
            flagged for review.
    """

    def __init__(self, confidence_threshold: float = 0.8) -> None:
        self.confidence_threshold = confidence_threshold
        self._rules: dict[str, Callable[[DonationFields, float], ValidationResult]] = {
            "donor_name": self._validate_donor_name,
            "email": self._validate_email,
            "phone": self._validate_phone,
            "amount": self._validate_amount,
            "confidence": self._validate_confidence,
        }

    def check(self, fields: DonationFields, confidence: float) -> list[ValidationResult]:
        """Run every rule.

        Args:
            fields: Extracted donation fields.
            confidence: Record confidence in [0, 1].

        Returns:
            One result per rule, in rule order.
        """
        return [rule(fields, confidence) for rule in self._rules.values()]

    def validate(
        self,
        fields: DonationFields,
        confidence: float,
        existing_issues: Iterable[str] = (),
    ) -> tuple[str, ...]:
        """Merge rule failures into a record's issue list.

        Args:
            fields: Extracted donation fields.
            confidence: Record confidence in [0, 1].
            existing_issues: Issues already raised while extracting.

        Returns:
            Existing issues followed by new ones, without duplicates.
        """
        issues = list(dict.fromkeys(existing_issues))
        for result in self.check(fields, confidence):
            if not result.is_valid and result.message not in issues:
                issues.append(result.message)

        logger.debug("Validation produced %d issue(s)", len(issues))
        return tuple(issues)

    def _validate_donor_name(self, fields: DonationFields, confidence: float) -> ValidationResult:
        if len(fields.donor_name) < 2:
            return ValidationResult("donor_name", False, DONOR_NAME_ISSUE)
        return ValidationResult("donor_name", True, "Donor name present")

    def _validate_email(self, fields: DonationFields, confidence: float) -> ValidationResult:
        """Only a present but malformed email fails; a missing one is fine."""
        if fields.email and not _EMAIL_FORMAT.match(fields.email):
            return ValidationResult("email", False, EMAIL_ISSUE)
        return ValidationResult("email", True, "Email acceptable")

    def _validate_phone(self, fields: DonationFields, confidence: float) -> ValidationResult:
        if not fields.phone:
            return ValidationResult("phone", False, PHONE_ISSUE)
        return ValidationResult("phone", True, "Phone present")

    def _validate_amount(self, fields: DonationFields, confidence: float) -> ValidationResult:
        if fields.amount <= 0:
            return ValidationResult("amount", False, AMOUNT_ISSUE)
        return ValidationResult("amount", True, f"Amount {fields.amount:.2f}")

    def _validate_confidence(self, fields: DonationFields, confidence: float) -> ValidationResult:
        if confidence < self.confidence_threshold:
            return ValidationResult("confidence", False, CONFIDENCE_ISSUE)
        return ValidationResult("confidence", True, "Confidence acceptable")
