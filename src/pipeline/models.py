"""Data records passed between the pipeline stages.

Every record is a frozen dataclass. Stages build new records with
``dataclasses.replace`` instead of mutating the ones they receive.
Records that carry pixel buffers compare by identity (``eq=False``).
"""

from dataclasses import asdict, dataclass, field
from enum import StrEnum

import numpy as np


@dataclass(frozen=True, eq=False)
class RawDocument:
    """An uploaded document as received from the caller."""

    file_name: str
    content: bytes
    mime_type: str


@dataclass(frozen=True, eq=False)
class PageImage:
    """One rasterized page.

    Attributes:
        image: Pixel buffer (H x W or H x W x C, uint8).
        width: Width in pixels; always equals ``image.shape[1]``.
        height: Height in pixels; always equals ``image.shape[0]``.
        page_number: 1-based page index within the document.
    """

    image: np.ndarray
    width: int
    height: int
    page_number: int

    def __post_init__(self) -> None:
        actual_height, actual_width = self.image.shape[:2]
        if (self.width, self.height) != (actual_width, actual_height):
            raise ValueError(
                f"Declared size {self.width}x{self.height} does not match "
                f"image size {actual_width}x{actual_height}"
            )
        if self.page_number < 1:
            raise ValueError(f"Page numbers are 1-based, got {self.page_number}")

    @classmethod
    def from_array(cls, image: np.ndarray, page_number: int) -> "PageImage":
        """Build a page whose dimensions are taken from the array."""
        height, width = image.shape[:2]
        return cls(image=image, width=width, height=height, page_number=page_number)


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned rectangle in pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Bounding box must have positive size, got {self.width}x{self.height}"
            )
        if self.x < 0 or self.y < 0:
            raise ValueError(
                f"Bounding box origin must be non-negative, got ({self.x}, {self.y})"
            )

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def padded(self, pixels: int) -> "BoundingBox":
        """Grow the box by ``pixels`` on every side, clamping the origin at 0.

        The size always grows by ``2 * pixels`` even when the origin is
        clamped; cropping clips to the image bounds.
        """
        return BoundingBox(
            x=max(0, self.x - pixels),
            y=max(0, self.y - pixels),
            width=self.width + 2 * pixels,
            height=self.height + 2 * pixels,
        )

    def crop(self, image: np.ndarray) -> np.ndarray:
        """Return the part of ``image`` covered by this box.

        Raises:
            ValueError: If the box lies entirely outside the image.
        """
        region = image[self.y : self.y + self.height, self.x : self.x + self.width]
        if region.size == 0:
            raise ValueError(f"Empty crop for box {self} on image {image.shape}")
        return region


class ElementType(StrEnum):
    """Kinds of visual elements found inside a form."""

    TEXT_FIELD = "text_field"
    CHECKBOX = "checkbox"
    SIGNATURE_AREA = "signature_area"
    AMOUNT_FIELD = "amount_field"
    DATE_FIELD = "date_field"


@dataclass(frozen=True)
class DetectedElement:
    """A form element located on the page."""

    element_type: ElementType
    bounding_box: BoundingBox
    confidence: float
    label: str | None = None
    text: str | None = None
    refined: bool = False


@dataclass(frozen=True, eq=False)
class DetectedForm:
    """A form region and the elements detected inside it."""

    form_id: str
    page_number: int
    bounding_box: BoundingBox
    confidence: float
    image: np.ndarray
    elements: tuple[DetectedElement, ...] = ()


@dataclass(frozen=True, eq=False)
class FieldSegment:
    """A cropped, conditioned field image ready for OCR."""

    field_id: str
    field_type: ElementType
    label: str | None
    bounding_box: BoundingBox
    image: np.ndarray
    confidence: float
    preprocessed: bool = True


@dataclass(frozen=True, eq=False)
class SegmentedForm:
    """All segments cut from one detected form.

    ``error`` holds the reason when segmentation of the whole form failed.
    """

    form_id: str
    page_number: int
    confidence: float
    segments: tuple[FieldSegment, ...] = ()
    form_image: np.ndarray | None = None
    error: str | None = None


@dataclass(frozen=True)
class PaymentDetails:
    """Card details found on a form. Empty strings mean unknown."""

    card_type: str = ""
    card_number: str = ""
    expiry_date: str = ""
    cvv: str = ""
    cardholder_name: str = ""


@dataclass(frozen=True)
class DonationFields:
    """Structured donor and payment fields of one form."""

    donor_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    amount: float = 0.0
    payment_method: str = ""
    payment_details: PaymentDetails = field(default_factory=PaymentDetails)
    date: str = ""
    recurring: bool = False
    anonymous: bool = False


@dataclass(frozen=True)
class ExtractedFormData:
    """Final record for one form."""

    form_number: int
    confidence: float
    fields: DonationFields = field(default_factory=DonationFields)
    issues: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        """Serialize to plain JSON-compatible types."""
        data = asdict(self)
        data["issues"] = list(self.issues)
        return data
