"""Configuration management for the donation form OCR system.

Loads and validates YAML configuration with sensible defaults
for preprocessing, OCR, detection, segmentation, and extraction settings.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Tesseract splits its -c options on whitespace, so the space character
# cannot be part of a whitelist; interword spacing is preserved separately.
_DETECTION_WHITELIST = (
    "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz.,@$()-/:"
)
_EXTRACTION_WHITELIST = (
    "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz.,@()-/:$"
)


class PreprocessingConfig(BaseModel):
    """Configuration for page enhancement."""

    deskew_enabled: bool = True
    deskew_angle_threshold: float = 0.5
    contrast_method: str = "linear"
    contrast_alpha: float = 1.5
    brightness_beta: float = 10.0
    clahe_clip_limit: float = 2.0
    clahe_tile_size: int = 8
    denoise_method: str = "gaussian"
    denoise_kernel_size: int = 3
    target_width: int = 2480
    target_height: int = 3508


class OCRConfig(BaseModel):
    """Configuration for the Tesseract engines and PDF rasterization."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    detection_psm: int = 11
    extraction_psm: int = 6
    detection_whitelist: str = _DETECTION_WHITELIST
    extraction_whitelist: str = _EXTRACTION_WHITELIST
    pool_size: int = 1
    pdf_dpi: int = 300
    pdf_max_pages: int = 500


class DetectionConfig(BaseModel):
    """Thresholds for form region and element detection."""

    min_form_area: float = 50_000
    max_form_area_ratio: float = 0.8
    min_aspect_ratio: float = 0.3
    max_aspect_ratio: float = 3.0
    likelihood_threshold: float = 0.5
    likelihood_scale: float = 10.0
    line_kernel_length: int = 40
    checkbox_min_area: float = 100
    checkbox_max_area: float = 2000
    checkbox_min_aspect: float = 0.7
    checkbox_max_aspect: float = 1.4
    text_line_kernel_length: int = 50
    text_field_min_width: int = 80
    text_field_max_height: int = 20
    text_field_label_offset: int = 25
    text_field_height: int = 35
    signature_min_area: float = 5000
    signature_min_aspect: float = 2.0
    signature_max_aspect: float = 5.0
    word_proximity: float = 50.0


class SegmentationConfig(BaseModel):
    """Configuration for field segmentation."""

    padding: int = 5
    amount_upscale: float = 2.0


class ExtractionConfig(BaseModel):
    """Configuration for field extraction and validation."""

    min_amount: int = 25
    max_amount: int = 25000
    confidence_threshold: float = 0.8


class AppConfig(BaseModel):
    """Top-level application configuration."""

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    segmentation: SegmentationConfig = Field(default_factory=SegmentationConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
