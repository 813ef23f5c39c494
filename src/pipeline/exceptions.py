"""Exceptions raised by the donation form OCR pipeline.

Only these reach the caller of ``OCRPipeline.process_document``; every other
failure is absorbed by the stage that hit it and turned into an issue or an
empty result.
"""


class PipelineError(Exception):
    """Base exception for pipeline failures."""


class UnsupportedFormatError(PipelineError):
    """Raised when a document's MIME type is neither PDF nor an image."""

    def __init__(self, mime_type: str) -> None:
        self.mime_type = mime_type
        super().__init__(f"Unsupported file type: {mime_type}")


class PreprocessingError(PipelineError):
    """Raised when an input document cannot be decoded into page images."""


class EngineInitError(PipelineError):
    """Raised when the OCR engine or CV backend cannot be initialized."""
