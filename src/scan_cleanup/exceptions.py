"""
Exceptions raised by scan cleanup.

Everything derives from :class:`ScanCleanupError`, so callers that clean
pages in bulk can catch one type and still read the page path and other
context from ``details``.
"""

from typing import Optional, Any


class ScanCleanupError(Exception):
    """Base exception; ``details`` is appended to the message when printed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} (Details: {details_str})"
        return self.message


class ConfigurationError(ScanCleanupError):
    """A configuration file is missing, unparsable, or has out-of-range thresholds."""


class ProcessingError(ScanCleanupError):
    """A page could not be read or written; records which page and which step."""

    def __init__(self, message: str, processor: Optional[str] = None,
                 image_path: Optional[str] = None, **kwargs: Any) -> None:
        details = kwargs
        if processor:
            details["processor"] = processor
        if image_path:
            details["image_path"] = image_path
        super().__init__(message, details)


class ImageLoadError(ProcessingError):
    """The page file does not exist or OpenCV cannot decode it."""


class ImageSaveError(ProcessingError):
    """The cleaned page cannot be encoded or written to its output path."""


class DirectoryError(ScanCleanupError):
    """The input directory of a batch does not exist."""


class InvalidImageError(ScanCleanupError):
    """An in-memory page is empty or not an RGB uint8 array.

    Raised before any mask or label map is allocated.
    """

    def __init__(self, message: str, shape: Optional[tuple] = None, **kwargs: Any) -> None:
        details = kwargs
        if shape is not None:
            details["shape"] = shape
        super().__init__(message, details)
