"""Exception types raised by the OMR grading package.

Per-page problems (low quality, no marks found) are normally recorded on the
sheet result instead of being raised, so that one bad page never aborts a
batch. The exceptions below are raised where the caller has to act: the
whole document could not be read, or the answer key does not fit the sheets.
"""
from typing import Optional


class OMRError(Exception):
    """Base class for all errors raised by this package."""


class DocumentDecodeError(OMRError):
    """The input bytes could not be parsed as a PDF or as an image.

    Not retryable: the user has to supply a different file.
    """

    def __init__(self, message: str = "Failed to read the file. Please try a different file format (PDF, JPG, PNG or BMP)."):
        super().__init__(message)


class ProcessingTimeoutError(OMRError):
    """Reading the document took longer than the configured timeout."""


class LowQualityError(OMRError):
    """The sheet is below the resolution, sharpness or contrast floor."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NoSignalError(OMRError):
    """No marks could be recognized on the page, even with text recognition."""


class KeyMismatchError(OMRError):
    """The answer key and a student's answers have different lengths."""

    def __init__(self, expected: int, actual: int, page_number: Optional[int] = None, source: Optional[str] = None):
        location = ""
        if source:
            location += f" in {source}"
        if page_number is not None:
            location += f" (page {page_number})"
        super().__init__(
            f"Answer key has {expected} questions but the sheet{location} has {actual} answers"
        )
        self.expected = expected
        self.actual = actual
        self.page_number = page_number
        self.source = source
