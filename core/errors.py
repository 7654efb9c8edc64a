"""
Boundary errors for lab extraction.

Content problems never raise; only failures at the document boundary do.
"""


class ExtractionError(Exception):
    """Base class for errors raised by the extraction pipeline"""


class DocumentOpenError(ExtractionError):
    """The document could not be opened or decoded"""

    def __init__(self, path, reason: str = ""):
        self.path = str(path)
        self.reason = reason
        message = f"Could not open document: {self.path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class PageRecognitionError(ExtractionError):
    """OCR failed for a single page"""

    def __init__(self, page_index: int, reason: str = ""):
        self.page_index = page_index
        self.reason = reason
        super().__init__(f"OCR failed on page {page_index + 1}: {reason}")
