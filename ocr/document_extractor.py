"""
Document Page Sources
=====================

Turns an input file into PageContent items, one per page, in page order:
1. PDF: text layer via pypdf, rasterized on demand via pdf2image (scans)
2. Images: PNG/JPG/TIFF/BMP via Pillow (multi-frame TIFF = multiple pages)
3. Plain text: form-feed separated pages

Native text is preferred; a page is only rendered when the pipeline
decides it needs OCR. Files that cannot be opened raise DocumentOpenError.
"""

import logging
from functools import partial
from pathlib import Path
from typing import Iterator, List, Optional

from PIL import Image, ImageSequence, UnidentifiedImageError

from core.errors import DocumentOpenError
from core.pipeline import PageContent

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ['.png', '.jpg', '.jpeg', '.tiff', '.tif', '.bmp']
TEXT_EXTENSIONS = ['.txt']


class PdfPageSource:
    """
    PDF pages with native text where present, rendered images otherwise
    """

    def __init__(self, pdf_path, dpi: int = 200, poppler_path: Optional[str] = None):
        """
        Open the PDF

        Args:
            pdf_path: Path to PDF file
            dpi: Rasterization DPI for pages that need OCR
            poppler_path: Poppler bin directory (None = on PATH)
        """
        from pypdf import PdfReader

        self.path = Path(pdf_path)
        self.dpi = dpi
        self.poppler_path = poppler_path

        if not self.path.is_file():
            raise DocumentOpenError(self.path, "file not found")
        try:
            self.reader = PdfReader(str(self.path))
            self.page_count = len(self.reader.pages)
        except Exception as e:
            raise DocumentOpenError(self.path, str(e))

    def __len__(self) -> int:
        return self.page_count

    def __iter__(self) -> Iterator[PageContent]:
        for index in range(self.page_count):
            yield PageContent(index, self._page_text(index), partial(self.render_page, index))

    def _page_text(self, index: int) -> str:
        try:
            return self.reader.pages[index].extract_text() or ""
        except Exception as e:
            # Broken text layer: the page is OCR'd instead
            logger.warning("Text layer unreadable on page %d of %s: %s", index + 1, self.path.name, e)
            return ""

    def render_page(self, index: int) -> Image.Image:
        """Rasterize a single page (1 image) for OCR"""
        from pdf2image import convert_from_path

        images = convert_from_path(
            str(self.path),
            dpi=self.dpi,
            first_page=index + 1,
            last_page=index + 1,
            poppler_path=self.poppler_path,
        )
        return images[0]


class ImagePageSource:
    """
    Scanned image file; every frame is a page that needs OCR
    """

    def __init__(self, image_path):
        self.path = Path(image_path)
        try:
            with Image.open(self.path) as img:
                self.page_count = getattr(img, 'n_frames', 1)
        except (OSError, UnidentifiedImageError) as e:
            raise DocumentOpenError(self.path, str(e))

    def __len__(self) -> int:
        return self.page_count

    def __iter__(self) -> Iterator[PageContent]:
        for index in range(self.page_count):
            yield PageContent(index, "", partial(self.render_page, index))

    def render_page(self, index: int) -> Image.Image:
        with Image.open(self.path) as img:
            for i, frame in enumerate(ImageSequence.Iterator(img)):
                if i == index:
                    return frame.convert('RGB')
        raise IndexError(f"{self.path.name} has no page {index + 1}")


class TextPageSource:
    """
    Plain text export of a report; form feeds separate pages
    """

    def __init__(self, text_path):
        self.path = Path(text_path)
        try:
            text = self.path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentOpenError(self.path, str(e))
        self.pages: List[str] = text.split('\f')

    def __len__(self) -> int:
        return len(self.pages)

    def __iter__(self) -> Iterator[PageContent]:
        for index, text in enumerate(self.pages):
            yield PageContent(index, text)


# =============================================================================
# Convenience Functions
# =============================================================================

def open_page_source(file_path, dpi: int = 200, poppler_path: Optional[str] = None):
    """
    Auto-detect file type and open the matching page source

    Args:
        file_path: Path to PDF, image or text file

    Returns:
        Iterable of PageContent

    Raises:
        DocumentOpenError: unsupported or unreadable file
    """
    path = Path(file_path)
    ext = path.suffix.lower()

    if ext == '.pdf':
        return PdfPageSource(path, dpi=dpi, poppler_path=poppler_path)
    elif ext in IMAGE_EXTENSIONS:
        return ImagePageSource(path)
    elif ext in TEXT_EXTENSIONS:
        return TextPageSource(path)
    else:
        raise DocumentOpenError(path, f"unsupported format: {ext or 'none'}")
