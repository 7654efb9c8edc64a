"""
OCR Recognizers
===============

Page image -> positioned text fragments for the line reconstructor.

1. TesseractRecognizer: adaptive preprocessing + pytesseract word boxes
2. EasyOCRRecognizer: lazy loaded, only used as a fallback
3. FallbackRecognizer: Tesseract first, EasyOCR when it fails or confidence is low

Fragment boxes are normalized to 0-1 page units with the origin at the
bottom-left, so a larger y is nearer the top of the page.
"""

import logging
import threading
from dataclasses import dataclass, field
from importlib.util import find_spec
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np
import pytesseract
from PIL import Image

from core.errors import PageRecognitionError
from medical.lab_models import BoundingBox, OcrFragment

logger = logging.getLogger(__name__)


@dataclass
class OcrPage:
    """Recognizer output for one page"""
    fragments: List[OcrFragment] = field(default_factory=list)
    confidence: float = 0.0  # 0-1
    method: str = ''

    def to_dict(self) -> Dict:
        return {
            'fragment_count': len(self.fragments),
            'confidence': round(self.confidence, 2),
            'method': self.method,
        }


def to_array(image: Any) -> np.ndarray:
    """PIL image or array -> numpy array"""
    if isinstance(image, Image.Image):
        return np.array(image.convert('RGB'))
    return np.asarray(image)


def normalize_box(left: float, top: float, width: float, height: float,
                  page_width: int, page_height: int) -> BoundingBox:
    """Pixel box (top-left origin) -> normalized box (bottom-left origin)"""
    return BoundingBox(
        x=left / page_width,
        y=1.0 - (top + height) / page_height,
        width=width / page_width,
        height=height / page_height,
    )


class TesseractRecognizer:
    """
    Tesseract OCR returning one fragment per recognized text line
    """

    def __init__(self,
                 tesseract_cmd: Optional[str] = None,
                 languages: Optional[List[str]] = None,
                 preprocess: bool = True,
                 timeout: Optional[float] = None):
        """
        Initialize recognizer

        Args:
            tesseract_cmd: Path to tesseract executable (None = on PATH)
            languages: Tesseract language codes, default ['eng']
            preprocess: Apply adaptive threshold + deskew first
            timeout: Seconds before tesseract is killed (None = no limit)
        """
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.languages = languages or ['eng']
        self.preprocess = preprocess
        self.timeout = timeout or 0

    def preprocess_image(self, image: np.ndarray) -> np.ndarray:
        """
        Apply preprocessing to improve OCR quality
        """
        if len(image.shape) == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
        else:
            gray = image.copy()

        gray = cv2.adaptiveThreshold(
            gray, 255,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY,
            11, 2
        )
        gray = self._deskew(gray)

        # Scale up small images
        h, w = gray.shape[:2]
        if min(h, w) < 1000:
            scale = 1500 / min(h, w)
            gray = cv2.resize(gray, None, fx=scale, fy=scale, interpolation=cv2.INTER_CUBIC)

        return gray

    def _deskew(self, image: np.ndarray) -> np.ndarray:
        """Deskew rotated image"""
        # Text is dark on a white page after thresholding
        coords = np.column_stack(np.where(image < 128))
        if len(coords) < 10:
            return image

        angle = cv2.minAreaRect(coords.astype(np.float32))[-1]
        if angle > 45:
            angle -= 90
        elif angle < -45:
            angle += 90

        # Only deskew if significant rotation
        if 0.5 < abs(angle) < 10:
            (h, w) = image.shape[:2]
            center = (w // 2, h // 2)
            M = cv2.getRotationMatrix2D(center, angle, 1.0)
            image = cv2.warpAffine(
                image, M, (w, h),
                flags=cv2.INTER_CUBIC,
                borderMode=cv2.BORDER_REPLICATE
            )
        return image

    def read(self, image: Any, page_index: int = 0) -> OcrPage:
        """
        OCR a page image

        Raises:
            PageRecognitionError: tesseract missing, failed or timed out
        """
        array = to_array(image)
        if self.preprocess:
            array = self.preprocess_image(array)
        page_height, page_width = array.shape[:2]

        try:
            data = pytesseract.image_to_data(
                Image.fromarray(array),
                lang='+'.join(self.languages),
                output_type=pytesseract.Output.DICT,
                timeout=self.timeout,
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, RuntimeError) as e:
            raise PageRecognitionError(page_index, str(e))

        # Group words by tesseract line: (block, paragraph, line)
        lines: Dict[Tuple[int, int, int], List[int]] = {}
        for i, text in enumerate(data['text']):
            if float(data['conf'][i]) < 0 or not text.strip():
                continue
            key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
            lines.setdefault(key, []).append(i)

        fragments = []
        confidences = []
        for key in sorted(lines):
            words = lines[key]
            left = min(data['left'][i] for i in words)
            top = min(data['top'][i] for i in words)
            right = max(data['left'][i] + data['width'][i] for i in words)
            bottom = max(data['top'][i] + data['height'][i] for i in words)
            text = ' '.join(data['text'][i].strip() for i in words)

            fragments.append(OcrFragment(
                text,
                normalize_box(left, top, right - left, bottom - top, page_width, page_height),
                page_index,
            ))
            confidences.extend(float(data['conf'][i]) for i in words)

        confidence = float(np.mean(confidences)) / 100 if confidences else 0.0
        return OcrPage(fragments, confidence, 'tesseract')

    def recognize(self, image: Any, page_index: int = 0) -> List[OcrFragment]:
        return self.read(image, page_index).fragments


class EasyOCRRecognizer:
    """
    EasyOCR (better for noisy images). The model is loaded on first use.
    """

    def __init__(self, languages: Optional[List[str]] = None, use_gpu: bool = False):
        self.languages = languages or ['en']
        self.use_gpu = use_gpu
        self._reader = None
        self._lock = threading.Lock()

    @staticmethod
    def available() -> bool:
        return find_spec('easyocr') is not None

    def _load_reader(self):
        with self._lock:
            if self._reader is None:
                import easyocr

                logger.info("Loading EasyOCR for fallback (one-time)")
                self._reader = easyocr.Reader(self.languages, gpu=self.use_gpu)
        return self._reader

    def read(self, image: Any, page_index: int = 0) -> OcrPage:
        array = to_array(image)
        page_height, page_width = array.shape[:2]

        try:
            results = self._load_reader().readtext(array)
        except ImportError as e:
            raise PageRecognitionError(page_index, f"easyocr not installed: {e}")

        fragments = []
        confidences = []
        for bbox, text, conf in results:
            if not text.strip():
                continue
            xs = [point[0] for point in bbox]
            ys = [point[1] for point in bbox]
            fragments.append(OcrFragment(
                text.strip(),
                normalize_box(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys),
                              page_width, page_height),
                page_index,
            ))
            confidences.append(float(conf))

        confidence = float(np.mean(confidences)) if confidences else 0.0
        return OcrPage(fragments, confidence, 'easyocr')

    def recognize(self, image: Any, page_index: int = 0) -> List[OcrFragment]:
        return self.read(image, page_index).fragments


class FallbackRecognizer:
    """
    Tesseract primary, EasyOCR on demand

    The secondary engine runs when the primary fails outright or its mean
    confidence is below the threshold. A low-confidence primary result is
    only replaced if the secondary scores higher.
    """

    CONFIDENCE_THRESHOLD = 0.6

    def __init__(self, primary, secondary=None, confidence_threshold: Optional[float] = None):
        self.primary = primary
        self.secondary = secondary
        self.confidence_threshold = (
            self.CONFIDENCE_THRESHOLD if confidence_threshold is None else confidence_threshold
        )

    def _secondary_usable(self) -> bool:
        if self.secondary is None:
            return False
        available = getattr(self.secondary, 'available', None)
        return available is None or available()

    def read(self, image: Any, page_index: int = 0) -> OcrPage:
        """
        OCR a page, falling back when the primary fails or scores low

        Raises:
            PageRecognitionError: the primary failed and no fallback is installed
        """
        try:
            result = self.primary.read(image, page_index)
        except PageRecognitionError as e:
            if not self._secondary_usable():
                raise
            logger.warning("Page %d: %s, trying %s", page_index + 1, e.reason, type(self.secondary).__name__)
            return self.secondary.read(image, page_index)

        if result.confidence >= self.confidence_threshold:
            return result
        if not self._secondary_usable():
            logger.debug("Page %d: low confidence but no fallback engine installed", page_index + 1)
            return result

        logger.info("Page %d: low confidence (%.0f%%), trying %s",
                    page_index + 1, result.confidence * 100, type(self.secondary).__name__)
        alternative = self.secondary.read(image, page_index)
        if alternative.confidence > result.confidence:
            return alternative
        return result

    def recognize(self, image: Any, page_index: int = 0) -> List[OcrFragment]:
        return self.read(image, page_index).fragments


# =============================================================================
# Convenience Functions
# =============================================================================

def build_recognizer(tesseract_cmd: Optional[str] = None,
                     timeout: Optional[float] = None) -> FallbackRecognizer:
    """Tesseract with the EasyOCR fallback"""
    return FallbackRecognizer(
        TesseractRecognizer(tesseract_cmd=tesseract_cmd, timeout=timeout),
        EasyOCRRecognizer(),
    )
