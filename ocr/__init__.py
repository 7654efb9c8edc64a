# OCR modules
from .document_extractor import ImagePageSource, PdfPageSource, TextPageSource, open_page_source
from .ocr_pipeline import EasyOCRRecognizer, FallbackRecognizer, OcrPage, TesseractRecognizer, build_recognizer

__all__ = [
    'EasyOCRRecognizer',
    'FallbackRecognizer',
    'ImagePageSource',
    'OcrPage',
    'PdfPageSource',
    'TesseractRecognizer',
    'TextPageSource',
    'build_recognizer',
    'open_page_source',
]
