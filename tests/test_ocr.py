"""Tests for page sources and OCR recognizers (no tesseract binary needed)"""

import numpy as np
import pytest
from PIL import Image

from core.errors import DocumentOpenError, PageRecognitionError
from ocr import document_extractor, ocr_pipeline
from ocr.document_extractor import ImagePageSource, PdfPageSource, TextPageSource, open_page_source
from ocr.ocr_pipeline import FallbackRecognizer, OcrPage, TesseractRecognizer, normalize_box


# =============================================================================
# Page sources
# =============================================================================

def test_text_source_splits_pages(tmp_path):
    path = tmp_path / 'report.txt'
    path.write_text('Glucose: 95 mg/dL\fSodium 140 mmol/L', encoding='utf-8')
    pages = list(TextPageSource(path))

    assert [p.index for p in pages] == [0, 1]
    assert pages[1].native_text == 'Sodium 140 mmol/L'
    assert not pages[0].needs_ocr()


def test_image_source_renders_rgb(tmp_path):
    path = tmp_path / 'scan.png'
    Image.new('L', (40, 20), color=255).save(path)
    source = ImagePageSource(path)
    pages = list(source)

    assert len(source) == 1
    assert pages[0].needs_ocr()
    image = pages[0].render()
    assert image.mode == 'RGB'
    assert image.size == (40, 20)


def test_corrupt_image_raises(tmp_path):
    path = tmp_path / 'scan.png'
    path.write_bytes(b'not an image')
    with pytest.raises(DocumentOpenError):
        ImagePageSource(path)


def test_missing_pdf_raises(tmp_path):
    with pytest.raises(DocumentOpenError) as info:
        PdfPageSource(tmp_path / 'missing.pdf')
    assert 'missing.pdf' in str(info.value)


def test_unsupported_format(tmp_path):
    with pytest.raises(DocumentOpenError):
        open_page_source(tmp_path / 'report.docx')


def test_open_page_source_dispatch(tmp_path):
    path = tmp_path / 'report.TXT'
    path.write_text('ALT 31 U/L', encoding='utf-8')
    assert isinstance(open_page_source(path), document_extractor.TextPageSource)


# =============================================================================
# Recognizers
# =============================================================================

def test_normalize_box_flips_origin():
    box = normalize_box(10, 20, 110, 10, page_width=200, page_height=100)

    assert box.x == pytest.approx(0.05)
    assert box.y == pytest.approx(0.7)
    assert box.width == pytest.approx(0.55)
    assert box.height == pytest.approx(0.1)


def fake_image_to_data(image, lang='eng', output_type=None, timeout=0):
    return {
        'text': ['', 'ALT', '31', 'U/L', 'AST', '  '],
        'conf': ['-1', '90', '85', '80', '70', '-1'],
        'block_num': [0, 1, 1, 1, 1, 1],
        'par_num': [0, 1, 1, 1, 1, 1],
        'line_num': [0, 1, 1, 1, 2, 2],
        'left': [0, 10, 60, 90, 10, 0],
        'top': [0, 20, 20, 22, 50, 0],
        'width': [200, 40, 20, 30, 40, 0],
        'height': [100, 10, 10, 8, 10, 0],
    }


def test_tesseract_words_grouped_into_line_fragments(monkeypatch):
    monkeypatch.setattr(ocr_pipeline.pytesseract, 'image_to_data', fake_image_to_data)
    recognizer = TesseractRecognizer(preprocess=False)
    page = recognizer.read(np.zeros((100, 200), dtype=np.uint8), page_index=3)

    assert [f.text for f in page.fragments] == ['ALT 31 U/L', 'AST']
    assert all(f.page_index == 3 for f in page.fragments)
    first = page.fragments[0].box
    assert (first.x, first.y, first.width) == (pytest.approx(0.05), pytest.approx(0.7), pytest.approx(0.55))
    assert page.confidence == pytest.approx(0.8125)


def test_tesseract_failure_becomes_page_error(monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("Tesseract process timeout")

    monkeypatch.setattr(ocr_pipeline.pytesseract, 'image_to_data', broken)
    with pytest.raises(PageRecognitionError) as info:
        TesseractRecognizer(preprocess=False).recognize(np.zeros((10, 10), dtype=np.uint8), 1)
    assert info.value.page_index == 1


def test_preprocess_keeps_grayscale_output():
    image = np.full((50, 80, 3), 255, dtype=np.uint8)
    processed = TesseractRecognizer().preprocess_image(image)

    assert processed.ndim == 2
    assert min(processed.shape) >= 1000


class StubEngine:
    def __init__(self, confidence, installed=True):
        self.page = OcrPage([], confidence, f'stub-{confidence}')
        self.installed = installed
        self.reads = 0

    def available(self):
        return self.installed

    def read(self, image, page_index=0):
        self.reads += 1
        return self.page


def test_fallback_only_when_confidence_low():
    primary, secondary = StubEngine(0.9), StubEngine(0.95)
    assert FallbackRecognizer(primary, secondary).read('img').method == 'stub-0.9'
    assert secondary.reads == 0


def test_fallback_keeps_better_result():
    primary, secondary = StubEngine(0.3), StubEngine(0.7)
    assert FallbackRecognizer(primary, secondary).read('img').method == 'stub-0.7'

    primary, secondary = StubEngine(0.3), StubEngine(0.1)
    assert FallbackRecognizer(primary, secondary).read('img').method == 'stub-0.3'


def test_fallback_skipped_when_not_installed():
    primary, secondary = StubEngine(0.3), StubEngine(0.9, installed=False)
    assert FallbackRecognizer(primary, secondary).read('img').method == 'stub-0.3'
    assert secondary.reads == 0


class BrokenEngine:
    def read(self, image, page_index=0):
        raise PageRecognitionError(page_index, "tesseract is not installed or it's not in your PATH")


def test_fallback_used_when_primary_fails():
    secondary = StubEngine(0.4)
    page = FallbackRecognizer(BrokenEngine(), secondary).read('img', page_index=2)

    assert page.method == 'stub-0.4'
    assert secondary.reads == 1


def test_primary_failure_raised_without_fallback():
    with pytest.raises(PageRecognitionError) as info:
        FallbackRecognizer(BrokenEngine(), StubEngine(0.9, installed=False)).read('img', page_index=2)
    assert info.value.page_index == 2

    with pytest.raises(PageRecognitionError):
        FallbackRecognizer(BrokenEngine()).read('img')
