"""
Lab Extraction Pipeline
=======================

Page-level driver around the lab parsing core:
1. Pages come from a page source in document order
2. Smart routing per page: native text when present, OCR otherwise
3. OCR pages run concurrently (one recognizer call per page)
4. Lines are concatenated in page order, never completion order
5. The combined lines go through LabReportParser once

Cancellation is cooperative between pages: pages already handed to OCR run
to completion and their lines are kept. A failing or timed-out OCR page
contributes zero lines; the rest of the document is still processed.
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from medical.lab_models import (
    ExtractionReport,
    OcrFragment,
    PageReport,
    PageSourceKind,
    ParseTrace,
    RawLine,
    lines_from_text,
    record,
)
from medical.lab_report_parser import LabReportParser
from medical.line_geometry import LineGeometryReconstructor

from .config import PipelineConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageContent:
    """
    One page from a page source.

    native_text is whatever the document's text layer held ("" when none);
    render() produces an image for OCR and is only called when needed.
    """
    index: int
    native_text: str = ""
    render: Optional[Callable[[], Any]] = None

    def needs_ocr(self) -> bool:
        return not self.native_text.strip()


class TextRecognizer(Protocol):
    """Anything that turns a page image into OCR fragments"""

    def recognize(self, image: Any, page_index: int = 0) -> List[OcrFragment]:
        ...


class LabExtractionPipeline:
    """
    Production pipeline: page source -> lines -> lab results
    """

    def __init__(self,
                 recognizer: Optional[TextRecognizer] = None,
                 config: Optional[PipelineConfig] = None):
        """
        Initialize the pipeline

        Args:
            recognizer: OCR engine used for pages without native text
            config: Pipeline settings (workers, OCR timeout, parser tunables)
        """
        self.config = config or PipelineConfig()
        self.recognizer = recognizer
        self.parser = LabReportParser(self.config.parser)
        self.geometry = LineGeometryReconstructor(self.config.parser.geometry)

    def extract(self,
                pages: Iterable[PageContent],
                cancel_event: Optional[threading.Event] = None,
                trace: Optional[ParseTrace] = None) -> ExtractionReport:
        """
        Extract lab results from every page

        Args:
            pages: Page source, in document order
            cancel_event: Set to abandon pages not yet started
            trace: Optional diagnostics collector

        Returns:
            ExtractionReport; partial when cancelled
        """
        page_lines: Dict[int, List[RawLine]] = {}
        page_reports: Dict[int, PageReport] = {}
        in_flight: Dict[Future, Tuple[PageContent, float]] = {}
        cancelled = False
        abandoned = False

        executor = ThreadPoolExecutor(max_workers=self.config.max_workers)
        try:
            for page in pages:
                if cancel_event is not None and cancel_event.is_set():
                    if not cancelled:
                        logger.info("Extraction cancelled before page %d", page.index + 1)
                    cancelled = True
                    page_reports[page.index] = PageReport(page.index, PageSourceKind.SKIPPED)
                    continue

                if not page.needs_ocr():
                    lines = lines_from_text(page.native_text)
                    page_lines[page.index] = lines
                    page_reports[page.index] = PageReport(page.index, PageSourceKind.NATIVE, len(lines))
                    record(trace, 'page', None, f"page {page.index + 1}: {len(lines)} native lines")
                    continue

                if self.recognizer is None or page.render is None:
                    reason = "no text layer and no OCR available"
                    logger.warning("Page %d: %s", page.index + 1, reason)
                    page_lines[page.index] = []
                    page_reports[page.index] = PageReport(page.index, PageSourceKind.FAILED, error=reason)
                    continue

                abandoned |= self._collect(in_flight, page_lines, page_reports, self.config.max_workers - 1)
                future = executor.submit(self._recognize_page, page)
                in_flight[future] = (page, time.monotonic())

            abandoned |= self._collect(in_flight, page_lines, page_reports, 0)
        finally:
            executor.shutdown(wait=not abandoned)

        lines = self._concatenate(page_lines)
        report = self.parser.parse_lines(lines, trace)
        report.pages = [page_reports[i] for i in sorted(page_reports)]
        report.cancelled = cancelled
        return report

    def _recognize_page(self, page: PageContent) -> List[RawLine]:
        image = page.render()
        fragments = self.recognizer.recognize(image, page.index)
        return self.geometry.reconstruct(fragments)

    def _collect(self,
                 in_flight: Dict[Future, Tuple[PageContent, float]],
                 page_lines: Dict[int, List[RawLine]],
                 page_reports: Dict[int, PageReport],
                 limit: int) -> bool:
        """
        Wait until at most `limit` OCR pages are still running

        Returns:
            True if a page was abandoned after exceeding the OCR timeout
        """
        abandoned = False
        timeout = self.config.ocr_timeout

        while len(in_flight) > max(limit, 0):
            wait_for = None
            if timeout is not None:
                earliest = min(started for _, started in in_flight.values())
                wait_for = max(0.0, earliest + timeout - time.monotonic())

            done, _ = wait(list(in_flight), timeout=wait_for, return_when=FIRST_COMPLETED)

            for future in done:
                page, _ = in_flight.pop(future)
                try:
                    lines = future.result()
                except Exception as e:
                    logger.warning("OCR failed on page %d: %s", page.index + 1, e)
                    page_lines[page.index] = []
                    page_reports[page.index] = PageReport(page.index, PageSourceKind.FAILED, error=str(e))
                else:
                    page_lines[page.index] = lines
                    page_reports[page.index] = PageReport(page.index, PageSourceKind.OCR, len(lines))

            if timeout is not None:
                now = time.monotonic()
                for future, (page, started) in list(in_flight.items()):
                    if now - started >= timeout and not future.done():
                        logger.warning("OCR timed out on page %d after %.1fs", page.index + 1, timeout)
                        future.cancel()
                        del in_flight[future]
                        page_lines[page.index] = []
                        page_reports[page.index] = PageReport(
                            page.index, PageSourceKind.FAILED, error=f"timed out after {timeout}s")
                        abandoned = True

        return abandoned

    @staticmethod
    def _concatenate(page_lines: Dict[int, List[RawLine]]) -> List[RawLine]:
        """Join page lines in page order with one running line index"""
        combined: List[RawLine] = []
        for index in sorted(page_lines):
            for line in page_lines[index]:
                combined.append(RawLine(line.text, len(combined)))
        return combined

    def extract_file(self,
                     file_path: str,
                     cancel_event: Optional[threading.Event] = None,
                     trace: Optional[ParseTrace] = None) -> ExtractionReport:
        """
        Auto-detect file type and extract lab results

        Args:
            file_path: Path to a PDF, image or text file

        Returns:
            ExtractionReport

        Raises:
            DocumentOpenError: the file could not be opened or decoded
        """
        from ocr.document_extractor import open_page_source

        source = open_page_source(file_path, dpi=self.config.dpi, poppler_path=self.config.poppler_path)
        logger.info("Extracting lab results from %s", Path(file_path).name)
        return self.extract(source, cancel_event, trace)

    def extract_batch(self, input_dir: str, pattern: str = "*.*",
                      limit: Optional[int] = None) -> Dict[str, ExtractionReport]:
        """
        Process all matching files in a directory

        Documents that fail to open are logged and left out of the result.
        """
        from .errors import DocumentOpenError

        files = sorted(p for p in Path(input_dir).glob(pattern) if p.is_file())
        if limit:
            files = files[:limit]

        reports: Dict[str, ExtractionReport] = {}
        for i, path in enumerate(files, 1):
            logger.info("[%d/%d] %s", i, len(files), path.name)
            try:
                reports[str(path)] = self.extract_file(str(path))
            except DocumentOpenError as e:
                logger.error("%s", e)
        return reports


def build_default_pipeline(config: Optional[PipelineConfig] = None) -> LabExtractionPipeline:
    """Pipeline with Tesseract OCR and the EasyOCR fallback, configured from the environment"""
    from ocr.ocr_pipeline import build_recognizer

    config = config or PipelineConfig.from_env()
    return LabExtractionPipeline(build_recognizer(config.tesseract_cmd, config.ocr_timeout), config)
