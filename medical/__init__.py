# Lab parsing core
from .config import GeometryConfig, MergeConfig, ParserConfig, PlausibilityConfig
from .lab_models import (
    BoundingBox,
    ExtractionReport,
    LabResult,
    OcrFragment,
    PageReport,
    PageSourceKind,
    ParseTrace,
    RawLine,
)
from .lab_report_parser import LabReportParser, parse_lab_lines, parse_lab_text

__all__ = [
    'BoundingBox',
    'ExtractionReport',
    'GeometryConfig',
    'LabReportParser',
    'LabResult',
    'MergeConfig',
    'OcrFragment',
    'PageReport',
    'PageSourceKind',
    'ParseTrace',
    'ParserConfig',
    'PlausibilityConfig',
    'RawLine',
    'parse_lab_lines',
    'parse_lab_text',
]
