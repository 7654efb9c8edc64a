"""
Lab Parsing Data Model
======================

Value types shared by every stage of the lab parsing core:
- RawLine / OcrFragment: pipeline input
- Candidate: an accepted-but-not-yet-emitted extraction
- LabResult / ExtractionReport: pipeline output
- ParseTrace: optional diagnostics threaded through the stages
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


NOT_AVAILABLE = "N/A"


class Role(Enum):
    """Semantic role of a capture group in a line template"""
    DATE = "date"
    NAME = "name"
    VALUE = "value"
    UNIT = "unit"
    FLAG = "flag"
    RANGE = "range"
    COMPARATOR = "comparator"


@dataclass(frozen=True)
class RawLine:
    """A text line in document reading order"""
    text: str
    index: int


@dataclass(frozen=True)
class BoundingBox:
    """Normalized 0-1 rectangle, origin bottom-left (larger y is nearer the top)"""
    x: float
    y: float
    width: float
    height: float

    @property
    def mid_y(self) -> float:
        return self.y + self.height / 2

    @property
    def mid_x(self) -> float:
        return self.x + self.width / 2


@dataclass(frozen=True)
class OcrFragment:
    """A recognized text token with its bounding box"""
    text: str
    box: BoundingBox
    page_index: int = 0


@dataclass(frozen=True)
class Candidate:
    """Structured extraction waiting for assembly into a LabResult"""
    name: str
    value: float
    line_index: int
    unit: str = ""
    reference_range: str = ""
    flag: str = ""
    comparator: str = ""
    date: str = ""
    source: str = ""


@dataclass(frozen=True)
class LabResult:
    """One extracted lab test record"""
    name: str
    value: float
    unit: str = NOT_AVAILABLE
    reference_range: str = NOT_AVAILABLE
    provenance: str = ""

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization"""
        return {
            'name': self.name,
            'value': self.value,
            'unit': self.unit,
            'reference_range': self.reference_range,
            'provenance': self.provenance,
        }


@dataclass(frozen=True)
class TraceEvent:
    stage: str
    line_index: Optional[int]
    message: str


@dataclass
class ParseTrace:
    """
    Diagnostics side channel passed explicitly through each stage.

    Stages call record(); nothing is written anywhere else. Callers that
    don't care simply don't pass one.
    """
    events: List[TraceEvent] = field(default_factory=list)

    def record(self, stage: str, line_index: Optional[int], message: str) -> None:
        self.events.append(TraceEvent(stage, line_index, message))

    def for_stage(self, stage: str) -> List[TraceEvent]:
        return [e for e in self.events if e.stage == stage]


def record(trace: Optional[ParseTrace], stage: str,
           line_index: Optional[int], message: str) -> None:
    """Record a trace event if a trace is being collected"""
    if trace is not None:
        trace.record(stage, line_index, message)


class PageSourceKind(Enum):
    NATIVE = "native"
    OCR = "ocr"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class PageReport:
    """How a single page contributed lines"""
    index: int
    kind: PageSourceKind
    line_count: int = 0
    error: str = ""

    def to_dict(self) -> Dict:
        return {
            'index': self.index,
            'kind': self.kind.value,
            'line_count': self.line_count,
            'error': self.error,
        }


@dataclass
class ExtractionReport:
    """Output of one parse invocation"""
    results: List[LabResult] = field(default_factory=list)
    extracted_text: str = ""
    unmatched_lines: List[RawLine] = field(default_factory=list)
    pages: List[PageReport] = field(default_factory=list)
    cancelled: bool = False
    trace: Optional[ParseTrace] = None

    @property
    def total_results(self) -> int:
        return len(self.results)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization"""
        return {
            'total_results': self.total_results,
            'results': [r.to_dict() for r in self.results],
            'unmatched_lines': [line.text for line in self.unmatched_lines],
            'pages': [p.to_dict() for p in self.pages],
            'cancelled': self.cancelled,
        }


def lines_from_text(text: str, start_index: int = 0) -> List[RawLine]:
    """Split text into RawLines, dropping blank lines but keeping original indices"""
    lines = []
    for offset, raw in enumerate(text.splitlines()):
        if raw.strip():
            lines.append(RawLine(raw.strip(), start_index + offset))
    return lines


def join_lines(lines: List[RawLine]) -> str:
    return '\n'.join(line.text for line in lines)
