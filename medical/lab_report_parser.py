"""
Lab Report Parser
=================

Extracts structured lab test records from lab report text:
- Test names (as written in the report)
- Values (numeric)
- Units (g/dL, mg/dL, U/L, etc.)
- Reference ranges (passed through as written)

Handles both clean native PDF text and noisy OCR output. Stages:
1. Geometric line reconstruction (OCR fragments only)
2. Fragmented-line merging
3. Pattern cascade per line, then multi-line resolvers
4. Plausibility filter on every candidate
5. Result assembly in document order

Parsing never raises for content reasons: lines that match nothing are
skipped and reported as unmatched.
"""

from typing import Dict, Iterable, List, Optional

from .cascade_parser import PatternCascadeParser
from .config import ParserConfig
from .lab_models import (
    ExtractionReport,
    OcrFragment,
    ParseTrace,
    RawLine,
    join_lines,
    lines_from_text,
    record,
)
from .line_geometry import LineGeometryReconstructor
from .line_merger import FragmentedLineMerger
from .multiline_resolver import MultiLineResolver
from .plausibility import PlausibilityFilter
from .result_assembler import ResultAssembler


class LabReportParser:
    """
    Parser for extracting lab results from report text or OCR fragments
    """

    def __init__(self, config: Optional[ParserConfig] = None):
        """
        Initialize parser stages

        Args:
            config: Tunable thresholds (defaults used when omitted)
        """
        self.config = config or ParserConfig()

        plausibility = PlausibilityFilter(self.config.plausibility)
        self.geometry = LineGeometryReconstructor(self.config.geometry)
        self.merger = FragmentedLineMerger(self.config.merge)
        self.cascade = PatternCascadeParser(plausibility)
        self.resolver = MultiLineResolver(plausibility)

    def parse_lines(self,
                    lines: Iterable[RawLine],
                    trace: Optional[ParseTrace] = None) -> ExtractionReport:
        """
        Parse lines in document order

        Args:
            lines: Raw lines (native text or reconstructed OCR lines)
            trace: Optional diagnostics collector

        Returns:
            ExtractionReport with results and unmatched lines
        """
        raw = [line for line in lines if line.text and line.text.strip()]
        if self.config.merge_fragmented_lines:
            working = self.merger.merge(raw, trace)
        else:
            working = raw

        assembler = ResultAssembler()
        unmatched: List[RawLine] = []

        cursor = 0
        while cursor < len(working):
            line = working[cursor]

            candidate = self.cascade.parse(line, trace)
            if candidate is not None:
                assembler.add(candidate, trace)
                cursor += 1
                continue

            resolution = self.resolver.resolve(working, cursor, trace)
            if resolution is not None:
                assembler.add(resolution.candidate, trace)
                cursor += resolution.consumed
                continue

            record(trace, 'skip', line.index, f"no match: '{line.text}'")
            unmatched.append(line)
            cursor += 1

        return ExtractionReport(
            results=assembler.results,
            extracted_text=join_lines(raw),
            unmatched_lines=unmatched,
            trace=trace,
        )

    def parse_text(self, text: str, trace: Optional[ParseTrace] = None) -> ExtractionReport:
        """Parse a block of native text, one record candidate per line"""
        return self.parse_lines(lines_from_text(text), trace)

    def parse_fragments(self,
                        fragments: Iterable[OcrFragment],
                        trace: Optional[ParseTrace] = None) -> ExtractionReport:
        """Parse OCR fragments from a single page"""
        return self.parse_lines(self.geometry.reconstruct(fragments, trace=trace), trace)


# =============================================================================
# Convenience Functions
# =============================================================================

def parse_lab_text(text: str) -> ExtractionReport:
    """
    Quick function to parse lab report text

    Args:
        text: Native or OCR text from a lab report

    Returns:
        ExtractionReport
    """
    return LabReportParser().parse_text(text)


def parse_lab_lines(lines: List[str]) -> List[Dict]:
    """
    Parse a list of text lines and return plain dictionaries

    Args:
        lines: Text lines in document order

    Returns:
        List of result dictionaries
    """
    raw = [RawLine(text, i) for i, text in enumerate(lines)]
    report = LabReportParser().parse_lines(raw)
    return [r.to_dict() for r in report.results]


if __name__ == '__main__':
    sample_report = """
    COMPREHENSIVE METABOLIC PANEL

    Patient Name: John Doe
    Collected: 05/01/2025

    05/01/2025 ALT 31.00 U/L
    05/01/2025 AST 28.00 U/L
    Glucose: 95 mg/dL (70-100)
    Sodium 140 mmol/L 135-145
    Potassium: 4.1 mmol/L
    Creatinine
    1.10 mg/dL
    HbA1c 6.1 % H

    Page 1 of 1
    """

    parser = LabReportParser()
    trace = ParseTrace()
    report = parser.parse_text(sample_report, trace)

    print(f"Total results extracted: {report.total_results}")
    for r in report.results:
        print(f"  {r.name}: {r.value} {r.unit} (ref {r.reference_range}) [{r.provenance}]")

    print(f"\nUnmatched lines: {len(report.unmatched_lines)}")
    for line in report.unmatched_lines:
        print(f"  {line.index + 1}: {line.text}")
