"""
Lab Extraction Demo Script
==========================

Runs the lab extraction pipeline on a report file, or on a built-in
sample report when no file is given.

Usage:
    python scripts/demo.py [report.pdf|scan.png|report.txt] [--json] [--trace]
"""

import argparse
import json
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core import DocumentOpenError, PipelineConfig, build_default_pipeline
from medical import LabReportParser, ParseTrace

SAMPLE_REPORT = """
CITY DIAGNOSTICS - LIPID & LIVER PANEL
Patient: Jane Roe    Age: 52    Page 1 of 1

05/01/2025 ALT 31.00 U/L
05/01/2025 AST 28 U/L
Total Cholesterol: 212 mg/dL (<200) H
HDL 48 mg/dL 40-60
05/01/2025
Triglycerides
165.00 mg/dL
Hemoglobin
13.4 g/dL
Reviewed by: Dr. A. Smith
"""


def print_header(title: str):
    """Print a formatted header"""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


def print_report(report, show_trace: bool = False):
    print_header(f"LAB RESULTS ({report.total_results})")
    for r in report.results:
        print(f"  {r.name:<24} {r.value:>10g} {r.unit:<10} ref: {r.reference_range}")
        print(f"  {'':<24} {r.provenance}")

    if report.pages:
        print_header("PAGES")
        for page in report.pages:
            note = f" ({page.error})" if page.error else ""
            print(f"  Page {page.index + 1}: {page.kind.value}, {page.line_count} lines{note}")

    if report.unmatched_lines:
        print_header(f"UNMATCHED LINES ({len(report.unmatched_lines)})")
        for line in report.unmatched_lines:
            print(f"  {line.index + 1:>3}: {line.text}")

    if show_trace and report.trace is not None:
        print_header("TRACE")
        for event in report.trace.events:
            where = "-" if event.line_index is None else event.line_index + 1
            print(f"  [{event.stage}] {where}: {event.message}")


def main():
    parser = argparse.ArgumentParser(description="Extract lab results from a report")
    parser.add_argument('path', nargs='?', help="PDF, image or text file")
    parser.add_argument('--json', action='store_true', help="Print JSON instead of a table")
    parser.add_argument('--trace', action='store_true', help="Show parse trace")
    parser.add_argument('-v', '--verbose', action='store_true')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    trace = ParseTrace() if args.trace else None
    if args.path:
        pipeline = build_default_pipeline(PipelineConfig.from_env())
        try:
            report = pipeline.extract_file(args.path, trace=trace)
        except DocumentOpenError as e:
            logging.error("%s", e)
            return 1
    else:
        report = LabReportParser().parse_text(SAMPLE_REPORT, trace)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report, args.trace)
    return 0


if __name__ == "__main__":
    sys.exit(main())
