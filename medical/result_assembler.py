"""
Result Assembler
================

Normalizes accepted candidates into LabResult records, in document order.
No deduplication happens here; that belongs to the caller.
"""

import math
from typing import List, Optional

from .lab_models import NOT_AVAILABLE, Candidate, LabResult, ParseTrace, record


_SOURCE_NOTES = {
    'fallback': 'fallback parsing',
    'date_name_value': 'multi-line (date/name/value)',
    'dated_name_value': 'multi-line (date+name/value)',
    'name_value': 'paired lines (name/value)',
}


def describe_provenance(candidate: Candidate) -> str:
    """Free-text note on where a result came from"""
    parts = [f"Line {candidate.line_index + 1}"]
    if candidate.date:
        parts.append(f"Date: {candidate.date}")
    if candidate.flag:
        parts.append(f"Flag: {candidate.flag}")
    if candidate.comparator:
        parts.append(f"Comparator: {candidate.comparator}")
    if candidate.source:
        parts.append(_SOURCE_NOTES.get(candidate.source, f"pattern {candidate.source}"))
    return ' | '.join(p.strip() for p in parts if p.strip())


class ResultAssembler:
    """
    Collects LabResults in the order candidates are accepted
    """

    def __init__(self):
        self.results: List[LabResult] = []

    def add(self, candidate: Candidate, trace: Optional[ParseTrace] = None) -> Optional[LabResult]:
        """
        Append a candidate as a LabResult

        Returns:
            The emitted LabResult, or None if the value is not finite
        """
        if not math.isfinite(candidate.value):
            record(trace, 'assemble', candidate.line_index, f"non-finite value dropped for '{candidate.name}'")
            return None

        result = LabResult(
            name=candidate.name,
            value=float(candidate.value),
            unit=candidate.unit.strip() or NOT_AVAILABLE,
            reference_range=candidate.reference_range.strip() or NOT_AVAILABLE,
            provenance=describe_provenance(candidate),
        )
        self.results.append(result)
        record(trace, 'assemble', candidate.line_index,
               f"{result.name} = {result.value} {result.unit}")
        return result
