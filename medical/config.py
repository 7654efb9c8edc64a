"""
Parser Tuning Constants
=======================

All heuristic thresholds used by the lab parsing core live here so they can
be tuned against a test corpus instead of being scattered through the code.
The defaults were chosen empirically; none of them is a domain truth.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple


@dataclass(frozen=True)
class GeometryConfig:
    """Tolerances for grouping OCR fragments into lines (normalized page units)"""
    row_band: float = 0.15        # near-equal vertical positions sort left-to-right
    line_tolerance: float = 0.08  # max vertical delta from the line anchor
    # Both are capped at this multiple of the median fragment height (None = no cap)
    height_factor: Optional[float] = 0.6


@dataclass(frozen=True)
class MergeConfig:
    """Look-ahead budgets for the fragmented-line reconstructor"""
    date_fragment_lookahead: int = 4
    partial_date_lookahead: int = 3


@dataclass(frozen=True)
class PlausibilityConfig:
    """Thresholds for the date-component and name-validity checks"""
    day_month_range: Tuple[float, float] = (1, 31)
    year_range: Tuple[float, float] = (1900, 2030)
    short_unit_length: int = 2
    min_name_length: int = 2
    # Real units that are short enough to look degenerate
    short_units: FrozenSet[str] = frozenset({
        '%', 'pg', 'fl', 'u', 'l', 'g', 'ml', 'dl', 'iu', 'mm', 's', 'ng', 'ug',
    })
    # Document-header labels that are never analytes
    header_labels: FrozenSet[str] = frozenset({
        'page', 'date', 'time', 'name', 'patient', 'patient name', 'age', 'sex',
        'gender', 'dob', 'sample', 'specimen', 'collected', 'received',
        'reported', 'printed', 'doctor', 'physician', 'ref by', 'referred by',
        'phone', 'tel', 'fax', 'mrn', 'id', 'patient id', 'account', 'room',
        'bed', 'lab no', 'accession', 'order', 'of',
    })


@dataclass(frozen=True)
class ParserConfig:
    """Bundle of every tunable used by LabReportParser"""
    geometry: GeometryConfig = field(default_factory=GeometryConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    plausibility: PlausibilityConfig = field(default_factory=PlausibilityConfig)
    merge_fragmented_lines: bool = True
