"""
Multi-Line & Pairing Resolvers
==============================

When no single-line template accepts the line at the cursor, these try to
assemble one record from 2-3 adjacent lines:

1. Date / Name / Value triple    - consumes 3 lines
2. Date+Name / Value pair        - consumes 2 lines
3. Name / Value pair             - consumes 2 lines

The consumed count is exact; the caller advances its cursor by it.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from .cascade_parser import VALUE_TEMPLATES, match_named, match_template, normalize_line, parse_value
from .lab_models import Candidate, ParseTrace, RawLine, Role, record
from .plausibility import PlausibilityFilter, clean_name
from . import lab_patterns as tokens


@dataclass(frozen=True)
class Resolution:
    """A candidate assembled from several lines and how many it used"""
    candidate: Candidate
    consumed: int


def extract_value_parts(text: str) -> Optional[Dict[Role, str]]:
    """
    Value/unit/flag from a value-carrying line

    Tries value+unit+flag, value+unit, value+flag and bare value in that
    order, then falls back to the first number outside a reference range.
    """
    normalized = normalize_line(text)
    for pattern in VALUE_TEMPLATES:
        routed = match_template(pattern, normalized)
        if routed is not None:
            return routed

    values = tokens.find_result_values(normalized)
    if not values:
        return None
    first = values[0]
    parts = {Role.VALUE: first.group(0)}
    unit = tokens.unit_at_start(normalized[first.end():])
    if unit:
        parts[Role.UNIT] = unit
    return parts


class MultiLineResolver:
    """
    Assembles records spread over adjacent lines
    """

    def __init__(self, plausibility: Optional[PlausibilityFilter] = None):
        self.plausibility = plausibility or PlausibilityFilter()

    def resolve(self,
                lines: List[RawLine],
                cursor: int,
                trace: Optional[ParseTrace] = None) -> Optional[Resolution]:
        """
        Try every resolution shape at the cursor

        Args:
            lines: Full reconstructed line sequence
            cursor: Index of the line the cascade parser rejected
            trace: Optional diagnostics collector

        Returns:
            Resolution with the exact number of lines consumed, or None
        """
        for shape in (self.resolve_date_name_value, self.resolve_dated_name_value, self.resolve_name_value):
            resolution = shape(lines, cursor)
            if resolution is not None:
                record(trace, 'resolver', lines[cursor].index,
                       f"{resolution.candidate.source}: '{resolution.candidate.name}' "
                       f"consumed {resolution.consumed} lines")
                return resolution
        return None

    def resolve_date_name_value(self, lines: List[RawLine], cursor: int) -> Optional[Resolution]:
        """Line N bare date, N+1 name, N+2 value"""
        if cursor + 2 >= len(lines):
            return None
        date_line, name_line, value_line = lines[cursor:cursor + 3]

        if not tokens.is_bare_date(date_line.text):
            return None
        if not self.is_name_line(name_line.text):
            return None
        if not tokens.has_value(value_line.text) or tokens.has_name(value_line.text):
            return None

        candidate = self._assemble(name_line.text, value_line.text, date_line,
                                   date=date_line.text.strip(), source='date_name_value')
        return Resolution(candidate, 3) if candidate else None

    def resolve_dated_name_value(self, lines: List[RawLine], cursor: int) -> Optional[Resolution]:
        """Line N has date and name, N+1 carries the value"""
        if cursor + 1 >= len(lines):
            return None
        head, value_line = lines[cursor:cursor + 2]
        text = head.text

        if not tokens.has_date(text) or tokens.has_value(text) or not tokens.has_name(text):
            return None
        if not tokens.is_value_line(value_line.text):
            return None

        date = tokens.first_date(text) or ''
        name = tokens.mask_dates(text).rsplit(':', 1)[-1]
        candidate = self._assemble(name, value_line.text, head, date=date, source='dated_name_value')
        return Resolution(candidate, 2) if candidate else None

    def resolve_name_value(self, lines: List[RawLine], cursor: int) -> Optional[Resolution]:
        """Line N name only, N+1 carries the value"""
        if cursor + 1 >= len(lines):
            return None
        name_line, value_line = lines[cursor:cursor + 2]

        if tokens.has_date(name_line.text) or not self.is_name_line(name_line.text):
            return None
        if not tokens.is_value_line(value_line.text):
            return None

        candidate = self._assemble(name_line.text, value_line.text, name_line, source='name_value')
        return Resolution(candidate, 2) if candidate else None

    def is_name_line(self, text: str) -> bool:
        """Name-shaped: a lone name, no value, not just a unit or flag"""
        if tokens.is_unit_or_flag(text) or tokens.has_value(text):
            return False
        if match_named('name_only', text) is None:
            return False
        return self.plausibility.is_valid_name(text)

    def _assemble(self, name_text: str, value_text: str, first_line: RawLine,
                  date: str = '', source: str = '') -> Optional[Candidate]:
        parts = extract_value_parts(value_text)
        if parts is None:
            return None
        value = parse_value(parts[Role.VALUE])
        if value is None:
            return None

        name = clean_name(name_text)
        unit = parts.get(Role.UNIT, '')
        if not self.plausibility.accepts(name, value, unit):
            return None

        return Candidate(
            name=name,
            value=value,
            line_index=first_line.index,
            unit=unit,
            reference_range=parts.get(Role.RANGE, ''),
            flag=parts.get(Role.FLAG, ''),
            comparator=parts.get(Role.COMPARATOR, ''),
            date=date,
            source=source,
        )
