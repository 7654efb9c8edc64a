"""
Pattern Cascade Parser
======================

The central single-line engine. An ordered catalog of line templates is
tried from most to least specific; the first template whose match survives
the capture-count check, the numeric parse and the plausibility filter wins.
When nothing matches, a permissive free-text fallback scans for any number.

Each template is a data record naming the semantic role of every capture
group, so captured text is routed by role and never by position.
"""

import math
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple

from .lab_models import Candidate, ParseTrace, RawLine, Role, record
from .lab_patterns import COMPARATOR, DATE, FLAG, RANGE, UNIT, VALUE
from .plausibility import PlausibilityFilter, clean_name
from . import lab_patterns as tokens


NAME = r"[A-Za-z](?:[A-Za-z0-9 ,'()\-/.#+&]*?[A-Za-z0-9)#+])?"
_SEP = r'(?:\s*:\s*|\s+)'
_GAP = r'(?:\s{2,}|\t)\s*'
_OPT_FLAG = r'(?:\s+(' + FLAG + r'))?'
_OPT_RANGE = r'(?:\s+\(?\s*(' + RANGE + r')\s*\)?)?'
# Flag after an optional range in an unanchored template
_TAIL_FLAG = r'(?:\s*(' + FLAG + r'))?'


@dataclass(frozen=True)
class CandidatePattern:
    """
    One structural template.

    roles[i] is the semantic role of capture group i+1. A match is only
    routed when at least min_captures groups captured text and every
    required role is present.
    """
    name: str
    regex: re.Pattern
    roles: Tuple[Role, ...]
    required: FrozenSet[Role]
    emits: bool = True

    @property
    def min_captures(self) -> int:
        return len(self.required)

    def route(self, match: re.Match) -> Optional[Dict[Role, str]]:
        """
        Map captured groups to roles

        Returns:
            Role -> text mapping, or None when the match is under-captured
        """
        groups = match.groups()
        if len(groups) < len(self.roles):
            return None

        captured = [g for g in groups if g is not None and g.strip()]
        if len(captured) < self.min_captures:
            return None

        routed: Dict[Role, str] = {}
        for role, group in zip(self.roles, groups):
            if group is not None and group.strip() and role not in routed:
                routed[role] = group.strip()

        if not self.required.issubset(routed.keys()):
            return None
        return routed


def _pattern(name: str, regex: str, roles: Tuple[Role, ...],
             required: Tuple[Role, ...], emits: bool = True) -> CandidatePattern:
    return CandidatePattern(name, re.compile(regex), roles, frozenset(required), emits)


R = Role

# Ordered most specific -> least specific
LINE_TEMPLATES: List[CandidatePattern] = [
    _pattern(
        'date_name_gap_value_unit',
        r'^\s*(' + DATE + r')\s+(' + NAME + r')' + _GAP + r'(' + VALUE + r')\s*(' + UNIT + r')'
        + _OPT_FLAG + _OPT_RANGE + r'\s*$',
        (R.DATE, R.NAME, R.VALUE, R.UNIT, R.FLAG, R.RANGE),
        (R.DATE, R.NAME, R.VALUE, R.UNIT),
    ),
    _pattern(
        'date_name_value_unit',
        r'^\s*(' + DATE + r')\s+(' + NAME + r')' + _SEP + r'(' + VALUE + r')\s*(' + UNIT + r')?'
        + _OPT_FLAG + _OPT_RANGE + r'\s*$',
        (R.DATE, R.NAME, R.VALUE, R.UNIT, R.FLAG, R.RANGE),
        (R.DATE, R.NAME, R.VALUE),
    ),
    _pattern(
        'name_colon_value_unit_range',
        r'^\s*(' + NAME + r')\s*:\s*(' + VALUE + r')\s*(' + UNIT + r')\s*\(\s*(' + RANGE + r')\s*\)',
        (R.NAME, R.VALUE, R.UNIT, R.RANGE),
        (R.NAME, R.VALUE, R.UNIT, R.RANGE),
    ),
    _pattern(
        'name_colon_value_unit_flag',
        r'^\s*(' + NAME + r')\s*:\s*(' + VALUE + r')\s*(' + UNIT + r')\s*\[\s*(' + FLAG + r')\s*\]',
        (R.NAME, R.VALUE, R.UNIT, R.FLAG),
        (R.NAME, R.VALUE, R.UNIT, R.FLAG),
    ),
    _pattern(
        'name_colon_comparator_value_unit',
        r'^\s*(' + NAME + r')\s*:\s*(' + COMPARATOR + r')\s*(' + VALUE + r')\s*(' + UNIT + r')'
        + _OPT_RANGE + _TAIL_FLAG,
        (R.NAME, R.COMPARATOR, R.VALUE, R.UNIT, R.RANGE, R.FLAG),
        (R.NAME, R.COMPARATOR, R.VALUE, R.UNIT),
    ),
    _pattern(
        'name_colon_value_unit',
        r'^\s*(' + NAME + r')\s*:\s*(' + VALUE + r')\s*(' + UNIT + r')'
        + _OPT_RANGE + _TAIL_FLAG,
        (R.NAME, R.VALUE, R.UNIT, R.RANGE, R.FLAG),
        (R.NAME, R.VALUE, R.UNIT),
    ),
    _pattern(
        'name_value_unit_range',
        r'^\s*(' + NAME + r')' + _SEP + r'(' + VALUE + r')\s*(' + UNIT + r')?\s+\(?\s*(' + RANGE + r')\s*\)?'
        + _OPT_FLAG + r'\s*$',
        (R.NAME, R.VALUE, R.UNIT, R.RANGE, R.FLAG),
        (R.NAME, R.VALUE, R.RANGE),
    ),
    _pattern(
        'name_value_unit_flag',
        r'^\s*(' + NAME + r')' + _SEP + r'(' + VALUE + r')\s*(' + UNIT + r')?\s+(' + FLAG + r')'
        + _OPT_RANGE + r'\s*$',
        (R.NAME, R.VALUE, R.UNIT, R.FLAG, R.RANGE),
        (R.NAME, R.VALUE, R.FLAG),
    ),
    _pattern(
        'name_value_unit',
        r'^\s*(' + NAME + r')' + _SEP + r'(' + VALUE + r')\s*(' + UNIT + r')(?=\s|$)',
        (R.NAME, R.VALUE, R.UNIT),
        (R.NAME, R.VALUE, R.UNIT),
    ),
    _pattern(
        'name_value',
        r'^\s*(' + NAME + r')' + _SEP + r'(' + VALUE + r')\s*$',
        (R.NAME, R.VALUE),
        (R.NAME, R.VALUE),
    ),
    _pattern(
        'name_comparator_value_unit',
        r'^\s*(' + NAME + r')\s+(' + COMPARATOR + r')\s*(' + VALUE + r')\s*(' + UNIT + r')?'
        + _OPT_RANGE + _OPT_FLAG + r'\s*$',
        (R.NAME, R.COMPARATOR, R.VALUE, R.UNIT, R.RANGE, R.FLAG),
        (R.NAME, R.COMPARATOR, R.VALUE),
    ),
    # Partial shape: never a result on its own, used to recognize name lines
    _pattern(
        'name_only',
        r'^\s*(' + NAME + r')\s*:?\s*$',
        (R.NAME,),
        (R.NAME,),
        emits=False,
    ),
]

# Sub-patterns for a line that carries only the value part of a record
_OPT_COMP = r'(?:(' + COMPARATOR + r')\s*)?'
VALUE_TEMPLATES: List[CandidatePattern] = [
    _pattern(
        'value_unit_flag',
        r'^\s*' + _OPT_COMP + r'(' + VALUE + r')\s*(' + UNIT + r')\s+(' + FLAG + r')' + _OPT_RANGE + r'\s*$',
        (R.COMPARATOR, R.VALUE, R.UNIT, R.FLAG, R.RANGE),
        (R.VALUE, R.UNIT, R.FLAG),
    ),
    _pattern(
        'value_unit',
        r'^\s*' + _OPT_COMP + r'(' + VALUE + r')\s*(' + UNIT + r')' + _OPT_RANGE + r'\s*$',
        (R.COMPARATOR, R.VALUE, R.UNIT, R.RANGE),
        (R.VALUE, R.UNIT),
    ),
    _pattern(
        'value_flag',
        r'^\s*' + _OPT_COMP + r'(' + VALUE + r')\s+(' + FLAG + r')' + _OPT_RANGE + r'\s*$',
        (R.COMPARATOR, R.VALUE, R.FLAG, R.RANGE),
        (R.VALUE, R.FLAG),
    ),
    _pattern(
        'bare_value',
        r'^\s*' + _OPT_COMP + r'(' + VALUE + r')\s*$',
        (R.COMPARATOR, R.VALUE),
        (R.VALUE,),
    ),
]

_TEMPLATES_BY_NAME = {p.name: p for p in LINE_TEMPLATES + VALUE_TEMPLATES}

_THOUSANDS_RE = re.compile(r'(?<=\d),(?=\d{3}(?!\d))')
_CONTROL_RE = re.compile(r'[\x00-\x08\x0b-\x1f\x7f]')


def normalize_line(text: str) -> str:
    """Drop control characters and thousands separators (1,000 -> 1000)"""
    text = _CONTROL_RE.sub(' ', text)
    return _THOUSANDS_RE.sub('', text)


def parse_value(text: str) -> Optional[float]:
    """Float value, or None when the token does not parse to a finite number"""
    try:
        value = float(text)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value


def match_template(pattern: CandidatePattern, text: str) -> Optional[Dict[Role, str]]:
    """Apply one template and route its groups, or None"""
    match = pattern.regex.search(text)
    if match is None:
        return None
    return pattern.route(match)


def match_named(name: str, text: str) -> Optional[Dict[Role, str]]:
    return match_template(_TEMPLATES_BY_NAME[name], normalize_line(text))


class PatternCascadeParser:
    """
    Single-line parser: ordered templates, then the free-text fallback
    """

    def __init__(self,
                 plausibility: Optional[PlausibilityFilter] = None,
                 templates: Optional[List[CandidatePattern]] = None):
        self.plausibility = plausibility or PlausibilityFilter()
        self.templates = templates if templates is not None else LINE_TEMPLATES

    def parse(self, line: RawLine, trace: Optional[ParseTrace] = None) -> Optional[Candidate]:
        """
        Parse one line into a candidate

        Args:
            line: Line to parse
            trace: Optional diagnostics collector

        Returns:
            Accepted Candidate or None
        """
        text = normalize_line(line.text)
        if not text.strip():
            return None

        for pattern in self.templates:
            if not pattern.emits:
                continue
            match = pattern.regex.search(text)
            if match is None:
                continue
            routed = pattern.route(match)
            if routed is None:
                record(trace, 'cascade', line.index, f"{pattern.name}: under-captured match dropped")
                continue
            candidate = self.build_candidate(routed, line, pattern.name)
            if candidate is None:
                record(trace, 'cascade', line.index, f"{pattern.name}: rejected by plausibility")
                continue
            record(trace, 'cascade', line.index, f"{pattern.name}: accepted '{candidate.name}'")
            return candidate

        candidate = self.fallback(line)
        if candidate is not None:
            record(trace, 'fallback', line.index, f"accepted '{candidate.name}' = {candidate.value}")
        return candidate

    def build_candidate(self, routed: Dict[Role, str], line: RawLine, source: str) -> Optional[Candidate]:
        """Turn routed groups into a Candidate if it passes the plausibility filter"""
        if Role.NAME not in routed or Role.VALUE not in routed:
            return None

        value = parse_value(routed[Role.VALUE])
        if value is None:
            return None

        name = clean_name(routed[Role.NAME])
        unit = routed.get(Role.UNIT, '')
        if not self.plausibility.accepts(name, value, unit):
            return None

        return Candidate(
            name=name,
            value=value,
            line_index=line.index,
            unit=unit,
            reference_range=routed.get(Role.RANGE, ''),
            flag=routed.get(Role.FLAG, ''),
            comparator=routed.get(Role.COMPARATOR, ''),
            date=routed.get(Role.DATE, '') or (tokens.first_date(line.text) or ''),
            source=source,
        )

    def fallback(self, line: RawLine) -> Optional[Candidate]:
        """
        Free-text fallback: any number, preceding text as name, next token as unit.

        Intentionally permissive; every candidate still goes through the
        plausibility filter. Numbers inside a low-high reference range are
        never values. A name containing a known analyte wins over an earlier
        unknown one.
        """
        text = normalize_line(line.text)
        masked = tokens.mask_dates(text)
        boundaries = [end for _, end in tokens.find_dates(text)]
        date = tokens.first_date(text) or ''

        first_valid = None
        segment_start = 0
        for match in tokens.find_result_values(text):
            start = max([segment_start] + [b for b in boundaries if b <= match.start()])
            segment, comparator = tokens.split_comparator(masked[start:match.start()].rsplit(':', 1)[-1])
            name = clean_name(segment)

            rest = text[match.end():]
            unit = tokens.unit_at_start(rest) or ''
            segment_start = match.end() + (rest.find(unit) + len(unit) if unit else 0)

            value = parse_value(match.group(0))
            if value is None or not self.plausibility.accepts(name, value, unit):
                continue

            candidate = Candidate(
                name=name,
                value=value,
                line_index=line.index,
                unit=unit,
                comparator=comparator,
                date=date,
                source='fallback',
            )
            if self.plausibility.name_score(name) > 0:
                return candidate
            if first_valid is None:
                first_valid = candidate

        return first_valid
