"""
Lab Report Token Vocabulary
===========================

Regex building blocks for the token shapes that appear in lab reports:
dates, numeric values, units, flags, reference ranges. Every other stage
composes its matchers from these so the shapes are defined once.
"""

import re
from typing import List, Optional, Tuple


# Pattern for numeric values; never glued to a preceding letter ("B12")
VALUE = r'-?(?:\d+(?:\.\d+)?|\.\d+)'

# Calendar dates: 05/01/2025, 5-1-25, 2025-01-05, 12.5.2024
# Both separators must be the same, so a range like 4.0-11.0 is not a date
DATE = (
    r'(?<![\d/.\-])'
    r'(?:\d{1,2}/\d{1,2}/(?:\d{4}|\d{2})'
    r'|\d{1,2}-\d{1,2}-(?:\d{4}|\d{2})'
    r'|\d{1,2}\.\d{1,2}\.(?:\d{4}|\d{2})'
    r'|\d{4}-\d{1,2}-\d{1,2})'
    r'(?![\d/]|\.\d)'
)

# Units, most specific first. Adapted from the medical unit table.
_UNIT_ALTERNATIVES = [
    r'(?:x\s?)?10\^?\d+\s*/\s*(?:[uµμ][Ll]|c?u?mm|[Ll])',   # x10^3/uL, 10^9/L
    r'[KkMm]/[uµμ][Ll]',                                      # K/uL, M/uL
    r'g/d[Ll]|gm/d[Ll]|gm%|g%',                               # hemoglobin units
    r'mg/d[Ll]|mg%|mg/[Ll]|g/[Ll]',
    r'n[gG]/m[Ll]|n[gG]/d[Ll]|p[gG]/m[Ll]|[uµμ]g/d[Ll]|[uµμ]g/m[Ll]|mcg/d[Ll]',
    r'[uµμ]IU/m[Ll]|m?IU/m?[Ll]|m?U/m?[Ll]',                  # enzyme and hormone units
    r'm[Ee]q/[Ll]|[mnpuµμ]mol/[Ll]',                          # electrolytes
    r'mill(?:ion)?/c?u?mm|lakhs?/c?u?mm|thou(?:sand)?/c?u?mm|cells?/c?u?mm',
    r'/c?u?mm|/[uµμ][Ll]|/h?pf',
    r'm[Ll]/min(?:/1\.73\s?m2)?',
    r'mm/(?:1st\s*)?h(?:ou)?r',
    r'[A-Za-zµμ]{1,6}/[A-Za-zµμ]{1,6}',                       # any other a/b unit
    r'f[Ll]|p[gG]|%|sec(?:onds?)?|ratio',
]
UNIT = r'(?:' + '|'.join(_UNIT_ALTERNATIVES) + r')(?![A-Za-z0-9])'

FLAG = r'(?:HIGH|LOW|NORMAL|ABNORMAL|ABN|CRITICAL|CRIT|HH|LL|H|L|\*+|[↑↓])(?![A-Za-z])'

COMPARATOR = r'(?:[<>]=?|[≤≥])'

RANGE = (
    r'(?:' + COMPARATOR + r'\s*' + VALUE
    + r'|' + VALUE + r'\s*(?:-|–|—|to)\s*' + VALUE + r')'
    + r'(?:\s*' + UNIT + r')?'
)

SEPARATORS = '/-.\\|'

_DATE_RE = re.compile(DATE)
_VALUE_RE = re.compile(r'(?<![A-Za-z\d.])' + VALUE + r'(?!\d)')
_UNIT_RE = re.compile(r'(?<![A-Za-z])' + UNIT)
_FLAG_RE = re.compile(r'(?<![A-Za-z])' + FLAG)
_NAME_TOKEN_RE = re.compile(r'[A-Za-z]{3,}')
_RANGE_SPAN_RE = re.compile(r'(?<![A-Za-z\d.])' + VALUE + r'\s*(?:-|–|—|to)\s*' + VALUE + r'(?!\d)')
_TRAILING_COMPARATOR_RE = re.compile(r'(' + COMPARATOR + r')\s*$')

BARE_DATE_RE = re.compile(r'^\s*' + DATE + r'\s*$')
DATE_FRAGMENT_RE = re.compile(r'^\s*\d{1,2}(?:[/\-.]\d{1,2})?[/\-.]?\s*$')
UNIT_ONLY_RE = re.compile(r'^\s*' + UNIT + r'\s*$')
FLAG_ONLY_RE = re.compile(r'^\s*' + FLAG + r'\s*$')
VALUE_FIRST_RE = re.compile(r'^\s*(?:' + COMPARATOR + r'\s*)?' + VALUE + r'(?![\d/])')


def find_dates(text: str) -> List[Tuple[int, int]]:
    """Spans of date tokens in text"""
    return [m.span() for m in _DATE_RE.finditer(text)]


def first_date(text: str) -> Optional[str]:
    match = _DATE_RE.search(text)
    return match.group(0) if match else None


def mask_spans(text: str, spans: List[Tuple[int, int]]) -> str:
    """Blank out spans with spaces so other offsets stay valid"""
    chars = list(text)
    for start, end in spans:
        for i in range(start, end):
            chars[i] = ' '
    return ''.join(chars)


def mask_dates(text: str) -> str:
    return mask_spans(text, find_dates(text))


def find_values(text: str) -> List[re.Match]:
    """Numeric tokens outside date tokens"""
    return list(_VALUE_RE.finditer(mask_dates(text)))


def find_result_values(text: str) -> List[re.Match]:
    """Numeric tokens outside dates and outside low-high reference ranges"""
    ranges = [m.span() for m in _RANGE_SPAN_RE.finditer(mask_dates(text))]
    return [
        match for match in find_values(text)
        if not any(start <= match.start() < end for start, end in ranges)
    ]


def split_comparator(text: str) -> Tuple[str, str]:
    """'CRP <' -> ('CRP ', '<'); text without a trailing comparator is returned as is"""
    match = _TRAILING_COMPARATOR_RE.search(text)
    if match is None:
        return text, ''
    return text[:match.start()], match.group(1)


def has_date(text: str) -> bool:
    return _DATE_RE.search(text) is not None


def has_value(text: str) -> bool:
    return bool(find_values(text))


def has_name(text: str) -> bool:
    """True when at least 3 consecutive letters survive masking dates, units and flags"""
    masked = mask_dates(text)
    masked = mask_spans(masked, [m.span() for m in _UNIT_RE.finditer(masked)])
    masked = mask_spans(masked, [m.span() for m in _FLAG_RE.finditer(masked)])
    return _NAME_TOKEN_RE.search(masked) is not None


def is_bare_date(text: str) -> bool:
    return BARE_DATE_RE.match(text) is not None


def is_date_fragment(text: str) -> bool:
    """A 1-2 digit day/month remnant such as '05', '05/' or '05/01'"""
    return DATE_FRAGMENT_RE.match(text) is not None


def is_unit_or_flag(text: str) -> bool:
    return UNIT_ONLY_RE.match(text) is not None or FLAG_ONLY_RE.match(text) is not None


def is_value_line(text: str) -> bool:
    """Line that starts with a number (optionally after a comparator)"""
    return VALUE_FIRST_RE.match(text) is not None and not has_date(text)


def unit_at_start(text: str) -> Optional[str]:
    """Unit token at the start of text, if any"""
    match = re.match(r'\s*(' + UNIT + r')', text)
    return match.group(1) if match else None
