"""
Plausibility Filter
===================

Acceptance gate applied to every structurally valid extraction:

1. Date-component rejection - a (value, unit) pair that is more likely a
   piece of a date than a lab value is rejected. This trades recall for
   precision: a real low-magnitude integer result with no unit (e.g.
   "Potassium 4") is rejected too, and that is accepted.
2. Name validity - the cleaned name must be long enough, contain a letter,
   and must not be a document-header label.
"""

import math
import re
from typing import Optional

from .analyte_catalog import analyte_score
from .config import PlausibilityConfig
from .lab_patterns import SEPARATORS


_CONTROL_CHARS_RE = re.compile(r'[\x00-\x08\x0b-\x1f\x7f-\x9f]')
_DIGITS_AND_SEPARATORS_RE = re.compile(r'^[\d\s' + re.escape(SEPARATORS) + r']+$')


def clean_name(name: str) -> str:
    """Remove control characters, collapse whitespace, strip edge punctuation"""
    cleaned = _CONTROL_CHARS_RE.sub('', name)
    cleaned = re.sub(r'\s+', ' ', cleaned).strip()
    cleaned = re.sub(r'^[:\-_.,;*|\s]+', '', cleaned)
    cleaned = re.sub(r'[:\-_.,;*|\s]+$', '', cleaned)
    return cleaned


class PlausibilityFilter:
    """
    Rejects extractions that are probably dates or noise
    """

    def __init__(self, config: Optional[PlausibilityConfig] = None):
        self.config = config or PlausibilityConfig()

    def is_date_component(self, value: float, unit: str) -> bool:
        """
        Check whether a (value, unit) pair looks like part of a date

        Args:
            value: Parsed numeric value
            unit: Unit text as extracted ("" when absent)

        Returns:
            True if the pair should be rejected
        """
        unit = (unit or '').strip()

        if len(unit) == 1 and unit in SEPARATORS:
            return True

        if unit and _DIGITS_AND_SEPARATORS_RE.match(unit):
            return True

        is_short = len(unit) <= self.config.short_unit_length
        if is_short and unit.lower() not in self.config.short_units:
            if math.isfinite(value) and float(value).is_integer():
                low, high = self.config.day_month_range
                if low <= value <= high:
                    return True
                low, high = self.config.year_range
                if low <= value <= high:
                    return True

        return False

    def is_valid_name(self, name: str) -> bool:
        """Cleaned name has enough characters, a letter, and is not a header label"""
        cleaned = clean_name(name)
        if len(cleaned) < self.config.min_name_length:
            return False
        if not re.search(r'[A-Za-z]', cleaned):
            return False
        if cleaned.lower() in self.config.header_labels:
            return False
        return True

    def accepts(self, name: str, value: float, unit: str) -> bool:
        """Both checks must pass"""
        if not math.isfinite(value):
            return False
        if self.is_date_component(value, unit):
            return False
        return self.is_valid_name(name)

    @staticmethod
    def name_score(name: str) -> int:
        """Known-analyte boost used to rank competing fallback names"""
        return analyte_score(clean_name(name))
