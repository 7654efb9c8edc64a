"""
Fragmented-Line Reconstructor
=============================

Noisy OCR and some PDF text layers split one logical record across several
lines ("05/01/" on one line, "2025 ALT 31 U/L" on the next; or the analyte
name on a row of its own). This stage merges such pieces back together
before the pattern cascade runs.

Every line is classified for a date token, a name token (3+ letters) and a
value token. A line holding all three passes through unchanged; the rules
below only ever merge, so the output is never longer than the input.
"""

from typing import List, Optional, Tuple

from .config import MergeConfig
from .lab_models import ParseTrace, RawLine, record
from . import lab_patterns as tokens


_JOIN_SEPARATORS = '/-.'


def is_complete(text: str) -> bool:
    """Date + name + value all present"""
    return tokens.has_date(text) and tokens.has_name(text) and tokens.has_value(text)


def join_fragments(left: str, right: str) -> str:
    """Concatenate two line pieces, re-forming split dates like '05/01' + '/2025'"""
    left = left.rstrip()
    right = right.lstrip()
    if not left:
        return right
    if not right:
        return left
    if left[-1] in _JOIN_SEPARATORS or right[0] in _JOIN_SEPARATORS:
        return left + right
    return left + ' ' + right


def insert_name_after_date(text: str, name: str) -> str:
    """Place a name right after the leading date so the line reads 'date name value'"""
    spans = tokens.find_dates(text)
    if spans and not text[:spans[0][0]].strip():
        end = spans[0][1]
        return f"{text[:end].rstrip()} {name.strip()} {text[end:].lstrip()}".strip()
    return f"{text.rstrip()} {name.strip()}"


def extend_record(text: str, following: str) -> str:
    """Append the next line; a lone name goes right after the date of a nameless dated line"""
    if (tokens.has_date(text) and not tokens.has_name(text)
            and tokens.has_name(following) and not tokens.has_value(following)):
        return insert_name_after_date(text, following)
    return join_fragments(text, following)


class FragmentedLineMerger:
    """
    Merges lines that look like pieces of one logical record
    """

    def __init__(self, config: Optional[MergeConfig] = None):
        self.config = config or MergeConfig()

    def merge(self, lines: List[RawLine], trace: Optional[ParseTrace] = None) -> List[RawLine]:
        """
        Merge fragmented lines

        Args:
            lines: Lines in document order
            trace: Optional diagnostics collector

        Returns:
            Revised lines, document order kept, count <= len(lines)
        """
        merged: List[RawLine] = []
        i = 0
        while i < len(lines):
            line = lines[i]
            text = line.text

            if is_complete(text):
                merged.append(line)
                i += 1
                continue

            if tokens.is_date_fragment(text):
                combined, consumed = self._merge_date_fragment(lines, i)
                if combined is not None:
                    record(trace, 'merge', line.index,
                           f"date fragment joined {consumed} lines -> '{combined.text}'")
                    merged.append(combined)
                    i += consumed
                    continue

            elif tokens.has_date(text):
                combined, consumed = self._merge_partial_date_line(lines, i)
                if combined is not None:
                    record(trace, 'merge', line.index,
                           f"dated line joined {consumed} lines -> '{combined.text}'")
                    merged.append(combined)
                    i += consumed
                    continue

            elif merged and tokens.has_name(text) and not tokens.has_value(text):
                previous = merged[-1]
                candidate = insert_name_after_date(previous.text, text)
                if not is_complete(previous.text) and is_complete(candidate):
                    record(trace, 'merge', line.index,
                           f"name merged back into line {previous.index} -> '{candidate}'")
                    merged[-1] = RawLine(candidate, previous.index)
                    i += 1
                    continue

            merged.append(line)
            i += 1

        return merged

    def _merge_date_fragment(self, lines: List[RawLine], start: int) -> Tuple[Optional[RawLine], int]:
        """Look ahead until the fragment becomes part of a complete dated record"""
        fragment = lines[start].text.strip()
        text = fragment
        limit = min(len(lines), start + 1 + self.config.date_fragment_lookahead)

        for j in range(start + 1, limit):
            text = extend_record(text, lines[j].text)
            if not is_complete(text):
                continue
            spans = tokens.find_dates(text)
            # The fragment itself must end up inside the date
            if spans and spans[0][0] < len(fragment):
                return RawLine(text, lines[start].index), j - start + 1

        return None, 1

    def _merge_partial_date_line(self, lines: List[RawLine], start: int) -> Tuple[Optional[RawLine], int]:
        """Dated line missing its name or value: pull in up to N following lines"""
        text = lines[start].text.strip()
        limit = min(len(lines), start + 1 + self.config.partial_date_lookahead)
        labelled = tokens.has_name(text)

        for j in range(start + 1, limit):
            following = lines[j].text
            # "Collected: 05/01/2025" must not swallow a record that stands on its own
            if labelled and tokens.has_name(following) and tokens.has_value(following):
                break
            text = extend_record(text, following)
            if is_complete(text):
                end = j + 1
                # Trailing unit/flag rows belong to this record
                while end < len(lines) and tokens.is_unit_or_flag(lines[end].text):
                    text = join_fragments(text, lines[end].text)
                    end += 1
                return RawLine(text, lines[start].index), end - start

        return None, 1


def merge_fragmented_lines(lines: List[RawLine],
                           config: Optional[MergeConfig] = None) -> List[RawLine]:
    """Quick function to merge fragmented lines"""
    return FragmentedLineMerger(config).merge(lines)
