"""
Geometric Line Reconstructor
============================

Groups OCR fragments into reading-order text lines using their bounding
boxes. Coordinates are normalized with the origin at the bottom-left, so the
top of the page has the largest y.

The configured row band and line tolerance are capped by the median
fragment height, so rows printed closer together than the fixed tolerances
still come out as separate lines.

Reconstruction is approximate: two physical rows can end up merged or one
row split. Later stages tolerate that.
"""

from functools import cmp_to_key
from statistics import median
from typing import Iterable, List, Optional, Tuple

from .config import GeometryConfig
from .lab_models import OcrFragment, ParseTrace, RawLine, record


class LineGeometryReconstructor:
    """
    Turns an unordered set of OCR fragments into ordered RawLines
    """

    def __init__(self, config: Optional[GeometryConfig] = None):
        self.config = config or GeometryConfig()

    def tolerances(self, fragments: List[OcrFragment]) -> Tuple[float, float]:
        """(row band, line tolerance) for this set of fragments"""
        row_band, line_tolerance = self.config.row_band, self.config.line_tolerance
        heights = [f.box.height for f in fragments if f.box.height > 0]
        if heights and self.config.height_factor:
            cap = self.config.height_factor * median(heights)
            row_band, line_tolerance = min(row_band, cap), min(line_tolerance, cap)
        return row_band, line_tolerance

    @staticmethod
    def _compare(a: OcrFragment, b: OcrFragment, row_band: float) -> int:
        dy = a.box.mid_y - b.box.mid_y
        if abs(dy) < row_band:
            # Same text row: left to right
            if a.box.x < b.box.x:
                return -1
            if a.box.x > b.box.x:
                return 1
            return 0
        # Top of page first
        return -1 if dy > 0 else 1

    def sort_fragments(self, fragments: Iterable[OcrFragment],
                       row_band: Optional[float] = None) -> List[OcrFragment]:
        """Reading order: top to bottom, left to right within a row band"""
        band = self.config.row_band if row_band is None else row_band
        # Pre-sort so the banded comparison sees a deterministic input order
        ordered = sorted(fragments, key=lambda f: (-f.box.mid_y, f.box.x))
        return sorted(ordered, key=cmp_to_key(lambda a, b: self._compare(a, b, band)))

    def reconstruct(self,
                    fragments: Iterable[OcrFragment],
                    start_index: int = 0,
                    trace: Optional[ParseTrace] = None) -> List[RawLine]:
        """
        Group fragments into lines

        Args:
            fragments: OCR fragments from one page
            start_index: Index given to the first output line
            trace: Optional diagnostics collector

        Returns:
            Ordered list of RawLine
        """
        usable = [f for f in fragments if f.text and f.text.strip()]
        if not usable:
            return []

        row_band, line_tolerance = self.tolerances(usable)
        groups: List[List[OcrFragment]] = []
        anchor_y = None
        for fragment in self.sort_fragments(usable, row_band):
            if anchor_y is not None and abs(anchor_y - fragment.box.mid_y) <= line_tolerance:
                groups[-1].append(fragment)
            else:
                groups.append([fragment])
                anchor_y = fragment.box.mid_y

        lines = []
        for offset, group in enumerate(groups):
            group.sort(key=lambda f: f.box.x)
            text = ' '.join(' '.join(f.text.split()) for f in group)
            lines.append(RawLine(text, start_index + offset))
            record(trace, 'geometry', start_index + offset,
                   f"{len(group)} fragment(s) -> '{text}'")

        return lines


def reconstruct_lines(fragments: Iterable[OcrFragment],
                      config: Optional[GeometryConfig] = None,
                      start_index: int = 0) -> List[RawLine]:
    """Quick function to group OCR fragments into lines"""
    return LineGeometryReconstructor(config).reconstruct(fragments, start_index)
