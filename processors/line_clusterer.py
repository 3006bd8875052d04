"""Groups normalized runs into baseline-sharing text lines."""

import logging
from typing import List, Optional, Sequence

from engine.config import HydrationThresholds
from models.layout_types import Line, Run

logger = logging.getLogger(__name__)


class LineClusterer:
    """
    Runs are visited top to bottom, then left to right. A run joins the
    current line while its baseline stays within `line_y_tolerance_ratio`
    of its own height from the line's first baseline, so sub- and
    superscripts stay on their line.
    """

    def __init__(self, thresholds: Optional[HydrationThresholds] = None):
        self.thresholds = thresholds or HydrationThresholds()

    def cluster(self, runs: Sequence[Run]) -> List[Line]:
        ordered = sorted(runs, key=lambda r: (r.y, r.x))
        lines: List[Line] = []
        current: List[Run] = []
        line_y = 0.0

        for run in ordered:
            if current and abs(run.y - line_y) > self.thresholds.line_y_tolerance_ratio * run.height:
                lines.extend(self._make_lines(current, line_y))
                current = []
            if not current:
                line_y = run.y
            current.append(run)

        if current:
            lines.extend(self._make_lines(current, line_y))

        logger.debug(f"Clustered {len(ordered)} runs into {len(lines)} lines")
        return lines

    def _make_lines(self, runs: List[Run], line_y: float) -> List[Line]:
        """Order a baseline's runs left to right, splitting at column-sized gaps."""
        ordered = sorted(runs, key=lambda r: r.x)
        segments: List[List[Run]] = [[ordered[0]]]
        right = ordered[0].right
        for run in ordered[1:]:
            if run.x - right > self.thresholds.column_gap_px:
                segments.append([])
            segments[-1].append(run)
            right = max(right, run.right)
        return [Line(runs=segment, y=line_y) for segment in segments]
