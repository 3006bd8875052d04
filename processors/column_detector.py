"""Partitions text lines into left-to-right columns by their starting X."""

import logging
from typing import List, Optional, Sequence

from engine.config import HydrationThresholds
from models.layout_types import ColumnGroup, Line

logger = logging.getLogger(__name__)


class ColumnDetector:
    """
    Each line joins the existing cluster whose mean start-X is nearest,
    provided it lies within `column_gap_px`; otherwise it opens a new
    cluster. Clusters are ordered by their leftmost line.

    Centred lines whose start drifts further than the gap from the body
    text form a cluster of their own.
    """

    def __init__(self, thresholds: Optional[HydrationThresholds] = None):
        self.thresholds = thresholds or HydrationThresholds()

    def detect(self, lines: Sequence[Line], page_width: Optional[float] = None) -> List[ColumnGroup]:
        clusters: List[List[Line]] = []
        means: List[float] = []

        for line in sorted(lines, key=lambda l: (l.y, l.x_start)):
            x = line.x_start
            best_index = None
            best_distance = None
            for index, mean in enumerate(means):
                distance = abs(x - mean)
                if distance <= self.thresholds.column_gap_px and (best_distance is None or distance < best_distance):
                    best_index, best_distance = index, distance

            if best_index is None:
                clusters.append([line])
                means.append(x)
            else:
                members = clusters[best_index]
                members.append(line)
                means[best_index] += (x - means[best_index]) / len(members)

        clusters.sort(key=lambda members: min(l.x_start for l in members))

        groups: List[ColumnGroup] = []
        for index, members in enumerate(clusters):
            for line in members:
                line.column_index = index
            groups.append(ColumnGroup(index=index, lines=sorted(members, key=lambda l: l.y)))

        if page_width and len(groups) > 1:
            logger.debug(f"Detected {len(groups)} columns on a {page_width:.0f}px wide page")
        return groups
