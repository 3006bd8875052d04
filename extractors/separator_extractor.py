"""
Separator Extractor

Finds the horizontal and vertical rules on a page: stroked line segments and
thin filled rectangles that are long enough to act as column or table
boundaries. Paths are followed through the flattened operator list with the
CTM applied, so rules drawn inside Form XObjects are found as well.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from constants.pdf_operators import (
    CURVE_OPS,
    FILL_PAINT_OPS,
    OP_CLOSE_PATH,
    OP_END_PATH,
    OP_LINE_TO,
    OP_MOVE_TO,
    OP_RECTANGLE,
    PATH_CONSTRUCTION_OPS,
    PATH_PAINTING_OPS,
    STROKE_PAINT_OPS,
)
from engine.config import HydrationThresholds
from models.geometry import Rect
from models.layout_types import Separator
from processors.operator_list import ContentOp
from processors.pdf_graphics import GraphicsStateTracker, normalize_operator
from utils.pdf_transforms import Viewport, apply_matrix_transform, multiply_matrices

logger = logging.getLogger(__name__)

Point = Tuple[float, float]
Segment = Tuple[Point, Point]


class SeparatorExtractor:

    def __init__(self, thresholds: Optional[HydrationThresholds] = None):
        self.thresholds = thresholds or HydrationThresholds()

    def extract(self, ops: Sequence[ContentOp], viewport: Viewport) -> List[Separator]:
        """
        Collect rules from a page's operator list.

        Returns:
            Separators in top-down page pixels. Operators with malformed
            operands are skipped.
        """
        tracker = GraphicsStateTracker()
        separators: List[Separator] = []
        segments: List[Segment] = []
        rects: List[List[Point]] = []
        current: Optional[Point] = None
        start: Optional[Point] = None

        for op in ops:
            if tracker.update(op):
                continue

            name = normalize_operator(op)
            if name not in PATH_CONSTRUCTION_OPS and name not in PATH_PAINTING_OPS:
                continue

            matrix = multiply_matrices(tracker.current_matrix(), viewport.transform)
            try:
                values = [float(v) for v in op.operands]
            except (TypeError, ValueError) as e:
                logger.debug(f"Skipping path operator {name!r} with bad operands: {e}")
                continue

            if name == OP_MOVE_TO and len(values) >= 2:
                current = start = apply_matrix_transform(values[0], values[1], matrix)
            elif name == OP_LINE_TO and len(values) >= 2:
                point = apply_matrix_transform(values[0], values[1], matrix)
                if current is not None:
                    segments.append((current, point))
                current = point
            elif name in CURVE_OPS and len(values) >= 4:
                current = apply_matrix_transform(values[-2], values[-1], matrix)
            elif name == OP_CLOSE_PATH:
                if current is not None and start is not None and current != start:
                    segments.append((current, start))
                current = start
            elif name == OP_RECTANGLE and len(values) >= 4:
                x, y, w, h = values[:4]
                corners = [
                    apply_matrix_transform(px, py, matrix)
                    for px, py in ((x, y), (x + w, y), (x + w, y + h), (x, y + h))
                ]
                rects.append(corners)
                current = start = corners[0]
            elif name in PATH_PAINTING_OPS:
                if name != OP_END_PATH:
                    separators.extend(self._classify(
                        segments, rects,
                        stroke=name in STROKE_PAINT_OPS,
                        fill=name in FILL_PAINT_OPS,
                    ))
                segments, rects = [], []
                current = start = None

        logger.debug(f"Extracted {len(separators)} separators")
        return separators

    def _classify(self, segments: List[Segment], rects: List[List[Point]], stroke: bool, fill: bool) -> List[Separator]:
        found: List[Separator] = []
        if stroke:
            for p0, p1 in segments:
                sep = self._rule(p0, p1, 'line')
                if sep is not None:
                    found.append(sep)

        for corners in rects:
            xs = [p[0] for p in corners]
            ys = [p[1] for p in corners]
            box = Rect.from_edges(min(xs), min(ys), max(xs), max(ys))
            if self._is_thin(box):
                if stroke or fill:
                    sep = self._from_box(box, 'rect')
                    if sep is not None:
                        found.append(sep)
            elif stroke:
                # Each edge of an outlined box is a rule in its own right
                for i in range(4):
                    sep = self._rule(corners[i], corners[(i + 1) % 4], 'line')
                    if sep is not None:
                        found.append(sep)
        return found

    def _is_thin(self, box: Rect) -> bool:
        return min(box.w, box.h) < self.thresholds.separator_thinness_px

    def _rule(self, p0: Point, p1: Point, kind: str) -> Optional[Separator]:
        box = Rect.from_edges(
            min(p0[0], p1[0]), min(p0[1], p1[1]),
            max(p0[0], p1[0]), max(p0[1], p1[1]),
        )
        if not self._is_thin(box):
            return None
        # Hairlines get a 1px extent across the rule
        box = Rect(box.x, box.y, max(box.w, 1.0), max(box.h, 1.0))
        return self._from_box(box, kind)

    def _from_box(self, box: Rect, kind: str) -> Optional[Separator]:
        if not box.is_finite():
            return None
        length = max(box.w, box.h)
        if length <= self.thresholds.separator_min_length_px:
            return None
        orientation = 'horizontal' if box.w >= box.h else 'vertical'
        return Separator(kind=kind, box=box, orientation=orientation)
