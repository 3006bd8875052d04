"""
Rectangle value type with explicit units.

Hydration works in page pixels (top-left origin, Y down, scale 1.0) while
the persisted model stores percentages of the page dimensions. `Rect`
carries its unit so conversions happen exactly once at the boundary.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence, Tuple


class Unit(str, Enum):
    PX = "px"
    PERCENT = "percent"


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    w: float
    h: float
    unit: Unit = Unit.PX

    @property
    def right(self) -> float:
        return self.x + self.w

    @property
    def bottom(self) -> float:
        return self.y + self.h

    @property
    def center_x(self) -> float:
        return self.x + self.w / 2

    @property
    def center_y(self) -> float:
        return self.y + self.h / 2

    @property
    def area(self) -> float:
        return max(self.w, 0.0) * max(self.h, 0.0)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.w, self.h))

    def as_box(self) -> Tuple[float, float, float, float]:
        """Plain `[x, y, w, h]` tuple for serialization."""
        return self.x, self.y, self.w, self.h

    def to_percent(self, page_width: float, page_height: float) -> 'Rect':
        """Convert a pixel rect to percentages of the page dimensions."""
        if self.unit is not Unit.PX:
            raise ValueError(f"Expected a px rect, got {self.unit.value}")
        if page_width <= 0 or page_height <= 0:
            raise ValueError(f"Invalid page dimensions {page_width}x{page_height}")
        return Rect(
            self.x / page_width * 100,
            self.y / page_height * 100,
            self.w / page_width * 100,
            self.h / page_height * 100,
            Unit.PERCENT,
        )

    def to_pixels(self, page_width: float, page_height: float) -> 'Rect':
        """Convert a percentage rect back to page pixels."""
        if self.unit is not Unit.PERCENT:
            raise ValueError(f"Expected a percent rect, got {self.unit.value}")
        return Rect(
            self.x * page_width / 100,
            self.y * page_height / 100,
            self.w * page_width / 100,
            self.h * page_height / 100,
            Unit.PX,
        )

    def clamp_percent(self, min_size: float = 0.01) -> 'Rect':
        """
        Clip a percentage rect to the page so that x, y, w, h all lie in
        [0, 100] and w, h stay strictly positive.
        """
        if self.unit is not Unit.PERCENT:
            raise ValueError(f"Expected a percent rect, got {self.unit.value}")
        x0 = min(max(self.x, 0.0), 100.0 - min_size)
        y0 = min(max(self.y, 0.0), 100.0 - min_size)
        x1 = min(max(self.right, x0 + min_size), 100.0)
        y1 = min(max(self.bottom, y0 + min_size), 100.0)
        return Rect(x0, y0, x1 - x0, y1 - y0, Unit.PERCENT)

    def intersection(self, other: 'Rect') -> 'Rect':
        if self.unit is not other.unit:
            raise ValueError("Cannot intersect rects with different units")
        x0 = max(self.x, other.x)
        y0 = max(self.y, other.y)
        x1 = min(self.right, other.right)
        y1 = min(self.bottom, other.bottom)
        return Rect(x0, y0, max(x1 - x0, 0.0), max(y1 - y0, 0.0), self.unit)

    def union(self, other: 'Rect') -> 'Rect':
        if self.unit is not other.unit:
            raise ValueError("Cannot merge rects with different units")
        x0 = min(self.x, other.x)
        y0 = min(self.y, other.y)
        x1 = max(self.right, other.right)
        y1 = max(self.bottom, other.bottom)
        return Rect(x0, y0, x1 - x0, y1 - y0, self.unit)

    @classmethod
    def from_box(cls, box: Sequence[float], unit: Unit = Unit.PERCENT) -> 'Rect':
        x, y, w, h = (float(v) for v in box)
        return cls(x, y, w, h, unit)

    @classmethod
    def from_edges(cls, left: float, top: float, right: float, bottom: float, unit: Unit = Unit.PX) -> 'Rect':
        return cls(left, top, right - left, bottom - top, unit)

    @classmethod
    def bounding(cls, rects: Iterable['Rect']) -> 'Rect':
        rects = list(rects)
        if not rects:
            raise ValueError("Cannot bound an empty set of rects")
        result = rects[0]
        for rect in rects[1:]:
            result = result.union(rect)
        return result
