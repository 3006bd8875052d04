"""
Intermediate layout types for one page's clustering pass.

These live only while a page is being hydrated: runs are grouped into
lines, lines into columns, tables and paragraphs, and everything is
discarded once the page's blocks are assembled. All coordinates are top-down
page pixels at scale 1.0, with `y` on a run or line being the text baseline.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from models.geometry import Rect, Unit


@dataclass
class RawTextItem:
    """A positioned string as reported by the text device, in user space."""
    text: str
    transform: Tuple[float, float, float, float, float, float]
    width: float
    height: float
    font_name: str
    color: Optional[str] = None


@dataclass(frozen=True)
class Run:
    text: str
    x: float
    y: float
    width: float
    height: float
    font_size: float
    font_name: str
    rotation: int = 0
    color: Optional[str] = None

    @property
    def top(self) -> float:
        return self.y - self.height

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def is_bold(self) -> bool:
        return 'bold' in self.font_name.lower()

    @property
    def bbox(self) -> Rect:
        return Rect(self.x, self.top, self.width, self.height, Unit.PX)


@dataclass
class Line:
    runs: List[Run]
    y: float
    column_index: int = 0

    @property
    def x_start(self) -> float:
        return min(run.x for run in self.runs)

    @property
    def x_end(self) -> float:
        return max(run.right for run in self.runs)

    @property
    def height(self) -> float:
        return max(run.height for run in self.runs)

    @property
    def top(self) -> float:
        return min(run.top for run in self.runs)

    @property
    def bottom(self) -> float:
        return max(run.y for run in self.runs)

    @property
    def center_x(self) -> float:
        return (self.x_start + self.x_end) / 2

    @property
    def text(self) -> str:
        """Runs joined left to right, with a space wherever a visible gap separates them."""
        parts: List[str] = []
        previous: Optional[Run] = None
        for run in self.runs:
            if previous is not None:
                gap = run.x - previous.right
                if gap > previous.font_size * 0.15 and not parts[-1].endswith(' ') and not run.text.startswith(' '):
                    parts.append(' ')
            parts.append(run.text)
            previous = run
        return ''.join(parts).strip()

    @property
    def bbox(self) -> Rect:
        return Rect.from_edges(self.x_start, self.top, self.x_end, self.bottom)


@dataclass(frozen=True)
class Separator:
    kind: str  # 'line' | 'rect'
    box: Rect
    orientation: str  # 'horizontal' | 'vertical'

    @property
    def is_vertical(self) -> bool:
        return self.orientation == 'vertical'


@dataclass
class ColumnGroup:
    index: int
    lines: List[Line] = field(default_factory=list)

    @property
    def x_min(self) -> float:
        return min(line.x_start for line in self.lines)

    @property
    def x_max(self) -> float:
        return max(line.x_end for line in self.lines)


@dataclass
class Paragraph:
    lines: List[Line]
    column_index: int = 0
    column_left: float = 0.0
    column_right: float = 0.0
    is_header: bool = False
    is_list_item: bool = False
    is_caption: bool = False
    heading_break: bool = False

    @property
    def bbox(self) -> Rect:
        return Rect.bounding(line.bbox for line in self.lines)

    @property
    def runs(self) -> List[Run]:
        return [run for line in self.lines for run in line.runs]

    @property
    def text(self) -> str:
        return '\n'.join(line.text for line in self.lines)

    @property
    def dominant_run(self) -> Run:
        """Run whose font signature covers the most characters."""
        weights: Counter = Counter()
        first_of: dict = {}
        for run in self.runs:
            signature = self._signature(run)
            weights[signature] += max(len(run.text.strip()), 1)
            first_of.setdefault(signature, run)
        best, _ = weights.most_common(1)[0]
        return first_of[best]

    @staticmethod
    def _signature(run: Run) -> Tuple[float, str]:
        return round(run.font_size * 2) / 2, run.font_name


@dataclass
class PageStats:
    """Per-page font estimates carried into `HydratedPage.meta`."""
    avg_font_size: Optional[float] = None
    line_height_estimate: Optional[float] = None
