"""
Table detection.

A region becomes a table only when vertical rules give repeated column
boundaries and at least `table_min_rows` rows of text line up against them.
Anything ambiguous stays as ordinary lines: a missed table still reads as
text, a false table scrambles it.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

from engine.config import HydrationThresholds
from models.geometry import Rect
from models.hydration_types import TableBlock, TableCell, TableCellStyles, TableRow
from models.layout_types import Line, Run, Separator
from utils.font_mapping import get_font_weight_and_style, map_pdf_font_to_css
from utils.html_text import lines_to_html

logger = logging.getLogger(__name__)

TABLE_TERMINATOR = re.compile(r'^\s*(note|notes|source|sources|remark|remarks)\s*:', re.IGNORECASE)


@dataclass
class _RuleCluster:
    x: float
    top: float
    bottom: float
    count: int = 1


@dataclass
class _Row:
    lines: List[Line]
    y: float
    cells: Dict[int, List[Run]] = field(default_factory=dict)

    @property
    def top(self) -> float:
        return min(line.top for line in self.lines)

    @property
    def bottom(self) -> float:
        return max(line.bottom for line in self.lines)

    @property
    def text(self) -> str:
        return ' '.join(line.text for line in sorted(self.lines, key=lambda l: l.x_start))


@dataclass
class TableDetectionResult:
    tables: List[TableBlock]
    remaining_lines: List[Line]


class TableDetector:

    def __init__(self, thresholds: Optional[HydrationThresholds] = None):
        self.thresholds = thresholds or HydrationThresholds()

    def detect(
        self,
        lines: Sequence[Line],
        separators: Sequence[Separator],
        page_width: float,
        page_height: float,
        page_index: int = 0,
    ) -> TableDetectionResult:
        """
        Promote separator-bounded grids of aligned rows to `TableBlock`s.

        Lines used by a table are removed from `remaining_lines`; every other
        line is returned unchanged and in its original order.
        """
        vertical = [s for s in separators if s.is_vertical]
        if len(vertical) < 2 or not lines:
            return TableDetectionResult([], list(lines))

        consumed: set = set()
        tables: List[TableBlock] = []

        for grid in self._candidate_grids(self._cluster_rules(vertical)):
            available = [line for line in lines if id(line) not in consumed]
            built = self._build_table(grid, available, page_width, page_height, f"table-{page_index}-{len(tables)}")
            if built is None:
                continue
            table, used_lines = built
            tables.append(table)
            consumed.update(id(line) for line in used_lines)

        remaining = [line for line in lines if id(line) not in consumed]
        if tables:
            logger.debug(f"Page {page_index + 1}: detected {len(tables)} tables, {len(consumed)} lines consumed")
        return TableDetectionResult(tables, remaining)

    # Grid candidates

    def _cluster_rules(self, vertical: Sequence[Separator]) -> List[_RuleCluster]:
        clusters: List[_RuleCluster] = []
        for sep in sorted(vertical, key=lambda s: s.box.center_x):
            x = sep.box.center_x
            if clusters and abs(x - clusters[-1].x) <= self.thresholds.table_separator_cluster_px:
                c = clusters[-1]
                c.x = (c.x * c.count + x) / (c.count + 1)
                c.top = min(c.top, sep.box.y)
                c.bottom = max(c.bottom, sep.box.bottom)
                c.count += 1
            else:
                clusters.append(_RuleCluster(x=x, top=sep.box.y, bottom=sep.box.bottom))
        return clusters

    def _candidate_grids(self, clusters: List[_RuleCluster]) -> List[List[_RuleCluster]]:
        """Group rule clusters whose vertical extents overlap; keep evenly enough spaced groups."""
        groups: List[List[_RuleCluster]] = []
        for cluster in sorted(clusters, key=lambda c: c.top):
            for group in groups:
                top = min(c.top for c in group)
                bottom = max(c.bottom for c in group)
                if cluster.top < bottom and cluster.bottom > top:
                    group.append(cluster)
                    break
            else:
                groups.append([cluster])

        grids = []
        for group in groups:
            group.sort(key=lambda c: c.x)
            if len(group) < 2:
                continue
            spacings = [b.x - a.x for a, b in zip(group, group[1:])]
            if min(spacings) <= 0:
                continue
            if max(spacings) / min(spacings) > self.thresholds.table_separator_spacing_ratio:
                logger.debug(f"Rejecting uneven rule grid with spacings {spacings}")
                continue
            grids.append(group)
        return grids

    # Table building

    def _build_table(
        self,
        grid: List[_RuleCluster],
        lines: Sequence[Line],
        page_width: float,
        page_height: float,
        table_id: str,
    ) -> Optional[Tuple[TableBlock, List[Line]]]:
        t = self.thresholds
        top = min(c.top for c in grid)
        bottom = max(c.bottom for c in grid)
        boundaries = [c.x for c in grid]
        reach = max(b - a for a, b in zip(boundaries, boundaries[1:]))

        def in_band(line: Line) -> bool:
            slack = line.height * 0.5
            return line.top >= top - slack and line.bottom <= bottom + slack

        band = [line for line in lines if in_band(line)]
        slots = self._slots(boundaries, band, reach)
        left, right = slots[0][0], slots[-1][1]
        tol = t.table_align_tolerance_px
        region = [line for line in band if line.x_start >= left - tol and line.x_end <= right + tol]
        if not region:
            return None

        rows = self._rows(region)
        accepted: List[_Row] = []
        for row in rows:
            if TABLE_TERMINATOR.match(row.text):
                break
            row.cells = self._assign_cells(row, slots)
            if len(row.cells) >= t.table_min_columns:
                accepted.append(row)
            elif accepted:
                break

        if len(accepted) < t.table_min_rows or not self._columns_align(accepted, len(slots)):
            return None

        table_top = min(top, accepted[0].top)
        table_bottom = max(bottom, accepted[-1].bottom)
        table_rows = self._table_rows(accepted, slots, table_top, table_bottom, page_width, page_height)

        box = Rect.from_edges(left, table_top, right, table_bottom).to_percent(page_width, page_height).clamp_percent()
        table = TableBlock(id=table_id, box=box.as_box(), rows=table_rows)
        used = [line for row in accepted for line in row.lines]
        logger.debug(f"{table_id}: {len(table_rows)} rows x {len(slots)} columns")
        return table, used

    def _slots(self, boundaries: List[float], band: Sequence[Line], reach: float) -> List[Tuple[float, float]]:
        """Column intervals between rules, plus open outer columns that actually hold text."""
        slots = [(a, b) for a, b in zip(boundaries, boundaries[1:])]
        first, last = boundaries[0], boundaries[-1]
        runs = [run for line in band for run in line.runs]

        left_runs = [r for r in runs if first - reach <= r.x + r.width / 2 < first]
        if left_runs:
            slots.insert(0, (min(r.x for r in left_runs), first))
        right_runs = [r for r in runs if last < r.x + r.width / 2 <= last + reach]
        if right_runs:
            slots.append((last, max(r.right for r in right_runs)))
        return slots

    def _rows(self, region: Sequence[Line]) -> List[_Row]:
        ordered = sorted(region, key=lambda l: (l.y, l.x_start))
        avg_height = sum(l.height for l in ordered) / len(ordered)
        rows: List[_Row] = []
        for line in ordered:
            if rows and abs(line.y - rows[-1].y) < avg_height * self.thresholds.table_row_merge_ratio:
                rows[-1].lines.append(line)
            else:
                rows.append(_Row(lines=[line], y=line.y))
        return rows

    @staticmethod
    def _assign_cells(row: _Row, slots: List[Tuple[float, float]]) -> Dict[int, List[Run]]:
        """Distribute a row's runs over column slots, splitting runs at boundaries by character centre."""
        cells: Dict[int, List[Run]] = {}

        def slot_of(x: float) -> Optional[int]:
            for index, (a, b) in enumerate(slots):
                if a <= x <= b:
                    return index
            return None

        for line in row.lines:
            for run in line.runs:
                n = len(run.text)
                char_w = run.width / n if n else 0.0
                pieces: List[Tuple[int, int, int]] = []  # (slot, start, end)
                for i in range(n):
                    slot = slot_of(run.x + (i + 0.5) * char_w)
                    if slot is None:
                        continue
                    if pieces and pieces[-1][0] == slot and pieces[-1][2] == i:
                        pieces[-1] = (slot, pieces[-1][1], i + 1)
                    else:
                        pieces.append((slot, i, i + 1))
                for slot, start, end in pieces:
                    text = run.text[start:end]
                    if not text.strip():
                        continue
                    piece = run if (start, end) == (0, n) else replace(
                        run, text=text, x=run.x + start * char_w, width=(end - start) * char_w
                    )
                    cells.setdefault(slot, []).append(piece)

        for runs in cells.values():
            runs.sort(key=lambda r: (r.y, r.x))
        return cells

    def _columns_align(self, rows: List[_Row], slot_count: int) -> bool:
        """Cell text in each shared column lines up by left edge, right edge or centre."""
        tol = self.thresholds.table_align_tolerance_px
        checked = aligned = 0
        for slot in range(slot_count):
            cells = [row.cells[slot] for row in rows if slot in row.cells]
            if len(cells) < 2:
                continue
            lefts = [min(r.x for r in runs) for runs in cells]
            rights = [max(r.right for r in runs) for runs in cells]
            centers = [(l + r) / 2 for l, r in zip(lefts, rights)]
            checked += 1
            if any(max(v) - min(v) <= tol for v in (lefts, rights, centers)):
                aligned += 1
        return checked >= 2 and aligned * 2 >= checked

    def _table_rows(
        self,
        rows: List[_Row],
        slots: List[Tuple[float, float]],
        table_top: float,
        table_bottom: float,
        page_width: float,
        page_height: float,
    ) -> List[TableRow]:
        bounds = []
        for index, row in enumerate(rows):
            row_top = table_top if index == 0 else (rows[index - 1].bottom + row.top) / 2
            row_bottom = table_bottom if index == len(rows) - 1 else (row.bottom + rows[index + 1].top) / 2
            bounds.append((row_top, max(row_bottom, row_top + 1.0)))

        table_rows: List[TableRow] = []
        for row, (row_top, row_bottom) in zip(rows, bounds):
            cells = []
            for slot_index, (x0, x1) in enumerate(slots):
                runs = row.cells.get(slot_index, [])
                box = Rect.from_edges(x0, row_top, x1, row_bottom).to_percent(page_width, page_height).clamp_percent()
                cells.append(TableCell(
                    content=lines_to_html([self._cell_text(runs)]) if runs else '',
                    box=box.as_box(),
                    styles=self._cell_styles(runs),
                    width=round(box.w, 4),
                    align=self._cell_align(runs, x0, x1),
                ))
            table_rows.append(TableRow(cells=cells, height=round((row_bottom - row_top) / page_height * 100, 4)))
        return table_rows

    @staticmethod
    def _cell_text(runs: List[Run]) -> str:
        return Line(runs=sorted(runs, key=lambda r: r.x), y=runs[0].y).text

    @staticmethod
    def _cell_styles(runs: List[Run]) -> TableCellStyles:
        if not runs:
            return TableCellStyles()
        first = runs[0]
        weight, italic = get_font_weight_and_style(first.font_name)
        return TableCellStyles(
            fontSize=round(first.font_size, 2),
            fontFamily=map_pdf_font_to_css(first.font_name),
            fontWeight=weight,
            color=first.color or '#000000',
            italic=italic,
        )

    def _cell_align(self, runs: List[Run], x0: float, x1: float) -> str:
        if not runs:
            return 'left'
        left_gap = min(r.x for r in runs) - x0
        right_gap = x1 - max(r.right for r in runs)
        tol = self.thresholds.table_align_tolerance_px
        if abs(left_gap - right_gap) <= tol and left_gap > tol:
            return 'center'
        if right_gap < left_gap and right_gap <= tol:
            return 'right'
        return 'left'


__all__ = ['TableDetector', 'TableDetectionResult']
