"""
Block assembly.

Turns a page's paragraphs, tables and images into the `HydratedPage`
handed to the editor: percentage boxes, inferred typography and alignment,
reading-order sorting and stable block IDs.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from engine.config import HydrationThresholds
from models.hydration_types import (
    GlobalStats,
    HydratedPage,
    ImageBlock,
    PageDims,
    PageMeta,
    TableBlock,
    TextBlock,
    TextBlockMeta,
    TextBlockStyles,
)
from models.layout_types import Line, PageStats, Paragraph
from utils.font_mapping import DEFAULT_TEXT_COLOR, get_font_weight_and_style, map_pdf_font_to_css
from utils.html_text import lines_to_html

logger = logging.getLogger(__name__)

CAPTION_COLOR = '#555555'
CAPTION_MAX_FONT_SIZE = 10.0
MIN_LINE_HEIGHT_RATIO = 1.0
MAX_LINE_HEIGHT_RATIO = 3.0


def infer_alignment(
    lines: Sequence[Line],
    column_left: float,
    column_right: float,
    edge_variation_ratio: float = 0.2,
    midpoint_tolerance_ratio: float = 0.02,
) -> str:
    """
    Infer text alignment from where lines sit inside their column.

    Multi-line paragraphs compare the spread of left edges, right edges and
    midpoints against the column width. A single line is judged by its
    margins to the column edges.
    """
    width = column_right - column_left
    if not lines or width <= 1:
        return 'left'

    edge_tol = width * edge_variation_ratio
    mid_tol = width * midpoint_tolerance_ratio

    if len(lines) == 1:
        line = lines[0]
        left_gap = line.x_start - column_left
        right_gap = column_right - line.x_end
        if left_gap > mid_tol and right_gap > mid_tol and abs(left_gap - right_gap) <= mid_tol:
            return 'center'
        if right_gap <= mid_tol and left_gap > edge_tol:
            return 'right'
        return 'left'

    lefts = [line.x_start for line in lines]
    rights = [line.x_end for line in lines]
    mids = [line.center_x for line in lines]
    left_spread = max(lefts) - min(lefts)
    right_spread = max(rights) - min(rights)

    if left_spread > edge_tol and max(mids) - min(mids) <= mid_tol:
        return 'center'
    if left_spread > edge_tol and right_spread <= mid_tol:
        return 'right'
    return 'left'


class BlockAssembler:

    def __init__(self, thresholds: Optional[HydrationThresholds] = None):
        self.thresholds = thresholds or HydrationThresholds()

    def assemble(
        self,
        page_index: int,
        page_width: float,
        page_height: float,
        paragraphs: Sequence[Paragraph],
        tables: Sequence[TableBlock] = (),
        images: Sequence[ImageBlock] = (),
        page_stats: Optional[PageStats] = None,
        stats: Optional[GlobalStats] = None,
    ) -> HydratedPage:
        """
        Build one hydrated page.

        Text blocks are numbered `block-{page}-{n}` in reading order: columns
        left to right, top to bottom within a column, with tables and images
        slotted into the column their left edge falls in.
        """
        keyed: List[Tuple[Tuple[int, float], object]] = []

        for paragraph in paragraphs:
            block = self._text_block(paragraph, page_width, page_height)
            if block is not None:
                keyed.append(((paragraph.column_index, block.box[1]), block))

        columns = sorted({(p.column_index, p.column_left) for p in paragraphs}, key=lambda c: c[1])
        for block in list(tables) + list(images):
            left_px = block.box[0] * page_width / 100
            keyed.append(((self._column_for(left_px, columns), block.box[1]), block))

        keyed.sort(key=lambda item: item[0])

        blocks = []
        seen_ids = set()
        text_count = 0
        for _, block in keyed:
            if isinstance(block, TextBlock):
                block.id = f"block-{page_index}-{text_count}"
                text_count += 1
            if block.id in seen_ids:
                block.id = f"{block.id}-{len(seen_ids)}"
            seen_ids.add(block.id)
            blocks.append(block)

        page_stats = page_stats or PageStats()
        page = HydratedPage(
            pageIndex=page_index,
            dims=PageDims(width=page_width, height=page_height),
            blocks=blocks,
            meta=PageMeta(
                lineHeightEstimate=page_stats.line_height_estimate,
                avgFontSize=page_stats.avg_font_size,
                grid=stats.masterGrid if stats is not None else None,
            ),
        )
        logger.debug(
            f"Page {page_index + 1}: assembled {text_count} text, {len(tables)} table, {len(images)} image blocks"
        )
        return page

    @staticmethod
    def empty_page(page_index: int, page_width: float, page_height: float) -> HydratedPage:
        """Fallback for a page whose analysis failed; keeps the page's dimensions."""
        return HydratedPage(pageIndex=page_index, dims=PageDims(width=page_width, height=page_height))

    @staticmethod
    def _column_for(left_px: float, columns: List[Tuple[int, float]]) -> int:
        index = columns[0][0] if columns else 0
        for column_index, column_left in columns:
            if column_left <= left_px + 1:
                index = column_index
        return index

    def _text_block(self, paragraph: Paragraph, page_width: float, page_height: float) -> Optional[TextBlock]:
        if not paragraph.lines:
            return None
        bbox = paragraph.bbox
        if bbox.w <= 0 or bbox.h <= 0:
            logger.debug(f"Skipping degenerate paragraph '{paragraph.text[:20]}'")
            return None

        box = bbox.to_percent(page_width, page_height).clamp_percent()
        dominant = paragraph.dominant_run
        weight, italic = get_font_weight_and_style(dominant.font_name)
        font_size = round(dominant.font_size, 2)
        color = dominant.color or DEFAULT_TEXT_COLOR

        if paragraph.is_caption:
            color = CAPTION_COLOR
            font_size = min(font_size, CAPTION_MAX_FONT_SIZE)
            italic = True

        align = infer_alignment(
            paragraph.lines,
            paragraph.column_left,
            paragraph.column_right,
            self.thresholds.alignment_edge_variation_ratio,
            self.thresholds.alignment_midpoint_tolerance_ratio,
        )

        return TextBlock(
            id='',
            box=box.as_box(),
            html=lines_to_html(line.text for line in paragraph.lines),
            styles=TextBlockStyles(
                fontFamily=map_pdf_font_to_css(dominant.font_name),
                fontSize=font_size,
                fontWeight=weight,
                color=color,
                align=align,
                italic=italic,
            ),
            meta=TextBlockMeta(
                isHeader=paragraph.is_header,
                isListItem=paragraph.is_list_item,
                isCaption=paragraph.is_caption,
                rotation=float(dominant.rotation),
                lineHeightRatio=self._line_height_ratio(paragraph, dominant.font_size),
                columnIndex=paragraph.column_index,
                sourceRuns=len(paragraph.runs),
            ),
        )

    @staticmethod
    def _line_height_ratio(paragraph: Paragraph, font_size: float) -> float:
        """Measured baseline pitch over font size; 1.2 for single lines."""
        lines = paragraph.lines
        if len(lines) < 2 or font_size <= 0:
            return 1.2
        pitch = (lines[-1].y - lines[0].y) / (len(lines) - 1)
        ratio = pitch / font_size
        return round(min(max(ratio, MIN_LINE_HEIGHT_RATIO), MAX_LINE_HEIGHT_RATIO), 3)
