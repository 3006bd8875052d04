"""
Paragraph grouping within one column.

Lines are walked top to bottom. A baseline step larger than
`paragraph_break_ratio` times the taller line's height starts a new
paragraph; a step larger than `heading_break_ratio` also flags the new
paragraph as following a heading break.
"""

import logging
import re
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from engine.config import HydrationThresholds
from models.hydration_types import GlobalStats
from models.layout_types import Line, Paragraph

logger = logging.getLogger(__name__)

LIST_ITEM_PATTERN = re.compile(r'^\s*([•▪◦‣∙·\-*–]|\d+[.)]|[A-Za-z][.)])\s+')


@runtime_checkable
class CaptionScorer(Protocol):
    """Semantic similarity between two strings, in [0, 1]."""

    def similarity(self, text: str, reference: str) -> float:
        ...


class ParagraphGrouper:

    def __init__(
        self,
        thresholds: Optional[HydrationThresholds] = None,
        caption_scorer: Optional[CaptionScorer] = None,
    ):
        self.thresholds = thresholds or HydrationThresholds()
        self.caption_scorer = caption_scorer

    def group(
        self,
        lines: Sequence[Line],
        stats: Optional[GlobalStats] = None,
        column_left: Optional[float] = None,
        column_right: Optional[float] = None,
    ) -> List[Paragraph]:
        """
        Split one column's lines into classified paragraphs.

        Args:
            lines: Lines of a single column, in any order
            stats: Document statistics; the defaults apply when omitted
            column_left: Left edge of the column, defaults to the lines' extent
            column_right: Right edge of the column, defaults to the lines' extent

        Returns:
            Paragraphs in top-to-bottom order
        """
        if not lines:
            return []

        stats = stats or GlobalStats()
        ordered = sorted(lines, key=lambda l: (l.y, l.x_start))
        left = column_left if column_left is not None else min(l.x_start for l in ordered)
        right = column_right if column_right is not None else max(l.x_end for l in ordered)
        column_index = ordered[0].column_index

        paragraphs: List[Paragraph] = []
        current: List[Line] = [ordered[0]]
        heading_break = False

        for prev, line in zip(ordered, ordered[1:]):
            gap = line.y - prev.y
            height = max(prev.height, line.height)
            if gap > self.thresholds.paragraph_break_ratio * height:
                paragraphs.append(self._make(current, column_index, left, right, heading_break))
                current = []
                heading_break = gap > self.thresholds.heading_break_ratio * height
            current.append(line)
        paragraphs.append(self._make(current, column_index, left, right, heading_break))

        for paragraph in paragraphs:
            self._classify(paragraph, stats)

        logger.debug(f"Column {column_index}: {len(ordered)} lines grouped into {len(paragraphs)} paragraphs")
        return paragraphs

    @staticmethod
    def _make(lines: List[Line], column_index: int, left: float, right: float, heading_break: bool) -> Paragraph:
        return Paragraph(
            lines=list(lines),
            column_index=column_index,
            column_left=left,
            column_right=right,
            heading_break=heading_break,
        )

    def _classify(self, paragraph: Paragraph, stats: GlobalStats) -> None:
        t = self.thresholds
        dominant = paragraph.dominant_run
        body_size = stats.dominantFontSize

        paragraph.is_header = (
            dominant.font_size > body_size * t.header_font_ratio
            or (dominant.is_bold and dominant.font_size > body_size)
            or (paragraph.heading_break and len(paragraph.lines) == 1)
        )
        paragraph.is_list_item = bool(LIST_ITEM_PATTERN.match(paragraph.lines[0].text))
        if not paragraph.is_header:
            paragraph.is_caption = self._is_caption(paragraph.text)

    def _is_caption(self, text: str) -> bool:
        if self.caption_scorer is None:
            return False
        text = text.strip()
        if not text or len(text) >= self.thresholds.caption_max_chars:
            return False
        try:
            score = self.caption_scorer.similarity(text, self.thresholds.caption_reference_text)
        except Exception as e:
            logger.warning(f"Caption scorer failed, treating '{text[:20]}' as body text: {e}")
            return False
        return score > self.thresholds.caption_score_threshold
