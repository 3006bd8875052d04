"""Text Item Device for PDF Content Extraction

PDFMiner device that reports every shown string as a positioned text item.
Glyph advancement (character and word spacing, horizontal scaling, rise
and TJ displacements) is delegated to pdfminer's own text device, so item
widths match what pdfminer's layout analysis would compute.

Items are expressed in PDF user space: the page matrix pdfminer applies
for MediaBox offset and /Rotate is undone, and the viewport transform is
applied later by the run normalizer.
"""

import logging
import math
from typing import List, Optional, Tuple

from pdfminer.pdfdevice import PDFTextDevice
from pdfminer.pdffont import PDFUnicodeNotDefined
from pdfminer.pdfinterp import PDFResourceManager
from pdfminer.utils import apply_matrix_pt, mult_matrix

from models.layout_types import RawTextItem
from utils.font_mapping import convert_color_to_hex
from utils.pdf_transforms import IDENTITY_MATRIX, invert_matrix

logger = logging.getLogger(__name__)

BASELINE_TOLERANCE = 0.01
WORD_GAP_RATIO = 0.2  # Pen moves wider than this (in font sizes) read as a space


class TextItemDevice(PDFTextDevice):
    """
    Collects `RawTextItem`s for one page in content stream order.

    A new item starts with every Tj/TJ call, and within a TJ array whenever
    a displacement moves the pen further than `split_ratio` font sizes.
    """

    def __init__(self, rsrcmgr: PDFResourceManager, page_num: int, split_ratio: float = 1.0):
        super().__init__(rsrcmgr)
        self.page_num = page_num
        self.split_ratio = split_ratio
        self.items: List[RawTextItem] = []
        self.undefined_glyphs = 0
        self._page_inverse = IDENTITY_MATRIX

        # Current segment state
        self._chars: List[str] = []
        self._start_matrix: Optional[Tuple[float, ...]] = None
        self._end_point: Optional[Tuple[float, float]] = None
        self._font_name = ''
        self._color: Optional[str] = None
        self._fontsize = 0.0
        self._scaling = 1.0
        self._rise = 0.0

    def begin_page(self, page, ctm):
        """Reset state and remember how to undo pdfminer's page matrix"""
        logger.debug(f"Page {self.page_num}: begin_page called")
        self.items = []
        self._reset_segment()
        try:
            self._page_inverse = invert_matrix(ctm)
        except ValueError:
            logger.warning(f"Page {self.page_num}: singular page matrix {ctm}")
            self._page_inverse = IDENTITY_MATRIX

    def end_page(self, page):
        self._flush()

    def render_string(self, textstate, seq, ncs, graphicstate):
        """Handle text rendering (Tj/TJ operators)"""
        font = textstate.font
        if font is None:
            return

        self._flush()
        self._font_name = str(getattr(font, 'fontname', '') or 'Unknown')
        self._color = convert_color_to_hex(getattr(graphicstate, 'ncolor', None)) if graphicstate else None
        self._fontsize = textstate.fontsize
        self._scaling = textstate.scaling * 0.01
        self._rise = textstate.rise

        super().render_string(textstate, seq, ncs, graphicstate)
        self._flush()

    def render_char(self, matrix, font, fontsize, scaling, rise, cid, ncs, graphicstate):
        """Record one glyph and return its advance in text space"""
        adv = font.char_width(cid) * fontsize * scaling

        user_matrix = mult_matrix(matrix, self._page_inverse)
        origin = apply_matrix_pt(user_matrix, (0, 0))

        if self._end_point is not None:
            gap = self._gap_along_baseline(origin, user_matrix)
            if gap is None:
                self._flush()
            elif gap > WORD_GAP_RATIO and self._chars and not self._chars[-1].isspace():
                self._chars.append(' ')

        try:
            text = font.to_unichr(cid)
        except PDFUnicodeNotDefined:
            self.undefined_glyphs += 1
            text = None

        if text:
            if self._start_matrix is None:
                self._start_matrix = user_matrix
            self._chars.append(text)
            self._end_point = apply_matrix_pt(user_matrix, (adv, 0))
        elif self._start_matrix is not None:
            self._end_point = apply_matrix_pt(user_matrix, (adv, 0))

        return adv

    def _gap_along_baseline(self, origin: Tuple[float, float], user_matrix) -> Optional[float]:
        """
        Gap between the previous glyph's end and `origin`, in font sizes.

        Returns None when the glyph leaves the baseline or jumps further
        than the split distance, meaning a new item must start.
        """
        a, b, c, d = user_matrix[:4]
        glyph_scale = math.hypot(c, d) * self._fontsize or 1.0
        dx = origin[0] - self._end_point[0]
        dy = origin[1] - self._end_point[1]

        x_len = math.hypot(a, b) or 1.0
        along = (dx * a + dy * b) / x_len
        across = (-dx * b + dy * a) / x_len
        if abs(across) > glyph_scale * BASELINE_TOLERANCE + 1e-6:
            return None
        gap = along / glyph_scale
        if abs(gap) > self.split_ratio:
            return None
        return gap

    def _flush(self) -> None:
        if self._chars and self._start_matrix is not None:
            text = ''.join(self._chars)
            transform = mult_matrix(
                (self._fontsize * self._scaling, 0, 0, self._fontsize, 0, self._rise),
                self._start_matrix,
            )
            start = apply_matrix_pt(self._start_matrix, (0, 0))
            width = math.hypot(self._end_point[0] - start[0], self._end_point[1] - start[1])
            height = math.hypot(transform[2], transform[3])
            self.items.append(RawTextItem(
                text=text,
                transform=tuple(transform),
                width=width,
                height=height,
                font_name=self._font_name,
                color=self._color,
            ))
        self._reset_segment()

    def _reset_segment(self) -> None:
        self._chars = []
        self._start_matrix = None
        self._end_point = None
