"""Text Processor for PDFEngine

Runs pdfminer's page interpreter with a `TextItemDevice` to obtain each
page's positioned text items in PDF user space.
"""

import logging
from typing import List, Optional, TYPE_CHECKING

from pdfminer.pdfinterp import PDFPageInterpreter, PDFResourceManager

from engine.base_processor import BaseProcessor
from engine.config import HydrationThresholds
from models.layout_types import RawTextItem
from processors.text_item_device import TextItemDevice

if TYPE_CHECKING:
    from engine.pdf_engine import PDFEngine

logger = logging.getLogger(__name__)


class TextProcessor(BaseProcessor):
    """
    Text item extraction for PDFEngine.

    One resource manager is kept per document so fonts are parsed once and
    shared by every page.
    """

    def __init__(self, engine: 'PDFEngine', thresholds: Optional[HydrationThresholds] = None):
        super().__init__(engine)
        self.thresholds = thresholds or HydrationThresholds()
        self._rsrcmgr: Optional[PDFResourceManager] = None
        self.undefined_glyphs = 0

    def initialize(self) -> None:
        self._rsrcmgr = PDFResourceManager(caching=True)
        super().initialize()

    def cleanup(self) -> None:
        self._rsrcmgr = None
        super().cleanup()

    def extract_items(self, page_index: int) -> List[RawTextItem]:
        """
        Extract the text items of one page in content stream order.

        Args:
            page_index: 0-based page index

        Returns:
            Raw text items in PDF user space
        """
        self._require_ready()
        page = self.engine.get_pdfminer_page(page_index)
        if page is None:
            logger.warning(f"Page {page_index + 1}: no text layer available")
            return []

        device = TextItemDevice(self._rsrcmgr, page_index + 1, split_ratio=self.thresholds.tj_split_ratio)
        interpreter = PDFPageInterpreter(self._rsrcmgr, device)
        try:
            interpreter.process_page(page)
        finally:
            device.close()

        if device.undefined_glyphs:
            self.undefined_glyphs += device.undefined_glyphs
            logger.debug(f"Page {page_index + 1}: {device.undefined_glyphs} glyphs without a Unicode mapping")

        logger.debug(f"Page {page_index + 1}: {len(device.items)} text items")
        return device.items
