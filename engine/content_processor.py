"""Content Processor for PDFEngine

Builds flattened operator lists from pikepdf content streams and runs the
separator and image extractors over them.
"""

import logging
from typing import List, Optional, TYPE_CHECKING

from engine.base_processor import BaseProcessor
from engine.config import ExtractionOptions, HydrationThresholds
from extractors.image_extractor import ImageExtractor
from extractors.separator_extractor import SeparatorExtractor
from models.hydration_types import ImageBlock
from models.layout_types import Separator
from processors.operator_list import ContentOp, OperatorListBuilder

if TYPE_CHECKING:
    from engine.pdf_engine import PDFEngine

logger = logging.getLogger(__name__)


class ContentProcessor(BaseProcessor):
    """
    Operator list, separator and image extraction for PDFEngine.

    The most recent operator list is cached so separators and images of the
    same page are found from one parse.
    """

    def __init__(
        self,
        engine: 'PDFEngine',
        thresholds: Optional[HydrationThresholds] = None,
        options: Optional[ExtractionOptions] = None,
    ):
        super().__init__(engine)
        self.thresholds = thresholds or HydrationThresholds()
        self.options = options or ExtractionOptions()
        self._builder = OperatorListBuilder(max_form_depth=self.options.max_form_depth)
        self._separators = SeparatorExtractor(self.thresholds)
        self._images = ImageExtractor(self.thresholds, self.options)

    def get_operator_list(self, page_index: int) -> List[ContentOp]:
        """
        Flattened operator list of one page.

        A content stream pikepdf cannot parse yields an empty list, so the
        page still hydrates from its text layer.
        """
        self._require_ready()
        return self._page_result(page_index, lambda: self._build_operator_list(page_index))

    def _build_operator_list(self, page_index: int) -> List[ContentOp]:
        page = self.engine.pikepdf_document.pages[page_index]
        try:
            ops = self._builder.build(page)
        except Exception as e:
            logger.warning(f"Page {page_index + 1}: unreadable content stream, skipping graphics: {e}")
            ops = []
        logger.debug(f"Page {page_index + 1}: {len(ops)} operators")
        return ops

    def extract_separators(self, page_index: int) -> List[Separator]:
        ops = self.get_operator_list(page_index)
        return self._separators.extract(ops, self.engine.get_viewport(page_index))

    def extract_images(self, page_index: int) -> List[ImageBlock]:
        ops = self.get_operator_list(page_index)
        return self._images.extract(ops, self.engine.get_viewport(page_index), page_index)

    @property
    def skipped_images(self) -> int:
        return self._images.skipped_count

    @property
    def skipped_forms(self) -> int:
        return self._builder.skipped_forms
