"""
PDF Processing Engine - Core Coordinator

The PDFEngine opens one document from memory, owns the pikepdf and
pdfminer views of it, and hosts the processors that extract text items and
operator lists page by page.

Usage:
    >>> from engine.pdf_engine import PDFEngine
    >>> with PDFEngine(pdf_bytes) as engine:
    ...     for i in range(engine.get_page_count()):
    ...         viewport = engine.get_viewport(i)
    ...         items = engine.get_text_items(i)
"""

import io
import logging
from typing import Any, Dict, List, Optional

import pikepdf
from pdfminer.pdfdocument import PDFDocument
from pdfminer.pdfpage import PDFPage
from pdfminer.pdfparser import PDFParser

from engine.base_processor import ProcessorRegistry
from engine.config import EngineConfig
from models.layout_types import RawTextItem
from processors.operator_list import ContentOp, inherited_page_attribute
from utils.pdf_transforms import Viewport, compute_viewport
from utils.validation import PdfValidationError, validate_file_content

logger = logging.getLogger(__name__)

DEFAULT_PAGE_BOX = (0.0, 0.0, 612.0, 792.0)


class PDFEngine:
    """
    Document context manager for hydration.

    The input bytes are wrapped, not copied: pikepdf and pdfminer each read
    through their own `BytesIO` view of the same buffer.

    Example:
        >>> with PDFEngine(data, config=EngineConfig(max_file_size_mb=20)) as engine:
        ...     total_pages = engine.get_page_count()
    """

    def __init__(self, data: bytes, config: Optional[EngineConfig] = None):
        """
        Args:
            data: Raw PDF bytes
            config: Engine configuration (uses defaults if None)

        Raises:
            PdfValidationError: If the configuration is invalid
        """
        self.data = data
        self.config = config or EngineConfig.default()

        if not self.config.validate():
            raise PdfValidationError("Invalid engine configuration")

        self._pikepdf_doc: Optional[pikepdf.Pdf] = None
        self._pdfminer_doc: Optional[PDFDocument] = None
        self._pdfminer_pages: List[PDFPage] = []
        self._is_open = False

        self._viewports: Dict[int, Viewport] = {}
        self._processors = ProcessorRegistry()
        self._page_count: Optional[int] = None

        logger.debug(f"PDFEngine initialized for {len(data) if data else 0} bytes")

    def __enter__(self) -> 'PDFEngine':
        """
        Open the document and initialize processors.

        Raises:
            PdfValidationError: If the bytes are not a readable PDF
        """
        if self.config.validate_on_open:
            is_valid, error = validate_file_content(self.data, self.config.max_file_size_mb)
            if not is_valid:
                raise PdfValidationError(error)

        try:
            self._pikepdf_doc = pikepdf.open(io.BytesIO(self.data))
            self._page_count = len(self._pikepdf_doc.pages)

            parser = PDFParser(io.BytesIO(self.data))
            self._pdfminer_doc = PDFDocument(parser)
            self._pdfminer_pages = list(PDFPage.create_pages(self._pdfminer_doc))

            self._is_open = True
            self._initialize_processors()
        except Exception as e:
            logger.error(f"Failed to open PDF: {e}")
            self._cleanup_resources()
            raise PdfValidationError(f"Failed to open PDF: {str(e)}")

        if len(self._pdfminer_pages) != self._page_count:
            logger.warning(
                f"Page tree mismatch: {self._page_count} pages in structure, "
                f"{len(self._pdfminer_pages)} with a text layer"
            )

        logger.info(f"PDF opened: {self._page_count} pages, {len(self.data) / (1024 * 1024):.2f} MB")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logger.debug("Closing PDF engine")
        self._cleanup_resources()

        if exc_type is not None:
            logger.debug(f"Engine closed after exception: {exc_val}")

        return False

    def _initialize_processors(self) -> None:
        from engine.content_processor import ContentProcessor
        from engine.text_processor import TextProcessor

        self._processors.register('text', TextProcessor(self, self.config.thresholds))
        self._processors.register(
            'content', ContentProcessor(self, self.config.thresholds, self.config.extraction)
        )
        self._processors.initialize_all()
        if not self._processors.validate_all():
            raise RuntimeError("Processors failed to initialize")

    def _cleanup_resources(self) -> None:
        """Idempotent release of processors and documents."""
        if self._processors:
            self._processors.cleanup_all()

        if self._pikepdf_doc is not None:
            try:
                self._pikepdf_doc.close()
            except Exception as e:
                logger.warning(f"Error closing pikepdf document: {e}")
            finally:
                self._pikepdf_doc = None

        self._pdfminer_doc = None
        self._pdfminer_pages = []
        self._viewports.clear()
        self._is_open = False

    def _require_open(self) -> None:
        if not self._is_open:
            raise RuntimeError("Engine not opened - use within context manager")

    def _check_index(self, page_index: int) -> None:
        self._require_open()
        if page_index < 0 or page_index >= self._page_count:
            raise IndexError(f"Page index {page_index} out of bounds (0-{self._page_count - 1})")

    # Public API - Document Information

    def get_page_count(self) -> int:
        self._require_open()
        return self._page_count

    def get_viewport(self, page_index: int) -> Viewport:
        """
        Scale-1 viewport of a page.

        Uses the CropBox when it has area, else the MediaBox, and the page's
        inherited /Rotate.
        """
        self._check_index(page_index)
        if page_index in self._viewports:
            return self._viewports[page_index]

        page_obj = self._pikepdf_doc.pages[page_index].obj
        view_box = None
        for key in ('/CropBox', '/MediaBox'):
            box = inherited_page_attribute(page_obj, key)
            if box is None or len(box) != 4:
                continue
            candidate = tuple(float(v) for v in box)
            if abs(candidate[2] - candidate[0]) > 0 and abs(candidate[3] - candidate[1]) > 0:
                view_box = candidate
                break

        if view_box is None:
            logger.warning(f"Page {page_index + 1}: no usable page box, assuming US Letter")
            view_box = DEFAULT_PAGE_BOX

        rotate = inherited_page_attribute(page_obj, '/Rotate')
        viewport = compute_viewport(view_box, int(rotate) if rotate is not None else 0)
        self._viewports[page_index] = viewport
        return viewport

    def get_text_items(self, page_index: int) -> List[RawTextItem]:
        self._check_index(page_index)
        return self.text_processor.extract_items(page_index)

    def get_operator_list(self, page_index: int) -> List[ContentOp]:
        self._check_index(page_index)
        return self.content_processor.get_operator_list(page_index)

    def get_pdfminer_page(self, page_index: int) -> Optional[PDFPage]:
        self._check_index(page_index)
        if page_index >= len(self._pdfminer_pages):
            return None
        return self._pdfminer_pages[page_index]

    # Public API - Resource Access (for processors)

    @property
    def pikepdf_document(self) -> pikepdf.Pdf:
        if not self._is_open or self._pikepdf_doc is None:
            raise RuntimeError("Engine not opened - use within context manager")
        return self._pikepdf_doc

    @property
    def text_processor(self):
        processor = self._processors.get('text')
        if processor is None:
            raise RuntimeError("TextProcessor not enabled or not yet initialized")
        return processor

    @property
    def content_processor(self):
        processor = self._processors.get('content')
        if processor is None:
            raise RuntimeError("ContentProcessor not enabled or not yet initialized")
        return processor

    # Status and Debugging

    @property
    def is_open(self) -> bool:
        return self._is_open

    def get_status(self) -> Dict[str, Any]:
        return {
            'is_open': self._is_open,
            'size_bytes': len(self.data) if self.data else 0,
            'page_count': self._page_count,
            'processors': self._processors.names,
            'config': self.config.to_dict(),
        }

    def __repr__(self) -> str:
        status = "open" if self._is_open else "closed"
        pages = f"{self._page_count} pages" if self._page_count else "unknown pages"
        return f"PDFEngine({status}, {pages})"
