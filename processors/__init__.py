"""
PDF Processing Components

Stateful processors for page layout analysis. These components maintain
internal state and implement the clustering algorithms of the hydration
pipeline:

- TextItemDevice: PDFMiner device collecting positioned text items
- OperatorListBuilder: Flattened pikepdf operator lists with Form XObjects inlined
- GraphicsStateTracker: CTM and graphics state tracking
- RunNormalizer / FontStatisticsAnalyzer: Page-pixel runs and document statistics
- LineClusterer / ColumnDetector / TableDetector / ParagraphGrouper: Layout clustering
- BlockAssembler: Paragraphs, tables and images to a HydratedPage

These differ from utils/ which contains pure, stateless functions.
"""

from processors.text_item_device import TextItemDevice
from processors.operator_list import ContentOp, OperatorListBuilder
from processors.pdf_graphics import GraphicsStateTracker
from processors.run_normalizer import RunNormalizer
from processors.font_statistics import FontStatisticsAnalyzer
from processors.line_clusterer import LineClusterer
from processors.column_detector import ColumnDetector
from processors.table_detector import TableDetector, TableDetectionResult
from processors.paragraph_grouper import CaptionScorer, ParagraphGrouper
from processors.block_assembler import BlockAssembler, infer_alignment

__version__ = "3.0.0"
__all__ = [
    'TextItemDevice',
    'ContentOp',
    'OperatorListBuilder',
    'GraphicsStateTracker',
    'RunNormalizer',
    'FontStatisticsAnalyzer',
    'LineClusterer',
    'ColumnDetector',
    'TableDetector',
    'TableDetectionResult',
    'CaptionScorer',
    'ParagraphGrouper',
    'BlockAssembler',
    'infer_alignment',
]
