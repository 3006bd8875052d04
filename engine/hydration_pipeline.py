"""
Hydration Pipeline

Runs a document through the page pipeline and reports its progress as an
event stream:

    opening -> scanning -> caption-init -> caption-ready | caption-skip
    -> extracting -> (extracting-page -> analyzing -> building) per page
    -> complete

Every stream ends with exactly one COMPLETE or ERROR event. Failures inside
one page produce an empty page for it; failures of the document as a whole
end the stream with ERROR and no pages.
"""

import logging
from typing import Dict, Iterator, List, Optional

from engine.cancellation import CancellationToken
from engine.config import EngineConfig
from engine.pdf_engine import PDFEngine
from models.hydration_types import (
    CompleteEvent,
    ErrorEvent,
    GlobalStats,
    HydratedPage,
    HydrationStage,
    ProgressEvent,
    StageEvent,
)
from models.layout_types import Run
from processors.block_assembler import BlockAssembler
from processors.column_detector import ColumnDetector
from processors.font_statistics import FontStatisticsAnalyzer
from processors.line_clusterer import LineClusterer
from processors.paragraph_grouper import CaptionScorer, ParagraphGrouper
from processors.run_normalizer import RunNormalizer
from processors.table_detector import TableDetector
from utils.validation import (
    HydrationCancelledError,
    HydrationError,
    MemoryLimitError,
    PdfValidationError,
    ProcessingTimeoutError,
    ResourceMonitor,
)

logger = logging.getLogger(__name__)

PROGRESS_SCANNING = 5
PROGRESS_STATS_READY = 15
PROGRESS_EXTRACTING = 20
PROGRESS_PAGES_SPAN = 75
PROGRESS_DONE = 100


class HydrationPipeline:
    """
    Staged page pipeline for one document at a time.

    The clustering components are plain attributes so callers can swap or
    wrap them (e.g. to inject a failing stage in tests).

    Args:
        config: Engine configuration; thresholds are shared by every stage
        caption_scorer: Optional semantic scorer used for caption detection
    """

    def __init__(self, config: Optional[EngineConfig] = None, caption_scorer: Optional[CaptionScorer] = None):
        self.config = config or EngineConfig.default()
        self.caption_scorer = caption_scorer

        thresholds = self.config.thresholds
        self.run_normalizer = RunNormalizer()
        self.statistics = FontStatisticsAnalyzer(thresholds)
        self.line_clusterer = LineClusterer(thresholds)
        self.column_detector = ColumnDetector(thresholds)
        self.table_detector = TableDetector(thresholds)
        self.paragraph_grouper = ParagraphGrouper(thresholds, caption_scorer)
        self.block_assembler = BlockAssembler(thresholds)

    # Public API

    def process_document(self, data: bytes, cancel_token: Optional[CancellationToken] = None) -> Iterator:
        """
        Hydrate a document, yielding STAGE/PROGRESS events and finally one
        COMPLETE or ERROR event. Never raises for document problems.
        """
        try:
            yield from self.iter_events(data, cancel_token)
        except HydrationCancelledError as e:
            logger.info(f"Hydration cancelled: {e}")
            yield ErrorEvent(message=str(e))
        except (PdfValidationError, ProcessingTimeoutError, MemoryLimitError) as e:
            logger.error(f"Hydration failed: {e}")
            yield ErrorEvent(message=str(e))
        except Exception as e:
            logger.error(f"Unexpected hydration failure: {e}", exc_info=True)
            yield ErrorEvent(message=f"Hydration failed: {str(e)}")

    def iter_events(self, data: bytes, cancel_token: Optional[CancellationToken] = None) -> Iterator:
        """
        Same event sequence as `process_document`, but document-level
        failures propagate as exceptions instead of an ERROR event.
        """
        token = cancel_token or CancellationToken()
        self.run_normalizer.skipped_count = 0

        yield StageEvent(stage=HydrationStage.OPENING, message="Opening document")
        token.raise_if_cancelled()

        with ResourceMonitor(self.config.max_memory_mb, self.config.timeout_seconds) as resources:
            with PDFEngine(data, self.config) as engine:
                total = engine.get_page_count()
                yield StageEvent(
                    stage=HydrationStage.SCANNING,
                    message="Scanning font statistics",
                    totalPages=total,
                )
                yield ProgressEvent(percent=PROGRESS_SCANNING)

                page_runs: Dict[int, List[Run]] = {}
                sample_size = min(total, self.config.thresholds.stats_sample_pages)
                for index in range(sample_size):
                    token.raise_if_cancelled()
                    page_runs[index] = self._safe_page_runs(engine, index)
                stats = self.statistics.analyze([page_runs[i] for i in range(sample_size)])
                yield ProgressEvent(percent=PROGRESS_STATS_READY)

                yield StageEvent(stage=HydrationStage.CAPTION_INIT, message="Preparing caption detection")
                if self.caption_scorer is not None:
                    yield StageEvent(stage=HydrationStage.CAPTION_READY, message="Caption scorer ready")
                else:
                    yield StageEvent(
                        stage=HydrationStage.CAPTION_SKIP,
                        message="No caption scorer, using layout heuristics only",
                    )
                yield ProgressEvent(percent=PROGRESS_EXTRACTING)

                yield StageEvent(
                    stage=HydrationStage.EXTRACTING,
                    message=f"Extracting {total} pages",
                    totalPages=total,
                )

                pages: List[HydratedPage] = []
                for index in range(total):
                    token.raise_if_cancelled()
                    resources.checkpoint(index + 1)

                    page_num = index + 1
                    yield StageEvent(
                        stage=HydrationStage.EXTRACTING_PAGE,
                        message=f"Extracting page {page_num}",
                        pageNum=page_num,
                        totalPages=total,
                    )
                    runs = page_runs.pop(index, None)
                    page = yield from self._hydrate_page(engine, index, total, stats, runs)
                    pages.append(page)

                    yield ProgressEvent(percent=PROGRESS_EXTRACTING + round(page_num / total * PROGRESS_PAGES_SPAN))

                if self.run_normalizer.skipped_count:
                    logger.info(f"Skipped {self.run_normalizer.skipped_count} unusable text items")
                content = engine.content_processor
                if content.skipped_images or content.skipped_forms:
                    logger.info(f"Skipped {content.skipped_images} images and {content.skipped_forms} form XObjects")
                logger.debug(f"Engine status: {engine.get_status()}")

        yield StageEvent(stage=HydrationStage.COMPLETE, message=f"Hydrated {len(pages)} pages", totalPages=total)
        yield ProgressEvent(percent=PROGRESS_DONE)
        yield CompleteEvent(pages=pages)

    # Page pipeline

    def _page_runs(self, engine: PDFEngine, index: int) -> List[Run]:
        items = engine.get_text_items(index)
        return self.run_normalizer.normalize(items, engine.get_viewport(index))

    def _safe_page_runs(self, engine: PDFEngine, index: int) -> List[Run]:
        """Runs for statistics sampling; an unreadable page contributes nothing."""
        try:
            return self._page_runs(engine, index)
        except Exception as e:
            logger.warning(f"Page {index + 1}: text layer unreadable while sampling: {e}")
            return []

    def _hydrate_page(
        self,
        engine: PDFEngine,
        index: int,
        total: int,
        stats: GlobalStats,
        runs: Optional[List[Run]],
    ):
        """Generator yielding the page's stage events and returning its `HydratedPage`."""
        page_num = index + 1
        viewport = engine.get_viewport(index)
        width, height = viewport.width, viewport.height

        try:
            if runs is None:
                runs = self._page_runs(engine, index)
            separators = engine.content_processor.extract_separators(index)
            images = engine.content_processor.extract_images(index)

            yield StageEvent(
                stage=HydrationStage.ANALYZING,
                message=f"Analyzing layout of page {page_num}",
                pageNum=page_num,
                totalPages=total,
            )
            lines = self.line_clusterer.cluster(runs)
            detection = self.table_detector.detect(lines, separators, width, height, index)
            columns = self.column_detector.detect(detection.remaining_lines, width)

            paragraphs = []
            for column in columns:
                paragraphs.extend(self.paragraph_grouper.group(
                    column.lines, stats, column_left=column.x_min, column_right=column.x_max,
                ))

            yield StageEvent(
                stage=HydrationStage.BUILDING,
                message=f"Building blocks for page {page_num}",
                pageNum=page_num,
                totalPages=total,
            )
            return self.block_assembler.assemble(
                index, width, height,
                paragraphs,
                tables=detection.tables,
                images=images,
                page_stats=self.statistics.analyze_page(runs),
                stats=stats,
            )
        except Exception as e:
            logger.warning(f"Page {page_num}: hydration failed, emitting an empty page: {e}", exc_info=True)
            return BlockAssembler.empty_page(index, width, height)


def hydrate_document(
    data: bytes,
    config: Optional[EngineConfig] = None,
    caption_scorer: Optional[CaptionScorer] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> List[HydratedPage]:
    """
    Hydrate a document and return its pages.

    Raises:
        PdfValidationError: If the bytes are not a readable PDF
        ProcessingTimeoutError / MemoryLimitError: If resource limits are hit
        HydrationCancelledError: If `cancel_token` is cancelled
    """
    pipeline = HydrationPipeline(config, caption_scorer)
    for event in pipeline.iter_events(data, cancel_token):
        if isinstance(event, CompleteEvent):
            return event.pages
    raise HydrationError("Hydration ended without a result")
