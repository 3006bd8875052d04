"""Hydration pipeline events, failure handling and the worker thread."""

import time
from unittest.mock import MagicMock

import pytest

from conftest import make_pdf, text_op
from engine.cancellation import CancellationToken
from engine.hydration_pipeline import HydrationPipeline, hydrate_document
from engine.hydration_worker import HydrationWorker
from exporters import reconstruct
from models.hydration_types import (
    CompleteEvent,
    ErrorEvent,
    HydrationStage,
    ProgressEvent,
    StageEvent,
    TextBlock,
)
from utils.validation import HydrationCancelledError, HydrationError, PdfValidationError

WORKER_TIMEOUT = 60


class FixedScorer:
    def similarity(self, text, reference):
        return 0.0


def terminal_events(events):
    return [e for e in events if isinstance(e, (CompleteEvent, ErrorEvent))]


def stages(events):
    return [e.stage for e in events if isinstance(e, StageEvent)]


class TestEventStream:

    def test_successful_run(self, two_paragraph_pdf):
        """Events start with OPENING and end with a single COMPLETE"""
        events = list(HydrationPipeline().process_document(two_paragraph_pdf))

        assert isinstance(events[0], StageEvent)
        assert events[0].stage == HydrationStage.OPENING
        assert isinstance(events[-1], CompleteEvent)
        assert terminal_events(events) == [events[-1]]

    def test_stage_order(self, two_paragraph_pdf):
        observed = stages(HydrationPipeline().process_document(two_paragraph_pdf))

        assert observed == [
            HydrationStage.OPENING,
            HydrationStage.SCANNING,
            HydrationStage.CAPTION_INIT,
            HydrationStage.CAPTION_SKIP,
            HydrationStage.EXTRACTING,
            HydrationStage.EXTRACTING_PAGE,
            HydrationStage.ANALYZING,
            HydrationStage.BUILDING,
            HydrationStage.COMPLETE,
        ]

    def test_caption_scorer_is_announced(self, two_paragraph_pdf):
        observed = stages(HydrationPipeline(caption_scorer=FixedScorer()).process_document(two_paragraph_pdf))

        assert HydrationStage.CAPTION_READY in observed
        assert HydrationStage.CAPTION_SKIP not in observed

    def test_progress_is_monotonic(self, two_page_pdf):
        events = list(HydrationPipeline().process_document(two_page_pdf))
        percents = [e.percent for e in events if isinstance(e, ProgressEvent)]

        assert percents == sorted(percents)
        assert percents[-1] == 100

    def test_page_events_are_numbered(self, two_page_pdf):
        events = list(HydrationPipeline().process_document(two_page_pdf))
        pages = [e for e in events if isinstance(e, StageEvent) and e.stage == HydrationStage.EXTRACTING_PAGE]

        assert [(e.pageNum, e.totalPages) for e in pages] == [(1, 2), (2, 2)]

    def test_invalid_bytes_end_with_error(self):
        events = list(HydrationPipeline().process_document(b'definitely not a pdf'))

        assert isinstance(events[-1], ErrorEvent)
        assert terminal_events(events) == [events[-1]]
        assert not any(isinstance(e, CompleteEvent) for e in events)

    def test_cancelled_before_start(self, two_paragraph_pdf):
        token = CancellationToken()
        token.cancel()

        events = list(HydrationPipeline().process_document(two_paragraph_pdf, token))

        assert stages(events) == [HydrationStage.OPENING]
        assert isinstance(events[-1], ErrorEvent)
        assert 'cancelled' in events[-1].message

    def test_cancelled_between_pages(self, two_page_pdf):
        """Cancelling during page 1 stops before page 2 starts"""
        token = CancellationToken()
        events = []
        for event in HydrationPipeline().process_document(two_page_pdf, token):
            events.append(event)
            if isinstance(event, StageEvent) and event.stage == HydrationStage.EXTRACTING_PAGE:
                token.cancel()

        page_events = [e for e in events if isinstance(e, StageEvent) and e.stage == HydrationStage.EXTRACTING_PAGE]
        assert len(page_events) == 1
        assert isinstance(events[-1], ErrorEvent)
        assert terminal_events(events) == [events[-1]]

    def test_failing_stage_yields_empty_page(self, two_page_pdf):
        """A page whose analysis raises still completes, with no blocks"""
        pipeline = HydrationPipeline()
        pipeline.line_clusterer = MagicMock()
        pipeline.line_clusterer.cluster.side_effect = RuntimeError("clustering exploded")

        events = list(pipeline.process_document(two_page_pdf))

        assert isinstance(events[-1], CompleteEvent)
        pages = events[-1].pages
        assert len(pages) == 2
        assert all(page.blocks == [] for page in pages)
        assert (pages[0].dims.width, pages[0].dims.height) == (612, 792)

    def test_events_serialize(self, two_paragraph_pdf):
        events = list(HydrationPipeline().process_document(two_paragraph_pdf))

        assert '"type":"STAGE"' in events[0].model_dump_json()
        assert '"type":"COMPLETE"' in events[-1].model_dump_json()


class TestHydratedContent:

    def test_two_paragraphs(self, two_paragraph_pdf):
        pages = hydrate_document(two_paragraph_pdf)

        assert len(pages) == 1
        blocks = pages[0].blocks
        assert [type(b) for b in blocks] == [TextBlock, TextBlock]
        assert [b.id for b in blocks] == ['block-0-0', 'block-0-1']
        assert blocks[0].html == 'The first paragraph starts here\nand continues on a second line.'
        assert blocks[1].html == 'A second paragraph follows\nafter a visible gap.'
        assert blocks[0].box[1] < blocks[1].box[1]
        assert blocks[0].styles.fontSize == 12
        assert blocks[0].meta.lineHeightRatio == pytest.approx(14 / 12, abs=0.001)

    def test_boxes_stay_on_page(self, two_page_pdf):
        for page in hydrate_document(two_page_pdf):
            for block in page.blocks:
                x, y, w, h = block.box
                assert 0 <= x and 0 <= y and w > 0 and h > 0
                assert x + w <= 100 + 1e-6 and y + h <= 100 + 1e-6

    def test_blank_page_has_no_blocks(self):
        pages = hydrate_document(make_pdf(['']))

        assert pages[0].blocks == []
        assert pages[0].meta.avgFontSize is None

    def test_two_column_layout(self):
        content = ''.join(
            text_op(72, 700 - 14 * i, f'left column line {i}') + text_op(330, 700 - 14 * i, f'right column line {i}')
            for i in range(3)
        )
        blocks = hydrate_document(make_pdf([content]))[0].blocks

        assert len(blocks) == 2
        assert blocks[0].html.startswith('left column line 0')
        assert blocks[1].html.startswith('right column line 0')
        assert blocks[1].meta.columnIndex == 1

    def test_image_only_page(self, image_pdf):
        blocks = hydrate_document(image_pdf)[0].blocks

        assert len(blocks) == 1
        assert blocks[0].type == 'image'

    def test_invalid_bytes_raise(self):
        with pytest.raises(PdfValidationError):
            hydrate_document(b'plain text, no pdf header')

    def test_cancelled_token_raises(self, two_paragraph_pdf):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(HydrationCancelledError):
            hydrate_document(two_paragraph_pdf, cancel_token=token)

    def test_paragraph_count_survives_round_trip(self, two_paragraph_pdf):
        """Hydrate, rebuild as vector PDF, hydrate again: same paragraphs"""
        first = hydrate_document(two_paragraph_pdf)
        rebuilt = reconstruct(first, [], 'vector')
        second = hydrate_document(rebuilt)

        assert len(second[0].blocks) == len(first[0].blocks)
        assert [b.html for b in second[0].blocks] == [b.html for b in first[0].blocks]
        for before, after in zip(first[0].blocks, second[0].blocks):
            assert after.box == pytest.approx(before.box, abs=0.05)


class TestHydrationWorker:

    def test_result(self, two_paragraph_pdf):
        worker = HydrationWorker(two_paragraph_pdf).start()
        pages = worker.result(timeout=WORKER_TIMEOUT)
        worker.join(WORKER_TIMEOUT)

        assert len(pages) == 1
        assert not worker.is_running

    def test_events_end_with_terminal(self, two_paragraph_pdf):
        worker = HydrationWorker(two_paragraph_pdf).start()
        events = list(worker.events(timeout=WORKER_TIMEOUT))

        assert isinstance(events[-1], CompleteEvent)
        assert list(worker.events(timeout=WORKER_TIMEOUT)) == []

    def test_cancelled_worker_reports_error(self, two_paragraph_pdf):
        worker = HydrationWorker(two_paragraph_pdf)
        worker.cancel()
        worker.start()

        with pytest.raises(HydrationError):
            worker.result(timeout=WORKER_TIMEOUT)

    def test_invalid_bytes_report_error(self):
        worker = HydrationWorker(b'not a pdf').start()
        events = list(worker.events(timeout=WORKER_TIMEOUT))

        assert isinstance(events[-1], ErrorEvent)

    def test_must_start_before_reading(self, two_paragraph_pdf):
        worker = HydrationWorker(two_paragraph_pdf)
        with pytest.raises(RuntimeError):
            list(worker.events())

    def test_start_once(self, two_paragraph_pdf):
        worker = HydrationWorker(two_paragraph_pdf).start()
        with pytest.raises(RuntimeError):
            worker.start()
        worker.result(timeout=WORKER_TIMEOUT)

    def test_custom_pipeline(self, two_paragraph_pdf):
        pipeline = MagicMock()
        pipeline.process_document.return_value = iter([ErrorEvent(message="stub failure")])
        worker = HydrationWorker(two_paragraph_pdf, pipeline=pipeline).start()

        with pytest.raises(HydrationError, match="stub failure"):
            worker.result(timeout=WORKER_TIMEOUT)
        pipeline.process_document.assert_called_once_with(two_paragraph_pdf, worker.cancel_token)

    def test_idle_worker_is_cancelled_with_error(self, two_paragraph_pdf):
        def stalled(data, cancel_token):
            while not cancel_token.is_cancelled:
                time.sleep(0.01)
            yield from ()

        pipeline = MagicMock()
        pipeline.process_document.side_effect = stalled
        worker = HydrationWorker(two_paragraph_pdf, pipeline=pipeline).start()

        events = list(worker.events(timeout=0.2))

        assert len(events) == 1
        assert isinstance(events[0], ErrorEvent)
        assert worker.cancel_token.is_cancelled
        with pytest.raises(HydrationError, match="timed out"):
            worker.result()
