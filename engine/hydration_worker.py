"""
Hydration Worker

Runs one document's pipeline on a dedicated thread and hands its events to
the caller through a queue, so the caller stays responsive and can cancel.

Usage:
    >>> worker = HydrationWorker(pdf_bytes).start()
    >>> for event in worker.events():
    ...     print(event.type)
"""

import logging
import queue
import threading
from typing import Iterator, List, Optional

from engine.cancellation import CancellationToken
from engine.config import EngineConfig
from engine.hydration_pipeline import HydrationPipeline
from models.hydration_types import CompleteEvent, ErrorEvent, HydratedPage
from processors.paragraph_grouper import CaptionScorer
from utils.validation import HydrationError

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = (CompleteEvent, ErrorEvent)


class HydrationWorker:
    """
    One worker thread per document.

    Events are produced by `HydrationPipeline.process_document`, so the
    stream always ends with a single COMPLETE or ERROR event even when the
    run is cancelled.
    """

    def __init__(
        self,
        data: bytes,
        config: Optional[EngineConfig] = None,
        caption_scorer: Optional[CaptionScorer] = None,
        pipeline: Optional[HydrationPipeline] = None,
    ):
        self.data = data
        self.pipeline = pipeline or HydrationPipeline(config, caption_scorer)
        self.cancel_token = CancellationToken()
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._terminal = None

    def start(self) -> 'HydrationWorker':
        if self._thread is not None:
            raise RuntimeError("Worker already started")
        self._thread = threading.Thread(target=self._run, name="hydration-worker", daemon=True)
        self._thread.start()
        return self

    def _run(self) -> None:
        for event in self.pipeline.process_document(self.data, self.cancel_token):
            self._queue.put(event)
        logger.debug("Hydration worker finished")

    def cancel(self) -> None:
        """Ask the pipeline to stop at the next page boundary."""
        logger.info("Cancelling hydration worker")
        self.cancel_token.cancel()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def events(self, timeout: Optional[float] = None) -> Iterator:
        """
        Yield events as the worker produces them, stopping after the
        terminal event.

        If no event arrives within `timeout` seconds the run is cancelled
        and the stream ends with an ERROR event of its own.
        """
        if self._thread is None:
            raise RuntimeError("Worker not started - call start() first")
        if self._terminal is not None:
            return

        while True:
            try:
                event = self._queue.get(timeout=timeout)
            except queue.Empty:
                logger.error(f"No hydration event within {timeout}s, cancelling worker")
                self.cancel()
                self._terminal = ErrorEvent(message=f"Hydration timed out after {timeout} seconds without progress")
                yield self._terminal
                return
            yield event
            if isinstance(event, TERMINAL_EVENTS):
                self._terminal = event
                return

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def result(self, timeout: Optional[float] = None) -> List[HydratedPage]:
        """
        Drain the stream and return the hydrated pages.

        Raises:
            HydrationError: If the run ended with an ERROR event
        """
        for _ in self.events(timeout):
            pass
        if isinstance(self._terminal, ErrorEvent):
            raise HydrationError(self._terminal.message)
        return self._terminal.pages
