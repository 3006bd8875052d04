"""Cooperative cancellation for document hydration."""

import threading

from utils.validation import HydrationCancelledError


class CancellationToken:
    """
    Cancellation flag shared between a caller and a hydration run.

    The pipeline polls it between pages; cancelling never interrupts a page
    in progress.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise HydrationCancelledError("Hydration cancelled by caller")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"
