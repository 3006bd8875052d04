"""
Base processor and registry.

Processors are the engine's per-document services (text item extraction,
operator lists). They hold a reference to the owning PDFEngine to reach
the open documents, and live exactly as long as the engine's `with` block.
"""

from abc import ABC
from typing import Any, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING
import logging

if TYPE_CHECKING:
    from engine.pdf_engine import PDFEngine

logger = logging.getLogger(__name__)


class BaseProcessor(ABC):
    """
    Abstract base class for engine processors.

    Subclasses build per-document state in `initialize()` and drop it in
    `cleanup()`. Per-page results can be memoized with `_page_result`; only
    the most recent page is kept, since hydration visits pages once and in
    order.
    """

    def __init__(self, engine: 'PDFEngine'):
        self.engine = engine
        self._ready = False
        self._last_page: Optional[Tuple[int, Any]] = None

    @property
    def ready(self) -> bool:
        return self._ready

    def initialize(self) -> None:
        self._ready = True
        logger.debug(f"{self.__class__.__name__} ready")

    def cleanup(self) -> None:
        """Drop per-document state. Safe to call more than once."""
        self._last_page = None
        self._ready = False

    def validate_state(self) -> bool:
        if not self._ready:
            logger.error(f"{self.__class__.__name__} not initialized")
            return False
        if self.engine is None:
            logger.error(f"{self.__class__.__name__} has no engine")
            return False
        return True

    def _require_ready(self) -> None:
        if not self.validate_state():
            raise RuntimeError(f"{self.__class__.__name__} used outside an open PDFEngine")

    def _page_result(self, page_index: int, build: Callable[[], Any]) -> Any:
        """Return `build()` for `page_index`, reusing it while the same page is requested."""
        if self._last_page is not None and self._last_page[0] == page_index:
            return self._last_page[1]
        result = build()
        self._last_page = (page_index, result)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({'ready' if self._ready else 'idle'})"


class ProcessorRegistry:
    """
    Named processors of one engine.

    Processors are initialized in registration order and cleaned up in
    reverse. If one fails to initialize, those already initialized are
    cleaned up before the error propagates.
    """

    def __init__(self):
        self._processors: Dict[str, BaseProcessor] = {}

    def register(self, name: str, processor: BaseProcessor) -> None:
        if name in self._processors:
            raise ValueError(f"Processor '{name}' is already registered")
        self._processors[name] = processor

    def get(self, name: str) -> Optional[BaseProcessor]:
        return self._processors.get(name)

    def initialize_all(self) -> None:
        started: List[BaseProcessor] = []
        for name, processor in self._processors.items():
            try:
                processor.initialize()
            except Exception as e:
                logger.error(f"Failed to initialize processor '{name}': {e}")
                for done in reversed(started):
                    done.cleanup()
                raise
            started.append(processor)

    def cleanup_all(self) -> None:
        for name in reversed(list(self._processors)):
            try:
                self._processors[name].cleanup()
            except Exception as e:
                logger.warning(f"Error cleaning up processor '{name}': {e}")

    def validate_all(self) -> bool:
        invalid = [name for name, processor in self._processors.items() if not processor.validate_state()]
        if invalid:
            logger.error(f"Processors in invalid state: {invalid}")
        return not invalid

    @property
    def names(self) -> List[str]:
        return list(self._processors)

    def __len__(self) -> int:
        return len(self._processors)

    def __repr__(self) -> str:
        return f"ProcessorRegistry({self.names})"
